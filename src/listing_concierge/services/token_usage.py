"""Per-tenant token quota accounting.

Counters live behind the ``Cache`` interface and roll over (zeroed) once the
window has elapsed. ``check`` runs before any model call; ``record`` after
the turn. Increments are read-then-write; set ``serialize_per_tenant`` to
take a per-tenant lock around them when quotas must be hard.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from listing_concierge.infra.cache import Cache, TTLCache

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TokenUsageRecord:
    tenant_id: str
    plan: str
    window_start: datetime
    input_tokens: int = 0
    output_tokens: int = 0
    request_count: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class UsageStatus:
    exceeded: bool
    percentage: float
    warning: bool
    used: int
    limit: int
    plan: str
    request_count: int = 0
    window_start: Optional[datetime] = None


class TokenUsageTracker:
    """Monthly token ceilings per plan, with rollover."""

    def __init__(
        self,
        plan_limits: dict[str, int],
        window: timedelta = timedelta(days=30),
        warning_ratio: float = 0.8,
        store: Optional[Cache[TokenUsageRecord]] = None,
        serialize_per_tenant: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.plan_limits = dict(plan_limits)
        self.window = window
        self.warning_ratio = warning_ratio
        self.store: Cache[TokenUsageRecord] = store if store is not None else TTLCache()
        self.serialize_per_tenant = serialize_per_tenant
        self.clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    def limit_for(self, plan: str) -> int:
        return self.plan_limits.get(plan, self.plan_limits.get("free", 0))

    @asynccontextmanager
    async def _guard(self, tenant_id: str):
        if not self.serialize_per_tenant:
            yield
            return
        lock = self._locks.setdefault(tenant_id, asyncio.Lock())
        async with lock:
            yield

    def _current(self, tenant_id: str, plan: str) -> TokenUsageRecord:
        now = self.clock()
        record = self.store.get(tenant_id)
        if record is None:
            record = TokenUsageRecord(tenant_id=tenant_id, plan=plan, window_start=now)
            self.store.put(tenant_id, record)
        elif now - record.window_start >= self.window:
            logger.info(
                "[%s] Usage window rolled over (%d tokens in previous window)",
                tenant_id,
                record.total_tokens,
            )
            record = TokenUsageRecord(tenant_id=tenant_id, plan=plan, window_start=now)
            self.store.put(tenant_id, record)
        elif record.plan != plan:
            record = replace(record, plan=plan)
            self.store.put(tenant_id, record)
        return record

    def _status(self, record: TokenUsageRecord) -> UsageStatus:
        limit = self.limit_for(record.plan)
        used = record.total_tokens
        ratio = used / limit if limit > 0 else 1.0
        return UsageStatus(
            exceeded=used >= limit,
            percentage=round(ratio * 100, 1),
            warning=ratio >= self.warning_ratio,
            used=used,
            limit=limit,
            plan=record.plan,
            request_count=record.request_count,
            window_start=record.window_start,
        )

    async def check(self, tenant_id: str, plan: str = "free") -> UsageStatus:
        async with self._guard(tenant_id):
            status = self._status(self._current(tenant_id, plan))
        if status.exceeded:
            logger.warning("[%s] Token quota exceeded: %d/%d", tenant_id, status.used, status.limit)
        return status

    async def record(self, tenant_id: str, input_tokens: int, output_tokens: int, plan: str = "free") -> UsageStatus:
        async with self._guard(tenant_id):
            current = self._current(tenant_id, plan)
            updated = replace(
                current,
                input_tokens=current.input_tokens + max(input_tokens, 0),
                output_tokens=current.output_tokens + max(output_tokens, 0),
                request_count=current.request_count + 1,
            )
            self.store.put(tenant_id, updated)
        logger.debug("[%s] Recorded %d+%d tokens", tenant_id, input_tokens, output_tokens)
        return self._status(updated)
