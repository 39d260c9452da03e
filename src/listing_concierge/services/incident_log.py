"""Append-only audit log backed by the ``audit_events`` table.

Collections: ``security_incidents``, ``validation_warnings``, ``visitor_leads``.
Writing to the log never breaks a chat turn: failures are logged and
``append`` returns False.
"""

import logging
from typing import Optional

from sqlalchemy import select

from listing_concierge.domain.models import AuditEvent

logger = logging.getLogger(__name__)

SECURITY_INCIDENTS = "security_incidents"
VALIDATION_WARNINGS = "validation_warnings"
VISITOR_LEADS = "visitor_leads"


class IncidentLog:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def append(self, collection: str, record: dict) -> bool:
        try:
            async with self.session_factory() as session:
                session.add(
                    AuditEvent(
                        collection=collection,
                        tenant_id=record.get("tenant_id"),
                        payload=record,
                    )
                )
                await session.commit()
            return True
        except Exception:
            logger.exception("Failed to append %s record for %s", collection, record.get("tenant_id"))
            return False

    async def recent(self, collection: str, tenant_id: Optional[str] = None, limit: int = 50) -> list[dict]:
        async with self.session_factory() as session:
            stmt = select(AuditEvent).where(AuditEvent.collection == collection)
            if tenant_id:
                stmt = stmt.where(AuditEvent.tenant_id == tenant_id)
            stmt = stmt.order_by(AuditEvent.created_at.desc()).limit(limit)
            result = await session.execute(stmt)
            return [event.payload for event in result.scalars().all()]
