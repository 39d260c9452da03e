"""Per-tenant token quotas with window rollover."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from listing_concierge.services.token_usage import TokenUsageTracker


class Clock:
    def __init__(self):
        self.now = datetime(2025, 3, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def tracker(clock):
    return TokenUsageTracker({"free": 1000, "pro": 10_000}, window=timedelta(days=30), clock=clock)


class TestCheck:
    async def test_fresh_tenant_is_under_quota(self, tracker):
        status = await tracker.check("t1", "free")
        assert not status.exceeded
        assert status.used == 0
        assert status.limit == 1000
        assert status.percentage == 0

    async def test_unknown_plan_uses_free_ceiling(self, tracker):
        assert (await tracker.check("t1", "enterprise")).limit == 1000


class TestRecord:
    async def test_accumulates_tokens_and_requests(self, tracker):
        await tracker.record("t1", 100, 50, "free")
        status = await tracker.record("t1", 200, 50, "free")
        assert status.used == 400
        assert status.request_count == 2
        assert status.percentage == 40.0
        assert not status.warning

    async def test_warning_at_eighty_percent(self, tracker):
        status = await tracker.record("t1", 700, 100, "free")
        assert status.warning
        assert not status.exceeded

    async def test_exceeded_at_limit(self, tracker):
        await tracker.record("t1", 900, 100, "free")
        status = await tracker.check("t1", "free")
        assert status.exceeded
        assert status.percentage == 100.0

    async def test_tenants_are_isolated(self, tracker):
        await tracker.record("t1", 1000, 0, "free")
        assert not (await tracker.check("t2", "free")).exceeded

    async def test_negative_counts_are_ignored(self, tracker):
        status = await tracker.record("t1", -5, 10, "free")
        assert status.used == 10


class TestWindow:
    async def test_rollover_resets_usage(self, tracker, clock):
        await tracker.record("t1", 1000, 0, "free")
        clock.advance(days=30)
        status = await tracker.check("t1", "free")
        assert status.used == 0
        assert not status.exceeded
        assert status.window_start == clock.now

    async def test_usage_kept_inside_window(self, tracker, clock):
        await tracker.record("t1", 500, 0, "free")
        clock.advance(days=29, hours=23)
        assert (await tracker.check("t1", "free")).used == 500

    async def test_plan_upgrade_raises_ceiling(self, tracker):
        await tracker.record("t1", 1000, 0, "free")
        status = await tracker.check("t1", "pro")
        assert status.limit == 10_000
        assert not status.exceeded
        assert status.used == 1000


class TestConcurrency:
    async def test_serialized_records_are_not_lost(self, clock):
        tracker = TokenUsageTracker({"free": 1_000_000}, clock=clock, serialize_per_tenant=True)
        await asyncio.gather(*(tracker.record("t1", 10, 5, "free") for _ in range(50)))
        status = await tracker.check("t1", "free")
        assert status.used == 750
        assert status.request_count == 50
