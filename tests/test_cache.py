"""Tests for dashboard cache notification."""

import pytest
import redis.asyncio as redis

from oliveflow.config import settings
from oliveflow.utils import cache


class FakeRedis:
    """Just enough of redis.asyncio.Redis for key invalidation."""

    def __init__(self, keys=(), fail=False, on_scan=None):
        self.keys = set(keys)
        self.fail = fail
        self.on_scan = on_scan

    async def scan_iter(self, match=None):
        if self.on_scan:
            self.on_scan()
        if self.fail:
            raise redis.ConnectionError("Connection refused")
        prefix = match.rstrip("*")
        for key in sorted(self.keys):
            if key.startswith(prefix):
                yield key

    async def delete(self, *keys):
        self.keys -= set(keys)
        return len(keys)


@pytest.fixture
def fake_redis(monkeypatch):
    def _install(**kwargs):
        client = FakeRedis(**kwargs)

        async def _get_redis():
            return client

        monkeypatch.setattr(cache, "get_redis", _get_redis)
        return client

    return _install


@pytest.mark.cache
@pytest.mark.asyncio
class TestCoreMutationNotification:

    async def test_dashboard_keys_are_dropped(self, monkeypatch, fake_redis):
        monkeypatch.setattr(settings, "dashboard_cache_enabled", True)
        client = fake_redis(keys={"dashboard:summary", "dashboard:farmers", "other:key"})

        await cache.notify_core_mutation("session_created")

        assert client.keys == {"other:key"}

    async def test_disabled_sink_is_a_no_op(self, fake_redis):
        client = fake_redis(keys={"dashboard:summary"})

        await cache.notify_core_mutation("session_created")

        assert client.keys == {"dashboard:summary"}

    async def test_redis_failure_is_swallowed(self, monkeypatch, fake_redis):
        monkeypatch.setattr(settings, "dashboard_cache_enabled", True)
        fake_redis(fail=True)

        await cache.notify_core_mutation("session_created")

    async def test_invalidate_returns_count(self, fake_redis):
        fake_redis(keys={"dashboard:a", "dashboard:b"})
        assert await cache.invalidate_cache("dashboard:*") == 2

    async def test_pending_notifications_are_sent_once(self, monkeypatch, fake_redis, db_session):
        monkeypatch.setattr(settings, "dashboard_cache_enabled", True)
        scans = []
        fake_redis(keys={"dashboard:summary"}, on_scan=lambda: scans.append(1))

        cache.notify_after_commit(db_session, "box_assigned")
        cache.notify_after_commit(db_session, "box_assigned")
        await cache.flush_pending_mutations(db_session)
        await cache.flush_pending_mutations(db_session)

        assert scans == [1]

    async def test_discarded_notifications_are_not_sent(self, monkeypatch, fake_redis, db_session):
        monkeypatch.setattr(settings, "dashboard_cache_enabled", True)
        client = fake_redis(keys={"dashboard:summary"})

        cache.notify_after_commit(db_session, "session_created")
        cache.discard_pending_mutations(db_session)
        await cache.flush_pending_mutations(db_session)

        assert client.keys == {"dashboard:summary"}


@pytest.mark.cache
@pytest.mark.api
@pytest.mark.asyncio
class TestNotificationTiming:

    async def test_invalidation_runs_after_commit(
        self, monkeypatch, fake_redis, client, db_session, farmer, factory_boxes
    ):
        monkeypatch.setattr(settings, "dashboard_cache_enabled", True)
        in_transaction = []
        redis_client = fake_redis(
            keys={"dashboard:summary"},
            on_scan=lambda: in_transaction.append(db_session.in_transaction()),
        )

        response = await client.post("/api/boxes/", json={
            "farmer_id": farmer.id, "box_id": "12", "box_type": "normal", "weight": 18.5,
        })

        assert response.status_code == 201
        assert in_transaction == [False]
        assert redis_client.keys == set()

    async def test_rejected_mutation_leaves_cache_alone(
        self, monkeypatch, fake_redis, client, farmer, factory_boxes
    ):
        monkeypatch.setattr(settings, "dashboard_cache_enabled", True)
        redis_client = fake_redis(keys={"dashboard:summary"})

        first = await client.post("/api/boxes/", json={
            "farmer_id": farmer.id, "box_id": "12", "box_type": "normal", "weight": 18.5,
        })
        redis_client.keys = {"dashboard:summary"}
        second = await client.post("/api/boxes/", json={
            "farmer_id": farmer.id, "box_id": "12", "box_type": "normal", "weight": 20,
        })

        assert first.status_code == 201
        assert second.status_code == 409
        assert redis_client.keys == {"dashboard:summary"}
