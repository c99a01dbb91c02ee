"""
Tests for the session broker and its stores.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from unittest.mock import patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from oauth_gateway.common.exceptions import (
    MissingChallenge,
    MissingSession,
    ReadSessionError,
    WriteSessionError,
)
from oauth_gateway.core.redis import RedisClient
from oauth_gateway.services.session_service import (
    SESSION_KEY_PREFIX,
    MemorySessionStore,
    RedisSessionStore,
    SessionBroker,
)

from tests.conftest import make_settings

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeRedis:
    """Just enough of redis.asyncio.Redis for RedisClient.get/set/delete."""

    def __init__(self, fail: bool = False):
        self.data: Dict[str, str] = {}
        self.expiry: Dict[str, int] = {}
        self.fail = fail

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        if self.fail:
            raise RedisConnectionError("connection refused")
        self.data[key] = value
        self.expiry[key] = ex
        return True

    async def get(self, key: str) -> Optional[str]:
        if self.fail:
            raise RedisConnectionError("connection refused")
        return self.data.get(key)

    async def delete(self, key: str) -> int:
        if self.fail:
            raise RedisConnectionError("connection refused")
        return 1 if self.data.pop(key, None) is not None else 0


def _cookie_value(directive: str) -> str:
    name_value = directive.split(";", 1)[0]
    return name_value.split("=", 1)[1]


# ---------------------------------------------------------------------------
# MemorySessionStore
# ---------------------------------------------------------------------------


class TestMemorySessionStore:
    @pytest.mark.asyncio
    async def test_put_get_delete(self):
        store = MemorySessionStore()

        key = await store.put({"pkce_verifier": "v", "csrf_token": "c"}, ttl=60)

        assert await store.get(key) == {"pkce_verifier": "v", "csrf_token": "c"}
        await store.delete(key)
        assert await store.get(key) is None

    @pytest.mark.asyncio
    async def test_record_expires_after_ttl(self):
        clock = FakeClock()
        store = MemorySessionStore(clock=clock)
        key = await store.put({"pkce_verifier": "v", "csrf_token": "c"}, ttl=600)

        clock.now += 599
        assert await store.get(key) is not None

        clock.now += 1
        assert await store.get(key) is None
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_put_sweeps_expired_records(self):
        clock = FakeClock()
        store = MemorySessionStore(clock=clock)
        await store.put({"a": 1}, ttl=10)
        clock.now += 11

        await store.put({"b": 2}, ttl=10)

        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_returned_record_is_a_copy(self):
        store = MemorySessionStore()
        key = await store.put({"csrf_token": "c"}, ttl=60)

        record = await store.get(key)
        record["csrf_token"] = "tampered"

        assert (await store.get(key))["csrf_token"] == "c"


# ---------------------------------------------------------------------------
# RedisSessionStore
# ---------------------------------------------------------------------------


class TestRedisSessionStore:
    @pytest.mark.asyncio
    async def test_round_trip_with_ttl(self):
        fake = FakeRedis()
        with patch.object(RedisClient, "_client", fake):
            store = RedisSessionStore()
            key = await store.put({"pkce_verifier": "v", "csrf_token": "c"}, ttl=600)

            assert fake.expiry[f"{SESSION_KEY_PREFIX}{key}"] == 600
            assert await store.get(key) == {"pkce_verifier": "v", "csrf_token": "c"}

            await store.delete(key)
            assert await store.get(key) is None

    @pytest.mark.asyncio
    async def test_write_without_connection(self):
        with patch.object(RedisClient, "_client", None):
            with pytest.raises(WriteSessionError):
                await RedisSessionStore().put({"csrf_token": "c"}, ttl=600)

    @pytest.mark.asyncio
    async def test_read_without_connection(self):
        with patch.object(RedisClient, "_client", None):
            with pytest.raises(ReadSessionError):
                await RedisSessionStore().get("key")

    @pytest.mark.asyncio
    async def test_redis_errors_are_mapped(self):
        with patch.object(RedisClient, "_client", FakeRedis(fail=True)):
            store = RedisSessionStore()
            with pytest.raises(WriteSessionError):
                await store.put({"csrf_token": "c"}, ttl=600)
            with pytest.raises(ReadSessionError):
                await store.get("key")

    @pytest.mark.asyncio
    async def test_corrupt_record(self):
        fake = FakeRedis()
        fake.data[f"{SESSION_KEY_PREFIX}key"] = "{not json"
        with patch.object(RedisClient, "_client", fake):
            with pytest.raises(ReadSessionError):
                await RedisSessionStore().get("key")


# ---------------------------------------------------------------------------
# SessionBroker
# ---------------------------------------------------------------------------


class TestSessionBroker:
    @pytest.mark.asyncio
    async def test_create_then_retrieve(self, broker, settings):
        directive = await broker.create(settings, "verifier-1", "csrf-1", project_id="p-1")

        assert directive.startswith("auth_session=")
        assert "HttpOnly" in directive
        assert "SameSite=Lax" in directive
        assert "Path=/" in directive
        assert "Secure" not in directive

        session = await broker.retrieve(_cookie_value(directive))
        assert session.pkce_verifier == "verifier-1"
        assert session.csrf_token == "csrf-1"
        assert session.project_id == "p-1"

    @pytest.mark.asyncio
    async def test_secure_cookie(self, broker):
        options = make_settings(session_cookie_name="flow", cookie_secure=True)

        directive = await broker.create(options, "v", "c")

        assert directive.startswith("flow=")
        assert directive.endswith("Secure")

    @pytest.mark.asyncio
    async def test_cookie_does_not_carry_secrets(self, broker, settings):
        directive = await broker.create(settings, "verifier-1", "csrf-1")

        assert "verifier-1" not in directive
        assert "csrf-1" not in directive

    @pytest.mark.asyncio
    @pytest.mark.parametrize("cookie", [None, ""])
    async def test_no_cookie(self, broker, cookie):
        with pytest.raises(MissingSession):
            await broker.retrieve(cookie)

    @pytest.mark.asyncio
    async def test_unknown_cookie(self, broker):
        with pytest.raises(MissingSession):
            await broker.retrieve("never-issued")

    @pytest.mark.asyncio
    async def test_expired_session(self):
        clock = FakeClock()
        broker = SessionBroker(MemorySessionStore(clock=clock))
        directive = await broker.create(make_settings(session_ttl_seconds=600), "v", "c")

        clock.now += 601

        with pytest.raises(MissingSession):
            await broker.retrieve(_cookie_value(directive))

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "record",
        [
            {"csrf_token": "c"},
            {"pkce_verifier": "v"},
            {"pkce_verifier": "", "csrf_token": "c"},
            {"pkce_verifier": "v", "csrf_token": 12},
        ],
    )
    async def test_incomplete_record(self, store, broker, record: Dict[str, Any]):
        key = await store.put(record, ttl=600)

        with pytest.raises(MissingChallenge):
            await broker.retrieve(key)

    @pytest.mark.asyncio
    async def test_destroy_is_idempotent(self, broker, settings):
        directive = await broker.create(settings, "v", "c")
        key = _cookie_value(directive)

        await broker.destroy(key)
        await broker.destroy(key)
        await broker.destroy(None)

        with pytest.raises(MissingSession):
            await broker.retrieve(key)

    def test_expired_cookie(self, broker, settings):
        directive = broker.expired_cookie(settings)

        assert directive.startswith("auth_session=;")
        assert "Max-Age=0" in directive

    @pytest.mark.asyncio
    async def test_cookie_follows_caller_options(self, broker, settings):
        renamed = make_settings(session_cookie_name="flow_v2", session_ttl_seconds=30)

        before = await broker.create(settings, "v", "c")
        after = await broker.create(renamed, "v", "c")

        assert before.startswith("auth_session=")
        assert after.startswith("flow_v2=")
        assert broker.expired_cookie(renamed).startswith("flow_v2=;")
        assert (await broker.retrieve(_cookie_value(after))).pkce_verifier == "v"

    @pytest.mark.asyncio
    async def test_ttl_comes_from_caller_options(self):
        clock = FakeClock()
        broker = SessionBroker(MemorySessionStore(clock=clock))
        directive = await broker.create(make_settings(session_ttl_seconds=30), "v", "c")

        clock.now += 31

        with pytest.raises(MissingSession):
            await broker.retrieve(_cookie_value(directive))
