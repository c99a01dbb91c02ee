"""
Session broker - ephemeral per-flow secrets behind one opaque cookie

The store contract is put / get / delete with a TTL, so a
remote cache or an expiring in-memory map can back it.
"""

import json
import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from loguru import logger
from pydantic import ValidationError
from redis.exceptions import RedisError

from oauth_gateway.common.exceptions import (
    MissingChallenge,
    MissingSession,
    ReadSessionError,
    WriteSessionError,
)
from oauth_gateway.core.redis import RedisClient
from oauth_gateway.core.security import generate_token
from oauth_gateway.core.settings import Settings
from oauth_gateway.schemas.session import FlowSession

LOG_PREFIX = "[SessionBroker]"

SESSION_KEY_PREFIX = "flow_session:"
SESSION_KEY_BYTES = 32


class SessionStore(Protocol):
    async def put(self, session: Dict[str, Any], ttl: int) -> str: ...

    async def get(self, key: str) -> Optional[Dict[str, Any]]: ...

    async def delete(self, key: str) -> None: ...


class RedisSessionStore:
    """Sessions as JSON strings under flow_session:{key} with SET ... EX ttl."""

    async def put(self, session: Dict[str, Any], ttl: int) -> str:
        key = generate_token(SESSION_KEY_BYTES)
        try:
            stored = await RedisClient.set(f"{SESSION_KEY_PREFIX}{key}", session, expire=ttl)
        except RedisError as e:
            raise WriteSessionError(context=f"redis set failed: {type(e).__name__}: {e}") from e
        if not stored:
            raise WriteSessionError(context="redis is not connected")
        return key

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        if RedisClient.get_client() is None:
            raise ReadSessionError(context="redis is not connected")
        try:
            raw = await RedisClient.get(f"{SESSION_KEY_PREFIX}{key}")
        except RedisError as e:
            raise ReadSessionError(context=f"redis get failed: {type(e).__name__}: {e}") from e
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise ReadSessionError(context="stored session is not JSON") from e

    async def delete(self, key: str) -> None:
        try:
            await RedisClient.delete(f"{SESSION_KEY_PREFIX}{key}")
        except RedisError as e:
            raise WriteSessionError(context=f"redis delete failed: {type(e).__name__}: {e}") from e


class MemorySessionStore:
    """Expiring in-process map; for single-instance deployments and tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[float, Dict[str, Any]]] = {}

    def __len__(self) -> int:
        self._sweep()
        return len(self._data)

    def _sweep(self) -> None:
        now = self._clock()
        for key in [k for k, (expires_at, _) in self._data.items() if expires_at <= now]:
            del self._data[key]

    async def put(self, session: Dict[str, Any], ttl: int) -> str:
        self._sweep()
        key = generate_token(SESSION_KEY_BYTES)
        self._data[key] = (self._clock() + ttl, dict(session))
        return key

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at, session = entry
        if expires_at <= self._clock():
            del self._data[key]
            return None
        return dict(session)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SessionBroker:
    """
    Create, retrieve and destroy FlowSessions addressed by a cookie.

    Cookie name, lifetime and the Secure flag come from the options of the
    caller's configuration generation, so a reload applies to the next flow.
    """

    def __init__(self, store: SessionStore):
        self.store = store

    @staticmethod
    def _cookie(options: Settings, value: str, max_age: Optional[int] = None) -> str:
        parts = [f"{options.session_cookie_name}={value}", "Path=/", "HttpOnly", "SameSite=Lax"]
        if max_age is not None:
            parts.append(f"Max-Age={max_age}")
        if options.cookie_secure:
            parts.append("Secure")
        return "; ".join(parts)

    async def create(
        self,
        options: Settings,
        pkce_verifier: str,
        csrf_token: str,
        project_id: Optional[str] = None,
    ) -> str:
        """
        Persist a new flow session.

        Returns:
            Set-Cookie directive carrying the session key

        Raises:
            WriteSessionError: the store rejected the write
        """
        session = FlowSession(pkce_verifier=pkce_verifier, csrf_token=csrf_token, project_id=project_id)
        key = await self.store.put(session.model_dump(exclude_none=True), options.session_ttl_seconds)
        logger.debug(f"{LOG_PREFIX} Flow session created (ttl={options.session_ttl_seconds}s)")
        return self._cookie(options, key)

    async def retrieve(self, cookie_value: Optional[str]) -> FlowSession:
        """
        Raises:
            MissingSession: no cookie, or no live record for it
            MissingChallenge: record lacks the PKCE verifier or the CSRF token
            ReadSessionError: the store could not be read
        """
        if not cookie_value:
            raise MissingSession(context="request carries no flow session cookie")

        record = await self.store.get(cookie_value)
        if record is None:
            raise MissingSession(context="flow session unknown or expired")

        if not isinstance(record, dict):
            raise MissingChallenge(context="flow session record is not a mapping")
        missing = sorted(f for f in ("pkce_verifier", "csrf_token") if not record.get(f))
        if missing:
            raise MissingChallenge(context=f"flow session lacks {', '.join(missing)}")

        try:
            return FlowSession.model_validate(record)
        except ValidationError:
            raise MissingChallenge(context="flow session record is malformed") from None

    async def destroy(self, cookie_value: Optional[str]) -> None:
        """Idempotent; an absent cookie or record is not an error."""
        if not cookie_value:
            return
        await self.store.delete(cookie_value)
        logger.debug(f"{LOG_PREFIX} Flow session destroyed")

    def expired_cookie(self, options: Settings) -> str:
        """Set-Cookie directive that removes the flow cookie from the browser."""
        return self._cookie(options, "", max_age=0)
