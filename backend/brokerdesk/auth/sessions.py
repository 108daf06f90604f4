"""
Refresh-token session store.

Refresh tokens map to a user id for `refresh_token_expire_days`. Production
keeps them in Redis; SESSION_BACKEND=memory keeps them in-process for local
development and tests.
"""

import logging
import time

import redis.asyncio as aioredis

from brokerdesk.config import settings

logger = logging.getLogger(__name__)

REFRESH_TOKEN_TTL = settings.refresh_token_expire_days * 86400  # seconds


class RedisSessionStore:
    def __init__(self, url: str):
        self._url = url

    def _client(self) -> aioredis.Redis:
        return aioredis.from_url(self._url, decode_responses=True)

    async def save(self, token: str, user_id: int, ttl: int = REFRESH_TOKEN_TTL) -> None:
        r = self._client()
        try:
            await r.setex(f"refresh:{token}", ttl, str(user_id))
        finally:
            await r.aclose()

    async def get(self, token: str) -> int | None:
        r = self._client()
        try:
            value = await r.get(f"refresh:{token}")
        finally:
            await r.aclose()
        return int(value) if value else None

    async def revoke(self, token: str) -> None:
        r = self._client()
        try:
            await r.delete(f"refresh:{token}")
        finally:
            await r.aclose()


class MemorySessionStore:
    def __init__(self):
        self._tokens: dict[str, tuple[int, float]] = {}

    async def save(self, token: str, user_id: int, ttl: int = REFRESH_TOKEN_TTL) -> None:
        self._tokens[token] = (user_id, time.monotonic() + ttl)

    async def get(self, token: str) -> int | None:
        entry = self._tokens.get(token)
        if entry is None:
            return None
        user_id, expires_at = entry
        if time.monotonic() >= expires_at:
            del self._tokens[token]
            return None
        return user_id

    async def revoke(self, token: str) -> None:
        self._tokens.pop(token, None)


SessionStore = RedisSessionStore | MemorySessionStore

_store: SessionStore | None = None


def get_session_store() -> SessionStore:
    """FastAPI dependency returning the process-wide session store."""
    global _store
    if _store is None:
        if settings.session_backend == "memory":
            _store = MemorySessionStore()
        else:
            _store = RedisSessionStore(settings.redis_url)
        logger.info("Session store: %s", type(_store).__name__)
    return _store
