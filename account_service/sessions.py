"""Server-side session storage bound to a client through a cookie.

The cookie only carries an opaque session id; the authenticated user id lives
in the session store (Redis in deployment, process memory for development
and tests).
"""

import json
import time
from typing import Any, Optional
from redis import asyncio as aioredis
from .auth import generate_session_id
from .config import settings
from .logger import logger

# ==================== Session Key Utilities ====================

USER_ID_FIELD = "user_id"


def make_session_key(session_id: str) -> str:
    """Generate namespaced store key for a session id.

    Args:
        session_id: Opaque id taken from the session cookie

    Returns:
        Formatted key (e.g., "session:abc123")
    """
    return f"{settings.SESSION_KEY_PREFIX}:{session_id}"


class SessionStoreError(Exception):
    """Raised when a session could not be persisted."""


# ==================== Redis Store ====================


class RedisSessionStore:
    """Stores session data in Redis with a TTL, degrading gracefully.

    If Redis is unavailable, reads return None (the client is treated as
    signed out) and writes report failure.
    """

    def __init__(self):
        self._redis: Optional[aioredis.Redis] = None

    async def connect(self):
        """Establish connection to Redis.

        Creates a connection pool and verifies connectivity with ping.
        Sets _redis to None if connection fails (graceful degradation).
        """
        if self._redis is None:
            try:
                self._redis = await aioredis.from_url(
                    settings.REDIS_URL,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=5,
                )
                await self._redis.ping()
                logger.info("[session] Connected to Redis")
            except Exception as e:
                logger.error(f"[session] Failed to connect to Redis: {e}")
                self._redis = None

    async def disconnect(self):
        """Close Redis connection during application shutdown."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("[session] Disconnected from Redis")

    async def get(self, key: str) -> Optional[dict]:
        if not self._redis:
            return None

        try:
            value = await self._redis.get(key)
            if value:
                # Sliding expiry: each read renews the idle lifetime
                await self._redis.expire(key, settings.SESSION_TTL)
                return json.loads(value)
            return None
        except Exception as e:
            logger.error(f"[session] Error reading session: {e}")
            return None

    async def set(self, key: str, value: dict, ttl: Optional[int] = None) -> bool:
        """
        Store session data with a TTL.

        Returns:
            True if successful, False otherwise
        """
        if not self._redis:
            return False

        try:
            await self._redis.setex(key, ttl or settings.SESSION_TTL, json.dumps(value))
            return True
        except Exception as e:
            logger.error(f"[session] Error writing session: {e}")
            return False

    async def delete(self, key: str) -> bool:
        if not self._redis:
            return False

        try:
            await self._redis.delete(key)
            return True
        except Exception as e:
            logger.error(f"[session] Error deleting session: {e}")
            return False

    async def health_check(self) -> bool:
        """
        Check if Redis is healthy.

        Returns:
            True if Redis responds to ping, False otherwise
        """
        if not self._redis:
            return False

        try:
            await self._redis.ping()
            return True
        except Exception:
            return False


# ==================== In-Memory Store ====================


class MemorySessionStore:
    """Process-local session store for development and tests.

    Not shared between worker processes.
    """

    def __init__(self):
        self._data: dict[str, tuple[float, dict]] = {}

    async def connect(self):
        logger.info("[session] Using in-memory session store")

    async def disconnect(self):
        self._data.clear()

    async def get(self, key: str) -> Optional[dict]:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        now = time.monotonic()
        if expires_at <= now:
            del self._data[key]
            return None
        self._data[key] = (now + settings.SESSION_TTL, value)
        return dict(value)

    async def set(self, key: str, value: dict, ttl: Optional[int] = None) -> bool:
        now = time.monotonic()
        self._sweep(now)
        self._data[key] = (now + (ttl or settings.SESSION_TTL), dict(value))
        return True

    def _sweep(self, now: float) -> None:
        """Drop every expired entry, including sessions nobody reads again."""
        expired = [key for key, (expires_at, _) in self._data.items() if expires_at <= now]
        for key in expired:
            del self._data[key]

    async def delete(self, key: str) -> bool:
        self._data.pop(key, None)
        return True

    async def health_check(self) -> bool:
        return True


def create_session_store():
    """Build the session store selected by SESSION_BACKEND."""
    if settings.SESSION_BACKEND == "memory":
        return MemorySessionStore()
    return RedisSessionStore()


# ==================== Per-Client Session ====================


class ClientSession:
    """Session scope of one client, holding at most the authenticated user id.

    Created per request by the session middleware and handed to the service
    layer. Changes are written to the store immediately so the next request
    from the same client sees them; the middleware then sets or expires the
    cookie according to cookie_action.
    """

    def __init__(self, store: Any, session_id: str | None = None):
        self._store = store
        self.session_id = session_id
        self.cookie_action: str | None = None  # "set", "clear" or None

    async def get_user_id(self) -> int | None:
        """Return the authenticated user id, or None when signed out."""
        if not self.session_id:
            return None
        data = await self._store.get(make_session_key(self.session_id))
        if not data:
            return None
        user_id = data.get(USER_ID_FIELD)
        return int(user_id) if user_id is not None else None

    async def set_user_id(self, user_id: int) -> None:
        """Bind this client to a user under a freshly issued session id."""
        if self.session_id:
            await self._store.delete(make_session_key(self.session_id))
        new_id = generate_session_id()
        stored = await self._store.set(make_session_key(new_id), {USER_ID_FIELD: user_id})
        if not stored:
            raise SessionStoreError("session store rejected write")
        self.session_id = new_id
        self.cookie_action = "set"

    async def clear(self) -> None:
        """Drop the whole session scope. Safe when no session exists."""
        if self.session_id:
            await self._store.delete(make_session_key(self.session_id))
        self.session_id = None
        self.cookie_action = "clear"

# ==================== Global Instance ====================

session_store = create_session_store()
