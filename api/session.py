"""Session management with Redis backend and in-memory fallback.

A session holds the serialized run and meta snapshots under separate keys,
so a finished or abandoned run can be dropped without touching the
fragments and hacks earned so far.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

import redis.asyncio as redis
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from pydantic import ValidationError
from redis.exceptions import RedisError

from api.schemas import SessionData
from config import config

logger = logging.getLogger(__name__)

# Session data keys
SESSION_KEY_RUN = "run"
SESSION_KEY_META = "meta"


class SessionSigner:
    """Sign and verify session IDs using itsdangerous."""

    def __init__(self, secret_key: str | None = None) -> None:
        """Initialize the signer with a secret key."""
        self._secret_key = secret_key or config.security.secret_key
        self._serializer = URLSafeTimedSerializer(self._secret_key, salt="void-session")

    def sign(self, session_id: str) -> str:
        """Create a signed token from a session ID."""
        return self._serializer.dumps(session_id)

    def unsign(self, token: str, max_age: int | None = None) -> str | None:
        """
        Verify and extract session_id from a signed token.

        Args:
            token: The signed token to verify
            max_age: Maximum age in seconds (defaults to session_ttl)

        Returns:
            The session ID if valid, None otherwise
        """
        max_age = max_age or config.session_ttl
        try:
            return self._serializer.loads(token, max_age=max_age)
        except (BadSignature, SignatureExpired):
            return None


_session_signer: SessionSigner | None = None


def get_session_signer() -> SessionSigner:
    """Get or create the session signer."""
    global _session_signer
    if _session_signer is None:
        _session_signer = SessionSigner()
    return _session_signer


class SessionStore(ABC):
    """Abstract session store."""

    @abstractmethod
    async def get(self, session_id: str) -> dict[str, Any] | None:
        """Get session data."""
        ...

    @abstractmethod
    async def set(self, session_id: str, data: dict[str, Any], ttl: int | None = None) -> None:
        """Set session data."""
        ...

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        """Delete session."""
        ...

    async def exists(self, session_id: str) -> bool:
        """Check if session exists."""
        return await self.get(session_id) is not None

    def create_session_id(self, signed: bool = True) -> str:
        """
        Create a new session ID.

        Args:
            signed: If True, return a signed session token

        Returns:
            A new session ID (signed or unsigned based on parameter)
        """
        session_id = str(uuid4())
        if signed:
            return get_session_signer().sign(session_id)
        return session_id


class InMemorySessionStore(SessionStore):
    """In-memory session store for local development and tests."""

    def __init__(self) -> None:
        self._sessions: dict[str, tuple[str, datetime]] = {}

    async def get(self, session_id: str) -> dict[str, Any] | None:
        if session_id not in self._sessions:
            return None

        raw, expiry = self._sessions[session_id]
        if expiry < datetime.now():
            await self.delete(session_id)
            return None

        # Stored as JSON so callers never share mutable state with the store
        return json.loads(raw)

    async def set(
        self,
        session_id: str,
        data: dict[str, Any],
        ttl: int | None = None,
    ) -> None:
        ttl = ttl or config.session_ttl
        expiry = datetime.now() + timedelta(seconds=ttl)
        self._sessions[session_id] = (json.dumps(data), expiry)

    async def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    async def cleanup_expired(self) -> int:
        """Remove expired sessions."""
        now = datetime.now()
        expired = [sid for sid, (_, expiry) in self._sessions.items() if expiry < now]
        for sid in expired:
            del self._sessions[sid]
        return len(expired)


class RedisSessionStore(SessionStore):
    """Redis-backed session store."""

    def __init__(self, redis_client: redis.Redis, prefix: str = "voidjack:session:") -> None:
        self._redis = redis_client
        self._prefix = prefix

    def _key(self, session_id: str) -> str:
        return f"{self._prefix}{session_id}"

    async def get(self, session_id: str) -> dict[str, Any] | None:
        data = await self._redis.get(self._key(session_id))
        if data is None:
            return None
        return json.loads(data)

    async def set(
        self,
        session_id: str,
        data: dict[str, Any],
        ttl: int | None = None,
    ) -> None:
        ttl = ttl or config.session_ttl
        await self._redis.setex(self._key(session_id), ttl, json.dumps(data))

    async def delete(self, session_id: str) -> None:
        await self._redis.delete(self._key(session_id))

    async def exists(self, session_id: str) -> bool:
        return await self._redis.exists(self._key(session_id)) > 0


_session_store: SessionStore | None = None


async def get_session_store() -> SessionStore:
    """Get or create the session store, falling back to memory without Redis."""
    global _session_store

    if _session_store is not None:
        return _session_store

    redis_client = redis.from_url(config.redis.url)
    try:
        await redis_client.ping()
    except (RedisError, OSError) as e:
        logger.warning("Redis unavailable at %s (%s), using in-memory sessions", config.redis.url, e)
        _session_store = InMemorySessionStore()
    else:
        _session_store = RedisSessionStore(redis_client)
    return _session_store


def reset_session_store(store: SessionStore | None = None) -> None:
    """Replace the global store, e.g. with a fresh in-memory one in tests."""
    global _session_store
    _session_store = store


async def create_session(data: dict[str, Any] | None = None) -> str:
    """Create a new session."""
    store = await get_session_store()
    session_id = store.create_session_id()
    now = int(time.time())
    await store.set(session_id, data or {"created_at": now, "last_activity": now})
    return session_id


async def load_snapshots(session_id: str) -> tuple[dict[str, Any] | None, dict[str, Any] | None]:
    """
    Load the run and meta snapshots of a session.

    A malformed session envelope is logged and treated as empty.

    Returns:
        (run snapshot or None, meta snapshot or None)
    """
    store = await get_session_store()
    raw = await store.get(session_id)
    if not raw:
        return None, None
    try:
        data = SessionData.model_validate(raw)
    except ValidationError as e:
        logger.warning("Discarding malformed session %s: %s", session_id, e)
        return None, None
    return data.run, data.meta


async def save_snapshots(
    session_id: str,
    run: dict[str, Any] | None,
    meta: dict[str, Any],
) -> None:
    """Store the run and meta snapshots; a None run removes the run key."""
    store = await get_session_store()
    now = int(time.time())
    existing = await store.get(session_id) or {}
    data = SessionData(
        run=run,
        meta=meta,
        created_at=existing.get("created_at", now),
        last_activity=now,
    )
    await store.set(session_id, data.model_dump(exclude_none=True))


def extract_session_id(token: str) -> str | None:
    """
    Extract the raw session ID from a signed token.

    Args:
        token: The signed session token

    Returns:
        The raw session ID if valid, None otherwise
    """
    return get_session_signer().unsign(token)
