"""Server-side session storage.

Key: session id (opaque, random, carried in the session cookie)
Value: SessionData, serialized as JSON
Retention: absolute session lifetime (Redis EX)

Writes are last-writer-wins; two tabs of the same browser share one record.
"""

import json
import logging
import secrets
import threading
import time
from dataclasses import asdict, dataclass, fields
from typing import Any, Optional, Protocol

from redis import Redis

from collabora_api.config.env import get_redis_settings, get_session_backend
from collabora_api.db.redis_client import RedisClient

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    """Generate an unguessable session id (256 bits, URL-safe)."""
    return secrets.token_urlsafe(32)


@dataclass
class SessionData:
    """One server-side session record. user_id is None for anonymous sessions."""

    session_id: str
    created_at: float
    last_activity: float
    user_id: Optional[int] = None
    role: Optional[str] = None
    current_tenant_id: Optional[int] = None
    previous_tenant_id: Optional[int] = None
    csrf_token: Optional[str] = None
    csrf_token_created_at: Optional[float] = None
    login_time: Optional[float] = None
    last_regenerated_at: Optional[float] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionData":
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})


class SessionStore(Protocol):
    """Storage backend for SessionData."""

    def load(self, session_id: str) -> Optional[SessionData]: ...

    def save(self, data: SessionData, ttl: int) -> None: ...

    def delete(self, session_id: str) -> None: ...

    def ping(self) -> bool: ...


class InMemorySessionStore:
    """Process-local store for tests and single-process development.

    Expired records are dropped on load and swept every `sweep_every` saves,
    so abandoned sessions do not accumulate for the life of the process.
    """

    def __init__(self, clock=time.time, sweep_every: int = 100):
        self._clock = clock
        self._lock = threading.Lock()
        self._records: dict[str, tuple[float, dict[str, Any]]] = {}
        self._sweep_every = max(sweep_every, 1)
        self._saves_since_sweep = 0

    def load(self, session_id: str) -> Optional[SessionData]:
        with self._lock:
            entry = self._records.get(session_id)
            if entry is None:
                return None
            expires_at, payload = entry
            if expires_at <= self._clock():
                del self._records[session_id]
                return None
            return SessionData.from_dict(dict(payload))

    def save(self, data: SessionData, ttl: int) -> None:
        with self._lock:
            now = self._clock()
            self._records[data.session_id] = (now + ttl, data.to_dict())
            self._saves_since_sweep += 1
            if self._saves_since_sweep >= self._sweep_every:
                self._sweep(now)

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._records.pop(session_id, None)

    def purge_expired(self) -> int:
        """Drop every expired record and return how many were removed."""
        with self._lock:
            return self._sweep(self._clock())

    def _sweep(self, now: float) -> int:
        expired = [sid for sid, (expires_at, _) in self._records.items() if expires_at <= now]
        for sid in expired:
            del self._records[sid]
        self._saves_since_sweep = 0
        return len(expired)

    def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class RedisSessionStore:
    """Redis-backed store shared by all API workers."""

    def __init__(self, redis: Redis, prefix: str = "collabora:session:"):
        self.redis = redis
        self.prefix = prefix

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}{session_id}"

    def load(self, session_id: str) -> Optional[SessionData]:
        raw = self.redis.get(self._key(session_id))
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
        except ValueError:
            logger.warning(
                "Discarding unreadable session record",
                extra={"event": "session.store.corrupt"},
            )
            self.redis.delete(self._key(session_id))
            return None
        if not isinstance(payload, dict):
            return None
        return SessionData.from_dict(payload)

    def save(self, data: SessionData, ttl: int) -> None:
        self.redis.set(self._key(data.session_id), json.dumps(data.to_dict()), ex=max(ttl, 1))

    def delete(self, session_id: str) -> None:
        self.redis.delete(self._key(session_id))

    def ping(self) -> bool:
        return bool(self.redis.ping())


def build_session_store() -> SessionStore:
    """Create the store selected by SESSION_BACKEND."""
    backend = get_session_backend()
    if backend == "redis":
        logger.info("Using Redis session store", extra={"event": "session.store.selected", "backend": backend})
        return RedisSessionStore(RedisClient.get_client(), prefix=get_redis_settings().key_prefix)

    logger.info("Using in-memory session store", extra={"event": "session.store.selected", "backend": backend})
    return InMemorySessionStore()
