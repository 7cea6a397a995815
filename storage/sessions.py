from __future__ import annotations  # Interview session stores

import logging
import threading
import weakref
from contextlib import contextmanager
from threading import RLock
from typing import Any, Dict, Iterator, List, Optional, Protocol

from redis.exceptions import LockError

from interview_flow.models import InterviewSessionState

from .migrate import migrate
from .sqlite import get_conn

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):  # Raised when an interview id is unknown
    def __init__(self, interview_id: str) -> None:
        super().__init__(interview_id)
        self.interview_id = interview_id

    def __str__(self) -> str:
        return f"interview not found: {self.interview_id}"


class SessionLockTimeout(RuntimeError):  # Raised when a per-interview lock cannot be taken
    pass


class SessionStore(Protocol):  # Session persistence interface
    def create(self, state: InterviewSessionState) -> None: ...

    def get(self, interview_id: str) -> InterviewSessionState: ...

    def save(self, state: InterviewSessionState) -> None: ...

    def delete(self, interview_id: str) -> None: ...

    def list_ids(self) -> List[str]: ...

    def lock(self, interview_id: str) -> Any: ...


class _KeyedLocks:  # One threading.Lock per interview id, dropped once nobody holds a reference
    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)


class InMemorySessionStore:  # Thread-safe in-memory store, lost on restart
    backend = "memory"

    def __init__(self) -> None:
        self._sessions: Dict[str, InterviewSessionState] = {}
        self._lock = RLock()
        self._keyed = _KeyedLocks()

    def create(self, state: InterviewSessionState) -> None:
        with self._lock:
            self._sessions[state.interview_id] = state.model_copy(deep=True)

    def get(self, interview_id: str) -> InterviewSessionState:
        with self._lock:
            stored = self._sessions.get(interview_id)
        if stored is None:
            raise SessionNotFoundError(interview_id)
        return stored.model_copy(deep=True)

    def save(self, state: InterviewSessionState) -> None:
        with self._lock:
            self._sessions[state.interview_id] = state.model_copy(deep=True)

    def delete(self, interview_id: str) -> None:
        with self._lock:
            self._sessions.pop(interview_id, None)

    def list_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    @contextmanager
    def lock(self, interview_id: str) -> Iterator[None]:
        with self._keyed.lock_for(interview_id):
            yield


class SqliteSessionStore:  # SQLite-backed store, survives restarts
    backend = "sqlite"

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._keyed = _KeyedLocks()
        migrate(db_path)

    def create(self, state: InterviewSessionState) -> None:
        with get_conn(self._db_path) as conn:
            conn.execute(
                """INSERT INTO interview_sessions (interview_id, phase, state_json, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    state.interview_id,
                    state.phase.value,
                    state.model_dump_json(),
                    state.created_at,
                    state.updated_at,
                ),
            )

    def get(self, interview_id: str) -> InterviewSessionState:
        with get_conn(self._db_path) as conn:
            row = conn.execute(
                "SELECT state_json FROM interview_sessions WHERE interview_id = ?",
                (interview_id,),
            ).fetchone()
        if row is None:
            raise SessionNotFoundError(interview_id)
        return InterviewSessionState.model_validate_json(row["state_json"])

    def save(self, state: InterviewSessionState) -> None:
        with get_conn(self._db_path) as conn:
            conn.execute(
                """INSERT INTO interview_sessions (interview_id, phase, state_json, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(interview_id) DO UPDATE SET
                     phase = excluded.phase,
                     state_json = excluded.state_json,
                     updated_at = excluded.updated_at""",
                (
                    state.interview_id,
                    state.phase.value,
                    state.model_dump_json(),
                    state.created_at,
                    state.updated_at,
                ),
            )

    def delete(self, interview_id: str) -> None:
        with get_conn(self._db_path) as conn:
            conn.execute("DELETE FROM interview_sessions WHERE interview_id = ?", (interview_id,))

    def list_ids(self) -> List[str]:
        with get_conn(self._db_path) as conn:
            rows = conn.execute(
                "SELECT interview_id FROM interview_sessions ORDER BY created_at DESC"
            ).fetchall()
        return [row["interview_id"] for row in rows]

    @contextmanager
    def lock(self, interview_id: str) -> Iterator[None]:
        with self._keyed.lock_for(interview_id):
            yield


class RedisSessionStore:  # Redis-backed store with TTL and a distributed lock
    backend = "redis"

    def __init__(
        self,
        client: Any,
        *,
        ttl_s: int = 86400,
        prefix: str = "interview:session:",
        lock_ttl_s: int = 300,
        lock_wait_s: float = 30.0,
    ) -> None:
        self._client = client
        self._ttl_s = ttl_s
        self._prefix = prefix
        self._lock_ttl_s = lock_ttl_s
        self._lock_wait_s = lock_wait_s

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisSessionStore":
        import redis

        return cls(redis.Redis.from_url(url, decode_responses=True), **kwargs)

    @property
    def lock_ttl_s(self) -> int:
        return self._lock_ttl_s

    def _key(self, interview_id: str) -> str:
        return f"{self._prefix}{interview_id}"

    def create(self, state: InterviewSessionState) -> None:
        self._client.setex(self._key(state.interview_id), self._ttl_s, state.model_dump_json())

    def get(self, interview_id: str) -> InterviewSessionState:
        raw = self._client.get(self._key(interview_id))
        if raw is None:
            raise SessionNotFoundError(interview_id)
        return InterviewSessionState.model_validate_json(raw)

    def save(self, state: InterviewSessionState) -> None:
        self._client.setex(self._key(state.interview_id), self._ttl_s, state.model_dump_json())

    def delete(self, interview_id: str) -> None:
        self._client.delete(self._key(interview_id))

    def list_ids(self) -> List[str]:
        ids: List[str] = []
        for key in self._client.scan_iter(match=f"{self._prefix}*"):
            text = key.decode("utf-8") if isinstance(key, bytes) else str(key)
            if text.startswith(f"{self._prefix}lock:"):
                continue
            ids.append(text[len(self._prefix):])
        return ids

    @contextmanager
    def lock(self, interview_id: str) -> Iterator[None]:
        lock = self._client.lock(
            f"{self._prefix}lock:{interview_id}",
            timeout=self._lock_ttl_s,
            blocking_timeout=self._lock_wait_s,
        )
        if not lock.acquire():
            raise SessionLockTimeout(f"could not lock interview {interview_id}")
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError:
                logger.warning("Lock for interview %s expired before release", interview_id)


def build_session_store(
    backend: str,
    *,
    db_path: str,
    redis_url: str,
    ttl_s: int,
    lock_ttl_s: Optional[int] = None,
) -> SessionStore:
    """Instantiate the configured backend.

    ``lock_ttl_s`` only applies to Redis, where the lock must outlive the
    slowest locked turn.
    """

    if backend == "sqlite":
        return SqliteSessionStore(db_path)
    if backend == "redis":
        extra: Dict[str, Any] = {} if lock_ttl_s is None else {"lock_ttl_s": lock_ttl_s}
        return RedisSessionStore.from_url(redis_url, ttl_s=ttl_s, **extra)
    if backend != "memory":
        raise ValueError(f"Unknown session backend: {backend}")
    return InMemorySessionStore()


__all__ = [
    "InMemorySessionStore",
    "RedisSessionStore",
    "SessionLockTimeout",
    "SessionNotFoundError",
    "SessionStore",
    "SqliteSessionStore",
    "build_session_store",
]
