from __future__ import annotations

import gc
import threading
import time
import uuid

import pytest
from redis.exceptions import LockNotOwnedError

from config.settings import Settings
from interview_flow.models import InterviewSessionState, Phase
from services.sessions import llm_turn_budget_s, session_store_from_settings
from storage.sessions import (
    InMemorySessionStore,
    RedisSessionStore,
    SessionLockTimeout,
    SessionNotFoundError,
    SqliteSessionStore,
    build_session_store,
)


class FakeLock:
    """Token lock with the acquire/release contract of redis.lock.Lock."""

    def __init__(self, client, name, timeout, blocking_timeout):
        self.client = client
        self.name = name
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout
        self.token = uuid.uuid4().hex

    def acquire(self):
        deadline = time.monotonic() + self.blocking_timeout
        while not self.client.set(self.name, self.token, nx=True, ex=self.timeout):
            if time.monotonic() >= deadline:
                return False
            time.sleep(0.01)
        return True

    def release(self):
        if self.client.data.get(self.name) != self.token:
            raise LockNotOwnedError("lock expired")
        self.client.delete(self.name)


class FakeRedis:
    """Just enough of the redis-py client for the session store."""

    def __init__(self):
        self.data = {}
        self.ttls = {}
        self.locks_requested = []

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.data:
            return None
        self.data[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0

    def scan_iter(self, match=None):
        prefix = (match or "*").rstrip("*")
        return [key for key in list(self.data) if key.startswith(prefix)]

    def lock(self, name, timeout=None, blocking_timeout=None):
        self.locks_requested.append((name, timeout))
        return FakeLock(self, name, timeout, blocking_timeout)


@pytest.fixture(params=["memory", "sqlite", "redis"])
def store(request, tmp_db):
    if request.param == "memory":
        return InMemorySessionStore()
    if request.param == "sqlite":
        return SqliteSessionStore(tmp_db)
    return RedisSessionStore(FakeRedis(), ttl_s=600, lock_wait_s=0.2)


def test_create_get_save_delete(store):
    state = InterviewSessionState(interview_id="interview_a")
    state.append("assistant", "Welcome to the interview.", "welcome")
    store.create(state)

    loaded = store.get("interview_a")
    assert loaded.messages[0].content == "Welcome to the interview."
    assert loaded.phase == Phase.WELCOME

    loaded.phase = Phase.EXPLANATION
    loaded.phase_history.append(Phase.EXPLANATION)
    store.save(loaded)
    assert store.get("interview_a").phase_history == [Phase.WELCOME, Phase.EXPLANATION]
    assert store.list_ids() == ["interview_a"]

    store.delete("interview_a")
    with pytest.raises(SessionNotFoundError):
        store.get("interview_a")


def test_get_returns_independent_copy(store):
    store.create(InterviewSessionState(interview_id="interview_b"))
    loaded = store.get("interview_b")
    loaded.question_count = 3
    assert store.get("interview_b").question_count == 0


def test_locks_for_different_keys_are_independent(store):
    with store.lock("one"):
        with store.lock("two"):
            pass


def test_memory_lock_serializes_same_key():
    store = InMemorySessionStore()
    store.create(InterviewSessionState(interview_id="interview_c"))
    barrier = threading.Barrier(4)

    def bump():
        barrier.wait()
        for _ in range(25):
            with store.lock("interview_c"):
                state = store.get("interview_c")
                state.question_count += 1
                store.save(state)

    threads = [threading.Thread(target=bump) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert store.get("interview_c").question_count == 100


def test_sqlite_store_survives_reinstantiation(tmp_db):
    SqliteSessionStore(tmp_db).create(InterviewSessionState(interview_id="interview_d", question_count=2))
    assert SqliteSessionStore(tmp_db).get("interview_d").question_count == 2


def test_redis_store_uses_ttl_and_releases_lock():
    client = FakeRedis()
    store = RedisSessionStore(client, ttl_s=900)
    store.create(InterviewSessionState(interview_id="interview_e"))
    assert client.ttls["interview:session:interview_e"] == 900
    with store.lock("interview_e"):
        assert "interview:session:lock:interview_e" in client.data
    assert "interview:session:lock:interview_e" not in client.data


def test_redis_lock_times_out_when_held():
    client = FakeRedis()
    client.data["interview:session:lock:interview_f"] = "someone-else"
    store = RedisSessionStore(client, lock_wait_s=0.1)
    with pytest.raises(SessionLockTimeout):
        with store.lock("interview_f"):
            pass


def test_build_session_store_selects_backend(tmp_db):
    assert isinstance(build_session_store("memory", db_path=tmp_db, redis_url="", ttl_s=60), InMemorySessionStore)
    assert isinstance(build_session_store("sqlite", db_path=tmp_db, redis_url="", ttl_s=60), SqliteSessionStore)
    with pytest.raises(ValueError):
        build_session_store("mongo", db_path=tmp_db, redis_url="", ttl_s=60)


def test_redis_lock_expiry_is_logged_not_raised(caplog):
    client = FakeRedis()
    store = RedisSessionStore(client, lock_ttl_s=5)
    with store.lock("interview_g"):
        client.data["interview:session:lock:interview_g"] = "taken-over"
    assert client.locks_requested == [("interview:session:lock:interview_g", 5)]
    assert "expired before release" in caplog.text


@pytest.mark.parametrize("timeout_s,attempts", [(60.0, 3), (120.0, 5)])
def test_redis_lock_outlives_slowest_model_turn(tmp_db, timeout_s, attempts):
    settings = Settings(
        _env_file=None,
        SESSION_BACKEND="redis",
        DB_PATH=tmp_db,
        LLM_TIMEOUT_S=timeout_s,
        LLM_MAX_ATTEMPTS=attempts,
        LLM_RETRY_BACKOFF_S=1.0,
    )
    store = session_store_from_settings(settings)
    assert isinstance(store, RedisSessionStore)
    assert store.lock_ttl_s > llm_turn_budget_s(settings)
    assert llm_turn_budget_s(settings) == attempts * timeout_s + (attempts - 1) * 1.0


@pytest.mark.parametrize("factory", [InMemorySessionStore, SqliteSessionStore])
def test_idle_interview_locks_are_released(factory, tmp_db):
    store = factory(tmp_db) if factory is SqliteSessionStore else factory()
    for n in range(20):
        with store.lock(f"interview_{n}"):
            assert len(store._keyed) >= 1
    gc.collect()
    assert len(store._keyed) == 0
