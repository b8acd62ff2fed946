"""Session store backends: in-memory and Redis (mocked client)."""

import json
from unittest.mock import MagicMock, patch

import pytest

from collabora_api.auth.session_store import (
    InMemorySessionStore,
    RedisSessionStore,
    SessionData,
    build_session_store,
    new_session_id,
)
from collabora_api.config.env import get_redis_settings
from collabora_api.db.redis_client import build_redis_client


def _session(session_id: str = "sid-1", **kwargs) -> SessionData:
    return SessionData(session_id=session_id, created_at=100.0, last_activity=100.0, **kwargs)


def test_new_session_ids_are_unique_and_opaque() -> None:
    ids = {new_session_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(len(sid) >= 40 for sid in ids)


def test_session_data_from_dict_ignores_unknown_keys() -> None:
    data = SessionData.from_dict(
        {"session_id": "abc", "created_at": 1.0, "last_activity": 2.0, "user_id": 7, "legacy_field": "x"}
    )
    assert data.user_id == 7
    assert data.is_authenticated


class TestInMemorySessionStore:
    def test_save_and_load(self, clock) -> None:
        store = InMemorySessionStore(clock=clock)
        store.save(_session(user_id=1, current_tenant_id=5), ttl=60)

        loaded = store.load("sid-1")
        assert loaded is not None
        assert loaded.user_id == 1
        assert loaded.current_tenant_id == 5

    def test_loaded_record_is_a_copy(self, clock) -> None:
        store = InMemorySessionStore(clock=clock)
        store.save(_session(user_id=1), ttl=60)

        loaded = store.load("sid-1")
        loaded.user_id = 99
        assert store.load("sid-1").user_id == 1

    def test_record_expires_after_ttl(self, clock) -> None:
        store = InMemorySessionStore(clock=clock)
        store.save(_session(), ttl=60)

        clock.advance(61)
        assert store.load("sid-1") is None
        assert len(store) == 0

    def test_delete_is_idempotent(self, clock) -> None:
        store = InMemorySessionStore(clock=clock)
        store.save(_session(), ttl=60)
        store.delete("sid-1")
        store.delete("sid-1")
        assert store.load("sid-1") is None

    def test_abandoned_records_are_swept_on_save(self, clock) -> None:
        store = InMemorySessionStore(clock=clock, sweep_every=3)
        store.save(_session("abandoned-1"), ttl=10)
        store.save(_session("abandoned-2"), ttl=10)
        clock.advance(11)

        store.save(_session("live"), ttl=60)

        assert len(store) == 1
        assert store.load("live") is not None

    def test_purge_expired(self, clock) -> None:
        store = InMemorySessionStore(clock=clock)
        store.save(_session("short"), ttl=10)
        store.save(_session("long"), ttl=60)
        clock.advance(11)

        assert store.purge_expired() == 1
        assert len(store) == 1
        assert store.purge_expired() == 0


class TestRedisSessionStore:
    def test_save_uses_prefixed_key_and_expiry(self) -> None:
        redis = MagicMock()
        store = RedisSessionStore(redis)

        store.save(_session(user_id=3), ttl=3600)

        key, value = redis.set.call_args.args
        assert key == "collabora:session:sid-1"
        assert json.loads(value)["user_id"] == 3
        assert redis.set.call_args.kwargs["ex"] == 3600

    def test_load_decodes_json(self) -> None:
        redis = MagicMock()
        redis.get.return_value = json.dumps(_session(user_id=4, role="admin").to_dict())
        store = RedisSessionStore(redis)

        loaded = store.load("sid-1")
        assert loaded.user_id == 4
        assert loaded.role == "admin"
        redis.get.assert_called_once_with("collabora:session:sid-1")

    def test_load_missing_returns_none(self) -> None:
        redis = MagicMock()
        redis.get.return_value = None
        assert RedisSessionStore(redis).load("nope") is None

    def test_corrupt_record_is_discarded(self) -> None:
        redis = MagicMock()
        redis.get.return_value = "{not json"
        store = RedisSessionStore(redis)

        assert store.load("sid-1") is None
        redis.delete.assert_called_once_with("collabora:session:sid-1")

    def test_ping_delegates_to_client(self) -> None:
        redis = MagicMock()
        redis.ping.return_value = True
        assert RedisSessionStore(redis).ping() is True


class TestBuildSessionStore:
    def test_memory_backend(self, monkeypatch) -> None:
        monkeypatch.setenv("COLLABORA_ENV", "local")
        monkeypatch.setenv("SESSION_BACKEND", "memory")
        assert isinstance(build_session_store(), InMemorySessionStore)

    def test_redis_backend_uses_configured_prefix(self, monkeypatch) -> None:
        monkeypatch.setenv("SESSION_BACKEND", "redis")
        monkeypatch.setenv("SESSION_REDIS_PREFIX", "tenant-a:sess:")
        client = MagicMock()
        with patch("collabora_api.auth.session_store.RedisClient.get_client", return_value=client):
            store = build_session_store()

        assert isinstance(store, RedisSessionStore)
        assert store.redis is client
        assert store.prefix == "tenant-a:sess:"

    def test_memory_backend_refused_in_production(self, monkeypatch) -> None:
        monkeypatch.setenv("COLLABORA_ENV", "prod")
        monkeypatch.setenv("SESSION_BACKEND", "memory")
        with pytest.raises(RuntimeError, match="SESSION_BACKEND=memory"):
            build_session_store()

    def test_unknown_backend(self, monkeypatch) -> None:
        monkeypatch.setenv("SESSION_BACKEND", "memcached")
        with pytest.raises(ValueError):
            build_session_store()


class TestRedisSettings:
    def test_session_url_overrides_shared_url(self, monkeypatch) -> None:
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
        monkeypatch.setenv("SESSION_REDIS_URL", "redis://sessions:6379/2")
        assert get_redis_settings().url == "redis://sessions:6379/2"

    def test_url_required_in_production(self, monkeypatch) -> None:
        monkeypatch.setenv("COLLABORA_ENV", "production")
        monkeypatch.delenv("REDIS_URL", raising=False)
        monkeypatch.delenv("SESSION_REDIS_URL", raising=False)
        with pytest.raises(RuntimeError, match="REDIS_URL"):
            get_redis_settings()

    def test_password_applied_only_when_url_has_none(self, monkeypatch) -> None:
        monkeypatch.delenv("SESSION_REDIS_URL", raising=False)
        monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
        monkeypatch.setenv("REDIS_PASSWORD", "from-env")
        with patch("collabora_api.db.redis_client.redis.from_url") as from_url:
            build_redis_client(get_redis_settings())
        assert from_url.call_args.kwargs["password"] == "from-env"
        assert from_url.call_args.kwargs["decode_responses"] is True

        monkeypatch.setenv("REDIS_URL", "redis://:in-url@localhost:6379/0")
        with patch("collabora_api.db.redis_client.redis.from_url") as from_url:
            build_redis_client(get_redis_settings())
        assert "password" not in from_url.call_args.kwargs
