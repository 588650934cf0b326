"""Tests for the per-session credential stores."""
import pytest

from storybridge.credentials.store import InMemoryCredentialStore, RedisCredentialStore


class _FakeRedis:
    def __init__(self):
        self.data = {}
        self.expiry = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value.encode()
        self.expiry[key] = ex

    async def delete(self, key):
        self.data.pop(key, None)

    async def ping(self):
        return True


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_put_get_delete(self):
        store = InMemoryCredentialStore()
        assert await store.get("s1") is None
        await store.put("s1", "key-1")
        assert await store.get("s1") == "key-1"
        await store.delete("s1")
        assert await store.get("s1") is None

    @pytest.mark.asyncio
    async def test_sessions_isolated(self):
        store = InMemoryCredentialStore()
        await store.put("s1", "key-1")
        await store.put("s2", "key-2")
        assert await store.get("s1") == "key-1"
        assert await store.get("s2") == "key-2"

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self):
        await InMemoryCredentialStore().delete("never-set")


class TestRedisStore:
    @pytest.mark.asyncio
    async def test_roundtrip_with_ttl(self):
        redis = _FakeRedis()
        store = RedisCredentialStore(redis, ttl_s=3600)
        await store.put("session-abc", "key-1")
        assert await store.get("session-abc") == "key-1"
        (key,) = redis.data.keys()
        assert redis.expiry[key] == 3600

    @pytest.mark.asyncio
    async def test_session_id_not_in_key(self):
        redis = _FakeRedis()
        store = RedisCredentialStore(redis, ttl_s=60)
        await store.put("session-abc", "key-1")
        (key,) = redis.data.keys()
        assert key.startswith("storybridge:cred:")
        assert "session-abc" not in key

    @pytest.mark.asyncio
    async def test_delete(self):
        redis = _FakeRedis()
        store = RedisCredentialStore(redis, ttl_s=60)
        await store.put("s", "k")
        await store.delete("s")
        assert await store.get("s") is None

    @pytest.mark.asyncio
    async def test_ping(self):
        assert await RedisCredentialStore(_FakeRedis(), ttl_s=60).ping() is True
