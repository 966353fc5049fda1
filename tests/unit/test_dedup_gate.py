import pytest

from app.features.mail_triage.services.dedup_gate import DedupGate
from app.services.infrastructure.kv_store import InMemoryTTLStore, RedisKeyValueStore
from app.services.redis_client import RedisStoreError


class BrokenStore:
    async def get(self, key):
        raise RedisStoreError("GET failed: connection refused", operation="get")

    async def put(self, key, value, ttl_seconds):
        raise RedisStoreError("SET failed: connection refused", operation="set")

    async def remove(self, key):
        raise RedisStoreError("DELETE failed: connection refused", operation="delete")


@pytest.mark.asyncio
async def test_mark_is_visible_within_ttl_and_gone_after(fake_clock):
    gate = DedupGate(InMemoryTTLStore(clock=fake_clock), ttl_seconds=21600)

    await gate.mark_as_processed("abc")
    assert await gate.is_already_processed("abc") is True

    fake_clock.advance(21599)
    assert await gate.is_already_processed("abc") is True

    fake_clock.advance(1)
    assert await gate.is_already_processed("abc") is False


@pytest.mark.asyncio
async def test_marking_again_refreshes_ttl(fake_clock):
    gate = DedupGate(InMemoryTTLStore(clock=fake_clock), ttl_seconds=100)

    await gate.mark_as_processed("abc")
    fake_clock.advance(90)
    await gate.mark_as_processed("abc")
    fake_clock.advance(90)

    assert await gate.is_already_processed("abc") is True


@pytest.mark.asyncio
async def test_unknown_message_is_not_processed(fake_clock):
    gate = DedupGate(InMemoryTTLStore(clock=fake_clock), ttl_seconds=60)

    assert await gate.is_already_processed("never-seen") is False


@pytest.mark.asyncio
async def test_clear_removes_mark(fake_clock):
    gate = DedupGate(InMemoryTTLStore(clock=fake_clock), ttl_seconds=60)

    await gate.mark_as_processed("abc")
    await gate.clear("abc")

    assert await gate.is_already_processed("abc") is False


@pytest.mark.asyncio
async def test_store_failures_fail_open():
    gate = DedupGate(BrokenStore(), ttl_seconds=60)

    assert await gate.is_already_processed("abc") is False
    await gate.mark_as_processed("abc")
    await gate.clear("abc")


@pytest.mark.asyncio
async def test_redis_store_uses_prefixed_key_and_ttl(fake_redis):
    gate = DedupGate(RedisKeyValueStore(fake_redis), ttl_seconds=604800)

    await gate.mark_as_processed("18c2f")

    assert fake_redis.store == {"processed_18c2f": "1"}
    assert fake_redis.ttls["processed_18c2f"] == 604800
    assert await gate.is_already_processed("18c2f") is True


def test_ttl_must_be_positive():
    with pytest.raises(ValueError):
        DedupGate(InMemoryTTLStore(), ttl_seconds=0)


@pytest.mark.asyncio
async def test_in_memory_sweep_drops_expired_keys(fake_clock):
    store = InMemoryTTLStore(clock=fake_clock)
    await store.put("a", "1", 10)
    await store.put("b", "1", 100)

    fake_clock.advance(50)

    assert store.sweep() == 1
    assert len(store) == 1
    assert await store.get("b") == "1"
