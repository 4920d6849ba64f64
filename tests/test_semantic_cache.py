import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from neuroflow.domain.context.memory.cache_memory_store import KEY_PREFIX, KeyValueStore, SemanticCache


@pytest.mark.asyncio
async def test_get_after_put_until_ttl_elapses(cache, clock):
    assert await cache.put("break down: taxes", "task_decomposition", [{"step": "open"}], ttl=60)

    assert await cache.get("break down: taxes", "task_decomposition") == [{"step": "open"}]

    clock.advance(59.9)
    assert await cache.get("break down: taxes", "task_decomposition") == [{"step": "open"}]

    clock.advance(0.1)
    assert await cache.get("break down: taxes", "task_decomposition") is None


@pytest.mark.asyncio
async def test_keys_are_exact_bytes_and_tag_scoped(cache):
    await cache.put("hello", "communication_translation", {"translated_text": "Hi"})

    assert await cache.get("hello ", "communication_translation") is None
    assert await cache.get("Hello", "communication_translation") is None
    assert await cache.get("hello", "task_decomposition") is None


def test_derive_key_is_stable_sha256():
    key = SemanticCache.derive_key("prompt", "tag")
    assert key.startswith(f"{KEY_PREFIX}:")
    assert len(key.split(":", 1)[1]) == 64
    assert key == SemanticCache.derive_key("prompt", "tag")
    assert key != SemanticCache.derive_key("tag", "prompt")


@pytest.mark.asyncio
async def test_expiry_is_checked_even_if_store_keeps_the_key(clock):
    store = AsyncMock(spec=KeyValueStore)
    store.get.return_value = json.dumps({"value": "stale", "context_tag": "t", "expires_at": clock() - 1})
    cache = SemanticCache(store, clock=clock)

    assert await cache.get("p", "t") is None


@pytest.mark.asyncio
async def test_none_values_and_non_positive_ttl_are_not_stored(cache, kv_store):
    assert not await cache.put("p", "t", None)
    assert not await cache.put("p", "t", "v", ttl=0)
    assert kv_store.cache == {}


@pytest.mark.asyncio
async def test_backend_errors_degrade_to_miss(clock):
    store = AsyncMock(spec=KeyValueStore)
    store.get.side_effect = ConnectionError("redis down")
    store.set_with_ttl.side_effect = ConnectionError("redis down")
    cache = SemanticCache(store, clock=clock)

    assert await cache.get("p", "t") is None
    assert await cache.put("p", "t", "v") is False


@pytest.mark.asyncio
async def test_slow_backend_times_out_as_miss(clock):
    async def slow_get(key):
        await asyncio.sleep(1)
        return None

    store = AsyncMock(spec=KeyValueStore)
    store.get.side_effect = slow_get
    cache = SemanticCache(store, timeout=0.01, clock=clock)

    assert await cache.get("p", "t") is None


@pytest.mark.asyncio
async def test_corrupt_entry_is_a_miss(clock):
    store = AsyncMock(spec=KeyValueStore)
    store.get.return_value = "not json"
    cache = SemanticCache(store, clock=clock)

    assert await cache.get("p", "t") is None


@pytest.mark.asyncio
async def test_in_memory_store_clears_expired_entries(kv_store, clock):
    await kv_store.set_with_ttl("a", "1", 10)
    await kv_store.set_with_ttl("b", "2", 100)
    clock.advance(50)

    assert await kv_store.clear_expired() == 1
    assert await kv_store.get_stats() == {"total_keys": 1, "active_keys": 1, "expired_keys": 0}
