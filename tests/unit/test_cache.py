"""Tests for the chunk result cache."""

from treepager.core.loading.cache import ChunkCache
from tests.unit.fakes import FakeClock, make_records

RECORDS = tuple(make_records(3))


def test_put_and_get() -> None:
    cache = ChunkCache(2, clock=FakeClock())
    assert cache.put(0, 100, RECORDS) == []
    assert cache.get(0, 100) == RECORDS
    assert (0, 100) in cache
    assert cache.get(100, 200) is None


def test_evicts_least_recently_accessed() -> None:
    clock = FakeClock()
    cache = ChunkCache(2, clock=clock)
    cache.put(0, 100, RECORDS)
    clock.advance(1)
    cache.put(100, 200, RECORDS)
    clock.advance(1)
    cache.get(0, 100)
    clock.advance(1)

    assert cache.put(200, 300, RECORDS) == [(100, 200)]
    assert len(cache) == 2
    assert (0, 100) in cache


def test_touch_refreshes_access_time() -> None:
    clock = FakeClock()
    cache = ChunkCache(2, clock=clock)
    cache.put(0, 100, RECORDS)
    clock.advance(1)
    cache.put(100, 200, RECORDS)
    clock.advance(1)
    cache.touch(0, 100)
    assert cache.put(200, 300, RECORDS) == [(100, 200)]


def test_ties_evict_in_insertion_order() -> None:
    cache = ChunkCache(1, clock=FakeClock())
    cache.put(0, 100, RECORDS)
    assert cache.put(100, 200, RECORDS) == [(0, 100)]


def test_zero_capacity_stores_nothing() -> None:
    cache = ChunkCache(0, clock=FakeClock())
    assert cache.put(0, 100, RECORDS) == []
    assert len(cache) == 0
    assert cache.get(0, 100) is None


def test_clear() -> None:
    cache = ChunkCache(3)
    cache.put(0, 100, RECORDS)
    cache.clear()
    assert len(cache) == 0
