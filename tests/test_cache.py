from __future__ import annotations

import pytest

from bidlink_tracker.cache import MISS, ReadCache
from bidlink_tracker.models import JobLinkEntry

ENTRIES = [
    JobLinkEntry(url="https://example.com/1", partition_name="tab", row_index=2),
    JobLinkEntry(url="https://example.com/2", partition_name="tab", row_index=3),
]


def test_cache_hit_scope_miss_and_expiry(clock) -> None:
    cache = ReadCache(ttl=300, clock=clock)
    cache.put("s1", "p1", ENTRIES)

    clock.advance(299)
    assert cache.get("s1", "p1") == ENTRIES
    assert cache.get("s1", "p2") is MISS
    assert cache.get("s2", "p1") is MISS

    clock.advance(1)
    assert cache.get("s1", "p1") is MISS


def test_cache_empty_slot_is_miss(clock) -> None:
    cache = ReadCache(clock=clock)
    assert cache.get("s1", "p1") is MISS
    assert not MISS


def test_cache_put_evicts_previous_pair(clock) -> None:
    cache = ReadCache(clock=clock)
    cache.put("s1", "p1", ENTRIES)
    cache.put("s1", "p2", ENTRIES[:1])
    assert cache.get("s1", "p1") is MISS
    assert cache.get("s1", "p2") == ENTRIES[:1]


def test_cache_put_resets_age(clock) -> None:
    cache = ReadCache(ttl=10, clock=clock)
    cache.put("s1", "p1", ENTRIES)
    clock.advance(8)
    cache.put("s1", "p1", ENTRIES[:1])
    clock.advance(8)
    assert cache.get("s1", "p1") == ENTRIES[:1]


def test_cache_keeps_empty_result_distinct_from_miss(clock) -> None:
    cache = ReadCache(clock=clock)
    cache.put("s1", "p1", [])
    assert cache.get("s1", "p1") == []
    assert cache.get("s1", "p1") is not MISS


def test_cache_invalidate_clears_slot(clock) -> None:
    cache = ReadCache(clock=clock)
    cache.put("s1", "p1", ENTRIES)
    cache.invalidate()
    assert cache.current is None
    assert cache.get("s1", "p1") is MISS


def test_switch_scope_only_invalidates_on_change(clock) -> None:
    cache = ReadCache(clock=clock)
    cache.put("s1", "p1", ENTRIES)
    cache.switch_scope("s1", "p1")
    assert cache.get("s1", "p1") == ENTRIES

    cache.switch_scope("s2", "p1")
    assert cache.current is None


def test_cache_rejects_non_positive_ttl() -> None:
    with pytest.raises(ValueError):
        ReadCache(ttl=0)
