"""
Tests unitarios para el ResultCache.
"""
from __future__ import annotations

import pytest

from content_sync.infrastructure.cache.result_cache import ResultCache, build_signature


class FakeClock:
    """Reloj manual para controlar el TTL."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> ResultCache:
    return ResultCache(ttl_seconds=60, max_entries=3, clock=clock)


class TestSignature:
    def test_argument_order_is_irrelevant(self) -> None:
        a = build_signature("posts", {"first": 10, "category": "noticias"})
        b = build_signature("posts", {"category": "noticias", "first": 10})

        assert a == b

    def test_null_arguments_are_dropped(self) -> None:
        assert build_signature("posts", {"first": 10, "after": None}) == build_signature("posts", {"first": 10})

    def test_operation_is_part_of_signature(self) -> None:
        assert build_signature("categories", {"first": 10}) != build_signature("tags", {"first": 10})


class TestGetPut:
    def test_miss_then_hit(self, cache: ResultCache) -> None:
        assert cache.get("k") is None

        cache.put("k", {"items": [1, 2]})

        assert cache.get("k") == {"items": [1, 2]}
        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1

    def test_returned_value_is_a_copy(self, cache: ResultCache) -> None:
        cache.put("k", {"items": [1]})
        cache.get("k")["items"].append(2)

        assert cache.get("k") == {"items": [1]}

    def test_entry_expires_after_ttl(self, cache: ResultCache, clock: FakeClock) -> None:
        cache.put("k", "valor")
        clock.advance(59)
        assert cache.get("k") == "valor"

        clock.advance(2)

        assert cache.get("k") is None
        assert cache.stats()["expirations"] == 1

    def test_custom_ttl(self, cache: ResultCache, clock: FakeClock) -> None:
        cache.put("k", "valor", ttl=5)
        clock.advance(6)

        assert cache.get("k") is None

    def test_lru_eviction(self, cache: ResultCache) -> None:
        cache.put("a", 1)
        cache.put("b", 2)
        cache.put("c", 3)
        cache.get("a")

        cache.put("d", 4)

        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert len(cache) == 3

    def test_disabled_cache_never_stores(self, clock: FakeClock) -> None:
        cache = ResultCache(enabled=False, clock=clock)

        assert cache.put("k", 1) is False
        assert cache.get("k") is None


class TestInvalidation:
    def test_invalidate_all_clears_entries(self, cache: ResultCache) -> None:
        cache.put("a", 1)
        cache.put("b", 2)

        assert cache.invalidate_all() == 2
        assert cache.get("a") is None
        assert cache.generation == 1

    def test_put_with_stale_generation_is_discarded(self, cache: ResultCache) -> None:
        generation = cache.generation
        cache.invalidate_all()

        stored = cache.put("k", "viejo", generation=generation)

        assert stored is False
        assert cache.get("k") is None
        assert cache.stats()["discarded_puts"] == 1

    def test_put_with_current_generation_is_kept(self, cache: ResultCache) -> None:
        assert cache.put("k", "nuevo", generation=cache.generation) is True
        assert cache.get("k") == "nuevo"
