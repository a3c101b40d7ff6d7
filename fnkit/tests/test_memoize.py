"""Tests for memoize.py - cache strategies and key functions."""

import gc
from dataclasses import dataclass
from unittest.mock import MagicMock

import pytest

from fnkit.core.errors import ConfigValidationError
from fnkit.core.memoize import (
    LRUCache,
    Memoized,
    create_clearable_memoize,
    hash_key,
    json_key,
    memoize,
    repr_key,
)


class Clock:
    """Settable millisecond clock."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class Owner:
    """Weak-referenceable argument."""

    def __init__(self, name):
        self.name = name


@dataclass(frozen=True)
class Point:
    """Owner with value equality."""

    x: int


class TestKeyFunctions:
    """Key derivation strategies."""

    def test_json_key_sorts_kwargs(self):
        """Keyword order should not change the key."""
        assert json_key((1,), {"a": 1, "b": 2}) == json_key((1,), {"b": 2, "a": 1})

    def test_json_key_distinguishes_types(self):
        """1 and "1" are different inputs."""
        assert json_key((1,), {}) != json_key(("1",), {})

    def test_json_key_unencodable_falls_back_to_repr(self):
        """Objects JSON can't encode should still produce a key."""
        assert "object" in json_key((object,), {})

    def test_repr_key(self):
        """repr_key should be stable for equal inputs."""
        assert repr_key((1, "x"), {"k": 2}) == repr_key((1, "x"), {"k": 2})

    def test_json_key_mixed_dict_keys(self):
        """Dicts with keys of different types should still produce a key."""
        assert json_key(({1: "a", "b": 2},), {}) == json_key(({"b": 2, 1: "a"},), {})

    def test_json_key_keeps_container_types(self):
        """Lists vs tuples and int vs str dict keys should not collide."""
        assert json_key(([1, 2],), {}) != json_key(((1, 2),), {})
        assert json_key(({1: "a"},), {}) != json_key(({"1": "a"},), {})
        assert json_key(({1, 2},), {}) != json_key(([1, 2],), {})

    def test_json_key_sets_order_independent(self):
        """Set iteration order should not change the key."""
        assert json_key(({"b", "a", 3},), {}) == json_key(({3, "a", "b"},), {})

    def test_hash_key_plain_args(self):
        """hash_key without kwargs should be the args tuple."""
        assert hash_key((1, 2), {}) == (1, 2)
        assert hash_key((1,), {"a": 1}) == ((1,), (("a", 1),))


class TestLRUCache:
    """Tests for LRUCache."""

    def test_evicts_least_recently_used(self):
        """Oldest untouched entry should go first."""
        cache = LRUCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        assert "a" in cache
        assert "b" not in cache
        assert len(cache) == 2

    def test_ttl_expiry(self):
        """Entries older than ttl should be dropped on read."""
        clock = Clock()
        cache = LRUCache(max_size=10, ttl_ms=100, clock=clock)
        cache.set("a", 1)
        clock.now = 100
        assert cache.get("a") == 1
        clock.now = 101
        assert "a" in cache
        cache.get("a")
        assert "a" not in cache

    def test_overwrite_does_not_evict(self):
        """Re-setting an existing key should not evict another."""
        cache = LRUCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 3)
        assert len(cache) == 2
        assert cache.get("a") == 3


class TestMemoize:
    """Tests for memoize()."""

    def test_caches_results(self):
        """Second call with same args should hit the cache."""
        fn = MagicMock(side_effect=lambda x: x * 2)
        memoized = memoize(fn)
        assert memoized(2) == 4
        assert memoized(2) == 4
        fn.assert_called_once_with(2)

    def test_decorator_forms(self):
        """Bare and configured decorators should both work."""

        @memoize
        def square(x):
            return x * x

        @memoize(max_size=1)
        def cube(x):
            return x**3

        assert isinstance(square, Memoized)
        assert square.__name__ == "square"
        assert square(3) == 9
        assert cube(2) == 8

    def test_max_size_eviction(self):
        """Cache should not grow beyond max_size."""
        fn = MagicMock(side_effect=lambda x: x)
        memoized = memoize(fn, max_size=2)
        memoized(1)
        memoized(2)
        memoized(3)
        assert memoized.cache_size() == 2
        memoized(1)
        assert fn.call_count == 4

    def test_ttl_recomputes(self):
        """Expired entries should be recomputed."""
        clock = Clock()
        fn = MagicMock(side_effect=lambda x: x)
        memoized = memoize(fn, strategy="ttl", ttl_ms=50, clock=clock)
        memoized(1)
        clock.now = 40
        memoized(1)
        clock.now = 100
        memoized(1)
        assert fn.call_count == 2

    def test_custom_key(self):
        """A custom key function should control cache identity."""
        fn = MagicMock(side_effect=lambda user: user["name"])
        memoized = memoize(fn, key=lambda args, kwargs: args[0]["id"])
        assert memoized({"id": 1, "name": "a"}) == "a"
        assert memoized({"id": 1, "name": "changed"}) == "a"
        assert fn.call_count == 1

    def test_exceptions_not_cached(self):
        """Failed calls should be retried on the next call."""
        fn = MagicMock(side_effect=[ValueError("x"), 5])
        memoized = memoize(fn)
        with pytest.raises(ValueError):
            memoized(1)
        assert memoized(1) == 5
        assert memoized.cache_size() == 1

    def test_cache_info(self):
        """cache_info should report hits and misses."""
        memoized = memoize(lambda x: x, max_size=5)
        memoized(1)
        memoized(1)
        memoized(2)
        info = memoized.cache_info()
        assert (info.hits, info.misses, info.size, info.max_size) == (1, 2, 2, 5)

    def test_cache_clear(self):
        """cache_clear should empty the cache and reset stats."""
        fn = MagicMock(return_value=1)
        memoized = memoize(fn)
        memoized(1)
        memoized.cache_clear()
        memoized(1)
        assert fn.call_count == 2
        assert memoized.cache_info().misses == 1

    def test_mixed_key_dict_argument(self):
        """A dict argument with mixed key types should be cached, not crash."""
        fn = MagicMock(side_effect=len)
        memoized = memoize(fn)
        assert memoized({1: "a", "b": 2}) == 2
        assert memoized({"b": 2, 1: "a"}) == 2
        assert fn.call_count == 1

    def test_list_and_tuple_cached_separately(self):
        """Equal-looking inputs of different types should not share entries."""
        memoized = memoize(lambda value: type(value).__name__)
        assert memoized([1, 2]) == "list"
        assert memoized((1, 2)) == "tuple"
        assert memoized({1: "a"}) == "dict"
        assert memoized.cache_size() == 3

    def test_int_and_str_dict_keys_cached_separately(self):
        """{1: x} and {"1": x} are different inputs."""
        memoized = memoize(lambda d: next(iter(d)))
        assert memoized({1: "a"}) == 1
        assert memoized({"1": "a"}) == "1"

    def test_invalid_options(self):
        """Bad sizes and strategies should fail validation."""
        with pytest.raises(ConfigValidationError):
            memoize(lambda: None, max_size=0)
        with pytest.raises(ConfigValidationError):
            memoize(lambda: None, strategy="fifo")


class TestWeakMemoize:
    """Object-identity scoped caching."""

    def test_scoped_per_object(self):
        """Equal remaining args on different owners should not collide."""
        fn = MagicMock(side_effect=lambda owner, x: f"{owner.name}:{x}")
        memoized = memoize(fn, strategy="weak")
        a, b = Owner("a"), Owner("b")
        assert memoized(a, 1) == "a:1"
        assert memoized(b, 1) == "b:1"
        assert memoized(a, 1) == "a:1"
        assert fn.call_count == 2

    def test_entries_released_with_owner(self):
        """Entries should disappear once the owner is collected."""
        memoized = memoize(lambda owner, x: x, strategy="weak")
        owner = Owner("temp")
        memoized(owner, 1)
        memoized(owner, 2)
        assert memoized.cache_size() == 2
        del owner
        gc.collect()
        assert memoized.cache_size() == 0

    def test_equal_owners_scoped_by_identity(self):
        """Distinct owners that compare equal should get separate caches."""
        memoized = memoize(lambda owner, x: id(owner), strategy="weak")
        a, b = Point(1), Point(1)
        assert a == b
        assert memoized(a, 0) == id(a)
        assert memoized(b, 0) == id(b)
        assert memoized.cache_size() == 2

    def test_equal_owner_survives_other_collection(self):
        """Collecting one owner should not drop an equal live owner's entries."""
        calls = []

        def record(owner, x):
            calls.append(x)
            return x

        memoized = memoize(record, strategy="weak")
        a, b = Point(1), Point(1)
        memoized(a, 5)
        memoized(b, 5)
        del a
        gc.collect()
        assert memoized.cache_size() == 1
        memoized(b, 5)
        assert len(calls) == 2

    def test_cache_clear_releases_scopes(self):
        """cache_clear should drop owner scopes; later calls recompute."""
        fn = MagicMock(side_effect=lambda owner, x: x)
        memoized = memoize(fn, strategy="weak")
        owner = Owner("a")
        memoized(owner, 1)
        memoized.cache_clear()
        assert memoized.cache_size() == 0
        memoized(owner, 1)
        assert fn.call_count == 2
        assert memoized.cache_size() == 1

    def test_non_weakrefable_falls_back(self):
        """Plain values as first argument should use the regular cache."""
        fn = MagicMock(side_effect=lambda x, y: x + y)
        memoized = memoize(fn, strategy="weak")
        assert memoized(1, 2) == 3
        assert memoized(1, 2) == 3
        fn.assert_called_once_with(1, 2)


class TestClearableMemoize:
    def test_clear_and_size(self):
        """Clearable wrapper should expose size() and clear()."""
        handle = create_clearable_memoize(lambda x: x + 1, max_size=3)
        handle.memoized(1)
        handle.memoized(2)
        assert handle.size() == 2
        handle.clear()
        assert handle.size() == 0
