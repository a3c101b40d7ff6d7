"""Memoization with bounded, expiring and object-scoped caches.

Cache keys come from a pluggable key function ``key(args, kwargs)``. The
contract: same logical input, same key; distinct logical inputs, distinct
keys. Three strategies ship with the module:

- ``json_key`` (default): JSON of args/kwargs, container types tagged.
- ``repr_key``: ``repr`` of args and sorted kwargs.
- ``hash_key``: the args tuple itself (inputs must be hashable).

Cache strategies:

- ``lru``: bounded by ``max_size``, least recently used entry evicted first.
- ``ttl``: like ``lru`` but entries older than ``ttl_ms`` are recomputed.
- ``weak``: entries scoped to the first positional argument's identity and
  dropped when that object is garbage collected.
"""

import functools
import json
import logging
import threading
import time
import weakref
from collections import OrderedDict
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from fnkit.core.options import CacheStrategy, MemoizeOptions, build_options

logger = logging.getLogger(__name__)

R = TypeVar("R")

KeyFunc = Callable[[tuple, dict], Hashable]

_MISSING = object()


def _tagged(value: Any) -> Any:
    """Convert a value into JSON-encodable form that keeps container types.

    Lists, tuples, sets and dicts become ``[tag, payload]`` pairs so that
    ``[1, 2]`` and ``(1, 2)``, or ``{1: "a"}`` and ``{"1": "a"}``, stay
    distinct. Dict items and set members are ordered by their encoded form,
    which works across mixed key types.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, list):
        return ["list", [_tagged(v) for v in value]]
    if isinstance(value, tuple):
        return ["tuple", [_tagged(v) for v in value]]
    if isinstance(value, (set, frozenset)):
        members = [_tagged(v) for v in value]
        return ["set", sorted(members, key=_encode)]
    if isinstance(value, dict):
        items = [[_tagged(k), _tagged(v)] for k, v in value.items()]
        return ["dict", sorted(items, key=lambda item: _encode(item[0]))]
    return ["repr", type(value).__qualname__, repr(value)]


def _encode(tagged: Any) -> str:
    return json.dumps(tagged)


def json_key(args: tuple, kwargs: dict) -> str:
    """Serialize arguments to a JSON string.

    Container types are recorded alongside their contents. Objects JSON
    cannot encode are keyed on their type name and ``repr``.
    """
    return _encode([_tagged(args), _tagged(kwargs)])


def repr_key(args: tuple, kwargs: dict) -> str:
    """Key on ``repr`` of the arguments."""
    return repr((args, sorted(kwargs.items())))


def hash_key(args: tuple, kwargs: dict) -> Hashable:
    """Key on the argument values themselves."""
    if not kwargs:
        return args
    return (args, tuple(sorted(kwargs.items())))


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass(frozen=True)
class CacheInfo:
    """Cache statistics snapshot."""

    hits: int
    misses: int
    size: int
    max_size: int


class LRUCache:
    """Bounded mapping with least-recently-used eviction and optional TTL."""

    def __init__(
        self,
        max_size: int = 100,
        ttl_ms: float | None = None,
        clock: Callable[[], float] = _monotonic_ms,
    ):
        """Initialize cache.

        Args:
            max_size: Maximum number of entries.
            ttl_ms: Entry lifetime in milliseconds, or None for no expiry.
            clock: Millisecond time source.
        """
        self._max_size = max_size
        self._ttl = ttl_ms
        self._clock = clock
        self._entries: OrderedDict[Hashable, tuple[Any, float]] = OrderedDict()

    @property
    def max_size(self) -> int:
        return self._max_size

    def get(self, key: Hashable) -> Any:
        """Look up a key, refreshing its recency.

        Returns:
            Cached value, or the module's missing sentinel.
        """
        entry = self._entries.get(key, _MISSING)
        if entry is _MISSING:
            return _MISSING
        value, stored_at = entry
        if self._ttl is not None and self._clock() - stored_at > self._ttl:
            del self._entries[key]
            logger.debug("Expired cache entry %r", key)
            return _MISSING
        self._entries.move_to_end(key)
        return value

    def set(self, key: Hashable, value: Any) -> None:
        """Store a value, evicting the oldest entry when full."""
        if key in self._entries:
            self._entries.move_to_end(key)
        elif len(self._entries) >= self._max_size:
            oldest, _ = self._entries.popitem(last=False)
            logger.debug("Evicted cache entry %r", oldest)
        self._entries[key] = (value, self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries


class Memoized(Generic[R]):
    """Callable wrapper returned by ``memoize``.

    Exceptions raised by the wrapped function are not cached.
    """

    def __init__(
        self,
        func: Callable[..., R],
        options: MemoizeOptions,
        clock: Callable[[], float] = _monotonic_ms,
    ):
        self._func = func
        self._options = options
        self._key: KeyFunc = options.key or json_key
        self._clock = clock
        ttl = options.ttl_ms if options.strategy != "weak" else None
        self._cache = LRUCache(options.max_size, ttl, clock)
        # weak tier: sub-caches keyed by id(owner), dropped by finalizers
        self._scopes: dict[int, LRUCache] = {}
        self._finalizers: dict[int, weakref.finalize] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        functools.update_wrapper(self, func, updated=())

    @property
    def strategy(self) -> CacheStrategy:
        return self._options.strategy

    def _scope(self, args: tuple) -> tuple[LRUCache, tuple]:
        """Pick the cache an argument tuple belongs to.

        Returns:
            The cache and the args to derive the key from.
        """
        if self._options.strategy == "weak" and args:
            owner = args[0]
            owner_id = id(owner)
            sub = self._scopes.get(owner_id)
            if sub is None:
                try:
                    finalizer = weakref.finalize(owner, self._drop_scope, owner_id)
                except TypeError:
                    # not weak-referenceable: plain cache
                    return self._cache, args
                self._finalizers[owner_id] = finalizer
                sub = LRUCache(self._options.max_size, None, self._clock)
                self._scopes[owner_id] = sub
            return sub, args[1:]
        return self._cache, args

    def _drop_scope(self, owner_id: int) -> None:
        """Release an owner's sub-cache once the owner is collected."""
        self._scopes.pop(owner_id, None)
        self._finalizers.pop(owner_id, None)
        logger.debug("Released weak cache scope %#x", owner_id)

    def __call__(self, *args: Any, **kwargs: Any) -> R:
        with self._lock:
            cache, key_args = self._scope(args)
            key = self._key(key_args, kwargs)
            cached = cache.get(key)
            if cached is not _MISSING:
                self._hits += 1
                return cached
            self._misses += 1
            result = self._func(*args, **kwargs)
            cache.set(key, result)
            return result

    def cache_clear(self) -> None:
        """Drop every cached entry and reset statistics."""
        with self._lock:
            self._cache.clear()
            for finalizer in self._finalizers.values():
                finalizer.detach()
            self._finalizers.clear()
            self._scopes.clear()
            self._hits = 0
            self._misses = 0

    def cache_size(self) -> int:
        """Count cached entries across all scopes."""
        with self._lock:
            return len(self._cache) + sum(len(c) for c in self._scopes.values())

    def cache_info(self) -> CacheInfo:
        """Get hit/miss statistics."""
        with self._lock:
            return CacheInfo(
                hits=self._hits,
                misses=self._misses,
                size=self.cache_size(),
                max_size=self._options.max_size,
            )


def memoize(
    func: Callable[..., R] | None = None,
    options: MemoizeOptions | None = None,
    *,
    max_size: int | None = None,
    ttl_ms: float | None = None,
    strategy: CacheStrategy | None = None,
    key: KeyFunc | None = None,
    clock: Callable[[], float] = _monotonic_ms,
) -> Any:
    """Cache a function's results.

    Usable as ``memoize(fn)``, ``@memoize`` or ``@memoize(max_size=10)``.

    Args:
        func: Function to wrap.
        options: Full options model; keyword arguments override it.
        max_size: Maximum entries per cache (default 100).
        ttl_ms: Entry lifetime in milliseconds.
        strategy: "lru", "ttl" or "weak".
        key: Key derivation function, see module docstring.
        clock: Millisecond time source for TTL checks.

    Returns:
        A Memoized wrapper, or a decorator producing one.

    Raises:
        ConfigValidationError: If options are invalid.
    """
    opts = build_options(
        MemoizeOptions,
        options,
        max_size=max_size,
        ttl_ms=ttl_ms,
        strategy=strategy,
        key=key,
    )
    if opts.strategy == "ttl" and opts.ttl_ms is None:
        logger.warning("Strategy 'ttl' without ttl_ms; entries never expire")

    def decorator(fn: Callable[..., R]) -> Memoized[R]:
        return Memoized(fn, opts, clock)

    if func is None:
        return decorator
    return decorator(func)


@dataclass
class ClearableMemoized(Generic[R]):
    """Memoized function plus explicit cache controls."""

    memoized: Memoized[R]

    def clear(self) -> None:
        self.memoized.cache_clear()

    def size(self) -> int:
        return self.memoized.cache_size()


def create_clearable_memoize(
    func: Callable[..., R],
    options: MemoizeOptions | None = None,
    **kwargs: Any,
) -> ClearableMemoized[R]:
    """Memoize ``func`` and return it with ``clear``/``size`` controls."""
    return ClearableMemoized(memoize(func, options, **kwargs))
