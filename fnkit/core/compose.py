"""Function composition and value pipelines."""

import functools
import inspect
from collections.abc import Callable
from typing import Any


def compose(*fns: Callable[[Any], Any]) -> Callable[[Any], Any]:
    """Compose functions right to left.

    ``compose(f, g)(x) == f(g(x))``. With no functions, returns identity.
    """

    def composed(value: Any) -> Any:
        return functools.reduce(lambda acc, fn: fn(acc), reversed(fns), value)

    return composed


def flow(*fns: Callable[[Any], Any]) -> Callable[[Any], Any]:
    """Compose functions left to right: ``flow(f, g)(x) == g(f(x))``."""
    return compose(*reversed(fns))


def pipe(value: Any, *fns: Callable[[Any], Any]) -> Any:
    """Thread ``value`` through ``fns`` left to right."""
    return functools.reduce(lambda acc, fn: fn(acc), fns, value)


def safe_compose(*fns: Callable[[Any], Any]) -> Callable[[Any], Any]:
    """Like ``compose`` but returns the raised exception instead of raising."""
    composed = compose(*fns)

    def run(value: Any) -> Any:
        try:
            return composed(value)
        except Exception as e:
            return e

    return run


async def pipe_async(value: Any, *fns: Callable[[Any], Any]) -> Any:
    """Thread ``value`` through ``fns``, awaiting awaitable results.

    The starting value may itself be awaitable.
    """
    result = await value if inspect.isawaitable(value) else value
    for fn in fns:
        result = fn(result)
        if inspect.isawaitable(result):
            result = await result
    return result
