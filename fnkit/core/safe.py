"""Run callables without raising; errors come back as values."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")
D = TypeVar("D")


@dataclass(frozen=True)
class SafeResult(Generic[T]):
    """Outcome of a guarded call: either ``data`` or ``error`` is set."""

    success: bool
    data: T | None = None
    error: Exception | None = None

    @classmethod
    def ok(cls, data: T) -> "SafeResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: Exception) -> "SafeResult[T]":
        return cls(success=False, error=error)


def try_catch(func: Callable[[], T]) -> SafeResult[T]:
    """Call ``func`` and capture any ``Exception``."""
    try:
        return SafeResult.ok(func())
    except Exception as e:
        return SafeResult.fail(e)


async def try_catch_async(func: Callable[[], Awaitable[T]]) -> SafeResult[T]:
    """Await ``func()`` and capture any ``Exception``."""
    try:
        return SafeResult.ok(await func())
    except Exception as e:
        return SafeResult.fail(e)


def make_safe(func: Callable[..., T]) -> Callable[..., SafeResult[T]]:
    """Wrap ``func`` so it returns a SafeResult instead of raising."""
    return lambda *args, **kwargs: try_catch(lambda: func(*args, **kwargs))


def make_safe_async(
    func: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[SafeResult[T]]]:
    """Async ``make_safe``."""
    return lambda *args, **kwargs: try_catch_async(lambda: func(*args, **kwargs))


def try_catch_all(*funcs: Callable[[], Any]) -> list[SafeResult[Any]]:
    return [try_catch(fn) for fn in funcs]


async def try_catch_all_async(
    *funcs: Callable[[], Awaitable[Any]],
) -> list[SafeResult[Any]]:
    """Run coroutine factories concurrently, capturing each outcome."""
    return list(await asyncio.gather(*(try_catch_async(fn) for fn in funcs)))


def is_success(result: SafeResult[T]) -> bool:
    return result.success


def is_error(result: SafeResult[T]) -> bool:
    return not result.success


def unwrap(result: SafeResult[T]) -> T:
    """Return the data, or raise the captured error."""
    if result.success:
        return result.data  # type: ignore[return-value]
    raise result.error  # type: ignore[misc]


def unwrap_or(result: SafeResult[T], default: D) -> T | D:
    return result.data if result.success else default  # type: ignore[return-value]


def chain(
    result: SafeResult[T], func: Callable[[T], SafeResult[U]]
) -> SafeResult[U]:
    """Feed a successful result into another guarded step."""
    if result.success:
        return func(result.data)  # type: ignore[arg-type]
    return SafeResult.fail(result.error)  # type: ignore[arg-type]


def map_result(result: SafeResult[T], func: Callable[[T], U]) -> SafeResult[U]:
    """Transform successful data; errors raised by ``func`` are captured."""
    if result.success:
        return try_catch(lambda: func(result.data))  # type: ignore[arg-type]
    return SafeResult.fail(result.error)  # type: ignore[arg-type]
