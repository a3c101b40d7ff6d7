"""Tests for safe.py - SafeResult helpers."""

import asyncio

import pytest

from fnkit.core.safe import (
    SafeResult,
    chain,
    is_error,
    is_success,
    make_safe,
    make_safe_async,
    map_result,
    try_catch,
    try_catch_all,
    try_catch_all_async,
    try_catch_async,
    unwrap,
    unwrap_or,
)


def explode():
    raise ValueError("bad")


class TestTryCatch:
    def test_success(self):
        """Return values should be wrapped as success."""
        result = try_catch(lambda: 42)
        assert is_success(result)
        assert result.data == 42
        assert result.error is None

    def test_failure(self):
        """Exceptions should be captured."""
        result = try_catch(explode)
        assert is_error(result)
        assert isinstance(result.error, ValueError)
        assert result.data is None

    def test_base_exceptions_propagate(self):
        """KeyboardInterrupt and friends should not be swallowed."""

        def interrupt():
            raise KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            try_catch(interrupt)

    def test_make_safe(self):
        """make_safe should forward arguments."""
        safe_div = make_safe(lambda a, b: a / b)
        assert safe_div(6, 3).data == 2
        assert isinstance(safe_div(1, 0).error, ZeroDivisionError)

    def test_try_catch_all(self):
        """Each callable should get its own result."""
        results = try_catch_all(lambda: 1, explode)
        assert [r.success for r in results] == [True, False]


class TestAsync:
    def test_try_catch_async(self):
        """Coroutine errors should be captured."""

        async def fail():
            raise RuntimeError("x")

        result = asyncio.run(try_catch_async(fail))
        assert isinstance(result.error, RuntimeError)

    def test_make_safe_async_and_all(self):
        """Async wrappers should return SafeResults."""

        async def echo(x):
            return x

        async def fail():
            raise OSError("io")

        assert asyncio.run(make_safe_async(echo)("hi")).data == "hi"
        results = asyncio.run(try_catch_all_async(lambda: echo(1), fail))
        assert [r.success for r in results] == [True, False]


class TestCombinators:
    def test_unwrap(self):
        """unwrap should return data or raise the captured error."""
        assert unwrap(SafeResult.ok(3)) == 3
        with pytest.raises(ValueError):
            unwrap(try_catch(explode))

    def test_unwrap_or(self):
        """unwrap_or should fall back on failure."""
        assert unwrap_or(SafeResult.ok(0), 9) == 0
        assert unwrap_or(SafeResult.fail(ValueError()), 9) == 9

    def test_chain(self):
        """chain should short-circuit on failure."""
        ok = chain(SafeResult.ok(2), lambda x: SafeResult.ok(x + 1))
        assert ok.data == 3
        err = SafeResult.fail(KeyError("k"))
        assert chain(err, lambda x: SafeResult.ok(x)).error is err.error

    def test_map_result_captures(self):
        """Errors raised by the mapper should be captured."""
        assert map_result(SafeResult.ok(2), lambda x: x * 5).data == 10
        failed = map_result(SafeResult.ok(0), lambda x: 1 / x)
        assert isinstance(failed.error, ZeroDivisionError)
