"""Tests for compose.py."""

import asyncio

from fnkit.core.compose import compose, flow, pipe, pipe_async, safe_compose


def add1(x):
    return x + 1


def double(x):
    return x * 2


class TestCompose:
    def test_right_to_left(self):
        """compose(f, g)(x) should equal f(g(x))."""
        assert compose(add1, double)(3) == 7

    def test_single_and_empty(self):
        """One function passes through; none is identity."""
        assert compose(add1)(5) == 6
        assert compose()(5) == 5

    def test_flow_left_to_right(self):
        """flow(f, g)(x) should equal g(f(x))."""
        assert flow(add1, double)(3) == 8

    def test_pipe_value(self):
        """pipe should thread a value left to right."""
        assert pipe(3, add1, double, str) == "8"
        assert pipe("x") == "x"

    def test_safe_compose_returns_error(self):
        """Errors should be returned, not raised."""

        def fail(_):
            raise ValueError("nope")

        result = safe_compose(add1, fail)(1)
        assert isinstance(result, ValueError)
        assert safe_compose(add1)(1) == 2


class TestPipeAsync:
    def test_mixed_sync_and_async(self):
        """Awaitable results should be awaited between steps."""

        async def async_double(x):
            await asyncio.sleep(0)
            return x * 2

        async def start():
            return 3

        assert asyncio.run(pipe_async(start(), add1, async_double, add1)) == 9
        assert asyncio.run(pipe_async(1, add1)) == 2
