"""Currying and partial application.

Positional placeholders use the ``Hole`` type. Pass ``HOLE`` (also exported
as ``_``) in a template to mark a position filled at call time.
"""

import inspect
from collections.abc import Callable
from typing import Any


class Hole:
    """Marker for a positional argument supplied later."""

    _instance: "Hole | None" = None

    def __new__(cls) -> "Hole":
        """Ensure a single marker instance."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "HOLE"

    def __reduce__(self) -> str:
        return "HOLE"


HOLE = Hole()
_ = HOLE


def arity(func: Callable[..., Any]) -> int:
    """Count required positional parameters of ``func``."""
    try:
        params = inspect.signature(func).parameters.values()
    except (TypeError, ValueError):
        return 0
    return sum(
        1
        for p in params
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
        and p.default is p.empty
    )


def curry_n(n: int, func: Callable[..., Any]) -> Callable[..., Any]:
    """Collect positional arguments until ``n`` are available, then call.

    Each partial step accepts one or more arguments, so ``f(1)(2)`` and
    ``f(1, 2)`` are equivalent.
    """

    def curried(*args: Any) -> Any:
        if len(args) >= n:
            return func(*args)
        return lambda *more: curried(*args, *more)

    return curried


def curry(func: Callable[..., Any]) -> Callable[..., Any]:
    """Curry ``func`` on its required positional parameters."""
    return curry_n(arity(func), func)


def curry_right(func: Callable[..., Any]) -> Callable[..., Any]:
    """Curry ``func`` but apply the collected arguments in reverse order."""
    n = arity(func)

    def curried(*args: Any) -> Any:
        if len(args) >= n:
            return func(*reversed(args))
        return lambda *more: curried(*args, *more)

    return curried


def partial(func: Callable[..., Any], *bound: Any) -> Callable[..., Any]:
    """Prepend ``bound`` to the arguments of every call."""
    return lambda *rest, **kwargs: func(*bound, *rest, **kwargs)


def partial_with(func: Callable[..., Any], *template: Any) -> Callable[..., Any]:
    """Partially apply with holes.

    Holes in ``template`` are filled left to right from call arguments;
    leftover call arguments are appended.

    Raises:
        TypeError: At call time, if too few arguments fill the holes.
    """
    holes = sum(1 for arg in template if arg is HOLE)

    def applied(*fillers: Any, **kwargs: Any) -> Any:
        if len(fillers) < holes:
            raise TypeError(
                f"{holes} placeholder(s) to fill, got {len(fillers)} argument(s)"
            )
        filler = iter(fillers)
        args = [next(filler) if arg is HOLE else arg for arg in template]
        args.extend(filler)
        return func(*args, **kwargs)

    return applied


def flip(func: Callable[..., Any]) -> Callable[..., Any]:
    """Reverse the order of positional arguments."""
    return lambda *args: func(*reversed(args))


def n_ary(n: int, func: Callable[..., Any]) -> Callable[..., Any]:
    """Pass only the first ``n`` positional arguments through."""
    return lambda *args: func(*args[:n])


def unary(func: Callable[..., Any]) -> Callable[[Any], Any]:
    return lambda arg, *_rest: func(arg)


def binary(func: Callable[..., Any]) -> Callable[[Any, Any], Any]:
    return lambda a, b, *_rest: func(a, b)
