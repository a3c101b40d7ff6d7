"""Exception types raised by fnkit.

Errors raised by wrapped operations are never translated into these; they
propagate to whoever triggered the invocation.
"""


class FnkitError(Exception):
    """Base class for fnkit errors."""

    pass


class ConfigValidationError(FnkitError, ValueError):
    """Raised when construction options fail validation."""

    pass


class InvariantViolationError(FnkitError, RuntimeError):
    """Raised when internal controller state is inconsistent.

    This signals a bug, not a normal "nothing to do" outcome.
    """

    pass


class CircuitOpenError(FnkitError):
    """Raised when a circuit breaker rejects a call."""

    pass


class OperationTimeoutError(FnkitError, TimeoutError):
    """Raised when an awaited operation exceeds its deadline."""

    pass
