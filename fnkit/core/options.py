"""Option models for fnkit wrappers.

Each public factory accepts either one of these models or the equivalent
keyword arguments. Both forms go through pydantic validation so bad
durations or sizes fail at construction time, not at first call.
"""

import logging
from collections.abc import Callable, Hashable
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fnkit.core.errors import ConfigValidationError

logger = logging.getLogger(__name__)

CacheStrategy = Literal["lru", "ttl", "weak"]

OptionsT = TypeVar("OptionsT", bound=BaseModel)


class _Options(BaseModel):
    """Shared config: immutable, unknown keys rejected."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class DebounceOptions(_Options):
    """Debounce configuration."""

    wait_ms: float = Field(default=0.0, ge=0)
    leading: bool = False
    trailing: bool = True
    max_wait_ms: float | None = Field(default=None, ge=0)


class ThrottleOptions(_Options):
    """Throttle configuration."""

    wait_ms: float = Field(default=0.0, ge=0)
    leading: bool = True
    trailing: bool = True


class MemoizeOptions(_Options):
    """Memoization cache configuration."""

    max_size: int = Field(default=100, gt=0)
    ttl_ms: float | None = Field(default=None, gt=0)
    strategy: CacheStrategy = "lru"
    key: Callable[[tuple, dict], Hashable] | None = None


class RetryOptions(_Options):
    """Retry with exponential backoff."""

    max_attempts: int = Field(default=3, ge=1)
    initial_delay_ms: float = Field(default=1000.0, ge=0)
    max_delay_ms: float = Field(default=30000.0, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1)
    jitter: bool = True
    retry_condition: Callable[[BaseException], bool] | None = None
    on_retry: Callable[[BaseException, int], Any] | None = None


class CircuitBreakerOptions(_Options):
    """Circuit breaker thresholds."""

    failure_threshold: int = Field(default=5, ge=1)
    reset_timeout_ms: float = Field(default=60000.0, ge=0)
    monitoring_period_ms: float = Field(default=60000.0, ge=0)


def build_options(
    model: type[OptionsT],
    options: OptionsT | None = None,
    **overrides: Any,
) -> OptionsT:
    """Build a validated options model.

    Args:
        model: Options model class.
        options: Existing options instance to start from, if any.
        **overrides: Field values; ``None`` values are ignored so callers
            can forward optional keyword arguments untouched.

    Returns:
        A validated, frozen options instance.

    Raises:
        ConfigValidationError: If any field fails validation.
    """
    values = options.model_dump() if options is not None else {}
    values.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return model(**values)
    except ValidationError as e:
        logger.debug("Rejected %s: %s", model.__name__, e)
        raise ConfigValidationError(f"Invalid {model.__name__}: {e}") from e
