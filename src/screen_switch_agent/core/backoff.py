"""
Reconnect backoff policies.

Both policies answer two questions for the supervisor:
  next_delay(attempt)  -> seconds to wait before the next connection attempt
  should_stop(attempt) -> True once the retry ceiling is reached

`attempt` is the number of consecutive failures already retried (0-based
for next_delay). The counter itself lives in the supervisor and is reset on
every successful subscribe.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, Union

DEFAULT_FIXED_DELAY_S = 5.0
DEFAULT_FIXED_MAX_RETRIES = 5

DEFAULT_INITIAL_DELAY_S = 1.0
DEFAULT_CEILING_S = 60.0
DEFAULT_EXPONENTIAL_MAX_RETRIES = 10


class BackoffMode(str, Enum):
    FIXED = "fixed"
    EXPONENTIAL = "exponential"


class BackoffPolicy(Protocol):
    max_retries: int

    def next_delay(self, attempt: int) -> float:
        ...

    def should_stop(self, attempt: int) -> bool:
        ...


def _check_retries(max_retries: int) -> None:
    if max_retries < 1:
        raise ValueError(f"max_retries must be >= 1, got {max_retries}")


@dataclass(frozen=True, slots=True)
class FixedBackoff:
    delay_s: float = DEFAULT_FIXED_DELAY_S
    max_retries: int = DEFAULT_FIXED_MAX_RETRIES

    def __post_init__(self) -> None:
        if self.delay_s < 0:
            raise ValueError(f"delay_s must be >= 0, got {self.delay_s}")
        _check_retries(self.max_retries)

    def next_delay(self, attempt: int) -> float:
        return self.delay_s

    def should_stop(self, attempt: int) -> bool:
        return attempt >= self.max_retries


@dataclass(frozen=True, slots=True)
class ExponentialBackoff:
    """Delay doubles from initial_s on every attempt, capped at ceiling_s."""

    initial_s: float = DEFAULT_INITIAL_DELAY_S
    ceiling_s: float = DEFAULT_CEILING_S
    max_retries: int = DEFAULT_EXPONENTIAL_MAX_RETRIES

    def __post_init__(self) -> None:
        if self.initial_s <= 0:
            raise ValueError(f"initial_s must be > 0, got {self.initial_s}")
        if self.ceiling_s < self.initial_s:
            raise ValueError(
                f"ceiling_s ({self.ceiling_s}) must be >= initial_s ({self.initial_s})"
            )
        _check_retries(self.max_retries)

    def next_delay(self, attempt: int) -> float:
        if attempt < 0:
            attempt = 0
        # 2**64 seconds is past any ceiling; avoid building huge ints
        if attempt >= 64:
            return self.ceiling_s
        return min(self.initial_s * (2 ** attempt), self.ceiling_s)

    def should_stop(self, attempt: int) -> bool:
        return attempt >= self.max_retries


AnyBackoff = Union[FixedBackoff, ExponentialBackoff]


def build_backoff(
    mode: BackoffMode,
    *,
    max_retries: int,
    delay_s: float = DEFAULT_FIXED_DELAY_S,
    initial_s: float = DEFAULT_INITIAL_DELAY_S,
    ceiling_s: float = DEFAULT_CEILING_S,
) -> AnyBackoff:
    """Build the policy selected by configuration. Raises ValueError on bad values."""
    if mode is BackoffMode.FIXED:
        return FixedBackoff(delay_s=delay_s, max_retries=max_retries)
    return ExponentialBackoff(initial_s=initial_s, ceiling_s=ceiling_s, max_retries=max_retries)
