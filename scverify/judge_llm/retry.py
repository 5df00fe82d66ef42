"""Bounded retry combinator used by the judge client."""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
Backoff = Callable[[int, int], float]


class RetryExhausted(Exception):
    """All attempts failed; ``last_error`` is the final attempt's exception."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"gave up after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def descending_linear(base: float = 1.0) -> Backoff:
    """Wait ``remaining_attempts * base``: 3s, 2s, 1s for four attempts."""

    def _delay(attempt: int, max_attempts: int) -> float:
        return (max_attempts - attempt) * base

    return _delay


def ascending_linear(base: float = 1.0) -> Backoff:
    """Wait ``attempt * base``: 1s, 2s, 3s for four attempts."""

    def _delay(attempt: int, max_attempts: int) -> float:
        return attempt * base

    return _delay


def make_backoff(policy: str, base: float = 1.0) -> Backoff:
    if policy == "descending":
        return descending_linear(base)
    if policy == "ascending":
        return ascending_linear(base)
    raise ValueError(f"Unknown backoff policy '{policy}'")


def retry_call(
    func: Callable[[], T],
    *,
    max_attempts: int,
    backoff: Backoff,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
) -> T:
    """Call ``func`` up to ``max_attempts`` times.

    Exceptions outside ``retry_on`` propagate immediately. ``backoff`` gets the
    1-based number of the attempt that just failed and ``max_attempts``.
    """

    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(1, max_attempts + 1):
        try:
            return func()
        except retry_on as exc:
            if attempt == max_attempts:
                raise RetryExhausted(attempt, exc) from exc
            delay = backoff(attempt, max_attempts)
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            sleep(delay)
    raise AssertionError("unreachable")


__all__ = [
    "Backoff",
    "RetryExhausted",
    "ascending_linear",
    "descending_linear",
    "make_backoff",
    "retry_call",
]
