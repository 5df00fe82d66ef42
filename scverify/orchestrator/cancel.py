"""Caller-driven cancellation shared by the analyzer, judge and orchestrator."""
from __future__ import annotations

import threading
import time
from typing import Optional

from scverify.errors import VerificationCancelled

_PARENT_POLL = 0.05


class CancelToken:
    """Cancellation flag with an optional deadline (seconds from creation).

    A token made with ``child()`` is cancelled whenever its parent is, but
    cancelling the child leaves the parent untouched.
    """

    def __init__(self, deadline: Optional[float] = None, parent: Optional["CancelToken"] = None) -> None:
        self._event = threading.Event()
        self._expires_at = time.monotonic() + deadline if deadline is not None else None
        self._parent = parent

    def child(self) -> "CancelToken":
        return CancelToken(parent=self)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._expires_at is not None and time.monotonic() >= self._expires_at:
            self._event.set()
            return True
        return self._parent is not None and self._parent.cancelled

    def remaining(self) -> Optional[float]:
        """Seconds until the nearest deadline in the chain, None if unbounded."""
        remaining = None
        if self._expires_at is not None:
            remaining = max(0.0, self._expires_at - time.monotonic())
        if self._parent is not None:
            inherited = self._parent.remaining()
            if inherited is not None and (remaining is None or inherited < remaining):
                remaining = inherited
        return remaining

    def wait(self, seconds: float) -> bool:
        """Block up to ``seconds``; True when cancelled meanwhile."""
        end = time.monotonic() + max(0.0, seconds)
        while not self.cancelled:
            left = end - time.monotonic()
            if left <= 0:
                return False
            remaining = self.remaining()
            if remaining is not None:
                left = min(left, remaining)
            if self._parent is not None:
                # parent cancellation does not set our event
                left = min(left, _PARENT_POLL)
            self._event.wait(left)
        return True

    def sleep(self, seconds: float) -> None:
        if self.wait(seconds):
            raise VerificationCancelled("verification cancelled")

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise VerificationCancelled("verification cancelled")
