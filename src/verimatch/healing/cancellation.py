"""Cooperative cancellation with deadlines.

A healing run owns one token bounded by its overall budget; each strategy
gets a scoped child token bounded by the per-strategy budget. Work checks
the token at every suspension point.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from ..healing_exceptions import HealingCancelledError, StrategyBudgetExceeded

_POLL_SECONDS = 0.05


class CancellationToken:
    """Thread-safe cancellation flag with an optional deadline and parent.

    A token is cancelled when ``cancel()`` was called on it, its own
    deadline passed, or its parent is cancelled.

    Args:
        budget_seconds: Time until the token expires (None for no deadline)
        parent: Token whose cancellation propagates to this one
        scoped: Whether expiry of this token's own deadline only ends a
            single strategy (raises StrategyBudgetExceeded)
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        budget_seconds: float | None = None,
        parent: CancellationToken | None = None,
        scoped: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._event = threading.Event()
        self._parent = parent
        self._scoped = scoped
        self._clock = clock
        self._reason = "cancelled"
        self._deadline = clock() + budget_seconds if budget_seconds is not None else None

    def cancel(self, reason: str = "cancelled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def expired(self) -> bool:
        """Whether this token's own deadline has passed."""
        return self._deadline is not None and self._clock() >= self._deadline

    @property
    def cancelled(self) -> bool:
        if self._event.is_set() or self.expired:
            return True
        return self._parent is not None and self._parent.cancelled

    def raise_if_cancelled(self) -> None:
        """Raise if cancelled, reporting the outermost cause.

        Raises:
            HealingCancelledError: Cancelled, or an unscoped deadline passed
            StrategyBudgetExceeded: Only this scoped token's deadline passed
        """
        if self._parent is not None:
            self._parent.raise_if_cancelled()
        if self._event.is_set():
            raise HealingCancelledError(self._reason)
        if self.expired:
            if self._scoped:
                raise StrategyBudgetExceeded()
            raise HealingCancelledError("time budget exceeded")

    def remaining(self) -> float | None:
        """Seconds until the nearest deadline in the chain, None if unbounded."""
        own = max(0.0, self._deadline - self._clock()) if self._deadline is not None else None
        parent = self._parent.remaining() if self._parent is not None else None
        if own is None:
            return parent
        if parent is None:
            return own
        return min(own, parent)

    def child(self, budget_seconds: float | None = None, scoped: bool = True) -> CancellationToken:
        """Token that is cancelled with this one and may expire sooner."""
        return CancellationToken(budget_seconds, parent=self, scoped=scoped, clock=self._clock)

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``, waking early on cancellation.

        Returns:
            True if the full time elapsed, False if cancelled first
        """
        end = self._clock() + seconds
        while True:
            if self.cancelled:
                return False
            left = end - self._clock()
            if left <= 0:
                return True
            self._event.wait(min(left, _POLL_SECONDS))
