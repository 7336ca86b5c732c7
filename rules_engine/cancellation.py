"""
Cooperative cancellation for rule predicates.

The engine hands the same CancellationToken to every predicate in a policy.
It never checks the token itself; a predicate that wants to honour
cancellation calls raise_if_cancelled() or awaits sleep().
"""

import asyncio
import time
from typing import Optional

from rules_engine.exceptions import OperationCancelledError


class CancellationToken:
    """
    Cancellation signal shared by the predicates of one execution.

    A token is cancelled either explicitly via cancel() or implicitly once
    its deadline (set by with_timeout) has passed.
    """

    def __init__(self, deadline: Optional[float] = None):
        """
        Args:
            deadline: Absolute time.monotonic() value after which the token
                      counts as cancelled. None means no deadline.
        """
        self._deadline = deadline
        self._event = asyncio.Event()

    @classmethod
    def none(cls) -> "CancellationToken":
        """Token that is never cancelled unless cancel() is called."""
        return cls()

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancellationToken":
        """Token that cancels itself after the given number of seconds."""
        if seconds < 0:
            raise ValueError("Timeout cannot be negative")
        return cls(deadline=time.monotonic() + seconds)

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    @property
    def is_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise OperationCancelledError if cancellation was requested."""
        if self.is_cancelled:
            raise OperationCancelledError("The operation was cancelled.")

    async def sleep(self, delay: float) -> None:
        """
        Sleep for delay seconds unless the token is cancelled first.

        Raises:
            OperationCancelledError: If the token is cancelled before or
                                     during the sleep
        """
        self.raise_if_cancelled()

        timeout = delay
        deadline_bound = False
        if self._deadline is not None:
            remaining = max(self._deadline - time.monotonic(), 0.0)
            if remaining < delay:
                timeout = remaining
                deadline_bound = True

        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            if deadline_bound:
                raise OperationCancelledError("The operation was cancelled.") from None
            return

        # Woken by cancel()
        raise OperationCancelledError("The operation was cancelled.")
