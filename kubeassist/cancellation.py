"""
Cancellation signal shared by every blocking call of one chat invocation.

A ``CancelToken`` combines an explicit cancel flag (set when the client goes
away) with an absolute deadline.  Blocking operations go through
``CancelToken.run`` so that either condition interrupts them promptly.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, TypeVar

T = TypeVar("T")

REASON_CANCELLED = "cancelled"
REASON_DEADLINE = "deadline exceeded"


class OperationCancelled(Exception):
    """Raised when a blocking call is interrupted by its ``CancelToken``."""

    def __init__(self, reason: str = REASON_CANCELLED):
        super().__init__(reason)
        self.reason = reason

    @property
    def deadline(self) -> bool:
        return self.reason == REASON_DEADLINE


class CancelToken:
    """
    Parameters
    ----------
    timeout:
        Seconds from now until the deadline.  ``None`` means no deadline.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._event = asyncio.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._reason: str | None = None

    def cancel(self, reason: str = REASON_CANCELLED) -> None:
        if self._reason is None:
            self._reason = reason
        self._event.set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.expired

    @property
    def reason(self) -> str | None:
        if self._reason is not None:
            return self._reason
        if self.expired:
            return REASON_DEADLINE
        return None

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or ``None`` without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def check(self) -> None:
        if self.cancelled:
            raise OperationCancelled(self.reason or REASON_CANCELLED)

    async def run(self, awaitable: Awaitable[T], timeout: float | None = None) -> T:
        """
        Await *awaitable* unless the token fires first.

        Raises ``OperationCancelled`` on cancellation or deadline expiry and
        ``asyncio.TimeoutError`` when the per-call *timeout* elapses first.
        The pending operation is cancelled in both cases.
        """
        self.check()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())

        limit = self.remaining()
        if timeout is not None:
            limit = timeout if limit is None else min(limit, timeout)

        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                timeout=limit,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except BaseException:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        if self.cancelled:
            raise OperationCancelled(self.reason or REASON_CANCELLED)
        raise asyncio.TimeoutError()
