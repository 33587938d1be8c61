"""
Call context

Carries an optional deadline and a cancellation flag for one plugin call.
A deadline crosses the process boundary as data; each side rebuilds its
own CallContext from it.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Optional, Set

from .errors import ContextCanceledError, ContextDeadlineExceededError, ContextError

logger = logging.getLogger(__name__)


class CallContext:
    """
    Deadline and cancellation scope for a plugin call.

    Awaiting through ``run()`` ties the awaited work to this context: the
    work is cancelled as soon as the context is canceled or its deadline
    passes, and the context's error is raised instead.
    """

    def __init__(self, deadline: Optional[datetime] = None):
        if deadline is not None and deadline.tzinfo is None:
            raise ValueError("deadline must be timezone-aware")
        self._deadline = deadline
        self._cancelled = False
        self._waiters: Set[asyncio.Future] = set()

    @classmethod
    def background(cls) -> "CallContext":
        """Context with no deadline that is never canceled."""
        return cls()

    @classmethod
    def with_timeout(cls, seconds: float) -> "CallContext":
        """Context whose deadline is ``seconds`` from now."""
        return cls(deadline=datetime.now(timezone.utc) + timedelta(seconds=seconds))

    @property
    def deadline(self) -> Optional[datetime]:
        return self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, or None when there is none."""
        if self._deadline is None:
            return None
        return (self._deadline - datetime.now(timezone.utc)).total_seconds()

    def cancel(self) -> None:
        """Cancel the context and wake every pending ``run()``."""
        if self._cancelled:
            return
        self._cancelled = True
        for waiter in list(self._waiters):
            waiter.get_loop().call_soon_threadsafe(_resolve, waiter)

    def err(self) -> Optional[ContextError]:
        """The reason this context is done, or None while it is live."""
        if self._cancelled:
            return ContextCanceledError()
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            return ContextDeadlineExceededError()
        return None

    async def run(self, awaitable: Awaitable[Any]) -> Any:
        """
        Await ``awaitable`` bound to this context.

        Raises:
            ContextError: If the context is done before or during the wait.
        """
        err = self.err()
        if err is not None:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise err

        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(awaitable)
        done_signal = loop.create_future()
        self._waiters.add(done_signal)
        try:
            done, _ = await asyncio.wait(
                {task, done_signal},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            await _cancel_and_wait(task)
            raise
        finally:
            self._waiters.discard(done_signal)
            done_signal.cancel()

        if task in done:
            return task.result()

        logger.debug("Call context done before work finished, cancelling")
        await _cancel_and_wait(task)
        raise self.err() or ContextDeadlineExceededError()


def _resolve(fut: asyncio.Future) -> None:
    if not fut.done():
        fut.set_result(None)


async def _cancel_and_wait(task: asyncio.Future) -> None:
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
