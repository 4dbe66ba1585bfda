"""
Cancellable delayed work owned by a single room.

Play validation, spade-naming deadlines and sing windows are all "do this
later unless something else resolves it first". Each is a ScheduledTask:
an asyncio task that sleeps, then runs its callback while holding the
room's game lock, so it is just one more event in the room's sequence.

Cancelling a task that is still sleeping or still waiting for the lock
guarantees the callback never runs. Callers that resolve an obligation
early cancel its task while they hold the lock themselves.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class ScheduledTask:
    """Handle for one pending callback."""

    def __init__(self, name: str, task: asyncio.Task) -> None:
        self.name = name
        self._task = task

    def cancel(self) -> bool:
        """
        Cancel the callback if it has not started running.

        Returns:
            True if the task was still pending.
        """
        if self._task.done():
            return False
        return self._task.cancel()

    @property
    def done(self) -> bool:
        return self._task.done()

    @property
    def cancelled(self) -> bool:
        return self._task.cancelled()

    def __repr__(self) -> str:
        state = "done" if self.done else "pending"
        return f"<ScheduledTask {self.name} {state}>"


class Scheduler:
    """
    Owns every pending task for one room.

    Attributes:
        lock: The room's game lock, held while a callback runs.
        name: Label used in log lines (the room id).
    """

    def __init__(self, lock: Optional[asyncio.Lock] = None, name: str = "") -> None:
        self.lock = lock or asyncio.Lock()
        self.name = name
        self._tasks: set[ScheduledTask] = set()
        self._closed = False

    @property
    def pending(self) -> int:
        """Number of tasks that have not finished."""
        return sum(1 for t in self._tasks if not t.done)

    def schedule(
        self,
        delay: float,
        callback: Callable[[], Awaitable[None]],
        name: str = "task",
    ) -> ScheduledTask:
        """
        Run callback after delay seconds, under the room lock.

        Args:
            delay: Seconds to wait before running.
            callback: Coroutine function taking no arguments.
            name: Label for logging and debugging.

        Returns:
            A handle that can cancel the callback.

        Raises:
            RuntimeError: If the scheduler has been closed.
        """
        if self._closed:
            raise RuntimeError(f"Scheduler for room {self.name} is closed")

        task = asyncio.get_running_loop().create_task(self._run(delay, callback, name))
        handle = ScheduledTask(name, task)
        self._tasks.add(handle)
        task.add_done_callback(lambda _t: self._tasks.discard(handle))
        return handle

    async def _run(self, delay: float, callback: Callable[[], Awaitable[None]], name: str) -> None:
        await asyncio.sleep(delay)
        async with self.lock:
            try:
                await callback()
            except Exception:
                logger.exception(
                    f"Scheduled task {name} failed",
                    extra={"room_code": self.name},
                )

    def cancel_all(self) -> int:
        """
        Cancel every pending task and refuse new ones.

        Returns:
            The number of tasks cancelled.
        """
        self._closed = True
        count = 0
        for handle in list(self._tasks):
            if handle.cancel():
                count += 1
        if count:
            logger.debug(f"Cancelled {count} scheduled tasks", extra={"room_code": self.name})
        return count

    async def join(self) -> None:
        """
        Wait until no tasks are pending, including tasks scheduled by
        callbacks that ran while waiting.
        """
        while True:
            tasks = [h._task for h in self._tasks if not h.done]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)
