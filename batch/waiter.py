"""
Completion detection for delegated tasks.
"""

import asyncio
import time

from batch.runtime import TaskHandle
from shared.logging import get_logger

log = get_logger("batch", "waiter")

DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_TIMEOUT = 300.0


class TaskTimeoutError(TimeoutError):
    """A delegated task stayed in the foreground past the deadline."""

    def __init__(self, task_id: str, timeout: float):
        super().__init__(f"Task {task_id} did not finish within {timeout:g} seconds")
        self.task_id = task_id
        self.timeout = timeout


class CompletionWaiter:
    """
    Polls a TaskHandle until it leaves the foreground.

    The runtime offers no completion event, so the first check happens
    one interval after wait() starts and every interval after that.
    """

    def __init__(self, poll_interval: float = DEFAULT_POLL_INTERVAL,
                 timeout: float = DEFAULT_TIMEOUT):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.poll_interval = poll_interval
        self.timeout = timeout

    async def wait(self, handle: TaskHandle) -> None:
        """
        Return once `handle` is no longer the foreground task.

        Raises:
            TaskTimeoutError: still foreground after `timeout` seconds
        """
        deadline = time.monotonic() + self.timeout
        polls = 0

        while True:
            await asyncio.sleep(self.poll_interval)
            polls += 1

            if not handle.is_foreground():
                log.debug("batch.waiter.finished", task_id=handle.id, polls=polls)
                return

            if time.monotonic() >= deadline:
                log.warning("batch.waiter.timeout", task_id=handle.id, timeout=self.timeout)
                raise TaskTimeoutError(handle.id, self.timeout)
