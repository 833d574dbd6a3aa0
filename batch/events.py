"""
Progress observers.

After every state transition the orchestrator awaits its observer.
Returning from on_progress / on_route is the acknowledgment that the
notification was applied, so the next one is never sent early.
"""

from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime
from typing import Optional

from batch.models import RunProgress, SubTask
from shared.logging import get_logger

log = get_logger("batch", "events")

VIEW_CONVERSATION = "conversation"
VIEW_BATCH = "batch"


class ProgressObserver(ABC):

    @abstractmethod
    async def on_progress(self, progress: RunProgress, sub_tasks: list[SubTask]) -> None:
        """Receive a snapshot. `sub_tasks` are copies."""
        ...

    @abstractmethod
    async def on_route(self, view: str) -> None:
        """Switch to VIEW_CONVERSATION or VIEW_BATCH."""
        ...


class ProgressBroadcaster(ProgressObserver):
    """
    In-memory observer: keeps the latest snapshot plus a bounded history
    of events, for the HTTP API and for tests.

    Every event carries a "seq" number that keeps growing after old
    events fall out of the history, so it works as a polling cursor.
    """

    def __init__(self, history_size: int = 200):
        self.latest: Optional[RunProgress] = None
        self.latest_sub_tasks: list[SubTask] = []
        self.view: Optional[str] = None
        self.history: deque[dict] = deque(maxlen=history_size)
        self.next_seq = 0

    def _record(self, event: dict) -> None:
        event["seq"] = self.next_seq
        event["at"] = datetime.now().timestamp()
        self.next_seq += 1
        self.history.append(event)

    async def on_progress(self, progress: RunProgress, sub_tasks: list[SubTask]) -> None:
        self.latest = progress
        self.latest_sub_tasks = list(sub_tasks)
        self._record({"kind": "progress", "progress": progress.to_dict()})
        log.debug("batch.events.progress",
                  status=progress.status,
                  current_index=progress.current_index,
                  completed=progress.completed_count,
                  failed=progress.failed_count,
                  total=progress.total_count,
                  message=progress.message)

    async def on_route(self, view: str) -> None:
        self.view = view
        self._record({"kind": "route", "view": view})
        log.debug("batch.events.route", view=view)

    def events(self, since: int = 0) -> list[dict]:
        """Retained events with seq >= `since`; pass next_seq back as the cursor."""
        return [event for event in self.history if event["seq"] >= since]
