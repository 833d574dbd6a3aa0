"""
Shared fixtures for batch tests.

FakeRuntime stands in for the conversational agent: each created task
answers with the next scripted reply and leaves the foreground shortly
after, unless auto_finish is off.
"""

import asyncio
from typing import Optional
from unittest.mock import AsyncMock

import pytest

from batch.events import ProgressBroadcaster
from batch.orchestrator import TaskOrchestrator
from batch.runtime import ConversationRuntime, TaskHandle, extract_last_assistant_text


class FakeHandle(TaskHandle):

    def __init__(self, runtime: "FakeRuntime", task_id: str, instruction: str, reply: str):
        self._runtime = runtime
        self._id = task_id
        self.instruction = instruction
        self.messages = [
            {"role": "user", "content": instruction},
            {"role": "assistant", "content": reply},
        ]

    @property
    def id(self) -> str:
        return self._id

    def is_foreground(self) -> bool:
        return self._runtime.foreground is self

    def last_assistant_text(self) -> str:
        return extract_last_assistant_text(self.messages, [])


class FakeRuntime(ConversationRuntime):

    def __init__(self, replies: Optional[list[str]] = None, finish_delay: float = 0.01):
        self.replies = list(replies or [])
        self.finish_delay = finish_delay
        self.auto_finish = True
        self.create_error: Optional[Exception] = None
        self.handles: list[FakeHandle] = []
        self.focused: list[str] = []
        self.foreground: Optional[FakeHandle] = None

    @property
    def instructions(self) -> list[str]:
        return [h.instruction for h in self.handles]

    async def create_task(self, instruction: str, attachments=None) -> TaskHandle:
        if self.create_error is not None:
            raise self.create_error
        reply = self.replies.pop(0) if self.replies else "done"
        handle = FakeHandle(self, f"task-{len(self.handles) + 1}", instruction, reply)
        self.handles.append(handle)
        self.foreground = handle
        if self.auto_finish:
            asyncio.get_running_loop().call_later(self.finish_delay, self._finish, handle)
        return handle

    def _finish(self, handle: FakeHandle) -> None:
        if self.foreground is handle:
            self.foreground = None

    def finish(self) -> None:
        """Let the current foreground task complete."""
        self.foreground = None

    def current_foreground_task(self) -> Optional[TaskHandle]:
        return self.foreground

    async def focus(self, task_id: str) -> None:
        self.focused.append(task_id)


async def _wait_until(predicate, timeout: float = 2.0, interval: float = 0.005):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(interval)


@pytest.fixture
def wait_until():
    """Poll an async condition: `await wait_until(lambda: ...)`."""
    return _wait_until


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def transport() -> AsyncMock:
    """Completion transport double; set .complete.return_value / side_effect."""
    mock = AsyncMock()
    mock.complete = AsyncMock(return_value="Process {filePath}")
    return mock


@pytest.fixture
def batch_config() -> dict:
    """Fast timings for tests."""
    return {
        "poll_interval_seconds": 0.01,
        "task_timeout_seconds": 2.0,
        "file_limit": 1000,
        "retry": {"max_retries": 3, "initial_delay_seconds": 0},
    }


@pytest.fixture
def observer() -> ProgressBroadcaster:
    return ProgressBroadcaster()


@pytest.fixture
def make_orchestrator(runtime, transport, observer, batch_config):
    """Factory: make_orchestrator(cwd, **config_overrides)."""
    def _make(cwd, **overrides) -> TaskOrchestrator:
        config = {**batch_config, **overrides}
        return TaskOrchestrator(
            runtime=runtime,
            transport=transport,
            cwd=cwd,
            observer=observer,
            config=config,
            api_config={"model": "test/model"},
        )
    return _make
