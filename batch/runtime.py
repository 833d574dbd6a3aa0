"""
Conversation runtime interface and a subprocess-backed implementation.

The orchestrator never executes instructions itself. It hands each one
to a ConversationRuntime, which runs it as a task in its own
conversation and exposes the result through a narrow TaskHandle.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from shared.logging import get_logger

log = get_logger("batch", "runtime")

DEFAULT_AGENT_COMMAND = ["claude", "-p", "{instruction}"]
INSTRUCTION_TOKEN = "{instruction}"


class TaskHandle(ABC):
    """What the orchestrator may ask of a delegated task."""

    @property
    @abstractmethod
    def id(self) -> str:
        ...

    @abstractmethod
    def is_foreground(self) -> bool:
        """True while this task is still the runtime's active task."""
        ...

    @abstractmethod
    def last_assistant_text(self) -> str:
        """Most recent assistant reply, or "" if there is none."""
        ...

    def error(self) -> Optional[str]:
        """Why the task failed, or None if it ran to completion."""
        return None


class AgentTaskError(Exception):
    """A delegated task finished without doing its work."""

    def __init__(self, task_id: str, message: str):
        super().__init__(message)
        self.task_id = task_id


class ConversationRuntime(ABC):
    """Executes instructions as conversation tasks."""

    @abstractmethod
    async def create_task(self, instruction: str, attachments: Optional[list] = None) -> TaskHandle:
        ...

    @abstractmethod
    def current_foreground_task(self) -> Optional[TaskHandle]:
        ...

    @abstractmethod
    async def focus(self, task_id: str) -> None:
        """Bring a task into view. Navigation only; must not block on the task."""
        ...


def extract_last_assistant_text(message_history: list, display_history: list) -> str:
    """
    Newest assistant text in a conversation.

    message_history holds API-style messages ({"role", "content"}), where
    content is a string or a list of parts; text parts are joined with
    newlines. Falls back to the newest display entry of type "say"/"text".
    """
    for message in reversed(message_history or []):
        if message.get("role") != "assistant":
            continue
        content = message.get("content")
        if isinstance(content, list):
            return "\n".join(
                part.get("text", "")
                for part in content
                if isinstance(part, dict) and part.get("type") == "text"
            )
        if isinstance(content, str):
            return content

    for entry in reversed(display_history or []):
        if entry.get("type") == "say" and entry.get("say") == "text":
            return entry.get("text") or ""

    return ""


@dataclass
class ConversationRecord:
    """Runtime-side state of one conversation task."""
    instruction: str
    task_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    attachments: list = field(default_factory=list)

    # API-style history: {"role": "user"|"assistant", "content": ...}
    message_history: list[dict[str, Any]] = field(default_factory=list)

    # UI-style history: {"type": "say", "say": "text"|"error", "text": ...}
    display_history: list[dict[str, Any]] = field(default_factory=list)

    created_at: float = field(default_factory=lambda: datetime.now().timestamp())
    finished_at: Optional[float] = None
    returncode: Optional[int] = None

    # Set when the agent could not run, exited nonzero, or was stopped
    error: Optional[str] = None


class ConversationTask(TaskHandle):
    """TaskHandle adapter over a ConversationRecord."""

    def __init__(self, runtime: ConversationRuntime, record: ConversationRecord):
        self._runtime = runtime
        self.record = record

    @property
    def id(self) -> str:
        return self.record.task_id

    def is_foreground(self) -> bool:
        current = self._runtime.current_foreground_task()
        return current is not None and current.id == self.id

    def last_assistant_text(self) -> str:
        return extract_last_assistant_text(self.record.message_history,
                                           self.record.display_history)

    def error(self) -> Optional[str]:
        return self.record.error


class CliAgentRuntime(ConversationRuntime):
    """
    Runs each task as a CLI coding agent process in the project root.

    `command` is an argv list; every "{instruction}" token is replaced by
    the instruction text. The task is foreground while its process runs,
    and its stdout becomes the assistant reply. At most one agent process
    runs at a time.
    """

    def __init__(
        self,
        cwd: Path,
        command: Optional[list[str]] = None,
        timeout: Optional[float] = None,
    ):
        self.cwd = Path(cwd)
        self.command = list(command or DEFAULT_AGENT_COMMAND)
        self.timeout = timeout
        self.tasks: dict[str, ConversationTask] = {}
        self.focused_task_id: Optional[str] = None
        self._foreground: Optional[ConversationTask] = None
        self._workers: set[asyncio.Task] = set()

    def build_argv(self, instruction: str) -> list[str]:
        return [part.replace(INSTRUCTION_TOKEN, instruction) for part in self.command]

    async def create_task(self, instruction: str, attachments: Optional[list] = None) -> TaskHandle:
        # One agent at a time: a task the caller gave up on is stopped first.
        await self._stop_workers("superseded by a new task")

        record = ConversationRecord(instruction=instruction, attachments=list(attachments or []))
        record.message_history.append({"role": "user", "content": instruction})
        handle = ConversationTask(self, record)

        self.tasks[handle.id] = handle
        self._foreground = handle

        worker = asyncio.create_task(self._run(handle))
        self._workers.add(worker)
        worker.add_done_callback(self._workers.discard)

        log.info("batch.runtime.task_created",
                 task_id=handle.id,
                 instruction_length=len(instruction))
        return handle

    def current_foreground_task(self) -> Optional[TaskHandle]:
        return self._foreground

    async def focus(self, task_id: str) -> None:
        if task_id not in self.tasks:
            log.warning("batch.runtime.focus_unknown", task_id=task_id)
            return
        self.focused_task_id = task_id
        log.debug("batch.runtime.focus", task_id=task_id)

    async def _run(self, handle: ConversationTask) -> None:
        record = handle.record
        argv = self.build_argv(record.instruction)
        proc = None
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(self.cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            try:
                stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
            except asyncio.TimeoutError:
                proc.kill()
                await proc.wait()
                raise

            record.returncode = proc.returncode
            text = stdout.decode("utf-8", errors="replace").strip()
            if text:
                record.message_history.append({"role": "assistant", "content": text})
                record.display_history.append({"type": "say", "say": "text", "text": text})

            if proc.returncode != 0:
                error = stderr.decode("utf-8", errors="replace").strip()
                _record_error(record, error or f"exit code {proc.returncode}")
                log.warning("batch.runtime.task_exit_nonzero",
                            task_id=handle.id,
                            returncode=proc.returncode,
                            stderr=error[:2000])
            else:
                log.info("batch.runtime.task_finished",
                         task_id=handle.id,
                         response_length=len(text))

        except asyncio.TimeoutError:
            _record_error(record, f"agent timed out after {self.timeout} seconds")
            log.error("batch.runtime.task_timeout", task_id=handle.id, timeout=self.timeout)
        except asyncio.CancelledError:
            if proc is not None and proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise
        except OSError as e:
            _record_error(record, f"agent could not be started: {e}")
            log.exception(e, "batch.runtime.task_launch_failed",
                          {"task_id": handle.id, "argv0": argv[0] if argv else None})
        finally:
            record.finished_at = datetime.now().timestamp()
            if self._foreground is handle:
                self._foreground = None

    async def _stop_workers(self, reason: str) -> None:
        """Kill running agent processes and wait until they are gone."""
        if not self._workers:
            return

        for handle in self.tasks.values():
            record = handle.record
            if record.finished_at is None:
                _record_error(record, f"agent stopped: {reason}")
                record.finished_at = datetime.now().timestamp()
                log.warning("batch.runtime.task_stopped", task_id=handle.id, reason=reason)
                if self._foreground is handle:
                    self._foreground = None

        workers = list(self._workers)
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)

    async def close(self) -> None:
        """Kill agent processes that are still running."""
        await self._stop_workers("runtime closed")


def _record_error(record: ConversationRecord, message: str) -> None:
    if record.error is None:
        record.error = message
    record.display_history.append({"type": "say", "say": "error", "text": message})
