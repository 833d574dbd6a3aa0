"""
Data models for batch runs.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional


DISCOVERY_FILE_PATH = "[file discovery]"


class SubTaskStatus(str, Enum):
    """Sub-task lifecycle states."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RunStatus(str, Enum):
    """Aggregate run states."""
    DISCOVERING_FILES = "discovering_files"
    PARSING = "parsing"
    GENERATING_TEMPLATE = "generating_template"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED})


def _now() -> float:
    return datetime.now().timestamp()


@dataclass
class SubTask:
    """
    One unit of delegated work: a single file, or the discovery step.

    Status moves only through the mark_* / enable / disable methods.
    A disabled sub-task that never ran is always CANCELLED.
    """
    # Repo-relative path, or DISCOVERY_FILE_PATH for the discovery slot
    file_path: str

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: SubTaskStatus = SubTaskStatus.PENDING
    enabled: bool = True

    # Timestamps (epoch seconds)
    started_at: Optional[float] = None
    ended_at: Optional[float] = None

    error: Optional[str] = None

    # Id of the conversation task this sub-task was delegated to
    external_task_id: Optional[str] = None

    @property
    def is_schedulable(self) -> bool:
        return self.enabled and self.status == SubTaskStatus.PENDING

    def mark_running(self):
        self.status = SubTaskStatus.RUNNING
        self.started_at = _now()

    def mark_completed(self):
        self.status = SubTaskStatus.COMPLETED
        self.ended_at = _now()

    def mark_failed(self, error: str):
        self.status = SubTaskStatus.FAILED
        self.ended_at = _now()
        self.error = error

    def mark_cancelled(self):
        """Forced cancellation; also disables the sub-task."""
        self.status = SubTaskStatus.CANCELLED
        self.enabled = False
        if self.ended_at is None:
            self.ended_at = _now()

    def disable(self):
        self.enabled = False
        self.status = SubTaskStatus.CANCELLED
        self.ended_at = _now()

    def enable(self):
        self.enabled = True
        self.status = SubTaskStatus.PENDING
        self.error = None
        self.ended_at = None

    def copy(self) -> "SubTask":
        return replace(self)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "file_path": self.file_path,
            "status": self.status.value,
            "enabled": self.enabled,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "error": self.error,
            "external_task_id": self.external_task_id,
        }


@dataclass
class RunConfig:
    """
    The single active batch run owned by a TaskOrchestrator.

    In rule mode sub_tasks[0] is the discovery sub-task.
    """
    prompt: str
    is_rule_mode: bool = False

    # Directory the legacy prompt pointed at ("" = project root)
    target_directory: str = ""

    files: list[str] = field(default_factory=list)
    sub_tasks: list[SubTask] = field(default_factory=list)

    discovery_rule: Optional[str] = None
    processing_rule: Optional[str] = None

    # Per-file instruction with a placeholder ({{file}} or {filePath})
    instruction_template: Optional[str] = None

    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: float = field(default_factory=_now)

    @property
    def file_sub_tasks(self) -> list[SubTask]:
        """Sub-tasks that count toward per-file progress."""
        if self.is_rule_mode:
            return self.sub_tasks[1:]
        return self.sub_tasks

    @property
    def discovery_sub_task(self) -> Optional[SubTask]:
        if self.is_rule_mode and self.sub_tasks:
            return self.sub_tasks[0]
        return None

    def find_sub_task(self, sub_task_id: str) -> Optional[SubTask]:
        for sub_task in self.sub_tasks:
            if sub_task.id == sub_task_id:
                return sub_task
        return None

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "prompt": self.prompt,
            "is_rule_mode": self.is_rule_mode,
            "target_directory": self.target_directory,
            "files": list(self.files),
            "discovery_rule": self.discovery_rule,
            "processing_rule": self.processing_rule,
            "instruction_template": self.instruction_template,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class RunProgress:
    """
    Immutable progress snapshot pushed to observers.

    current_index is the 0-based position, among file sub-tasks, of the
    current or most recent dispatch; -1 before the first one.
    """
    status: RunStatus
    current_index: int = -1
    total_count: int = 0
    completed_count: int = 0
    failed_count: int = 0
    message: str = ""
    current_sub_task: Optional[SubTask] = None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "current_index": self.current_index,
            "total_count": self.total_count,
            "completed_count": self.completed_count,
            "failed_count": self.failed_count,
            "message": self.message,
            "current_sub_task": (
                self.current_sub_task.to_dict() if self.current_sub_task else None
            ),
        }


@dataclass(frozen=True)
class ParsedRules:
    is_rule_mode: bool
    discovery_rule: Optional[str] = None
    processing_rule: Optional[str] = None
    original_prompt: Optional[str] = None


@dataclass(frozen=True)
class PathInfo:
    directory: str
    has_path: bool
    cleaned_prompt: str
