"""
Batch file processing driven by a conversational coding agent.

Usage:
    from batch import TaskOrchestrator, CliAgentRuntime
    from llm import CompletionClient

    orchestrator = TaskOrchestrator(
        runtime=CliAgentRuntime(cwd),
        transport=CompletionClient(),
        cwd=cwd,
    )
    await orchestrator.start("#find every service module\n$add type hints")
    await orchestrator.continue_next()
"""

from .events import ProgressBroadcaster, ProgressObserver
from .extraction import extract_file_list
from .models import (
    ParsedRules,
    PathInfo,
    RunConfig,
    RunProgress,
    RunStatus,
    SubTask,
    SubTaskStatus,
)
from .orchestrator import BatchValidationError, TaskOrchestrator
from .paths import extract_directory
from .rules import parse_rules
from .runtime import AgentTaskError, CliAgentRuntime, ConversationRuntime, TaskHandle
from .templates import TemplateMode, TemplateSynthesizer
from .waiter import CompletionWaiter, TaskTimeoutError

__all__ = [
    "TaskOrchestrator",
    "BatchValidationError",
    "CompletionWaiter",
    "TaskTimeoutError",
    "TemplateSynthesizer",
    "TemplateMode",
    "ConversationRuntime",
    "CliAgentRuntime",
    "TaskHandle",
    "AgentTaskError",
    "ProgressObserver",
    "ProgressBroadcaster",
    "parse_rules",
    "extract_directory",
    "extract_file_list",
    "RunConfig",
    "RunProgress",
    "RunStatus",
    "SubTask",
    "SubTaskStatus",
    "ParsedRules",
    "PathInfo",
]
