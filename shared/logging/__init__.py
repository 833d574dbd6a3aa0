"""
Structured logging for batchloop.

Provides JSON Lines logging with correlation IDs so every line written
while a batch run is active can be traced back to that run.

Usage:
    from shared.logging import get_logger, correlation_context

    log = get_logger("batch", "orchestrator")

    with correlation_context(session_id=run_id):
        log.info("batch.orchestrator.dispatch",
                 sub_task_id=sub_task.id,
                 file_path=sub_task.file_path)
"""

from .logger import get_logger, BatchLogger
from .context import (
    correlation_context,
    get_correlation_id,
    set_correlation_id,
    get_session_id,
)

__all__ = [
    "get_logger",
    "BatchLogger",
    "correlation_context",
    "get_correlation_id",
    "set_correlation_id",
    "get_session_id",
]
