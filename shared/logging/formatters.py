"""
Formatters for batchloop log records.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from .context import get_correlation_id, get_session_id, get_request_id


class JsonLinesFormatter(logging.Formatter):
    """
    One JSON object per line.

    Fields: timestamp (UTC ISO 8601), level, event_type, module,
    component, correlation_id, plus session_id / request_id when set
    and whatever keyword data the event carried.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "event_type": getattr(record, 'event_type', 'log'),
            "module": getattr(record, 'log_module', record.module),
            "component": getattr(record, 'component', record.funcName),
            "correlation_id": get_correlation_id(),
        }

        session_id = get_session_id()
        if session_id:
            log_entry["session_id"] = session_id

        request_id = get_request_id()
        if request_id:
            log_entry["request_id"] = request_id

        if hasattr(record, 'event_data'):
            log_entry.update(record.event_data)

        if record.getMessage() and record.getMessage() != log_entry.get("event_type"):
            log_entry["message"] = record.getMessage()

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=self._json_serializer)

    def _json_serializer(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if hasattr(obj, "value"):
            # str-valued enums such as RunStatus
            return obj.value
        if hasattr(obj, '__dict__'):
            return str(obj)
        return repr(obj)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter.

    Format: timestamp [LEVEL] [module.component] event_type key=value ...
    """

    # Keys already shown in the prefix
    _HIDDEN = {"event_type", "log_module", "component"}

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        module = getattr(record, 'log_module', record.module)
        component = getattr(record, 'component', '')
        event_type = getattr(record, 'event_type', '')

        prefix = f"{timestamp} [{record.levelname}]"

        if module and component:
            prefix += f" [{module}.{component}]"

        message = record.getMessage()
        if event_type and event_type != message:
            message = f"{event_type}: {message}" if message else event_type

        data = getattr(record, 'event_data', {})
        details = " ".join(
            f"{key}={_short(value)}"
            for key, value in data.items()
            if key not in self._HIDDEN and key != "stack_trace"
        )
        if details:
            message = f"{message} {details}"

        return f"{prefix} {message}"


def _short(value: Any, limit: int = 80) -> str:
    text = getattr(value, "value", value)
    text = str(text).replace("\n", " ")
    if len(text) > limit:
        return text[:limit - 3] + "..."
    return text
