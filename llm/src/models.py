"""
Data types for the completion transport.
"""

from dataclasses import dataclass, field
from typing import Optional


class CompletionError(Exception):
    """A completion request failed.

    `kind` is a short category (auth_required, timeout, http_status,
    connection_error, bad_response) used in logs.
    """

    def __init__(self, message: str, kind: str = "api_error", status: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.status = status


@dataclass
class LLMResponse:
    """Parsed outcome of one chat-completions request."""
    success: bool
    text: str = ""
    error: Optional[str] = None      # error category when success is False
    message: Optional[str] = None    # human-readable detail
    backend: Optional[str] = None    # model id the request went to
    status: Optional[int] = None
    response_time_seconds: Optional[float] = None
    usage: dict = field(default_factory=dict)

    def raise_for_error(self) -> str:
        """Return the text, or raise CompletionError for a failed response."""
        if not self.success:
            raise CompletionError(
                self.message or self.error or "completion failed",
                kind=self.error or "api_error",
                status=self.status,
            )
        return self.text
