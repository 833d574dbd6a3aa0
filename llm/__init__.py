"""
LLM library - completion transport and retry helper.

Usage:
    from llm import CompletionClient, call_with_retry

    client = CompletionClient()
    text = await call_with_retry(
        lambda: client.complete({"model": "openai/gpt-4o"}, "Your prompt"),
    )
"""

from .src.client import CompletionClient, DEFAULT_BASE_URL, DEFAULT_MODEL
from .src.models import CompletionError, LLMResponse
from .src.retry import call_with_retry

__all__ = [
    "CompletionClient",
    "CompletionError",
    "LLMResponse",
    "call_with_retry",
    "DEFAULT_BASE_URL",
    "DEFAULT_MODEL",
]

__version__ = "0.1.0"
