"""
Completion client - chat completions over an OpenRouter-compatible API.

One request per call. Retrying is the caller's business (see retry.py),
so a failed request raises CompletionError instead of looping here.
"""

import asyncio
import os
import time
import uuid
from typing import Optional

import aiohttp

from shared.logging import get_logger

from .models import CompletionError, LLMResponse

log = get_logger("llm", "client")

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "anthropic/claude-sonnet-4"


class CompletionClient:
    """
    Async completion transport.

    Usage:
        client = CompletionClient()
        text = await client.complete(
            {"model": "openai/gpt-4o"},
            "Write a template...",
            "You are a precise assistant.",
            {"temperature": 0.3},
        )
        await client.close()
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        default_model: str = DEFAULT_MODEL,
    ):
        """
        Args:
            api_key: API key (falls back to OPENROUTER_API_KEY)
            base_url: API base URL, trailing slash ignored
            default_model: Model used when the request config names none
        """
        self._api_key = api_key or os.environ.get("OPENROUTER_API_KEY")
        self._base_url = base_url.rstrip("/")
        self._default_model = default_model
        self._http_session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, llm_config: dict) -> "CompletionClient":
        return cls(
            api_key=llm_config.get("api_key"),
            base_url=llm_config.get("base_url", DEFAULT_BASE_URL),
            default_model=llm_config.get("model", DEFAULT_MODEL),
        )

    async def _get_http_session(self) -> aiohttp.ClientSession:
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession()
        return self._http_session

    async def close(self):
        """Close HTTP session."""
        if self._http_session and not self._http_session.closed:
            await self._http_session.close()
            self._http_session = None

    async def complete(
        self,
        config: dict,
        prompt: str,
        system_prompt: Optional[str] = None,
        options: Optional[dict] = None,
    ) -> str:
        """
        Run one chat completion and return the assistant text.

        Args:
            config: Request settings (model, temperature, max_tokens, timeout_seconds)
            prompt: User message
            system_prompt: Optional system message
            options: Per-call overrides; "language" appends a reply-language directive

        Raises:
            CompletionError: on any failure
        """
        options = options or {}
        settings = {**config, **{k: v for k, v in options.items() if k != "language"}}

        language = options.get("language") or config.get("language")
        if language:
            directive = f"Always respond in {language}."
            system_prompt = f"{system_prompt}\n\n{directive}" if system_prompt else directive

        response = await self._send(
            prompt,
            model=settings.get("model", self._default_model),
            system_prompt=system_prompt,
            temperature=settings.get("temperature", 0.3),
            max_tokens=settings.get("max_tokens", 2000),
            timeout_seconds=settings.get("timeout_seconds", 120),
        )
        return response.raise_for_error()

    async def _send(
        self,
        prompt: str,
        model: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 2000,
        timeout_seconds: float = 120,
    ) -> LLMResponse:
        """POST /chat/completions and parse the result into an LLMResponse."""
        if not self._api_key:
            return LLMResponse(
                success=False,
                error="auth_required",
                message="OPENROUTER_API_KEY not configured",
                backend=model,
            )

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        request_body = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        request_id = str(uuid.uuid4())
        start_time = log.request_start(request_id, model, prompt)

        try:
            session = await self._get_http_session()
            async with session.post(
                f"{self._base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                    "X-Title": "batchloop",
                },
                json=request_body,
                timeout=aiohttp.ClientTimeout(total=timeout_seconds),
            ) as resp:
                data = await resp.json(content_type=None)

                if resp.status != 200:
                    error_msg = _error_message(data)
                    log.request_error(request_id, model, error_msg, "http_status",
                                      start_time, status=resp.status)
                    return LLMResponse(
                        success=False,
                        error="http_status",
                        message=f"HTTP {resp.status}: {error_msg}",
                        backend=model,
                        status=resp.status,
                    )

                try:
                    text = data["choices"][0]["message"]["content"] or ""
                except (KeyError, IndexError, TypeError):
                    log.request_error(request_id, model, str(data)[:500],
                                      "bad_response", start_time)
                    return LLMResponse(
                        success=False,
                        error="bad_response",
                        message="Response did not contain choices[0].message.content",
                        backend=model,
                        status=resp.status,
                    )

                log.request_complete(request_id, model, text, start_time)
                return LLMResponse(
                    success=True,
                    text=text,
                    backend=model,
                    status=resp.status,
                    response_time_seconds=time.time() - start_time,
                    usage=data.get("usage") or {},
                )

        except asyncio.TimeoutError:
            log.request_error(request_id, model, "timeout", "timeout", start_time)
            return LLMResponse(
                success=False,
                error="timeout",
                message=f"Request timed out after {timeout_seconds} seconds",
                backend=model,
            )

        except aiohttp.ClientError as e:
            log.request_error(request_id, model, str(e), "connection_error", start_time)
            return LLMResponse(
                success=False,
                error="connection_error",
                message=str(e),
                backend=model,
            )

        except ValueError as e:
            # body was not JSON
            log.request_error(request_id, model, str(e), "bad_response", start_time)
            return LLMResponse(
                success=False,
                error="bad_response",
                message=f"Invalid JSON body: {e}",
                backend=model,
            )


def _error_message(data) -> str:
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            return str(error.get("message", error))
        if error:
            return str(error)
    return str(data)
