"""
LLM client abstraction.

Provides a unified interface for chat completions against a local Ollama
server, plus a retrying wrapper with exponential backoff and helpers for
pulling structured JSON out of free-form model replies.
"""

import ast
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any

import httpx
from pydantic import BaseModel, Field
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from interview_flow.config import get_settings
from interview_flow.errors import GenerationFailed

logger = logging.getLogger(__name__)

# Default model for Ollama
DEFAULT_OLLAMA_MODEL = "gpt-oss:20b"


class Message(BaseModel):
    """A message in a conversation."""

    role: str = Field(..., description="Role of the speaker (system, user, assistant)")
    content: str = Field(..., description="Message content")


class GenerationOptions(BaseModel):
    """Sampling options passed with every chat completion."""

    max_tokens: int = Field(default=256, ge=1, description="Maximum tokens to generate")
    stop: list[str] = Field(
        default_factory=lambda: ["Observation:"],
        description="Stop sequences",
    )
    temperature: float = Field(default=0.0, ge=0.0, le=2.0, description="Sampling temperature")


class LLMResponse(BaseModel):
    """Response from an LLM."""

    content: str = Field(..., description="Generated text content")
    finish_reason: str = Field(default="stop", description="Reason for completion")
    usage: dict[str, int] = Field(
        default_factory=dict,
        description="Token usage information",
    )
    model: str = Field(default="", description="Model used for generation")
    raw_response: dict[str, Any] = Field(
        default_factory=dict,
        description="Raw response from the API",
    )


class ChatCompletionError(Exception):
    """Exception raised when the chat-completion service fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientChatError(ChatCompletionError):
    """A failure worth retrying (timeouts, connection errors, 429/5xx)."""


class FatalChatError(ChatCompletionError):
    """A failure that will not go away on retry."""


class LLMClientBase(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    async def chat(
        self,
        messages: list[Message],
        options: GenerationOptions | None = None,
    ) -> LLMResponse:
        """
        Generate a chat completion.

        Args:
            messages: Conversation history, system prompt first.
            options: Sampling options (defaults if None).

        Returns:
            Generated response.

        Raises:
            ChatCompletionError: If the service fails.
        """
        ...

    async def close(self) -> None:
        """Close the client and release resources."""
        return None


class LLMClient(LLMClientBase):
    """
    Ollama-based LLM client.

    Talks to the Ollama HTTP API (`POST /api/chat`) with streaming disabled.
    """

    def __init__(
        self,
        model: str | None = None,
        base_url: str | None = None,
        timeout: int | None = None,
    ) -> None:
        """
        Initialize the Ollama LLM client.

        Args:
            model: Model name (defaults to the configured model).
            base_url: Ollama server URL (defaults to the configured URL).
            timeout: Timeout in seconds for each request.
        """
        settings = get_settings()
        self._model = model or settings.llm_model_name or DEFAULT_OLLAMA_MODEL
        self._base_url = base_url or settings.llm_base_url
        self._timeout = timeout or settings.llm_timeout
        self._client: httpx.AsyncClient | None = None

        logger.info(f"Initialized Ollama LLM client with model: {self._model}")

    @property
    def model(self) -> str:
        """Get the model name."""
        return self._model

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
            )
        return self._client

    def _build_payload(self, messages: list[Message], options: GenerationOptions) -> dict[str, Any]:
        return {
            "model": self._model,
            "messages": [msg.model_dump() for msg in messages],
            "stream": False,
            "options": {
                "temperature": options.temperature,
                "num_predict": options.max_tokens,
                "stop": options.stop,
            },
        }

    async def chat(
        self,
        messages: list[Message],
        options: GenerationOptions | None = None,
    ) -> LLMResponse:
        """
        Generate a chat completion using Ollama.

        Args:
            messages: Conversation history, system prompt first.
            options: Sampling options (defaults if None).

        Returns:
            Generated response.

        Raises:
            TransientChatError: On timeouts, transport errors, 429 or 5xx.
            FatalChatError: On other HTTP errors or an unreadable body.
        """
        options = options or GenerationOptions()
        client = await self._get_client()
        payload = self._build_payload(messages, options)

        try:
            response = await client.post("/api/chat", json=payload)
        except httpx.TimeoutException as e:
            raise TransientChatError(f"Ollama timed out after {self._timeout} seconds") from e
        except httpx.TransportError as e:
            raise TransientChatError(f"Ollama transport error: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientChatError(
                f"Ollama returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise FatalChatError(
                f"Ollama rejected the request: HTTP {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise FatalChatError("Ollama returned a non-JSON body") from e

        content = (data.get("message") or {}).get("content", "").strip()
        logger.debug(f"Ollama response length: {len(content)} chars")

        return LLMResponse(
            content=content,
            finish_reason=data.get("done_reason", "stop"),
            usage={
                "prompt_tokens": int(data.get("prompt_eval_count", 0)),
                "completion_tokens": int(data.get("eval_count", 0)),
            },
            model=data.get("model", self._model),
            raw_response=data,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None


class RetryingLLMClient(LLMClientBase):
    """
    Wraps another client with bounded exponential-backoff retries.

    Only TransientChatError is retried. Once attempts are exhausted, or on a
    fatal error, GenerationFailed is raised.
    """

    def __init__(
        self,
        inner: LLMClientBase,
        max_attempts: int | None = None,
        min_delay: float | None = None,
        max_delay: float | None = None,
    ) -> None:
        settings = get_settings()
        self._inner = inner
        self._max_attempts = max_attempts if max_attempts is not None else settings.llm_max_attempts
        self._min_delay = min_delay if min_delay is not None else settings.llm_retry_min_delay
        self._max_delay = max_delay if max_delay is not None else settings.llm_retry_max_delay

    @property
    def inner(self) -> LLMClientBase:
        return self._inner

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(f"Chat completion failed (attempt {retry_state.attempt_number}): {error}")

    async def chat(
        self,
        messages: list[Message],
        options: GenerationOptions | None = None,
    ) -> LLMResponse:
        attempts = 0
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(
                multiplier=self._min_delay,
                min=self._min_delay,
                max=self._max_delay,
            ),
            retry=retry_if_exception_type(TransientChatError),
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    return await self._inner.chat(messages, options)
        except ChatCompletionError as e:
            logger.error(f"Chat completion gave up after {attempts} attempt(s): {e}")
            raise GenerationFailed(str(e), attempts=attempts) from e
        raise GenerationFailed("Chat completion produced no result", attempts=attempts)

    async def close(self) -> None:
        await self._inner.close()


_SMART_QUOTES = str.maketrans({"“": '"', "”": '"', "‘": "'", "’": "'"})

# Applied in order; keys are only quoted after "{" or "," so values stay intact.
_JSON_REPAIRS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r",(\s*[}\]])"), r"\1"),
    (re.compile(r"\bNone\b"), "null"),
    (re.compile(r"\bTrue\b"), "true"),
    (re.compile(r"\bFalse\b"), "false"),
    (re.compile(r"([{,]\s*)([A-Za-z_][\w\-]*)(\s*:)"), r'\1"\2"\3'),
)


def repair_json_text(text: str) -> str:
    """
    Rewrite near-JSON model output into something `json.loads` accepts.

    Handles smart quotes, trailing commas, Python literals, bare keys and
    single-quoted documents. Callers strip any ``` fence first.

    Args:
        text: Candidate JSON text.

    Returns:
        The repaired text; empty if the input was empty.
    """
    repaired = (text or "").strip().translate(_SMART_QUOTES)
    for pattern, replacement in _JSON_REPAIRS:
        repaired = pattern.sub(replacement, repaired)
    if '"' not in repaired:
        repaired = repaired.replace("'", '"')
    return repaired


def _to_json_value(value: Any) -> Any:
    if value is ...:
        return None
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(key): _to_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_to_json_value(item) for item in value]
    return str(value)


def parse_json_loose(raw: str) -> dict[str, Any] | list[Any] | None:
    """Parse JSON with best-effort repair.

    Tries the text as-is, then repaired, then as a Python literal. Raw
    newlines inside strings are accepted.

    Returns a dict/list on success, else None.
    """
    if not raw or not raw.strip():
        return None

    candidates = (raw.strip(), repair_json_text(raw))
    for candidate in candidates:
        try:
            value = json.loads(candidate, strict=False)
        except json.JSONDecodeError:
            continue
        return value if isinstance(value, (dict, list)) else None

    for candidate in candidates:
        try:
            value = ast.literal_eval(candidate)
        except (ValueError, TypeError, SyntaxError):
            continue
        if isinstance(value, (dict, list, tuple, set)):
            return _to_json_value(value)
        return None
    return None


_FENCED_OBJECT = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL | re.IGNORECASE)


def extract_delimited_json(text: str) -> dict[str, Any] | None:
    """
    Find a ```-fenced JSON object in a model reply and parse it.

    Plain conversational replies (no fenced object) return None, so a
    question to the user is never mistaken for structured output.

    Args:
        text: Model reply.

    Returns:
        The parsed object, or None if there is no parseable fenced object.
    """
    match = _FENCED_OBJECT.search(text or "")
    if not match:
        return None
    parsed = parse_json_loose(match.group(1))
    if isinstance(parsed, dict):
        return parsed
    logger.debug(f"Fenced block was not a JSON object: {match.group(1)[:200]}")
    return None
