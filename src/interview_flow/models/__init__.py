"""
Models module for LLM client abstraction.

Provides a unified interface for interacting with Ollama locally.
"""

from interview_flow.models.llm_client import (
    DEFAULT_OLLAMA_MODEL,
    ChatCompletionError,
    FatalChatError,
    GenerationOptions,
    LLMClient,
    LLMClientBase,
    LLMResponse,
    Message,
    RetryingLLMClient,
    TransientChatError,
    extract_delimited_json,
    parse_json_loose,
)

__all__ = [
    "LLMClient",
    "LLMClientBase",
    "LLMResponse",
    "Message",
    "GenerationOptions",
    "RetryingLLMClient",
    "ChatCompletionError",
    "TransientChatError",
    "FatalChatError",
    "DEFAULT_OLLAMA_MODEL",
    "extract_delimited_json",
    "parse_json_loose",
]
