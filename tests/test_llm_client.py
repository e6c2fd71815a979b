import json

import httpx
import pytest

from interview_flow.errors import GenerationFailed
from interview_flow.models.llm_client import (
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


class FlakyClient(LLMClientBase):
    """Raises the scripted errors in order, then answers."""

    def __init__(self, errors: list[Exception], content: str = "ok") -> None:
        self._errors = list(errors)
        self._content = content
        self.calls = 0

    async def chat(self, messages, options=None) -> LLMResponse:
        self.calls += 1
        if self._errors:
            raise self._errors.pop(0)
        return LLMResponse(content=self._content, model="fake")


def _mock_client(handler) -> LLMClient:
    client = LLMClient(model="test-model", base_url="http://ollama.test", timeout=5)
    client._client = httpx.AsyncClient(
        base_url="http://ollama.test",
        transport=httpx.MockTransport(handler),
    )
    return client


class TestJsonRepair:
    """Tests for best-effort JSON parsing of model output."""

    def test_repairs_single_quotes_and_trailing_commas(self) -> None:
        assert parse_json_loose("{'a': 1, 'b': 'x',}") == {"a": 1, "b": "x"}

    def test_repairs_unquoted_keys(self) -> None:
        assert parse_json_loose("{a: 1, b: true, c: null,}") == {"a": 1, "b": True, "c": None}

    def test_python_literals(self) -> None:
        assert parse_json_loose("{'done': True, 'value': None}") == {"done": True, "value": None}

    def test_raw_newlines_inside_strings(self) -> None:
        data = parse_json_loose('{"solution_code": "def f():\n    return 1"}')
        assert data == {"solution_code": "def f():\n    return 1"}

    def test_garbage_returns_none(self) -> None:
        assert parse_json_loose("not json at all") is None
        assert parse_json_loose("") is None

    def test_smart_quotes(self) -> None:
        assert parse_json_loose("{\u201cgoal\u201d: \u201cwrite code\u201d}") == {"goal": "write code"}

    def test_non_container_literal_returns_none(self) -> None:
        assert parse_json_loose("42") is None
        assert parse_json_loose("'just a string'") is None

    def test_fences_are_left_to_the_extractor(self) -> None:
        fenced = '```json\n{"a": 1}\n```'
        assert parse_json_loose(fenced) is None
        assert extract_delimited_json(fenced) == {"a": 1}


class TestExtractDelimitedJson:
    """Tests for pulling a fenced object out of a reply."""

    def test_fenced_object_with_language_tag(self) -> None:
        text = 'Sure.\n```json\n{"programming_language": "Python"}\n```'
        assert extract_delimited_json(text) == {"programming_language": "Python"}

    def test_fenced_object_without_tag(self) -> None:
        text = '```\n{"time_complexity": "O(n)",}\n```'
        assert extract_delimited_json(text) == {"time_complexity": "O(n)"}

    def test_plain_reply_is_not_structured(self) -> None:
        assert extract_delimited_json('Which language will you use? e.g. {"a": 1}') is None

    def test_fenced_list_is_ignored(self) -> None:
        assert extract_delimited_json("```\n[1, 2]\n```") is None


class TestLLMClient:
    """Tests for the Ollama HTTP client."""

    @pytest.mark.asyncio
    async def test_chat_sends_options_and_parses_reply(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = request.read()
            return httpx.Response(
                200,
                json={
                    "model": "test-model",
                    "message": {"role": "assistant", "content": "  Hello!  "},
                    "done_reason": "stop",
                    "prompt_eval_count": 12,
                    "eval_count": 3,
                },
            )

        client = _mock_client(handler)
        response = await client.chat(
            [Message(role="system", content="sys"), Message(role="user", content="hi")],
            GenerationOptions(max_tokens=64, stop=["Observation:"], temperature=0.0),
        )
        await client.close()

        assert seen["path"] == "/api/chat"
        body = json.loads(seen["body"])
        assert body["stream"] is False
        assert body["options"] == {"temperature": 0.0, "num_predict": 64, "stop": ["Observation:"]}
        assert body["messages"][0] == {"role": "system", "content": "sys"}
        assert response.content == "Hello!"
        assert response.usage == {"prompt_tokens": 12, "completion_tokens": 3}

    @pytest.mark.asyncio
    async def test_server_errors_are_transient(self) -> None:
        client = _mock_client(lambda request: httpx.Response(503, text="busy"))
        with pytest.raises(TransientChatError) as exc_info:
            await client.chat([Message(role="user", content="hi")])
        assert exc_info.value.status_code == 503
        await client.close()

    @pytest.mark.asyncio
    async def test_rate_limit_is_transient(self) -> None:
        client = _mock_client(lambda request: httpx.Response(429))
        with pytest.raises(TransientChatError):
            await client.chat([Message(role="user", content="hi")])
        await client.close()

    @pytest.mark.asyncio
    async def test_client_errors_are_fatal(self) -> None:
        client = _mock_client(lambda request: httpx.Response(404, text="model not found"))
        with pytest.raises(FatalChatError):
            await client.chat([Message(role="user", content="hi")])
        await client.close()

    @pytest.mark.asyncio
    async def test_connection_errors_are_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = _mock_client(handler)
        with pytest.raises(TransientChatError):
            await client.chat([Message(role="user", content="hi")])
        await client.close()


class TestRetryingLLMClient:
    """Tests for bounded exponential-backoff retries."""

    @pytest.mark.asyncio
    async def test_two_transient_failures_then_success(self) -> None:
        inner = FlakyClient([TransientChatError("down"), TransientChatError("down")], content="done")
        client = RetryingLLMClient(inner, max_attempts=3, min_delay=0, max_delay=0)

        response = await client.chat([Message(role="user", content="hi")])

        assert response.content == "done"
        assert inner.calls == 3

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_generation_failed(self) -> None:
        inner = FlakyClient([TransientChatError("down")] * 5)
        client = RetryingLLMClient(inner, max_attempts=3, min_delay=0, max_delay=0)

        with pytest.raises(GenerationFailed) as exc_info:
            await client.chat([Message(role="user", content="hi")])

        assert exc_info.value.attempts == 3
        assert inner.calls == 3

    @pytest.mark.asyncio
    async def test_fatal_error_is_not_retried(self) -> None:
        inner = FlakyClient([FatalChatError("bad request", status_code=400)])
        client = RetryingLLMClient(inner, max_attempts=3, min_delay=0, max_delay=0)

        with pytest.raises(GenerationFailed) as exc_info:
            await client.chat([Message(role="user", content="hi")])

        assert exc_info.value.attempts == 1
        assert inner.calls == 1

    def test_defaults_come_from_settings(self) -> None:
        client = RetryingLLMClient(FlakyClient([]))
        assert client._max_attempts == 3
        assert client.inner is not None
