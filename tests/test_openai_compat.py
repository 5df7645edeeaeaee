"""Tests for the OpenAI-compatible provider and the provider factory."""

import json

import httpx
import pytest

from relay.clients import AnthropicProvider, OpenAICompatibleProvider, create_provider
from relay.clients.base import INTERRUPTED_TOOL_RESULT
from relay.clients.errors import (
    AuthenticationFailedError,
    InvalidResponseError,
    NotConfiguredError,
    ProviderAPIError,
    RateLimitExceededError,
    RequestFailedError,
    StreamInterruptedError,
)
from relay.clients.openai_compat import GLM_BASE_URL, KIMI_BASE_URL, to_openai_messages
from relay.config import RelayConfig
from relay.models.llm import CompletionRequest, DeltaChunk, DoneChunk, StopReason, ToolDefinition, ToolUseChunk
from relay.models.messages import Message


def make_provider(handler, base_url="https://llm.example.com/v1/"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenAICompatibleProvider(api_key="sk-test", base_url=base_url, default_model="m-1", http_client=client)


def chat_reply(message, finish_reason="stop", usage=None):
    return {
        "choices": [{"index": 0, "message": message, "finish_reason": finish_reason}],
        "usage": usage or {"prompt_tokens": 9, "completion_tokens": 4},
    }


def sse(*events):
    return "".join(f"data: {event if isinstance(event, str) else json.dumps(event)}\n\n" for event in events)


class TestMessageConversion:
    """Tests for transcript to chat message conversion."""

    def test_tool_calls_attach_to_assistant(self):
        converted = to_openai_messages(
            [
                Message.user("list"),
                Message.assistant("Looking"),
                Message.tool_use("c1", "glob", {"pattern": "*"}),
                Message.tool_result("c1", "a.py"),
            ],
            system_prompt="sys",
        )

        assert converted[0] == {"role": "system", "content": "sys"}
        assistant = converted[2]
        assert assistant["role"] == "assistant"
        assert assistant["tool_calls"][0]["function"] == {"name": "glob", "arguments": '{"pattern": "*"}'}
        assert converted[3] == {"role": "tool", "tool_call_id": "c1", "content": "a.py"}

    def test_tool_call_without_assistant_text(self):
        converted = to_openai_messages([Message.user("go"), Message.tool_use("c1", "bash", {"command": "ls"})])

        assert converted[1]["role"] == "assistant"
        assert converted[1]["content"] is None

    def test_aborted_tool_round_replays_with_error_result(self):
        converted = to_openai_messages(
            [
                Message.user("run it"),
                Message.assistant(""),
                Message.tool_use("c1", "bash", {"command": "false"}),
                Message.assistant("Error: Tool execution failed: boom", metadata={"error": True}),
                Message.user("try again"),
            ]
        )

        assert [m["role"] for m in converted] == ["user", "assistant", "tool", "user"]
        assert converted[1]["tool_calls"][0]["id"] == "c1"
        assert converted[2]["tool_call_id"] == "c1"
        assert converted[2]["content"] == INTERRUPTED_TOOL_RESULT
        assert converted[3] == {"role": "user", "content": "try again"}


class TestComplete:
    """Tests for chat completions."""

    @pytest.mark.asyncio
    async def test_request_shape_and_text_reply(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=chat_reply({"role": "assistant", "content": "Hi!"}))

        provider = make_provider(handler)
        tools = [ToolDefinition(name="read", description="Read", input_schema={"type": "object"})]

        response = await provider.complete(
            CompletionRequest(messages=[Message.user("hello")], tools=tools, max_tokens=100, temperature=0.2)
        )

        assert response.content == "Hi!"
        assert response.stop_reason == StopReason.END_TURN
        assert response.usage.total_tokens == 13
        assert seen["url"] == "https://llm.example.com/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["model"] == "m-1"
        assert seen["body"]["max_tokens"] == 100
        assert seen["body"]["tools"][0] == {
            "type": "function",
            "function": {"name": "read", "description": "Read", "parameters": {"type": "object"}},
        }

    @pytest.mark.asyncio
    async def test_tool_call_reply(self):
        message = {
            "role": "assistant",
            "content": None,
            "tool_calls": [
                {"id": "c1", "type": "function", "function": {"name": "read", "arguments": '{"path": "a.txt"}'}}
            ],
        }
        provider = make_provider(lambda request: httpx.Response(200, json=chat_reply(message, "tool_calls")))

        response = await provider.complete(CompletionRequest(messages=[Message.user("read")]))

        assert response.content == ""
        assert response.stop_reason == StopReason.TOOL_USE
        assert response.tool_uses[0].id == "c1"
        assert response.tool_uses[0].input == {"path": "a.txt"}

    @pytest.mark.asyncio
    async def test_length_finish_reason(self):
        provider = make_provider(
            lambda request: httpx.Response(200, json=chat_reply({"content": "trunc"}, finish_reason="length"))
        )

        response = await provider.complete(CompletionRequest(messages=[Message.user("hi")]))

        assert response.stop_reason == StopReason.MAX_TOKENS

    @pytest.mark.asyncio
    async def test_bad_tool_arguments(self):
        message = {"tool_calls": [{"id": "c1", "function": {"name": "read", "arguments": "{not json"}}]}
        provider = make_provider(lambda request: httpx.Response(200, json=chat_reply(message)))

        with pytest.raises(InvalidResponseError):
            await provider.complete(CompletionRequest(messages=[Message.user("hi")]))

    @pytest.mark.asyncio
    async def test_missing_choices(self):
        provider = make_provider(lambda request: httpx.Response(200, json={"id": "x"}))

        with pytest.raises(InvalidResponseError):
            await provider.complete(CompletionRequest(messages=[Message.user("hi")]))

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "error"),
        [(401, AuthenticationFailedError), (429, RateLimitExceededError), (500, ProviderAPIError)],
    )
    async def test_status_errors(self, status, error):
        provider = make_provider(lambda request: httpx.Response(status, json={"error": {"message": "nope"}}))

        with pytest.raises(error):
            await provider.complete(CompletionRequest(messages=[Message.user("hi")]))

    @pytest.mark.asyncio
    async def test_api_error_message_extracted(self):
        provider = make_provider(lambda request: httpx.Response(400, json={"error": {"message": "bad model"}}))

        with pytest.raises(ProviderAPIError, match="400 - bad model"):
            await provider.complete(CompletionRequest(messages=[Message.user("hi")]))

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(RequestFailedError):
            await make_provider(handler).complete(CompletionRequest(messages=[Message.user("hi")]))


class TestStreaming:
    """Tests for server-sent event streaming."""

    @pytest.mark.asyncio
    async def test_text_and_tool_call_deltas(self):
        body = sse(
            {"choices": [{"delta": {"content": "Hel"}}]},
            {"choices": [{"delta": {"content": "lo"}}]},
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "id": "c1", "function": {"name": "read"}}]}}]},
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"arguments": '{"path":'}}]}}]},
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"arguments": ' "a"}'}}]}}]},
            {"choices": [{"delta": {}, "finish_reason": "tool_calls"}]},
            "[DONE]",
        )
        provider = make_provider(lambda request: httpx.Response(200, text=body))

        chunks = [c async for c in provider.stream_completion(CompletionRequest(messages=[Message.user("hi")]))]

        assert chunks[:2] == [DeltaChunk("Hel"), DeltaChunk("lo")]
        assert isinstance(chunks[2], ToolUseChunk)
        assert chunks[2].tool_use.name == "read"
        assert chunks[2].tool_use.input == {"path": "a"}
        assert chunks[-1] == DoneChunk()

    @pytest.mark.asyncio
    async def test_request_marks_stream(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, text=sse("[DONE]"))

        chunks = [
            c async for c in make_provider(handler).stream_completion(CompletionRequest(messages=[Message.user("x")]))
        ]

        assert seen["body"]["stream"] is True
        assert chunks == [DoneChunk()]

    @pytest.mark.asyncio
    async def test_stream_cut_short(self):
        body = sse({"choices": [{"delta": {"content": "part"}}]})
        provider = make_provider(lambda request: httpx.Response(200, text=body))
        received = []

        with pytest.raises(StreamInterruptedError):
            async for chunk in provider.stream_completion(CompletionRequest(messages=[Message.user("hi")])):
                received.append(chunk)

        assert received == [DeltaChunk("part")]

    @pytest.mark.asyncio
    async def test_stream_status_error(self):
        provider = make_provider(lambda request: httpx.Response(429, text="slow down"))

        with pytest.raises(RateLimitExceededError):
            async for _ in provider.stream_completion(CompletionRequest(messages=[Message.user("hi")])):
                pass


class TestCreateProvider:
    """Tests for the provider factory."""

    def test_claude(self):
        provider = create_provider(RelayConfig(provider="claude", api_key="k"))
        assert isinstance(provider, AnthropicProvider)

    @pytest.mark.parametrize(("name", "base_url"), [("glm", GLM_BASE_URL), ("kimi", KIMI_BASE_URL)])
    def test_presets(self, name, base_url):
        provider = create_provider(RelayConfig(provider=name, api_key="k"))

        assert isinstance(provider, OpenAICompatibleProvider)
        assert provider.name == name
        assert provider.base_url == base_url
        assert not provider.default_model.startswith("claude")

    def test_base_url_override(self):
        provider = create_provider(RelayConfig(provider="openai", api_key="k", base_url="http://localhost:8080/v1"))
        assert provider.endpoint == "http://localhost:8080/v1/chat/completions"

    def test_missing_key(self):
        with pytest.raises(NotConfiguredError):
            create_provider(RelayConfig(provider="openai", api_key=None))

    def test_unknown_provider(self):
        with pytest.raises(NotConfiguredError, match="unknown provider"):
            create_provider(RelayConfig(provider="mystery", api_key="k"))
