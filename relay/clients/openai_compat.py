"""Provider for OpenAI-compatible chat completion APIs (OpenAI, GLM, Kimi)."""

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx

from relay.clients.base import replayable_messages
from relay.clients.errors import (
    AuthenticationFailedError,
    InvalidResponseError,
    ProviderAPIError,
    RateLimitExceededError,
    RequestFailedError,
    StreamInterruptedError,
)
from relay.models.llm import (
    Chunk,
    CompletionRequest,
    CompletionResponse,
    DeltaChunk,
    DoneChunk,
    StopReason,
    ToolDefinition,
    ToolUse,
    ToolUseChunk,
    Usage,
)
from relay.models.messages import Message, Role, TextContent, ToolResultContent, ToolUseContent
from relay.utils.logging import get_logger

logger = get_logger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"
GLM_BASE_URL = "https://open.bigmodel.cn/api/paas/v4/"
KIMI_BASE_URL = "https://api.moonshot.cn/v1"

FINISH_REASONS: dict[str, StopReason] = {
    "stop": StopReason.END_TURN,
    "length": StopReason.MAX_TOKENS,
    "tool_calls": StopReason.TOOL_USE,
    "function_call": StopReason.TOOL_USE,
}


def to_openai_messages(messages: list[Message], system_prompt: str | None = None) -> list[dict[str, Any]]:
    """Convert transcript messages to chat completion messages.

    Tool uses attach to the preceding assistant message as tool_calls (an empty
    assistant message is opened when there is none); tool results become
    role "tool" messages referencing the call id. The transcript goes through
    replayable_messages first, so an aborted tool round replays cleanly.
    """
    converted: list[dict[str, Any]] = []
    if system_prompt:
        converted.append({"role": "system", "content": system_prompt})

    for message in replayable_messages(messages):
        content = message.content
        if isinstance(content, ToolUseContent):
            call = {
                "id": content.id,
                "type": "function",
                "function": {"name": content.name, "arguments": json.dumps(content.input)},
            }
            if converted and converted[-1]["role"] == "assistant":
                converted[-1].setdefault("tool_calls", []).append(call)
            else:
                converted.append({"role": "assistant", "content": None, "tool_calls": [call]})
        elif isinstance(content, ToolResultContent):
            converted.append({"role": "tool", "tool_call_id": content.id, "content": content.content})
        elif isinstance(content, TextContent):
            role = message.role.value if message.role in (Role.USER, Role.ASSISTANT, Role.SYSTEM) else "user"
            converted.append({"role": role, "content": content.text})

    return converted


def to_openai_tools(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {"name": tool.name, "description": tool.description, "parameters": tool.input_schema},
        }
        for tool in tools
    ]


def _parse_arguments(raw: str | dict[str, Any] | None) -> dict[str, Any]:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidResponseError(f"tool call arguments are not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise InvalidResponseError("tool call arguments must be a JSON object")
    return parsed


class OpenAICompatibleProvider:
    """Chat completions provider speaking the OpenAI wire format over httpx."""

    def __init__(
        self,
        api_key: str,
        base_url: str = OPENAI_BASE_URL,
        default_model: str = "gpt-4o",
        provider_name: str = "openai",
        timeout: float = 120.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.default_model = default_model
        self.provider_name = provider_name
        self.client = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def name(self) -> str:
        return self.provider_name

    @property
    def endpoint(self) -> str:
        return self.base_url.rstrip("/") + "/chat/completions"

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    def _build_payload(self, request: CompletionRequest, stream: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model if request.model and request.model != "default" else self.default_model,
            "messages": to_openai_messages(request.messages, request.system_prompt),
        }
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.tools:
            payload["tools"] = to_openai_tools(request.tools)
        if stream:
            payload["stream"] = True
        return payload

    @staticmethod
    def _raise_for_status(status_code: int, body: str) -> None:
        if status_code in (401, 403):
            raise AuthenticationFailedError(body)
        if status_code == 429:
            raise RateLimitExceededError(body)
        if status_code >= 400:
            message = body
            try:
                error = json.loads(body).get("error", {})
                message = error.get("message", body) if isinstance(error, dict) else str(error)
            except (json.JSONDecodeError, AttributeError):
                pass
            raise ProviderAPIError(str(status_code), message)

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        payload = self._build_payload(request)
        logger.debug(f"POST {self.endpoint} model={payload['model']} messages={len(payload['messages'])}")

        try:
            response = await self.client.post(self.endpoint, headers=self._headers(), json=payload)
        except httpx.HTTPError as e:
            raise RequestFailedError(str(e)) from e

        self._raise_for_status(response.status_code, response.text)

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise InvalidResponseError(f"body is not JSON: {e}") from e

        return self._convert_response(data)

    def _convert_response(self, data: dict[str, Any]) -> CompletionResponse:
        try:
            choice = data["choices"][0]
            message = choice["message"]
        except (KeyError, IndexError, TypeError) as e:
            raise InvalidResponseError(f"missing choices: {e}") from e

        tool_uses = []
        for call in message.get("tool_calls") or []:
            try:
                function = call["function"]
                tool_uses.append(
                    ToolUse(id=call["id"], name=function["name"], input=_parse_arguments(function.get("arguments")))
                )
            except (KeyError, TypeError) as e:
                raise InvalidResponseError(f"malformed tool call: {e}") from e

        stop_reason = FINISH_REASONS.get(choice.get("finish_reason") or "", StopReason.END_TURN)
        if tool_uses:
            stop_reason = StopReason.TOOL_USE

        usage_data = data.get("usage") or {}
        usage = Usage(
            input_tokens=usage_data.get("prompt_tokens", 0),
            output_tokens=usage_data.get("completion_tokens", 0),
        )

        return CompletionResponse(
            content=message.get("content") or "",
            tool_uses=tool_uses,
            stop_reason=stop_reason,
            usage=usage,
        )

    async def stream_completion(self, request: CompletionRequest) -> AsyncIterator[Chunk]:
        """Stream server-sent events, yielding text and assembled tool calls."""
        payload = self._build_payload(request, stream=True)
        pending_calls: dict[int, dict[str, Any]] = {}
        finished = False

        try:
            async with self.client.stream("POST", self.endpoint, headers=self._headers(), json=payload) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode(errors="replace")
                    self._raise_for_status(response.status_code, body)

                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:") :].strip()
                    if data == "[DONE]":
                        finished = True
                        break

                    try:
                        event = json.loads(data)
                    except json.JSONDecodeError as e:
                        raise InvalidResponseError(f"bad stream event: {e}") from e

                    for choice in event.get("choices") or []:
                        delta = choice.get("delta") or {}
                        if delta.get("content"):
                            yield DeltaChunk(text=delta["content"])
                        for call in delta.get("tool_calls") or []:
                            slot = pending_calls.setdefault(call.get("index", 0), {"arguments": ""})
                            if call.get("id"):
                                slot["id"] = call["id"]
                            function = call.get("function") or {}
                            if function.get("name"):
                                slot["name"] = function["name"]
                            slot["arguments"] += function.get("arguments") or ""
                        if choice.get("finish_reason"):
                            finished = True
        except httpx.HTTPError as e:
            raise RequestFailedError(str(e)) from e

        if not finished:
            raise StreamInterruptedError("connection closed before completion")

        for index in sorted(pending_calls):
            slot = pending_calls[index]
            if "id" not in slot or "name" not in slot:
                raise InvalidResponseError(f"incomplete streamed tool call at index {index}")
            yield ToolUseChunk(
                tool_use=ToolUse(id=slot["id"], name=slot["name"], input=_parse_arguments(slot["arguments"]))
            )

        yield DoneChunk()

    async def aclose(self) -> None:
        await self.client.aclose()
