"""Shared fixtures and fakes for the test suite."""

import asyncio
from collections.abc import AsyncIterator

import pytest
from pydantic import BaseModel, Field

from relay.models.llm import (
    Chunk,
    CompletionRequest,
    CompletionResponse,
    StopReason,
    ToolUse,
    Usage,
)
from relay.models.session import Session
from relay.tools.base import ExecutionFailedError, Tool, ToolOutput
from relay.tools.registry import ToolsRegistry


class ScriptedProvider:
    """Provider that replays canned responses and records every request."""

    def __init__(self, responses=None, chunks=None):
        self.responses = list(responses or [])
        self.chunks = list(chunks or [])
        self.requests: list[CompletionRequest] = []

    @property
    def name(self) -> str:
        return "scripted"

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError("No scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def stream_completion(self, request: CompletionRequest) -> AsyncIterator[Chunk]:
        self.requests.append(request)
        for chunk in self.chunks:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk


def text_response(text: str, input_tokens: int = 10, output_tokens: int = 5) -> CompletionResponse:
    return CompletionResponse(
        content=text,
        stop_reason=StopReason.END_TURN,
        usage=Usage(input_tokens=input_tokens, output_tokens=output_tokens),
    )


def tool_response(*tool_uses: ToolUse, text: str = "") -> CompletionResponse:
    return CompletionResponse(
        content=text,
        tool_uses=list(tool_uses),
        stop_reason=StopReason.TOOL_USE,
        usage=Usage(input_tokens=10, output_tokens=5),
    )


class EchoInput(BaseModel):
    text: str = Field(..., description="Text to echo back")


class EchoTool(Tool):
    name = "echo"
    description = "Echo the given text."
    input_model = EchoInput

    def __init__(self):
        self.calls: list[str] = []

    async def run(self, params: EchoInput) -> ToolOutput:
        self.calls.append(params.text)
        return ToolOutput(content=f"echo: {params.text}")


class SlowInput(BaseModel):
    seconds: float = 1.0


class SlowTool(Tool):
    name = "slow"
    description = "Sleep for a while."
    input_model = SlowInput

    async def run(self, params: SlowInput) -> ToolOutput:
        await asyncio.sleep(params.seconds)
        return ToolOutput(content="done")


class BrokenTool(Tool):
    name = "broken"
    description = "Always fails."
    input_model = SlowInput

    async def run(self, params: SlowInput) -> ToolOutput:
        raise ExecutionFailedError("disk on fire")


class ReportsErrorTool(Tool):
    name = "lint"
    description = "Returns findings flagged as an error."
    input_model = SlowInput

    async def run(self, params: SlowInput) -> ToolOutput:
        return ToolOutput(content="3 problems found", is_error=True)


@pytest.fixture
def echo_tool():
    return EchoTool()


@pytest.fixture
def registry(echo_tool):
    return ToolsRegistry([echo_tool, SlowTool(), BrokenTool(), ReportsErrorTool()])


@pytest.fixture
def session(tmp_path):
    return Session.new(tmp_path)
