"""LLM-related data models and types (provider-agnostic)."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from relay.models.messages import Message


class ToolDefinition(BaseModel):
    """Tool definition advertised to the LLM."""

    name: str
    description: str
    input_schema: dict[str, Any]


class StopReason(StrEnum):
    """Why the backend stopped generating."""

    END_TURN = "end_turn"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"
    TOOL_USE = "tool_use"


@dataclass(frozen=True)
class ToolUse:
    """A tool call requested by the model."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass
class Usage:
    """Token usage information from an LLM provider."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, other: "Usage") -> None:
        """Accumulate another round's usage into this one."""
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens


@dataclass
class CompletionRequest:
    """Provider-agnostic request built fresh for every round."""

    messages: list[Message]
    tools: list[ToolDefinition] = field(default_factory=list)
    model: str = "default"
    max_tokens: int | None = None
    temperature: float | None = None
    system_prompt: str | None = None


@dataclass
class CompletionResponse:
    """Provider-agnostic response from an LLM backend."""

    content: str
    tool_uses: list[ToolUse] = field(default_factory=list)
    stop_reason: StopReason = StopReason.END_TURN
    usage: Usage = field(default_factory=Usage)


# Streamed completion chunks


@dataclass(frozen=True)
class DeltaChunk:
    """Incremental text."""

    text: str


@dataclass(frozen=True)
class ToolUseChunk:
    """A tool call surfaced mid-stream."""

    tool_use: ToolUse


@dataclass(frozen=True)
class DoneChunk:
    """End of the stream."""


Chunk = DeltaChunk | ToolUseChunk | DoneChunk


@dataclass
class AgentResult:
    """Result from running the agent loop to completion."""

    final_text: str
    stop_reason: StopReason
    rounds: int
    usage: Usage
