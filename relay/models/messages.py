"""Message and content data models for the conversation transcript."""

import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import StrEnum
from types import MappingProxyType
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class Role(StrEnum):
    """Author of a message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class TextContent(BaseModel):
    """Plain text content."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str

    def as_text(self) -> str | None:
        return self.text


class ToolUseContent(BaseModel):
    """A tool invocation requested by the model."""

    model_config = ConfigDict(frozen=True)

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)

    def as_text(self) -> str | None:
        return None


class ToolResultContent(BaseModel):
    """Output of a tool invocation, paired with a ToolUseContent by id."""

    model_config = ConfigDict(frozen=True)

    type: Literal["tool_result"] = "tool_result"
    id: str
    content: str
    is_error: bool = False

    def as_text(self) -> str | None:
        return self.content


Content = Annotated[TextContent | ToolUseContent | ToolResultContent, Field(discriminator="type")]


def _new_message_id() -> str:
    return uuid.uuid4().hex


class Message(BaseModel):
    """A single immutable entry in a conversation transcript."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_message_id)
    role: Role
    content: Content
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    metadata: Mapping[str, Any] = Field(default_factory=lambda: MappingProxyType({}))

    @field_validator("metadata")
    @classmethod
    def _freeze_metadata(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(value))

    @field_serializer("metadata")
    def _serialize_metadata(self, value: Mapping[str, Any]) -> dict[str, Any]:
        return dict(value)

    @classmethod
    def user(cls, text: str, **kwargs: Any) -> "Message":
        """Create a user text message."""
        return cls(role=Role.USER, content=TextContent(text=text), **kwargs)

    @classmethod
    def assistant(cls, text: str, **kwargs: Any) -> "Message":
        """Create an assistant text message."""
        return cls(role=Role.ASSISTANT, content=TextContent(text=text), **kwargs)

    @classmethod
    def system(cls, text: str, **kwargs: Any) -> "Message":
        """Create a system text message."""
        return cls(role=Role.SYSTEM, content=TextContent(text=text), **kwargs)

    @classmethod
    def tool_use(cls, tool_use_id: str, name: str, tool_input: dict[str, Any], **kwargs: Any) -> "Message":
        """Create a message recording a tool call made on behalf of the model."""
        kwargs.setdefault("role", Role.TOOL)
        return cls(content=ToolUseContent(id=tool_use_id, name=name, input=tool_input), **kwargs)

    @classmethod
    def tool_result(cls, tool_use_id: str, content: str, is_error: bool = False, **kwargs: Any) -> "Message":
        """Create a message carrying a tool's output."""
        return cls(
            role=Role.TOOL,
            content=ToolResultContent(id=tool_use_id, content=content, is_error=is_error),
            **kwargs,
        )

    @property
    def text(self) -> str | None:
        """Text of the message, if its content has any."""
        return self.content.as_text()

    @property
    def tool_name(self) -> str | None:
        """Name of the requested tool for tool-use messages."""
        if isinstance(self.content, ToolUseContent):
            return self.content.name
        return None

    def has_tool_use(self) -> bool:
        return isinstance(self.content, ToolUseContent)

    def is_tool_result(self) -> bool:
        return isinstance(self.content, ToolResultContent)

    def is_error(self) -> bool:
        return isinstance(self.content, ToolResultContent) and self.content.is_error
