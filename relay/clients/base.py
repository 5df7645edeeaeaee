"""Backend provider contract."""

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from relay.models.llm import Chunk, CompletionRequest, CompletionResponse
from relay.models.messages import Message, ToolResultContent, ToolUseContent


@runtime_checkable
class AIProvider(Protocol):
    """Interface every LLM backend implements.

    Implementations translate the shared Message/Content model into their
    vendor's request shape and normalize the reply back. Transport and protocol
    failures are raised as ProviderError subclasses.
    """

    @property
    def name(self) -> str:
        """Short provider identifier, e.g. "claude"."""
        ...

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Return the full response once the backend has finished generating."""
        ...

    def stream_completion(self, request: CompletionRequest) -> AsyncIterator[Chunk]:
        """Yield chunks as they arrive, ending with a DoneChunk.

        The iterator is single-use. A ProviderError raised while iterating
        ends the stream.
        """
        ...


INTERRUPTED_TOOL_RESULT = "Tool call did not complete"


def replayable_messages(messages: list[Message]) -> list[Message]:
    """Prepare a transcript for sending back to a backend.

    Error notices recorded by a failed agent round are dropped, and a tool use
    left without a result gets an error result right after it, so the backend
    always sees each tool call answered.
    """
    answered = {m.content.id for m in messages if isinstance(m.content, ToolResultContent)}
    replay: list[Message] = []
    for message in messages:
        if message.metadata.get("error"):
            continue
        replay.append(message)
        content = message.content
        if isinstance(content, ToolUseContent) and content.id not in answered:
            replay.append(Message.tool_result(content.id, INTERRUPTED_TOOL_RESULT, is_error=True))
    return replay
