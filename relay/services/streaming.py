"""Single-round streamed completion for interactive display."""

from collections.abc import Callable
from typing import Any

from relay.clients.base import AIProvider
from relay.clients.errors import ProviderError
from relay.models.llm import CompletionRequest, DeltaChunk, DoneChunk, ToolUse, ToolUseChunk
from relay.models.messages import Message
from relay.models.session import Session
from relay.services.agent import AgentConfig, AgentProviderError, NoUserMessageError, SessionNotActiveError
from relay.services.context import build_system_prompt
from relay.utils.logging import get_logger

logger = get_logger(__name__)


async def process_streaming(
    provider: AIProvider,
    session: Session,
    on_delta: Callable[[str], Any],
    config: AgentConfig | None = None,
) -> Message:
    """Stream one reply into session, calling on_delta with each text fragment.

    No tools are offered and none are executed. Tool uses the backend emits
    anyway are recorded on the appended message under ``pending_tool_uses``.
    """
    config = config or AgentConfig()
    if not session.is_active:
        raise SessionNotActiveError(session.state.value)
    if session.last_user_message() is None:
        raise NoUserMessageError()

    request = CompletionRequest(
        messages=list(session.messages),
        model=config.model,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        system_prompt=build_system_prompt(config.system_prompt, session.context),
    )

    parts: list[str] = []
    tool_uses: list[ToolUse] = []
    try:
        async for chunk in provider.stream_completion(request):
            if isinstance(chunk, DeltaChunk):
                parts.append(chunk.text)
                on_delta(chunk.text)
            elif isinstance(chunk, ToolUseChunk):
                tool_uses.append(chunk.tool_use)
            elif isinstance(chunk, DoneChunk):
                break
    except ProviderError as e:
        logger.error(f"Stream failed for session {session.session_id}: {e}")
        raise AgentProviderError(str(e)) from e

    metadata: dict[str, Any] = {"streamed": True}
    if tool_uses:
        metadata["pending_tool_uses"] = [{"id": t.id, "name": t.name, "input": t.input} for t in tool_uses]

    message = Message.assistant("".join(parts), metadata=metadata)
    session.append(message)
    return message
