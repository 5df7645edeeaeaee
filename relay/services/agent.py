"""Agent loop that alternates between the model and local tools."""

from dataclasses import dataclass

from relay.clients.base import AIProvider
from relay.clients.errors import ProviderError
from relay.config import DEFAULT_SYSTEM_PROMPT, RelayConfig
from relay.models.llm import AgentResult, CompletionRequest, CompletionResponse, Usage
from relay.models.messages import Message
from relay.models.session import Session
from relay.services.context import build_system_prompt
from relay.tools.base import ToolError
from relay.tools.registry import ToolsRegistry
from relay.utils.logging import get_logger

logger = get_logger(__name__)


class AgentError(Exception):
    """Base class for agent loop failures."""


class NoUserMessageError(AgentError):
    def __init__(self) -> None:
        super().__init__("No user message found in session")


class SessionNotActiveError(AgentError):
    def __init__(self, state: str):
        super().__init__(f"Session is not active: {state}")
        self.state = state


class MaxIterationsReachedError(AgentError):
    def __init__(self, max_iterations: int):
        super().__init__(f"Maximum iterations reached: {max_iterations}")
        self.max_iterations = max_iterations


class AgentProviderError(AgentError):
    def __init__(self, detail: str):
        super().__init__(f"AI provider error: {detail}")


class ToolNotFoundError(AgentError):
    def __init__(self, name: str):
        super().__init__(f"Tool not found: {name}")
        self.name = name


class ToolExecutionError(AgentError):
    def __init__(self, detail: str, tool_error: ToolError | None = None):
        super().__init__(f"Tool execution failed: {detail}")
        self.tool_error = tool_error


@dataclass
class AgentConfig:
    """Configuration for the agent loop."""

    model: str = "default"
    max_iterations: int = 10
    max_tokens: int = 4096
    temperature: float = 0.7
    system_prompt: str | None = DEFAULT_SYSTEM_PROMPT
    tool_timeout: float | None = None

    @classmethod
    def from_relay_config(cls, config: RelayConfig) -> "AgentConfig":
        # The provider was built with config.model as its default
        return cls(
            max_iterations=config.max_iterations,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            system_prompt=config.system_prompt,
            tool_timeout=config.tool_timeout,
        )


class Agent:
    """Drives a session through model rounds and tool calls until the model is done."""

    def __init__(self, provider: AIProvider, registry: ToolsRegistry, config: AgentConfig | None = None):
        """Initialize the agent.

        Args:
            provider: Backend used for completions
            registry: Tools the model may call
            config: Loop limits and request parameters
        """
        self.provider = provider
        self.registry = registry
        self.config = config or AgentConfig()

    async def process(self, session: Session) -> AgentResult:
        """Run the loop on session until the model answers without tool calls.

        Every message produced along the way is appended to the session. On a
        fatal error an assistant error message is appended before the error is
        raised, except for the precondition failures which leave the session
        untouched.

        Returns:
            The final text, stop reason, number of rounds and accumulated usage

        Raises:
            NoUserMessageError: the session holds no user message
            SessionNotActiveError: the session is paused or closed
            MaxIterationsReachedError: every allowed round requested tools
            AgentProviderError: the backend failed
            ToolNotFoundError: the model asked for an unregistered tool
            ToolExecutionError: a tool failed
        """
        if not session.is_active:
            raise SessionNotActiveError(session.state.value)
        if session.last_user_message() is None:
            raise NoUserMessageError()

        try:
            return await self._run_rounds(session)
        except AgentError as e:
            logger.error(f"Agent loop failed for session {session.session_id}: {e}")
            session.append(Message.assistant(f"Error: {e}", metadata={"error": True, "error_type": type(e).__name__}))
            raise

    async def _run_rounds(self, session: Session) -> AgentResult:
        max_iterations = self.config.max_iterations
        usage = Usage()
        logger.info(f"Starting agent loop for session {session.session_id}, max_iterations: {max_iterations}")

        for round_number in range(1, max_iterations + 1):
            logger.debug(f"Agent loop round {round_number}/{max_iterations}")

            response = await self._complete(session)
            usage.add(response.usage)

            session.append(
                Message.assistant(
                    response.content,
                    metadata={"stop_reason": response.stop_reason.value, "round": round_number},
                )
            )

            if not response.tool_uses:
                logger.info(f"Agent loop finished after {round_number} rounds, {usage.total_tokens} tokens")
                return AgentResult(
                    final_text=response.content,
                    stop_reason=response.stop_reason,
                    rounds=round_number,
                    usage=usage,
                )

            logger.info(f"Model requested {len(response.tool_uses)} tools")
            for tool_use in response.tool_uses:
                session.append(Message.tool_use(tool_use.id, tool_use.name, tool_use.input))

                tool = await self.registry.get(tool_use.name)
                if tool is None:
                    raise ToolNotFoundError(tool_use.name)

                try:
                    output = await tool.execute(tool_use.input, timeout=self.config.tool_timeout)
                except ToolError as e:
                    raise ToolExecutionError(str(e), tool_error=e) from e

                logger.debug(f"Tool {tool_use.name} returned {len(output.content)} chars, is_error={output.is_error}")
                session.append(Message.tool_result(tool_use.id, output.content, is_error=output.is_error))

        raise MaxIterationsReachedError(max_iterations)

    async def _complete(self, session: Session) -> CompletionResponse:
        request = CompletionRequest(
            messages=list(session.messages),
            tools=await self.registry.definitions(),
            model=self.config.model,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            system_prompt=build_system_prompt(self.config.system_prompt, session.context),
        )
        try:
            return await self.provider.complete(request)
        except ProviderError as e:
            raise AgentProviderError(str(e)) from e
