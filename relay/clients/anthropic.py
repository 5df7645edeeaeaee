"""Anthropic provider with rate limiting, truncation and error handling."""

import asyncio
import os
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal

import tiktoken
from anthropic import (
    APIConnectionError,
    APIError,
    APIStatusError,
    AsyncAnthropic,
    AuthenticationError,
    PermissionDeniedError,
    RateLimitError,
)
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from pydantic import BaseModel, ConfigDict

from relay.clients.base import replayable_messages
from relay.clients.errors import (
    AuthenticationFailedError,
    InvalidResponseError,
    NotConfiguredError,
    ProviderAPIError,
    ProviderError,
    RateLimitExceededError,
    RequestFailedError,
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

STOP_REASONS: dict[str, StopReason] = {
    "end_turn": StopReason.END_TURN,
    "max_tokens": StopReason.MAX_TOKENS,
    "stop_sequence": StopReason.STOP_SEQUENCE,
    "tool_use": StopReason.TOOL_USE,
}


# Anthropic wire content blocks


class TextBlock(BaseModel):
    """Text content block."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """Tool use content block."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any]


class ToolResultBlock(BaseModel):
    """Tool result content block."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = TextBlock | ToolUseBlock | ToolResultBlock


class CacheControl(BaseModel):
    """Cache control configuration for prompt caching."""

    type: Literal["ephemeral"] = "ephemeral"
    ttl: Literal["5m", "1h"] = "5m"


class AnthropicMessage(BaseModel):
    """Message format for Anthropic API."""

    role: Literal["user", "assistant"]
    content: list[ContentBlock]


class AnthropicTool(BaseModel):
    """Tool definition for Anthropic API."""

    name: str
    description: str
    input_schema: dict[str, Any]
    cache_control: CacheControl | None = None


@dataclass
class AnthropicConfig:
    """Configuration for the Anthropic provider."""

    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    temperature: float = 0.7
    max_retries: int = 3
    retry_delay: float = 1.0
    requests_per_minute: int = 50
    tokens_per_minute: int = 40_000

    # Token limits for validation and truncation
    max_message_tokens: int = 50_000  # Maximum tokens per individual user message
    max_conversation_tokens: int = 200000
    token_headroom: int = 2000  # Reserve tokens for response

    # tiktoken encoding used as an approximation; None means 4 chars per token
    tokenizer_model: str | None = "gpt-4"
    cache_tools: bool = True


class AnthropicRateLimiter:
    """Request and token rate limiter backed by the limits library."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 40_000):
        """Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute
            tokens_per_minute: Maximum tokens per minute
        """
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "anthropic") -> None:
        """Wait until the request fits within the request and token windows."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        if not self.limiter.hit(self.request_limit, identifier):
            await self._wait_for_window(self.request_limit, identifier, "Request")

        token_identifier = f"{identifier}_tokens"
        if not self.limiter.hit(self.token_limit, token_identifier, cost=estimated_tokens):
            await self._wait_for_window(self.token_limit, token_identifier, "Token")

    async def _wait_for_window(self, limit: Any, identifier: str, kind: str) -> None:
        window_stats = self.limiter.get_window_stats(limit, identifier)
        if window_stats:
            wait_time = max(0.0, window_stats.reset_time - time.time())
            if wait_time > 0:
                logger.warning(f"{kind} rate limit exceeded, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)


def to_anthropic_messages(messages: list[Message]) -> tuple[list[AnthropicMessage], list[str]]:
    """Convert transcript messages to Anthropic messages.

    System messages are pulled out and returned separately since Anthropic takes
    them as a top-level system prompt. Tool uses become assistant tool_use
    blocks, tool results become user tool_result blocks, and consecutive
    blocks with the same role are merged into one message. The transcript goes
    through replayable_messages first, so an aborted tool round replays cleanly.

    Returns:
        Tuple of (anthropic_messages, system_texts)
    """
    system_texts: list[str] = []
    converted: list[AnthropicMessage] = []

    for message in replayable_messages(messages):
        content = message.content
        block: ContentBlock

        if message.role == Role.SYSTEM:
            if content.as_text():
                system_texts.append(content.as_text())
            continue

        if isinstance(content, TextContent):
            # Anthropic rejects empty text blocks
            if not content.text:
                continue
            role = "assistant" if message.role == Role.ASSISTANT else "user"
            block = TextBlock(text=content.text)
        elif isinstance(content, ToolUseContent):
            role = "assistant"
            block = ToolUseBlock(id=content.id, name=content.name, input=content.input)
        elif isinstance(content, ToolResultContent):
            role = "user"
            block = ToolResultBlock(tool_use_id=content.id, content=content.content, is_error=content.is_error)
        else:
            logger.warning(f"Skipping message {message.id} with unsupported content")
            continue

        if converted and converted[-1].role == role:
            converted[-1].content.append(block)
        else:
            converted.append(AnthropicMessage(role=role, content=[block]))

    return converted, system_texts


def to_anthropic_tools(tools: list[ToolDefinition], cache: bool = True) -> list[AnthropicTool]:
    """Convert tool definitions, marking the last one so all definitions are cached."""
    anthropic_tools = []
    for i, tool in enumerate(tools):
        cache_control = CacheControl(type="ephemeral", ttl="5m") if cache and i == len(tools) - 1 else None
        anthropic_tools.append(
            AnthropicTool(
                name=tool.name,
                description=tool.description,
                input_schema=tool.input_schema,
                cache_control=cache_control,
            )
        )
    return anthropic_tools


def map_api_error(error: APIError) -> ProviderError:
    """Map an Anthropic SDK error to the provider error taxonomy."""
    if isinstance(error, AuthenticationError | PermissionDeniedError):
        return AuthenticationFailedError(str(error))
    if isinstance(error, RateLimitError):
        return RateLimitExceededError(str(error))
    if isinstance(error, APIStatusError):
        return ProviderAPIError(str(error.status_code), error.message)
    return RequestFailedError(str(error))


class AnthropicProvider:
    """Anthropic Messages API provider."""

    tokenizer: tiktoken.Encoding | None = None
    client: AsyncAnthropic
    config: AnthropicConfig

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        config: AnthropicConfig | None = None,
    ):
        """Initialize the provider.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            base_url: Optional API base URL override
            config: Provider configuration
        """
        anthropic_api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not anthropic_api_key:
            raise NotConfiguredError("ANTHROPIC_API_KEY environment variable is required")

        self.config = config or AnthropicConfig()
        self.client = AsyncAnthropic(api_key=anthropic_api_key, base_url=base_url, max_retries=0)
        self.rate_limiter = AnthropicRateLimiter(self.config.requests_per_minute, self.config.tokens_per_minute)

        # Loaded on first use, tiktoken may need to fetch its encoding files
        self._tokenizer_pending = bool(self.config.tokenizer_model)

    def _load_tokenizer(self) -> None:
        self._tokenizer_pending = False
        try:
            # Close approximation for Claude
            self.tokenizer = tiktoken.encoding_for_model(self.config.tokenizer_model)
        except Exception as e:
            logger.warning(f"Tokenizer unavailable, estimating 4 chars per token: {e}")
            self.tokenizer = None

    @property
    def name(self) -> str:
        return "claude"

    def _build_params(self, request: CompletionRequest) -> dict[str, Any]:
        last_user = next((m for m in reversed(request.messages) if m.role == Role.USER), None)
        if last_user and last_user.text:
            self.validate_message_tokens(last_user.text)

        messages, system_texts = to_anthropic_messages(request.messages)
        system_prompt = "\n\n".join(filter(None, [request.system_prompt, *system_texts]))
        tools = to_anthropic_tools(request.tools, cache=self.config.cache_tools)

        messages = self.truncate_conversation(messages, system_prompt, tools)

        params: dict[str, Any] = {
            "model": request.model if request.model and request.model != "default" else self.config.model,
            "max_tokens": request.max_tokens or self.config.max_tokens,
            "temperature": request.temperature if request.temperature is not None else self.config.temperature,
            "messages": [msg.model_dump() for msg in messages],
        }
        if system_prompt:
            params["system"] = system_prompt
        if tools:
            params["tools"] = [tool.model_dump(exclude_none=True) for tool in tools]

        logger.debug(f"Built Anthropic request with {len(messages)} messages, {len(tools)} tools")
        return params

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Create a message with the Claude API and normalize the reply."""
        params = self._build_params(request)

        estimated_tokens = self._estimate_tokens(params)
        logger.debug(f"Estimated tokens: {estimated_tokens}")
        await self.rate_limiter.check_rate_limit(estimated_tokens)

        logger.debug(f"Making Anthropic API call with model: {params['model']}")
        response = await self._request_with_retries(lambda: self.client.messages.create(**params))

        normalized = self._convert_response(response)
        logger.debug(
            f"Response received - Stop reason: {normalized.stop_reason}, tool uses: {len(normalized.tool_uses)}"
        )
        return normalized

    async def stream_completion(self, request: CompletionRequest) -> AsyncIterator[Chunk]:
        """Stream a message, yielding text deltas and completed tool uses."""
        params = self._build_params(request)
        await self.rate_limiter.check_rate_limit(self._estimate_tokens(params))

        try:
            async with self.client.messages.stream(**params) as stream:
                async for event in stream:
                    if event.type == "text":
                        yield DeltaChunk(text=event.text)
                    elif event.type == "content_block_stop":
                        block = self._block_to_dict(event.content_block)
                        if block.get("type") == "tool_use":
                            yield ToolUseChunk(
                                tool_use=ToolUse(id=block["id"], name=block["name"], input=block.get("input") or {})
                            )
        except APIError as e:
            logger.error(f"Anthropic stream failed: {e}")
            raise map_api_error(e) from e

        yield DoneChunk()

    async def _request_with_retries[T](self, call: Callable[[], Awaitable[T]]) -> T:
        """Execute Anthropic API request with retry logic."""
        for attempt in range(self.config.max_retries):
            last_attempt = attempt >= self.config.max_retries - 1
            try:
                return await call()

            except APIStatusError as e:
                if e.status_code == 429 and not last_attempt:
                    retry_after = self._retry_after(e)
                    if retry_after < 120:
                        logger.warning(f"Rate limited by Anthropic, retrying in {retry_after}s")
                        await asyncio.sleep(retry_after)
                        continue

                elif e.status_code >= 500 and not last_attempt:
                    # Server error, retry with exponential backoff
                    await asyncio.sleep(self.config.retry_delay * (2**attempt))
                    continue

                # Re-raise if not retryable or max retries reached
                raise map_api_error(e) from e

            except APIConnectionError as e:
                if not last_attempt:
                    await asyncio.sleep(self.config.retry_delay * (2**attempt))
                    continue
                raise RequestFailedError(str(e)) from e

        raise RequestFailedError(f"Failed to complete request after {self.config.max_retries} attempts")

    @staticmethod
    def _retry_after(error: APIStatusError) -> float:
        try:
            return float(error.response.headers.get("retry-after", 60))
        except (AttributeError, ValueError):
            return 60.0

    @staticmethod
    def _block_to_dict(block: Any) -> dict[str, Any]:
        if isinstance(block, dict):
            return block
        if hasattr(block, "model_dump"):
            return block.model_dump()
        return dict(vars(block))

    def _convert_response(self, response: Any) -> CompletionResponse:
        """Convert an Anthropic message into a CompletionResponse."""
        text_parts: list[str] = []
        tool_uses: list[ToolUse] = []

        try:
            blocks = list(response.content)
        except (AttributeError, TypeError) as e:
            raise InvalidResponseError(f"missing content blocks: {e}") from e

        for raw_block in blocks:
            block = self._block_to_dict(raw_block)
            block_type = block.get("type")
            if block_type == "text":
                text_parts.append(TextBlock.model_validate(block).text)
            elif block_type == "tool_use":
                tool_block = ToolUseBlock.model_validate(block)
                tool_uses.append(ToolUse(id=tool_block.id, name=tool_block.name, input=tool_block.input))
            else:
                logger.warning(f"Unknown content block type: {block_type}")

        stop_reason = STOP_REASONS.get(response.stop_reason or "", StopReason.END_TURN)

        usage = Usage()
        if getattr(response, "usage", None):
            usage = Usage(
                input_tokens=response.usage.input_tokens or 0,
                output_tokens=response.usage.output_tokens or 0,
            )

        return CompletionResponse(
            content="".join(text_parts),
            tool_uses=tool_uses,
            stop_reason=stop_reason,
            usage=usage,
        )

    def _estimate_tokens(self, params: dict[str, Any]) -> int:
        """Estimate token count of a request for rate limiting."""
        text_content = params.get("system", "")

        for message in params["messages"]:
            for block in message["content"]:
                text_content += block.get("text") or ""
                if block.get("type") == "tool_result":
                    text_content += block.get("content") or ""

        return self.estimate_message_tokens(text_content)

    def estimate_message_tokens(self, message: str) -> int:
        """Estimate token count for a single piece of text.

        Args:
            message: Message content

        Returns:
            Estimated token count
        """
        if self._tokenizer_pending:
            self._load_tokenizer()
        try:
            return len(self.tokenizer.encode(message)) if self.tokenizer else len(message) // 4
        except Exception:
            # Fallback: roughly 4 characters per token
            return len(message) // 4

    def _message_tokens(self, message: AnthropicMessage) -> int:
        content_text = ""
        for block in message.content:
            if isinstance(block, TextBlock):
                content_text += block.text
            elif isinstance(block, ToolResultBlock):
                content_text += block.content
            else:
                content_text += block.name + str(block.input)
        return self.estimate_message_tokens(content_text)

    def validate_message_tokens(self, message: str) -> None:
        """Validate that a message doesn't exceed token limits.

        Raises:
            RequestFailedError: If message exceeds token limit
        """
        token_count = self.estimate_message_tokens(message)
        if token_count > self.config.max_message_tokens:
            raise RequestFailedError(
                f"Message exceeds token limit: {token_count} tokens > {self.config.max_message_tokens} limit"
            )

    def truncate_conversation(
        self, messages: list[AnthropicMessage], system_prompt: str, tools: list[AnthropicTool] | None = None
    ) -> list[AnthropicMessage]:
        """Truncate conversation from the beginning to fit within token limits.

        The kept history always starts on a user message that does not carry
        tool results, so no tool_result is left without its tool_use.

        Args:
            messages: Conversation messages
            system_prompt: System prompt
            tools: Available tools

        Returns:
            Truncated message list that fits within limits
        """
        if not messages:
            return messages

        available_tokens = self.config.max_conversation_tokens - self.config.token_headroom

        system_tokens = self.estimate_message_tokens(system_prompt)

        tool_tokens = 0
        if tools:
            tool_content = ""
            for tool in tools:
                tool_content += tool.name + tool.description + str(tool.input_schema)
            tool_tokens = self.estimate_message_tokens(tool_content)

        available_tokens -= system_tokens + tool_tokens

        truncated_messages: list[AnthropicMessage] = []
        current_tokens = 0

        for message in reversed(messages):
            message_tokens = self._message_tokens(message)
            if current_tokens + message_tokens <= available_tokens:
                truncated_messages.insert(0, message)
                current_tokens += message_tokens
            else:
                # Stop adding messages if we exceed the limit
                break

        if len(truncated_messages) < len(messages):
            while truncated_messages and not self._starts_turn(truncated_messages[0]):
                truncated_messages.pop(0)
            logger.warning(
                f"Truncated conversation from {len(messages)} to {len(truncated_messages)} messages "
                f"to fit within {available_tokens} token limit"
            )

        return truncated_messages

    @staticmethod
    def _starts_turn(message: AnthropicMessage) -> bool:
        return message.role == "user" and not any(isinstance(block, ToolResultBlock) for block in message.content)
