"""JSON-RPC 2.0 server exposing registered tools to external processes."""

import asyncio
import json
import sys
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from relay.config import RelayConfig
from relay.models.rpc import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    JsonRpcRequest,
    JsonRpcResponse,
    TextContentItem,
    ToolCallParams,
    ToolCallResult,
    ToolInfo,
)
from relay.tools.base import Tool, ToolError
from relay.tools.registry import ToolsRegistry, create_default_registry
from relay.utils.logging import get_logger

logger = get_logger(__name__)


class ToolBridgeServer:
    """Answers tools/list and tools/call requests against a tools registry.

    Requests are independent of each other and may be handled concurrently.
    """

    def __init__(self, registry: ToolsRegistry, tool_timeout: float | None = None):
        self.registry = registry
        self.tool_timeout = tool_timeout

    async def handle_request(self, request: JsonRpcRequest) -> JsonRpcResponse:
        """Dispatch one request; failures come back as error responses, never as exceptions."""
        logger.debug(f"RPC request id={request.id!r} method={request.method}")
        try:
            match request.method:
                case "tools/list":
                    return await self._list_tools(request)
                case "tools/call":
                    return await self._call_tool(request)
                case _:
                    return JsonRpcResponse.failure(request.id, METHOD_NOT_FOUND, "Method not found")
        except Exception as e:
            logger.error(f"Unhandled error for RPC method {request.method}: {e}", exc_info=True)
            return JsonRpcResponse.failure(request.id, INTERNAL_ERROR, str(e) or "Internal error")

    async def handle_raw(self, payload: str | bytes | dict[str, Any]) -> JsonRpcResponse:
        """Parse a raw JSON-RPC payload and dispatch it."""
        if isinstance(payload, str | bytes):
            try:
                payload = json.loads(payload)
            except (json.JSONDecodeError, UnicodeDecodeError):
                return JsonRpcResponse.failure(None, PARSE_ERROR, "Parse error")

        if not isinstance(payload, dict):
            return JsonRpcResponse.failure(None, INVALID_REQUEST, "Invalid Request")

        try:
            request = JsonRpcRequest.model_validate(payload)
        except ValidationError:
            request_id = payload.get("id")
            if not isinstance(request_id, str | int | None) or isinstance(request_id, bool):
                request_id = None
            return JsonRpcResponse.failure(request_id, INVALID_REQUEST, "Invalid Request")

        return await self.handle_request(request)

    async def _list_tools(self, request: JsonRpcRequest) -> JsonRpcResponse:
        tools = [
            ToolInfo(name=tool.name, description=tool.description, input_schema=tool.parameters_schema).model_dump()
            for tool in await self.registry.list_tools()
        ]
        return JsonRpcResponse.success(request.id, {"tools": tools})

    async def _call_tool(self, request: JsonRpcRequest) -> JsonRpcResponse:
        if request.params is None:
            return JsonRpcResponse.failure(request.id, INVALID_PARAMS, "Invalid params")

        try:
            params = ToolCallParams.model_validate(request.params)
        except ValidationError:
            return JsonRpcResponse.failure(request.id, INVALID_PARAMS, "Invalid tool call")

        tool = await self.registry.get(params.name)
        if tool is None:
            return JsonRpcResponse.failure(request.id, INVALID_PARAMS, f"Tool not found: {params.name}")

        try:
            output = await tool.execute(params.arguments, timeout=self.tool_timeout)
        except ToolError as e:
            logger.info(f"Tool {params.name} failed: {e}")
            return JsonRpcResponse.failure(request.id, INTERNAL_ERROR, str(e))

        result = ToolCallResult(content=[TextContentItem(text=output.content)], is_error=output.is_error)
        return JsonRpcResponse.success(request.id, result.model_dump())


async def register_tools(server: ToolBridgeServer, tools: Iterable[Tool]) -> None:
    """Register each of tools with the server's registry."""
    for tool in tools:
        await server.registry.register(tool)


async def serve_stdio(
    server: ToolBridgeServer,
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter | Any,
) -> None:
    """Serve newline-delimited JSON-RPC from reader, writing one response line per request.

    Each request is handled in its own task, so responses may be written out
    of request order; clients match them by id.
    """
    write_lock = asyncio.Lock()
    pending: set[asyncio.Task] = set()

    async def respond(line: bytes) -> None:
        response = await server.handle_raw(line)
        data = json.dumps(response.to_dict()).encode() + b"\n"
        async with write_lock:
            writer.write(data)
            await writer.drain()

    while True:
        line = await reader.readline()
        if not line:
            break
        if not line.strip():
            continue
        task = asyncio.create_task(respond(line))
        pending.add(task)
        task.add_done_callback(pending.discard)

    if pending:
        await asyncio.gather(*pending)
    logger.info("stdin closed, bridge stopped")


async def open_stdio_streams() -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Wrap the process stdin and stdout as asyncio streams."""
    loop = asyncio.get_running_loop()

    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)

    transport, protocol = await loop.connect_write_pipe(asyncio.streams.FlowControlMixin, sys.stdout)
    writer = asyncio.StreamWriter(transport, protocol, reader, loop)
    return reader, writer


_bridge_server: ToolBridgeServer | None = None


def get_bridge_server() -> ToolBridgeServer:
    """Get or create the process-wide bridge server over the default tools."""
    global _bridge_server

    if _bridge_server is None:
        config = RelayConfig.from_env()
        _bridge_server = ToolBridgeServer(create_default_registry(), tool_timeout=config.tool_timeout)

    return _bridge_server
