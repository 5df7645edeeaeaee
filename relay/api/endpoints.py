"""API endpoints for the relay tool server."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from relay import __version__
from relay.models.health import HealthResponse
from relay.services.bridge import ToolBridgeServer, get_bridge_server
from relay.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.post("/rpc", tags=["Tools"])
async def handle_rpc(request: Request, bridge: ToolBridgeServer = Depends(get_bridge_server)) -> JSONResponse:
    """Handle a JSON-RPC 2.0 request for tools/list or tools/call.

    Protocol errors are reported in the JSON-RPC error object with HTTP 200.
    """
    body = await request.body()
    response = await bridge.handle_raw(body)
    if response.error is not None:
        logger.info(f"RPC request {response.id!r} failed: {response.error.code} {response.error.message}")
    return JSONResponse(content=response.to_dict())


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(bridge: ToolBridgeServer = Depends(get_bridge_server)) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
        tools=await bridge.registry.tool_names(),
    )
