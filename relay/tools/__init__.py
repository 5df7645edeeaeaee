"""Tools the assistant can call."""

from relay.tools.base import (
    ExecutionFailedError,
    InvalidParametersError,
    ResourceNotFoundError,
    Tool,
    ToolError,
    ToolOutput,
)
from relay.tools.registry import ToolsRegistry, create_default_registry

__all__ = [
    "ExecutionFailedError",
    "InvalidParametersError",
    "ResourceNotFoundError",
    "Tool",
    "ToolError",
    "ToolOutput",
    "ToolsRegistry",
    "create_default_registry",
]
