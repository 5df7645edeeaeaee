"""Base types and definitions for tools."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar

from pydantic import BaseModel, ValidationError

from relay.models.llm import ToolDefinition
from relay.utils.logging import get_logger

logger = get_logger(__name__)


class ToolError(Exception):
    """Base class for tool failures."""


class InvalidParametersError(ToolError):
    def __init__(self, detail: str):
        super().__init__(f"Invalid parameters: {detail}")
        self.detail = detail


class ExecutionFailedError(ToolError):
    def __init__(self, detail: str):
        super().__init__(f"Execution failed: {detail}")
        self.detail = detail


class ResourceNotFoundError(ToolError):
    def __init__(self, detail: str):
        super().__init__(f"Not found: {detail}")
        self.detail = detail


@dataclass
class ToolOutput:
    """Result of a tool run. is_error marks output the tool itself reports as a failure."""

    content: str
    is_error: bool = False


class Tool(ABC):
    """A named capability the assistant can invoke.

    Subclasses declare ``name``, ``description`` and a pydantic ``input_model``
    and implement ``run``. Callers go through ``execute``, which validates the
    raw input and enforces the optional timeout.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    input_model: ClassVar[type[BaseModel]]

    @property
    def parameters_schema(self) -> dict[str, Any]:
        """JSON schema for this tool's input."""
        schema = self.input_model.model_json_schema()
        return {
            "type": "object",
            "properties": schema.get("properties", {}),
            "required": schema.get("required", []),
        }

    def definition(self) -> ToolDefinition:
        return ToolDefinition(name=self.name, description=self.description, input_schema=self.parameters_schema)

    def parse_input(self, raw_input: dict[str, Any]) -> BaseModel:
        """Parse and validate tool input."""
        try:
            return self.input_model.model_validate(raw_input)
        except ValidationError as e:
            errors = "; ".join(f"{'.'.join(map(str, err['loc'])) or 'input'}: {err['msg']}" for err in e.errors())
            raise InvalidParametersError(errors) from e

    @abstractmethod
    async def run(self, params: Any) -> ToolOutput:
        """Do the work with validated params."""

    async def execute(self, raw_input: dict[str, Any], timeout: float | None = None) -> ToolOutput:
        """Validate raw_input and run the tool, optionally bounded by timeout seconds."""
        params = self.parse_input(raw_input)
        logger.debug(f"Executing tool {self.name}")

        deadline = asyncio.timeout(timeout)
        try:
            async with deadline:
                return await self.run(params)
        except ToolError:
            raise
        except Exception as e:
            if isinstance(e, TimeoutError) and deadline.expired():
                logger.warning(f"Tool {self.name} timed out after {timeout}s")
                raise ExecutionFailedError(f"{self.name} timed out after {timeout}s") from e
            logger.error(f"Tool {self.name} raised unexpectedly: {e}")
            raise ExecutionFailedError(str(e) or type(e).__name__) from e


class WorkspaceTool(Tool):
    """Tool that resolves relative paths against a working directory."""

    def __init__(self, working_dir: Path | str | None = None):
        self.working_dir = Path(working_dir) if working_dir else Path.cwd()

    def resolve(self, path: str) -> Path:
        candidate = Path(path).expanduser()
        return candidate if candidate.is_absolute() else self.working_dir / candidate
