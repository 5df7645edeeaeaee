"""File reading tool."""

import asyncio

from pydantic import BaseModel, Field

from relay.tools.base import ExecutionFailedError, ResourceNotFoundError, ToolOutput, WorkspaceTool


class ReadInput(BaseModel):
    """Input schema for the read tool."""

    path: str = Field(
        ...,
        min_length=1,
        description="Path of the file to read, absolute or relative to the working directory",
        examples=["src/main.py", "/etc/hosts"],
    )


class ReadTool(WorkspaceTool):
    name = "read"
    description = "Read the contents of a text file."
    input_model = ReadInput

    async def run(self, params: ReadInput) -> ToolOutput:
        path = self.resolve(params.path)
        if not path.is_file():
            raise ResourceNotFoundError(params.path)

        try:
            content = await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")
        except OSError as e:
            raise ExecutionFailedError(f"could not read {params.path}: {e}") from e

        return ToolOutput(content=content)
