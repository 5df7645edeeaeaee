"""Shell command tool."""

import asyncio

from pydantic import BaseModel, Field

from relay.tools.base import ExecutionFailedError, ToolOutput, WorkspaceTool
from relay.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_MS = 120_000


class BashInput(BaseModel):
    """Input schema for the bash tool."""

    command: str = Field(
        ...,
        min_length=1,
        description="Shell command to run with sh -c in the working directory",
        examples=["ls -la", "git status"],
    )
    timeout_ms: int = Field(
        default=DEFAULT_TIMEOUT_MS,
        gt=0,
        description="Milliseconds to wait before the command is killed",
    )


class BashTool(WorkspaceTool):
    name = "bash"
    description = "Run a shell command and return its output."
    input_model = BashInput

    async def run(self, params: BashInput) -> ToolOutput:
        logger.debug(f"Running command: {params.command}")
        process = await asyncio.create_subprocess_shell(
            params.command,
            cwd=self.working_dir,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=params.timeout_ms / 1000)
        except TimeoutError as e:
            raise ExecutionFailedError(f"Command timed out after {params.timeout_ms}ms") from e
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()

        out = stdout.decode(errors="replace")
        err = stderr.decode(errors="replace")

        if process.returncode != 0:
            raise ExecutionFailedError(f"Command failed with exit code {process.returncode}: {err or out}".rstrip())

        return ToolOutput(content=f"{out}\n{err}" if err else out)
