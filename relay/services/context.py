"""Execution context discovery: git details and project instructions."""

import subprocess
from pathlib import Path

from relay.models.session import ExecutionContext, GitInfo, Session
from relay.utils.logging import get_logger

logger = get_logger(__name__)


def _git(working_dir: Path, *args: str) -> str | None:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=working_dir,
            capture_output=True,
            text=True,
            timeout=5,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"git {' '.join(args)} failed: {e}")
        return None

    if result.returncode != 0:
        return None
    return result.stdout.strip()


def detect_git_info(working_dir: Path | str) -> GitInfo | None:
    """Return branch, commit and root for working_dir, or None outside a repository."""
    working_dir = Path(working_dir)
    if _git(working_dir, "rev-parse", "--git-dir") is None:
        return None

    branch = _git(working_dir, "rev-parse", "--abbrev-ref", "HEAD")
    commit = _git(working_dir, "rev-parse", "HEAD")
    root = _git(working_dir, "rev-parse", "--show-toplevel")

    # A fresh repository has no HEAD yet
    if not (branch and commit and root):
        return None

    return GitInfo(branch=branch, commit=commit, root=Path(root))


def load_project_instructions(root: Path | str, filename: str = "CLAUDE.md") -> str | None:
    path = Path(root) / filename
    if not path.is_file():
        return None
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        logger.warning(f"Could not read project instructions from {path}: {e}")
        return None


def initialize_session(working_dir: Path | str, instructions_file: str = "CLAUDE.md") -> Session:
    """Create a session whose context knows the repository and its instructions."""
    working_dir = Path(working_dir).resolve()
    git_info = detect_git_info(working_dir)
    instructions_root = git_info.root if git_info else working_dir

    context = ExecutionContext(
        working_dir=working_dir,
        git_info=git_info,
        project_instructions=load_project_instructions(instructions_root, instructions_file),
    )
    session = Session(context=context)
    logger.info(f"Initialized session {session.session_id} in {working_dir}")
    return session


def build_system_prompt(base_prompt: str | None, context: ExecutionContext | None) -> str | None:
    """Compose the system prompt from the configured base and the execution context."""
    if context is None:
        return base_prompt

    sections = [base_prompt] if base_prompt else []

    environment = [f"Working directory: {context.working_dir}"]
    if context.git_info:
        environment.append(f"Git branch: {context.git_info.branch}")
        environment.append(f"Git commit: {context.git_info.commit}")
    sections.append("\n".join(environment))

    if context.project_instructions:
        sections.append(f"Project instructions:\n{context.project_instructions.strip()}")

    return "\n\n".join(sections)
