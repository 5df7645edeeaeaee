"""Session and execution context models."""

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any

from cuid2 import cuid_wrapper

from relay.models.messages import Message, Role
from relay.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()


class SessionState(StrEnum):
    """Lifecycle state of a session."""

    ACTIVE = "active"
    PAUSED = "paused"
    CLOSED = "closed"


@dataclass(frozen=True)
class GitInfo:
    """Version control details for the working directory."""

    branch: str
    commit: str
    root: Path


@dataclass
class ExecutionContext:
    """Where the assistant is running and what it knows about the project."""

    working_dir: Path
    git_info: GitInfo | None = None
    project_instructions: str | None = None
    environment: dict[str, str] = field(default_factory=dict)

    def set_env(self, key: str, value: str) -> None:
        self.environment[key] = value


@dataclass
class Session:
    """Append-only conversation log for one interactive run.

    Messages are only ever appended; the transcript is replayed verbatim to
    the backend on every round. The session does not lock: callers keep a
    single writer per session.
    """

    context: ExecutionContext
    session_id: str = field(default_factory=cuid)
    state: SessionState = SessionState.ACTIVE
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    _messages: list[Message] = field(default_factory=list, repr=False)

    @classmethod
    def new(cls, working_dir: Path | str) -> "Session":
        """Create an active session with a bare context for working_dir."""
        return cls(context=ExecutionContext(working_dir=Path(working_dir)))

    @property
    def messages(self) -> tuple[Message, ...]:
        """Read-only view of the transcript in insertion order."""
        return tuple(self._messages)

    @property
    def message_count(self) -> int:
        return len(self._messages)

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def append(self, message: Message) -> None:
        """Append a message to the end of the transcript."""
        self._messages.append(message)

    add_message = append

    def last_user_message(self) -> Message | None:
        """Most recent user-role message, if any."""
        for message in reversed(self._messages):
            if message.role == Role.USER:
                return message
        return None

    def pause(self) -> None:
        logger.debug(f"Pausing session {self.session_id}")
        self.state = SessionState.PAUSED

    def resume(self) -> None:
        logger.debug(f"Resuming session {self.session_id}")
        self.state = SessionState.ACTIVE

    def close(self) -> None:
        logger.debug(f"Closing session {self.session_id}")
        self.state = SessionState.CLOSED

    def as_dict(self) -> dict[str, Any]:
        """Return a summary of the session for logging."""
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "message_count": self.message_count,
            "working_dir": str(self.context.working_dir),
            "created_at": self.created_at.isoformat(),
        }
