"""Core data models for opencode-console."""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional


@dataclass
class SessionSummary:
    """A session as shown in the dashboard list."""

    id: str  # "ses_<hex>"
    title: str
    directory: Optional[str] = None
    project_id: Optional[str] = None
    slug: Optional[str] = None
    version: Optional[str] = None
    created_at: Optional[int] = None  # unix millis, as stored
    updated_at: Optional[int] = None
    summary: Optional[dict] = None
    last_activity: int = 0
    status: str = "idle"  # "running" | "waiting" | "idle" | "stale"
    has_user_message: bool = False
    last_provider_id: Optional[str] = None
    last_model_id: Optional[str] = None


@dataclass
class SessionMessage:
    """One message of a session with its parts merged into text."""

    id: str  # "msg_<hex>"
    session_id: Optional[str]
    role: Optional[str]  # "user" | "assistant" | other
    content: str
    created_at: Optional[int] = None
    completed_at: Optional[int] = None
    agent: Optional[str] = None
    provider_id: Optional[str] = None
    model_id: Optional[str] = None
    path: Optional[dict] = None


@dataclass
class MovedRecords:
    """Which categories a trash move actually relocated."""

    session_file: bool = False
    messages: bool = False
    parts: int = 0  # number of part subtrees moved
    session_diff: bool = False
    todo: bool = False


@dataclass
class TrashResult:
    """Outcome of moving a session into the trash."""

    trash_id: str  # "<unixMillis>_<sessionId>"
    trash_root: Path
    moved: MovedRecords = field(default_factory=MovedRecords)


@dataclass
class TrashedSession:
    """A trash bundle together with the session record it holds."""

    trash_id: str
    trashed_at: Optional[int]  # None when the folder prefix is not a timestamp
    session: dict[str, Any]


@dataclass
class RestoreResult:
    """Outcome of restoring a trash bundle.

    Either ``conflict`` is True and nothing moved, or ``session`` holds the
    restored record.
    """

    session: Optional[dict[str, Any]] = None
    conflict: bool = False


@dataclass
class QueuedMessage:
    """A message handed to ``opencode run``.

    ``queued`` only means the process was spawned. Nobody waits for the run
    to finish.
    """

    session_id: str
    pid: int
    queued: bool = True
    status: str = "ok"


@dataclass
class RateLimit:
    """One usage window in the uniform shape the dashboard renders."""

    label: str  # "weekly limit", "5h limit", "45m limit", ...
    remaining_pct: Optional[float] = None
    reset_at: Optional[datetime] = None


@dataclass
class CodexStatus:
    """Account and rate-limit snapshot read from ``codex app-server``."""

    limits: list[RateLimit]
    updated_at: datetime
    account: Optional[dict[str, Any]] = None
    requires_openai_auth: Optional[bool] = None
    account_error: Optional[dict[str, Any]] = None
