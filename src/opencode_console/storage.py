"""Record store over an OpenCode storage directory.

Data is organized as::

    session/<projectID>/<sessionID>.json
    message/<sessionID>/<messageID>.json
    part/<messageID>/<partID>.json
    session_diff/<sessionID>/...
    todo/<sessionID>/...
    trash/sessions/<unixMillis>_<sessionID>/...

"Missing" is an ordinary answer at this layer: listings of absent subtrees
are empty and moves of absent sources report ``MoveOutcome.MISSING``. Every
other ``OSError`` propagates to the caller.
"""

import json
import logging
import os
import re
import shutil
from enum import Enum
from pathlib import Path
from typing import Any

from .errors import InvalidIdentifierError

logger = logging.getLogger(__name__)

_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class MoveOutcome(Enum):
    MOVED = "moved"
    MISSING = "missing"


def check_segment(kind: str, value: str) -> str:
    """Reject ids that are not a single, plain path segment."""
    if not isinstance(value, str) or not _SEGMENT_RE.match(value) or value in (".", ".."):
        raise InvalidIdentifierError(kind, value)
    return value


class RecordStore:
    """Key-value-by-path access to the JSON records under one storage root."""

    def __init__(self, storage_root: Path):
        self.storage_root = Path(storage_root)
        self.session_root = self.storage_root / "session"
        self.message_root = self.storage_root / "message"
        self.part_root = self.storage_root / "part"
        self.diff_root = self.storage_root / "session_diff"
        self.todo_root = self.storage_root / "todo"
        self.trash_root = self.storage_root / "trash" / "sessions"

    # ── Records ──────────────────────────────────────────────────────

    def read_record(self, path: Path) -> Any:
        return json.loads(Path(path).read_text(encoding="utf-8"))

    def read_record_or_none(self, path: Path) -> Any:
        """Like ``read_record`` but returns None for vanished or corrupt files."""
        try:
            return self.read_record(path)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Failed to parse record %s: %s", path, e)
            return None
        except FileNotFoundError:
            return None

    def write_record(self, path: Path, value: Any) -> None:
        """Serialize ``value`` with two-space indent and a trailing newline.

        Plain write, not temp-file-then-rename: a crash mid-write can leave a
        truncated record.
        """
        raw = json.dumps(value, indent=2, ensure_ascii=False)
        Path(path).write_text(f"{raw}\n", encoding="utf-8")

    def ensure_directory(self, path: Path) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    # ── Listings ─────────────────────────────────────────────────────

    def list_session_records(self) -> list[Path]:
        if not self.session_root.is_dir():
            return []
        return [p for p in self.session_root.rglob("ses_*.json") if p.is_file()]

    def find_session_record(self, session_id: str) -> Path | None:
        check_segment("session id", session_id)
        if not self.session_root.is_dir():
            return None
        for path in self.session_root.rglob(f"{session_id}.json"):
            if path.is_file():
                return path
        return None

    def list_message_records(self, session_id: str) -> list[Path]:
        check_segment("session id", session_id)
        return list_files(self.message_root / session_id, "msg_*.json")

    def list_part_records(self, message_id: str) -> list[Path]:
        check_segment("message id", message_id)
        return list_files(self.part_root / message_id, "prt_*.json")

    def read_message_records(self, session_id: str) -> list[dict]:
        """Parse every message record of a session, skipping unreadable files."""
        return [r for r in map(self.read_record_or_none, self.list_message_records(session_id)) if r is not None]

    def read_part_records(self, message_id: str) -> list[dict]:
        """Parse the parts of a message, ordered by their start time."""
        parts = [r for r in map(self.read_record_or_none, self.list_part_records(message_id)) if r is not None]
        parts.sort(key=lambda p: (p.get("time") or {}).get("start") or 0)
        return parts

    # ── Moves ────────────────────────────────────────────────────────

    def rename(self, source: Path, destination: Path) -> MoveOutcome:
        """Rename ``source`` to ``destination`` in place.

        Returns ``MoveOutcome.MISSING`` only when the source does not exist.
        A missing destination parent is created and the rename retried.
        """
        try:
            os.rename(source, destination)
            return MoveOutcome.MOVED
        except FileNotFoundError:
            if not os.path.lexists(source):
                return MoveOutcome.MISSING
        self.ensure_directory(Path(destination).parent)
        try:
            os.rename(source, destination)
        except FileNotFoundError:
            if not os.path.lexists(source):
                return MoveOutcome.MISSING
            raise
        return MoveOutcome.MOVED

    def move_if_present(self, source: Path, destination: Path) -> bool:
        """Move ``source`` if it exists; return whether it did."""
        return self.rename(source, destination) is MoveOutcome.MOVED

    def remove_tree(self, path: Path) -> None:
        """Recursively delete ``path``; an absent path is not an error."""
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass


def list_files(directory: Path, pattern: str) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.glob(pattern) if p.is_file())
