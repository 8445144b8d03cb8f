"""Session listing, lookup, creation and rename.

Activity status is derived from the newest message of each session:

- ``running``: newest message has no completion time, or activity ≤ 1 min ago
- ``waiting``: last message is from the user, ≤ 10 min ago
- ``idle``: ≤ 60 min ago, or no activity known
- ``stale``: anything older
"""

import logging
import secrets
import time
from typing import Any, Callable

from .core import SessionSummary
from .errors import InvalidRequestError
from .storage import RecordStore, check_segment

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_ID = "global"
DEFAULT_VERSION = "1.0.0"

_RUNNING_MS = 60 * 1000
_WAITING_MS = 10 * 60 * 1000
_IDLE_MS = 60 * 60 * 1000


def compute_status(now: int, last_activity: int, last_role: str | None) -> str:
    if not last_activity:
        return "idle"
    age = now - last_activity
    if age <= _RUNNING_MS:
        return "running"
    if last_role == "user" and age <= _WAITING_MS:
        return "waiting"
    if age <= _IDLE_MS:
        return "idle"
    return "stale"


def provider_model(meta: dict) -> tuple[str | None, str | None]:
    """Return (providerID, modelID) from either the flat or nested spelling."""
    model = meta.get("model") if isinstance(meta.get("model"), dict) else {}
    return (
        meta.get("providerID") or model.get("providerID") or None,
        meta.get("modelID") or model.get("modelID") or None,
    )


def _created(record: dict) -> int:
    return (record.get("time") or {}).get("created") or 0


class SessionService:
    """Read and write session records through a ``RecordStore``."""

    def __init__(self, store: RecordStore, clock: Callable[[], float] = time.time):
        self.store = store
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def load_sessions(self, now: int | None = None) -> list[SessionSummary]:
        """Return every live session, most recently active first."""
        if now is None:
            now = self._now_ms()

        sessions = []
        for path in self.store.list_session_records():
            data = self.store.read_record_or_none(path)
            if not isinstance(data, dict) or not data.get("id"):
                continue
            sessions.append(self._summarize(data, now))

        sessions.sort(key=lambda s: s.last_activity, reverse=True)
        return sessions

    def load_session_meta(self, session_id: str) -> dict[str, Any] | None:
        path = self.store.find_session_record(session_id)
        if path is None:
            return None
        return self.store.read_record(path)

    def create_session(
        self,
        title: str,
        project_id: str | None = None,
        directory: str | None = None,
    ) -> dict[str, Any]:
        if not isinstance(title, str) or not title.strip():
            raise InvalidRequestError("title is required")
        project_id = check_segment("project id", project_id or DEFAULT_PROJECT_ID)

        now = self._now_ms()
        session = {
            "id": f"ses_{secrets.token_hex(12)}",
            "version": self._default_version() or DEFAULT_VERSION,
            "projectID": project_id,
            "directory": directory or None,
            "title": title.strip(),
            "time": {"created": now, "updated": now},
            "summary": {"additions": 0, "deletions": 0, "files": 0},
        }

        session_dir = self.store.session_root / project_id
        self.store.ensure_directory(session_dir)
        self.store.write_record(session_dir / f"{session['id']}.json", session)
        logger.info("Created session %s in project %s", session["id"], project_id)
        return session

    def rename_session(self, session_id: str, title: str) -> dict[str, Any] | None:
        if not isinstance(title, str) or not title.strip():
            raise InvalidRequestError("title is required")
        path = self.store.find_session_record(session_id)
        if path is None:
            return None

        session = self.store.read_record(path)
        session["title"] = title.strip()
        session.setdefault("time", {})["updated"] = self._now_ms()
        self.store.write_record(path, session)
        return session

    # ── Private helpers ──────────────────────────────────────────────

    def _default_version(self) -> str | None:
        """Borrow the storage version from any existing session."""
        for path in self.store.list_session_records():
            data = self.store.read_record_or_none(path)
            if isinstance(data, dict):
                return data.get("version") or None
        return None

    def _summarize(self, data: dict, now: int) -> SessionSummary:
        time_data = data.get("time") or {}
        metas = sorted(self.store.read_message_records(data["id"]), key=_created)
        last = metas[-1] if metas else {}

        last_provider_id = last_model_id = None
        for meta in reversed(metas):
            last_provider_id, last_model_id = provider_model(meta)
            if last_provider_id or last_model_id:
                break

        updated = time_data.get("updated") or time_data.get("created") or 0
        last_activity = max(updated, _created(last))
        last_time = last.get("time") or {}
        if last_time.get("created") and not last_time.get("completed"):
            status = "running"
        else:
            status = compute_status(now, last_activity, last.get("role"))

        return SessionSummary(
            id=data["id"],
            title=data.get("title") or data.get("slug") or data["id"],
            directory=data.get("directory"),
            project_id=data.get("projectID"),
            slug=data.get("slug"),
            version=data.get("version"),
            created_at=time_data.get("created"),
            updated_at=time_data.get("updated"),
            summary=data.get("summary"),
            last_activity=last_activity,
            status=status,
            has_user_message=any(m.get("role") == "user" for m in metas),
            last_provider_id=last_provider_id,
            last_model_id=last_model_id,
        )
