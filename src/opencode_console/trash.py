"""Move sessions into the trash and back.

A trash bundle is ``trash/sessions/<unixMillis>_<sessionID>/`` holding the
session file plus whichever of ``message/``, ``part/<messageID>/``,
``session_diff/`` and ``todo/`` existed for that session.

Every step is a best-effort rename. A missing source is skipped; any other
filesystem error aborts the operation and leaves already-moved records where
they are. There is no rollback and no locking: two operations on the same
session at the same time can interleave, and two deletes of one session in
the same millisecond would share a bundle name.
"""

import logging
import time
from pathlib import Path
from typing import Callable

from .core import MovedRecords, RestoreResult, TrashedSession, TrashResult
from .sessions import DEFAULT_PROJECT_ID
from .storage import RecordStore, check_segment, list_files

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def parse_trashed_at(trash_id: str) -> int | None:
    """Return the millisecond timestamp encoded in a bundle name, or None."""
    prefix = trash_id.split("_", 1)[0]
    if not (prefix.isascii() and prefix.isdigit()):
        return None
    return int(prefix) or None


class TrashService:
    """Archival engine over a ``RecordStore``."""

    def __init__(self, store: RecordStore, clock: Callable[[], int] = _now_ms):
        self.store = store
        self._clock = clock

    def move_session_to_trash(self, session_id: str) -> TrashResult | None:
        """Relocate a session and its dependent records into a new bundle.

        Returns None when the session record does not exist; no bundle is
        created in that case.
        """
        store = self.store
        session_file = store.find_session_record(session_id)
        if session_file is None:
            return None

        trash_id = f"{self._clock()}_{session_id}"
        bundle = store.trash_root / trash_id
        store.ensure_directory(bundle)
        moved = MovedRecords()

        moved.session_file = store.move_if_present(session_file, bundle / session_file.name)

        message_files = store.list_message_records(session_id)
        if message_files:
            store.ensure_directory(bundle / "message")
            store.ensure_directory(bundle / "part")
        for message_file in message_files:
            message_id = message_file.stem
            store.move_if_present(message_file, bundle / "message" / message_file.name)
            if store.move_if_present(store.part_root / message_id, bundle / "part" / message_id):
                moved.parts += 1
        moved.messages = bool(message_files)

        moved.session_diff = store.move_if_present(store.diff_root / session_id, bundle / "session_diff")
        moved.todo = store.move_if_present(store.todo_root / session_id, bundle / "todo")

        logger.info(
            "Moved session %s to trash %s (messages=%d, parts=%d)",
            session_id, trash_id, len(message_files), moved.parts,
        )
        return TrashResult(trash_id=trash_id, trash_root=bundle, moved=moved)

    def list_trashed_sessions(self) -> list[TrashedSession]:
        """Return trash bundles, newest first; undated bundles sort last."""
        trash_root = self.store.trash_root
        if not trash_root.is_dir():
            return []

        items = []
        for bundle in trash_root.iterdir():
            if not bundle.is_dir():
                continue
            session_file = _find_bundle_session(bundle)
            if session_file is None:
                continue
            session = self.store.read_record_or_none(session_file)
            if not isinstance(session, dict):
                continue
            items.append(TrashedSession(
                trash_id=bundle.name,
                trashed_at=parse_trashed_at(bundle.name),
                session=session,
            ))

        items.sort(key=lambda item: item.trashed_at or 0, reverse=True)
        return items

    def restore_trashed_session(self, trash_id: str) -> RestoreResult | None:
        """Move a bundle's records back into the live store.

        Returns None when the bundle holds no readable session record, and
        ``RestoreResult(conflict=True)`` without moving anything when a live
        record with the same id already exists. The existence check and the
        move are not atomic.
        """
        store = self.store
        bundle = store.trash_root / check_segment("trash id", trash_id)
        session_file = _find_bundle_session(bundle)
        if session_file is None:
            return None

        session = store.read_record_or_none(session_file)
        if not isinstance(session, dict):
            logger.warning("Trash bundle %s holds no session object in %s", trash_id, session_file.name)
            return None
        session_id = check_segment("session id", session.get("id") or session_file.stem)
        project_id = check_segment("project id", session.get("projectID") or DEFAULT_PROJECT_ID)
        target = store.session_root / project_id / f"{session_id}.json"
        if target.exists():
            logger.info("Restore of %s skipped: %s already exists", trash_id, target)
            return RestoreResult(conflict=True)

        store.ensure_directory(target.parent)
        store.move_if_present(session_file, target)

        message_files = list_files(bundle / "message", "msg_*.json")
        if message_files:
            live_messages = store.message_root / session_id
            store.ensure_directory(live_messages)
            for message_file in message_files:
                store.move_if_present(message_file, live_messages / message_file.name)

        part_bundle = bundle / "part"
        if part_bundle.is_dir():
            for part_dir in sorted(part_bundle.iterdir()):
                if part_dir.is_dir():
                    store.move_if_present(part_dir, store.part_root / part_dir.name)

        store.move_if_present(bundle / "session_diff", store.diff_root / session_id)
        store.move_if_present(bundle / "todo", store.todo_root / session_id)

        store.remove_tree(bundle)
        logger.info("Restored session %s from trash %s", session_id, trash_id)
        return RestoreResult(session=session)

    def delete_trashed_bundle(self, trash_id: str) -> None:
        """Permanently delete a bundle. Deleting an absent bundle is a no-op."""
        self.store.remove_tree(self.store.trash_root / check_segment("trash id", trash_id))
        logger.info("Deleted trash bundle %s", trash_id)


def _find_bundle_session(bundle: Path) -> Path | None:
    """Locate the session file of a bundle, preferring the bundle root."""
    if not bundle.is_dir():
        return None
    candidates = list_files(bundle, "ses_*.json") or sorted(
        p for p in bundle.rglob("ses_*.json") if p.is_file()
    )
    return candidates[0] if candidates else None
