"""FastAPI web server for opencode-console."""

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import __version__
from .codex import CodexStatusService
from .config import ConsoleConfig
from .core import CodexStatus, SessionMessage, SessionSummary, TrashedSession
from .errors import ConflictError, ConsoleError, NotFoundError
from .messages import MessageService
from .opencode import OpencodeRunner
from .sessions import SessionService
from .storage import RecordStore
from .trash import TrashService

logger = logging.getLogger(__name__)


class CreateSessionBody(BaseModel):
    title: str | None = None
    project_id: str | None = None
    directory: str | None = None


class RenameSessionBody(BaseModel):
    title: str | None = None


class SendMessageBody(BaseModel):
    content: str | None = None


def _session_to_dict(session: SessionSummary) -> dict:
    return asdict(session)


def _message_to_dict(msg: SessionMessage) -> dict:
    return asdict(msg)


def _trash_item_to_dict(item: TrashedSession) -> dict:
    return {
        "trash_id": item.trash_id,
        "trashed_at": item.trashed_at,
        "session": item.session,
    }


def _status_to_dict(status: CodexStatus) -> dict:
    return {
        "status": "ok",
        "limits": [
            {
                "label": limit.label,
                "remaining_pct": limit.remaining_pct,
                "reset_at": limit.reset_at.isoformat() if limit.reset_at else None,
            }
            for limit in status.limits
        ],
        "updated_at": status.updated_at.isoformat(),
        "account": status.account,
        "requires_openai_auth": status.requires_openai_auth,
        "account_error": status.account_error,
    }


def create_app(config: ConsoleConfig) -> FastAPI:
    """Wire the services for ``config`` into a FastAPI application."""
    store = RecordStore(config.storage_root)
    sessions = SessionService(store)
    messages = MessageService(store, config.fallback_cwd)
    trash = TrashService(store)
    runner = OpencodeRunner(config.opencode_bin, config.child_env)
    codex = CodexStatusService(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await codex.close()

    app = FastAPI(title="opencode-console", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.codex = codex

    @app.exception_handler(ConsoleError)
    async def console_error_handler(request: Request, exc: ConsoleError):
        payload = {"error": exc.message}
        if exc.details:
            payload["details"] = exc.details
        return JSONResponse(status_code=exc.status_code, content=payload)

    def _failure(message: str, exc: Exception) -> ConsoleError:
        logger.error("%s: %s", message, exc)
        return ConsoleError(message)

    # ── Sessions ─────────────────────────────────────────────────────

    @app.get("/api/sessions")
    async def get_sessions():
        """Return all live sessions, most recently active first."""
        try:
            items = sessions.load_sessions()
        except OSError as e:
            raise _failure("Failed to load sessions", e) from e
        return {
            "sessions": [_session_to_dict(s) for s in items],
            "storage_root": str(store.storage_root),
        }

    @app.get("/api/sessions/{session_id}")
    async def get_session(session_id: str, limit: int = Query(200, ge=1, le=5000)):
        """Return one session record and its transcript."""
        try:
            session = sessions.load_session_meta(session_id)
            if session is None:
                raise NotFoundError("Session not found")
            transcript = messages.load_session_messages(session_id, limit)
        except OSError as e:
            raise _failure("Failed to load session", e) from e
        return {
            "session": session,
            "messages": [_message_to_dict(m) for m in transcript],
        }

    @app.post("/api/sessions", status_code=201)
    async def create_session(body: CreateSessionBody):
        try:
            session = sessions.create_session(body.title, body.project_id, body.directory)
        except OSError as e:
            raise _failure("Failed to create session", e) from e
        return {"session": session}

    @app.patch("/api/sessions/{session_id}")
    async def rename_session(session_id: str, body: RenameSessionBody):
        try:
            session = sessions.rename_session(session_id, body.title)
        except OSError as e:
            raise _failure("Failed to rename session", e) from e
        if session is None:
            raise NotFoundError("Session not found")
        return {"session": session}

    @app.delete("/api/sessions/{session_id}")
    async def delete_session(session_id: str):
        """Move a session and its records into the trash."""
        try:
            result = trash.move_session_to_trash(session_id)
        except OSError as e:
            raise _failure("Failed to delete session", e) from e
        if result is None:
            raise NotFoundError("Session not found")
        return {
            "status": "ok",
            "trash_id": result.trash_id,
            "trash_root": str(result.trash_root),
            "moved": asdict(result.moved),
        }

    @app.post("/api/sessions/{session_id}/message")
    async def send_message(session_id: str, body: SendMessageBody):
        """Queue a message with ``opencode run``; does not wait for the reply."""
        try:
            session = sessions.load_session_meta(session_id)
            cwd = messages.resolve_cwd((session or {}).get("directory"))
        except OSError as e:
            raise _failure("Failed to send message", e) from e
        queued = runner.queue_message(session_id, body.content, cwd)
        return {"status": queued.status, "queued": queued.queued, "pid": queued.pid}

    # ── Trash ────────────────────────────────────────────────────────

    @app.get("/api/trash/sessions")
    async def get_trash():
        try:
            items = trash.list_trashed_sessions()
        except OSError as e:
            raise _failure("Failed to load trash", e) from e
        return {"items": [_trash_item_to_dict(i) for i in items]}

    @app.post("/api/trash/sessions/{trash_id}/restore")
    async def restore_trash(trash_id: str):
        try:
            result = trash.restore_trashed_session(trash_id)
        except OSError as e:
            raise _failure("Failed to restore session", e) from e
        if result is None:
            raise NotFoundError("Trash item not found")
        if result.conflict:
            raise ConflictError("Session already exists")
        return {"status": "ok", "session": result.session}

    @app.delete("/api/trash/sessions/{trash_id}")
    async def delete_trash(trash_id: str):
        try:
            trash.delete_trashed_bundle(trash_id)
        except OSError as e:
            raise _failure("Failed to delete trash item", e) from e
        return {"status": "ok"}

    # ── Usage ────────────────────────────────────────────────────────

    @app.get("/api/usage/codex-status")
    async def get_codex_status():
        """Return Codex account and rate-limit data."""
        return _status_to_dict(await codex.get_status())

    return app
