"""Assemble session transcripts from message and part records.

Message records carry only metadata; the content lives in
``part/<messageID>/prt_*.json``. Parts are merged per message:

- ``text``: as-is
- ``reasoning``: as-is when not blank
- ``tool``: ``[tool:<name>] <title>`` followed by input and output lines
- anything else (``step-start``, ``patch``, ...): dropped
"""

import json
import logging
from pathlib import Path

from .core import SessionMessage
from .sessions import provider_model
from .storage import RecordStore

logger = logging.getLogger(__name__)

OUTPUT_LIMIT = 1200


def truncate_text(text, limit: int = OUTPUT_LIMIT) -> str:
    if not isinstance(text, str):
        return ""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}\n... [truncated]"


def summarize_tool_input(tool_input) -> str:
    """Pick the most telling field of a tool input, or fall back to JSON."""
    if not tool_input:
        return ""
    if isinstance(tool_input, str):
        return tool_input
    if not isinstance(tool_input, dict):
        return str(tool_input)
    for key in ("command", "filePath", "path", "url", "query"):
        if tool_input.get(key):
            return str(tool_input[key])
    try:
        return json.dumps(tool_input, ensure_ascii=False)
    except (TypeError, ValueError):
        return ""


def format_tool_part(part: dict) -> str:
    tool_name = part.get("tool") or "tool"
    state = part.get("state") or {}
    metadata = state.get("metadata") or {}

    title = state.get("title") or metadata.get("description") or ""
    header = f"[tool:{tool_name}] {title}" if title else f"[tool:{tool_name}]"
    input_line = summarize_tool_input(state.get("input"))
    output = truncate_text(metadata.get("preview") or state.get("output") or metadata.get("output") or "")

    lines = [header]
    if input_line:
        lines.append(f"input: {input_line}")
    if output:
        lines.append(f"output:\n{output}")
    return "\n".join(lines)


def merge_parts(parts: list[dict]) -> str:
    chunks = []
    for part in parts:
        part_type = part.get("type")
        if part_type == "text" and isinstance(part.get("text"), str):
            chunks.append(part["text"])
        elif part_type == "reasoning" and isinstance(part.get("text"), str) and part["text"].strip():
            chunks.append(part["text"])
        elif part_type == "tool":
            chunks.append(format_tool_part(part))
    return "\n\n".join(c for c in chunks if c and c.strip())


class MessageService:
    """Transcript reader over a ``RecordStore``."""

    def __init__(self, store: RecordStore, fallback_cwd: Path | None = None):
        self.store = store
        self.fallback_cwd = Path(fallback_cwd) if fallback_cwd else Path.cwd()

    def load_session_messages(self, session_id: str, limit: int = 200) -> list[SessionMessage]:
        """Return the newest ``limit`` messages of a session, oldest first."""
        metas = self.store.read_message_records(session_id)
        metas.sort(key=lambda m: (m.get("time") or {}).get("created") or 0)
        if limit > 0:
            metas = metas[-limit:]

        messages = []
        for meta in metas:
            msg_id = meta.get("id")
            if not msg_id:
                continue
            content = merge_parts(self.store.read_part_records(msg_id))
            provider_id, model_id = provider_model(meta)
            time_data = meta.get("time") or {}
            messages.append(SessionMessage(
                id=msg_id,
                session_id=meta.get("sessionID"),
                role=meta.get("role"),
                content=content,
                created_at=time_data.get("created"),
                completed_at=time_data.get("completed"),
                agent=meta.get("agent") or meta.get("mode") or None,
                provider_id=provider_id,
                model_id=model_id,
                path=meta.get("path"),
            ))
        return messages

    def resolve_cwd(self, directory: str | None) -> Path:
        """Return the session directory if it still exists, else the fallback."""
        if directory and Path(directory).is_dir():
            return Path(directory)
        return self.fallback_cwd
