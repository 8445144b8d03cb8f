"""Shared test fixtures for opencode-console."""

import json
from datetime import datetime, timezone

import pytest

from opencode_console.config import ConsoleConfig
from opencode_console.storage import RecordStore


def _ms(*args) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)


def write_json(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def write_session(storage, session):
    """Write a session record where OpenCode keeps it."""
    project = session.get("projectID") or "global"
    path = storage / "session" / project / f"{session['id']}.json"
    write_json(path, session)
    return path


@pytest.fixture
def tmp_storage(tmp_path):
    """Create a synthetic OpenCode storage directory.

    Layout:
    - ses_001 in project proj1 with three messages
    - msg_001 / msg_002 have part directories, msg_003 has none
    - session_diff/ses_001 and todo/ses_001 exist
    """
    storage = tmp_path / "storage"

    write_session(storage, {
        "id": "ses_001",
        "version": "1.1.34",
        "projectID": "proj1",
        "title": "Debug API endpoint",
        "directory": "/Users/testuser/dev/api-server",
        "time": {
            "created": _ms(2025, 1, 22, 8, 0, 0),
            "updated": _ms(2025, 1, 22, 8, 30, 0),
        },
        "summary": {"additions": 3, "deletions": 1, "files": 2},
    })

    msg_dir = storage / "message" / "ses_001"
    write_json(msg_dir / "msg_001.json", {
        "id": "msg_001",
        "sessionID": "ses_001",
        "role": "user",
        "time": {"created": _ms(2025, 1, 22, 8, 0, 0)},
    })
    write_json(msg_dir / "msg_002.json", {
        "id": "msg_002",
        "sessionID": "ses_001",
        "role": "assistant",
        "providerID": "anthropic",
        "modelID": "claude-sonnet",
        "time": {"created": _ms(2025, 1, 22, 8, 0, 30), "completed": _ms(2025, 1, 22, 8, 0, 45)},
    })
    write_json(msg_dir / "msg_003.json", {
        "id": "msg_003",
        "sessionID": "ses_001",
        "role": "assistant",
        "model": {"providerID": "openai", "modelID": "gpt-5"},
        "time": {"created": _ms(2025, 1, 22, 8, 1, 0), "completed": _ms(2025, 1, 22, 8, 2, 0)},
    })

    write_json(storage / "part" / "msg_001" / "prt_001.json", {
        "id": "prt_001",
        "messageID": "msg_001",
        "type": "text",
        "text": "Why is the /api/users endpoint returning 500?",
        "time": {"start": _ms(2025, 1, 22, 8, 0, 0)},
    })
    part_dir = storage / "part" / "msg_002"
    write_json(part_dir / "prt_002.json", {
        "id": "prt_002",
        "messageID": "msg_002",
        "type": "tool",
        "tool": "grep",
        "state": {
            "status": "completed",
            "title": "Search users query",
            "input": {"pattern": "SELECT.*FROM users"},
            "output": "src/db.ts:15: SELECT * FROM users WHERE id = $1",
        },
        "time": {"start": _ms(2025, 1, 22, 8, 0, 40)},
    })
    write_json(part_dir / "prt_001.json", {
        "id": "prt_001b",
        "messageID": "msg_002",
        "type": "text",
        "text": "The error is in the database query.",
        "time": {"start": _ms(2025, 1, 22, 8, 0, 31)},
    })
    write_json(part_dir / "prt_003.json", {
        "id": "prt_003",
        "messageID": "msg_002",
        "type": "step-start",
        "snapshot": "abc123",
        "time": {"start": _ms(2025, 1, 22, 8, 0, 30)},
    })

    write_json(storage / "session_diff" / "ses_001" / "diff.json", [{"file": "src/db.ts"}])
    write_json(storage / "todo" / "ses_001" / "todo.json", [{"content": "fix query"}])

    return storage


@pytest.fixture
def store(tmp_storage):
    return RecordStore(tmp_storage)


@pytest.fixture
def config(tmp_storage, tmp_path):
    return ConsoleConfig(
        storage_root=tmp_storage,
        opencode_bin="opencode-does-not-exist",
        codex_bin="codex-does-not-exist",
        codex_home=tmp_path / "codex",
        codex_status_timeout=2.0,
        fallback_cwd=tmp_path,
    )


@pytest.fixture
def make_session(tmp_storage):
    """Return a helper that writes a session record into ``tmp_storage``."""
    return lambda session: write_session(tmp_storage, session)


class FakeAppServer:
    """Stands in for ``AppServerSession`` with canned responses per method."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []
        self.initialized = False
        self.stopped = False

    async def request(self, method, params=None, timeout=None):
        self.calls.append((method, params))
        return self.responses[method]

    async def stop(self):
        self.stopped = True


@pytest.fixture
def fake_app_server():
    """Return a factory for app-server stand-ins."""
    return FakeAppServer
