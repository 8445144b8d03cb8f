"""Tests for queuing messages through ``opencode run``."""

import subprocess
import sys

import pytest

from opencode_console.errors import InvalidIdentifierError, InvalidRequestError, LaunchError
from opencode_console.opencode import OpencodeRunner


def test_queue_message_returns_pid(tmp_path):
    runner = OpencodeRunner(sys.executable)

    queued = runner.queue_message("ses_001", "hello", tmp_path)

    assert queued.queued is True
    assert queued.status == "ok"
    assert queued.session_id == "ses_001"
    assert queued.pid > 0
    runner.children[0].wait(timeout=30)


def test_finished_runs_are_reaped(tmp_path):
    runner = OpencodeRunner(sys.executable)

    runner.queue_message("ses_001", "first", tmp_path)
    first = runner.children[0]
    first.wait(timeout=30)
    runner.queue_message("ses_001", "second", tmp_path)

    assert first not in runner.children
    assert first.returncode is not None
    assert len(runner.children) == 1

    runner.children[0].wait(timeout=30)
    assert runner.reap() == 0
    assert runner.children == []


def test_queue_message_command_line(tmp_path, monkeypatch):
    seen = {}

    class FakePopen:
        pid = 4242

        def __init__(self, cmd, **kwargs):
            seen["cmd"] = cmd
            seen.update(kwargs)

    monkeypatch.setattr(subprocess, "Popen", FakePopen)
    runner = OpencodeRunner("opencode", {"PATH": "/usr/bin"})

    queued = runner.queue_message("ses_001", "fix the bug; rm -rf /", tmp_path)

    assert queued.pid == 4242
    assert seen["cmd"] == ["opencode", "run", "--session", "ses_001", "fix the bug; rm -rf /"]
    assert seen["cwd"] == str(tmp_path)
    assert seen["env"] == {"PATH": "/usr/bin"}
    assert seen["start_new_session"] is True
    assert seen["stdout"] is subprocess.DEVNULL


def test_missing_binary_raises_launch_error(tmp_path):
    runner = OpencodeRunner("opencode-does-not-exist")

    with pytest.raises(LaunchError) as excinfo:
        runner.queue_message("ses_001", "hello", tmp_path)

    assert excinfo.value.message == "Failed to launch opencode"
    assert excinfo.value.details


@pytest.mark.parametrize("content", ["", "   ", None])
def test_blank_content_rejected(tmp_path, content):
    with pytest.raises(InvalidRequestError, match="content is required"):
        OpencodeRunner(sys.executable).queue_message("ses_001", content, tmp_path)


def test_bad_session_id_rejected(tmp_path):
    with pytest.raises(InvalidIdentifierError):
        OpencodeRunner(sys.executable).queue_message("../ses_001", "hello", tmp_path)
