"""Hand user messages to ``opencode run``.

This is fire-and-forget. ``queue_message`` returns as soon as the OS has
spawned the process; the run itself continues detached and nobody waits for
it. A successful return means "queued", never "completed". Finished runs
are reaped on the next call.
"""

import logging
import subprocess
from pathlib import Path
from typing import Mapping

from .core import QueuedMessage
from .errors import InvalidRequestError, LaunchError
from .storage import check_segment

logger = logging.getLogger(__name__)


class OpencodeRunner:
    """Launches detached ``opencode run --session <id> <content>`` processes."""

    def __init__(self, opencode_bin: str = "opencode", env: Mapping[str, str] | None = None):
        self.opencode_bin = opencode_bin
        self.env = dict(env) if env else None
        self.children: list[subprocess.Popen] = []

    def queue_message(self, session_id: str, content: str, cwd: Path) -> QueuedMessage:
        check_segment("session id", session_id)
        if not isinstance(content, str) or not content.strip():
            raise InvalidRequestError("content is required")

        self.reap()
        cmd = [self.opencode_bin, "run", "--session", session_id, content]
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=str(cwd),
                env=self.env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as exc:
            logger.error("Failed to launch %s: %s", self.opencode_bin, exc)
            raise LaunchError("Failed to launch opencode", str(exc)) from exc

        self.children.append(proc)
        logger.info("Queued message for %s (pid=%d)", session_id, proc.pid)
        return QueuedMessage(session_id=session_id, pid=proc.pid)

    def reap(self) -> int:
        """Collect exited runs; return how many are still going."""
        self.children = [proc for proc in self.children if proc.poll() is None]
        return len(self.children)
