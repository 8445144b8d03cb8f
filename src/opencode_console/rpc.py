"""Persistent JSON-RPC client over a child process's stdio.

One ``AppServerSession`` owns one child process. Requests are written to its
stdin as newline-delimited JSON-RPC 2.0 envelopes; responses are read from
its stdout, one JSON object per line, and matched back to their caller by
``id``. Any number of requests may be in flight at once and responses may
arrive in any order.

Lifecycle::

    STOPPED --request()/start()--> STARTING --> RUNNING --exit/stop()--> STOPPED

When the process exits every pending caller fails with
``ProcessExitedError``. Nothing restarts it in the background; the next
``request()`` spawns a fresh process.
"""
from __future__ import annotations

import asyncio
import codecs
import json
import logging
from enum import Enum
from typing import Any, Mapping, Sequence

from .errors import ProcessExitedError, ProcessUnavailableError, RpcTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 8.0  # seconds
_READ_CHUNK = 64 * 1024
_STOP_GRACE = 2.0


class SessionState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


class AppServerSession:
    """A long-lived child process multiplexing JSON-RPC requests by id."""

    def __init__(
        self,
        command: Sequence[str],
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.command = list(command)
        self.env = dict(env) if env is not None else None
        self.initialized = False
        self._state = SessionState.STOPPED
        self._process: asyncio.subprocess.Process | None = None
        self._reader_task: asyncio.Task | None = None
        self._pending: dict[int, asyncio.Future] = {}
        self._next_id = 1
        self._buffer = ""
        self._start_lock = asyncio.Lock()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def start(self) -> None:
        """Spawn the child unless it is already running."""
        if self._process is not None:
            return
        async with self._start_lock:
            if self._process is not None:
                return
            self._state = SessionState.STARTING
            try:
                # argv list, no shell
                proc = await asyncio.create_subprocess_exec(
                    *self.command,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.DEVNULL,
                    env=self.env,
                )
            except OSError as exc:
                self._state = SessionState.STOPPED
                logger.error("Failed to start %s: %s", self.command[0], exc)
                raise ProcessUnavailableError(
                    f"failed to start {self.command[0]}", str(exc)
                ) from exc

            self._process = proc
            self._buffer = ""
            self._state = SessionState.RUNNING
            self._reader_task = asyncio.create_task(self._read_loop(proc))
            logger.info("Started %s (pid=%d)", " ".join(self.command), proc.pid)

    async def stop(self) -> None:
        """Terminate the child if it is running. Safe to call repeatedly."""
        proc = self._process
        if proc is None:
            return
        self._detach(proc, "app-server stopped")

        if proc.returncode is None:
            try:
                proc.terminate()
                await asyncio.wait_for(proc.wait(), timeout=_STOP_GRACE)
            except ProcessLookupError:
                pass
            except asyncio.TimeoutError:
                proc.kill()
                await proc.wait()

        reader = self._reader_task
        self._reader_task = None
        if reader is not None and not reader.done():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
        logger.info("Stopped %s (pid=%d)", self.command[0], proc.pid)

    async def request(
        self,
        method: str,
        params: Any = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> dict[str, Any]:
        """Send one request and wait for the response carrying its id.

        Returns the whole response envelope. An RPC-level ``error`` member is
        passed through for the caller to inspect.
        """
        await self.start()

        request_id = self._next_id
        self._next_id += 1
        envelope: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            envelope["params"] = params

        proc = self._process
        if proc is None or proc.stdin is None or proc.stdin.is_closing():
            raise ProcessUnavailableError("app-server not running")

        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            proc.stdin.write(json.dumps(envelope).encode("utf-8") + b"\n")
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError, RuntimeError) as exc:
            self._pending.pop(request_id, None)
            if future.done():
                # Already failed by _detach; nobody else will read it.
                future.exception()
            else:
                future.cancel()
            raise ProcessUnavailableError("failed to write to app-server", str(exc)) from exc

        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("%s (id=%d) timed out after %ss", method, request_id, timeout)
            raise RpcTimeoutError(method, timeout) from None
        finally:
            # Once unregistered, a late response for this id is dropped.
            self._pending.pop(request_id, None)

    # ── Private helpers ──────────────────────────────────────────────

    async def _read_loop(self, proc: asyncio.subprocess.Process) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                chunk = await proc.stdout.read(_READ_CHUNK)
                if not chunk:
                    break
                self._feed(decoder.decode(chunk))
            self._feed(decoder.decode(b"", final=True))
            await proc.wait()
        finally:
            if self._process is proc:
                logger.info("%s exited (rc=%s)", self.command[0], proc.returncode)
                self._detach(proc, "app-server exited", f"exit code {proc.returncode}")

    def _feed(self, text: str) -> None:
        """Append decoded stdout text and dispatch every complete line."""
        self._buffer += text
        while True:
            index = self._buffer.find("\n")
            if index == -1:
                return
            line = self._buffer[:index].strip()
            self._buffer = self._buffer[index + 1:]
            if line:
                self._dispatch(line)

    def _dispatch(self, line: str) -> None:
        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Skipping non-JSON line from %s", self.command[0])
            return
        if not isinstance(payload, dict):
            return

        response_id = payload.get("id")
        if isinstance(response_id, bool) or not isinstance(response_id, (int, float)):
            # Notification or event without a request id.
            return
        future = self._pending.pop(response_id, None)
        if future is None or future.done():
            return
        future.set_result(payload)

    def _detach(
        self,
        proc: asyncio.subprocess.Process,
        reason: str,
        details: str | None = None,
    ) -> None:
        """Forget ``proc`` and fail every request still waiting on it."""
        if self._process is proc:
            self._process = None
            self._state = SessionState.STOPPED
            self.initialized = False
            self._buffer = ""
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(ProcessExitedError(reason, details))
