"""Exception hierarchy for opencode-console.

One class per failure mode. Each carries the HTTP status the server answers
with, so the web layer never has to inspect messages.
"""

from __future__ import annotations


class ConsoleError(Exception):
    """Base exception for all console errors."""

    status_code = 500

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


class InvalidRequestError(ConsoleError):
    """Caller supplied a missing or malformed value."""

    status_code = 400


class InvalidIdentifierError(InvalidRequestError):
    """An id would escape its storage directory."""

    def __init__(self, kind: str, value: str):
        self.kind = kind
        self.value = value
        super().__init__(f"Invalid {kind}: {value!r}")


class NotFoundError(ConsoleError):
    """Session, trash bundle or session record is absent."""

    status_code = 404


class ConflictError(ConsoleError):
    """Restore target already exists in the live store."""

    status_code = 409


class ProcessUnavailableError(ConsoleError):
    """The RPC child is not running or its stdin cannot be written."""


class ProcessExitedError(ConsoleError):
    """The RPC child exited while a request was in flight."""

    def __init__(self, message: str = "app-server exited", details: str | None = None):
        super().__init__(message, details)


class RpcTimeoutError(ConsoleError):
    """No response arrived for a request within its timeout."""

    status_code = 504

    def __init__(self, method: str, timeout: float):
        self.method = method
        self.timeout = timeout
        super().__init__(
            "timeout waiting for app-server response",
            f"{method} did not answer within {timeout}s",
        )


class LaunchError(ConsoleError):
    """An external CLI could not be spawned."""


class CodexError(ConsoleError):
    """codex app-server answered with an RPC-level error."""


class NoRateLimitDataError(ConsoleError):
    """Rate-limit payload normalized to an empty list."""

    status_code = 404
