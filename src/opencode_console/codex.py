"""Account and rate-limit status from ``codex app-server``.

Rate-limit payloads have come in several shapes over codex releases::

    {"rateLimits": {"primary": {...}, "secondary": {...}}}   # named windows
    {"rateLimits": [{...}, ...]}                             # window list
    {"rate_limits": [{...}, ...]}                            # window list

``classify_rate_limits`` turns a payload into one of ``NamedWindows``,
``WindowList`` or ``Unrecognized``; ``normalize_rate_limits`` maps each
variant to the uniform ``RateLimit`` shape.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union

from . import __version__
from .config import ConsoleConfig
from .core import CodexStatus, RateLimit
from .errors import CodexError, NoRateLimitDataError
from .rpc import AppServerSession

logger = logging.getLogger(__name__)

WEEK_MINUTES = 10080
CLIENT_NAME = "opencode-console"

# Field spellings seen across codex releases, most recent first.
REMAINING_KEYS = ("remaining_pct", "remainingPct")
USED_KEYS = ("usedPercent", "used_percent")
UTILIZATION_KEYS = ("utilization",)
RESET_KEYS = ("resets_at", "reset_at", "resetsAt")
WINDOW_KEYS = ("windowDurationMins", "window_minutes", "windowMinutes")


# ── Payload shapes ───────────────────────────────────────────────────


@dataclass
class NamedWindows:
    """``rateLimits`` as an object with ``primary`` / ``secondary`` windows."""

    primary: dict | None = None
    secondary: dict | None = None


@dataclass
class WindowList:
    """``rateLimits`` / ``rate_limits`` as a list of self-labelled windows."""

    items: list[dict] = field(default_factory=list)


@dataclass
class Unrecognized:
    raw: Any = None


RateLimitPayload = Union[NamedWindows, WindowList, Unrecognized]


def classify_rate_limits(result: Any) -> RateLimitPayload:
    if not isinstance(result, dict):
        return Unrecognized(result)

    limits = result.get("rateLimits")
    if isinstance(limits, dict):
        return NamedWindows(
            primary=limits.get("primary") if isinstance(limits.get("primary"), dict) else None,
            secondary=limits.get("secondary") if isinstance(limits.get("secondary"), dict) else None,
        )
    if isinstance(limits, list):
        return WindowList([item for item in limits if isinstance(item, dict)])
    if isinstance(result.get("rate_limits"), list):
        return WindowList([item for item in result["rate_limits"] if isinstance(item, dict)])
    return Unrecognized(result)


# ── Field extraction ─────────────────────────────────────────────────


def _number(data: dict, keys: tuple[str, ...]) -> float | None:
    for key in keys:
        value = data.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
    return None


def _clamp_pct(value: float) -> float:
    return max(0, min(100, value))


def extract_remaining_pct(data: dict) -> float | None:
    remaining = _number(data, REMAINING_KEYS)
    if remaining is not None:
        return remaining
    used = _number(data, USED_KEYS)
    if used is not None:
        return _clamp_pct(100 - used)
    utilization = _number(data, UTILIZATION_KEYS)
    if utilization is not None:
        return _clamp_pct(100 - utilization)
    return None


def extract_reset_at(data: dict) -> datetime | None:
    """Parse epoch seconds, epoch millis or an ISO-8601 string."""
    raw = next((data[k] for k in RESET_KEYS if data.get(k) is not None), None)
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        seconds = raw / 1000 if raw > 1_000_000_000_000 else raw
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (ValueError, OSError, OverflowError):
            return None
    if isinstance(raw, str):
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def label_from_window(window_minutes: float | None, fallback: str) -> str:
    if not window_minutes:
        return fallback
    if window_minutes >= WEEK_MINUTES:
        return "weekly limit"
    if window_minutes % 60 == 0:
        return f"{round(window_minutes / 60)}h limit"
    if float(window_minutes).is_integer():
        window_minutes = int(window_minutes)
    return f"{window_minutes}m limit"


# ── Normalization ────────────────────────────────────────────────────


def _from_named(payload: NamedWindows) -> list[RateLimit]:
    limits = []
    for name, data in (("primary", payload.primary), ("secondary", payload.secondary)):
        if data is None:
            continue
        limits.append(RateLimit(
            label=label_from_window(_number(data, WINDOW_KEYS), f"{name} limit"),
            remaining_pct=extract_remaining_pct(data),
            reset_at=extract_reset_at(data),
        ))
    return limits


def _from_list(payload: WindowList) -> list[RateLimit]:
    limits = []
    for item in payload.items:
        label = str(item.get("label") or item.get("name") or "limit")
        if label == "credits":
            continue
        limits.append(RateLimit(
            label=label,
            remaining_pct=extract_remaining_pct(item),
            reset_at=extract_reset_at(item),
        ))
    return limits


def normalize_rate_limits(result: Any) -> list[RateLimit]:
    """Return the uniform limit list for any known payload shape."""
    payload = classify_rate_limits(result)
    if isinstance(payload, NamedWindows):
        return _from_named(payload)
    if isinstance(payload, WindowList):
        return _from_list(payload)
    logger.debug("Unrecognized rate-limit payload: %.200s", json.dumps(payload.raw, default=str))
    return []


# ── Service ──────────────────────────────────────────────────────────


class CodexStatusService:
    """Reads account and rate-limit data through a persistent app-server."""

    def __init__(self, config: ConsoleConfig, session: AppServerSession | None = None):
        self.timeout = config.codex_status_timeout
        if session is None:
            env = {**config.child_env, "CODEX_HOME": str(config.codex_home)}
            session = AppServerSession([config.codex_bin, "app-server"], env)
        self.session = session

    async def get_status(self) -> CodexStatus:
        await self._ensure_initialized()

        account = requires_openai_auth = account_error = None
        account_response = await self.session.request(
            "account/read", {"refreshToken": False}, self.timeout
        )
        if isinstance(account_response.get("result"), dict):
            account = account_response["result"].get("account")
            requires_openai_auth = account_response["result"].get("requiresOpenaiAuth")
        elif account_response.get("error"):
            account_error = account_response["error"]

        response = await self.session.request("account/rateLimits/read", None, self.timeout)
        if response.get("error"):
            raise CodexError("codex app-server error", json.dumps(response["error"]))

        result = response.get("result") or {}
        limits = normalize_rate_limits(result)
        if not limits:
            raise NoRateLimitDataError("No rate limit data available", json.dumps(result)[:200])

        return CodexStatus(
            limits=limits,
            updated_at=datetime.now(timezone.utc),
            account=account,
            requires_openai_auth=requires_openai_auth,
            account_error=account_error,
        )

    async def close(self) -> None:
        await self.session.stop()

    async def _ensure_initialized(self) -> None:
        if self.session.initialized:
            return
        response = await self.session.request(
            "initialize",
            {"clientInfo": {"name": CLIENT_NAME, "version": __version__}},
            self.timeout,
        )
        error = response.get("error")
        if error and (error.get("message") if isinstance(error, dict) else None) != "Already initialized":
            raise CodexError("codex app-server init failed", json.dumps(error))
        self.session.initialized = True
