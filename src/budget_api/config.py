from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Optional


# Environment variable names
ENV_BASE_URL = "BUDGET_API_BASE_URL"
ENV_TIMEOUT = "BUDGET_API_TIMEOUT"
ENV_LOG_LEVEL = "BUDGET_LOG_LEVEL"
ENV_LOG_FORMAT = "BUDGET_LOG_FORMAT"

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 15.0


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def _require(v: Optional[str], what: str) -> str:
    if not v:
        raise RuntimeError(f"Missing required configuration: {what}")
    return v


def _parse_timeout(raw: str) -> float:
    try:
        value = float(raw)
    except ValueError as exc:
        raise RuntimeError(f"Invalid {ENV_TIMEOUT}: {raw!r} is not a number") from exc
    if value <= 0:
        raise RuntimeError(f"Invalid {ENV_TIMEOUT}: must be > 0 (got {raw!r})")
    return value


@dataclass(frozen=True)
class ApiConfig:
    """
    Connection settings for the budgeting API.

    Environment variables (optional)
    - `BUDGET_API_BASE_URL`: API root, e.g. "https://budget.example.com"
    - `BUDGET_API_TIMEOUT`:  per-request timeout in seconds (float)
    - `BUDGET_LOG_LEVEL`:    log level name used by `setup_logging`
    - `BUDGET_LOG_FORMAT`:   "text" (default) or "json"
    """

    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    log_level: str = "INFO"
    log_format: str = "text"

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ValueError("base_url is required")
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")

    def configure_logging(self) -> None:
        setup_logging(self.log_level, self.log_format)

    @classmethod
    def from_env(cls) -> "ApiConfig":
        base_url = _require(_getenv(ENV_BASE_URL, DEFAULT_BASE_URL), ENV_BASE_URL)
        raw_timeout = _getenv(ENV_TIMEOUT)
        timeout = _parse_timeout(raw_timeout) if raw_timeout is not None else DEFAULT_TIMEOUT
        log_level = _getenv(ENV_LOG_LEVEL, "INFO") or "INFO"
        log_format = (_getenv(ENV_LOG_FORMAT, "text") or "text").lower()
        return cls(
            base_url=base_url,
            timeout=timeout,
            log_level=log_level.upper(),
            log_format=log_format,
        )


class JSONFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False)


def setup_logging(level: str = "INFO", fmt: str = "text") -> None:
    """
    Configure root logging once for an embedding application.

    `fmt` is "json" for structured output; anything else is human-readable.
    Calling again only adjusts the level.
    """
    root = logging.getLogger()
    if any(getattr(h, "_budget_handler", False) for h in root.handlers):
        root.setLevel(getattr(logging, level.upper(), logging.INFO))
        return
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s"))
    handler._budget_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


__all__ = ["ApiConfig", "JSONFormatter", "setup_logging", "DEFAULT_BASE_URL", "DEFAULT_TIMEOUT"]
