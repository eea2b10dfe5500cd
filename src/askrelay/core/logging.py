"""
askrelay logging — colorized dev output, JSON in production.

Features:
- Color formatter for dev mode (auto-detects TTY)
- JSON structured formatter for production (ASKRELAY_LOG_FORMAT=json)
- Suppresses noisy third-party loggers (httpx, openai, botocore)
- PipelineTimer for per-request stage latency

Structured log extra fields (pass via logger.info(..., extra={...})):
    session_id, provider, state, kind, duration_ms, status
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from datetime import datetime, timezone


COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[1;31m",
    "RESET": "\033[0m",
    "DIM": "\033[2m",
}


class ColorFormatter(logging.Formatter):
    """Colorized log formatter for terminal output."""

    def __init__(self, use_color: bool = True):
        super().__init__(
            fmt="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
            datefmt="%H:%M:%S",
        )
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_color:
            return super().format(record)

        level_color = COLORS.get(record.levelname, "")
        reset = COLORS["RESET"]

        orig_levelname = record.levelname
        orig_name = record.name
        record.levelname = f"{level_color}{record.levelname}{reset}"
        record.name = f"{COLORS['DIM']}{record.name}{reset}"
        try:
            return super().format(record)
        finally:
            record.levelname = orig_levelname
            record.name = orig_name


_STRUCTURED_FIELDS = (
    "session_id",
    "provider",
    "state",
    "kind",
    "duration_ms",
    "status",
    "attempt",
)


class StructuredFormatter(logging.Formatter):
    """JSON log formatter — one object per line.

    Extra fields passed via logger.info("msg", extra={"provider": "bedrock"})
    land at the top level for easy querying.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in _STRUCTURED_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class PipelineTimer:
    """Tracks timing across the stages of one ask request.

    Usage:
        timer = PipelineTimer()
        timer.mark("context")
        timer.mark("first_token")
        timer.mark("stream")
        timer.summary()  # -> "context: 0.1s | first_token: 0.9s | stream: 3.2s | Total: 4.2s"
    """

    def __init__(self):
        self._marks: list[tuple[str, float]] = []
        self._start = time.monotonic()

    def mark(self, stage: str) -> None:
        self._marks.append((stage, time.monotonic()))

    def elapsed(self, stage: str) -> float | None:
        """Seconds between the previous mark (or start) and this stage."""
        for i, (name, ts) in enumerate(self._marks):
            if name == stage:
                prev_ts = self._marks[i - 1][1] if i > 0 else self._start
                return ts - prev_ts
        return None

    def total(self) -> float:
        return time.monotonic() - self._start

    def summary(self) -> str:
        parts = []
        for i, (name, ts) in enumerate(self._marks):
            prev_ts = self._marks[i - 1][1] if i > 0 else self._start
            parts.append(f"{name}: {ts - prev_ts:.1f}s")
        parts.append(f"Total: {self.total():.1f}s")
        return " | ".join(parts)


def mask_secret(value: str | None, visible: int = 5) -> str:
    """Render a secret for logs: first few characters only."""
    if not value:
        return "<unset>"
    return f"{value[:visible]}..."


def _should_use_color() -> bool:
    env_val = os.getenv("ASKRELAY_LOG_COLOR", "auto").lower()
    if env_val == "true":
        return True
    if env_val == "false":
        return False
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def setup_logging() -> None:
    """Configure logging for the whole process. Call once at startup.

    askrelay is a library and never calls this itself; the host application
    owns the root logger and decides whether to use this setup.

    Env vars:
        ASKRELAY_LOG_LEVEL  — DEBUG / INFO / WARNING / ERROR (default: INFO)
        ASKRELAY_LOG_COLOR  — true / false / auto (default: auto)
        ASKRELAY_LOG_FORMAT — text / json (default: text)
    """
    level_name = os.getenv("ASKRELAY_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    log_format = os.getenv("ASKRELAY_LOG_FORMAT", "text").lower()

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    if log_format == "json":
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = ColorFormatter(use_color=_should_use_color())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    for noisy_logger in [
        "httpx",
        "httpcore",
        "openai",
        "openai._base_client",
        "botocore",
        "boto3",
        "urllib3",
        "uvicorn.access",
    ]:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    logging.getLogger("askrelay").debug(
        "Logging configured (level=%s, format=%s)", level_name, log_format
    )
