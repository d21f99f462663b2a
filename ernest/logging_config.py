"""
JSON logging for the CLI and the HTTP server.

Every record becomes one JSON object.  Worker threads bind the current export
job id through :func:`set_job_id` so adapter logs carry it without threading
``extra=`` through every call.
"""

from __future__ import annotations

import json
import logging
import os
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict

DEFAULT_LOG_FILE = "export.log"
SECURITY_LOG_FILE = "security.log"
SECURITY_LOGGER = "ernest.security"

_JOB_ID: ContextVar[str | None] = ContextVar("ernest_job_id", default=None)

# Everything a bare LogRecord carries; anything else on a record came from extra=.
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName", "job_id"}


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)
    return value


class StructuredJsonFormatter(logging.Formatter):
    """Render log records as structured JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        job_id = getattr(record, "job_id", None) or _JOB_ID.get()
        if job_id:
            payload["job_id"] = job_id

        extra = {
            key: _jsonable(value)
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS
        }
        if extra:
            payload["extra"] = extra

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info
        return json.dumps(payload, ensure_ascii=True)


def set_job_id(value: str | None) -> Token:
    return _JOB_ID.set(value)


def reset_job_id(token: Token) -> None:
    try:
        _JOB_ID.reset(token)
    except (RuntimeError, ValueError):
        # Token created in another context; nothing to restore here.
        pass


def default_log_dir() -> Path:
    override = os.getenv("ERNEST_LOG_DIR")
    if override:
        return Path(override).expanduser().resolve()
    return Path("logs").resolve()


def _rotating_handler(path: Path, max_bytes: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        str(path), maxBytes=max_bytes, backupCount=5, encoding="utf-8"
    )
    handler.setFormatter(StructuredJsonFormatter())
    return handler


def init_logging(
    log_dir: str | os.PathLike[str] | None = None,
    *,
    level: str = "INFO",
    filename: str = DEFAULT_LOG_FILE,
) -> Path:
    """Initialise root logging with structured JSON output.

    Credential audit records go to a separate, non-propagating
    ``ernest.security`` logger backed by ``security.log``.  Returns the path
    of the main log file.
    """
    base = Path(log_dir).expanduser().resolve() if log_dir else default_log_dir()
    base.mkdir(parents=True, exist_ok=True)
    log_path = base / filename

    root = logging.getLogger()
    numeric_level = logging.getLevelName(str(level).upper())
    root.setLevel(numeric_level if isinstance(numeric_level, int) else logging.INFO)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    root.addHandler(_rotating_handler(log_path, 5 * 1024 * 1024))
    console = logging.StreamHandler()
    console.setFormatter(StructuredJsonFormatter())
    root.addHandler(console)

    security = logging.getLogger(SECURITY_LOGGER)
    security.setLevel(logging.INFO)
    security.propagate = False
    security_path = base / SECURITY_LOG_FILE
    already_attached = any(
        isinstance(h, RotatingFileHandler) and Path(h.baseFilename) == security_path
        for h in security.handlers
    )
    if not already_attached:
        security.addHandler(_rotating_handler(security_path, 1_000_000))

    return log_path


__all__ = [
    "StructuredJsonFormatter",
    "default_log_dir",
    "init_logging",
    "reset_job_id",
    "set_job_id",
]
