"""
Shared result types for export targets.

Every target adapter returns an :class:`ExportResponse` and appends to the same
ordered log list, so the collaborator always receives the full diagnostic
trail, including on failure.  Wire payloads use camelCase keys.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


class ExportTarget(str, Enum):
    GIT = "git"
    FTP = "ftp"
    NETLIFY = "netlify"
    VERCEL = "vercel"


class ExportErrorCode(str, Enum):
    EXPORT_CANCELLED = "export_cancelled"
    EXPORT_FAILED = "export_failed"
    CONFIG_MISSING = "config_missing"
    CONFIG_INVALID = "config_invalid"
    UNSUPPORTED_CONFIG_VERSION = "unsupported_config_version"
    TARGET_DISABLED = "target_disabled"
    PROFILE_MISSING = "profile_missing"
    PROFILE_DISABLED = "profile_disabled"
    PROFILE_REQUIRED = "profile_required"
    FILE_MISSING = "file_missing"
    FILE_NOT_IN_REPO = "file_not_in_repo"
    GIT_REPO_MISSING = "git_repo_missing"
    GIT_DIRTY = "git_dirty"
    GIT_FAILED = "git_failed"
    FTP_FAILED = "ftp_failed"
    FTP_MISSING_USERNAME = "ftp_missing_username"
    FTP_MISSING_PASSWORD = "ftp_missing_password"
    NETLIFY_MISSING_TOKEN = "netlify_missing_token"
    NETLIFY_FAILED = "netlify_failed"
    VERCEL_FAILED = "vercel_failed"


class ExportLogLevel(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


@dataclass
class ExportLog:
    level: ExportLogLevel
    message: str
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"level": self.level.value, "message": self.message}
        if self.detail is not None:
            payload["detail"] = self.detail
        return payload


@dataclass
class ExportError:
    code: ExportErrorCode
    message: str
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.detail is not None:
            payload["detail"] = self.detail
        return payload


@dataclass
class ExportResponse:
    ok: bool
    summary: str
    logs: List[ExportLog] = field(default_factory=list)
    error: Optional[ExportError] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "ok": self.ok,
            "summary": self.summary,
            "logs": [entry.to_dict() for entry in self.logs],
        }
        if self.error is not None:
            payload["error"] = self.error.to_dict()
        return payload


@dataclass(frozen=True)
class ExportRequest:
    file_path: str
    target: ExportTarget
    profile: Optional[str] = None

    @classmethod
    def build(
        cls, file_path: str, target: str | ExportTarget, profile: Optional[str] = None
    ) -> "ExportRequest":
        return cls(
            file_path=str(file_path),
            target=ExportTarget(target),
            profile=profile or None,
        )


@dataclass(frozen=True)
class ExportProgress:
    job_id: str
    sent_bytes: int
    total_bytes: int
    percent: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jobId": self.job_id,
            "sentBytes": self.sent_bytes,
            "totalBytes": self.total_bytes,
            "percent": self.percent,
        }


@dataclass(frozen=True)
class ExportFinished:
    job_id: str
    response: ExportResponse

    def to_dict(self) -> Dict[str, Any]:
        return {"jobId": self.job_id, "response": self.response.to_dict()}


ProgressCallback = Callable[[int, int], None]


@dataclass
class ExportContext:
    """Per-job state handed to every adapter."""

    job_id: str
    request: ExportRequest
    cancel: threading.Event
    logs: List[ExportLog] = field(default_factory=list)
    on_progress: Optional[ProgressCallback] = None

    def cancelled(self) -> bool:
        return self.cancel.is_set()

    def info(self, message: str, detail: Optional[str] = None) -> None:
        self.logs.append(ExportLog(ExportLogLevel.INFO, message, detail))

    def warn(self, message: str, detail: Optional[str] = None) -> None:
        self.logs.append(ExportLog(ExportLogLevel.WARN, message, detail))

    def report_progress(self, sent_bytes: int, total_bytes: int) -> None:
        if self.on_progress is not None:
            self.on_progress(sent_bytes, total_bytes)

    # -------------------------------------------------------------- responses
    def success(self, summary: str) -> ExportResponse:
        return ExportResponse(ok=True, summary=summary, logs=list(self.logs))

    def failure(
        self, code: ExportErrorCode, message: str, detail: Optional[str] = None
    ) -> ExportResponse:
        return ExportResponse(
            ok=False,
            summary=message,
            logs=list(self.logs),
            error=ExportError(code=code, message=message, detail=detail),
        )

    def cancelled_response(self) -> ExportResponse:
        self.warn("Export cancelled")
        return self.failure(ExportErrorCode.EXPORT_CANCELLED, "Export cancelled")


def progress_percent(sent_bytes: int, total_bytes: int) -> float:
    if total_bytes <= 0:
        return 0.0
    return (sent_bytes / total_bytes) * 100.0


__all__ = [
    "ExportContext",
    "ExportError",
    "ExportErrorCode",
    "ExportFinished",
    "ExportLog",
    "ExportLogLevel",
    "ExportProgress",
    "ExportRequest",
    "ExportResponse",
    "ExportTarget",
    "ProgressCallback",
    "progress_percent",
]
