"""
Export targets (git, SFTP/FTP, Netlify, Vercel) and their shared result types.

Adapters live in their own modules; this namespace only re-exports the wire
types so configuration code can import error codes without pulling in the
network stacks.
"""

from __future__ import annotations

from .common import (
    ExportContext,
    ExportError,
    ExportErrorCode,
    ExportFinished,
    ExportLog,
    ExportLogLevel,
    ExportProgress,
    ExportRequest,
    ExportResponse,
    ExportTarget,
)

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
]
