"""
Runtime settings for the export engine.

Values resolve from ``ERNEST_*`` environment variables so the desktop shell,
the HTTP server and the CLI share one configuration surface.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional

DEFAULT_KEYRING_SERVICE = "ernest"
DEFAULT_EXPORT_WORKERS = 4
DEFAULT_CHUNK_SIZE = 8192
FTP_PASSWORD_ENV = "ERNEST_FTP_PASSWORD"


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        return default
    return value if value > 0 else default


@dataclass(frozen=True)
class RuntimeSettings:
    keyring_service: str = DEFAULT_KEYRING_SERVICE
    export_workers: int = DEFAULT_EXPORT_WORKERS
    chunk_size: int = DEFAULT_CHUNK_SIZE
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "RuntimeSettings":
        env = os.environ if env is None else env
        service = (env.get("ERNEST_KEYRING_SERVICE") or "").strip()
        return cls(
            keyring_service=service or DEFAULT_KEYRING_SERVICE,
            export_workers=_int_env(env, "ERNEST_EXPORT_WORKERS", DEFAULT_EXPORT_WORKERS),
            chunk_size=_int_env(env, "ERNEST_TRANSFER_CHUNK_SIZE", DEFAULT_CHUNK_SIZE),
            log_level=(env.get("ERNEST_LOG_LEVEL") or "INFO").strip() or "INFO",
            log_dir=(env.get("ERNEST_LOG_DIR") or "").strip() or None,
        )


@lru_cache(maxsize=1)
def runtime_settings() -> RuntimeSettings:
    return RuntimeSettings.from_env()


def ftp_password_fallback() -> str:
    return os.environ.get(FTP_PASSWORD_ENV, "")


__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_EXPORT_WORKERS",
    "DEFAULT_KEYRING_SERVICE",
    "FTP_PASSWORD_ENV",
    "RuntimeSettings",
    "ftp_password_fallback",
    "runtime_settings",
]
