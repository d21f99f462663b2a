"""
File transfer target: SFTP (paramiko) and plain FTP (ftplib).

SFTP streams the document in fixed-size chunks and reports progress after
every write; plain FTP performs a single ``STOR``.  Both resolve the username
and remote path the same way.
"""

from __future__ import annotations

import ftplib
import logging
import os
from pathlib import Path
from typing import BinaryIO, Optional

import paramiko

from ernest.config.export_config import (
    ExportConfigError,
    ProjectConfig,
    ResolvedFtpConfig,
    require_profile,
)
from ernest.config.settings import (
    FTP_PASSWORD_ENV,
    ftp_password_fallback,
    runtime_settings,
)
from ernest.exporters.common import ExportContext, ExportErrorCode, ExportResponse
from ernest.security.credentials import (
    CredentialKind,
    CredentialStoreError,
    CredentialTarget,
    CredentialVault,
)

LOGGER = logging.getLogger(__name__)

USERNAME_ENV_VARS = ("USER", "USERNAME", "LOGNAME")
DEFAULT_REMOTE_NAME = "export.md"


class TransferCancelled(RuntimeError):
    """Raised from the chunk loop when the job's cancel flag is set."""


class SshAuthFailed(RuntimeError):
    """Raised when neither the SSH agent nor a password authenticated."""


def resolve_username(value: str) -> str:
    if value and value.strip():
        return value.strip()
    for name in USERNAME_ENV_VARS:
        candidate = os.environ.get(name, "").strip()
        if candidate:
            return candidate
    return ""


def resolve_remote_path(remote_path: str, file_path: Path) -> str:
    if remote_path.endswith("/"):
        return f"{remote_path}{file_path.name or DEFAULT_REMOTE_NAME}"
    return remote_path


def stream_upload(
    source: BinaryIO,
    sink: BinaryIO,
    total_bytes: int,
    ctx: ExportContext,
    *,
    chunk_size: int,
) -> int:
    """Copy ``source`` into ``sink`` chunk by chunk, polling cancellation."""
    sent_bytes = 0
    while True:
        if ctx.cancelled():
            raise TransferCancelled()
        chunk = source.read(chunk_size)
        if not chunk:
            break
        sink.write(chunk)
        sent_bytes += len(chunk)
        ctx.report_progress(sent_bytes, total_bytes)
    return sent_bytes


# ---------------------------------------------------------------------------
# SFTP
# ---------------------------------------------------------------------------
def _auth_with_agent(transport: paramiko.Transport, username: str) -> None:
    try:
        agent = paramiko.Agent()
    except (paramiko.SSHException, OSError) as exc:
        LOGGER.debug("SSH agent unavailable: %s", exc)
        return
    try:
        for key in agent.get_keys():
            try:
                transport.auth_publickey(username, key)
            except paramiko.SSHException:
                continue
            if transport.is_authenticated():
                return
    except (paramiko.SSHException, OSError) as exc:
        LOGGER.debug("SSH agent authentication skipped: %s", exc)
    finally:
        agent.close()


def open_sftp(
    host: str, port: int, username: str, password: Optional[str]
) -> tuple[paramiko.Transport, paramiko.SFTPClient]:
    """Connect and authenticate: SSH agent first, then the stored password."""
    transport = paramiko.Transport((host, port))
    try:
        transport.start_client()
        _auth_with_agent(transport, username)
        if not transport.is_authenticated() and password is not None:
            transport.auth_password(username, password)
        if not transport.is_authenticated():
            raise SshAuthFailed("ssh_auth_failed")
        sftp = paramiko.SFTPClient.from_transport(transport)
        if sftp is None:
            raise paramiko.SSHException("Unable to open SFTP channel")
    except BaseException:
        transport.close()
        raise
    return transport, sftp


def upload_sftp(
    ctx: ExportContext,
    file_path: Path,
    remote_path: str,
    resolved: ResolvedFtpConfig,
    username: str,
    password: Optional[str],
    total_bytes: int,
) -> None:
    transport, sftp = open_sftp(resolved.host, resolved.port, username, password)
    try:
        with file_path.open("rb") as local_file, sftp.open(remote_path, "wb") as remote:
            stream_upload(
                local_file,
                remote,
                total_bytes,
                ctx,
                chunk_size=runtime_settings().chunk_size,
            )
    finally:
        sftp.close()
        transport.close()


# ---------------------------------------------------------------------------
# FTP
# ---------------------------------------------------------------------------
def upload_ftp(
    file_path: Path,
    remote_path: str,
    host: str,
    port: int,
    username: str,
    password: str,
) -> None:
    ftp = ftplib.FTP()
    ftp.connect(host, port)
    try:
        ftp.login(username, password)
        with file_path.open("rb") as handle:
            ftp.storbinary(f"STOR {remote_path}", handle)
    finally:
        try:
            ftp.quit()
        except ftplib.all_errors:
            ftp.close()


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------
def export_transfer(
    ctx: ExportContext, config: ProjectConfig, vault: CredentialVault
) -> ExportResponse:
    """Upload the document over SFTP or FTP using the requested profile."""
    section = config.ftp
    if section is None or not section.enabled:
        return ctx.failure(ExportErrorCode.TARGET_DISABLED, "FTP export is disabled")

    try:
        profile = require_profile(section.profiles, ctx.request.profile, label="FTP")
        resolved = section.resolve(profile)
    except ExportConfigError as exc:
        return ctx.failure(exc.code, exc.message, exc.detail)

    if ctx.cancelled():
        return ctx.cancelled_response()

    try:
        stored_password = vault.get(
            ctx.request.file_path,
            CredentialTarget.FTP,
            ctx.request.profile,
            CredentialKind.PASSWORD,
        )
    except CredentialStoreError as exc:
        return ctx.failure(
            ExportErrorCode.FTP_FAILED, "Unable to access credential storage", str(exc)
        )

    username = resolve_username(resolved.username)
    if not username:
        return ctx.failure(ExportErrorCode.FTP_MISSING_USERNAME, "FTP username is missing")

    file_path = Path(ctx.request.file_path)
    remote_path = resolve_remote_path(resolved.remote_path, file_path)
    try:
        total_bytes = file_path.stat().st_size
    except OSError as exc:
        return ctx.failure(
            ExportErrorCode.FTP_FAILED, "Unable to read file metadata", str(exc)
        )

    if resolved.protocol == "sftp":
        return _run_sftp(
            ctx, file_path, remote_path, resolved, username, stored_password, total_bytes
        )
    return _run_ftp(ctx, file_path, remote_path, resolved, username, stored_password)


def _run_sftp(
    ctx: ExportContext,
    file_path: Path,
    remote_path: str,
    resolved: ResolvedFtpConfig,
    username: str,
    stored_password: Optional[str],
    total_bytes: int,
) -> ExportResponse:
    ctx.info("Connecting via SFTP", resolved.host)
    try:
        upload_sftp(
            ctx, file_path, remote_path, resolved, username, stored_password, total_bytes
        )
    except TransferCancelled:
        return ctx.cancelled_response()
    except SshAuthFailed as exc:
        if stored_password is None:
            return ctx.failure(
                ExportErrorCode.FTP_MISSING_PASSWORD,
                "SFTP password missing (set in app or use SSH agent)",
            )
        return ctx.failure(ExportErrorCode.FTP_FAILED, "SFTP export failed", str(exc))
    except (OSError, paramiko.SSHException) as exc:
        return ctx.failure(ExportErrorCode.FTP_FAILED, "SFTP export failed", str(exc))
    LOGGER.info(
        "SFTP upload finished",
        extra={"job_id": ctx.job_id, "host": resolved.host, "bytes": total_bytes},
    )
    return ctx.success("SFTP export completed")


def _run_ftp(
    ctx: ExportContext,
    file_path: Path,
    remote_path: str,
    resolved: ResolvedFtpConfig,
    username: str,
    stored_password: Optional[str],
) -> ExportResponse:
    password = stored_password
    if not password:
        password = ftp_password_fallback()
        if password:
            ctx.warn("Using FTP password from environment", FTP_PASSWORD_ENV)
    if not password:
        return ctx.failure(
            ExportErrorCode.FTP_MISSING_PASSWORD, "FTP password missing (set in app)"
        )

    ctx.info("Connecting via FTP", resolved.host)
    try:
        upload_ftp(file_path, remote_path, resolved.host, resolved.port, username, password)
    except ftplib.all_errors as exc:
        return ctx.failure(ExportErrorCode.FTP_FAILED, "FTP export failed", str(exc))
    LOGGER.info(
        "FTP upload finished", extra={"job_id": ctx.job_id, "host": resolved.host}
    )
    return ctx.success("FTP export completed")


__all__ = [
    "SshAuthFailed",
    "TransferCancelled",
    "export_transfer",
    "open_sftp",
    "resolve_remote_path",
    "resolve_username",
    "stream_upload",
    "upload_ftp",
    "upload_sftp",
]
