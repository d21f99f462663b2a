"""
Export pipeline: validate the request, load the project configuration and
dispatch to the target adapter.

Cancellation is polled before anything touches disk, again once the
configuration is loaded, and then at each adapter's own checkpoints.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from functools import partial
from pathlib import Path
from typing import Optional

from ernest.config.export_config import ExportConfigError, read_config
from ernest.core.events import ExportEventSink
from ernest.core.export_jobs import ExportJobManager, ExportJobRegistry
from ernest.core.project import config_path, find_project_root
from ernest.exporters.common import (
    ExportContext,
    ExportErrorCode,
    ExportResponse,
    ExportTarget,
)
from ernest.exporters.git_target import export_git
from ernest.exporters.transfer import export_transfer
from ernest.exporters.webhooks import export_netlify, export_vercel
from ernest.security.credentials import CredentialVault

LOGGER = logging.getLogger(__name__)


def run_export(ctx: ExportContext, vault: CredentialVault) -> ExportResponse:
    if ctx.cancelled():
        return ctx.cancelled_response()

    file_path = Path(ctx.request.file_path)
    if not file_path.exists():
        return ctx.failure(ExportErrorCode.FILE_MISSING, "File does not exist")

    project_root = find_project_root(file_path)
    if project_root is None:
        return ctx.failure(
            ExportErrorCode.CONFIG_MISSING, "No .export.toml found in parent folders"
        )

    path = config_path(project_root)
    ctx.info("Loading export configuration", str(path))
    try:
        config = read_config(path)
    except ExportConfigError as exc:
        return ctx.failure(exc.code, exc.message, exc.detail)

    if ctx.cancelled():
        return ctx.cancelled_response()

    target = ctx.request.target
    LOGGER.debug(
        "Dispatching export",
        extra={"job_id": ctx.job_id, "target": target.value, "profile": ctx.request.profile},
    )
    if target is ExportTarget.GIT:
        return export_git(ctx, config, project_root)
    if target is ExportTarget.FTP:
        return export_transfer(ctx, config, vault)
    if target is ExportTarget.NETLIFY:
        return export_netlify(ctx, config, vault)
    return export_vercel(ctx, config)


def create_export_manager(
    sink: ExportEventSink,
    *,
    vault: Optional[CredentialVault] = None,
    registry: Optional[ExportJobRegistry] = None,
    executor: Optional[Executor] = None,
    max_workers: Optional[int] = None,
) -> ExportJobManager:
    """Wire a job manager that runs :func:`run_export` against ``vault``."""
    return ExportJobManager(
        registry if registry is not None else ExportJobRegistry(),
        sink,
        partial(run_export, vault=vault or CredentialVault()),
        executor=executor,
        max_workers=max_workers,
    )


__all__ = ["create_export_manager", "run_export"]
