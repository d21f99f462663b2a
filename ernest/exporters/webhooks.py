from __future__ import annotations

import logging
from typing import Optional

import requests

from ernest.config.export_config import ExportConfigError, ProjectConfig, select_profile
from ernest.exporters.common import ExportContext, ExportErrorCode, ExportResponse
from ernest.security.credentials import (
    CredentialKind,
    CredentialStoreError,
    CredentialTarget,
    CredentialVault,
)

LOGGER = logging.getLogger(__name__)

NETLIFY_BUILDS_URL = "https://api.netlify.com/api/v1/sites/{site_id}/builds"
ENVIRONMENT_HEADER = "X-Ernest-Environment"
WEBHOOK_TIMEOUT = (5, 30)


def _failure_detail(response: requests.Response) -> str:
    text: Optional[str]
    try:
        text = response.text
    except (requests.RequestException, UnicodeDecodeError):
        text = None
    if text and text.strip():
        return text
    reason = response.reason or ""
    return f"{response.status_code} {reason}".strip()


def _post(
    ctx: ExportContext,
    url: str,
    *,
    headers: dict[str, str],
    failure_code: ExportErrorCode,
    failure_message: str,
    success_summary: str,
) -> ExportResponse:
    try:
        response = requests.post(url, headers=headers, timeout=WEBHOOK_TIMEOUT)
    except requests.RequestException as exc:
        return ctx.failure(failure_code, failure_message, str(exc))
    if not response.ok:
        LOGGER.warning(
            "%s (HTTP %s)",
            failure_message,
            response.status_code,
            extra={"job_id": ctx.job_id},
        )
        return ctx.failure(failure_code, failure_message, _failure_detail(response))
    return ctx.success(success_summary)


def export_netlify(
    ctx: ExportContext, config: ProjectConfig, vault: CredentialVault
) -> ExportResponse:
    """Trigger a Netlify build for the configured site."""
    section = config.netlify
    if section is None or not section.enabled:
        return ctx.failure(ExportErrorCode.TARGET_DISABLED, "Netlify export is disabled")

    try:
        profile = select_profile(section.profiles, ctx.request.profile, label="Netlify")
    except ExportConfigError as exc:
        return ctx.failure(exc.code, exc.message, exc.detail)
    resolved = section.resolve(profile)

    if not resolved.trigger_deploy:
        return ctx.failure(
            ExportErrorCode.TARGET_DISABLED, "Netlify deploy trigger disabled"
        )

    if ctx.cancelled():
        return ctx.cancelled_response()

    site_id = (resolved.site_id or "").strip()
    if not site_id:
        return ctx.failure(
            ExportErrorCode.CONFIG_INVALID,
            "Invalid Netlify configuration",
            "site_id missing",
        )

    try:
        token = vault.get(
            ctx.request.file_path,
            CredentialTarget.NETLIFY,
            ctx.request.profile,
            CredentialKind.TOKEN,
        )
    except CredentialStoreError as exc:
        return ctx.failure(
            ExportErrorCode.NETLIFY_FAILED,
            "Unable to access credential storage",
            str(exc),
        )
    if token is None:
        return ctx.failure(
            ExportErrorCode.NETLIFY_MISSING_TOKEN, "Netlify token missing (set in app)"
        )

    if ctx.cancelled():
        return ctx.cancelled_response()

    ctx.info("Triggering Netlify deploy", site_id)
    return _post(
        ctx,
        NETLIFY_BUILDS_URL.format(site_id=site_id),
        headers={"Authorization": f"Bearer {token}"},
        failure_code=ExportErrorCode.NETLIFY_FAILED,
        failure_message="Netlify deploy failed",
        success_summary="Netlify deploy triggered",
    )


def export_vercel(ctx: ExportContext, config: ProjectConfig) -> ExportResponse:
    """Call the Vercel deploy hook, tagging the request with the environment."""
    section = config.vercel
    if section is None or not section.enabled:
        return ctx.failure(ExportErrorCode.TARGET_DISABLED, "Vercel export is disabled")

    try:
        profile = select_profile(section.profiles, ctx.request.profile, label="Vercel")
    except ExportConfigError as exc:
        return ctx.failure(exc.code, exc.message, exc.detail)
    resolved = section.resolve(profile)

    hook_url = (resolved.deploy_hook_url or "").strip()
    if not hook_url:
        return ctx.failure(
            ExportErrorCode.CONFIG_INVALID,
            "Invalid Vercel configuration",
            "deploy_hook_url missing",
        )

    if ctx.cancelled():
        return ctx.cancelled_response()

    project_name = resolved.project_name or "vercel"
    ctx.info("Triggering Vercel deploy", f"{project_name} ({resolved.environment})")
    return _post(
        ctx,
        hook_url,
        headers={ENVIRONMENT_HEADER: resolved.environment},
        failure_code=ExportErrorCode.VERCEL_FAILED,
        failure_message="Vercel deploy failed",
        success_summary="Vercel deploy triggered",
    )


__all__ = [
    "ENVIRONMENT_HEADER",
    "NETLIFY_BUILDS_URL",
    "export_netlify",
    "export_vercel",
]
