from __future__ import annotations

import logging
from pathlib import Path

from ernest.config.export_config import ExportConfigError, ProjectConfig, select_profile
from ernest.exporters.common import ExportContext, ExportErrorCode, ExportResponse
from ernest.exporters.git_runner import GitCommandError, run_git

LOGGER = logging.getLogger(__name__)

NOTHING_TO_COMMIT = "nothing to commit"


def _resolve_repo_path(project_root: Path, repo_path: str) -> Path:
    path = Path(repo_path).expanduser()
    return path if path.is_absolute() else project_root / path


def _is_inside(path: Path, root: Path) -> bool:
    try:
        path.resolve().relative_to(root.resolve())
    except ValueError:
        return False
    return True


def _nothing_to_commit(ctx: ExportContext, detail: str | None) -> ExportResponse:
    ctx.warn("Nothing to commit", detail)
    return ctx.success("No changes to commit")


def export_git(
    ctx: ExportContext, config: ProjectConfig, project_root: Path
) -> ExportResponse:
    """Stage (and optionally commit) the document in its git repository."""
    section = config.git
    if section is None or not section.enabled:
        return ctx.failure(ExportErrorCode.TARGET_DISABLED, "Git export is disabled")

    try:
        profile = select_profile(section.profiles, ctx.request.profile, label="Git")
    except ExportConfigError as exc:
        return ctx.failure(exc.code, exc.message, exc.detail)

    resolved = section.resolve(profile)
    repo_path = _resolve_repo_path(project_root, resolved.repo_path)
    file_path = Path(ctx.request.file_path).absolute()

    if ctx.cancelled():
        return ctx.cancelled_response()

    ctx.info("Running Git checks", str(repo_path))
    checks = set(resolved.checks)

    if "repo" in checks:
        try:
            run_git(repo_path, ["rev-parse", "--is-inside-work-tree"])
        except GitCommandError:
            return ctx.failure(ExportErrorCode.GIT_REPO_MISSING, "Not a git repository")

    status_output = ""
    if checks & {"status", "clean"}:
        try:
            status_output = run_git(repo_path, ["status", "--porcelain"])
        except GitCommandError as exc:
            return ctx.failure(
                ExportErrorCode.GIT_FAILED, "Unable to read git status", exc.output
            )
        if status_output.strip():
            ctx.warn("Git status is not clean", status_output.strip())
        else:
            ctx.info("Git status clean")

    if "clean" in checks and status_output.strip():
        return ctx.failure(ExportErrorCode.GIT_DIRTY, "Git working tree is not clean")

    try:
        repo_root = Path(run_git(repo_path, ["rev-parse", "--show-toplevel"]).strip())
    except GitCommandError as exc:
        return ctx.failure(
            ExportErrorCode.GIT_REPO_MISSING,
            "Unable to resolve repository root",
            exc.output,
        )

    if not _is_inside(file_path, repo_root):
        return ctx.failure(
            ExportErrorCode.FILE_NOT_IN_REPO,
            "File is outside the git repository",
            str(repo_root),
        )

    if ctx.cancelled():
        return ctx.cancelled_response()

    ctx.info("Git add", str(file_path))
    try:
        run_git(repo_root, ["add", "--", str(file_path)])
    except GitCommandError as exc:
        return ctx.failure(ExportErrorCode.GIT_FAILED, "git add failed", exc.output)

    if resolved.mode == "add-and-commit":
        message = f"Export {file_path.name or 'file'}"
        ctx.info("Git commit", message)
        try:
            output = run_git(repo_root, ["commit", "-m", message])
        except GitCommandError as exc:
            if NOTHING_TO_COMMIT in exc.output:
                return _nothing_to_commit(ctx, exc.output)
            return ctx.failure(ExportErrorCode.GIT_FAILED, "git commit failed", exc.output)
        if NOTHING_TO_COMMIT in output:
            return _nothing_to_commit(ctx, None)

    LOGGER.info(
        "Git export completed",
        extra={"job_id": ctx.job_id, "repo": str(repo_root), "mode": resolved.mode},
    )
    return ctx.success("Git export completed")


__all__ = ["export_git"]
