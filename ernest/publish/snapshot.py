"""
Static snapshot publishing.

``publish_project`` copies the selected documents plus the local assets they
link to into an output directory inside the project.  ``deploy_project``
commits that directory and pushes it to an SSH git remote.  Both append
timestamped ``[LABEL] message`` lines to ``<output>/.deploy.log``.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from ernest.exporters.git_runner import GitCommandError, run_git

LOGGER = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR = "_publish"
DEFAULT_BRANCH = "main"
DEPLOY_LOG_NAME = ".deploy.log"
SKIPPED_LINK_PREFIXES: Tuple[str, ...] = ("http://", "https://", "mailto:", "tel:", "#")


class PublishError(RuntimeError):
    """Raised when a publish or deploy request cannot be carried out."""


@dataclass
class PublishResult:
    ok: bool
    summary: str
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"ok": self.ok, "summary": self.summary, "warnings": list(self.warnings)}


@dataclass
class DeployResult:
    ok: bool
    summary: str
    logs: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"ok": self.ok, "summary": self.summary, "logs": list(self.logs)}


def _timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def append_log(path: Path, label: str, message: str) -> None:
    try:
        with path.open("a", encoding="utf-8") as handle:
            handle.write(f"{_timestamp()} [{label}] {message}\n")
    except OSError as exc:
        raise PublishError(str(exc)) from exc


def resolve_output_dir(project_root: Path, output_dir: Optional[str]) -> Path:
    value = (output_dir if output_dir is not None else DEFAULT_OUTPUT_DIR).strip()
    if not value:
        raise PublishError("Publish directory cannot be empty")
    path = Path(value).expanduser()
    return path if path.is_absolute() else project_root / path


def extract_local_assets(content: str) -> List[str]:
    """Return link/image targets of ``](target)`` that point at local files."""
    results: List[str] = []
    cursor = 0
    while True:
        pos = content.find("](", cursor)
        if pos < 0:
            break
        start = pos + 2
        end = content.find(")", start)
        if end < 0:
            break
        raw = content[start:end].strip().strip("<>")
        parts = raw.split()
        target = parts[0].strip() if parts else ""
        if target and not target.startswith(SKIPPED_LINK_PREFIXES):
            results.append(target)
        cursor = end + 1
    return results


def resolve_asset_path(project_root: Path, file_path: Path, asset: str) -> Optional[Path]:
    trimmed = asset.strip()
    if not trimmed:
        return None
    if trimmed.startswith("/"):
        return project_root / trimmed.lstrip("/")
    return file_path.parent / trimmed


def _is_inside(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


def _copy_into(source: Path, project_root: Path, output_dir: Path) -> None:
    target = output_dir / source.relative_to(project_root)
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, target)


def _require_project_root(project_root: str | os.PathLike[str]) -> Path:
    root = Path(project_root).expanduser()
    if not root.is_dir():
        raise PublishError("Project root is missing")
    return root


def publish_project(
    project_root: str | os.PathLike[str],
    files: Sequence[str | os.PathLike[str]],
    output_dir: Optional[str] = None,
) -> PublishResult:
    root = _require_project_root(project_root)
    if not files:
        raise PublishError("No files selected for publish")

    output = resolve_output_dir(root, output_dir)
    try:
        output.mkdir(parents=True, exist_ok=True)
        root_canon = root.resolve(strict=True)
        output_canon = output.resolve(strict=True)
    except OSError as exc:
        raise PublishError(str(exc)) from exc
    if not _is_inside(output_canon, root_canon):
        raise PublishError("Publish directory must stay inside the project root")

    warnings: List[str] = []
    copied_files = 0
    copied_assets = 0
    assets_seen: Set[Path] = set()

    for entry in files:
        file_path = Path(entry)
        if not file_path.exists():
            warnings.append(f"File not found: {entry}")
            continue
        file_canon = file_path.resolve()
        if not _is_inside(file_canon, root_canon):
            warnings.append(f"Skipped file outside project: {entry}")
            continue

        try:
            _copy_into(file_canon, root_canon, output_canon)
        except OSError as exc:
            raise PublishError(str(exc)) from exc
        copied_files += 1

        try:
            content = file_canon.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            content = ""
        for asset in extract_local_assets(content):
            candidate = resolve_asset_path(root_canon, file_canon, asset)
            if candidate is None:
                continue
            if not candidate.exists():
                warnings.append(f"Missing asset: {asset}")
                continue
            if not candidate.is_file():
                continue
            asset_path = candidate.resolve()
            if not _is_inside(asset_path, root_canon):
                warnings.append(f"Skipped asset outside project: {asset}")
                continue
            if asset_path in assets_seen:
                continue
            assets_seen.add(asset_path)
            try:
                _copy_into(asset_path, root_canon, output_canon)
            except OSError as exc:
                raise PublishError(str(exc)) from exc
            copied_assets += 1

    append_log(
        output_canon / DEPLOY_LOG_NAME,
        "PUBLISH",
        f"Published {copied_files} file(s), {copied_assets} asset(s)",
    )
    LOGGER.info(
        "Snapshot published",
        extra={"output": str(output_canon), "files": copied_files, "assets": copied_assets},
    )
    return PublishResult(
        ok=True,
        summary=f"Published {copied_files} file(s) and {copied_assets} asset(s)",
        warnings=warnings,
    )


# ---------------------------------------------------------------------------
# Deploy
# ---------------------------------------------------------------------------
def _git(repo: Path, logs: List[str], args: Iterable[str]) -> str:
    arg_list = list(args)
    logs.append(f"git {' '.join(arg_list)}")
    try:
        return run_git(repo, arg_list)
    except GitCommandError as exc:
        raise PublishError(exc.output.strip() or f"git {arg_list[0]} failed") from exc


def is_ssh_url(url: str) -> bool:
    return url.startswith("git@") or url.startswith("ssh://")


def resolve_remote(repo: Path, remote: str, logs: List[str]) -> Tuple[str, str]:
    trimmed = remote.strip()
    looks_like_url = "://" in trimmed or trimmed.startswith("git@")
    remote_name = "origin" if looks_like_url else trimmed

    if looks_like_url:
        try:
            run_git(repo, ["remote", "get-url", remote_name])
            action = ["remote", "set-url", remote_name, trimmed]
        except GitCommandError:
            action = ["remote", "add", remote_name, trimmed]
        try:
            _git(repo, logs, action)
        except PublishError:
            LOGGER.warning("Unable to register remote %s", remote_name)

    url = _git(repo, logs, ["remote", "get-url", remote_name])
    return remote_name, url.strip()


def deploy_project(
    project_root: str | os.PathLike[str],
    remote: str,
    branch: Optional[str] = None,
    output_dir: Optional[str] = None,
) -> DeployResult:
    root = _require_project_root(project_root)
    if not remote or not remote.strip():
        raise PublishError("Deploy remote is missing")

    output = resolve_output_dir(root, output_dir)
    if not output.exists():
        raise PublishError("Publish directory does not exist. Run Publish first.")

    if not os.environ.get("SSH_AUTH_SOCK", "").strip():
        raise PublishError("SSH agent not detected. Start ssh-agent first.")

    logs: List[str] = []
    repo = output.resolve()
    log_path = repo / DEPLOY_LOG_NAME

    if not (repo / ".git").exists():
        _git(repo, logs, ["init"])

    remote_name, remote_url = resolve_remote(repo, remote, logs)
    if not is_ssh_url(remote_url):
        raise PublishError("Deploy requires an SSH remote (git@ or ssh://)")

    target_branch = (branch or "").strip() or DEFAULT_BRANCH
    _git(repo, logs, ["checkout", "-B", target_branch])
    _git(repo, logs, ["add", "-A"])

    status = _git(repo, logs, ["status", "--porcelain"])
    if not status.strip():
        append_log(log_path, "DEPLOY", "No changes to deploy")
        return DeployResult(ok=True, summary="No changes to deploy", logs=logs)

    _git(repo, logs, ["commit", "-m", f"Publish snapshot @ {_timestamp()}"])
    _git(repo, logs, ["push", "-u", remote_name, target_branch])

    append_log(log_path, "DEPLOY", f"Pushed to {remote_name} ({target_branch})")
    LOGGER.info(
        "Snapshot deployed", extra={"remote": remote_name, "branch": target_branch}
    )
    return DeployResult(
        ok=True,
        summary=f"Deployed to {remote_name} ({target_branch})",
        logs=logs,
    )


__all__ = [
    "DEFAULT_OUTPUT_DIR",
    "DEPLOY_LOG_NAME",
    "DeployResult",
    "PublishError",
    "PublishResult",
    "append_log",
    "deploy_project",
    "extract_local_assets",
    "is_ssh_url",
    "publish_project",
    "resolve_asset_path",
    "resolve_output_dir",
    "resolve_remote",
]
