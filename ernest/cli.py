from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import List, Optional

import typer

from ernest.config.settings import runtime_settings
from ernest.core.events import CallbackSink
from ernest.exporters.common import ExportFinished, ExportProgress, ExportRequest, ExportTarget
from ernest.exporters.pipeline import create_export_manager
from ernest.logging_config import init_logging
from ernest.publish import PublishError, deploy_project, publish_project
from ernest.security.credentials import (
    CredentialKind,
    CredentialStoreError,
    CredentialTarget,
    CredentialValueError,
    CredentialVault,
)

app = typer.Typer(add_completion=False, help="Ernest export and publish utilities.")
credential_app = typer.Typer(add_completion=False, help="Manage stored export credentials.")
app.add_typer(credential_app, name="credential")
logger = logging.getLogger(__name__)


def _init_logging() -> None:
    settings = runtime_settings()
    init_logging(settings.log_dir, level=settings.log_level)


def _print(payload: dict) -> None:
    typer.echo(json.dumps(payload, indent=2))


@app.command()
def export(
    file: Path = typer.Argument(..., help="Document to export."),
    target: ExportTarget = typer.Argument(..., help="Export target."),
    profile: Optional[str] = typer.Option(None, help="Named profile from .export.toml."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Hide progress output."),
) -> None:
    """Run one export job and wait for it to finish."""
    _init_logging()
    done = threading.Event()
    result: dict[str, ExportFinished] = {}

    def on_progress(event: ExportProgress) -> None:
        if not quiet:
            typer.echo(
                f"{event.sent_bytes}/{event.total_bytes} bytes ({event.percent:.1f}%)",
                err=True,
            )

    def on_finished(event: ExportFinished) -> None:
        result["event"] = event
        done.set()

    manager = create_export_manager(CallbackSink(on_progress, on_finished), max_workers=1)
    job_id = manager.submit(ExportRequest.build(str(file), target, profile))
    logger.info("Waiting for export job", extra={"job_id": job_id})
    try:
        while not done.wait(0.2):
            pass
    except KeyboardInterrupt:
        typer.echo("Cancelling export...", err=True)
        manager.cancel(job_id)
        done.wait()
    finally:
        manager.cleanup(job_id)
        manager.shutdown(wait=True)

    response = result["event"].response
    _print(response.to_dict())
    raise typer.Exit(code=0 if response.ok else 1)


def _credential_call(action, *args) -> object:
    try:
        return action(*args)
    except (CredentialValueError, CredentialStoreError) as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


@credential_app.command("set")
def credential_set(
    file: Path = typer.Argument(..., help="Any document inside the project."),
    target: CredentialTarget = typer.Argument(...),
    kind: CredentialKind = typer.Argument(...),
    profile: Optional[str] = typer.Option(None),
    value: str = typer.Option(..., prompt=True, hide_input=True),
) -> None:
    """Store a password or token for a project target."""
    _init_logging()
    _credential_call(CredentialVault().set, str(file), target, profile, kind, value)
    _print({"ok": True})


@credential_app.command("get")
def credential_get(
    file: Path = typer.Argument(..., help="Any document inside the project."),
    target: CredentialTarget = typer.Argument(...),
    kind: CredentialKind = typer.Argument(...),
    profile: Optional[str] = typer.Option(None),
) -> None:
    """Print a stored credential, or null when absent."""
    _init_logging()
    value = _credential_call(CredentialVault().get, str(file), target, profile, kind)
    _print({"value": value})


@credential_app.command("delete")
def credential_delete(
    file: Path = typer.Argument(..., help="Any document inside the project."),
    target: CredentialTarget = typer.Argument(...),
    kind: CredentialKind = typer.Argument(...),
    profile: Optional[str] = typer.Option(None),
) -> None:
    """Remove a stored credential. Missing entries are ignored."""
    _init_logging()
    _credential_call(CredentialVault().delete, str(file), target, profile, kind)
    _print({"ok": True})


@app.command()
def publish(
    project_root: Path = typer.Argument(..., help="Project root directory."),
    files: List[Path] = typer.Argument(..., help="Documents to publish."),
    output_dir: Optional[str] = typer.Option(None, help="Output directory (default _publish)."),
) -> None:
    """Copy documents and their local assets into the publish directory."""
    _init_logging()
    try:
        result = publish_project(project_root, [str(f) for f in files], output_dir)
    except PublishError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    _print(result.to_dict())


@app.command()
def deploy(
    project_root: Path = typer.Argument(..., help="Project root directory."),
    remote: str = typer.Argument(..., help="Remote name or SSH URL."),
    branch: Optional[str] = typer.Option(None, help="Branch to push (default main)."),
    output_dir: Optional[str] = typer.Option(None, help="Publish directory (default _publish)."),
) -> None:
    """Commit the publish directory and push it over SSH."""
    _init_logging()
    try:
        result = deploy_project(project_root, remote, branch, output_dir)
    except PublishError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    _print(result.to_dict())


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind host."),
    port: int = typer.Option(8765, help="Bind port."),
    log_level: str = typer.Option("info", help="uvicorn log level."),
) -> None:
    """Start the HTTP command surface."""
    _init_logging()
    import uvicorn

    logger.info("Starting server on %s:%s", host, port)
    uvicorn.run(
        "ernest.server.app:create_app",
        host=host,
        port=port,
        factory=True,
        log_level=log_level,
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
