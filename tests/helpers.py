from __future__ import annotations

import shutil
import subprocess
import threading
from concurrent.futures import Executor, Future
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest
from keyring.backend import KeyringBackend
from keyring.errors import PasswordDeleteError

from ernest.exporters.common import ExportContext, ExportProgress, ExportRequest

GIT_AVAILABLE = shutil.which("git") is not None
requires_git = pytest.mark.skipif(not GIT_AVAILABLE, reason="git executable not found")


class MemoryKeyring(KeyringBackend):
    """Keyring backend that keeps secrets in a dict."""

    priority = 1

    def __init__(self) -> None:
        super().__init__()
        self.entries: Dict[Tuple[str, str], str] = {}

    def get_password(self, service, username):
        return self.entries.get((service, username))

    def set_password(self, service, username, password):
        self.entries[(service, username)] = password

    def delete_password(self, service, username):
        try:
            del self.entries[(service, username)]
        except KeyError:
            raise PasswordDeleteError("not found") from None


class DeferredExecutor(Executor):
    """Collects submitted work so tests decide when jobs run."""

    def __init__(self) -> None:
        self.pending: List[Tuple[Callable, tuple]] = []

    def submit(self, fn, /, *args, **kwargs):
        self.pending.append((fn, args))
        return Future()

    def run_all(self) -> None:
        while self.pending:
            fn, args = self.pending.pop(0)
            fn(*args)


class RecordingSink:
    def __init__(self) -> None:
        self.progress_events: List[ExportProgress] = []
        self.finished_events = []
        self.done = threading.Event()

    def progress(self, event) -> None:
        self.progress_events.append(event)

    def finished(self, event) -> None:
        self.finished_events.append(event)
        self.done.set()


def write_config(root: Path, body: str) -> Path:
    path = root / ".export.toml"
    path.write_text(body.strip() + "\n", encoding="utf-8")
    return path


def make_context(
    file_path: Path | str,
    target: str,
    profile: Optional[str] = None,
    *,
    on_progress=None,
) -> ExportContext:
    return ExportContext(
        job_id="job-test",
        request=ExportRequest.build(str(file_path), target, profile),
        cancel=threading.Event(),
        on_progress=on_progress,
    )


def git(repo: Path, *args: str) -> str:
    completed = subprocess.run(
        ["git", *args], cwd=str(repo), capture_output=True, text=True, check=True
    )
    return completed.stdout


def init_repo(repo: Path) -> None:
    git(repo, "init", "-q")
    git(repo, "config", "user.name", "Ernest Tests")
    git(repo, "config", "user.email", "tests@example.invalid")
    git(repo, "config", "commit.gpgsign", "false")
