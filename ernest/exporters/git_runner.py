from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Sequence

LOGGER = logging.getLogger(__name__)
GIT_EXECUTABLE = "git"


class GitCommandError(RuntimeError):
    """Raised when ``git`` exits non-zero or cannot be started.

    ``output`` carries the raw diagnostic text for the caller's ``detail``.
    """

    def __init__(self, args: Sequence[str], output: str) -> None:
        super().__init__(output)
        self.args_list = list(args)
        self.output = output


def run_git(repo_path: Path, args: Sequence[str]) -> str:
    """Run ``git <args>`` inside ``repo_path`` and return its output.

    Output is stdout, with stderr appended on its own line when present.
    Failure is a non-zero exit status or a process that cannot be started.
    """
    try:
        completed = subprocess.run(
            [GIT_EXECUTABLE, *args],
            cwd=str(repo_path),
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
    except OSError as exc:
        LOGGER.debug("git %s could not start: %s", " ".join(args), exc)
        raise GitCommandError(args, str(exc)) from exc

    stdout = completed.stdout or ""
    stderr = completed.stderr or ""
    output = stdout if not stderr.strip() else f"{stdout}\n{stderr}"
    if completed.returncode == 0:
        return output
    LOGGER.debug(
        "git %s exited with %s", " ".join(args), completed.returncode,
        extra={"repo": str(repo_path)},
    )
    raise GitCommandError(args, output)


__all__ = ["GIT_EXECUTABLE", "GitCommandError", "run_git"]
