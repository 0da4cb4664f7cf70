from __future__ import annotations

import datetime as dt
import logging
import subprocess
from pathlib import Path
from typing import Protocol

from .errors import GitError

logger = logging.getLogger(__name__)


class Provenance(Protocol):
    def created(self, path: Path) -> dt.datetime: ...

    def last_modified(self, path: Path) -> dt.datetime: ...


def git_log_dates(path: Path, *extra: str, git: str = "git") -> list[dt.datetime]:
    """Committer dates of the commits touching ``path``, newest first."""
    path = Path(path)
    cmd = [git, "log", *extra, "--pretty=format:%cI", "--", path.name]
    logger.debug("Running %s in %s", " ".join(cmd), path.parent)
    try:
        proc = subprocess.run(
            cmd,
            cwd=path.parent,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise GitError(f"git call error for {path}: {exc}") from exc
    if proc.returncode != 0:
        raise GitError(f"git call error for {path}: {proc.stderr.strip()}")
    lines = [line.strip() for line in proc.stdout.splitlines() if line.strip()]
    if not lines:
        raise GitError(f"no git history for {path}")
    try:
        return [dt.datetime.fromisoformat(line) for line in lines]
    except ValueError as exc:
        raise GitError(f"invalid date from git for {path}: {exc}") from exc


class GitProvenance:
    """Creation and last edit dates from the git history of a file."""

    def __init__(self, git: str = "git") -> None:
        self.git = git

    def created(self, path: Path) -> dt.datetime:
        # `git log -1 --reverse` limits before reversing, so take the last line instead.
        return git_log_dates(path, "--follow", git=self.git)[-1]

    def last_modified(self, path: Path) -> dt.datetime:
        return git_log_dates(path, "-1", git=self.git)[0]
