from __future__ import annotations

import datetime as dt
import os
from pathlib import Path
from typing import Optional

from .utils import timestamp_from_epoch


def list_files(root: Path) -> list[Path]:
    if not root.exists():
        return []
    return [path for path in root.rglob("*") if path.is_file()]


def files_with_ext(root: Path, ext: str) -> list[Path]:
    suffix = "." + ext.lstrip(".")
    return sorted((path for path in list_files(root) if path.suffix == suffix), key=lambda p: p.as_posix())


def canonical_dir(path: str | Path) -> str:
    """Real path of a directory with a single trailing separator."""
    return os.path.join(os.path.realpath(path), "")


def is_inside(path: str, directory: str) -> bool:
    return os.path.normpath(path).startswith(canonical_dir(directory))


class SourceFile:
    """A file on disk whose real path and mtime are looked up once."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._realpath: Optional[str] = None
        self._modified: Optional[dt.datetime] = None

    def realpath(self) -> str:
        if self._realpath is None:
            # strict so that a dangling path fails here instead of later.
            self._realpath = str(self.path.resolve(strict=True))
        return self._realpath

    def modified(self) -> dt.datetime:
        if self._modified is None:
            self._modified = timestamp_from_epoch(self.path.stat().st_mtime)
        return self._modified

    def read_text(self) -> str:
        return self.path.read_text(encoding="utf-8")

    def __repr__(self) -> str:
        return f"SourceFile({str(self.path)!r})"
