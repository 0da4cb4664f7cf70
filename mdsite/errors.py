from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BuildFailure:
    """A file that could not be built, and why."""

    file: str
    reason: str


class SiteError(Exception):
    """Base class for build errors."""


class ConfigError(SiteError):
    pass


class StoreError(SiteError):
    """A cache query failed in a way the build cannot recover from."""

    def __init__(self, message: str, stack: str = "") -> None:
        super().__init__(message)
        self.stack = stack


class PathSafetyError(SiteError):
    """A computed output path escapes the output directory."""

    def __init__(self, path: str, output_path: str) -> None:
        super().__init__(f"Refusing to write outside output directory {output_path}: {path}")
        self.path = path
        self.output_path = output_path


class GitError(SiteError):
    pass


class ResourceError(SiteError):
    def __init__(self, reference: str, reason: str) -> None:
        super().__init__(f"Unable to resolve resource {reference!r}: {reason}")
        self.reference = reference
        self.reason = reason
