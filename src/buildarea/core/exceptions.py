"""Exception hierarchy for buildarea.

Every error raised by the package derives from BuildAreaError so callers
(the CLI, the job pipeline) can abort a workspace preparation with a
single handler while still distinguishing transient failures from data
problems.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

__all__ = [
    "BuildAreaError",
    "ConfigError",
    "VersionControlError",
    "DiffAnomalyError",
    "ReconciliationInvariantError",
    "SourceSelectionError",
]


class BuildAreaError(Exception):
    """Base exception for all buildarea errors."""


class ConfigError(BuildAreaError):
    """Configuration file is missing, unreadable or fails validation."""


class VersionControlError(BuildAreaError):
    """A version-control command could not be run or reported an error.

    Treated as transient: the whole preparation run is aborted and the job
    is retried from scratch by the scheduler.

    Attributes:
        command: The command that failed (e.g., "sync -k").
        stderr: Error text reported by the server or the client binary.

    """

    def __init__(self, message: str, *, command: str = "", stderr: str = "") -> None:
        super().__init__(message)
        self.command = command
        self.stderr = stderr


class DiffAnomalyError(BuildAreaError):
    """A diff record has a shape the normalizer does not recognize.

    Attributes:
        record: The raw record as returned by the version-control client.

    """

    def __init__(self, message: str, *, record: Any = None) -> None:
        super().__init__(message)
        self.record = record


class ReconciliationInvariantError(BuildAreaError):
    """A path was classified as both unchanged and changed.

    Attributes:
        paths: The offending relative paths, sorted.

    """

    def __init__(self, message: str, *, paths: Iterable[str] = ()) -> None:
        self.paths = sorted(paths)
        if self.paths:
            shown = ", ".join(self.paths[:10])
            more = f" (+{len(self.paths) - 10} more)" if len(self.paths) > 10 else ""
            message = f"{message}: {shown}{more}"
        super().__init__(message)


class SourceSelectionError(BuildAreaError):
    """No usable source could be selected for the workspace clone."""
