"""Data model for branch reconciliation.

Public API:
    - BranchState: A branch and the change level being compared
    - BranchArgs: How two branches are identified to a diff2 comparison
    - DiffStatus / DiffRecord: Normalized rows of a branch comparison
    - UnchangedMap / ChangedSet: Classification outputs
    - ExecutionReport: Side effects of applying a sync plan
    - ReconciliationReport: Full result of one reconciliation run
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

__all__ = [
    "BranchState",
    "BranchArgs",
    "DiffStatus",
    "DiffRecord",
    "UnchangedMap",
    "ChangedSet",
    "ExecutionReport",
    "ReconciliationReport",
]

# Absolute target depot path -> revision known identical to the source
UnchangedMap = dict[str, int]

# Relative paths that must be re-fetched
ChangedSet = set[str]


@dataclass(frozen=True)
class BranchState:
    """A branch (depot path prefix) at a specific change level.

    Attributes:
        stream: Branch root, e.g. "//mw/Bmain".
        change: Change level on that branch.

    Examples:
        >>> BranchState("//mw/Bmain", 1200).spec
        '//mw/Bmain/...@1200'

    """

    stream: str
    change: int

    def __post_init__(self) -> None:
        if not self.stream.startswith("//"):
            raise ValueError(f"Branch must be a depot path starting with '//': {self.stream!r}")
        object.__setattr__(self, "stream", self.stream.rstrip("/"))

    @property
    def spec(self) -> str:
        """File spec for every file on the branch at the change level."""
        return f"{self.stream}/...@{self.change}"

    def __str__(self) -> str:
        return f"{self.stream}@{self.change}"


@dataclass(frozen=True)
class BranchArgs:
    """Identifies the two sides of a diff2 comparison.

    Use one of the constructors rather than building this directly:

    - ``for_stream(stream)``: the stream against its parent (``-S``)
    - ``for_stream_parent(stream, parent)``: the stream against an explicit
      parent (``-S -P``)
    - ``for_branch_spec(name)``: a branch mapping (``-b``)
    - ``for_paths(left, right)``: two branch roots compared file by file

    """

    flags: tuple[str, ...] = ()
    left_root: str | None = None
    right_root: str | None = None

    @classmethod
    def for_stream(cls, stream: str) -> BranchArgs:
        return cls(flags=("-S", stream))

    @classmethod
    def for_stream_parent(cls, stream: str, parent: str) -> BranchArgs:
        return cls(flags=("-S", stream, "-P", parent))

    @classmethod
    def for_branch_spec(cls, name: str) -> BranchArgs:
        return cls(flags=("-b", name))

    @classmethod
    def for_paths(cls, left_root: str, right_root: str) -> BranchArgs:
        return cls(left_root=left_root.rstrip("/"), right_root=right_root.rstrip("/"))

    def command_args(self, left_change: int, right_change: int) -> list[str]:
        """Build diff2 arguments for the given change levels."""
        if self.left_root is not None and self.right_root is not None:
            return [
                *self.flags,
                f"{self.left_root}/...@{left_change}",
                f"{self.right_root}/...@{right_change}",
            ]
        return [*self.flags, f"@{left_change}", f"@{right_change}"]

    def describe(self) -> str:
        if self.left_root is not None:
            return f"{self.left_root} vs {self.right_root}"
        return " ".join(self.flags)


class DiffStatus(Enum):
    """Outcome of comparing one file across two branches."""

    IDENTICAL = "identical"
    CONTENT_DIFFERS = "content"
    LEFT_ONLY = "left only"
    RIGHT_ONLY = "right only"


@dataclass(frozen=True)
class DiffRecord:
    """One normalized row of a branch comparison.

    Attributes:
        status: Comparison outcome.
        path: Depot path (branch prefix included). For RIGHT_ONLY rows this
            is the path on the right-hand branch.
        revision: Revision of ``path``, when reported.
        file_type: File type of ``path``, when reported.

    """

    status: DiffStatus
    path: str
    revision: int | None = None
    file_type: str | None = None


@dataclass
class ExecutionReport:
    """Side effects of applying a sync plan to a workspace.

    Counts are taken from what the version-control server reported as
    actually changed, so re-running a plan against an already reconciled
    workspace produces an empty report.

    Attributes:
        changed_reset: Ledger entries reset to revision 0.
        removed_files: Local files removed (relative paths).
        failed_removals: Local paths that still exist after a removal attempt.
        removed_dirs: Directories removed because they became empty.
        unchanged_advanced: Ledger entries advanced without content transfer.
        deletes_applied: Ledger entries advanced to a deletion.

    """

    changed_reset: int = 0
    removed_files: list[str] = field(default_factory=list)
    failed_removals: list[str] = field(default_factory=list)
    removed_dirs: list[str] = field(default_factory=list)
    unchanged_advanced: int = 0
    deletes_applied: int = 0

    @property
    def is_empty(self) -> bool:
        return not (
            self.changed_reset
            or self.removed_files
            or self.failed_removals
            or self.removed_dirs
            or self.unchanged_advanced
            or self.deletes_applied
        )

    def summary(self) -> str:
        return (
            f"{self.changed_reset} reset, {len(self.removed_files)} removed "
            f"({len(self.failed_removals)} failed), {len(self.removed_dirs)} dirs pruned, "
            f"{self.unchanged_advanced} advanced, {self.deletes_applied} deletes"
        )


@dataclass
class ReconciliationReport:
    """Result of planning and executing one reconciliation.

    Attributes:
        source: Branch state the workspace was cloned from.
        target: Branch state the job builds at.
        will_sync_count: Files a plain forward sync would touch.
        unchanged_count: Files known byte-identical to the source.
        changed_count: Files whose local copy was discarded.
        deleted_count: Deletions detected by head-action inspection.
        execution: Side effects applied to the workspace.

    """

    source: BranchState
    target: BranchState
    will_sync_count: int = 0
    unchanged_count: int = 0
    changed_count: int = 0
    deleted_count: int = 0
    execution: ExecutionReport = field(default_factory=ExecutionReport)

    @property
    def failed_removals(self) -> list[str]:
        return self.execution.failed_removals

    def summary(self) -> str:
        """Return a one-line summary.

        Example:
            >>> report.summary()
            'Reconciliation //mw/Bmain@100 -> //mw/Bfoo@120: 40 unchanged, 3 changed, 1 deleted'

        """
        return (
            f"Reconciliation {self.source} -> {self.target}: "
            f"{self.unchanged_count} unchanged, {self.changed_count} changed, "
            f"{self.deleted_count} deleted"
        )
