"""Application of a reconciliation plan to a workspace.

SyncPlanExecutor is the only component that mutates the workspace. Steps:

1. Reset the ledger entry of every changed file to revision 0
2. Remove the local copy of every changed file
3. Remove directories left empty by step 2
4. Advance the ledger of every unchanged file the job will sync, without
   transferring content
5. Advance the ledger for confirmed deletions

Each step is idempotent. Version-control failures propagate and abort the
run; files already removed locally are simply absent on the retry.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Collection, Iterable, Sequence
from pathlib import Path

from buildarea.p4.client import VersionControlClient, records_only
from buildarea.p4.paths import decode_special_chars, join_depot
from buildarea.reconcile.models import ChangedSet, ExecutionReport, UnchangedMap
from buildarea.reconcile.sync import run_sync

logger = logging.getLogger(__name__)

__all__ = ["SyncPlanExecutor"]


class SyncPlanExecutor:
    """Apply unchanged/changed/delete classifications to one workspace.

    Args:
        client: Version-control client bound to the workspace.
        workspace_root: Local directory mapped to ``target_stream``.
        target_stream: Branch root the workspace builds on.
        chunk_size: Paths per sync invocation (None = configured value).

    """

    def __init__(
        self,
        client: VersionControlClient,
        workspace_root: Path,
        target_stream: str,
        chunk_size: int | None = None,
    ) -> None:
        self.client = client
        self.workspace_root = Path(workspace_root)
        self.target_stream = target_stream.rstrip("/")
        self.chunk_size = chunk_size

    def execute(
        self,
        unchanged: UnchangedMap,
        changed: ChangedSet,
        deletes: Sequence[str],
        will_sync: Iterable[str],
    ) -> ExecutionReport:
        """Apply the plan.

        Args:
            unchanged: Absolute depot path → revision known identical.
            changed: Relative paths whose local copy is stale.
            deletes: File specs (with change suffix) of confirmed deletions.
            will_sync: Depot paths a plain forward sync would touch.

        Returns:
            Report of the side effects actually applied.

        Raises:
            VersionControlError: If any ledger operation fails.

        """
        report = ExecutionReport()
        ordered_changed = sorted(changed)

        report.changed_reset = self.reset_changed(ordered_changed)
        parents = self.remove_local_files(ordered_changed, report)
        report.removed_dirs = self.prune_empty_dirs(parents)
        report.unchanged_advanced = self.advance_unchanged(unchanged, will_sync)
        report.deletes_applied = self.apply_deletes(deletes)

        logger.info("Sync plan applied: %s", report.summary())
        return report

    def _sync(self, flags: Sequence[str], paths: Sequence[str]) -> int:
        if not paths:
            return 0
        return len(records_only(run_sync(self.client, flags, paths, self.chunk_size)))

    def reset_changed(self, changed: Sequence[str]) -> int:
        """Step 1: null the ledger entry of every changed file."""
        logger.info("Syncing %d changed files to #0", len(changed))
        return self._sync([], [f"{join_depot(self.target_stream, rel)}#0" for rel in changed])

    def _local_path(self, relative: str) -> Path | None:
        decoded = decode_special_chars(relative)
        if os.path.isabs(decoded) or ".." in Path(decoded).parts:
            logger.warning("Refusing to remove path outside the workspace: %s", decoded)
            return None
        path = self.workspace_root / decoded
        # A symlinked directory inside the workspace can still point outside it
        root = self.workspace_root.resolve()
        parent = path.parent.resolve()
        if parent != root and root not in parent.parents:
            logger.warning("Refusing to remove path resolving outside the workspace: %s -> %s", decoded, parent)
            return None
        return path

    def remove_local_files(self, changed: Sequence[str], report: ExecutionReport) -> set[Path]:
        """Step 2: remove the local copy of every changed file.

        A path that is already absent is not an error. A failure is only
        reported when the path still exists after the attempt.

        Returns:
            Parent directories of removed files.

        """
        parents: set[Path] = set()
        for relative in changed:
            path = self._local_path(relative)
            if path is None:
                continue
            if not (path.is_symlink() or path.is_file()):
                continue
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                if path.is_symlink() or path.exists():
                    logger.warning("Failed to unlink %s: %s", path, e)
                    report.failed_removals.append(decode_special_chars(relative))
                continue
            logger.debug("Unlinked %s", path)
            report.removed_files.append(decode_special_chars(relative))
            parents.add(path.parent)

        if report.removed_files or report.failed_removals:
            logger.info(
                "Unlinked %d changed files (%d failed)",
                len(report.removed_files),
                len(report.failed_removals),
            )
        return parents

    def prune_empty_dirs(self, directories: Collection[Path]) -> list[str]:
        """Step 3: remove directories left empty, walking up to the workspace root.

        Non-empty directories are left alone.
        """
        root = self.workspace_root.resolve()
        removed: list[str] = []
        # Deepest first so a parent emptied by its child's removal goes too
        pending = sorted(directories, key=lambda p: len(p.parts), reverse=True)
        gone: set[Path] = set()
        for directory in pending:
            current = directory
            while current not in gone:
                resolved = current.resolve()
                if resolved == root or root not in resolved.parents:
                    break
                try:
                    current.rmdir()
                except OSError:
                    break
                gone.add(current)
                removed.append(current.relative_to(self.workspace_root).as_posix())
                current = current.parent
        if removed:
            logger.info("Removed %d empty directories", len(removed))
        return removed

    def advance_unchanged(self, unchanged: UnchangedMap, will_sync: Iterable[str]) -> int:
        """Step 4: advance the ledger of unchanged files the job will sync.

        Will-sync paths without an unchanged entry are left for the
        ordinary sync step that follows preparation.
        """
        specs = [f"{path}#{unchanged[path]}" for path in will_sync if path in unchanged]
        logger.info("Found %d unchanged files to sync ahead", len(specs))
        return self._sync(["-k", "-L"], specs)

    def apply_deletes(self, deletes: Sequence[str]) -> int:
        """Step 5: record confirmed deletions in the ledger."""
        logger.info("Applying %d deletes to the ledger", len(deletes))
        return self._sync(["-k"], list(deletes))
