"""Reconciliation engine: plan and apply the rebase of a cloned workspace.

Given a workspace cloned from a source branch state and the target state
the job must build at, the engine:

1. writes the reconciliation marker
2. asks the server which files a plain forward sync would touch
3. diffs the target against the source (and the fixes overlay, if any)
4. classifies files into unchanged and changed, merging the overlay
5. finds deletions by head-action inspection
6. applies the plan through SyncPlanExecutor

Public API:
    - plan_and_execute_reconciliation: Run one reconciliation
    - prepare_workspace: Reconcile when rebasing, otherwise clear a stale marker
    - find_will_sync: Files a forward sync to the target would touch
    - initialize_ledger: Metadata-only sync of a fresh clone to its change level
    - is_reconciliation_in_progress: Marker presence query
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from buildarea.core.config import BuildAreaConfig, get_config
from buildarea.core.exceptions import SourceSelectionError
from buildarea.p4.client import P4Result, VersionControlClient
from buildarea.p4.paths import join_depot
from buildarea.reconcile.classifier import classify
from buildarea.reconcile.deletes import DeleteRenameReconciler
from buildarea.reconcile.differ import ChangeSetDiffer
from buildarea.reconcile.executor import SyncPlanExecutor
from buildarea.reconcile.marker import ReconciliationMarker
from buildarea.reconcile.models import BranchArgs, BranchState, ReconciliationReport
from buildarea.reconcile.overlay import merge_overlay
from buildarea.reconcile.sync import run_sync

if TYPE_CHECKING:
    from buildarea.selection import SourceSelection

logger = logging.getLogger(__name__)

__all__ = [
    "plan_and_execute_reconciliation",
    "prepare_workspace",
    "find_will_sync",
    "initialize_ledger",
    "is_reconciliation_in_progress",
]


def find_will_sync(
    client: VersionControlClient,
    target: BranchState,
    exclude_prefix: str,
    chunk_size: int | None = None,
) -> list[str]:
    """Return depot paths a forward sync to ``target.change`` would touch.

    Paths under the excluded configuration subtree are left out.
    """
    excluded_root = join_depot(target.stream, exclude_prefix) if exclude_prefix else None
    paths: list[str] = []
    for item in run_sync(client, ["-n"], [f"@{target.change}"], chunk_size):
        if not isinstance(item, dict):
            continue
        depot_file = item.get("depotFile")
        if not isinstance(depot_file, str):
            continue
        if excluded_root and depot_file.startswith(excluded_root):
            continue
        paths.append(depot_file)
    return paths


def initialize_ledger(
    client: VersionControlClient,
    client_name: str,
    change: int | None,
    chunk_size: int | None = None,
) -> P4Result:
    """Point a freshly cloned workspace's ledger at the change it was cloned at.

    Args:
        client: Version-control client.
        client_name: Workspace (client) name.
        change: Change level; None syncs the ledger to head.

    """
    spec = f"//{client_name}/..."
    if change is not None:
        spec += f"@{change}"
    logger.info("Initializing clone ledger to %s", spec)
    return run_sync(client, ["-k"], [spec], chunk_size)


def is_reconciliation_in_progress(workspace_root: Path, config: BuildAreaConfig | None = None) -> bool:
    """Check whether a reconciliation marker is present in the workspace."""
    config = config or get_config()
    return ReconciliationMarker(workspace_root, config.marker_file).in_progress


def plan_and_execute_reconciliation(
    client: VersionControlClient,
    workspace_root: Path,
    source: BranchState,
    target: BranchState,
    overlay: BranchState | None = None,
    *,
    delete_change: int | None = None,
    branch_args: BranchArgs | None = None,
    config: BuildAreaConfig | None = None,
) -> ReconciliationReport:
    """Bring a cloned workspace from ``source`` forward to ``target``.

    Args:
        client: Version-control client bound to the workspace.
        workspace_root: Local root of the workspace.
        source: Branch state the workspace was cloned from.
        target: Branch state the job builds at.
        overlay: Fixes-branch state layered over the source, if any.
        delete_change: Target change level for delete detection (the
            change of the branch file at the last snap); defaults to
            ``target.change``.
        branch_args: How to compare target and source; defaults to the
            target stream against ``source.stream`` as its parent.
        config: Configuration; defaults to the loaded singleton.

    Returns:
        Report with classification counts and applied side effects.

    Raises:
        VersionControlError: If any server command fails.
        DiffAnomalyError: If diff output cannot be normalized.
        ReconciliationInvariantError: If classification is inconsistent.

    """
    config = config or get_config()
    workspace_root = Path(workspace_root)
    chunk = config.sync_chunk_size

    ReconciliationMarker(workspace_root, config.marker_file).write(source, target)

    logger.info("Finding all files to sync to %s", target)
    will_sync = find_will_sync(client, target, config.exclude_prefix, chunk)
    logger.info("Found %d files", len(will_sync))

    report = ReconciliationReport(source=source, target=target, will_sync_count=len(will_sync))
    if not will_sync:
        return report

    differ = ChangeSetDiffer(client)
    args = branch_args or BranchArgs.for_stream_parent(target.stream, source.stream)
    unchanged, changed = classify(differ.diff(args, target.change, source.change), config.exclude_prefix)

    if overlay is not None:
        overlay_args = BranchArgs.for_paths(target.stream, overlay.stream)
        overlay_unchanged, overlay_changed = classify(
            differ.diff(overlay_args, target.change, overlay.change),
            config.exclude_prefix,
        )
        unchanged, changed = merge_overlay(
            unchanged,
            changed,
            overlay_unchanged,
            overlay_changed,
            target_stream=target.stream,
        )
    else:
        logger.info("No fixes overlay for this reconciliation")

    logger.info("Found %d unchanged files on wide branches", len(unchanged))
    logger.info("Found %d changed files on wide branches", len(changed))

    deletes = DeleteRenameReconciler(client).find_deletes(
        source.stream,
        source.change,
        target.stream,
        delete_change if delete_change is not None else target.change,
    )

    executor = SyncPlanExecutor(client, workspace_root, target.stream, chunk)
    report.execution = executor.execute(unchanged, changed, deletes, will_sync)
    report.unchanged_count = len(unchanged)
    report.changed_count = len(changed)
    report.deleted_count = len(deletes)

    logger.info("%s", report.summary())
    return report


def prepare_workspace(
    client: VersionControlClient,
    workspace_root: Path,
    selection: SourceSelection,
    target: BranchState,
    *,
    delete_change: int | None = None,
    config: BuildAreaConfig | None = None,
) -> ReconciliationReport | None:
    """Reconcile a cloned workspace if its source selection requires it.

    When the selection is not rebasing, the workspace already matches its
    own lineage: a marker left by an earlier interrupted run is removed and
    None is returned.

    Raises:
        SourceSelectionError: If a rebasing selection has no source branch.

    """
    config = config or get_config()
    if not selection.rebasing:
        ReconciliationMarker(workspace_root, config.marker_file).clear()
        return None

    if selection.source_branch is None:
        raise SourceSelectionError(
            f"Rebasing from {selection.source_path} requires a source branch (change {selection.change_level})"
        )

    source = BranchState(selection.source_branch, selection.change_level)
    return plan_and_execute_reconciliation(
        client,
        workspace_root,
        source,
        target,
        selection.overlay,
        delete_change=delete_change,
        config=config,
    )
