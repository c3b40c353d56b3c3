"""Branch reconciliation for cloned build workspaces.

Public API:
    - ChangeSetDiffer: Two-branch comparison with record normalization
    - classify: Partition diff records into unchanged and changed files
    - merge_overlay: Fold a fixes-overlay classification into the primary one
    - DeleteRenameReconciler: Find deletions diff2 does not report
    - SyncPlanExecutor: Apply a plan to the workspace ledger and disk
    - plan_and_execute_reconciliation: Run the whole pipeline
"""

from buildarea.reconcile.classifier import classify
from buildarea.reconcile.deletes import DeleteRenameReconciler
from buildarea.reconcile.differ import ChangeSetDiffer
from buildarea.reconcile.engine import (
    find_will_sync,
    initialize_ledger,
    is_reconciliation_in_progress,
    plan_and_execute_reconciliation,
    prepare_workspace,
)
from buildarea.reconcile.executor import SyncPlanExecutor
from buildarea.reconcile.marker import ReconciliationMarker
from buildarea.reconcile.models import (
    BranchArgs,
    BranchState,
    ChangedSet,
    DiffRecord,
    DiffStatus,
    ExecutionReport,
    ReconciliationReport,
    UnchangedMap,
)
from buildarea.reconcile.overlay import merge_overlay
from buildarea.reconcile.sync import run_sync

__all__ = [
    "BranchArgs",
    "BranchState",
    "ChangedSet",
    "ChangeSetDiffer",
    "DeleteRenameReconciler",
    "DiffRecord",
    "DiffStatus",
    "ExecutionReport",
    "ReconciliationMarker",
    "ReconciliationReport",
    "SyncPlanExecutor",
    "UnchangedMap",
    "classify",
    "find_will_sync",
    "initialize_ledger",
    "is_reconciliation_in_progress",
    "merge_overlay",
    "plan_and_execute_reconciliation",
    "prepare_workspace",
    "run_sync",
]
