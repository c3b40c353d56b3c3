"""Detection of deletes and renames that diff2 does not report.

A comparison between two branches does not reliably surface deleted or
moved-away files as distinct events, so they are found by inspecting the
head action of every file on both sides instead:

1. fstat the source branch at its change level for delete head actions
2. fstat the target branch at its change level for delete head actions
3. keep target paths whose head action matches the source side exactly

A matching action means the deletion is stable lineage. A file deleted on
the target but still live (e.g., edited) on the source is a deletion that
was reverted upstream and must not be applied.
"""

from __future__ import annotations

import logging

from buildarea.p4.client import VersionControlClient, records_only
from buildarea.p4.paths import join_depot, rel_path
from buildarea.reconcile.models import BranchState

logger = logging.getLogger(__name__)

__all__ = [
    "DELETE_ACTION_FILTER",
    "DeleteRenameReconciler",
]

# Matches both "delete" and "move/delete"
DELETE_ACTION_FILTER = "headAction~=.*delete"


class DeleteRenameReconciler:
    """Find deletions that must be applied to the workspace ledger.

    Args:
        client: Version-control client used to run fstat.

    """

    def __init__(self, client: VersionControlClient) -> None:
        self.client = client

    def head_deletes(self, branch: BranchState) -> dict[str, str]:
        """Map relative path to head action for every deleted file on a branch."""
        actions: dict[str, str] = {}
        for record in records_only(self.client.run_fstat("-F", DELETE_ACTION_FILTER, branch.spec)):
            depot_file = record.get("depotFile")
            relative = rel_path(depot_file) if isinstance(depot_file, str) else None
            if relative is None:
                logger.warning("Ignoring fstat record without usable depotFile: %r", record)
                continue
            actions[relative] = str(record.get("headAction", ""))
        return actions

    def find_deletes(
        self,
        source_branch: str,
        source_change: int,
        target_branch: str,
        target_change: int,
    ) -> list[str]:
        """Return target file specs whose deletion must be applied.

        Args:
            source_branch: Branch root the workspace was cloned from.
            source_change: Change level on the source branch.
            target_branch: Branch root the job builds on.
            target_change: Change level on the target branch.

        Returns:
            Sorted ``<target_branch>/<rel>@<target_change>`` specs.

        Raises:
            VersionControlError: If either fstat query fails.

        """
        source = BranchState(source_branch, source_change)
        target = BranchState(target_branch, target_change)

        source_deletes = self.head_deletes(source)
        target_deletes = self.head_deletes(target)

        confirmed = sorted(
            relative
            for relative, action in target_deletes.items()
            if action and action == source_deletes.get(relative)
        )
        skipped = len(target_deletes) - len(confirmed)
        logger.info(
            "Found %d deleted or move/deleted files (%d target-only deletes skipped)",
            len(confirmed),
            skipped,
        )
        return [f"{join_depot(target.stream, relative)}@{target.change}" for relative in confirmed]
