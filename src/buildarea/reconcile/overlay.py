"""Merge of a fixes-overlay classification into the primary one.

A job whose lineage includes a sparse "fixes" branch is compared twice:
against the wide parent branch (primary) and against the fixes branch
(overlay). Files edited on the fixes branch show up as changed against the
wide branch but identical against the overlay, so the overlay result takes
precedence for every file the overlay actually carries.

Rules, applied in order:
1. changed := primary_changed ∪ overlay_changed
2. overlay-unchanged paths missing from primary_unchanged are added to
   unchanged (overlay revision) and dropped from changed
3. primary-unchanged paths the overlay reports changed are dropped from
   unchanged (they stay in changed via rule 1)
"""

from __future__ import annotations

import logging

from buildarea.core.exceptions import ReconciliationInvariantError
from buildarea.p4.paths import join_depot
from buildarea.reconcile.classifier import check_disjoint, relative_path_of
from buildarea.reconcile.models import ChangedSet, UnchangedMap

logger = logging.getLogger(__name__)

__all__ = ["merge_overlay"]


def merge_overlay(
    primary_unchanged: UnchangedMap,
    primary_changed: ChangedSet,
    overlay_unchanged: UnchangedMap,
    overlay_changed: ChangedSet,
    target_stream: str | None = None,
) -> tuple[UnchangedMap, ChangedSet]:
    """Merge overlay classification results into the primary ones.

    Inputs are not modified.

    Args:
        primary_unchanged: Unchanged map from the wide-branch comparison.
        primary_changed: Changed set from the wide-branch comparison.
        overlay_unchanged: Unchanged map from the fixes-overlay comparison.
        overlay_changed: Changed set from the fixes-overlay comparison.
        target_stream: Branch root of the workspace. When given, entries
            added from the overlay are keyed under it; otherwise the
            overlay's own depot path is used.

    Returns:
        Tuple of merged (unchanged, changed).

    Raises:
        ReconciliationInvariantError: If the overlay reports a path both
            unchanged and changed, or the merge result is not disjoint.

    """
    overlay_by_rel = {relative_path_of(path): path for path in overlay_unchanged}

    contradictory = overlay_by_rel.keys() & overlay_changed
    if contradictory:
        raise ReconciliationInvariantError(
            "Overlay comparison reports paths both unchanged and changed",
            paths=contradictory,
        )

    unchanged: UnchangedMap = dict(primary_unchanged)
    primary_by_rel = {relative_path_of(path): path for path in primary_unchanged}

    # Rule 1
    changed: ChangedSet = set(primary_changed) | set(overlay_changed)

    # Rule 2
    added = 0
    for relative, overlay_path in overlay_by_rel.items():
        if relative not in primary_by_rel:
            key = join_depot(target_stream, relative) if target_stream else overlay_path
            unchanged[key] = overlay_unchanged[overlay_path]
            added += 1
        changed.discard(relative)

    # Rule 3
    removed = 0
    for relative in overlay_changed & primary_by_rel.keys():
        del unchanged[primary_by_rel[relative]]
        removed += 1

    check_disjoint(unchanged, changed, "overlay merge")
    logger.info(
        "Overlay merge: %d added to unchanged, %d demoted to changed; %d unchanged, %d changed",
        added,
        removed,
        len(unchanged),
        len(changed),
    )
    return unchanged, changed
