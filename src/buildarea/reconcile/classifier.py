"""Classification of diff records into unchanged and changed files.

Rules, applied per normalized record:
1. IDENTICAL → UnchangedMap[path] = revision
2. LEFT_ONLY → ignored (the file is absent from the comparison branch,
   which is expected for a sparse overlay that does not carry every file)
3. CONTENT_DIFFERS, RIGHT_ONLY → relative path added to ChangedSet

Paths under the excluded configuration subtree are dropped from both
outputs; that subtree is synchronized unconditionally by a separate step.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from buildarea.core.exceptions import DiffAnomalyError, ReconciliationInvariantError
from buildarea.p4.paths import is_under, rel_path
from buildarea.reconcile.models import ChangedSet, DiffRecord, DiffStatus, UnchangedMap

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_EXCLUDE_PREFIX",
    "classify",
    "relative_path_of",
    "check_disjoint",
]

DEFAULT_EXCLUDE_PREFIX = "config/"


def relative_path_of(depot_path: str) -> str:
    """Return the branch-relative path, raising if the path has no branch prefix."""
    relative = rel_path(depot_path)
    if relative is None:
        raise DiffAnomalyError(f"Cannot determine branch-relative path of {depot_path!r}", record=depot_path)
    return relative


def check_disjoint(unchanged: UnchangedMap, changed: ChangedSet, context: str) -> None:
    """Raise if any relative path is both unchanged and changed."""
    overlap = {relative_path_of(path) for path in unchanged} & changed
    if overlap:
        raise ReconciliationInvariantError(f"{context}: paths classified both unchanged and changed", paths=overlap)


def classify(
    records: Iterable[DiffRecord],
    exclude_prefix: str = DEFAULT_EXCLUDE_PREFIX,
) -> tuple[UnchangedMap, ChangedSet]:
    """Partition diff records into unchanged and changed files.

    Args:
        records: Normalized records from ChangeSetDiffer.
        exclude_prefix: Relative-path prefix never classified.

    Returns:
        Tuple of (unchanged, changed) where unchanged maps absolute depot
        path to revision and changed holds relative paths.

    Raises:
        DiffAnomalyError: If an identical record has no revision or a path
            has no branch prefix.
        ReconciliationInvariantError: If a path lands in both outputs.

    Examples:
        >>> classify([
        ...     DiffRecord(DiffStatus.IDENTICAL, "//br/target/a.c", 5),
        ...     DiffRecord(DiffStatus.CONTENT_DIFFERS, "//br/target/b.c"),
        ... ])
        ({'//br/target/a.c': 5}, {'b.c'})

    """
    unchanged: UnchangedMap = {}
    changed: ChangedSet = set()
    excluded = 0

    for record in records:
        if record.status is DiffStatus.LEFT_ONLY:
            continue

        relative = relative_path_of(record.path)
        if is_under(relative, exclude_prefix):
            excluded += 1
            continue

        if record.status is DiffStatus.IDENTICAL:
            if record.revision is None:
                raise DiffAnomalyError(f"Identical record without revision: {record.path}", record=record)
            unchanged[record.path] = record.revision
        else:
            changed.add(relative)

    if excluded:
        logger.debug("Skipped %d records under %s", excluded, exclude_prefix)

    check_disjoint(unchanged, changed, "classify")
    logger.info("Classified %d unchanged and %d changed files", len(unchanged), len(changed))
    return unchanged, changed
