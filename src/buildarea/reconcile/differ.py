"""Two-branch comparison with record normalization.

ChangeSetDiffer runs diff2 between two branch states and converts the raw
rows into DiffRecord values.

A known server quirk: a file renamed on the parent and renamed again on
the child does not come back as a regular row. Instead the ``depotFile``,
``rev`` and ``type`` fields are 3-element positional lists, two of them
empty, with the real right-hand values in position 2. Such rows are only
meaningful for "right only" status; they are collapsed here so the
ambiguous shape never reaches the classifier.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from buildarea.core.exceptions import DiffAnomalyError
from buildarea.p4.client import VersionControlClient
from buildarea.reconcile.models import BranchArgs, DiffRecord, DiffStatus

logger = logging.getLogger(__name__)

__all__ = [
    "ChangeSetDiffer",
    "normalize_diff_records",
    "normalize_diff_record",
]

_STATUS_MAP: dict[str, DiffStatus] = {
    "identical": DiffStatus.IDENTICAL,
    "content": DiffStatus.CONTENT_DIFFERS,
    "types": DiffStatus.CONTENT_DIFFERS,
    "left only": DiffStatus.LEFT_ONLY,
    "right only": DiffStatus.RIGHT_ONLY,
}

# Index of the populated element in a rename-collision row
_POSITIONAL_INDEX = 2


def _to_revision(value: Any, raw: dict[str, Any]) -> int | None:
    if value in (None, "", "none"):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise DiffAnomalyError(f"Non-numeric revision {value!r} in diff record", record=raw) from None


def _positional(value: Any, raw: dict[str, Any], name: str) -> Any:
    if value is None:
        return None
    if not isinstance(value, list | tuple):
        return value
    if len(value) != _POSITIONAL_INDEX + 1:
        raise DiffAnomalyError(
            f"Positional '{name}' field has {len(value)} elements, expected {_POSITIONAL_INDEX + 1}",
            record=raw,
        )
    return value[_POSITIONAL_INDEX]


def normalize_diff_record(raw: dict[str, Any]) -> DiffRecord:
    """Convert one raw diff2 row into a DiffRecord.

    Args:
        raw: Row as returned by the version-control client.

    Returns:
        The normalized record.

    Raises:
        DiffAnomalyError: On unknown status, a positional-list row with a
            status other than "right only", or a row without a path.

    """
    status_text = raw.get("status")
    status = _STATUS_MAP.get(status_text) if isinstance(status_text, str) else None
    if status is None:
        raise DiffAnomalyError(f"Unknown diff status {status_text!r}", record=raw)

    depot_file = raw.get("depotFile")
    if isinstance(depot_file, list | tuple):
        if status is not DiffStatus.RIGHT_ONLY:
            raise DiffAnomalyError(
                f"Positional depotFile in a '{status_text}' record",
                record=raw,
            )
        path = _positional(depot_file, raw, "depotFile")
        revision = _positional(raw.get("rev"), raw, "rev")
        file_type = _positional(raw.get("type"), raw, "type")
        logger.debug("Collapsed rename-collision record to %s", path)
    elif status is DiffStatus.RIGHT_ONLY:
        path = raw.get("depotFile2") or depot_file
        revision = raw.get("rev2", raw.get("rev"))
        file_type = raw.get("type2", raw.get("type"))
    else:
        path = depot_file
        revision = raw.get("rev")
        file_type = raw.get("type")

    if not path or not isinstance(path, str):
        raise DiffAnomalyError(f"Diff record without a depot path (status {status_text!r})", record=raw)

    return DiffRecord(
        status=status,
        path=path,
        revision=_to_revision(revision, raw),
        file_type=file_type or None,
    )


def normalize_diff_records(rows: Iterable[dict[str, Any] | str]) -> list[DiffRecord]:
    """Normalize every data row, logging server messages instead of parsing them."""
    records: list[DiffRecord] = []
    for row in rows:
        if isinstance(row, str):
            if row:
                logger.info("diff2: %s", row)
            continue
        records.append(normalize_diff_record(row))
    return records


class ChangeSetDiffer:
    """Compare two branch states through the version-control client.

    Args:
        client: Version-control client used to run diff2.

    Example:
        >>> differ = ChangeSetDiffer(client)
        >>> records = differ.diff(BranchArgs.for_stream("//mw/Bfoo"), 1200, 1100)

    """

    def __init__(self, client: VersionControlClient) -> None:
        self.client = client

    def diff(self, branch_args: BranchArgs, left_change: int, right_change: int) -> list[DiffRecord]:
        """Run the comparison and return normalized records.

        Raises:
            VersionControlError: If the comparison cannot be run.
            DiffAnomalyError: If a row has an unrecognized shape.

        """
        args = branch_args.command_args(left_change, right_change)
        logger.info(
            "Computing diff %s between @%d and @%d",
            branch_args.describe(),
            left_change,
            right_change,
        )
        records = normalize_diff_records(self.client.run_diff2(*args))
        logger.info("diff2 returned %d records", len(records))
        return records
