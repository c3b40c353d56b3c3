"""Marker file signalling an in-progress (or interrupted) reconciliation.

The marker is written before a reconciliation mutates the workspace and is
left in place afterwards. A later preparation run that determines no
reconciliation is needed removes it. Its presence therefore means the
last reconciling run may have left the ledger partially advanced. Only
presence matters; the YAML body is for people diagnosing a crash.
"""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime
from pathlib import Path

import yaml

from buildarea.reconcile.models import BranchState

logger = logging.getLogger(__name__)

__all__ = ["DEFAULT_MARKER_FILE", "ReconciliationMarker"]

DEFAULT_MARKER_FILE = ".rebase-snap"


class ReconciliationMarker:
    """Marker file in a workspace root.

    Args:
        workspace_root: Root directory of the workspace.
        name: Marker file name.

    """

    def __init__(self, workspace_root: Path, name: str = DEFAULT_MARKER_FILE) -> None:
        self.path = Path(workspace_root) / name

    @property
    def in_progress(self) -> bool:
        return self.path.is_file()

    def write(self, source: BranchState, target: BranchState) -> None:
        """Create (or overwrite) the marker."""
        body = {
            "started_at": datetime.now(UTC).isoformat(),
            "pid": os.getpid(),
            "source": str(source),
            "target": str(target),
        }
        self.path.write_text(yaml.safe_dump(body, sort_keys=False), encoding="utf-8")
        logger.debug("Wrote reconciliation marker %s", self.path)

    def clear(self) -> bool:
        """Remove the marker if present.

        Returns:
            True if a marker was removed.

        """
        if not self.path.is_file():
            return False
        self.path.unlink()
        logger.info("Removed stale reconciliation marker %s", self.path)
        return True

    def read(self) -> dict[str, object]:
        """Return the marker body, or an empty dict if absent or unreadable."""
        try:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError):
            return {}
        return data if isinstance(data, dict) else {}
