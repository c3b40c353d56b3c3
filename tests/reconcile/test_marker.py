"""Tests for the reconciliation marker file."""

from pathlib import Path

import yaml

from buildarea.reconcile.marker import DEFAULT_MARKER_FILE, ReconciliationMarker
from buildarea.reconcile.models import BranchState


class TestReconciliationMarker:
    """Tests for ReconciliationMarker."""

    def test_absent_by_default(self, workspace: Path) -> None:
        marker = ReconciliationMarker(workspace)
        assert marker.path == workspace / DEFAULT_MARKER_FILE
        assert not marker.in_progress
        assert marker.read() == {}

    def test_write_then_read(self, workspace: Path) -> None:
        marker = ReconciliationMarker(workspace)
        marker.write(BranchState("//br/source", 4), BranchState("//br/target", 5))

        assert marker.in_progress
        body = marker.read()
        assert body["source"] == "//br/source@4"
        assert body["target"] == "//br/target@5"
        assert isinstance(body["pid"], int)
        assert "started_at" in body

    def test_body_is_yaml(self, workspace: Path) -> None:
        marker = ReconciliationMarker(workspace, "marker.yaml")
        marker.write(BranchState("//br/source", 4), BranchState("//br/target", 5))

        data = yaml.safe_load((workspace / "marker.yaml").read_text(encoding="utf-8"))
        assert list(data) == ["started_at", "pid", "source", "target"]

    def test_clear(self, workspace: Path) -> None:
        marker = ReconciliationMarker(workspace)
        marker.write(BranchState("//br/source", 4), BranchState("//br/target", 5))

        assert marker.clear() is True
        assert not marker.in_progress
        assert marker.clear() is False

    def test_unreadable_body_treated_as_empty(self, workspace: Path) -> None:
        """Only presence matters; a garbled body still counts as in progress."""
        (workspace / DEFAULT_MARKER_FILE).write_text("{{not yaml", encoding="utf-8")
        marker = ReconciliationMarker(workspace)

        assert marker.in_progress
        assert marker.read() == {}
