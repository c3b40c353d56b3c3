"""Tests for diff record classification.

Tests cover:
- Identical/content/right-only/left-only rules
- Exclusion of the configuration subtree
- Disjointness of the unchanged and changed outputs
- Anomalies (identical without revision, path without branch prefix)
"""

import pytest

from buildarea.core.exceptions import DiffAnomalyError, ReconciliationInvariantError
from buildarea.reconcile.classifier import check_disjoint, classify, relative_path_of
from buildarea.reconcile.models import DiffRecord, DiffStatus


class TestClassify:
    """Tests for classify."""

    def test_identical_and_content(self) -> None:
        """One identical and one differing file split into the two outputs."""
        records = [
            DiffRecord(DiffStatus.IDENTICAL, "//br/target/a.c", 5),
            DiffRecord(DiffStatus.CONTENT_DIFFERS, "//br/target/b.c"),
        ]
        unchanged, changed = classify(records, "config/")
        assert unchanged == {"//br/target/a.c": 5}
        assert changed == {"b.c"}

    def test_right_only_is_changed_by_relative_path(self) -> None:
        """A file only on the source branch is keyed by its relative path."""
        unchanged, changed = classify([DiffRecord(DiffStatus.RIGHT_ONLY, "//br/source/dir/new.c", 2)])
        assert unchanged == {}
        assert changed == {"dir/new.c"}

    def test_left_only_ignored(self) -> None:
        unchanged, changed = classify([DiffRecord(DiffStatus.LEFT_ONLY, "//br/target/gone.c", 1)])
        assert unchanged == {}
        assert changed == set()

    @pytest.mark.parametrize(
        "records",
        [
            [],
            [DiffRecord(DiffStatus.IDENTICAL, "//br/target/a.c", 1)],
            [DiffRecord(DiffStatus.LEFT_ONLY, "//br/target/a.c", 1)],
            [
                DiffRecord(DiffStatus.IDENTICAL, "//br/target/a.c", 1),
                DiffRecord(DiffStatus.LEFT_ONLY, "//br/target/b.c", 2),
                DiffRecord(DiffStatus.IDENTICAL, "//br/target/sub/c.c", 9),
                DiffRecord(DiffStatus.LEFT_ONLY, "//br/target/sub/d.c"),
            ],
        ],
    )
    def test_identical_and_left_only_never_changed(self, records: list[DiffRecord]) -> None:
        """Sequences of identical and left-only records yield no changed files."""
        _, changed = classify(records)
        assert changed == set()

    def test_config_subtree_excluded_from_both(self) -> None:
        records = [
            DiffRecord(DiffStatus.IDENTICAL, "//br/target/config/settings.xml", 4),
            DiffRecord(DiffStatus.CONTENT_DIFFERS, "//br/target/config/flags.txt"),
            DiffRecord(DiffStatus.CONTENT_DIFFERS, "//br/target/configure.ac"),
        ]
        unchanged, changed = classify(records, "config/")
        assert unchanged == {}
        assert changed == {"configure.ac"}

    def test_empty_prefix_excludes_nothing(self) -> None:
        records = [DiffRecord(DiffStatus.CONTENT_DIFFERS, "//br/target/config/flags.txt")]
        _, changed = classify(records, "")
        assert changed == {"config/flags.txt"}

    def test_identical_without_revision_rejected(self) -> None:
        with pytest.raises(DiffAnomalyError, match="without revision"):
            classify([DiffRecord(DiffStatus.IDENTICAL, "//br/target/a.c")])

    def test_path_without_branch_prefix_rejected(self) -> None:
        with pytest.raises(DiffAnomalyError, match="branch-relative path"):
            classify([DiffRecord(DiffStatus.CONTENT_DIFFERS, "a.c")])

    def test_same_relative_path_both_ways_rejected(self) -> None:
        """A file reported identical and also right-only is a contradiction."""
        records = [
            DiffRecord(DiffStatus.IDENTICAL, "//br/target/a.c", 5),
            DiffRecord(DiffStatus.RIGHT_ONLY, "//br/source/a.c", 2),
        ]
        with pytest.raises(ReconciliationInvariantError) as exc_info:
            classify(records)
        assert exc_info.value.paths == ["a.c"]


class TestHelpers:
    """Tests for relative_path_of and check_disjoint."""

    def test_relative_path_of(self) -> None:
        assert relative_path_of("//br/target/x/y.c") == "x/y.c"

    def test_check_disjoint_passes(self) -> None:
        check_disjoint({"//br/target/a.c": 1}, {"b.c"}, "test")

    def test_check_disjoint_names_context(self) -> None:
        with pytest.raises(ReconciliationInvariantError, match="test: paths classified both"):
            check_disjoint({"//br/target/a.c": 1}, {"a.c"}, "test")
