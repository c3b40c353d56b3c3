"""Tests for SyncPlanExecutor.

Tests cover:
- Ledger reset, local removal and empty-directory pruning for changed files
- Metadata-only advance of unchanged files the job will sync
- Application of confirmed deletes
- Removal failures and filesystem races
- Idempotence of a second run and untouched content of unchanged files
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from buildarea.reconcile.executor import SyncPlanExecutor
from buildarea.reconcile.models import ExecutionReport


def _write(root: Path, relative: str, content: str = "x") -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def executor(fake_p4, workspace: Path) -> SyncPlanExecutor:
    return SyncPlanExecutor(fake_p4, workspace, "//br/target/")


@pytest.fixture
def cloned(fake_p4, workspace: Path):
    """Workspace cloned at an older change: one changed, one unchanged, one deleted file."""
    fake_p4.have.update(
        {
            "//br/target/a.c": 4,
            "//br/target/dir/sub/b.c": 2,
            "//br/target/old.c": 1,
        }
    )
    _write(workspace, "a.c", "hello\n")
    _write(workspace, "dir/sub/b.c", "stale\n")
    _write(workspace, "old.c", "old\n")
    return {
        "unchanged": {"//br/target/a.c": 5},
        "changed": {"dir/sub/b.c"},
        "deletes": ["//br/target/old.c@5"],
        "will_sync": ["//br/target/a.c", "//br/target/dir/sub/b.c", "//br/target/new.c"],
    }


class TestExecute:
    """Tests for the full execute sequence."""

    def test_applies_all_steps(self, fake_p4, workspace: Path, executor, cloned) -> None:
        report = executor.execute(**cloned)

        assert report.changed_reset == 1
        assert report.removed_files == ["dir/sub/b.c"]
        assert report.removed_dirs == ["dir/sub", "dir"]
        assert report.failed_removals == []
        assert report.unchanged_advanced == 1
        assert report.deletes_applied == 1

        assert fake_p4.have == {"//br/target/a.c": 5}
        assert not (workspace / "dir").exists()

    def test_command_order(self, fake_p4, executor, cloned) -> None:
        executor.execute(**cloned)

        assert fake_p4.sync_calls() == [
            ("//br/target/dir/sub/b.c#0",),
            ("-k", "-L", "//br/target/a.c#5"),
            ("-k", "//br/target/old.c@5"),
        ]

    def test_unchanged_content_untouched(self, fake_p4, workspace: Path, executor, cloned) -> None:
        """An unchanged file is advanced in the ledger and its bytes are left alone."""
        before = (workspace / "a.c").read_bytes()

        executor.execute(**cloned)

        assert fake_p4.have["//br/target/a.c"] == 5
        assert (workspace / "a.c").read_bytes() == before

    def test_second_run_reports_nothing(self, executor, cloned) -> None:
        executor.execute(**cloned)
        second = executor.execute(**cloned)

        assert second.is_empty
        assert second == ExecutionReport()

    def test_empty_plan_issues_no_commands(self, fake_p4, executor) -> None:
        report = executor.execute({}, set(), [], [])
        assert report.is_empty
        assert fake_p4.calls == []


class TestAdvanceUnchanged:
    """Tests for advance_unchanged."""

    def test_only_will_sync_paths_advanced(self, fake_p4, executor) -> None:
        """Unchanged files the job will not sync keep their ledger entry."""
        fake_p4.have.update({"//br/target/a.c": 1, "//br/target/b.c": 1})

        advanced = executor.advance_unchanged(
            {"//br/target/a.c": 3, "//br/target/b.c": 3},
            ["//br/target/a.c", "//br/target/c.c"],
        )

        assert advanced == 1
        assert fake_p4.have == {"//br/target/a.c": 3, "//br/target/b.c": 1}


class TestRemoveLocalFiles:
    """Tests for remove_local_files and prune_empty_dirs."""

    def test_already_absent_is_not_an_error(self, executor) -> None:
        report = ExecutionReport()
        parents = executor.remove_local_files(["missing/file.c"], report)

        assert parents == set()
        assert report.removed_files == []
        assert report.failed_removals == []

    def test_special_characters_decoded(self, fake_p4, workspace: Path, executor) -> None:
        _write(workspace, "lib/a@b#1.c")
        fake_p4.have["//br/target/lib/a%40b%231.c"] = 3

        report = executor.execute({}, {"lib/a%40b%231.c"}, [], [])

        assert report.removed_files == ["lib/a@b#1.c"]
        assert not (workspace / "lib/a@b#1.c").exists()
        assert fake_p4.sync_calls() == [("//br/target/lib/a%40b%231.c#0",)]

    def test_symlink_removed(self, workspace: Path, executor) -> None:
        target = _write(workspace, "real.c")
        (workspace / "link.c").symlink_to(target)

        report = ExecutionReport()
        executor.remove_local_files(["link.c"], report)

        assert report.removed_files == ["link.c"]
        assert target.exists()

    def test_directory_not_removed(self, workspace: Path, executor) -> None:
        (workspace / "adir").mkdir()

        report = ExecutionReport()
        executor.remove_local_files(["adir"], report)

        assert report.removed_files == []
        assert (workspace / "adir").is_dir()

    def test_path_outside_workspace_refused(self, tmp_path: Path, executor) -> None:
        outside = _write(tmp_path, "outside.c")

        report = ExecutionReport()
        executor.remove_local_files(["../outside.c"], report)

        assert outside.exists()
        assert report.removed_files == []

    def test_symlinked_parent_outside_workspace_refused(self, tmp_path: Path, workspace: Path, executor) -> None:
        """A changed file under a directory symlink pointing outside the workspace is left alone."""
        outside = tmp_path / "outside"
        victim = _write(outside, "victim.c")
        (workspace / "ext").symlink_to(outside, target_is_directory=True)

        report = ExecutionReport()
        parents = executor.remove_local_files(["ext/victim.c"], report)

        assert victim.exists()
        assert report.removed_files == []
        assert report.failed_removals == []
        assert parents == set()

    def test_symlinked_parent_inside_workspace_allowed(self, workspace: Path, executor) -> None:
        """A directory symlink that stays within the workspace does not block removal."""
        real = _write(workspace, "real/inner.c")
        (workspace / "alias").symlink_to(workspace / "real", target_is_directory=True)

        report = ExecutionReport()
        executor.remove_local_files(["alias/inner.c"], report)

        assert report.removed_files == ["alias/inner.c"]
        assert not real.exists()

    def test_failed_removal_reported(self, workspace: Path, executor) -> None:
        """A file that still exists after the attempt is a failure."""
        _write(workspace, "locked.c")

        report = ExecutionReport()
        with patch.object(Path, "unlink", side_effect=PermissionError("denied")):
            parents = executor.remove_local_files(["locked.c"], report)

        assert report.failed_removals == ["locked.c"]
        assert report.removed_files == []
        assert parents == set()

    def test_vanished_during_removal_not_reported(self, workspace: Path, executor) -> None:
        _write(workspace, "racy.c")

        report = ExecutionReport()
        with patch.object(Path, "unlink", side_effect=FileNotFoundError()):
            executor.remove_local_files(["racy.c"], report)

        assert report.failed_removals == []
        assert report.removed_files == []

    def test_non_empty_directory_kept(self, fake_p4, workspace: Path, executor) -> None:
        _write(workspace, "pkg/changed.c")
        _write(workspace, "pkg/other.c")

        report = executor.execute({}, {"pkg/changed.c"}, [], [])

        assert report.removed_dirs == []
        assert (workspace / "pkg/other.c").exists()

    def test_workspace_root_never_removed(self, workspace: Path, executor) -> None:
        _write(workspace, "top.c")

        report = executor.execute({}, {"top.c"}, [], [])

        assert report.removed_dirs == []
        assert workspace.is_dir()

    def test_sibling_dirs_pruned_once(self, workspace: Path, executor) -> None:
        _write(workspace, "a/x/1.c")
        _write(workspace, "a/y/2.c")

        report = executor.execute({}, {"a/x/1.c", "a/y/2.c"}, [], [])

        assert sorted(report.removed_dirs) == ["a", "a/x", "a/y"]
        assert not (workspace / "a").exists()
