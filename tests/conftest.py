"""Pytest configuration and fixtures for buildarea tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest


@pytest.fixture(autouse=True)
def reset_and_load_default_config(request, monkeypatch):
    """Reset the config singleton and load defaults for each test.

    Tests that exercise config loading itself can opt out with:
        @pytest.mark.no_auto_config
    """
    from buildarea.core.config import CHUNK_SIZE_ENV_VAR, _reset_config, load_config

    monkeypatch.delenv(CHUNK_SIZE_ENV_VAR, raising=False)
    _reset_config()
    if not request.node.get_closest_marker("no_auto_config"):
        load_config()

    yield

    _reset_config()


@dataclass
class FakeP4:
    """In-memory stand-in for the version-control server.

    Implements just enough sync semantics for the reconciliation engine:
    a have-table (ledger) per depot path, head revisions at the target
    change, and canned diff2/fstat answers.

    Attributes:
        heads: Depot path → head revision at the target change.
        have: Depot path → revision the workspace ledger holds.
        diff2: diff2 argument tuple → raw rows.
        fstat: File spec → raw fstat records.
        calls: Every command issued, as (command, args).

    """

    heads: dict[str, int] = field(default_factory=dict)
    have: dict[str, int] = field(default_factory=dict)
    diff2: dict[tuple[str, ...], list[Any]] = field(default_factory=dict)
    fstat: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    calls: list[tuple[str, tuple[str, ...]]] = field(default_factory=list)

    def run_diff2(self, *args: str) -> list[Any]:
        self.calls.append(("diff2", args))
        return list(self.diff2.get(args, []))

    def run_fstat(self, *args: str) -> list[Any]:
        self.calls.append(("fstat", args))
        return list(self.fstat.get(args[-1], []))

    def run_sync(self, *args: str) -> list[Any]:
        self.calls.append(("sync", args))
        flags = [a for a in args if a.startswith("-")]
        specs = [a for a in args if not a.startswith("-")]

        if "-n" in flags:
            return self._preview()

        result: list[Any] = []
        for spec in specs:
            result.append(self._sync_one(spec))
        return result

    def _preview(self) -> list[Any]:
        result: list[Any] = []
        for path, rev in sorted(self.heads.items()):
            if self.have.get(path) != rev:
                action = "updated" if path in self.have else "added"
                result.append({"depotFile": path, "rev": str(rev), "action": action})
        for path in sorted(self.have.keys() - self.heads.keys()):
            result.append({"depotFile": path, "rev": str(self.have[path]), "action": "deleted"})
        return result

    def _sync_one(self, spec: str) -> Any:
        if "#" in spec:
            path, rev_text = spec.rsplit("#", 1)
            rev = int(rev_text)
            if rev == 0:
                if self.have.pop(path, None) is None:
                    return f"{spec} - file(s) up-to-date."
                return {"depotFile": path, "rev": "0", "action": "deleted"}
            if self.have.get(path) == rev:
                return f"{spec} - file(s) up-to-date."
            self.have[path] = rev
            return {"depotFile": path, "rev": str(rev), "action": "updated"}

        path = spec.split("@", 1)[0]
        if self.have.pop(path, None) is None:
            return f"{spec} - file(s) up-to-date."
        return {"depotFile": path, "action": "deleted"}

    def sync_calls(self) -> list[tuple[str, ...]]:
        return [args for command, args in self.calls if command == "sync"]


@pytest.fixture
def fake_p4() -> FakeP4:
    """Empty fake server; tests fill in heads, have, diff2 and fstat."""
    return FakeP4()


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Empty workspace root directory."""
    root = tmp_path / "build"
    root.mkdir()
    return root
