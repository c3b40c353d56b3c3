"""Clone strategy and source selection for a job's workspace.

A job's clone directive (e.g. ``"parent incr"``) decides how its workspace
is produced. This module maps directive text to a CloneStrategy and, given
the candidate sources the job metadata lookup already resolved, picks the
one to clone from and whether the clone must be rebased (reconciled).

Directive grammar: ``<clonefrom> [arg ...]``
- missing or ``none``: no clone (BASIC)
- any directive on a sterile job: STERILE_CLONE
- ``build``: BUILD_CLONE (sparse-branch build cluster)
- ``promote``: PROMOTE_CLONE (last promote into this branch)
- ``parent``: HYBRID_SNAP_CLONE (parent stream at the last snap)
- anything else (cluster name, job id, snapshot path, ``noreset``): PLAIN_CLONE

Arguments are case-insensitive flags; ``noreset`` and ``incr`` drive the
decision table in select_source.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from buildarea.core.exceptions import SourceSelectionError
from buildarea.reconcile.models import BranchState

logger = logging.getLogger(__name__)

__all__ = [
    "CloneStrategy",
    "CloneDirective",
    "CandidateSource",
    "SourceCandidates",
    "SourceSelection",
    "parse_clone_directive",
    "select_source",
    "check_clone_change_level",
]


class CloneStrategy(Enum):
    """How a job's workspace is produced."""

    BASIC = "basic"
    PLAIN_CLONE = "clone"
    STERILE_CLONE = "sterile"
    BUILD_CLONE = "build"
    PROMOTE_CLONE = "promote"
    HYBRID_SNAP_CLONE = "hybrid_snap"


_KEYWORD_STRATEGIES: dict[str, CloneStrategy] = {
    "build": CloneStrategy.BUILD_CLONE,
    "promote": CloneStrategy.PROMOTE_CLONE,
    "parent": CloneStrategy.HYBRID_SNAP_CLONE,
}


@dataclass(frozen=True)
class CloneDirective:
    """Parsed clone directive.

    Attributes:
        strategy: Selected clone strategy.
        clonefrom: First directive word ("" means the job's own cluster).
        args: Lower-cased remaining words.

    """

    strategy: CloneStrategy
    clonefrom: str = ""
    args: frozenset[str] = frozenset()

    @property
    def noreset(self) -> bool:
        return "noreset" in self.args or self.clonefrom == "noreset"

    @property
    def incr(self) -> bool:
        return "incr" in self.args


def parse_clone_directive(directive: str | None, sterile: bool = False) -> CloneDirective:
    """Map directive text to a clone strategy.

    Args:
        directive: Raw directive value, or None when the job has none.
        sterile: Whether the job runs sterile.

    Returns:
        The parsed directive.

    Examples:
        >>> parse_clone_directive("parent INCR").strategy
        <CloneStrategy.HYBRID_SNAP_CLONE: 'hybrid_snap'>
        >>> parse_clone_directive(None).strategy
        <CloneStrategy.BASIC: 'basic'>

    """
    if directive is None or directive.strip() == "none":
        return CloneDirective(CloneStrategy.BASIC)

    words = directive.split()
    clonefrom = words[0] if words else ""
    args = frozenset(word.lower() for word in words[1:])

    if sterile:
        strategy = CloneStrategy.STERILE_CLONE
    else:
        strategy = _KEYWORD_STRATEGIES.get(clonefrom, CloneStrategy.PLAIN_CLONE)

    logger.debug("clonefrom %r, args = %s -> %s", clonefrom, sorted(args), strategy.name)
    return CloneDirective(strategy, clonefrom, args)


@dataclass(frozen=True)
class CandidateSource:
    """A snapshot a workspace could be cloned from.

    Attributes:
        path: Snapshot location.
        change_level: Change level the snapshot's ledger is at.
        branch: Branch root the snapshot was built on, when known.
        lineage_unchanged: For a latest-pass candidate, whether the
            upstream record (last snap or last promote) is the same one the
            pass was built from.

    """

    path: str
    change_level: int
    branch: str | None = None
    lineage_unchanged: bool = True


@dataclass(frozen=True)
class SourceCandidates:
    """Sources resolved by the job metadata lookup.

    Attributes:
        workspace_root: The job's own workspace (used by sterile jobs).
        last_build: The cluster's previous build area.
        latest_pass: The cluster's latest passing build.
        named: Snapshot named by the directive (cluster, job or path).
        rebase: Upstream snapshot to rebase from (parent, promote or build job).
        overlay: Fixes-branch state layered over the rebase source.

    """

    workspace_root: str | None = None
    last_build: CandidateSource | None = None
    latest_pass: CandidateSource | None = None
    named: CandidateSource | None = None
    rebase: CandidateSource | None = None
    overlay: BranchState | None = None


@dataclass(frozen=True)
class SourceSelection:
    """Where to clone from and whether the clone must be reconciled.

    Attributes:
        strategy: Strategy that produced the selection.
        source_path: Snapshot (or directory) to clone.
        change_level: Change level of the source's ledger.
        rebasing: True when the clone comes from another lineage and must
            be brought forward by the reconciliation engine.
        source_branch: Branch root of the source, required when rebasing.
        overlay: Fixes-branch state to merge during reconciliation.

    """

    strategy: CloneStrategy
    source_path: str
    change_level: int
    rebasing: bool = False
    source_branch: str | None = None
    overlay: BranchState | None = None


def _keep(strategy: CloneStrategy, candidate: CandidateSource) -> SourceSelection:
    return SourceSelection(strategy, candidate.path, candidate.change_level, source_branch=candidate.branch)


def _rebase(strategy: CloneStrategy, candidates: SourceCandidates) -> SourceSelection:
    candidate = candidates.rebase
    if candidate is None:
        raise SourceSelectionError(f"Unable to determine source to rebase from for {strategy.name}")
    if candidate.branch is None:
        raise SourceSelectionError(f"Rebase source {candidate.path} has no branch")
    return SourceSelection(
        strategy,
        candidate.path,
        candidate.change_level,
        rebasing=True,
        source_branch=candidate.branch,
        overlay=candidates.overlay,
    )


def select_source(directive: CloneDirective, candidates: SourceCandidates) -> SourceSelection | None:
    """Pick the clone source for a directive.

    Decision table (first matching row wins):

    ============== =========================================== =========
    strategy       condition                                   source
    ============== =========================================== =========
    BASIC          always                                      none
    STERILE_CLONE  always                                      own root
    any clone      ``noreset`` and a last build exists         last build
    BUILD_CLONE    ``incr`` and a last build exists            last build
    PROMOTE/HYBRID ``incr`` and latest pass lineage unchanged  latest pass
    PLAIN_CLONE    a named snapshot exists                     named
    BUILD/PROMOTE/ otherwise                                   rebase
    HYBRID
    ============== =========================================== =========

    Raises:
        SourceSelectionError: If the row selected has no candidate.

    """
    strategy = directive.strategy

    if strategy is CloneStrategy.BASIC:
        return None

    if strategy is CloneStrategy.STERILE_CLONE:
        if candidates.workspace_root is None:
            raise SourceSelectionError("Sterile clone requires the job's workspace root")
        return SourceSelection(strategy, candidates.workspace_root, 0)

    if directive.noreset and candidates.last_build is not None:
        logger.info("Noreset: using source %s", candidates.last_build.path)
        return _keep(strategy, candidates.last_build)

    if strategy is CloneStrategy.BUILD_CLONE and directive.incr and candidates.last_build is not None:
        logger.info("Incr: using last build %s", candidates.last_build.path)
        return _keep(strategy, candidates.last_build)

    if strategy in (CloneStrategy.PROMOTE_CLONE, CloneStrategy.HYBRID_SNAP_CLONE) and directive.incr:
        latest = candidates.latest_pass
        if latest is not None and latest.lineage_unchanged:
            logger.info("Incr: lineage unchanged, cloning latest pass %s", latest.path)
            return _keep(strategy, latest)
        logger.info("Rebasing: cannot incr from latest pass")

    if strategy is CloneStrategy.PLAIN_CLONE:
        if candidates.named is None:
            raise SourceSelectionError(f"Unable to find snapshot to clone from {directive.clonefrom!r}")
        return _keep(strategy, candidates.named)

    return _rebase(strategy, candidates)


def check_clone_change_level(
    job_change: int,
    clone_change: int,
    *,
    allow_below_lkg: bool = False,
    run_at_lkg: bool = False,
) -> None:
    """Refuse to run a job at a change earlier than the clone it starts from.

    Hybrid-snap clones set ``allow_below_lkg`` since they are rebased
    forward anyway. Jobs explicitly run at the last known good change
    are re-pointed to the clone's change by the caller.

    Raises:
        SourceSelectionError: If the job change precedes the clone change.

    """
    if allow_below_lkg or run_at_lkg:
        return
    if job_change < clone_change:
        raise SourceSelectionError(
            f"Cannot run a job at change level {job_change} earlier than where we are cloning {clone_change}"
        )
