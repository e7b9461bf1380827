"""Membership changes: stage, unstage, stage-to and move.

Every path is in one of three states: untracked, tracked by the global
store, or tracked by the local store. The only transitions are::

    untracked --stage(store)--> store
    store     --unstage-------> untracked
    A         --move(A -> B)--> B      (remove from A, resync, add to B)

Interactive staging is split into a pure part (:func:`parse_decision`,
:func:`collapse_candidates`, :meth:`MembershipMover.apply`) and the loop in
:meth:`MembershipMover.stage`, which takes the prompt as a callable.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Sequence

from .exceptions import NoEligibleFilesError
from .exclusions import anchor_path, synchronize
from .repo import RepositoryPair
from .tree import matches_pathspec
from .workspace import StoreKind


class Decision(str, Enum):
    """What to do with one staging candidate; values are the prompt keys."""
    GLOBAL = "g"
    LOCAL = "l"
    IGNORE = "i"
    SKIP = "s"
    DESCEND = "d"
    VIEW = "v"
    ABORT = "q"

    def __str__(self) -> str:          # noqa: D105
        return self.value


DECISION_HELP = "[g]lobal [l]ocal [i]gnore [s]kip [d]escend [v]iew [q]uit"


@dataclass(frozen=True)
class Candidate:
    """An untracked file, or a directory whose files are all untracked."""
    path: str
    is_dir: bool = False

    def __str__(self) -> str:          # noqa: D105
        return self.path + "/" if self.is_dir else self.path


@dataclass
class MembershipWarning:
    path: str
    error: str


def _by_store() -> dict[StoreKind, list[str]]:
    return {kind: [] for kind in StoreKind}


@dataclass
class MembershipReport:
    """Result of a membership command.

    Attributes:
        added: Paths newly tracked (or refreshed), per store.
        removed: Paths no longer tracked, per store.
        ignored: Patterns appended to the global ignore file.
        skipped: Candidates left untouched.
        warnings: Per-path problems that did not stop the command.
        aborted: True if an interactive session was quit early.
    """
    added: dict[StoreKind, list[str]] = field(default_factory=_by_store)
    removed: dict[StoreKind, list[str]] = field(default_factory=_by_store)
    ignored: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    warnings: list[MembershipWarning] = field(default_factory=list)
    aborted: bool = False

    @property
    def total(self) -> int:
        """Number of add + remove actions."""
        return sum(len(v) for v in self.added.values()) + sum(len(v) for v in self.removed.values())


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def parse_decision(answer: str, candidate: Candidate) -> Decision | None:
    """Map a prompt answer to a decision; None if invalid for *candidate*."""
    key = answer.strip().lower()[:1]
    try:
        decision = Decision(key)
    except ValueError:
        return None
    if decision is Decision.DESCEND and not candidate.is_dir:
        return None
    return decision


def _ancestor_dirs(paths: Iterable[str]) -> set[str]:
    dirs: set[str] = set()
    for path in paths:
        parts = path.split("/")
        for depth in range(1, len(parts)):
            dirs.add("/".join(parts[:depth]))
    return dirs


def _floor_depth(path: str, floors: Sequence[str]) -> int:
    """Shallowest depth *path* may collapse to under the entries of *floors*."""
    depths = []
    for floor in floors:
        if path == floor:
            depths.append(len(path.split("/")))
        elif path.startswith(floor + "/"):
            depths.append(len(floor.split("/")))
    return min(depths, default=0)


def collapse_candidates(
    files: Iterable[str],
    blocked: set[str],
    base: str = "",
    floors: Sequence[str] = (),
) -> list[Candidate]:
    """Group *files* under *base* into candidates.

    Each file is represented by its highest ancestor directory below *base*
    that is not in *blocked* (directories holding tracked files), or by
    itself when every such ancestor is blocked. A file matched by one of
    *floors* never collapses above that entry.
    """
    base_depth = len(base.split("/")) if base else 0
    result: set[Candidate] = set()
    for path in files:
        if base and not path.startswith(base + "/"):
            continue
        parts = path.split("/")
        start = max(base_depth + 1, _floor_depth(path, floors))
        chosen = Candidate(path)
        for depth in range(start, len(parts)):
            directory = "/".join(parts[:depth])
            if directory not in blocked:
                chosen = Candidate(directory, is_dir=True)
                break
        result.add(chosen)
    return sorted(result, key=lambda c: c.path)


def _pathspec(paths: Sequence[str] | None) -> list[str] | None:
    """Normalize a pathspec; the work-tree root (``""``) means everything."""
    if not paths:
        return None
    if any(p == "" for p in paths):
        return None
    return list(paths)


# ---------------------------------------------------------------------------
# Mover
# ---------------------------------------------------------------------------

class MembershipMover:
    """Reclassifies paths between untracked, global and local."""

    def __init__(self, pair: RepositoryPair):
        self.pair = pair

    def _unclassified(self, pathspec: Sequence[str] | None) -> set[str]:
        """Files untracked (and not ignored) in both stores."""
        in_global = set(self.pair.list_untracked(StoreKind.GLOBAL, pathspec))
        in_local = set(self.pair.list_untracked(StoreKind.LOCAL, pathspec))
        return in_global & in_local

    def candidates(self, base: str = "", pathspec: Sequence[str] | None = None) -> list[Candidate]:
        """Staging candidates below *base*, optionally limited by *pathspec*.

        A candidate never reaches above the pathspec entry it matched, so
        a directory candidate holds only files the pathspec names.
        """
        spec = _pathspec(pathspec)
        files = self._unclassified([base] if base else spec)
        if base:
            files = {p for p in files if matches_pathspec(p, spec)}
        blocked = _ancestor_dirs(
            [*self.pair.tracked_paths(StoreKind.GLOBAL), *self.pair.tracked_paths(StoreKind.LOCAL)]
        )
        return collapse_candidates(files, blocked, base, spec or ())

    def apply(
        self,
        candidate: Candidate,
        decision: Decision,
        report: MembershipReport,
        *,
        pathspec: Sequence[str] | None = None,
    ) -> list[Candidate]:
        """Apply one decision immediately.

        Only files matching *pathspec* are affected. Returns the candidates
        that replace *candidate* (non-empty only for DESCEND). VIEW and
        ABORT are handled by the caller.
        """
        spec = _pathspec(pathspec)
        if decision in (Decision.GLOBAL, Decision.LOCAL):
            kind = StoreKind.GLOBAL if decision is Decision.GLOBAL else StoreKind.LOCAL
            files = sorted(p for p in self._unclassified([candidate.path]) if matches_pathspec(p, spec))
            added = self.pair.add_to_store(kind, files)
            report.added[kind].extend(added)
            synchronize(self.pair)
        elif decision is Decision.IGNORE:
            pattern = anchor_path(candidate.path) + ("/" if candidate.is_dir else "")
            report.ignored.extend(self.pair.add_ignore_patterns(StoreKind.GLOBAL, [pattern]))
            synchronize(self.pair)
        elif decision is Decision.SKIP:
            report.skipped.append(str(candidate))
        elif decision is Decision.DESCEND:
            return self.candidates(base=candidate.path, pathspec=spec)
        return []

    def stage(
        self,
        prompt: Callable[[Candidate], Decision],
        *,
        view: Callable[[Candidate], None] | None = None,
        pathspec: Sequence[str] | None = None,
    ) -> MembershipReport:
        """Classify every unclassified candidate, one decision at a time.

        Decisions take effect as they are made; ABORT stops the session
        without undoing earlier decisions.
        """
        report = MembershipReport()
        queue = deque(self.candidates(pathspec=pathspec))
        while queue:
            candidate = queue.popleft()
            decision = prompt(candidate)
            if decision is Decision.VIEW:
                if view is not None:
                    view(candidate)
                queue.appendleft(candidate)
                continue
            if decision is Decision.ABORT:
                report.aborted = True
                break
            queue.extendleft(reversed(self.apply(candidate, decision, report, pathspec=pathspec)))
        return report

    def unstage(self, paths: Sequence[str]) -> MembershipReport:
        """Stop tracking *paths* in whichever store(s) track them."""
        spec = _pathspec(paths)
        targets = {
            kind: [p for p in self.pair.tracked_paths(kind) if matches_pathspec(p, spec)]
            for kind in StoreKind
        }
        if not any(targets.values()):
            raise NoEligibleFilesError(f"No tracked files match: {' '.join(paths)}")
        report = MembershipReport()
        for kind, files in targets.items():
            if files:
                report.removed[kind].extend(self.pair.remove_from_store(kind, files))
        synchronize(self.pair)
        return report

    def stage_to(self, kind: StoreKind, paths: Sequence[str]) -> MembershipReport:
        """Track matching untracked paths in *kind*.

        Paths already tracked by *kind* are refreshed (a no-op if
        unchanged). Paths tracked by the other store are skipped with a
        warning.
        """
        spec = _pathspec(paths)
        synchronize(self.pair)
        untracked = list(self.pair.list_untracked(kind, spec))
        already = [p for p in self.pair.tracked_paths(kind) if matches_pathspec(p, spec)]
        other = set(self.pair.tracked_paths(kind.other))

        report = MembershipReport()
        for path in paths:
            if path in other:
                report.warnings.append(
                    MembershipWarning(path, f"tracked by the {kind.other} store (use move)")
                )
        eligible = []
        for path in untracked:
            if path in other:
                report.warnings.append(MembershipWarning(path, f"tracked by the {kind.other} store"))
            else:
                eligible.append(path)
        if not eligible and not already:
            if report.warnings:
                return report
            raise NoEligibleFilesError(
                f"No files to add to the {kind} store: {' '.join(paths) or '.'}"
            )
        report.added[kind].extend(self.pair.add_to_store(kind, [*already, *eligible]))
        synchronize(self.pair)
        return report

    def move(self, source: StoreKind, destination: StoreKind, paths: Sequence[str]) -> MembershipReport:
        """Move tracked paths from *source* to *destination*.

        Raises NoEligibleFilesError, without touching either store, when
        *source* tracks nothing under *paths*. Paths missing from the work
        tree stay in *source* with a warning. Once paths are removed from
        *source* the add to *destination* is always attempted.
        """
        if source is destination:
            raise ValueError("Source and destination stores must differ")
        spec = _pathspec(paths)
        files = [p for p in self.pair.tracked_paths(source) if matches_pathspec(p, spec)]
        if not files:
            raise NoEligibleFilesError(
                f"No files tracked by the {source} store match: {' '.join(paths) or '.'}"
            )
        report = MembershipReport()
        root = self.pair.workspace.root
        present = []
        for path in files:
            target = root / path
            if target.is_symlink() or target.is_file():
                present.append(path)
            else:
                report.warnings.append(
                    MembershipWarning(path, f"missing from the work tree; left in the {source} store")
                )
        if not present:
            return report
        removed = self.pair.remove_from_store(source, present)
        report.removed[source].extend(removed)
        try:
            synchronize(self.pair)
        finally:
            report.added[destination].extend(
                self.pair.add_to_store(destination, removed, force=True)
            )
        synchronize(self.pair)
        return report
