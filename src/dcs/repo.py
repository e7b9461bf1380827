"""RepositoryPair: the global and local stores sharing one work tree."""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Iterator, Sequence

from ._exclude import ExcludeFilter, read_pattern_file
from .backend import Backend, GitBackend
from .exceptions import DoubleTrackError, MissingStoreError
from .workspace import STATE_DIR, StoreKind, Workspace


class PathState(str, Enum):
    """Where a work-tree path is tracked. ``BOTH`` is an anomaly."""
    UNTRACKED = "untracked"
    GLOBAL = "global"
    LOCAL = "local"
    BOTH = "both"

    def __str__(self) -> str:          # noqa: D105
        return self.value


IGNORE_HEADER = "# dcs ignore patterns (gitignore syntax), one per line\n"


class RepositoryPair:
    """Owns the two tracking stores and mediates every membership change.

    Adding to or removing from one store makes the other store's derived
    exclusion list stale; :meth:`list_untracked` resynchronizes stale
    exclusion lists before reading.
    """

    def __init__(self, workspace: Workspace, stores: dict[StoreKind, Backend]):
        self.workspace = workspace
        self._stores = stores
        self._stale: set[StoreKind] = set(StoreKind)

    def __repr__(self) -> str:
        return f"RepositoryPair({str(self.workspace.root)!r})"

    @staticmethod
    def _missing(workspace: Workspace) -> list[StoreKind]:
        return [
            kind for kind in StoreKind
            if not (workspace.store_dir(kind) / "objects").is_dir()
        ]

    @classmethod
    def open(cls, workspace: Workspace) -> RepositoryPair:
        """Open both stores; raises MissingStoreError if either is absent."""
        missing = cls._missing(workspace)
        if missing:
            names = " and ".join(str(k) for k in missing)
            raise MissingStoreError(
                f"Missing {names} store in {workspace.state_dir} (run 'dcs init')"
            )
        stores: dict[StoreKind, Backend] = {
            kind: GitBackend(
                workspace.store_dir(kind),
                workspace.root,
                workspace.branch(kind),
                identity=workspace.identity,
                skip=(STATE_DIR,),
            )
            for kind in StoreKind
        }
        return cls(workspace, stores)

    @classmethod
    def init(cls, workspace: Workspace) -> RepositoryPair:
        """Create (or complete) the store pair. Safe to run repeatedly."""
        from .exclusions import synchronize

        workspace.state_dir.mkdir(parents=True, exist_ok=True)
        GitBackend.init(
            workspace.store_dir(StoreKind.GLOBAL),
            workspace.root,
            workspace.branch(StoreKind.GLOBAL),
        )
        GitBackend.init(
            workspace.store_dir(StoreKind.LOCAL),
            workspace.root,
            workspace.branch(StoreKind.LOCAL),
            alternate=(workspace.store_dir(StoreKind.GLOBAL) / "objects").resolve(),
        )
        for kind in StoreKind:
            ignore = workspace.ignore_file(kind)
            if not ignore.exists():
                ignore.write_text(IGNORE_HEADER)
        pair = cls.open(workspace)
        synchronize(pair)
        return pair

    def ensure_initialized(self) -> None:
        """Raise MissingStoreError if a store's repository has disappeared."""
        missing = self._missing(self.workspace)
        if missing:
            names = " and ".join(str(k) for k in missing)
            raise MissingStoreError(f"Missing {names} store in {self.workspace.state_dir}")

    # -- stores ---------------------------------------------------------

    def store(self, kind: StoreKind) -> Backend:
        return self._stores[kind]

    def tracked_paths(self, kind: StoreKind) -> list[str]:
        return self._stores[kind].tracked_paths()

    def is_tracked(self, kind: StoreKind, path: str) -> bool:
        return self._stores[kind].is_tracked(path)

    def list_untracked(self, kind: StoreKind, pathspec: Sequence[str] | None = None) -> Iterator[str]:
        """Untracked, non-excluded paths of *kind* under *pathspec*.

        The result is lazy and reflects the exclusion list at the time it is
        first advanced; call again after any mutation.
        """
        if kind in self._stale:
            from .exclusions import synchronize
            synchronize(self)
        exclude = ExcludeFilter(exclude_from=self.workspace.exclude_file(kind))
        return self._stores[kind].list_untracked(exclude, pathspec)

    def add_to_store(self, kind: StoreKind, paths: Iterable[str], *, force: bool = False) -> list[str]:
        """Track *paths* in *kind*.

        Paths tracked by the other store are refused with DoubleTrackError
        unless *force* is set (used by moves, which remove them first).
        """
        paths = list(paths)
        if not force:
            other = set(self.tracked_paths(kind.other))
            clash = [p for p in paths if p in other]
            if clash:
                raise DoubleTrackError(str(kind.other), clash)
        added = self._stores[kind].add(paths)
        if added:
            self._stale.add(kind.other)
        return added

    def remove_from_store(self, kind: StoreKind, paths: Iterable[str]) -> list[str]:
        """Stop tracking *paths* in *kind*; work-tree files are kept."""
        removed = self._stores[kind].remove(paths)
        if removed:
            self._stale.add(kind.other)
        return removed

    # -- exclusion bookkeeping -----------------------------------------

    def is_stale(self, kind: StoreKind) -> bool:
        return kind in self._stale

    def mark_synchronized(self) -> None:
        self._stale.clear()

    # -- classification -------------------------------------------------

    def state_of(self, path: str) -> PathState:
        in_global = self.is_tracked(StoreKind.GLOBAL, path)
        in_local = self.is_tracked(StoreKind.LOCAL, path)
        if in_global and in_local:
            return PathState.BOTH
        if in_global:
            return PathState.GLOBAL
        if in_local:
            return PathState.LOCAL
        return PathState.UNTRACKED

    def double_tracked(self) -> list[str]:
        """Paths tracked by both stores."""
        both = set(self.tracked_paths(StoreKind.GLOBAL)) & set(self.tracked_paths(StoreKind.LOCAL))
        return sorted(both)

    def resolve_double_tracked(self) -> list[str]:
        """Drop double-tracked paths from the local store (global wins)."""
        both = self.double_tracked()
        if both:
            self.remove_from_store(StoreKind.LOCAL, both)
        return both

    # -- ignore files ---------------------------------------------------

    def read_ignore(self, kind: StoreKind) -> list[str]:
        return read_pattern_file(self.workspace.ignore_file(kind))

    def add_ignore_patterns(self, kind: StoreKind, patterns: Iterable[str]) -> list[str]:
        """Append *patterns* not already present; returns those appended."""
        existing = set(self.read_ignore(kind))
        new = []
        for p in patterns:
            if p and p not in existing:
                existing.add(p)
                new.append(p)
        if new:
            path = self.workspace.ignore_file(kind)
            needs_newline = path.exists() and path.read_bytes()[-1:] not in (b"", b"\n")
            with open(path, "a", encoding="utf-8", errors="surrogateescape") as f:
                if needs_newline:
                    f.write("\n")
                for p in new:
                    f.write(p + "\n")
            self._stale.update(StoreKind)
        return new
