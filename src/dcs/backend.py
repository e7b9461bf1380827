"""Version-control backend for one tracking store.

The policy layer only talks to stores through the narrow :class:`Backend`
interface. :class:`GitBackend` implements it with dulwich on a bare
repository whose work tree is the dcs root: the repository keeps its own
index file, so two stores can share one work tree.
"""

from __future__ import annotations

import os
import time as _time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, Protocol, Sequence

from dulwich.client import get_transport_and_path
from dulwich.errors import GitProtocolError, NotGitRepository
from dulwich.graph import can_fast_forward, find_merge_base
from dulwich.index import Index, commit_tree, index_entry_from_stat
from dulwich.objects import Commit
from dulwich.repo import Repo

from ._exclude import ExcludeFilter
from .exceptions import BackendTransportError, MergeConflictError
from .tree import (
    GIT_FILEMODE_BLOB_EXECUTABLE,
    GIT_FILEMODE_LINK,
    TreeEntry,
    flatten_tree,
    matches_pathspec,
    read_disk_blob,
)

# Directories never offered as untracked content.
SKIP_DIRS = frozenset({".git"})


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

class ChangeKind(str, Enum):
    """Kind of working-tree change relative to the last commit."""
    ADDED = "A"
    MODIFIED = "M"
    DELETED = "D"

    def __str__(self) -> str:          # noqa: D105
        return self.value


@dataclass
class Change:
    path: str
    kind: ChangeKind


@dataclass
class RefChange:
    ref: str
    src_sha: str | None = None   # None when nothing to send
    dest_sha: str | None = None  # None for creates


@dataclass
class MergeResult:
    """Outcome of merging a fetched branch into a store.

    Attributes:
        kind: ``"up-to-date"``, ``"fast-forward"`` or ``"merge"``.
        updated: Paths written to the work tree.
        removed: Paths deleted from the work tree.
    """
    kind: str
    updated: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)


def format_commit_message(changes: Sequence[Change]) -> str:
    """Generate the automatic commit message for *changes*."""
    if not changes:
        return "No changes"
    if len(changes) == 1:
        c = changes[0]
        sign = {ChangeKind.ADDED: "+", ChangeKind.MODIFIED: "~", ChangeKind.DELETED: "-"}[c.kind]
        return f"{sign} {c.path}"
    parts = []
    for kind, sign in ((ChangeKind.ADDED, "+"), (ChangeKind.MODIFIED, "~"), (ChangeKind.DELETED, "-")):
        n = sum(1 for c in changes if c.kind is kind)
        if n:
            parts.append(f"{sign}{n}")
    return "Batch: " + " ".join(parts)


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------

class Backend(Protocol):
    """What the policy layer needs from a version-control store."""

    def is_tracked(self, path: str) -> bool: ...

    def tracked_paths(self) -> list[str]: ...

    def list_untracked(self, exclude: ExcludeFilter, pathspec: Sequence[str] | None = None) -> Iterator[str]: ...

    def add(self, paths: Iterable[str]) -> list[str]: ...

    def remove(self, paths: Iterable[str]) -> list[str]: ...

    def changes(self) -> list[Change]: ...

    def commit(self, message: str | None = None) -> str | None: ...

    def set_remote(self, url: str) -> None: ...

    def remote_url(self) -> str | None: ...

    def fetch(self, url: str) -> str | None: ...

    def merge(self, sha: str | None, *, theirs_wins: Iterable[str] = ()) -> MergeResult: ...

    def push(self, url: str) -> RefChange | None: ...

    def head(self) -> str | None: ...

    def disk_usage(self) -> int: ...


# ---------------------------------------------------------------------------
# dulwich implementation
# ---------------------------------------------------------------------------

def _decode(path: bytes) -> str:
    return path.decode("utf-8", "surrogateescape")


def _encode(path: str) -> bytes:
    return path.encode("utf-8", "surrogateescape")


def _local_remote_path(url: str) -> str | None:
    """Filesystem path of a local remote, or None for network URLs."""
    if url.startswith("file://"):
        return url[7:]
    if any(url.startswith(proto) for proto in ("http://", "https://", "git://", "ssh://")):
        return None
    head = url.split("/", 1)[0]
    if ":" in head and not os.path.exists(url):
        return None  # scp-style user@host:path
    return url


class GitBackend:
    """A bare dulwich repository tracking files of a shared work tree."""

    def __init__(
        self,
        gitdir: str | Path,
        worktree: str | Path,
        branch: str,
        *,
        identity: bytes = b"dcs <dcs@localhost>",
        remote: str = "origin",
        skip: Iterable[str] = (),
    ):
        try:
            self._repo = Repo(str(gitdir))
        except NotGitRepository as exc:
            raise FileNotFoundError(f"Repository not found: {gitdir}") from exc
        self._worktree = str(worktree)
        self.branch = branch
        self._ref = f"refs/heads/{branch}".encode()
        self._remote = remote
        self._remote_ref = f"refs/remotes/{remote}/{branch}".encode()
        self._identity = identity
        self._skip = frozenset(skip)

    def __repr__(self) -> str:
        return f"GitBackend({self._repo.path!r}, branch={self.branch!r})"

    @classmethod
    def init(
        cls,
        gitdir: str | Path,
        worktree: str | Path,
        branch: str,
        *,
        alternate: str | Path | None = None,
        **kwargs,
    ) -> GitBackend:
        """Create the bare repository if needed and point HEAD at *branch*.

        Re-running on an existing repository only ensures the HEAD,
        alternates and ``info`` directory are in place.
        """
        gitdir = Path(gitdir)
        if not gitdir.exists():
            Repo.init_bare(str(gitdir), mkdir=True)
        repo = Repo(str(gitdir))
        repo.refs.set_symbolic_ref(b"HEAD", f"refs/heads/{branch}".encode())
        (gitdir / "info").mkdir(exist_ok=True)
        if alternate is not None:
            alt_file = gitdir / "objects" / "info" / "alternates"
            existing = alt_file.read_text().splitlines() if alt_file.exists() else []
            if str(alternate) not in existing:
                repo.object_store.add_alternate_path(str(alternate))
        return cls(gitdir, worktree, branch, **kwargs)

    # -- index ----------------------------------------------------------

    def _index_path(self) -> str:
        return os.path.join(self._repo.controldir(), "index")

    def _open_index(self) -> Index:
        path = self._index_path()
        return Index(path, read=os.path.exists(path))

    def tracked_paths(self) -> list[str]:
        return sorted(_decode(p) for p in self._open_index())

    def is_tracked(self, path: str) -> bool:
        return path in set(self.tracked_paths())

    def _abs(self, path: str) -> str:
        return os.path.join(self._worktree, *path.split("/"))

    def _stage_one(self, index: Index, path: str) -> bool:
        """Hash *path* from disk into the object store and index.

        Returns False if the file no longer exists or has become a
        directory (its entry is dropped).
        """
        key = _encode(path)
        try:
            blob, mode, st = read_disk_blob(self._abs(path))
        except (FileNotFoundError, NotADirectoryError, IsADirectoryError):
            if key in set(index):
                del index[key]
            return False
        self._repo.object_store.add_object(blob)
        index[key] = index_entry_from_stat(st, blob.id, mode=mode)
        return True

    def add(self, paths: Iterable[str]) -> list[str]:
        """Stage *paths* from the work tree; returns the paths staged."""
        index = self._open_index()
        staged = [p for p in paths if self._stage_one(index, p)]
        index.write()
        return staged

    def remove(self, paths: Iterable[str]) -> list[str]:
        """Drop *paths* from the index; files on disk are left alone."""
        index = self._open_index()
        present = set(index)
        removed = []
        for p in paths:
            key = _encode(p)
            if key in present:
                del index[key]
                present.discard(key)
                removed.append(p)
        index.write()
        return removed

    # -- work tree ------------------------------------------------------

    def list_untracked(
        self, exclude: ExcludeFilter, pathspec: Sequence[str] | None = None,
    ) -> Iterator[str]:
        """Yield work-tree files that are neither tracked nor excluded.

        Excluded directories are pruned. Symlinked directories are reported
        as entries and not descended into.
        """
        tracked = set(self.tracked_paths())
        root = self._worktree

        def could_contain(rel_dir: str) -> bool:
            if not pathspec:
                return True
            return any(
                spec == rel_dir or spec.startswith(rel_dir + "/") or rel_dir.startswith(spec + "/")
                for spec in pathspec
            )

        def offer(rel: str) -> bool:
            return (
                rel not in tracked
                and matches_pathspec(rel, pathspec)
                and not exclude.is_excluded(rel)
            )

        for dirpath, dirnames, filenames in os.walk(root):
            rel_dir = os.path.relpath(dirpath, root).replace(os.sep, "/")
            rel_dir = "" if rel_dir == "." else rel_dir
            keep = []
            for dname in sorted(dirnames):
                rel = f"{rel_dir}/{dname}" if rel_dir else dname
                if dname in SKIP_DIRS or rel in self._skip:
                    continue
                if os.path.islink(os.path.join(dirpath, dname)):
                    if offer(rel):
                        yield rel
                    continue
                if exclude.is_excluded(rel, is_dir=True) or not could_contain(rel):
                    continue
                keep.append(dname)
            dirnames[:] = keep
            for fname in sorted(filenames):
                rel = f"{rel_dir}/{fname}" if rel_dir else fname
                if offer(rel):
                    yield rel

    def _disk_entry(self, path: str) -> TreeEntry | None:
        try:
            blob, mode, _st = read_disk_blob(self._abs(path))
        except (FileNotFoundError, NotADirectoryError, IsADirectoryError):
            return None
        return TreeEntry(blob.id, mode)

    # -- history --------------------------------------------------------

    def head(self) -> str | None:
        """Commit sha of the store's branch, or None before the first commit."""
        try:
            return self._repo.refs[self._ref].decode()
        except KeyError:
            return None

    def _entries_at(self, sha: str | bytes | None) -> dict[str, TreeEntry]:
        if sha is None:
            return {}
        key = sha.encode() if isinstance(sha, str) else sha
        commit = self._repo[key]
        return flatten_tree(self._repo.object_store, commit.tree)

    def _is_ancestor(self, old: bytes, new: bytes) -> bool:
        """True if *old* is reachable from *new*; unknown commits never are."""
        if old not in self._repo.object_store:
            return False
        return can_fast_forward(self._repo, old, new)

    def changes(self) -> list[Change]:
        """Compare the work tree (for tracked paths) against the last commit."""
        head = self._entries_at(self.head())
        tracked = self.tracked_paths()
        result = []
        for path in tracked:
            disk = self._disk_entry(path)
            if disk is None:
                result.append(Change(path, ChangeKind.DELETED))
            elif path not in head:
                result.append(Change(path, ChangeKind.ADDED))
            elif disk != head[path]:
                result.append(Change(path, ChangeKind.MODIFIED))
        tracked_set = set(tracked)
        for path in head:
            if path not in tracked_set:
                result.append(Change(path, ChangeKind.DELETED))
        result.sort(key=lambda c: c.path)
        return result

    def _write_commit(self, tree_id: bytes, parents: list[bytes], message: str) -> bytes:
        c = Commit()
        c.tree = tree_id
        c.parents = parents
        c.author = c.committer = self._identity
        now = int(_time.time())
        c.author_time = c.commit_time = now
        c.author_timezone = c.commit_timezone = 0
        msg = message.encode()
        if not msg.endswith(b"\n"):
            msg += b"\n"
        c.message = msg
        c.encoding = b"UTF-8"
        self._repo.object_store.add_object(c)
        return c.id

    def commit(self, message: str | None = None) -> str | None:
        """Record every tracked file as it is on disk (``commit -a``).

        Returns the new commit sha, or None if nothing changed.
        """
        changes = self.changes()
        index = self._open_index()
        for path in [_decode(p) for p in index]:
            self._stage_one(index, path)
        index.write()
        tree_id = commit_tree(
            self._repo.object_store,
            [(p, index[p].sha, index[p].mode) for p in index],
        )
        head = self.head()
        parents = []
        if head is not None:
            parent = self._repo[head.encode()]
            if parent.tree == tree_id:
                return None
            parents.append(parent.id)
        sha = self._write_commit(tree_id, parents, message or format_commit_message(changes))
        self._repo.refs[self._ref] = sha
        return sha.decode()

    # -- remotes --------------------------------------------------------

    def set_remote(self, url: str) -> None:
        config = self._repo.get_config()
        section = (b"remote", self._remote.encode())
        config.set(section, b"url", url.encode())
        config.set(section, b"fetch", f"+refs/heads/*:refs/remotes/{self._remote}/*".encode())
        config.write_to_path()

    def remote_url(self) -> str | None:
        config = self._repo.get_config()
        try:
            return config.get((b"remote", self._remote.encode()), b"url").decode()
        except KeyError:
            return None

    def fetch(self, url: str) -> str | None:
        """Fetch the store's branch from *url*; returns its remote sha (or None)."""
        client, path = get_transport_and_path(url)
        store = self._repo.object_store

        def determine_wants(refs, depth=None):
            sha = refs.get(self._ref)
            if sha is None or sha in store:
                return []
            return [sha]

        try:
            result = client.fetch(path, self._repo, determine_wants=determine_wants)
        except (GitProtocolError, NotGitRepository, OSError) as exc:
            raise BackendTransportError(f"fetch {url}: {exc}") from exc
        sha = result.refs.get(self._ref)
        if sha is None:
            return None
        self._repo.refs[self._remote_ref] = sha
        return sha.decode()

    def push(self, url: str) -> RefChange | None:
        """Push the store's branch to *url*.

        Refuses to overwrite a remote branch that is not an ancestor of the
        local one. Returns None when there is nothing to push.
        """
        head = self.head()
        if head is None:
            return None
        head_b = head.encode()
        local_path = _local_remote_path(url)
        if local_path is not None and not os.path.exists(local_path):
            Repo.init_bare(local_path, mkdir=True)
        client, path = get_transport_and_path(url)
        seen: dict[str, bytes | None] = {}

        def update_refs(refs):
            old = refs.get(self._ref)
            seen["old"] = old
            if old is not None and not self._is_ancestor(old, head_b):
                raise BackendTransportError(
                    f"push {url}: {self.branch} has diverged on the remote (pull first)"
                )
            return {self._ref: head_b}

        def gen_pack(have, want, *, ofs_delta=False, progress=None):
            return self._repo.object_store.generate_pack_data(
                have, want, ofs_delta=ofs_delta, progress=progress,
            )

        try:
            result = client.send_pack(path, update_refs, gen_pack)
        except BackendTransportError:
            raise
        except (GitProtocolError, NotGitRepository, OSError) as exc:
            raise BackendTransportError(f"push {url}: {exc}") from exc
        status = getattr(result, "ref_status", None) or {}
        if status.get(self._ref):
            raise BackendTransportError(f"push {url}: {status[self._ref]}")
        self._repo.refs[self._remote_ref] = head_b
        old = seen.get("old")
        return RefChange(
            ref=self.branch, src_sha=head, dest_sha=old.decode() if old else None,
        )

    # -- merge ----------------------------------------------------------

    def merge(self, sha: str | None, *, theirs_wins: Iterable[str] = ()) -> MergeResult:
        """Merge commit *sha* into the store's branch, index and work tree.

        Path-level three-way merge: a path changed on both sides in
        different ways is a conflict. Conflicts, and uncommitted local
        changes that would be overwritten, raise MergeConflictError before
        anything is written.
        """
        if sha is None:
            return MergeResult("up-to-date")
        theirs = sha.encode()
        head = self.head()
        ours = head.encode() if head else None
        if ours == theirs:
            return MergeResult("up-to-date")

        current = self._entries_at(ours)
        if ours is None or can_fast_forward(self._repo, ours, theirs):
            kind = "fast-forward"
            target = self._entries_at(theirs)
            new_head = theirs
        elif can_fast_forward(self._repo, theirs, ours):
            return MergeResult("up-to-date")
        else:
            kind = "merge"
            bases = find_merge_base(self._repo, [ours, theirs])
            base = self._entries_at(bases[0] if bases else None)
            target, conflicts = _three_way(
                base, current, self._entries_at(theirs), theirs_wins=set(theirs_wins),
            )
            if conflicts:
                raise MergeConflictError("Conflicting changes", sorted(conflicts))
            new_head = None

        updates = {p: e for p, e in target.items() if current.get(p) != e}
        removals = [p for p in current if p not in target]

        dirty = []
        for path, entry in updates.items():
            disk = self._disk_entry(path)
            if disk is not None and disk != current.get(path) and disk != entry:
                dirty.append(path)
        for path in removals:
            disk = self._disk_entry(path)
            if disk is not None and disk != current[path]:
                dirty.append(path)
        if dirty:
            raise MergeConflictError("Local changes would be overwritten", sorted(dirty))

        if new_head is None:
            tree_id = commit_tree(
                self._repo.object_store,
                [(_encode(p), e.sha, e.mode) for p, e in sorted(target.items())],
            )
            new_head = self._write_commit(
                tree_id, [ours, theirs], f"Merge {self._remote}/{self.branch}",
            )

        index = self._open_index()
        for path, entry in sorted(updates.items()):
            self._checkout_entry(path, entry)
            self._stage_one(index, path)
        for path in removals:
            self._remove_from_worktree(path)
            key = _encode(path)
            if key in set(index):
                del index[key]
        index.write()
        self._repo.refs[self._ref] = new_head
        return MergeResult(kind, sorted(updates), sorted(removals))

    def _checkout_entry(self, path: str, entry: TreeEntry) -> None:
        abs_path = self._abs(path)
        os.makedirs(os.path.dirname(abs_path), exist_ok=True)
        data = self._repo.object_store[entry.sha].data
        if os.path.islink(abs_path):
            os.unlink(abs_path)
        if entry.mode == GIT_FILEMODE_LINK:
            if os.path.lexists(abs_path):
                os.unlink(abs_path)
            os.symlink(os.fsdecode(data), abs_path)
            return
        with open(abs_path, "wb") as f:
            f.write(data)
        mode = os.stat(abs_path).st_mode & 0o7777
        if entry.mode == GIT_FILEMODE_BLOB_EXECUTABLE:
            mode |= (mode & 0o444) >> 2
        else:
            mode &= ~0o111
        os.chmod(abs_path, mode)

    def _remove_from_worktree(self, path: str) -> None:
        abs_path = self._abs(path)
        if os.path.lexists(abs_path):
            os.unlink(abs_path)
        parent = os.path.dirname(abs_path)
        root = os.path.abspath(self._worktree)
        while os.path.abspath(parent) != root:
            try:
                os.rmdir(parent)
            except OSError:
                break
            parent = os.path.dirname(parent)

    # -- housekeeping ---------------------------------------------------

    def disk_usage(self) -> int:
        """Bytes used by the repository directory."""
        total = 0
        for dirpath, _dirnames, filenames in os.walk(self._repo.controldir()):
            for fname in filenames:
                try:
                    total += os.lstat(os.path.join(dirpath, fname)).st_size
                except OSError:
                    continue
        return total


def _three_way(
    base: dict[str, TreeEntry],
    ours: dict[str, TreeEntry],
    theirs: dict[str, TreeEntry],
    *,
    theirs_wins: set[str] = frozenset(),
) -> tuple[dict[str, TreeEntry], list[str]]:
    """Merge flattened trees path by path. Returns ``(merged, conflicts)``.

    Paths in *theirs_wins* take the incoming side instead of conflicting.
    """
    merged: dict[str, TreeEntry] = {}
    conflicts: list[str] = []
    for path in set(base) | set(ours) | set(theirs):
        b, o, t = base.get(path), ours.get(path), theirs.get(path)
        if o == t or t == b:
            chosen = o
        elif o == b or path in theirs_wins:
            chosen = t
        else:
            conflicts.append(path)
            continue
        if chosen is not None:
            merged[path] = chosen
    return merged, conflicts
