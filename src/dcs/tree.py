"""Low-level tree and path helpers for dcs.

Provides pathspec matching, on-disk blob hashing and recursive
flattening of git trees on top of dulwich objects.
"""

from __future__ import annotations

import os
import stat
from typing import Iterable, NamedTuple

from dulwich.objects import Blob, Tree


GIT_FILEMODE_TREE = 0o040000
GIT_FILEMODE_BLOB = 0o100644
GIT_FILEMODE_BLOB_EXECUTABLE = 0o100755
GIT_FILEMODE_LINK = 0o120000
GIT_FILEMODE_COMMIT = 0o160000


class TreeEntry(NamedTuple):
    """A file entry of a flattened tree: blob sha (hex bytes) and git filemode."""

    sha: bytes
    mode: int


def _mode_from_stat(st: os.stat_result) -> int:
    """Return the git filemode for an ``lstat`` result.

    Raises IsADirectoryError for directories; only files and symlinks
    are ever stored.
    """
    if stat.S_ISLNK(st.st_mode):
        return GIT_FILEMODE_LINK
    if stat.S_ISDIR(st.st_mode):
        raise IsADirectoryError()
    if st.st_mode & 0o111:
        return GIT_FILEMODE_BLOB_EXECUTABLE
    return GIT_FILEMODE_BLOB


def matches_pathspec(path: str, pathspec: Iterable[str] | None) -> bool:
    """True if *path* equals, or lies beneath, one of the pathspec entries.

    An empty or ``None`` pathspec matches everything.
    """
    if not pathspec:
        return True
    for spec in pathspec:
        if path == spec or path.startswith(spec + "/"):
            return True
    return False


def read_disk_blob(abs_path: str) -> tuple[Blob, int, os.stat_result]:
    """Hash the file at *abs_path* into a blob.

    Symlinks are stored as their target, like git does. Returns
    ``(blob, filemode, lstat_result)``.
    """
    st = os.lstat(abs_path)
    mode = _mode_from_stat(st)
    if mode == GIT_FILEMODE_LINK:
        data = os.fsencode(os.readlink(abs_path))
    else:
        with open(abs_path, "rb") as f:
            data = f.read()
    return Blob.from_string(data), mode, st


def flatten_tree(object_store, tree_id: bytes | None, prefix: str = "") -> dict[str, TreeEntry]:
    """Return ``{path: TreeEntry}`` for every file below *tree_id*.

    Submodule entries are skipped. ``None`` yields an empty mapping.
    """
    result: dict[str, TreeEntry] = {}
    if tree_id is None:
        return result
    tree = object_store[tree_id]
    if not isinstance(tree, Tree):
        raise ValueError(f"Object {tree_id!r} is not a tree")
    for entry in tree.iteritems():
        name = entry.path.decode("utf-8", "surrogateescape")
        path = f"{prefix}{name}"
        if entry.mode == GIT_FILEMODE_TREE:
            result.update(flatten_tree(object_store, entry.sha, path + "/"))
        elif entry.mode == GIT_FILEMODE_COMMIT:
            continue
        else:
            result[path] = TreeEntry(entry.sha, entry.mode)
    return result
