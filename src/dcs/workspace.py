"""Workspace: the immutable per-invocation context.

The working directory, store identities and branch names are resolved
once at startup and passed to every operation.
"""

from __future__ import annotations

import os
import socket
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .exceptions import WorkspaceNotFoundError

STATE_DIR = ".dcs.d"
GLOBAL_BRANCH = "global/master"
LOCAL_BRANCH_PREFIX = "local/"
REMOTE_NAME = "origin"


class StoreKind(str, Enum):
    """The two tracking stores: ``GLOBAL`` (shared) and ``LOCAL`` (per host)."""
    GLOBAL = "global"
    LOCAL = "local"

    def __str__(self) -> str:          # noqa: D105
        return self.value

    @property
    def other(self) -> StoreKind:
        """The counterpart store."""
        return StoreKind.LOCAL if self is StoreKind.GLOBAL else StoreKind.GLOBAL


def short_hostname() -> str:
    """First label of the machine's host name."""
    return socket.gethostname().split(".", 1)[0] or "localhost"


def find_root(start: str | os.PathLike[str] | None = None) -> Path:
    """Search upward from *start* (default: cwd) for a ``.dcs.d`` directory."""
    here = Path(start if start is not None else os.getcwd()).resolve()
    for candidate in (here, *here.parents):
        if (candidate / STATE_DIR).is_dir():
            return candidate
    raise WorkspaceNotFoundError(
        f"Not a dcs working directory (or any parent): {here}"
    )


@dataclass(frozen=True)
class Workspace:
    """Where the stores live and what they are called.

    Attributes:
        root: The working tree shared by both stores.
        host: Short host name; selects the local branch.
        author: Commit author name.
        email: Commit author email.
    """
    root: Path
    host: str
    author: str = "dcs"
    email: str = ""

    @classmethod
    def discover(
        cls,
        start: str | os.PathLike[str] | None = None,
        *,
        host: str | None = None,
    ) -> Workspace:
        """Build a workspace for the nearest ``.dcs.d`` at or above *start*."""
        return cls.at(find_root(start), host=host)

    @classmethod
    def at(cls, root: str | os.PathLike[str], *, host: str | None = None) -> Workspace:
        """Build a workspace rooted exactly at *root* (used by ``init``)."""
        host = host or short_hostname()
        return cls(root=Path(root).resolve(), host=host, email=f"dcs@{host}")

    # ------------------------------------------------------------------
    @property
    def state_dir(self) -> Path:
        return self.root / STATE_DIR

    @property
    def identity(self) -> bytes:
        return f"{self.author} <{self.email}>".encode()

    def store_dir(self, kind: StoreKind) -> Path:
        """Path of the bare repository backing *kind*."""
        return self.state_dir / f"{kind.value}.git"

    def ignore_file(self, kind: StoreKind) -> Path:
        """User-authored ignore patterns of *kind*."""
        return self.state_dir / f"{kind.value}.ignore"

    def exclude_file(self, kind: StoreKind) -> Path:
        """Auto-generated exclusion list of *kind*."""
        return self.store_dir(kind) / "info" / "exclude"

    def stat_file(self, kind: StoreKind) -> Path:
        """Metadata records of *kind*, written on push."""
        return self.state_dir / f"{kind.value}.stat"

    def stat_path(self, kind: StoreKind) -> str:
        """The stat file as a work-tree relative path."""
        return f"{STATE_DIR}/{kind.value}.stat"

    @property
    def lock_file(self) -> Path:
        return self.state_dir / "dcs.lock"

    def branch(self, kind: StoreKind) -> str:
        """Branch name of *kind*: ``global/master`` or ``local/<host>``."""
        if kind is StoreKind.GLOBAL:
            return GLOBAL_BRANCH
        return LOCAL_BRANCH_PREFIX + self.host

    def relpath(self, path: str | os.PathLike[str], cwd: str | os.PathLike[str] | None = None) -> str:
        """Convert a user-supplied path into a work-tree relative path.

        Relative paths are taken relative to *cwd* (default: the process
        cwd). Raises ValueError for paths outside the work tree; returns
        ``""`` for the root itself.
        """
        base = Path(cwd) if cwd is not None else Path(os.getcwd())
        p = Path(path)
        if not p.is_absolute():
            p = base / p
        absolute = Path(os.path.abspath(p))
        try:
            rel = absolute.relative_to(self.root)
        except ValueError:
            # the root is stored resolved; resolve the parent but not the leaf
            resolved = Path(os.path.realpath(absolute.parent)) / absolute.name
            try:
                rel = resolved.relative_to(self.root)
            except ValueError:
                raise ValueError(f"Path is outside the working directory: {path}")
        rel_str = rel.as_posix()
        return "" if rel_str == "." else rel_str
