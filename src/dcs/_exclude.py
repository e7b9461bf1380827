"""Exclude-filter support for working-tree walks.

Each store reads its derived exclusion file (``info/exclude``) into a
single predicate used while listing untracked paths.

Pattern syntax follows gitignore rules (implemented by
``dulwich.ignore.IgnoreFilter``).
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from dulwich.ignore import IgnoreFilter


def read_pattern_file(path: str | Path) -> list[str]:
    """Return the patterns of a line-oriented ignore file.

    Blank lines and ``#`` comments are dropped. A missing file has no
    patterns.
    """
    path = Path(path)
    if not path.is_file():
        return []
    patterns = []
    for raw in path.read_bytes().splitlines():
        line = raw.decode("utf-8", "surrogateescape").rstrip("\r")
        if line.strip() and not line.startswith("#"):
            patterns.append(line)
    return patterns


class ExcludeFilter:
    """Gitignore-style predicate over a list of patterns."""

    def __init__(
        self,
        *,
        patterns: Sequence[str] | None = None,
        exclude_from: str | Path | None = None,
    ) -> None:
        lines: list[bytes] = []
        for p in patterns or ():
            lines.append(p.encode("utf-8", "surrogateescape"))
        if exclude_from is not None:
            for p in read_pattern_file(exclude_from):
                lines.append(p.encode("utf-8", "surrogateescape"))
        self._base: IgnoreFilter | None = IgnoreFilter(lines) if lines else None

    # ------------------------------------------------------------------
    def is_excluded(self, rel_path: str, *, is_dir: bool = False) -> bool:
        """Check *rel_path* (forward slashes, relative to the work tree)."""
        if self._base is None:
            return False
        check = rel_path + "/" if is_dir else rel_path
        return self._base.is_ignored(check) is True
