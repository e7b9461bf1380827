"""Derived exclusion lists.

Each store's ``info/exclude`` is rebuilt from scratch as::

    own ignore patterns + other store's ignore patterns + "/<path>" for
    every path the other store tracks

so that a path tracked by one store never shows up as untracked in the
other. The files are never edited by hand.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from ._exclude import read_pattern_file
from .workspace import StoreKind

if TYPE_CHECKING:
    from .repo import RepositoryPair


EXCLUDE_HEADER = (
    "# Generated by dcs. Do not edit: rewritten before every operation.\n"
    "# Edit .dcs.d/global.ignore or .dcs.d/local.ignore instead.\n"
)

_GLOB_SPECIAL = "\\*?["


def anchor_path(path: str) -> str:
    """Turn a work-tree path into an anchored, glob-escaped pattern."""
    escaped = "".join("\\" + ch if ch in _GLOB_SPECIAL else ch for ch in path)
    if escaped.endswith(" "):
        escaped = escaped[:-1] + "\\ "
    return "/" + escaped


def derive_exclusions(
    own_patterns: Iterable[str],
    other_patterns: Iterable[str],
    other_tracked: Iterable[str],
) -> list[str]:
    """Union of both ignore lists and the other store's anchored paths.

    Order is preserved and duplicates are dropped.
    """
    result: list[str] = []
    seen: set[str] = set()
    candidates = [*own_patterns, *other_patterns, *(anchor_path(p) for p in sorted(other_tracked))]
    for pattern in candidates:
        if pattern not in seen:
            seen.add(pattern)
            result.append(pattern)
    return result


def read_exclusions(path: str | Path) -> list[str]:
    """Patterns of a generated exclusion file (header comments dropped)."""
    return read_pattern_file(path)


def _write_atomic(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(text, encoding="utf-8", errors="surrogateescape")
    os.replace(tmp, path)


def synchronize(pair: RepositoryPair) -> dict[StoreKind, list[str]]:
    """Rewrite both stores' exclusion files from current state.

    Both stores are checked before anything is written, so a missing
    store never leaves one file updated and the other stale. Returns the
    patterns written per store.
    """
    pair.ensure_initialized()
    ignores = {kind: pair.read_ignore(kind) for kind in StoreKind}
    tracked = {kind: pair.tracked_paths(kind) for kind in StoreKind}
    derived = {
        kind: derive_exclusions(ignores[kind], ignores[kind.other], tracked[kind.other])
        for kind in StoreKind
    }
    for kind in StoreKind:
        lines = "".join(p + "\n" for p in derived[kind])
        _write_atomic(pair.workspace.exclude_file(kind), EXCLUDE_HEADER + lines)
    pair.mark_synchronized()
    return derived
