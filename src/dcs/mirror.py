"""Push and pull of both stores against their ``origin`` remotes.

Push captures file metadata into each store's stat file, commits every
tracked change and pushes the store's branch. Pull fetches and merges each
branch, then restores metadata from the merged stat file. Transport errors
surface as BackendTransportError, unretried.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from . import metadata
from .backend import MergeResult, RefChange
from .exclusions import synchronize
from .metadata import ApplyReport
from .repo import RepositoryPair
from .workspace import StoreKind


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class StoreSync:
    """What push or pull did to one store.

    Attributes:
        kind: The store.
        commit: New commit sha, if one was made.
        ref: Ref update sent by push (None if nothing was sent).
        merge: Merge outcome of pull.
        metadata: Metadata restore report of pull.
        skipped: Reason the store was skipped, if it was.
    """
    kind: StoreKind
    commit: str | None = None
    ref: RefChange | None = None
    merge: MergeResult | None = None
    metadata: ApplyReport | None = None
    skipped: str | None = None


# ---------------------------------------------------------------------------
# Core operations
# ---------------------------------------------------------------------------

def write_metadata(pair: RepositoryPair, kind: StoreKind) -> str:
    """Regenerate *kind*'s stat file from disk and track it in *kind*.

    Returns the stat file's work-tree path.
    """
    ws = pair.workspace
    stat_path = ws.stat_path(kind)
    paths = [p for p in pair.tracked_paths(kind) if p != stat_path]
    records = metadata.capture(ws.root, paths)
    ws.stat_file(kind).write_bytes(metadata.dump(records))
    pair.add_to_store(kind, [stat_path])
    return stat_path


def restore_metadata(pair: RepositoryPair, kind: StoreKind) -> ApplyReport | None:
    """Apply *kind*'s stat file to the work tree; None if there is none."""
    stat_file = pair.workspace.stat_file(kind)
    if not stat_file.is_file():
        return None
    records = metadata.parse(stat_file.read_bytes())
    return metadata.apply(pair.workspace.root, records)


def commit(pair: RepositoryPair, message: str | None = None) -> dict[StoreKind, str | None]:
    """Commit tracked changes in both stores. Returns new shas (or None)."""
    pair.ensure_initialized()
    return {kind: pair.store(kind).commit(message) for kind in StoreKind}


def push(pair: RepositoryPair, *, message: str | None = None) -> list[StoreSync]:
    """Snapshot metadata, commit and push both stores."""
    pair.ensure_initialized()
    results = []
    for kind in StoreKind:
        store = pair.store(kind)
        result = StoreSync(kind)
        write_metadata(pair, kind)
        result.commit = store.commit(message)
        url = store.remote_url()
        if url is None:
            result.skipped = "no remote configured"
        else:
            result.ref = store.push(url)
        results.append(result)
    synchronize(pair)
    return results


def pull(pair: RepositoryPair) -> list[StoreSync]:
    """Fetch and merge both stores, then restore their metadata."""
    pair.ensure_initialized()
    results = []
    for kind in StoreKind:
        store = pair.store(kind)
        result = StoreSync(kind)
        url = store.remote_url()
        if url is None:
            result.skipped = "no remote configured"
            results.append(result)
            continue
        sha = store.fetch(url)
        result.merge = store.merge(sha, theirs_wins=[pair.workspace.stat_path(kind)])
        result.metadata = restore_metadata(pair, kind)
        results.append(result)
    synchronize(pair)
    return results


def set_remote(pair: RepositoryPair, url: str, stores: Iterable[StoreKind] = tuple(StoreKind)) -> None:
    """Point ``origin`` of each store in *stores* at *url*."""
    pair.ensure_initialized()
    for kind in stores:
        pair.store(kind).set_remote(url)
