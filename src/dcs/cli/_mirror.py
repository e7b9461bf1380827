"""Remote commands: remote, push, pull."""

from __future__ import annotations

import click

from .. import mirror
from ..exclusions import synchronize
from ..workspace import StoreKind
from ._helpers import (
    main,
    _locked_pair,
    _open_pair,
    _status,
    _warn,
)


# ---------------------------------------------------------------------------
# remote
# ---------------------------------------------------------------------------

@main.command()
@click.option("-g", "--global", "global_", is_flag=True, help="Only the global store.")
@click.option("-l", "--local", "local_", is_flag=True, help="Only the local store.")
@click.argument("url", required=False)
@click.pass_context
def remote(ctx, global_, local_, url):
    """Show or set the remote URL of the stores.

    Both stores may share one remote: they push to different branches.
    """
    if global_ and local_:
        stores = list(StoreKind)
    elif global_:
        stores = [StoreKind.GLOBAL]
    elif local_:
        stores = [StoreKind.LOCAL]
    else:
        stores = list(StoreKind)

    if url is None:
        pair = _open_pair(ctx)
        for kind in stores:
            click.echo(f"{kind.value:<6}  {pair.store(kind).remote_url() or '(none)'}")
        return

    with _locked_pair(ctx, resolve=False) as pair:
        mirror.set_remote(pair, url, stores)
        for kind in stores:
            _status(ctx, f"{kind}: origin = {url}")


# ---------------------------------------------------------------------------
# push
# ---------------------------------------------------------------------------

@main.command()
@click.option("-m", "--message", default=None, help="Commit message (default: auto).")
@click.pass_context
def push(ctx, message):
    """Commit tracked changes and push both stores."""
    with _locked_pair(ctx) as pair:
        results = mirror.push(pair, message=message)
    for r in results:
        if r.commit:
            _status(ctx, f"{r.kind}: committed {r.commit[:7]}")
        if r.skipped:
            _warn(str(r.kind), r.skipped)
        elif r.ref is None or r.ref.src_sha == r.ref.dest_sha:
            click.echo(f"{r.kind.value:<6}  up to date")
        else:
            old = r.ref.dest_sha[:7] if r.ref.dest_sha else "(new)"
            click.echo(f"{r.kind.value:<6}  {old} -> {r.ref.src_sha[:7]}  {r.ref.ref}")


# ---------------------------------------------------------------------------
# pull
# ---------------------------------------------------------------------------

@main.command()
@click.pass_context
def pull(ctx):
    """Fetch and merge both stores, then restore permissions and owners."""
    with _locked_pair(ctx) as pair:
        results = mirror.pull(pair)
        resolved = pair.resolve_double_tracked()
        for path in resolved:
            _warn(path, "was tracked by both stores; kept in global only")
        if resolved:
            synchronize(pair)
    for r in results:
        if r.skipped:
            _warn(str(r.kind), r.skipped)
            continue
        merge = r.merge
        if merge.kind == "up-to-date":
            click.echo(f"{r.kind.value:<6}  up to date")
        else:
            click.echo(
                f"{r.kind.value:<6}  {merge.kind}: "
                f"{len(merge.updated)} updated, {len(merge.removed)} removed"
            )
        if r.metadata is not None:
            for err in r.metadata.errors:
                _warn(err.path, err.error)
