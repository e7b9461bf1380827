"""Basic commands: init, ignore, status, size, commit."""

from __future__ import annotations

import os

import click

from ..exclusions import anchor_path, synchronize
from ..membership import MembershipMover
from ..mirror import commit as commit_stores
from ..repo import PathState, RepositoryPair
from ..workspace import StoreKind, Workspace
from ._helpers import (
    main,
    _cwd,
    _fatal,
    _human_size,
    _locked_pair,
    _open_pair,
    _rel_paths,
    _status,
    _warn,
)


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------

@main.command()
@click.pass_context
def init(ctx):
    """Create the global and local stores in the current directory.

    Running it again only restores missing pieces.
    """
    ws = Workspace.at(_cwd(ctx), host=ctx.obj.get("host"))
    with _fatal():
        RepositoryPair.init(ws)
    _status(ctx, f"Initialized {ws.state_dir} (local branch {ws.branch(StoreKind.LOCAL)})")


# ---------------------------------------------------------------------------
# ignore
# ---------------------------------------------------------------------------

@main.command()
@click.option("-p", "--pattern", "as_patterns", is_flag=True,
              help="Treat arguments as gitignore patterns rather than files.")
@click.option("-l", "--local", "local_", is_flag=True,
              help="Add to local.ignore instead of global.ignore.")
@click.argument("items", nargs=-1)
@click.pass_context
def ignore(ctx, as_patterns, local_, items):
    """Show or add ignore patterns.

    Without arguments, print both ignore lists. Files are added as
    anchored paths; use -p to add patterns verbatim.
    """
    kind = StoreKind.LOCAL if local_ else StoreKind.GLOBAL
    if not items:
        pair = _open_pair(ctx)
        for k in StoreKind:
            for pattern in pair.read_ignore(k):
                click.echo(f"{k.value:<6}  {pattern}")
        return

    with _locked_pair(ctx) as pair:
        ws = pair.workspace
        if as_patterns:
            patterns = list(items)
        else:
            patterns = []
            for rel in _rel_paths(ctx, ws, items):
                if not rel:
                    raise click.ClickException("Refusing to ignore the working directory root")
                is_dir = os.path.isdir(ws.root / rel) and not os.path.islink(ws.root / rel)
                patterns.append(anchor_path(rel) + ("/" if is_dir else ""))
                state = pair.state_of(rel)
                if state in (PathState.GLOBAL, PathState.LOCAL):
                    _warn(rel, f"still tracked by the {state} store (use unstage)")
        for pattern in pair.add_ignore_patterns(kind, patterns):
            click.echo(f"{kind.value:<6}  {pattern}")
        synchronize(pair)


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------

@main.command()
@click.option("-a", "--all", "show_all", is_flag=True,
              help="Also list files tracked by neither store.")
@click.pass_context
def status(ctx, show_all):
    """Show uncommitted changes in both stores."""
    with _locked_pair(ctx, resolve=False) as pair:
        synchronize(pair)
        for kind in StoreKind:
            store = pair.store(kind)
            click.echo(f"{kind} ({pair.workspace.branch(kind)})")
            changes = store.changes()
            if not changes:
                click.echo("  clean")
            for change in changes:
                click.echo(f"  {change.kind}  {change.path}")
        for path in pair.double_tracked():
            _warn(path, "tracked by both stores")
        if show_all:
            candidates = MembershipMover(pair).candidates()
            if candidates:
                click.echo("unclassified")
            for candidate in candidates:
                click.echo(f"  ?  {candidate}")


# ---------------------------------------------------------------------------
# size
# ---------------------------------------------------------------------------

@main.command()
@click.option("-h", "human", is_flag=True, help="Human-readable sizes.")
@click.pass_context
def size(ctx, human):
    """Show how much each store tracks and occupies on disk."""
    pair = _open_pair(ctx)
    fmt = _human_size if human else str
    root = pair.workspace.root
    for kind in StoreKind:
        paths = pair.tracked_paths(kind)
        total = 0
        for path in paths:
            try:
                total += os.lstat(os.path.join(root, *path.split("/"))).st_size
            except OSError:
                continue
        usage = pair.store(kind).disk_usage()
        click.echo(f"{kind.value:<6}  {len(paths)} files  {fmt(total)}  (store {fmt(usage)})")


# ---------------------------------------------------------------------------
# commit
# ---------------------------------------------------------------------------

@main.command()
@click.option("-m", "--message", default=None, help="Commit message (default: auto).")
@click.pass_context
def commit(ctx, message):
    """Commit tracked changes in both stores."""
    with _locked_pair(ctx) as pair:
        shas = commit_stores(pair, message)
        for kind, sha in shas.items():
            if sha is None:
                _status(ctx, f"{kind}: nothing to commit")
            else:
                click.echo(f"{kind.value:<6}  {sha[:7]}")
