"""Shared helpers, option decorators, and the main CLI group."""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Iterator

import click

from .._lock import workspace_lock
from ..exceptions import DcsError
from ..membership import MembershipReport
from ..repo import RepositoryPair
from ..workspace import StoreKind, Workspace


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _status(ctx, msg):
    """Emit a status message to stderr when verbose mode (-v) is on."""
    if ctx.obj.get("verbose"):
        click.echo(msg, err=True)


def _warn(path: str, msg: str) -> None:
    click.echo(f"WARNING: {path}: {msg}", err=True)


@contextmanager
def _fatal() -> Iterator[None]:
    """Turn dcs errors into click errors (message + exit status 1)."""
    try:
        yield
    except DcsError as exc:
        raise click.ClickException(str(exc)) from exc


def _cwd(ctx) -> str:
    """Directory that relative arguments are resolved against."""
    return ctx.obj.get("root") or os.getcwd()


def _workspace(ctx) -> Workspace:
    """Discover the workspace at or above the invocation directory."""
    with _fatal():
        return Workspace.discover(_cwd(ctx), host=ctx.obj.get("host"))


def _open_pair(ctx) -> RepositoryPair:
    with _fatal():
        return RepositoryPair.open(_workspace(ctx))


@contextmanager
def _locked_pair(ctx, *, resolve: bool = True) -> Iterator[RepositoryPair]:
    """Open the pair and hold the workspace lock for the command.

    With *resolve*, paths tracked by both stores are first dropped from
    the local store (global wins) and reported.
    """
    pair = _open_pair(ctx)
    with workspace_lock(pair.workspace.lock_file), _fatal():
        if resolve:
            for path in pair.resolve_double_tracked():
                _warn(path, "was tracked by both stores; kept in global only")
        yield pair


def _rel_paths(ctx, workspace: Workspace, paths) -> list[str]:
    """Convert command-line paths to work-tree relative paths."""
    result = []
    for p in paths:
        try:
            result.append(workspace.relpath(p, _cwd(ctx)))
        except ValueError as exc:
            raise click.ClickException(str(exc))
    return result


def _print_report(ctx, report: MembershipReport) -> None:
    """Print the outcome of a membership command."""
    for kind in StoreKind:
        for path in report.removed[kind]:
            click.echo(f"{kind.value:<6}  - {path}")
        for path in report.added[kind]:
            click.echo(f"{kind.value:<6}  + {path}")
    for pattern in report.ignored:
        click.echo(f"ignore  {pattern}")
    for w in report.warnings:
        _warn(w.path, w.error)
    if report.aborted:
        _status(ctx, "Stopped; earlier decisions were kept.")
    _status(ctx, f"{report.total} change(s)")


def _human_size(n: int) -> str:
    """Format a byte count like ``du -h``."""
    size = float(n)
    for unit in ("B", "K", "M", "G", "T"):
        if size < 1024 or unit == "T":
            if unit == "B":
                return f"{int(size)}{unit}"
            return f"{size:.1f}{unit}"
        size /= 1024
    return f"{n}B"


# ---------------------------------------------------------------------------
# Main group
# ---------------------------------------------------------------------------

@click.group()
@click.option("-C", "--root", type=click.Path(file_okay=False), envvar="DCS_ROOT",
              help="Run as if started in this directory (or set DCS_ROOT).")
@click.option("--host", envvar="DCS_HOST",
              help="Host name selecting the local branch (or set DCS_HOST).")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output on stderr.")
@click.pass_context
def main(ctx, root, host, verbose):
    """dcs — keep a directory in sync with a global and a local git store.

    Files shared by every machine go to the global store (branch
    global/master); machine-specific files go to the local store (branch
    local/<host>). A file is tracked by at most one of them.

    \b
    Quick start:
      dcs init
      dcs stage                  classify untracked files interactively
      dcs remote URL             set the remote of both stores
      dcs push / dcs pull

    \b
    Membership:
      global / local PATH...     add to one store
      globalize / localize PATH...   move between stores
      unstage PATH...            stop tracking
    """
    ctx.ensure_object(dict)
    ctx.obj["root"] = root
    ctx.obj["host"] = host
    ctx.obj["verbose"] = verbose
