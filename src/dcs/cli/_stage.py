"""Membership commands: stage, unstage, global, local, globalize, localize."""

from __future__ import annotations

import os

import click

from ..membership import (
    DECISION_HELP,
    Candidate,
    Decision,
    MembershipMover,
    parse_decision,
)
from ..workspace import StoreKind
from ._helpers import (
    main,
    _locked_pair,
    _print_report,
    _rel_paths,
)

_VIEW_LIMIT = 200


def _view(root, candidate: Candidate) -> None:
    """Show a file's contents or a directory's files through the pager."""
    abs_path = os.path.join(root, *candidate.path.split("/"))
    if candidate.is_dir:
        lines = []
        for dirpath, dirnames, filenames in os.walk(abs_path):
            dirnames.sort()
            rel_dir = os.path.relpath(dirpath, root).replace(os.sep, "/")
            lines.extend(f"{rel_dir}/{f}" for f in sorted(filenames))
        click.echo_via_pager("\n".join(lines[:_VIEW_LIMIT]) + "\n")
        return
    if os.path.islink(abs_path):
        click.echo(f"{candidate.path} -> {os.readlink(abs_path)}")
        return
    with open(abs_path, "rb") as f:
        data = f.read(64 * 1024)
    if b"\0" in data:
        click.echo(f"{candidate.path}: binary file, {os.path.getsize(abs_path)} bytes")
        return
    click.echo_via_pager(data.decode("utf-8", "replace"))


def _ask(candidate: Candidate) -> Decision:
    """Prompt until the answer is a valid decision for *candidate*."""
    while True:
        answer = click.prompt(f"{candidate}  {DECISION_HELP}", default="s", show_default=False)
        decision = parse_decision(answer, candidate)
        if decision is not None:
            return decision
        click.echo(f"Invalid choice: {answer!r}", err=True)


# ---------------------------------------------------------------------------
# stage
# ---------------------------------------------------------------------------

@main.command()
@click.argument("paths", nargs=-1, type=click.Path())
@click.pass_context
def stage(ctx, paths):
    """Classify untracked files one by one.

    For each candidate choose: global, local, ignore (adds it to
    global.ignore), skip, descend into a directory, view, or quit.
    Choices take effect immediately.
    """
    with _locked_pair(ctx) as pair:
        root = pair.workspace.root
        spec = _rel_paths(ctx, pair.workspace, paths)
        report = MembershipMover(pair).stage(
            _ask, view=lambda c: _view(root, c), pathspec=spec,
        )
        _print_report(ctx, report)


# ---------------------------------------------------------------------------
# unstage
# ---------------------------------------------------------------------------

@main.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path())
@click.pass_context
def unstage(ctx, paths):
    """Stop tracking PATHS in whichever store tracks them.

    Files stay on disk.
    """
    with _locked_pair(ctx) as pair:
        spec = _rel_paths(ctx, pair.workspace, paths)
        report = MembershipMover(pair).unstage(spec)
        _print_report(ctx, report)


# ---------------------------------------------------------------------------
# global / local
# ---------------------------------------------------------------------------

def _stage_to(ctx, kind: StoreKind, paths) -> None:
    with _locked_pair(ctx) as pair:
        spec = _rel_paths(ctx, pair.workspace, paths)
        report = MembershipMover(pair).stage_to(kind, spec)
        _print_report(ctx, report)


@main.command("global")
@click.argument("paths", nargs=-1, required=True, type=click.Path())
@click.pass_context
def global_cmd(ctx, paths):
    """Track PATHS in the global store."""
    _stage_to(ctx, StoreKind.GLOBAL, paths)


@main.command("local")
@click.argument("paths", nargs=-1, required=True, type=click.Path())
@click.pass_context
def local_cmd(ctx, paths):
    """Track PATHS in the local store."""
    _stage_to(ctx, StoreKind.LOCAL, paths)


# ---------------------------------------------------------------------------
# globalize / localize
# ---------------------------------------------------------------------------

def _move(ctx, source: StoreKind, paths) -> None:
    with _locked_pair(ctx) as pair:
        spec = _rel_paths(ctx, pair.workspace, paths)
        report = MembershipMover(pair).move(source, source.other, spec)
        _print_report(ctx, report)


@main.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path())
@click.pass_context
def globalize(ctx, paths):
    """Move PATHS from the local store to the global store."""
    _move(ctx, StoreKind.LOCAL, paths)


@main.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path())
@click.pass_context
def localize(ctx, paths):
    """Move PATHS from the global store to the local store."""
    _move(ctx, StoreKind.GLOBAL, paths)
