"""Tests for RepositoryPair: init, open, membership and ignore files."""

import pytest

from dcs.exceptions import DoubleTrackError, MissingStoreError
from dcs.repo import IGNORE_HEADER, PathState, RepositoryPair
from dcs.workspace import StoreKind, Workspace


# ---------------------------------------------------------------------------
# init / open
# ---------------------------------------------------------------------------

class TestInit:
    def test_creates_both_stores(self, pair):
        ws = pair.workspace
        for kind in StoreKind:
            assert (ws.store_dir(kind) / "objects").is_dir()
            assert ws.ignore_file(kind).read_text() == IGNORE_HEADER
            assert ws.exclude_file(kind).is_file()

    def test_head_points_at_store_branch(self, pair):
        ws = pair.workspace
        head = (ws.store_dir(StoreKind.GLOBAL) / "HEAD").read_text()
        assert head.strip() == "ref: refs/heads/global/master"
        head = (ws.store_dir(StoreKind.LOCAL) / "HEAD").read_text()
        assert head.strip() == "ref: refs/heads/local/testhost"

    def test_local_borrows_global_objects(self, pair):
        ws = pair.workspace
        alternates = ws.store_dir(StoreKind.LOCAL) / "objects" / "info" / "alternates"
        lines = alternates.read_text().splitlines()
        assert lines == [str((ws.store_dir(StoreKind.GLOBAL) / "objects").resolve())]

    def test_idempotent(self, pair, write_file):
        ws = pair.workspace
        write_file("a.txt")
        pair.add_to_store(StoreKind.GLOBAL, ["a.txt"])
        pair.add_ignore_patterns(StoreKind.LOCAL, ["*.log"])

        again = RepositoryPair.init(ws)
        assert again.tracked_paths(StoreKind.GLOBAL) == ["a.txt"]
        assert again.read_ignore(StoreKind.LOCAL) == ["*.log"]
        alternates = ws.store_dir(StoreKind.LOCAL) / "objects" / "info" / "alternates"
        assert len(alternates.read_text().splitlines()) == 1

    def test_open_missing(self, workdir):
        with pytest.raises(MissingStoreError):
            RepositoryPair.open(Workspace.at(workdir, host="testhost"))

    def test_open_existing(self, pair):
        reopened = RepositoryPair.open(pair.workspace)
        assert reopened.tracked_paths(StoreKind.GLOBAL) == []


# ---------------------------------------------------------------------------
# membership
# ---------------------------------------------------------------------------

class TestMembership:
    def test_add_and_query(self, pair, write_file):
        write_file("a.txt")
        assert pair.add_to_store(StoreKind.GLOBAL, ["a.txt"]) == ["a.txt"]
        assert pair.is_tracked(StoreKind.GLOBAL, "a.txt")
        assert not pair.is_tracked(StoreKind.LOCAL, "a.txt")

    def test_add_marks_other_stale(self, pair, write_file):
        write_file("a.txt")
        pair.mark_synchronized()
        pair.add_to_store(StoreKind.LOCAL, ["a.txt"])
        assert pair.is_stale(StoreKind.GLOBAL)
        assert not pair.is_stale(StoreKind.LOCAL)

    def test_add_missing_file_is_skipped(self, pair):
        assert pair.add_to_store(StoreKind.GLOBAL, ["nope.txt"]) == []

    def test_double_track_refused(self, pair, write_file):
        write_file("a.txt")
        pair.add_to_store(StoreKind.GLOBAL, ["a.txt"])
        with pytest.raises(DoubleTrackError) as exc_info:
            pair.add_to_store(StoreKind.LOCAL, ["a.txt"])
        assert exc_info.value.paths == ["a.txt"]
        assert exc_info.value.store == "global"
        assert not pair.is_tracked(StoreKind.LOCAL, "a.txt")

    def test_remove_keeps_file(self, pair, write_file):
        path = write_file("a.txt")
        pair.add_to_store(StoreKind.GLOBAL, ["a.txt"])
        assert pair.remove_from_store(StoreKind.GLOBAL, ["a.txt", "b.txt"]) == ["a.txt"]
        assert pair.tracked_paths(StoreKind.GLOBAL) == []
        assert path.exists()

    def test_list_untracked_resyncs_after_mutation(self, pair, write_file):
        write_file("a.txt")
        write_file("b.txt")
        pair.add_to_store(StoreKind.GLOBAL, ["a.txt"])
        assert list(pair.list_untracked(StoreKind.LOCAL)) == ["b.txt"]
        assert list(pair.list_untracked(StoreKind.GLOBAL)) == ["b.txt"]

    def test_state_dir_never_listed(self, pair, write_file):
        write_file("a.txt")
        assert list(pair.list_untracked(StoreKind.GLOBAL)) == ["a.txt"]


class TestPathState:
    def test_states(self, pair, write_file):
        for name in ("g", "l", "u", "b"):
            write_file(name)
        pair.add_to_store(StoreKind.GLOBAL, ["g", "b"])
        pair.add_to_store(StoreKind.LOCAL, ["l"])
        pair.add_to_store(StoreKind.LOCAL, ["b"], force=True)

        assert pair.state_of("g") is PathState.GLOBAL
        assert pair.state_of("l") is PathState.LOCAL
        assert pair.state_of("u") is PathState.UNTRACKED
        assert pair.state_of("b") is PathState.BOTH
        assert pair.double_tracked() == ["b"]

    def test_global_wins(self, pair, write_file):
        write_file("b")
        pair.add_to_store(StoreKind.GLOBAL, ["b"])
        pair.add_to_store(StoreKind.LOCAL, ["b"], force=True)

        assert pair.resolve_double_tracked() == ["b"]
        assert pair.state_of("b") is PathState.GLOBAL
        assert pair.resolve_double_tracked() == []


# ---------------------------------------------------------------------------
# ignore files
# ---------------------------------------------------------------------------

class TestIgnorePatterns:
    def test_append_and_dedup(self, pair):
        assert pair.add_ignore_patterns(StoreKind.GLOBAL, ["*.log", "*.log", "tmp/"]) == ["*.log", "tmp/"]
        assert pair.add_ignore_patterns(StoreKind.GLOBAL, ["*.log"]) == []
        assert pair.read_ignore(StoreKind.GLOBAL) == ["*.log", "tmp/"]

    def test_missing_trailing_newline(self, pair):
        path = pair.workspace.ignore_file(StoreKind.LOCAL)
        path.write_text("*.o")
        pair.add_ignore_patterns(StoreKind.LOCAL, ["*.a"])
        assert pair.read_ignore(StoreKind.LOCAL) == ["*.o", "*.a"]

    def test_marks_both_stale(self, pair):
        pair.mark_synchronized()
        pair.add_ignore_patterns(StoreKind.GLOBAL, ["*.log"])
        assert pair.is_stale(StoreKind.GLOBAL)
        assert pair.is_stale(StoreKind.LOCAL)

    def test_ignored_files_not_listed(self, pair, write_file):
        write_file("debug.log")
        write_file("keep.txt")
        pair.add_ignore_patterns(StoreKind.LOCAL, ["*.log"])
        assert list(pair.list_untracked(StoreKind.GLOBAL)) == ["keep.txt"]
