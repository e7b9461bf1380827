"""Tests for the dcs CLI."""

import pytest

from dcs.cli import main
from dcs.exclusions import read_exclusions
from dcs.repo import RepositoryPair
from dcs.workspace import StoreKind, Workspace


@pytest.fixture
def initialized(invoke, workdir):
    r = invoke("init")
    assert r.exit_code == 0, r.output
    return workdir


def _pair(workdir):
    return RepositoryPair.open(Workspace.at(workdir, host="testhost"))


# ---------------------------------------------------------------------------
# TestInit
# ---------------------------------------------------------------------------

class TestInit:
    def test_init(self, invoke, workdir):
        r = invoke("init")
        assert r.exit_code == 0, r.output
        assert (workdir / ".dcs.d" / "global.git" / "objects").is_dir()
        assert (workdir / ".dcs.d" / "local.git" / "objects").is_dir()
        assert (workdir / ".dcs.d" / "global.ignore").is_file()

    def test_init_twice(self, invoke, initialized):
        r = invoke("init")
        assert r.exit_code == 0, r.output

    def test_verbose(self, invoke):
        r = invoke("-v", "init")
        assert r.exit_code == 0, r.output
        assert "Initialized" in r.output

    def test_missing_store(self, invoke):
        r = invoke("status")
        assert r.exit_code == 1
        assert "Not a dcs working directory" in r.output

    def test_unknown_command(self, invoke, initialized):
        r = invoke("frobnicate")
        assert r.exit_code == 2

    def test_help(self, runner):
        r = runner.invoke(main, ["--help"])
        assert r.exit_code == 0
        for verb in ("init", "ignore", "status", "size", "stage", "unstage",
                     "global", "local", "globalize", "localize", "pull", "push", "remote"):
            assert verb in r.output


# ---------------------------------------------------------------------------
# Membership commands
# ---------------------------------------------------------------------------

class TestMembership:
    def test_global_and_local(self, invoke, initialized, write_file):
        write_file("a.txt")
        write_file("secrets.local")

        r = invoke("global", "a.txt")
        assert r.exit_code == 0, r.output
        assert "global  + a.txt" in r.output

        r = invoke("local", "secrets.local")
        assert r.exit_code == 0, r.output
        assert "local   + secrets.local" in r.output

        pair = _pair(initialized)
        assert pair.tracked_paths(StoreKind.GLOBAL) == ["a.txt"]
        assert pair.tracked_paths(StoreKind.LOCAL) == ["secrets.local"]

    def test_global_directory(self, invoke, initialized, write_file):
        write_file("conf/a")
        write_file("conf/b")
        r = invoke("global", "conf")
        assert r.exit_code == 0, r.output
        assert _pair(initialized).tracked_paths(StoreKind.GLOBAL) == ["conf/a", "conf/b"]

    def test_global_nothing(self, invoke, initialized):
        r = invoke("global", "missing.txt")
        assert r.exit_code == 1
        assert "No files to add" in r.output

    def test_local_when_tracked_globally_warns(self, invoke, initialized, write_file):
        write_file("a.txt")
        invoke("global", "a.txt")
        r = invoke("local", "a.txt")
        assert r.exit_code == 0, r.output
        assert "WARNING: a.txt" in r.output
        assert _pair(initialized).tracked_paths(StoreKind.LOCAL) == []

    def test_unstage(self, invoke, initialized, write_file):
        path = write_file("a.txt")
        invoke("global", "a.txt")
        r = invoke("unstage", "a.txt")
        assert r.exit_code == 0, r.output
        assert "global  - a.txt" in r.output
        assert _pair(initialized).tracked_paths(StoreKind.GLOBAL) == []
        assert path.exists()

    def test_unstage_requires_paths(self, invoke, initialized):
        r = invoke("unstage")
        assert r.exit_code == 2

    def test_localize_and_globalize(self, invoke, initialized, write_file):
        write_file("a.txt")
        invoke("global", "a.txt")

        r = invoke("localize", "a.txt")
        assert r.exit_code == 0, r.output
        assert "global  - a.txt" in r.output
        assert "local   + a.txt" in r.output
        pair = _pair(initialized)
        assert pair.tracked_paths(StoreKind.GLOBAL) == []
        assert pair.tracked_paths(StoreKind.LOCAL) == ["a.txt"]

        r = invoke("globalize", "a.txt")
        assert r.exit_code == 0, r.output
        pair = _pair(initialized)
        assert pair.tracked_paths(StoreKind.GLOBAL) == ["a.txt"]
        assert pair.tracked_paths(StoreKind.LOCAL) == []

    def test_localize_nothing_fails(self, invoke, initialized, write_file):
        write_file("a.txt")
        invoke("local", "a.txt")
        r = invoke("localize", "a.txt")
        assert r.exit_code == 1
        assert "No files tracked by the global store" in r.output
        assert _pair(initialized).tracked_paths(StoreKind.LOCAL) == ["a.txt"]

    def test_path_outside_root(self, invoke, initialized, tmp_path):
        r = invoke("global", str(tmp_path))
        assert r.exit_code == 1
        assert "outside the working directory" in r.output

    def test_double_tracked_resolved(self, invoke, initialized, write_file):
        write_file("a.txt")
        pair = _pair(initialized)
        pair.add_to_store(StoreKind.GLOBAL, ["a.txt"])
        pair.add_to_store(StoreKind.LOCAL, ["a.txt"], force=True)

        r = invoke("status")
        assert "WARNING: a.txt: tracked by both stores" in r.output

        r = invoke("commit")
        assert r.exit_code == 0, r.output
        assert "kept in global only" in r.output
        assert _pair(initialized).tracked_paths(StoreKind.LOCAL) == []


# ---------------------------------------------------------------------------
# Interactive stage
# ---------------------------------------------------------------------------

class TestStage:
    def test_classify(self, invoke, initialized, write_file):
        write_file("a.txt")
        write_file("secrets.local")
        r = invoke("stage", input="g\nl\n")
        assert r.exit_code == 0, r.output
        pair = _pair(initialized)
        assert pair.tracked_paths(StoreKind.GLOBAL) == ["a.txt"]
        assert pair.tracked_paths(StoreKind.LOCAL) == ["secrets.local"]

    def test_invalid_answer_reasks(self, invoke, initialized, write_file):
        write_file("a.txt")
        r = invoke("stage", input="x\ng\n")
        assert r.exit_code == 0, r.output
        assert "Invalid choice" in r.output
        assert _pair(initialized).tracked_paths(StoreKind.GLOBAL) == ["a.txt"]

    def test_descend_and_skip(self, invoke, initialized, write_file):
        write_file("sub/x")
        write_file("sub/y")
        r = invoke("stage", input="d\nl\ns\n")
        assert r.exit_code == 0, r.output
        assert _pair(initialized).tracked_paths(StoreKind.LOCAL) == ["sub/x"]

    def test_ignore(self, invoke, initialized, write_file):
        write_file("junk/a")
        r = invoke("stage", input="i\n")
        assert r.exit_code == 0, r.output
        assert "ignore  /junk/" in r.output
        assert _pair(initialized).read_ignore(StoreKind.GLOBAL) == ["/junk/"]

    def test_quit(self, invoke, initialized, write_file):
        write_file("a.txt")
        write_file("b.txt")
        r = invoke("stage", input="g\nq\n")
        assert r.exit_code == 0, r.output
        assert _pair(initialized).tracked_paths(StoreKind.GLOBAL) == ["a.txt"]


# ---------------------------------------------------------------------------
# ignore / status / size / commit
# ---------------------------------------------------------------------------

class TestIgnore:
    def test_pattern(self, invoke, initialized, write_file):
        write_file("debug.log")
        write_file("keep.txt")
        r = invoke("ignore", "-p", "*.log")
        assert r.exit_code == 0, r.output
        assert "global  *.log" in r.output

        r = invoke("ignore")
        assert r.exit_code == 0, r.output
        assert "global  *.log" in r.output

        r = invoke("status", "-a")
        assert "?  keep.txt" in r.output
        assert "debug.log" not in r.output

    def test_local_file(self, invoke, initialized, write_file):
        write_file("cache/x")
        r = invoke("ignore", "-l", "cache")
        assert r.exit_code == 0, r.output
        assert "local   /cache/" in r.output
        assert _pair(initialized).read_ignore(StoreKind.LOCAL) == ["/cache/"]

    def test_tracked_file_warns(self, invoke, initialized, write_file):
        write_file("a.txt")
        invoke("global", "a.txt")
        r = invoke("ignore", "a.txt")
        assert r.exit_code == 0, r.output
        assert "still tracked by the global store" in r.output


class TestStatus:
    def test_clean(self, invoke, initialized):
        r = invoke("status")
        assert r.exit_code == 0, r.output
        assert "global (global/master)" in r.output
        assert "local (local/testhost)" in r.output
        assert "clean" in r.output

    def test_changes(self, invoke, initialized, write_file):
        write_file("a.txt")
        write_file("other.txt")
        invoke("global", "a.txt")
        r = invoke("status", "-a")
        assert r.exit_code == 0, r.output
        assert "  A  a.txt" in r.output
        assert "  ?  other.txt" in r.output

    def test_modified_after_commit(self, invoke, initialized, write_file):
        write_file("a.txt", "one\n")
        invoke("global", "a.txt")
        invoke("commit")
        write_file("a.txt", "two\n")
        r = invoke("status")
        assert "  M  a.txt" in r.output


class TestSize:
    def test_counts(self, invoke, initialized, write_file):
        write_file("a.txt", "hello\n")
        invoke("global", "a.txt")
        r = invoke("size")
        assert r.exit_code == 0, r.output
        lines = r.output.splitlines()
        assert lines[0].startswith("global  1 files  6  (store ")
        assert lines[1].startswith("local   0 files  0  (store ")

    def test_human(self, invoke, initialized, write_file):
        write_file("a.txt", "hello\n")
        invoke("global", "a.txt")
        r = invoke("size", "-h")
        assert r.exit_code == 0, r.output
        assert r.output.splitlines()[0].startswith("global  1 files  6B")


class TestCommit:
    def test_commit(self, invoke, initialized, write_file):
        write_file("a.txt")
        invoke("global", "a.txt")
        r = invoke("commit", "-m", "first")
        assert r.exit_code == 0, r.output
        assert r.output.startswith("global  ")
        head = _pair(initialized).store(StoreKind.GLOBAL).head()
        assert head[:7] in r.output

        r = invoke("commit")
        assert r.exit_code == 0, r.output
        assert r.output == ""


# ---------------------------------------------------------------------------
# remote / push / pull
# ---------------------------------------------------------------------------

class TestRemote:
    def test_show_unset(self, invoke, initialized):
        r = invoke("remote")
        assert r.exit_code == 0, r.output
        assert "global  (none)" in r.output
        assert "local   (none)" in r.output

    def test_set_both(self, invoke, initialized, tmp_path):
        url = str(tmp_path / "remote.git")
        r = invoke("remote", url)
        assert r.exit_code == 0, r.output
        r = invoke("remote")
        assert f"global  {url}" in r.output
        assert f"local   {url}" in r.output

    def test_set_global_only(self, invoke, initialized, tmp_path):
        url = str(tmp_path / "remote.git")
        invoke("remote", "-g", url)
        r = invoke("remote")
        assert f"global  {url}" in r.output
        assert "local   (none)" in r.output


class TestPushPull:
    def test_push_without_remote_warns(self, invoke, initialized, write_file):
        write_file("a.txt")
        invoke("global", "a.txt")
        r = invoke("push")
        assert r.exit_code == 0, r.output
        assert "no remote configured" in r.output

    def test_roundtrip(self, invoke, initialized, write_file, tmp_path):
        url = str(tmp_path / "remote.git")
        write_file("a.txt", "shared\n")
        invoke("global", "a.txt")
        invoke("remote", url)
        r = invoke("push")
        assert r.exit_code == 0, r.output
        assert "refs" not in r.output
        assert "global/master" in r.output

        other = tmp_path / "other"
        other.mkdir()
        r = invoke("init", root=other, host="otherhost")
        assert r.exit_code == 0, r.output
        invoke("remote", url, root=other, host="otherhost")
        r = invoke("pull", root=other, host="otherhost")
        assert r.exit_code == 0, r.output
        assert "fast-forward" in r.output
        assert (other / "a.txt").read_text() == "shared\n"

        r = invoke("pull", root=other, host="otherhost")
        assert "up to date" in r.output

    def test_pull_bad_remote(self, invoke, initialized, tmp_path):
        invoke("remote", str(tmp_path / "nowhere.git"))
        r = invoke("pull")
        assert r.exit_code == 1
        assert "Error:" in r.output

    def test_pull_resolves_double_tracking_and_resyncs(self, invoke, initialized, write_file, tmp_path):
        url = str(tmp_path / "remote.git")
        write_file("a.txt", "shared\n")
        invoke("global", "a.txt")
        invoke("remote", url)
        invoke("push")

        other = tmp_path / "other"
        other.mkdir()
        invoke("init", root=other, host="otherhost")
        invoke("remote", url, root=other, host="otherhost")
        write_file("a.txt", "shared\n", root=other)
        invoke("local", "a.txt", root=other, host="otherhost")

        r = invoke("pull", root=other, host="otherhost")
        assert r.exit_code == 0, r.output
        assert "WARNING: a.txt: was tracked by both stores" in r.output

        ws = Workspace.at(other, host="otherhost")
        pair = RepositoryPair.open(ws)
        assert pair.tracked_paths(StoreKind.LOCAL) == []
        assert "/a.txt" not in read_exclusions(ws.exclude_file(StoreKind.GLOBAL))
        assert "/a.txt" in read_exclusions(ws.exclude_file(StoreKind.LOCAL))
