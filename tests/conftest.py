"""Shared fixtures for dcs tests."""

import pytest
from click.testing import CliRunner

from dcs.cli import main
from dcs.repo import RepositoryPair
from dcs.workspace import Workspace


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def workdir(tmp_path):
    """An empty directory to act as the shared work tree."""
    root = tmp_path / "home"
    root.mkdir()
    return root


@pytest.fixture
def workspace(workdir):
    return Workspace.at(workdir, host="testhost")


@pytest.fixture
def pair(workspace):
    """A freshly initialized store pair on *workdir*."""
    return RepositoryPair.init(workspace)


@pytest.fixture
def write_file(workdir):
    """Return a helper that writes ``data`` to a path relative to *workdir*."""
    def _write(rel, data="x\n", root=None):
        path = (root or workdir) / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(data)
        return path
    return _write


@pytest.fixture
def invoke(runner, workdir):
    """Run the CLI rooted at *workdir* as host ``testhost``."""
    def _invoke(*args, input=None, root=None, host="testhost"):
        argv = ["-C", str(root or workdir), "--host", host, *args]
        return runner.invoke(main, argv, input=input)
    return _invoke
