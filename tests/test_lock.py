"""Tests for the advisory workspace lock."""

import os

import pytest

from dcs._lock import workspace_lock
from dcs.membership import MembershipMover

fcntl = pytest.importorskip("fcntl")


def _try_lock(path):
    """Attempt a non-blocking exclusive lock through a separate descriptor."""
    fd = os.open(path, os.O_RDWR)
    try:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        return False
    else:
        fcntl.flock(fd, fcntl.LOCK_UN)
        return True
    finally:
        os.close(fd)


class TestWorkspaceLock:
    def test_second_holder_blocked(self, tmp_path):
        path = tmp_path / "dcs.lock"
        with workspace_lock(path):
            assert path.exists()
            assert _try_lock(path) is False
        assert _try_lock(path) is True

    def test_released_on_interrupt(self, tmp_path):
        path = tmp_path / "dcs.lock"
        with pytest.raises(KeyboardInterrupt):
            with workspace_lock(path):
                raise KeyboardInterrupt
        assert _try_lock(path) is True

    def test_command_holds_lock(self, pair, invoke, write_file, monkeypatch):
        seen = []
        real_stage_to = MembershipMover.stage_to

        def stage_to(self, kind, paths):
            seen.append(_try_lock(pair.workspace.lock_file))
            return real_stage_to(self, kind, paths)

        monkeypatch.setattr(MembershipMover, "stage_to", stage_to)
        write_file("a.txt")

        r = invoke("global", "a.txt")
        assert r.exit_code == 0, r.output
        assert seen == [False]
        assert _try_lock(pair.workspace.lock_file) is True
