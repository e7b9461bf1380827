"""Advisory workspace lock: serializes mutating dcs commands across processes.

Held for the whole of a membership-mutating command and released on every
exit path, including KeyboardInterrupt.
"""

from __future__ import annotations

import os
from contextlib import contextmanager

try:
    import fcntl

    @contextmanager
    def workspace_lock(lock_path: str | os.PathLike[str]):
        fd = os.open(lock_path, os.O_CREAT | os.O_RDWR | getattr(os, "O_CLOEXEC", 0))
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)

except ImportError:
    import msvcrt

    @contextmanager
    def workspace_lock(lock_path: str | os.PathLike[str]):
        fd = os.open(lock_path, os.O_CREAT | os.O_RDWR)
        os.set_inheritable(fd, False)
        try:
            msvcrt.locking(fd, msvcrt.LK_LOCK, 1)
            yield
        finally:
            msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
            os.close(fd)
