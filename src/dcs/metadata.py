"""File metadata records: permission bits and ownership of tracked paths.

git only records the executable bit, so on push each store writes
``.dcs.d/<store>.stat`` with one line per tracked path::

    <mode> <uid> <user> <gid> <group> <path>

``mode`` is four octal digits; the path is the rest of the line, so it
may contain spaces. On pull the records are applied back to the work tree.
"""

from __future__ import annotations

import grp
import os
import pwd
import stat
from dataclasses import dataclass, field
from typing import Iterable

from .exceptions import MetadataApplyError


@dataclass(frozen=True)
class FileMetadataRecord:
    path: str
    mode: int
    uid: int
    user: str
    gid: int
    group: str

    def to_line(self) -> str:
        return f"{self.mode:04o} {self.uid} {self.user} {self.gid} {self.group} {self.path}"

    @classmethod
    def from_line(cls, line: str) -> FileMetadataRecord:
        parts = line.split(" ", 5)
        if len(parts) != 6 or not parts[5]:
            raise ValueError(f"Malformed metadata record: {line!r}")
        mode, uid, user, gid, group, path = parts
        return cls(
            path=path,
            mode=int(mode, 8),
            uid=int(uid),
            user=user,
            gid=int(gid),
            group=group,
        )


@dataclass
class ApplyReport:
    """Result of applying records: paths restored and per-path failures."""
    applied: list[str] = field(default_factory=list)
    errors: list[MetadataApplyError] = field(default_factory=list)


def _user_name(uid: int) -> str:
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return str(uid)


def _group_name(gid: int) -> str:
    try:
        return grp.getgrgid(gid).gr_name
    except KeyError:
        return str(gid)


def capture(root: str | os.PathLike[str], paths: Iterable[str]) -> list[FileMetadataRecord]:
    """Read mode and ownership of *paths* (relative to *root*) from disk.

    Paths that no longer exist are left out.
    """
    records = []
    for path in sorted(paths):
        try:
            st = os.lstat(os.path.join(root, *path.split("/")))
        except FileNotFoundError:
            continue
        records.append(FileMetadataRecord(
            path=path,
            mode=stat.S_IMODE(st.st_mode),
            uid=st.st_uid,
            user=_user_name(st.st_uid),
            gid=st.st_gid,
            group=_group_name(st.st_gid),
        ))
    return records


def dump(records: Iterable[FileMetadataRecord]) -> bytes:
    """Serialize *records*, one per line."""
    return "".join(r.to_line() + "\n" for r in records).encode("utf-8", "surrogateescape")


def parse(data: bytes) -> list[FileMetadataRecord]:
    """Parse serialized records; blank lines are skipped."""
    text = data.decode("utf-8", "surrogateescape")
    return [FileMetadataRecord.from_line(line) for line in text.splitlines() if line.strip()]


def _resolve_uid(record: FileMetadataRecord) -> int:
    try:
        return pwd.getpwnam(record.user).pw_uid
    except KeyError:
        return record.uid


def _resolve_gid(record: FileMetadataRecord) -> int:
    try:
        return grp.getgrnam(record.group).gr_gid
    except KeyError:
        return record.gid


def _chown(path: str, record: FileMetadataRecord) -> None:
    """Try symbolic owner/group, then numeric ids, then group only."""
    uid, gid = _resolve_uid(record), _resolve_gid(record)
    attempts = [(uid, gid)]
    if (record.uid, record.gid) != (uid, gid):
        attempts.append((record.uid, record.gid))
    for owner, group in attempts:
        try:
            os.chown(path, owner, group, follow_symlinks=False)
            return
        except OSError:
            continue
    os.chown(path, -1, gid, follow_symlinks=False)


def apply(root: str | os.PathLike[str], records: Iterable[FileMetadataRecord]) -> ApplyReport:
    """Restore mode and ownership for each record.

    Failures are collected per path; the remaining records are still
    applied. Ownership is left alone when it already matches.
    """
    report = ApplyReport()
    for record in records:
        abs_path = os.path.join(root, *record.path.split("/"))
        try:
            st = os.lstat(abs_path)
        except OSError as exc:
            report.errors.append(MetadataApplyError(record.path, exc.strerror or str(exc)))
            continue
        try:
            if not stat.S_ISLNK(st.st_mode) and stat.S_IMODE(st.st_mode) != record.mode:
                os.chmod(abs_path, record.mode)
            if (st.st_uid, st.st_gid) != (_resolve_uid(record), _resolve_gid(record)):
                _chown(abs_path, record)
        except OSError as exc:
            report.errors.append(MetadataApplyError(record.path, exc.strerror or str(exc)))
            continue
        report.applied.append(record.path)
    return report
