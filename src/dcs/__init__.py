"""dcs: overlay a shared (global) and a per-host (local) git store on one directory."""

from .workspace import Workspace, StoreKind, find_root
from .repo import RepositoryPair, PathState
from .exclusions import derive_exclusions, synchronize
from .membership import MembershipMover, MembershipReport, Decision, Candidate, parse_decision
from .metadata import FileMetadataRecord, ApplyReport
from .mirror import StoreSync
from .exceptions import (
    DcsError,
    MissingStoreError,
    WorkspaceNotFoundError,
    NoEligibleFilesError,
    DoubleTrackError,
    MetadataApplyError,
    BackendTransportError,
    MergeConflictError,
)

__version__ = "0.1.0"

__all__ = [
    "Workspace", "StoreKind", "find_root",
    "RepositoryPair", "PathState",
    "derive_exclusions", "synchronize",
    "MembershipMover", "MembershipReport", "Decision", "Candidate", "parse_decision",
    "FileMetadataRecord", "ApplyReport", "StoreSync",
    "DcsError", "MissingStoreError", "WorkspaceNotFoundError", "NoEligibleFilesError",
    "DoubleTrackError", "MetadataApplyError", "BackendTransportError", "MergeConflictError",
]
