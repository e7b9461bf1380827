"""Exceptions for dcs."""


class DcsError(Exception):
    """Base class for every error raised by dcs."""


class MissingStoreError(DcsError):
    """Raised when a tracking store's backing repository is absent.

    Run ``dcs init`` in the working directory to create both stores.
    """


class WorkspaceNotFoundError(MissingStoreError):
    """Raised when no ``.dcs.d`` directory exists at or above the start path."""


class NoEligibleFilesError(DcsError):
    """Raised when a stage or move pathspec matches no candidate files.

    Raised before any store is mutated.
    """


class DoubleTrackError(DcsError):
    """Raised when adding a path to a store while the other store tracks it."""

    def __init__(self, store: str, paths: list[str]):
        self.store = store
        self.paths = paths
        shown = ", ".join(paths[:5]) + (" ..." if len(paths) > 5 else "")
        super().__init__(f"Already tracked by the {store} store: {shown}")


class MetadataApplyError(DcsError):
    """A single path whose mode or ownership could not be restored."""

    def __init__(self, path: str, error: str):
        self.path = path
        self.error = error
        super().__init__(f"{path}: {error}")


class BackendTransportError(DcsError):
    """Raised when talking to a remote fails. The message is the transport's own."""


class MergeConflictError(DcsError):
    """Raised when a pull cannot be merged without losing data."""

    def __init__(self, message: str, paths: list[str]):
        self.paths = paths
        super().__init__(message + ": " + ", ".join(paths))
