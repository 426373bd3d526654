"""Error types raised by pkmrag."""


class PkmRagError(Exception):
    """Base class for all pkmrag errors."""


class BackendError(PkmRagError):
    """The embedding/chat backend could not serve a request."""


class BackendUnavailable(BackendError):
    """Network or transport failure reaching the backend."""


class BackendBadResponse(BackendError):
    """The backend answered with a non-2xx status or a malformed payload."""


class SnapshotVersionMismatch(PkmRagError):
    """The persisted index snapshot was written by an incompatible schema version."""

    def __init__(self, found: object, expected: int) -> None:
        super().__init__(f"Snapshot version {found!r} does not match expected {expected}")
        self.found = found
        self.expected = expected
