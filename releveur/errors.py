"""Error types raised during synchronization.

Every error carries the mailbox it concerns (when known) in its
``mailbox`` attribute so callers can report it and decide whether to
retry the run. Only RemoteConnectionError is fatal for a whole run; the
others end the pass of a single mailbox.
"""


class SyncError(Exception):
    """Base for all releveur errors."""

    def __init__(self, message: str, mailbox: str | None = None):
        super().__init__(message)
        self.mailbox = mailbox


class RemoteConnectionError(SyncError):
    """Server unreachable or login refused."""


class ProtocolError(SyncError):
    """Server rejected a command or lacks a required capability."""


class ValidityMismatchError(SyncError):
    """Stored UIDVALIDITY differs from the one reported by the server."""

    def __init__(self, mailbox: str, stored: int, observed: int):
        super().__init__(
            f"UIDVALIDITY changed from {stored} to {observed}; "
            "local message ids are stale",
            mailbox,
        )
        self.stored = stored
        self.observed = observed


class CursorFormatError(SyncError):
    """Cursor marker does not have the expected layout."""

    def __init__(self, length: int, expected: int, mailbox: str | None = None):
        super().__init__(
            f"cursor marker must be exactly {expected} bytes, got {length}",
            mailbox,
        )
        self.length = length
        self.expected = expected


class StorageError(SyncError):
    """Writing a message or the cursor marker to disk failed."""


__all__ = [
    "SyncError",
    "RemoteConnectionError",
    "ProtocolError",
    "ValidityMismatchError",
    "CursorFormatError",
    "StorageError",
]
