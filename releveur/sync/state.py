"""Cursor persistence for incremental synchronization.

Each Maildir folder carries a small binary marker file, ``last_uid``, at
its root. The marker records the UIDVALIDITY of the remote mailbox and the
highest UID already stored locally (see releveur.sync.codec for the
layout). The marker is the only sync state; deleting it makes the next
run fetch the whole mailbox again.
"""

import logging
import os
from pathlib import Path

from releveur.errors import CursorFormatError, StorageError
from releveur.storage.maildir import MARKER_NAME, MaildirStorage, fsync_directory
from releveur.sync import codec
from releveur.sync.codec import Cursor

logger = logging.getLogger(__name__)


class CursorStore:
    """Reads and writes cursor markers for the folders of a Maildir.

    A missing marker and an empty marker both mean "never synchronized"
    and load as None. The empty case covers a marker that was created but
    never written. Any other size is a format error.

    Example:
        cursors = CursorStore(MaildirStorage(Path("~/Mail/Home")))
        cursor = cursors.load("INBOX")  # None on first run
        # ... store message 42 ...
        cursors.save("INBOX", uid_validity=7, last_uid=42)
    """

    def __init__(self, maildir: MaildirStorage):
        self._maildir = maildir

    def marker_path(self, folder: str) -> Path:
        """Get the path to a folder's cursor marker."""
        return self._maildir.folder_path(folder) / MARKER_NAME

    def load(self, folder: str) -> Cursor | None:
        """Load the cursor of a folder.

        Returns:
            The stored cursor, or None if the folder was never synchronized.

        Raises:
            CursorFormatError: If the marker exists but is malformed.
            StorageError: If the marker exists but cannot be read.
        """
        path = self.marker_path(folder)

        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"cannot read cursor marker {path}: {e}", folder) from e

        if not data:
            logger.debug("Empty cursor marker at %s, treating as absent", path)
            return None

        try:
            return codec.decode(data)
        except CursorFormatError as e:
            e.mailbox = folder
            raise

    def save(self, folder: str, uid_validity: int, last_uid: int) -> None:
        """Atomically replace the cursor marker of a folder.

        The new marker is written to a temporary file next to the old one,
        flushed, and renamed over it, so a concurrent or later load sees
        either the previous cursor or the new one.

        Raises:
            StorageError: If the marker cannot be written.
        """
        data = codec.encode(Cursor(uid_validity=uid_validity, last_uid=last_uid))

        path = self.marker_path(folder)
        tmp_path = path.with_name(f".{MARKER_NAME}.tmp")

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
            fsync_directory(path.parent)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StorageError(f"cannot write cursor marker {path}: {e}", folder) from e

    def archive(self, folder: str, uid_validity: int) -> Path | None:
        """Move a stale marker aside, keeping it for inspection.

        Used when the server issued a new UIDVALIDITY: the old marker is
        renamed to ``last_uid.<old uidvalidity>`` and the folder then loads
        as never synchronized.

        Returns:
            Path of the archived marker, or None if there was no marker.

        Raises:
            StorageError: If the marker cannot be renamed.
        """
        path = self.marker_path(folder)
        archived = path.with_name(f"{MARKER_NAME}.{uid_validity}")

        try:
            os.replace(path, archived)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"cannot archive cursor marker {path}: {e}", folder) from e

        logger.info("Archived stale cursor marker %s to %s", path, archived)
        return archived
