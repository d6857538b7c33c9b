"""Maildir storage for synchronized messages.

Each remote mailbox maps to one Maildir folder under the account's base
directory. Hierarchical IMAP names ("Archive/2024") become nested
directories. Levels are escaped reversibly, so two different mailboxes
never share a folder, and the folders stay readable by notmuch, mutt and
other Maildir tools.

Maildir format uses three subdirectories:
- tmp/: Messages being delivered (atomic write in progress)
- new/: Newly delivered, unread messages
- cur/: Messages that have been seen

Message filenames follow the format:
<timestamp>.<unique-id>.<hostname>:2,<flags>

Flags are not synchronized, so the flag section is always empty.
"""

import os
import socket
import time
import uuid
from pathlib import Path

from releveur.errors import StorageError


# Maildir subdirectories; a mailbox level with one of these names
# would collide with the folder structure itself.
MAILDIR_SUBDIRS = ("cur", "new", "tmp")

# Name of the cursor marker kept at the root of every folder. Its
# temporary (".last_uid.tmp") and archived ("last_uid.<n>") forms live
# there too, so mailbox levels must not take any of these names.
MARKER_NAME = "last_uid"

# Characters escaped inside a mailbox level, "%" first
_ESCAPES = (("%", "%25"), ("/", "%2F"), ("\\", "%5C"))

# Prefix marking a reserved level; a literal leading "_" is escaped
_RESERVED_PREFIX = "_"


def _is_reserved(part: str) -> bool:
    return (
        part == ""
        or part.startswith(".")
        or part in MAILDIR_SUBDIRS
        or part == MARKER_NAME
        or part.startswith(f"{MARKER_NAME}.")
    )


def _escape_part(part: str) -> str:
    """Escape one mailbox level into a directory name.

    "%", "/" and "\\" are percent-encoded, as is a leading "_". Reserved
    names then get a "_" prefix, which no escaped level can start with.
    """
    for char, escaped in _ESCAPES:
        part = part.replace(char, escaped)
    if part.startswith(_RESERVED_PREFIX):
        part = "%5F" + part[1:]
    if _is_reserved(part):
        part = _RESERVED_PREFIX + part
    return part


def fsync_directory(path: Path) -> None:
    """Flush a directory entry so a rename inside it survives a crash."""
    if os.name == "nt":
        # Windows cannot open directories for fsync; NTFS journals renames.
        return
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


class MaildirStorage:
    """Storage backend for Maildir format.

    Messages are written to tmp/, flushed to disk, then renamed into cur/
    so a reader never sees a partial file and a message is durable once
    store() returns.

    Example:
        storage = MaildirStorage(Path("~/Mail/Home"))
        folder = storage.folder_name("Archive/2024", "/")
        path = storage.store(folder, message_bytes)
    """

    def __init__(self, base_path: Path):
        """Initialize Maildir storage.

        Args:
            base_path: Base directory for Maildir storage (e.g., ~/Mail/Home).
                       Will be created if it doesn't exist.
        """
        self._base_path = base_path.expanduser().resolve()
        self._hostname = socket.gethostname().replace("/", "_").replace(":", "_")

    @property
    def base_path(self) -> Path:
        """Get the base path for this Maildir storage."""
        return self._base_path

    def folder_name(self, mailbox: str, delimiter: str | None = "/") -> str:
        """Convert an IMAP mailbox name to a relative Maildir folder name.

        The server's hierarchy delimiter is turned into nested directories.
        Each level is escaped so the folder stays inside the base directory
        and clear of the Maildir subdirectories and cursor marker. Escaping
        is reversible, so no two mailboxes share a folder.

        Args:
            mailbox: Mailbox name as returned by the server.
            delimiter: Hierarchy delimiter reported by the server, or None
                       for a flat namespace.

        Returns:
            Folder name relative to the base path, using "/" separators.
        """
        parts = mailbox.split(delimiter) if delimiter else [mailbox]
        return "/".join(_escape_part(part) for part in parts)

    def folder_path(self, folder: str) -> Path:
        """Get the absolute path of a Maildir folder."""
        return self._base_path / folder

    def ensure_folder(self, folder: str) -> Path:
        """Create a Maildir folder structure.

        Creates the folder with cur/, new/, tmp/ subdirectories as required
        by the Maildir specification. Safe to call multiple times.

        Args:
            folder: Folder name (e.g., "INBOX", "Archive/2024").

        Returns:
            Path to the folder directory.

        Raises:
            StorageError: If the directories cannot be created.
        """
        folder_path = self.folder_path(folder)

        try:
            for subdir in MAILDIR_SUBDIRS:
                (folder_path / subdir).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"cannot create Maildir folder {folder_path}: {e}") from e

        return folder_path

    def generate_filename(self) -> str:
        """Generate a unique Maildir-compliant filename.

        Format: <timestamp>.<unique-id>.<hostname>:2,

        The "2," suffix marks Maildir info2 format with no flags set.
        """
        timestamp = int(time.time())
        return f"{timestamp}.{uuid.uuid4().hex}.{self._hostname}:2,"

    def store(self, folder: str, payload: bytes) -> Path:
        """Deliver a raw message into a folder's cur/ directory.

        Args:
            folder: Target folder name (from folder_name()).
            payload: Raw RFC 5322 message content.

        Returns:
            Path to the delivered message file.

        Raises:
            StorageError: If the message cannot be written durably.
        """
        folder_path = self.ensure_folder(folder)

        filename = self.generate_filename()
        tmp_path = folder_path / "tmp" / filename
        dest_path = folder_path / "cur" / filename

        try:
            with open(tmp_path, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())

            # Atomic on POSIX when tmp/ and cur/ share a filesystem
            os.rename(tmp_path, dest_path)
            fsync_directory(dest_path.parent)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StorageError(f"cannot store message in {folder_path}: {e}") from e

        return dest_path
