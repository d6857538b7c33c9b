"""Sync engine for mailbox synchronization.

Coordinates fetching messages from an IMAP server and storing them in
Maildir. Every mailbox keeps its own cursor (UIDVALIDITY plus the last
stored UID), so each run only downloads messages newer than the cursor.

A mailbox pass runs through fixed steps:

1. open: select the mailbox and read its UIDVALIDITY
2. validate: compare it with the stored cursor
3. resolve: build the delta query from the cursor
4. fetch: search and download the matching messages
5. persist: store each message, then advance the cursor to its UID

The cursor is advanced after every single message, so an interrupted run
re-downloads at most the message that was being stored when it stopped.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from releveur.errors import RemoteConnectionError, SyncError, ValidityMismatchError
from releveur.storage.maildir import MaildirStorage
from releveur.sync.codec import Cursor
from releveur.sync.delta import Query, UidRange, resolve
from releveur.sync.imap import ImapClient, RemoteMessage
from releveur.sync.state import CursorStore

logger = logging.getLogger(__name__)


class ValidityPolicy(str, Enum):
    """What to do when a mailbox's UIDVALIDITY changed since the last run."""

    fail = "fail"
    resync = "resync"


@dataclass
class SyncResult:
    """Result of a sync operation.

    Tracks counts of messages processed and any mailbox that failed.
    """

    downloaded: int = 0
    skipped: int = 0
    mailboxes: int = 0
    errors: int = 0
    error_details: list[str] = field(default_factory=list)

    def add_error(self, mailbox: str, error: str) -> None:
        """Record a failed mailbox.

        Args:
            mailbox: Name of the mailbox that failed.
            error: Error description.
        """
        self.errors += 1
        self.error_details.append(f"{mailbox}: {error}")


# Type for progress callback: (mailbox, current, total) -> None
ProgressCallback = Callable[[str, int, int], None]


class MailboxSync:
    """One synchronization pass over a single mailbox.

    Use open() to create an instance: it selects the mailbox and checks
    the stored cursor against the server before anything is fetched.
    Instances are single-use and not reentrant.
    """

    def __init__(
        self,
        client: ImapClient,
        maildir: MaildirStorage,
        cursors: CursorStore,
        mailbox: str,
        folder: str,
        uid_validity: int,
        cursor: Cursor | None,
    ):
        self._client = client
        self._maildir = maildir
        self._cursors = cursors
        self._mailbox = mailbox
        self._folder = folder
        self._uid_validity = uid_validity
        self._last_uid = cursor.last_uid if cursor is not None else None
        self.stored = 0
        self.skipped = 0

    @classmethod
    def open(
        cls,
        client: ImapClient,
        maildir: MaildirStorage,
        cursors: CursorStore,
        mailbox: str,
        policy: ValidityPolicy = ValidityPolicy.fail,
    ) -> "MailboxSync":
        """Select a mailbox and validate its stored cursor.

        Args:
            client: Logged-in IMAP session, shared across mailboxes.
            maildir: Local Maildir the mailbox is stored in.
            cursors: Cursor store of that Maildir.
            mailbox: Remote mailbox name.
            policy: Handling of a changed UIDVALIDITY. With ``fail`` the
                mailbox is not synchronized; with ``resync`` the stale
                cursor is archived and the whole mailbox is fetched again.

        Raises:
            ProtocolError: If the mailbox cannot be selected or has no
                UIDVALIDITY.
            ValidityMismatchError: If UIDVALIDITY changed and the policy
                is ``fail``.
            CursorFormatError: If the stored cursor is malformed.
            StorageError: If the local folder cannot be prepared.
        """
        folder = maildir.folder_name(mailbox, client.delimiter)

        cursor = cursors.load(folder)
        uid_validity = client.select(mailbox)
        logger.debug("Selected %s (UIDVALIDITY %d), cursor %s", mailbox, uid_validity, cursor)

        if cursor is not None and cursor.uid_validity != uid_validity:
            if policy is not ValidityPolicy.resync:
                raise ValidityMismatchError(mailbox, cursor.uid_validity, uid_validity)

            logger.warning(
                "UIDVALIDITY of %s changed from %d to %d, fetching it again",
                mailbox,
                cursor.uid_validity,
                uid_validity,
            )
            cursors.archive(folder, cursor.uid_validity)
            cursor = None

        maildir.ensure_folder(folder)

        return cls(client, maildir, cursors, mailbox, folder, uid_validity, cursor)

    @property
    def folder(self) -> str:
        return self._folder

    @property
    def last_uid(self) -> int | None:
        """UID of the last message stored, None if nothing was yet."""
        return self._last_uid

    def query(self) -> Query:
        """Delta query for messages not stored yet."""
        return resolve(Cursor(self._uid_validity, self._last_uid))

    def _is_new(self, uid: int) -> bool:
        return self._last_uid is None or uid > self._last_uid

    def messages(self) -> list[RemoteMessage]:
        """Fetch every message newer than the cursor, sorted by UID.

        The server is asked for the delta range only, but anything it
        still returns at or below the cursor is dropped and counted as
        skipped, so the cursor never moves backwards.
        """
        query = self.query()
        if isinstance(query, UidRange) and query.exhausted:
            logger.warning("%s: UID space exhausted at %d", self._mailbox, self._last_uid)
            return []

        logger.debug("%s: searching %s", self._mailbox, query.criteria())
        uids = self._client.search(query)
        new_uids = [uid for uid in uids if self._is_new(uid)]
        self.skipped += len(uids) - len(new_uids)

        if not new_uids:
            return []

        fetched = self._client.fetch(new_uids)
        messages = [m for m in fetched if self._is_new(m.uid)]
        self.skipped += len(fetched) - len(messages)

        return sorted(messages, key=lambda m: m.uid)

    def save(self, message: RemoteMessage) -> None:
        """Store one message and advance the cursor to its UID.

        Raises:
            StorageError: If the message or the cursor cannot be written;
                the cursor then still points at the previous message.
        """
        if not self._is_new(message.uid):
            raise ValueError(
                f"UID {message.uid} is not past the cursor ({self._last_uid})"
            )

        self._maildir.store(self._folder, message.payload)
        self._cursors.save(self._folder, self._uid_validity, message.uid)
        self._last_uid = message.uid
        self.stored += 1

    def run(self, progress_callback: ProgressCallback | None = None) -> int:
        """Fetch and store every new message.

        Stops at the first message that cannot be stored.

        Returns:
            Number of messages stored.
        """
        messages = self.messages()
        total = len(messages)

        if progress_callback:
            progress_callback(self._mailbox, 0, total)

        if not messages:
            logger.info("%s is up-to-date", self._mailbox)
            return 0

        logger.info("Backing up %d messages of %s", total, self._mailbox)
        for idx, message in enumerate(messages):
            self.save(message)
            if progress_callback:
                progress_callback(self._mailbox, idx + 1, total)

        return self.stored


class SyncEngine:
    """Engine for synchronizing IMAP mailboxes to Maildir.

    Coordinates the IMAP client for fetching and Maildir storage for
    writing. Mailboxes are processed one after the other over the same
    session. A failing mailbox is recorded and the engine moves on to the
    next one; only a lost connection stops the run.

    Example:
        with ImapClient("imap.example.com") as client:
            client.login(username, password)
            engine = SyncEngine(client, MaildirStorage(Path("~/Mail/Home")))
            result = engine.sync()
        print(f"Downloaded {result.downloaded} messages")
    """

    def __init__(
        self,
        client: ImapClient,
        maildir: MaildirStorage,
        cursors: CursorStore | None = None,
        policy: ValidityPolicy = ValidityPolicy.fail,
    ):
        """Initialize sync engine.

        Args:
            client: Logged-in IMAP session.
            maildir: Maildir storage for writing messages.
            cursors: Cursor store, defaults to one inside ``maildir``.
            policy: Handling of a changed UIDVALIDITY.
        """
        self._client = client
        self._maildir = maildir
        self._cursors = cursors if cursors is not None else CursorStore(maildir)
        self._policy = policy

    def select_mailboxes(
        self,
        folders: list[str] | None = None,
        exclude: list[str] | None = None,
    ) -> list[str]:
        """Decide which mailboxes to synchronize.

        The server is always listed, which also tells the client the
        hierarchy delimiter used for local folder names.

        Args:
            folders: Mailboxes to sync, or None for every selectable one.
            exclude: Mailboxes to leave out.

        Returns:
            Mailbox names, in server order when ``folders`` is None.
        """
        available = self._client.list_mailboxes()
        names = list(folders) if folders else available

        excluded = set(exclude or [])
        return [name for name in names if name not in excluded]

    def sync(
        self,
        folders: list[str] | None = None,
        exclude: list[str] | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> SyncResult:
        """Main sync entry point.

        Args:
            folders: Mailboxes to sync, or None for every selectable one.
            exclude: Mailboxes to leave out.
            progress_callback: Optional callback for progress updates.
                               Called with (mailbox, current, total),
                               first with current=0 for every mailbox.

        Returns:
            SyncResult with counts of downloaded and skipped messages and
            the mailboxes that failed.

        Raises:
            RemoteConnectionError: If the session is lost; mailboxes done
                so far keep their progress.
        """
        result = SyncResult()

        for mailbox in self.select_mailboxes(folders, exclude):
            mailbox_sync: MailboxSync | None = None
            try:
                mailbox_sync = MailboxSync.open(
                    self._client, self._maildir, self._cursors, mailbox, self._policy
                )
                mailbox_sync.run(progress_callback)
                result.mailboxes += 1
            except RemoteConnectionError:
                raise
            except SyncError as e:
                logger.error("Failed to sync %s: %s", mailbox, e)
                result.add_error(mailbox, str(e))
            finally:
                if mailbox_sync is not None:
                    result.downloaded += mailbox_sync.stored
                    result.skipped += mailbox_sync.skipped

        return result
