"""IMAP client for mailbox synchronization.

Wraps imapclient.IMAPClient behind the four operations the sync engine
needs: listing mailboxes, selecting one (read-only) to learn its
UIDVALIDITY, searching UIDs, and fetching raw messages. Library and
socket errors are translated into releveur.errors types.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientAbortError, IMAPClientError, LoginError

from releveur.errors import ProtocolError, RemoteConnectionError
from releveur.sync.delta import Query

logger = logging.getLogger(__name__)

# BODY.PEEK[] returns the full message without setting \Seen;
# the server answers with a BODY[] item.
FETCH_ITEM = "BODY.PEEK[]"
FETCH_RESPONSE_KEY = b"BODY[]"

DEFAULT_BATCH_SIZE = 200


@dataclass(frozen=True)
class RemoteMessage:
    """A fetched message: its UID and raw RFC 5322 bytes."""

    uid: int
    payload: bytes


@contextmanager
def _translate_errors(action: str, mailbox: str | None = None) -> Iterator[None]:
    """Map imapclient and socket errors to releveur errors.

    A dropped connection ends the whole run; a rejected command only
    concerns the current mailbox.
    """
    try:
        yield
    except (IMAPClientAbortError, OSError) as e:
        raise RemoteConnectionError(f"connection lost during {action}: {e}", mailbox) from e
    except IMAPClientError as e:
        raise ProtocolError(f"{action} failed: {e}", mailbox) from e


class ImapClient:
    """Client for IMAP sync operations.

    One instance holds one authenticated session. It is shared by every
    mailbox pass of a run and used strictly sequentially.

    Example:
        with ImapClient("imap.example.com") as client:
            client.login("me@example.com", password)
            for name in client.list_mailboxes():
                uid_validity = client.select(name)
                uids = client.search(AllMessages())
                messages = client.fetch(uids)
    """

    def __init__(
        self,
        host: str,
        port: int = 993,
        ssl: bool = True,
        timeout: float | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        """Connect to an IMAP server.

        Args:
            host: Server hostname.
            port: Server port (993 for implicit TLS).
            ssl: Use implicit TLS.
            timeout: Socket timeout in seconds, None for the library default.
            batch_size: Maximum number of UIDs per FETCH command.

        Raises:
            RemoteConnectionError: If the server cannot be reached.
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        self._host = host
        self._batch_size = batch_size
        self._delimiter: str | None = "/"
        self._selected: str | None = None

        try:
            self._client = IMAPClient(host, port=port, ssl=ssl, timeout=timeout)
        except (IMAPClientError, OSError) as e:
            raise RemoteConnectionError(f"cannot connect to {host}:{port}: {e}") from e

        logger.debug("Connected to %s:%d (ssl=%s)", host, port, ssl)

    def __enter__(self) -> "ImapClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.logout()

    @property
    def delimiter(self) -> str | None:
        """Hierarchy delimiter reported by the last LIST, "/" before that."""
        return self._delimiter

    def login(self, username: str, password: str) -> None:
        """Authenticate the session.

        Raises:
            RemoteConnectionError: If the server refuses the credentials.
        """
        try:
            self._client.login(username, password)
        except LoginError as e:
            raise RemoteConnectionError(f"login to {self._host} as {username} failed: {e}") from e
        except (IMAPClientError, OSError) as e:
            raise RemoteConnectionError(f"login to {self._host} failed: {e}") from e

        logger.info("Logged in to %s as %s", self._host, username)

    def logout(self) -> None:
        """Close the session. Errors while closing are only logged."""
        try:
            self._client.logout()
        except (IMAPClientError, OSError) as e:
            logger.debug("Logout from %s failed: %s", self._host, e)

    def list_mailboxes(self) -> list[str]:
        """List every selectable mailbox of the account.

        Containers flagged \\Noselect (or \\NonExistent) hold no messages
        and are left out.

        Returns:
            Mailbox names, decoded from modified UTF-7.
        """
        with _translate_errors("LIST"):
            folders = self._client.list_folders()

        names = []
        for flags, delimiter, name in folders:
            if delimiter:
                self._delimiter = (
                    delimiter.decode() if isinstance(delimiter, bytes) else delimiter
                )
            normalized = {
                (f.decode() if isinstance(f, bytes) else f).lower() for f in flags
            }
            if "\\noselect" in normalized or "\\nonexistent" in normalized:
                logger.debug("Skipping non-selectable mailbox %s", name)
                continue
            names.append(name)

        return names

    def select(self, mailbox: str) -> int:
        """Select a mailbox read-only and return its UIDVALIDITY.

        Raises:
            ProtocolError: If the mailbox cannot be selected or the server
                does not report a UIDVALIDITY for it.
        """
        with _translate_errors("SELECT", mailbox):
            response = self._client.select_folder(mailbox, readonly=True)

        self._selected = mailbox

        uid_validity = response.get(b"UIDVALIDITY")
        if uid_validity is None:
            raise ProtocolError("server does not report UIDVALIDITY", mailbox)

        return int(uid_validity)

    def search(self, query: Query) -> list[int]:
        """Return the UIDs in the selected mailbox matching a delta query."""
        with _translate_errors("UID SEARCH", self._selected):
            uids = self._client.search(query.criteria())

        return sorted(int(uid) for uid in uids)

    def fetch(self, uids: list[int]) -> list[RemoteMessage]:
        """Fetch the raw bodies of messages in the selected mailbox.

        Large UID sets are requested in batches, but the complete result
        is returned at once.

        Returns:
            Messages in the order the server returned them.

        Raises:
            ProtocolError: If the server rejects the fetch or omits a body.
        """
        messages: list[RemoteMessage] = []

        for start in range(0, len(uids), self._batch_size):
            batch = uids[start : start + self._batch_size]

            with _translate_errors("UID FETCH", self._selected):
                response = self._client.fetch(batch, [FETCH_ITEM])

            for uid, data in response.items():
                payload = data.get(FETCH_RESPONSE_KEY)
                if payload is None:
                    raise ProtocolError(
                        f"no message body returned for UID {uid}", self._selected
                    )
                messages.append(RemoteMessage(uid=int(uid), payload=bytes(payload)))

        return messages
