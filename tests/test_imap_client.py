"""Tests for the IMAP client.

Uses mocking to test IMAPClient interactions without a server.
"""

from unittest.mock import MagicMock, call, patch

import pytest
from imapclient.exceptions import IMAPClientAbortError, IMAPClientError, LoginError

from releveur.errors import ProtocolError, RemoteConnectionError
from releveur.sync.delta import AllMessages, UidRange
from releveur.sync.imap import ImapClient, RemoteMessage


@pytest.fixture
def mock_imap():
    """Create a mock imapclient.IMAPClient instance."""
    return MagicMock()


@pytest.fixture
def imap_client(mock_imap):
    """Create an ImapClient with mocked connection."""
    with patch("releveur.sync.imap.IMAPClient") as mock_cls:
        mock_cls.return_value = mock_imap
        client = ImapClient("imap.example.com", batch_size=2)
        return client


class TestConnect:
    """Tests for connecting and logging in."""

    def test_connects_with_settings(self):
        """The underlying client gets host, port, ssl and timeout."""
        with patch("releveur.sync.imap.IMAPClient") as mock_cls:
            ImapClient("imap.example.com", port=143, ssl=False, timeout=30)

        mock_cls.assert_called_once_with(
            "imap.example.com", port=143, ssl=False, timeout=30
        )

    def test_unreachable_server(self):
        """Socket errors while connecting become RemoteConnectionError."""
        with patch(
            "releveur.sync.imap.IMAPClient",
            side_effect=ConnectionRefusedError("refused"),
        ):
            with pytest.raises(RemoteConnectionError, match="imap.example.com:993"):
                ImapClient("imap.example.com")

    def test_rejects_invalid_batch_size(self):
        """A batch size below one is refused."""
        with patch("releveur.sync.imap.IMAPClient"):
            with pytest.raises(ValueError):
                ImapClient("imap.example.com", batch_size=0)

    def test_login(self, imap_client, mock_imap):
        """Credentials are passed through unchanged."""
        imap_client.login("me@example.com", "secret")

        mock_imap.login.assert_called_once_with("me@example.com", "secret")

    def test_login_refused(self, imap_client, mock_imap):
        """Bad credentials are fatal for the whole run."""
        mock_imap.login.side_effect = LoginError("authentication failed")

        with pytest.raises(RemoteConnectionError, match="me@example.com"):
            imap_client.login("me@example.com", "wrong")

    def test_context_manager_logs_out(self, imap_client, mock_imap):
        """Leaving the with block logs out."""
        with imap_client:
            pass

        mock_imap.logout.assert_called_once()

    def test_logout_errors_are_ignored(self, imap_client, mock_imap):
        """Closing an already broken session does not raise."""
        mock_imap.logout.side_effect = OSError("broken pipe")

        imap_client.logout()


class TestListMailboxes:
    """Tests for list_mailboxes method."""

    def test_returns_selectable_names(self, imap_client, mock_imap):
        """\\Noselect containers are left out."""
        mock_imap.list_folders.return_value = [
            ((b"\\HasNoChildren",), b"/", "INBOX"),
            ((b"\\Noselect", b"\\HasChildren"), b"/", "Archive"),
            ((b"\\HasNoChildren",), b"/", "Archive/2024"),
            ((b"\\NonExistent",), b"/", "Ghost"),
        ]

        assert imap_client.list_mailboxes() == ["INBOX", "Archive/2024"]

    def test_records_delimiter(self, imap_client, mock_imap):
        """The delimiter reported by LIST is remembered."""
        mock_imap.list_folders.return_value = [((), b".", "INBOX")]

        imap_client.list_mailboxes()

        assert imap_client.delimiter == "."

    def test_default_delimiter(self, imap_client):
        """Before LIST the delimiter is "/"."""
        assert imap_client.delimiter == "/"

    def test_list_failure(self, imap_client, mock_imap):
        """A rejected LIST is a ProtocolError."""
        mock_imap.list_folders.side_effect = IMAPClientError("LIST failed")

        with pytest.raises(ProtocolError):
            imap_client.list_mailboxes()


class TestSelect:
    """Tests for select method."""

    def test_returns_uid_validity(self, imap_client, mock_imap):
        """select() opens the mailbox read-only and returns UIDVALIDITY."""
        mock_imap.select_folder.return_value = {b"EXISTS": 3, b"UIDVALIDITY": 7}

        assert imap_client.select("INBOX") == 7
        mock_imap.select_folder.assert_called_once_with("INBOX", readonly=True)

    def test_missing_uid_validity(self, imap_client, mock_imap):
        """A server without UIDVALIDITY cannot be synchronized."""
        mock_imap.select_folder.return_value = {b"EXISTS": 3}

        with pytest.raises(ProtocolError, match="UIDVALIDITY") as excinfo:
            imap_client.select("INBOX")

        assert excinfo.value.mailbox == "INBOX"

    def test_unknown_mailbox(self, imap_client, mock_imap):
        """A rejected SELECT names the mailbox."""
        mock_imap.select_folder.side_effect = IMAPClientError("NO no such mailbox")

        with pytest.raises(ProtocolError) as excinfo:
            imap_client.select("Nope")

        assert excinfo.value.mailbox == "Nope"


class TestSearch:
    """Tests for search method."""

    def test_uid_range(self, imap_client, mock_imap):
        """A UID range is sent with an explicit upper bound."""
        mock_imap.search.return_value = [15, 13, 14]

        uids = imap_client.search(UidRange(13))

        mock_imap.search.assert_called_once_with(["UID", "13:4294967295"])
        assert uids == [13, 14, 15]

    def test_all(self, imap_client, mock_imap):
        """The first sync sends ALL."""
        mock_imap.search.return_value = []

        assert imap_client.search(AllMessages()) == []
        mock_imap.search.assert_called_once_with(["ALL"])


class TestFetch:
    """Tests for fetch method."""

    def test_fetches_in_batches(self, imap_client, mock_imap):
        """UIDs are fetched in batches and returned as one list."""
        mock_imap.fetch.side_effect = [
            {1: {b"BODY[]": b"one", b"SEQ": 1}, 2: {b"BODY[]": b"two", b"SEQ": 2}},
            {3: {b"BODY[]": b"three", b"SEQ": 3}},
        ]

        messages = imap_client.fetch([1, 2, 3])

        assert mock_imap.fetch.call_args_list == [
            call([1, 2], ["BODY.PEEK[]"]),
            call([3], ["BODY.PEEK[]"]),
        ]
        assert messages == [
            RemoteMessage(1, b"one"),
            RemoteMessage(2, b"two"),
            RemoteMessage(3, b"three"),
        ]

    def test_empty(self, imap_client, mock_imap):
        """No UIDs means no FETCH."""
        assert imap_client.fetch([]) == []
        mock_imap.fetch.assert_not_called()

    def test_missing_body(self, imap_client, mock_imap):
        """A response without a body is a ProtocolError."""
        mock_imap.fetch.return_value = {1: {b"SEQ": 1}}

        with pytest.raises(ProtocolError, match="UID 1"):
            imap_client.fetch([1])

    def test_connection_lost(self, imap_client, mock_imap):
        """An aborted session ends the run, not only the mailbox."""
        mock_imap.fetch.side_effect = IMAPClientAbortError("socket error")

        with pytest.raises(RemoteConnectionError):
            imap_client.fetch([1])

    def test_rejected_fetch(self, imap_client, mock_imap):
        """A rejected FETCH names the mailbox."""
        mock_imap.select_folder.return_value = {b"UIDVALIDITY": 7}
        imap_client.select("INBOX")
        mock_imap.fetch.side_effect = IMAPClientError("BAD")

        with pytest.raises(ProtocolError) as excinfo:
            imap_client.fetch([1])

        assert excinfo.value.mailbox == "INBOX"
