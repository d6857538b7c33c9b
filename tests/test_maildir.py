"""Tests for Maildir storage.

Uses pytest tmp_path fixture for isolated filesystem tests.
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from releveur.errors import StorageError
from releveur.storage.maildir import MaildirStorage


@pytest.fixture
def storage(tmp_path: Path) -> MaildirStorage:
    """Create a MaildirStorage instance with a temporary directory."""
    return MaildirStorage(tmp_path)


class TestEnsureFolder:
    """Tests for ensure_folder method."""

    def test_creates_maildir_structure(self, storage: MaildirStorage):
        """ensure_folder creates cur/, new/, tmp/ subdirectories."""
        folder_path = storage.ensure_folder("INBOX")

        assert (folder_path / "cur").is_dir()
        assert (folder_path / "new").is_dir()
        assert (folder_path / "tmp").is_dir()

    def test_handles_nested_folders(self, storage: MaildirStorage):
        """ensure_folder creates nested folder structures."""
        folder_path = storage.ensure_folder("Archive/2024")

        assert folder_path.name == "2024"
        assert folder_path.parent.name == "Archive"
        assert (folder_path / "cur").is_dir()

    def test_idempotent_creation(self, storage: MaildirStorage):
        """ensure_folder can be called multiple times safely."""
        storage.ensure_folder("INBOX")
        storage.ensure_folder("INBOX")  # Should not raise

        assert (storage.base_path / "INBOX" / "cur").is_dir()


class TestFolderName:
    """Tests for folder_name method."""

    def test_plain_name(self, storage: MaildirStorage):
        """A flat mailbox name is used as is."""
        assert storage.folder_name("INBOX") == "INBOX"

    def test_slash_delimiter(self, storage: MaildirStorage):
        """Hierarchy levels become nested directories."""
        assert storage.folder_name("Archive/2024", "/") == "Archive/2024"

    def test_dot_delimiter(self, storage: MaildirStorage):
        """A "." delimiter is mapped, and "/" inside a level is escaped."""
        assert storage.folder_name("INBOX.Sent", ".") == "INBOX/Sent"
        assert storage.folder_name("INBOX.a/b", ".") == "INBOX/a%2Fb"

    def test_flat_namespace(self, storage: MaildirStorage):
        """Without a delimiter the name stays a single level."""
        assert storage.folder_name("a/b", None) == "a%2Fb"

    def test_inner_underscore_is_kept(self, storage: MaildirStorage):
        """Only a leading "_" needs escaping."""
        assert storage.folder_name("Old_Mail/2024_Q1", "/") == "Old_Mail/2024_Q1"

    @pytest.mark.parametrize(
        "mailbox,expected",
        [
            ("../etc", "_../etc"),
            ("INBOX/..", "INBOX/_.."),
            ("a//b", "a/_/b"),
            ("INBOX/cur", "INBOX/_cur"),
            ("INBOX/.hidden", "INBOX/_.hidden"),
            ("INBOX/_cur", "INBOX/%5Fcur"),
            ("100%", "100%25"),
            ("a\\b", "a%5Cb"),
        ],
    )
    def test_unsafe_components_are_escaped(
        self, storage: MaildirStorage, mailbox: str, expected: str
    ):
        """Components that would escape or clash with Maildir are escaped."""
        assert storage.folder_name(mailbox, "/") == expected

    @pytest.mark.parametrize(
        "mailbox",
        ["INBOX/last_uid", "INBOX/last_uid.7", "INBOX/.last_uid.tmp"],
    )
    def test_marker_names_are_reserved(self, storage: MaildirStorage, mailbox: str):
        """A child folder never takes the place of its parent's cursor marker."""
        child = storage.folder_name(mailbox, "/").split("/")[1]

        assert child.startswith("_")
        assert child != "last_uid"

    @pytest.mark.parametrize(
        "first,second,delimiter",
        [
            ("A_B", "A/B", "."),
            ("X/cur", "X/_cur", "/"),
            ("X/_cur", "X/__cur", "/"),
            ("a%2Fb", "a/b", "."),
            ("a_b", "a\\b", "/"),
            ("", "_", "/"),
            ("INBOX/last_uid", "INBOX/_last_uid", "/"),
        ],
    )
    def test_distinct_mailboxes_get_distinct_folders(
        self, storage: MaildirStorage, first: str, second: str, delimiter: str
    ):
        """Names that escape to similar text still map to different folders."""
        assert storage.folder_name(first, delimiter) != storage.folder_name(
            second, delimiter
        )


class TestStore:
    """Tests for store method."""

    def test_writes_to_cur(self, storage: MaildirStorage):
        """Messages are delivered into cur/ with an empty flag section."""
        path = storage.store("INBOX", b"Subject: Test\r\n\r\nBody")

        assert path.exists()
        assert path.parent.name == "cur"
        assert path.name.endswith(":2,")
        assert path.read_bytes() == b"Subject: Test\r\n\r\nBody"

    def test_creates_folder(self, storage: MaildirStorage):
        """store() creates the folder if needed."""
        storage.store("Archive/2024", b"message")

        assert (storage.base_path / "Archive" / "2024" / "tmp").is_dir()

    def test_tmp_is_empty_after_store(self, storage: MaildirStorage):
        """Temporary files are moved out of tmp/."""
        storage.store("INBOX", b"message")

        assert list((storage.base_path / "INBOX" / "tmp").iterdir()) == []

    def test_filenames_are_unique(self, storage: MaildirStorage):
        """Identical payloads stored twice get two files."""
        first = storage.store("INBOX", b"same")
        second = storage.store("INBOX", b"same")

        assert first != second
        assert len(list((storage.base_path / "INBOX" / "cur").iterdir())) == 2

    def test_failure_raises_storage_error(self, storage: MaildirStorage):
        """An OS error while delivering becomes a StorageError."""
        with patch("releveur.storage.maildir.os.rename", side_effect=OSError("boom")):
            with pytest.raises(StorageError, match="boom"):
                storage.store("INBOX", b"message")

        assert list((storage.base_path / "INBOX" / "tmp").iterdir()) == []
        assert list((storage.base_path / "INBOX" / "cur").iterdir()) == []


class TestGenerateFilename:
    """Tests for generate_filename method."""

    def test_filename_format(self, storage: MaildirStorage):
        """Filename has timestamp, unique id, hostname and info section."""
        with patch("releveur.storage.maildir.time.time", return_value=1700000000):
            filename = storage.generate_filename()

        timestamp, unique, rest = filename.split(".", 2)
        assert timestamp == "1700000000"
        assert len(unique) == 32
        assert rest.endswith(":2,")
