"""releveur: one-way IMAP to Maildir synchronization."""

__version__ = "0.1.0"
