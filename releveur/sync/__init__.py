"""Synchronization of remote IMAP mailboxes into local Maildir folders."""
