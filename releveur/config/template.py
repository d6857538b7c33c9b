"""Default configuration template.

This template is written to ~/.config/releveur/config.toml
when running `releveur config init`.
"""

CONFIG_TEMPLATE = """\
# Releveur Configuration

[defaults]
# What to do when the server changes a mailbox's UIDVALIDITY:
#   "fail"   - report the mailbox and leave it untouched
#   "resync" - archive the old cursor and download the mailbox again
on_validity_change = "fail"
fetch_batch_size = 200
# Socket timeout in seconds
# timeout = 60

# Add your IMAP accounts below.
#
# [accounts.home]
# host = "imap.example.com"
# port = 993
# ssl = true
# username = "me@example.com"
# mail_dir = "~/Mail/Home"
#
# Sync only some mailboxes (default: every selectable mailbox):
# folders = ["INBOX", "Sent"]
# exclude = ["Trash", "Junk"]
#
# For the password, use the RELEVEUR_IMAP_PASSWORD environment variable,
# or leave it unset to be prompted on each sync.
"""
