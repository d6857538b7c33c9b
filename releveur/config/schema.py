"""Configuration schema definitions.

Uses TypedDict for type safety without runtime overhead.
These types match the structure of config.toml.
"""

from typing import TypedDict


class DefaultsConfig(TypedDict, total=False):
    """Default settings applied to all accounts.

    Attributes:
        on_validity_change: "fail" to skip a mailbox whose UIDVALIDITY
            changed, "resync" to fetch it again from scratch.
        fetch_batch_size: Maximum number of messages per FETCH command.
        timeout: Socket timeout in seconds.
    """

    on_validity_change: str
    fetch_batch_size: int
    timeout: int


class AccountConfig(TypedDict, total=False):
    """Single IMAP account configuration.

    Attributes:
        host: IMAP server hostname.
        port: IMAP server port (default 993).
        ssl: Use implicit TLS (default true).
        username: Login name.
        password: Optional password (prefer env var or prompt).
        mail_dir: Local Maildir path for this account (e.g., "~/Mail/Home").
        folders: Mailboxes to sync; all selectable mailboxes if omitted.
        exclude: Mailboxes never to sync.
        on_validity_change: Overrides the default policy for this account.
    """

    host: str
    port: int
    ssl: bool
    username: str
    password: str
    mail_dir: str
    folders: list[str]
    exclude: list[str]
    on_validity_change: str


class ReleveurConfig(TypedDict, total=False):
    """Root configuration structure.

    Attributes:
        defaults: Default settings for all accounts.
        accounts: Dict mapping account names to their configurations.
    """

    defaults: DefaultsConfig
    accounts: dict[str, AccountConfig]
