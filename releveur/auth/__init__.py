"""Credential lookup for IMAP accounts.

Usage:
    from releveur.auth import get_password

    password = get_password(account_config)  # None: ask the user
"""

import os

from releveur.config.schema import AccountConfig

__all__ = [
    "PASSWORD_ENV",
    "get_password",
]

# Environment variable for the IMAP password.
# Using env var is preferred over storing in config.toml for security.
PASSWORD_ENV = "RELEVEUR_IMAP_PASSWORD"


def get_password(account: AccountConfig) -> str | None:
    """Get the IMAP password from environment variable or config.

    Environment variable takes precedence for security - secrets in
    environment variables are less likely to be accidentally committed.

    Args:
        account: Account configuration from config.toml.

    Returns:
        Password string, or None if the user has to be prompted.
    """
    return os.environ.get(PASSWORD_ENV) or account.get("password")
