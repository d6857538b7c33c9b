"""Path constants and directory utilities for releveur config.

Follows the XDG Base Directory specification:
- Config: ~/.config/releveur/config.toml
"""

from pathlib import Path


# XDG-compliant config directory
CONFIG_DIR = Path.home() / ".config" / "releveur"
CONFIG_FILE = CONFIG_DIR / "config.toml"


def ensure_config_dir() -> Path:
    """Create config directory if it doesn't exist.

    Sets directory permissions to 700 since the config file may hold an
    IMAP password.

    Returns the config directory path.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    CONFIG_DIR.chmod(0o700)
    return CONFIG_DIR
