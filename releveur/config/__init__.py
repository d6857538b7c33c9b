"""Configuration management module.

Handles loading, saving, and accessing the releveur configuration.
Config is stored at ~/.config/releveur/config.toml

Usage:
    from releveur.config import load_config, get_account, get_default

    config = load_config()
    account = get_account(config, "home")
    policy = get_default(config, account, "on_validity_change", "fail")
"""

import tomllib

import tomli_w

from .paths import CONFIG_FILE, ensure_config_dir
from .schema import AccountConfig, ReleveurConfig
from .template import CONFIG_TEMPLATE

# Re-export for convenience
__all__ = [
    "load_config",
    "save_config",
    "init_config",
    "get_account",
    "get_account_names",
    "get_default",
    "set_config_value",
    "CONFIG_FILE",
]

# Accepted values of on_validity_change
VALIDITY_POLICIES = ("fail", "resync")

# Module-level cache for loaded config.
# Avoids repeated disk reads during a single CLI invocation.
_cached_config: ReleveurConfig | None = None


def load_config(*, force_reload: bool = False) -> ReleveurConfig:
    """Load configuration from disk.

    Returns empty dict if config file doesn't exist.
    Uses module-level caching to avoid repeated disk reads.

    Args:
        force_reload: Bypass cache and read from disk (useful after saving).

    Returns:
        The configuration dictionary.
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    if not CONFIG_FILE.exists():
        _cached_config = {}
        return _cached_config

    with open(CONFIG_FILE, "rb") as f:
        _cached_config = tomllib.load(f)

    return _cached_config


def save_config(config: ReleveurConfig) -> None:
    """Save configuration to disk.

    Creates config directory if needed. Updates the module cache.

    Args:
        config: The configuration dictionary to save.
    """
    global _cached_config

    ensure_config_dir()

    with open(CONFIG_FILE, "wb") as f:
        tomli_w.dump(config, f)
    # May contain a password
    CONFIG_FILE.chmod(0o600)

    # Keep cache in sync with disk
    _cached_config = config


def init_config(*, overwrite: bool = False) -> bool:
    """Initialize config directory and create template config file.

    Args:
        overwrite: If True, overwrite existing config file.

    Returns:
        True if config was created, False if it already existed.
    """
    ensure_config_dir()

    if CONFIG_FILE.exists() and not overwrite:
        return False

    CONFIG_FILE.write_text(CONFIG_TEMPLATE)
    return True


def get_account(
    config: ReleveurConfig, name: str | None = None
) -> AccountConfig | None:
    """Get account configuration by name.

    Args:
        config: The loaded configuration dictionary.
        name: Account name to retrieve. If None, returns the first account.

    Returns:
        The account configuration, or None if not found.
    """
    accounts = config.get("accounts", {})

    if not accounts:
        return None

    if name is None:
        # Return first account as default
        return next(iter(accounts.values()))

    return accounts.get(name)


def get_account_names(config: ReleveurConfig) -> list[str]:
    """Get list of configured account names.

    Args:
        config: The loaded configuration dictionary.

    Returns:
        List of account names, may be empty.
    """
    return list(config.get("accounts", {}).keys())


def get_default(
    config: ReleveurConfig,
    account: AccountConfig | None,
    key: str,
    fallback=None,
):
    """Look up a setting on the account first, then in [defaults].

    Args:
        config: The loaded configuration dictionary.
        account: Account configuration, may be None.
        key: Setting name (e.g., "on_validity_change").
        fallback: Value used when neither section sets the key.

    Returns:
        The most specific value found.
    """
    if account and key in account:
        return account[key]

    return config.get("defaults", {}).get(key, fallback)


def set_config_value(key: str, value: str) -> None:
    """Set a configuration value using dot notation.

    Examples:
        set_config_value("defaults.on_validity_change", "resync")
        set_config_value("accounts.home.port", "143")

    Args:
        key: Dot-separated key path (e.g., "defaults.fetch_batch_size").
        value: Value to set (will be type-converted for known fields).

    Raises:
        ValueError: If value cannot be converted to expected type.
    """
    config = load_config(force_reload=True)

    parts = key.split(".")

    # Navigate to parent dict, creating intermediate dicts as needed
    current: dict = config
    for part in parts[:-1]:
        if part not in current:
            current[part] = {}
        current = current[part]

    # Set the final value with type conversion
    final_key = parts[-1]
    converted_value = _convert_value(final_key, value)
    current[final_key] = converted_value

    save_config(config)


def _convert_value(key: str, value: str) -> str | int | bool | list[str]:
    """Convert string value to appropriate type based on field name.

    Known integer and boolean fields are converted, list fields are split
    on commas, everything else stays str.

    Args:
        key: The field name (last part of dot notation key).
        value: The string value from CLI.

    Returns:
        Converted value.

    Raises:
        ValueError: If value cannot be converted to expected type.
    """
    int_fields = {"port", "fetch_batch_size", "timeout"}
    bool_fields = {"ssl"}
    list_fields = {"folders", "exclude"}

    if key in int_fields:
        return int(value)

    if key in bool_fields:
        lowered = value.lower()
        if lowered in ("true", "yes", "1", "on"):
            return True
        if lowered in ("false", "no", "0", "off"):
            return False
        raise ValueError(f"{key} must be true or false, got {value!r}")

    if key in list_fields:
        return [item.strip() for item in value.split(",") if item.strip()]

    if key == "on_validity_change" and value not in VALIDITY_POLICIES:
        raise ValueError(
            f"{key} must be one of {', '.join(VALIDITY_POLICIES)}, got {value!r}"
        )

    return value
