"""Sync command implementation."""

from pathlib import Path

import typer
from typing_extensions import Annotated

from releveur.auth import get_password
from releveur.config import get_account, get_account_names, get_default, load_config
from releveur.config.schema import AccountConfig
from releveur.errors import RemoteConnectionError
from releveur.storage.maildir import MaildirStorage
from releveur.sync.engine import SyncEngine, ValidityPolicy
from releveur.sync.imap import DEFAULT_BATCH_SIZE, ImapClient

app = typer.Typer(help="Synchronize IMAP mailboxes into a local Maildir")


def _report_progress(mailbox: str, current: int, total: int) -> None:
    """Print per-mailbox progress as "current/total" on a single line."""
    if total == 0:
        typer.echo(f"Mailbox: {mailbox} is up-to-date.")
        return

    if current == 0:
        typer.echo(f"Backing up mailbox: {mailbox}")

    typer.echo(f"\r{current}/{total}", nl=False)
    if current == total:
        typer.echo()


def _resolve_account(
    name: str | None,
    host: str | None,
    port: int | None,
    ssl: bool | None,
    username: str | None,
    mail_dir: str | None,
) -> tuple[dict, AccountConfig]:
    """Load the account from config and apply command line overrides."""
    config = load_config()

    account = get_account(config, name)
    if account is None:
        if name is not None:
            typer.echo(f"Account '{name}' not found.", err=True)
            names = get_account_names(config)
            if names:
                typer.echo(f"Configured accounts: {', '.join(names)}", err=True)
            raise typer.Exit(1)
        account = {}

    merged: AccountConfig = dict(account)  # type: ignore[assignment]
    overrides = {
        "host": host,
        "port": port,
        "ssl": ssl,
        "username": username,
        "mail_dir": mail_dir,
    }
    for key, value in overrides.items():
        if value is not None:
            merged[key] = value  # type: ignore[literal-required]

    for key in ("host", "username", "mail_dir"):
        if not merged.get(key):
            typer.echo(f"No {key} configured.", err=True)
            typer.echo()
            typer.echo(
                "Run 'releveur config init' and add an account to config.toml, "
                f"or pass --{key.replace('_', '-')}."
            )
            raise typer.Exit(1)

    return config, merged


@app.callback(invoke_without_command=True)
def sync(
    ctx: typer.Context,
    account: Annotated[
        str | None, typer.Option("--account", "-a", help="Account name from config")
    ] = None,
    host: Annotated[
        str | None, typer.Option("--host", "-d", help="IMAP server hostname")
    ] = None,
    port: Annotated[int | None, typer.Option(help="IMAP server port")] = None,
    ssl: Annotated[
        bool | None, typer.Option("--ssl/--no-ssl", help="Use implicit TLS")
    ] = None,
    username: Annotated[
        str | None, typer.Option("--username", "-u", help="Login name")
    ] = None,
    mail_dir: Annotated[
        str | None, typer.Option("--mail-dir", help="Local Maildir directory")
    ] = None,
    folder: Annotated[
        list[str] | None,
        typer.Option("--folder", help="Sync only this mailbox (repeatable)"),
    ] = None,
    exclude: Annotated[
        list[str] | None,
        typer.Option("--exclude", help="Skip this mailbox (repeatable)"),
    ] = None,
    on_validity_change: Annotated[
        ValidityPolicy | None,
        typer.Option(help="What to do when a mailbox's UIDVALIDITY changed"),
    ] = None,
):
    """Synchronize IMAP mailboxes into a local Maildir.

    Only messages newer than the last synchronized one are downloaded.
    Nothing is ever changed on the server.
    """
    config, account_config = _resolve_account(
        account, host, port, ssl, username, mail_dir
    )

    if on_validity_change is None:
        configured = get_default(config, account_config, "on_validity_change", "fail")
        try:
            on_validity_change = ValidityPolicy(configured)
        except ValueError:
            choices = ", ".join(policy.value for policy in ValidityPolicy)
            typer.echo(
                f"Invalid on_validity_change {configured!r} in config "
                f"(expected one of: {choices}).",
                err=True,
            )
            raise typer.Exit(1)

    folders = folder or account_config.get("folders") or None
    excluded = (exclude or []) + list(account_config.get("exclude", []))

    password = get_password(account_config)
    if password is None:
        password = typer.prompt("Password", hide_input=True)

    maildir = MaildirStorage(Path(account_config["mail_dir"]))

    try:
        with ImapClient(
            account_config["host"],
            port=account_config.get("port", 993),
            ssl=account_config.get("ssl", True),
            timeout=get_default(config, account_config, "timeout"),
            batch_size=get_default(
                config, account_config, "fetch_batch_size", DEFAULT_BATCH_SIZE
            ),
        ) as client:
            client.login(account_config["username"], password)
            engine = SyncEngine(client, maildir, policy=on_validity_change)
            result = engine.sync(
                folders=folders,
                exclude=excluded,
                progress_callback=_report_progress,
            )
    except RemoteConnectionError as e:
        typer.echo()
        typer.echo(f"Sync aborted: {e}", err=True)
        raise typer.Exit(1)

    typer.echo()
    summary = f"Sync complete: {result.downloaded} messages downloaded"
    if result.skipped:
        summary += f", {result.skipped} already synced"
    typer.echo(summary)

    if result.errors:
        typer.echo(f"{result.errors} errors:", err=True)
        for detail in result.error_details:
            typer.echo(f"  {detail}", err=True)
        raise typer.Exit(1)
