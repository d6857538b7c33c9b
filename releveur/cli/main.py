"""Main CLI entry point for releveur."""

import logging

import typer
from typing_extensions import Annotated

from releveur import __version__
from releveur.cli import commands

app = typer.Typer(
    name="releveur",
    help="Keep a local Maildir copy of your IMAP mailboxes",
    no_args_is_help=True,
)

# Register command groups
app.add_typer(commands.sync.app, name="sync")
app.add_typer(commands.config.app, name="config")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@app.callback()
def setup(
    verbose: Annotated[
        bool, typer.Option("--verbose", help="Log every step to stderr")
    ] = False,
):
    """Keep a local Maildir copy of your IMAP mailboxes."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
    )


@app.command()
def version():
    """Show version information."""
    typer.echo(f"releveur version {__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
