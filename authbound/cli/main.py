# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""authbound CLI - Main entry point with subcommand registration."""

import typer

from authbound import __version__
from authbound.cli import status, webhook

app = typer.Typer(
    name="authbound",
    help="Authbound tools - webhook signatures and session status.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"authbound version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Authbound tools - webhook signatures and session status.

    Payload arguments accept '-' to read from stdin. Output is JSON by
    default for easy piping between commands.

    Examples:
        authbound webhook sign event.json --secret whsec_test
        authbound status watch vs_123 --token $CLIENT_TOKEN
    """


app.add_typer(webhook.app, name="webhook", help="Sign and verify webhook payloads")
app.add_typer(status.app, name="status", help="Observe verification session status")


if __name__ == "__main__":
    app()
