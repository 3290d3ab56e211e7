# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Session status commands.

Commands:
    authbound status watch <session_id>  Stream status events until terminal
    authbound status get <session_id>    Fetch the current status once
"""

from typing import List

import typer

from authbound.cli.output import OutputFormat, output, output_error
from authbound.cli.utils import EXIT_VALIDATION_FAILURE, run_async
from authbound.client import AuthboundClient
from authbound.config import GATEWAY_URL
from authbound.exceptions import AuthboundError
from authbound.models import StatusEvent
from authbound.status.lifecycle import is_terminal

app = typer.Typer(
    name="status",
    help="Observe verification session status.",
    no_args_is_help=True,
)


async def _watch(
    gateway_url: str,
    session_id: str,
    token: str,
    fallback: bool,
) -> List[AuthboundError]:
    errors: List[AuthboundError] = []

    def on_event(event: StatusEvent) -> None:
        output(event.to_wire())

    async with AuthboundClient(gateway_url=gateway_url) as client:
        subscription = client.subscribe_to_status(
            session_id,
            token,
            on_event,
            errors.append,
            fallback_to_polling=fallback,
        )
        await subscription.wait()
    return errors


@app.command("watch")
def watch_cmd(
    session_id: str = typer.Argument(..., help="Verification session id"),
    token: str = typer.Option(
        ...,
        "--token",
        "-t",
        envvar="AUTHBOUND_CLIENT_TOKEN",
        help="Client token issued with the session",
    ),
    gateway_url: str = typer.Option(
        GATEWAY_URL,
        "--gateway",
        help="Gateway base URL",
    ),
    fallback: bool = typer.Option(
        True,
        "--fallback/--no-fallback",
        help="Fall back to polling when the event stream fails",
    ),
) -> None:
    """Print one JSON line per status event until a terminal status.

    Examples:
        authbound status watch vs_123 --token $CLIENT_TOKEN
        authbound status watch vs_123 --token $CLIENT_TOKEN --no-fallback | jq .status
    """
    errors = run_async(_watch(gateway_url, session_id, token, fallback))
    if errors:
        error = errors[-1]
        output_error(error.code, error.message, error.details, EXIT_VALIDATION_FAILURE)


async def _get(gateway_url: str, session_id: str, token: str) -> dict:
    async with AuthboundClient(gateway_url=gateway_url) as client:
        response = await client.poll_status(session_id, token)
    return response.model_dump(mode="json", by_alias=True, exclude_none=True)


@app.command("get")
def get_cmd(
    session_id: str = typer.Argument(..., help="Verification session id"),
    token: str = typer.Option(
        ...,
        "--token",
        "-t",
        envvar="AUTHBOUND_CLIENT_TOKEN",
        help="Client token issued with the session",
    ),
    gateway_url: str = typer.Option(
        GATEWAY_URL,
        "--gateway",
        help="Gateway base URL",
    ),
    format: OutputFormat = typer.Option(
        OutputFormat.json,
        "--format",
        "-f",
        help="Output format",
    ),
) -> None:
    """Fetch the current status once, with the gateway status mapped.

    Examples:
        authbound status get vs_123 --token $CLIENT_TOKEN
    """
    try:
        data = run_async(_get(gateway_url, session_id, token))
    except AuthboundError as e:
        output_error(e.code, e.message, e.details, EXIT_VALIDATION_FAILURE)
        return

    output(data, format)
    if is_terminal(data["status"]) and data["status"] != "verified":
        raise typer.Exit(EXIT_VALIDATION_FAILURE)
