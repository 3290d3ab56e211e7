# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Webhook signing and verification commands.

Commands:
    authbound webhook sign <payload>    Produce a signature header
    authbound webhook verify <payload>  Verify a signature header
"""

from typing import Any, Dict, Optional

import typer

from authbound.cli.output import OutputFormat, output
from authbound.cli.utils import EXIT_VALIDATION_FAILURE, read_payload
from authbound.config import WEBHOOK_SECRET, WEBHOOK_TOLERANCE_SECONDS
from authbound.webhooks.signature import generate_signature_header, verify_webhook_signature

app = typer.Typer(
    name="webhook",
    help="Sign and verify webhook payloads.",
    no_args_is_help=True,
)


@app.command("sign")
def sign_cmd(
    source: str = typer.Argument(
        ...,
        help="Payload, file path, or '-' for stdin",
    ),
    secret: str = typer.Option(
        WEBHOOK_SECRET,
        "--secret",
        "-s",
        help="Webhook secret (defaults to AUTHBOUND_WEBHOOK_SECRET)",
    ),
    timestamp: Optional[int] = typer.Option(
        None,
        "--timestamp",
        "-t",
        help="Unix timestamp to sign with (defaults to now)",
    ),
) -> None:
    """Print the signature header for a payload.

    Examples:
        authbound webhook sign '{"id":"evt_1"}' --secret whsec_test
        cat event.json | authbound webhook sign - --secret whsec_test
    """
    if not secret:
        typer.echo("A webhook secret is required (--secret).", err=True)
        raise typer.Exit(EXIT_VALIDATION_FAILURE)

    payload = read_payload(source)
    typer.echo(generate_signature_header(secret, payload, timestamp))


@app.command("verify")
def verify_cmd(
    source: str = typer.Argument(
        ...,
        help="Payload, file path, or '-' for stdin",
    ),
    header: str = typer.Option(
        ...,
        "--header",
        "-H",
        help="Signature header value (t=...,v1=...)",
    ),
    secret: str = typer.Option(
        WEBHOOK_SECRET,
        "--secret",
        "-s",
        help="Webhook secret (defaults to AUTHBOUND_WEBHOOK_SECRET)",
    ),
    tolerance: int = typer.Option(
        WEBHOOK_TOLERANCE_SECONDS,
        "--tolerance",
        help="Accepted clock skew in seconds",
    ),
    now: Optional[int] = typer.Option(
        None,
        "--now",
        help="Override current time (Unix timestamp) for testing",
    ),
    format: OutputFormat = typer.Option(
        OutputFormat.json,
        "--format",
        "-f",
        help="Output format",
    ),
) -> None:
    """Verify a payload against its signature header.

    Exits with status 1 when verification fails.

    Examples:
        authbound webhook verify event.json -H "t=1718452800,v1=..." -s whsec_test
    """
    payload = read_payload(source)
    verification = verify_webhook_signature(payload, header, secret, tolerance, now)

    result: Dict[str, Any] = {"valid": verification.valid}
    if verification.timestamp is not None:
        result["timestamp"] = verification.timestamp
    if not verification.valid:
        result["code"] = verification.code
        result["error"] = verification.error

    output(result, format)
    if not verification.valid:
        raise typer.Exit(EXIT_VALIDATION_FAILURE)
