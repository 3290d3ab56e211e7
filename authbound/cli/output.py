# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Output formatting for the authbound CLI.

Supports two output formats:
- json: Machine-readable JSON, one document per line (default, for piping)
- pretty: Indented JSON for human reading
"""

import json
import sys
from enum import Enum
from typing import Any, Dict, Optional

import typer


class OutputFormat(str, Enum):
    """Output format options."""

    json = "json"
    pretty = "pretty"


def output_json(data: Any, pretty: bool = False) -> None:
    """Output data as JSON to stdout.

    Args:
        data: Data to output (must be JSON-serializable)
        pretty: If True, output with indentation
    """
    indent = 2 if pretty else None
    try:
        typer.echo(json.dumps(data, indent=indent, default=str))
    except TypeError as e:
        typer.echo(f"Error serializing output: {e}", err=True)
        raise typer.Exit(2) from e


def output(data: Any, format: OutputFormat = OutputFormat.json) -> None:
    output_json(data, pretty=format == OutputFormat.pretty)


def output_error(
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    exit_code: int = 1,
) -> None:
    """Output an error as JSON to stderr and exit.

    Args:
        code: Error code
        message: Error message
        details: Optional error details
        exit_code: Exit code to use
    """
    error_data: Dict[str, Any] = {
        "error": True,
        "code": code,
        "message": message,
    }
    if details:
        error_data["details"] = details

    print(json.dumps(error_data), file=sys.stderr)
    raise typer.Exit(exit_code)
