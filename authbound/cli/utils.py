# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Shared utilities for the authbound CLI.

Reading input from stdin, files or arguments, running coroutines from the
sync CLI context, and exit codes.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Coroutine, TypeVar

import typer

# Exit codes
EXIT_SUCCESS = 0
EXIT_VALIDATION_FAILURE = 1
EXIT_PARSE_ERROR = 2
EXIT_IO_ERROR = 3

T = TypeVar("T")


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run async function from sync CLI context."""
    return asyncio.run(coro)


def read_payload(source: str) -> bytes:
    """Read a webhook payload from stdin, a file, or the literal argument.

    Payloads are returned as bytes so signatures are computed over exactly
    what was read.

    Args:
        source: ``-`` for stdin, a file path, or the literal payload

    Raises:
        typer.Exit: On I/O errors with ``EXIT_IO_ERROR``
    """
    try:
        if source == "-":
            return sys.stdin.buffer.read()

        path = Path(source)
        if path.exists() and path.is_file():
            return path.read_bytes()

        return source.encode("utf-8")

    except OSError as e:
        typer.echo(f"Error reading input: {e}", err=True)
        raise typer.Exit(EXIT_IO_ERROR) from e
