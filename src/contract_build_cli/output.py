"""Rich console output utilities for contract-build-cli.

Command results go to stdout; errors and compiler diagnostics go to stderr.
Both respect the NO_COLOR environment variable and the --no-color flag.
"""

from __future__ import annotations

import json
import os
from typing import Any

from rich.console import Console
from rich.markup import escape

# Rich automatically respects NO_COLOR, but we also support --no-color flag
_force_no_color = os.environ.get("NO_COLOR") is not None


def create_console(no_color: bool = False, stderr: bool = False) -> Console:
    """Create a Rich Console instance with appropriate color settings.

    Args:
        no_color: If True, disable colored output. Also respects NO_COLOR env var.
        stderr: Write to stderr instead of stdout.

    Returns:
        Configured Console instance.
    """
    force_terminal = None
    if no_color or _force_no_color:
        force_terminal = False
    return Console(
        force_terminal=force_terminal,
        no_color=no_color or _force_no_color,
        stderr=stderr,
    )


# Default console instances
console = create_console()
err_console = create_console(stderr=True)


def success(message: str, **kwargs: Any) -> None:
    """Print a success message with green checkmark.

    Example:
        >>> success("Staged 2 entries")
        ✓ Staged 2 entries
    """
    console.print(f"[green]✓[/green] {escape(message)}", soft_wrap=True, **kwargs)


def error(message: str, **kwargs: Any) -> None:
    """Print an error message with red X to stderr.

    Example:
        >>> error("Build failed for token-set (scope: all)")
        ✗ Build failed for token-set (scope: all)
    """
    err_console.print(f"[red]✗[/red] {escape(message)}", soft_wrap=True, **kwargs)


def warning(message: str, **kwargs: Any) -> None:
    """Print a warning message with yellow triangle to stderr."""
    err_console.print(f"[yellow]⚠[/yellow] {escape(message)}", soft_wrap=True, **kwargs)


def info(message: str, **kwargs: Any) -> None:
    """Print an informational message."""
    console.print(escape(message), soft_wrap=True, **kwargs)


def diagnostic(text: str) -> None:
    """Write raw tool output to stderr unchanged.

    No markup, highlighting or wrapping is applied, so compiler output such
    as ``error[E0425]`` is shown exactly as the compiler printed it.
    """
    if not text:
        return
    err_console.print(text.rstrip("\n"), markup=False, highlight=False, soft_wrap=True)


def print_json(data: dict[str, Any] | list[Any]) -> None:
    """Print JSON to stdout without Rich formatting so it stays parseable."""
    console.file.write(json.dumps(data, indent=2, default=str) + "\n")


def set_no_color(no_color: bool) -> None:
    """Update the global consoles to enable/disable colors."""
    global console, err_console
    console = create_console(no_color=no_color)
    err_console = create_console(no_color=no_color, stderr=True)
