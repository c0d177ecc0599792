"""Workspace loading and options shared by the CLI commands."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import click

from contract_build.config import ConfigResolver, WorkspaceSpec

F = TypeVar("F", bound=Callable[..., Any])

config_option = click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to contracts.yaml [default: search the workspace]",
)

workspace_option = click.option(
    "-w",
    "--workspace",
    "workspace",
    type=click.Path(file_okay=False),
    default=None,
    help="Workspace root [default: directory of contracts.yaml]",
)


def load_workspace(config_path: str | None, workspace: str | None) -> tuple[WorkspaceSpec, Path]:
    """Resolve and load the workspace configuration.

    The workspace root is ``--workspace`` when given, otherwise the directory
    holding the resolved contracts.yaml (or its parent for a file under
    .contract-build/).

    Raises:
        ConfigNotFoundError: If no contracts.yaml is found.
        ConfigurationError: If it is invalid.
    """
    search_root = Path(workspace) if workspace else Path.cwd()
    resolver = ConfigResolver(search_root)
    path = resolver.resolve(config_path)
    spec = WorkspaceSpec.from_yaml(path)

    if workspace:
        root = Path(workspace)
    else:
        root = path.resolve().parent
        if root.name == ".contract-build":
            root = root.parent
    return spec, root


def logging_options(func: F) -> F:
    """Add ``-v/--verbose`` and ``--json-logs`` to a command."""
    func = click.option(
        "--json-logs", is_flag=True, default=False, help="Emit logs as JSON lines."
    )(func)
    func = click.option(
        "-v", "--verbose", is_flag=True, default=False, help="Enable debug logging."
    )(func)
    return func
