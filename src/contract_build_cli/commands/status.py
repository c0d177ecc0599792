"""contract-build status command - Show resource store entries."""

from __future__ import annotations

from typing import Any

import click
from rich.table import Table
from rich.text import Text

from contract_build.config import WorkspaceSpec
from contract_build.errors import ContractBuildError
from contract_build.observability import configure_logging
from contract_build.pipeline import check_freshness
from contract_build.store import ResourceStore
from contract_build_cli import output
from contract_build_cli.errors import handle_pipeline_error
from contract_build_cli.workspace import (
    config_option,
    load_workspace,
    logging_options,
    workspace_option,
)

_STATUS_STYLES = {
    "staged": "green",
    "fresh": "green",
    "stale": "red",
    "missing": "yellow",
}


def collect_status(spec: WorkspaceSpec, store: ResourceStore) -> list[dict[str, Any]]:
    """Describe every declared module's store entry.

    Status is ``missing`` when the module has no entry, ``stale`` for an
    embedding entry that fails the freshness check, ``fresh`` for a passing
    one, and ``staged`` for an ordinary entry.
    """
    stale = {p.module for p in check_freshness(spec, store)}
    rows: list[dict[str, Any]] = []
    for module in spec.modules:
        entry = store.entry(module.name)
        if entry is None or not store.has_entry(module.name):
            status = "missing"
        elif module.is_embedding:
            status = "stale" if module.name in stale else "fresh"
        else:
            status = "staged"
        rows.append(
            {
                "module": module.name,
                "role": module.role.value,
                "file": module.artifact_name,
                "source": module.source_path,
                "size": entry.size if entry else None,
                "sha256": entry.sha256 if entry else None,
                "build_seq": entry.build_seq if entry else None,
                "run_id": entry.run_id if entry else None,
                "status": status,
            }
        )
    return rows


@click.command("status")
@config_option
@workspace_option
@click.option("--json", "as_json", is_flag=True, default=False, help="Print entries as JSON.")
@logging_options
def status(
    config_path: str | None,
    workspace: str | None,
    as_json: bool,
    verbose: bool,
    json_logs: bool,
) -> None:
    """Show the resource store entry of every module.

    Examples:

        contract-build status

        contract-build status --json
    """
    configure_logging(verbose=verbose, json_logs=json_logs)
    try:
        spec, root = load_workspace(config_path, workspace)
        store = ResourceStore(spec.resource_path(root))
        rows = collect_status(spec, store)
    except ContractBuildError as e:
        handle_pipeline_error(e)

    if as_json:
        output.print_json(rows)
        return

    table = Table(show_header=True, header_style="bold", title=str(store.root))
    table.add_column("Module", min_width=20)
    table.add_column("Role")
    table.add_column("Size", justify="right")
    table.add_column("SHA-256")
    table.add_column("Seq", justify="right")
    table.add_column("Status")

    for row in rows:
        table.add_row(
            row["module"],
            row["role"],
            f"{row['size']:,}" if row["size"] is not None else "-",
            row["sha256"][:12] if row["sha256"] else "-",
            str(row["build_seq"]) if row["build_seq"] is not None else "-",
            Text(row["status"], style=_STATUS_STYLES[row["status"]]),
        )

    output.console.print(table)
