"""contract-build verify command - Check embedding freshness without building."""

from __future__ import annotations

import click

from contract_build.errors import ContractBuildError
from contract_build.observability import configure_logging
from contract_build.pipeline import check_freshness
from contract_build.store import ResourceStore
from contract_build_cli.errors import EXIT_USER_ERROR, CLIError, handle_pipeline_error
from contract_build_cli.output import error, success
from contract_build_cli.workspace import (
    config_option,
    load_workspace,
    logging_options,
    workspace_option,
)


@click.command("verify")
@config_option
@workspace_option
@logging_options
def verify(
    config_path: str | None,
    workspace: str | None,
    verbose: bool,
    json_logs: bool,
) -> None:
    """Check that every embedding entry bundles the current staged binaries.

    Exits with status 1 when any embedding entry is missing or stale.

    Examples:

        contract-build verify
    """
    configure_logging(verbose=verbose, json_logs=json_logs)
    try:
        spec, root = load_workspace(config_path, workspace)
        store = ResourceStore(spec.resource_path(root))
        problems = check_freshness(spec, store)
    except ContractBuildError as e:
        handle_pipeline_error(e)

    if problems:
        for problem in problems:
            error(problem.describe())
        raise CLIError(
            f"{len(problems)} embedding relation(s) are stale; run 'contract-build build'",
            exit_code=EXIT_USER_ERROR,
        )

    count = sum(len(m.embeds) for m in spec.embedding_modules)
    success(f"All embedding entries are fresh ({count} relation(s) checked)")
