"""contract-build validate command - Validate contracts.yaml."""

from __future__ import annotations

import click

from contract_build.errors import ContractBuildError
from contract_build.observability import configure_logging
from contract_build_cli.errors import handle_pipeline_error
from contract_build_cli.output import info, success
from contract_build_cli.workspace import (
    config_option,
    load_workspace,
    logging_options,
    workspace_option,
)


@click.command("validate")
@config_option
@workspace_option
@logging_options
def validate(
    config_path: str | None,
    workspace: str | None,
    verbose: bool,
    json_logs: bool,
) -> None:
    """Validate the workspace configuration.

    Examples:

        contract-build validate

        contract-build validate --config path/to/contracts.yaml
    """
    configure_logging(verbose=verbose, json_logs=json_logs)
    try:
        spec, _root = load_workspace(config_path, workspace)
    except ContractBuildError as e:
        handle_pipeline_error(e)

    for module in spec.embedding_modules:
        info(f"  {module.name} embeds {', '.join(module.embeds)}")
    success(
        f"Configuration valid: {len(spec.modules)} modules, "
        f"{len(spec.embedding_modules)} embedding"
    )
