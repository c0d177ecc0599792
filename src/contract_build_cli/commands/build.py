"""contract-build build command - Compile and stage the workspace."""

from __future__ import annotations

import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager

import click

from contract_build.compiler import CargoCompiler
from contract_build.errors import ContractBuildError
from contract_build.observability import configure_logging
from contract_build.pipeline import run_pipeline
from contract_build_cli.errors import handle_pipeline_error
from contract_build_cli.output import info, print_json, success
from contract_build_cli.workspace import (
    config_option,
    load_workspace,
    logging_options,
    workspace_option,
)


@contextmanager
def cancel_on_sigterm(event: threading.Event) -> Iterator[None]:
    """Set ``event`` on SIGTERM so the pipeline stops at the next phase boundary."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    previous = signal.signal(signal.SIGTERM, lambda signum, frame: event.set())
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


@click.command("build")
@config_option
@workspace_option
@click.option(
    "--no-verify",
    is_flag=True,
    default=False,
    help="Skip the freshness check after the final collect.",
)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the result as JSON.")
@logging_options
def build(
    config_path: str | None,
    workspace: str | None,
    no_verify: bool,
    as_json: bool,
    verbose: bool,
    json_logs: bool,
) -> None:
    """Compile every module and stage the binaries.

    Builds the whole workspace, stages every binary into the resource
    directory, then rebuilds each embedding module so it bundles the
    freshly staged bytecode, and stages it again.

    Examples:

        contract-build build

        contract-build build --config contracts.yaml --json
    """
    configure_logging(verbose=verbose, json_logs=json_logs)
    cancel_event = threading.Event()

    try:
        spec, root = load_workspace(config_path, workspace)
        compiler = CargoCompiler(spec, root)
        with cancel_on_sigterm(cancel_event):
            result = run_pipeline(
                spec,
                root,
                compiler=compiler,
                cancel_event=cancel_event,
                verify=not no_verify,
            )
    except ContractBuildError as e:
        handle_pipeline_error(e)

    if as_json:
        print_json(result.model_dump(mode="json"))
        return

    store_dir = spec.resource_path(root)
    for module, sha256 in sorted(result.staged.items()):
        info(f"  {module}  {sha256[:12]}")
    success(f"Staged {len(result.staged)} entries into {store_dir}")
