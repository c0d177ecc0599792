"""CLI error handling for contract-build-cli.

Maps contract-build exceptions to user-facing messages on stderr and to
process exit codes. A build failure's compiler diagnostic is surfaced
verbatim.
"""

from __future__ import annotations

from typing import NoReturn

import click

from contract_build.errors import (
    BuildFailure,
    CollectFailure,
    ConfigNotFoundError,
    ContractBuildError,
    PipelineCancelled,
    PipelineLockedError,
)
from contract_build_cli.output import diagnostic, error

# Exit codes following sysexits.h convention
EXIT_SUCCESS = 0
EXIT_USER_ERROR = 1  # Build, sequencing or configuration error
EXIT_SYSTEM_ERROR = 2  # Missing file, unreadable artifact, lock held
EXIT_CANCELLED = 130  # Run stopped at a phase boundary


class CLIError(click.ClickException):
    """CLI-specific exception with exit code support.

    Attributes:
        message: User-facing error message.
        exit_code: Exit code for the CLI (default: 1).
    """

    def __init__(self, message: str, exit_code: int = EXIT_USER_ERROR) -> None:
        super().__init__(message)
        self.exit_code = exit_code

    def show(self, file: object = None) -> None:
        """Display the error message using Rich formatting.

        Args:
            file: Output file (unused, for Click compatibility).
        """
        error(self.format_message())


def exit_code_for(err: ContractBuildError) -> int:
    """Choose the process exit code for a pipeline error.

    Example:
        >>> exit_code_for(PipelineCancelled("first_collect"))
        130
    """
    if isinstance(err, PipelineCancelled):
        return EXIT_CANCELLED
    if isinstance(err, (CollectFailure, PipelineLockedError, ConfigNotFoundError)):
        return EXIT_SYSTEM_ERROR
    return EXIT_USER_ERROR


def handle_pipeline_error(err: ContractBuildError) -> NoReturn:
    """Report a pipeline error and exit.

    Args:
        err: Error raised by the pipeline or configuration loading.

    Raises:
        SystemExit: Always, with the code from ``exit_code_for``.
    """
    error(err.user_message)
    if isinstance(err, BuildFailure):
        diagnostic(err.diagnostic)
    raise SystemExit(exit_code_for(err))
