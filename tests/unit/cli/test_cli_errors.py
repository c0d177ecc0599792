"""Tests for CLI error reporting and exit codes."""

from __future__ import annotations

import pytest

from contract_build.errors import (
    BuildFailure,
    CollectFailure,
    ConfigNotFoundError,
    ConfigurationError,
    ContractBuildError,
    PipelineCancelled,
    PipelineLockedError,
    SequencingViolation,
    StaleEmbeddingError,
)
from contract_build_cli.errors import (
    EXIT_CANCELLED,
    EXIT_SYSTEM_ERROR,
    EXIT_USER_ERROR,
    exit_code_for,
    handle_pipeline_error,
)


class TestExitCodes:
    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (BuildFailure(["token"], diagnostic=""), EXIT_USER_ERROR),
            (SequencingViolation("order"), EXIT_USER_ERROR),
            (StaleEmbeddingError("stale"), EXIT_USER_ERROR),
            (ConfigurationError("bad"), EXIT_USER_ERROR),
            (CollectFailure("missing"), EXIT_SYSTEM_ERROR),
            (PipelineLockedError("/res/.lock"), EXIT_SYSTEM_ERROR),
            (ConfigNotFoundError(["contracts.yaml"]), EXIT_SYSTEM_ERROR),
            (PipelineCancelled("first_collect"), EXIT_CANCELLED),
        ],
    )
    def test_exit_code_for(self, error: ContractBuildError, code: int) -> None:
        assert exit_code_for(error) == code


class TestHandlePipelineError:
    def test_prints_diagnostic_verbatim(self, capsys: pytest.CaptureFixture[str]) -> None:
        err = BuildFailure(["token"], diagnostic="error[E0425]: [bold]x[/bold]\n", scope="all")

        with pytest.raises(SystemExit) as exc_info:
            handle_pipeline_error(err)

        assert exc_info.value.code == EXIT_USER_ERROR
        captured = capsys.readouterr().err
        assert "Build failed for token (scope: all)" in captured
        assert "error[E0425]: [bold]x[/bold]" in captured

    def test_other_errors_have_no_diagnostic(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            handle_pipeline_error(CollectFailure("Build output is missing expected binaries"))

        assert exc_info.value.code == EXIT_SYSTEM_ERROR
        assert "missing expected binaries" in capsys.readouterr().err
