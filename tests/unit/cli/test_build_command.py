"""Tests for contract-build build command."""

from __future__ import annotations

import json
import os
import signal
from pathlib import Path
from unittest.mock import MagicMock

from click.testing import CliRunner

from contract_build.lock import LOCK_FILE_NAME, RunLock
from contract_build.models import BuildScope
from contract_build.store import ResourceStore
from contract_build_cli.commands.build import build
from contract_build_cli.errors import EXIT_CANCELLED, EXIT_SYSTEM_ERROR, EXIT_USER_ERROR
from fakes import FakeCompiler, embedded_payload


class TestBuildCommand:
    """Tests for the build command."""

    def test_build_stages_fresh_entries(
        self,
        cli_runner: CliRunner,
        workspace_root: Path,
        store: ResourceStore,
        fake_cargo: MagicMock,
    ) -> None:
        """A clean workspace ends with deployer embedding the staged token."""
        result = cli_runner.invoke(build, ["-w", str(workspace_root)])

        assert result.exit_code == 0, result.output
        assert "Staged 2 entries" in result.output
        assert "token" in result.output
        store.reload()
        assert embedded_payload(store.read("deployer"), "token") == store.read("token")
        fake_cargo.assert_called_once()

    def test_build_with_config_path(
        self,
        cli_runner: CliRunner,
        workspace_root: Path,
        fake_cargo: MagicMock,
    ) -> None:
        """The workspace root defaults to the directory of contracts.yaml."""
        result = cli_runner.invoke(build, ["--config", str(workspace_root / "contracts.yaml")])

        assert result.exit_code == 0, result.output
        assert fake_cargo.call_args.args[1] == workspace_root.resolve()

    def test_build_json(
        self,
        cli_runner: CliRunner,
        workspace_root: Path,
        fake_cargo: MagicMock,
    ) -> None:
        result = cli_runner.invoke(build, ["-w", str(workspace_root), "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["final_state"] == "done"
        assert sorted(data["staged"]) == ["deployer", "token"]
        assert [p["state"] for p in data["phases"]] == [
            "first_build",
            "first_collect",
            "embedding_rebuild",
            "final_collect",
        ]

    def test_rebuild_after_source_change(
        self,
        cli_runner: CliRunner,
        workspace_root: Path,
        store: ResourceStore,
        compiler: FakeCompiler,
        fake_cargo: MagicMock,
    ) -> None:
        """Changing an embedded module's source is picked up in one run."""
        cli_runner.invoke(build, ["-w", str(workspace_root)])
        compiler.sources["token"] = b"token:v2"

        result = cli_runner.invoke(build, ["-w", str(workspace_root)])

        assert result.exit_code == 0, result.output
        store.reload()
        assert b"token:v2" in store.read("token")
        assert embedded_payload(store.read("deployer"), "token") == store.read("token")

    def test_build_failure_shows_diagnostic(
        self,
        cli_runner: CliRunner,
        workspace_root: Path,
        store: ResourceStore,
        compiler: FakeCompiler,
        fake_cargo: MagicMock,
    ) -> None:
        """The compiler diagnostic is shown verbatim and nothing is staged."""
        compiler.failing.add("token")

        result = cli_runner.invoke(build, ["-w", str(workspace_root)])

        assert result.exit_code == EXIT_USER_ERROR
        assert "Build failed for token (scope: all)" in result.output
        assert "error[E0425]: cannot find value `x` in this scope" in result.output
        assert store.artifact_files() == []

    def test_embedding_rebuild_failure(
        self,
        cli_runner: CliRunner,
        workspace_root: Path,
        compiler: FakeCompiler,
        fake_cargo: MagicMock,
    ) -> None:
        def fail_deployer_rebuild(scope: BuildScope) -> None:
            if scope.describe() == "deployer":
                compiler.failing.add("deployer")

        compiler.on_compile = fail_deployer_rebuild

        result = cli_runner.invoke(build, ["-w", str(workspace_root)])

        assert result.exit_code == EXIT_USER_ERROR
        assert "Build failed for deployer (scope: deployer)" in result.output

    def test_config_not_found(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        result = cli_runner.invoke(build, ["-w", str(tmp_path)])

        assert result.exit_code == EXIT_SYSTEM_ERROR
        assert "not found" in result.output.lower()

    def test_invalid_config(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        (tmp_path / "contracts.yaml").write_text("modules:\n  - name: deployer\n    embeds: [x]\n")

        result = cli_runner.invoke(build, ["-w", str(tmp_path)])

        assert result.exit_code == EXIT_USER_ERROR
        assert "cannot declare embeds" in result.output

    def test_lock_held(
        self,
        cli_runner: CliRunner,
        workspace_root: Path,
        store: ResourceStore,
        compiler: FakeCompiler,
        fake_cargo: MagicMock,
    ) -> None:
        with RunLock(store.root / LOCK_FILE_NAME):
            result = cli_runner.invoke(build, ["-w", str(workspace_root)])

        assert result.exit_code == EXIT_SYSTEM_ERROR
        assert f"held by pid {os.getpid()}" in result.output
        assert compiler.calls == []

    def test_sigterm_cancels_at_phase_boundary(
        self,
        cli_runner: CliRunner,
        workspace_root: Path,
        store: ResourceStore,
        compiler: FakeCompiler,
        fake_cargo: MagicMock,
    ) -> None:
        """SIGTERM during the first build stops the run before anything is staged."""
        compiler.on_compile = lambda scope: os.kill(os.getpid(), signal.SIGTERM)

        result = cli_runner.invoke(build, ["-w", str(workspace_root)])

        assert result.exit_code == EXIT_CANCELLED
        assert "cancelled before first_collect" in result.output
        assert store.artifact_files() == []
        assert not (store.root / LOCK_FILE_NAME).exists()

    def test_verbose_logs_phases(
        self,
        cli_runner: CliRunner,
        workspace_root: Path,
        fake_cargo: MagicMock,
    ) -> None:
        result = cli_runner.invoke(build, ["-w", str(workspace_root), "-v", "--json-logs"])

        assert result.exit_code == 0
        assert "build_started" in result.output
        assert "artifact_staged" in result.output
