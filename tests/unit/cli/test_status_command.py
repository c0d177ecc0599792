"""Tests for contract-build status command."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

from click.testing import CliRunner

from contract_build.models import BytecodeArtifact
from contract_build.pipeline import EmbeddingRebuildTrigger
from contract_build.store import ResourceStore, sha256_bytes
from contract_build_cli.commands.status import status


def statuses(result_stdout: str) -> dict[str, str]:
    return {row["module"]: row["status"] for row in json.loads(result_stdout)}


class TestStatusCommand:
    """Tests for the status command."""

    def test_empty_store(self, cli_runner: CliRunner, workspace_root: Path) -> None:
        result = cli_runner.invoke(status, ["-w", str(workspace_root), "--json"])

        assert result.exit_code == 0
        assert statuses(result.stdout) == {"token": "missing", "deployer": "missing"}

    def test_after_run(
        self,
        cli_runner: CliRunner,
        workspace_root: Path,
        make_trigger: Callable[..., EmbeddingRebuildTrigger],
    ) -> None:
        run_id = make_trigger().run().run_id

        result = cli_runner.invoke(status, ["-w", str(workspace_root), "--json"])

        assert result.exit_code == 0
        rows = json.loads(result.stdout)
        assert statuses(result.stdout) == {"token": "staged", "deployer": "fresh"}
        assert {row["run_id"] for row in rows} == {run_id}
        assert all(len(row["sha256"]) == 64 for row in rows)

    def test_stale_after_embedded_entry_replaced(
        self,
        cli_runner: CliRunner,
        workspace_root: Path,
        store: ResourceStore,
        make_trigger: Callable[..., EmbeddingRebuildTrigger],
    ) -> None:
        make_trigger().run()
        data = b"\x00asm-token-v2"
        artifact = BytecodeArtifact(
            module="token",
            path="token.wasm",
            sha256=sha256_bytes(data),
            size=len(data),
            build_seq=store.last_build_seq() + 1,
        )
        store.write("token", data, artifact, run_id="manual")
        store.save_manifest()

        result = cli_runner.invoke(status, ["-w", str(workspace_root), "--json"])

        assert statuses(result.stdout)["deployer"] == "stale"

    def test_table_output(
        self,
        cli_runner: CliRunner,
        workspace_root: Path,
        make_trigger: Callable[..., EmbeddingRebuildTrigger],
    ) -> None:
        make_trigger().run()

        result = cli_runner.invoke(status, ["-w", str(workspace_root)])

        assert result.exit_code == 0
        assert "token" in result.output
        assert "deployer" in result.output
        assert "fresh" in result.output

    def test_reports_source_location(
        self, cli_runner: CliRunner, workspace_root: Path
    ) -> None:
        config = (workspace_root / "contracts.yaml").read_text()
        (workspace_root / "contracts.yaml").write_text(
            config.replace("  - name: token\n", "  - name: token\n    path: contracts/token\n")
        )

        result = cli_runner.invoke(status, ["-w", str(workspace_root), "--json"])

        assert result.exit_code == 0, result.output
        sources = {row["module"]: row["source"] for row in json.loads(result.stdout)}
        assert sources == {"token": "contracts/token", "deployer": "deployer"}

    def test_verbose_json_keeps_logs_off_stdout(
        self, cli_runner: CliRunner, workspace_root: Path
    ) -> None:
        """Debug logs go to stderr so --json output stays parseable."""
        result = cli_runner.invoke(status, ["-w", str(workspace_root), "--json", "-v"])

        assert result.exit_code == 0
        assert "config_found" not in result.stdout
        assert statuses(result.stdout) == {"token": "missing", "deployer": "missing"}
