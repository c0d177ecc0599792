"""End-to-end build scenarios through the contract-build CLI.

Each test drives ``contract-build build`` against a token/deployer workspace
with the compiler replaced by FakeCompiler, then inspects the resource store
the way a deployer would.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner, Result

from contract_build.store import ResourceStore
from contract_build_cli.main import cli
from fakes import FakeCompiler, embedded_payload

pytestmark = pytest.mark.integration


@pytest.fixture
def run_build(
    cli_runner: CliRunner,
    workspace_root: Path,
    compiler: FakeCompiler,
) -> Iterator[Callable[..., Result]]:
    with patch(
        "contract_build_cli.commands.build.CargoCompiler",
        MagicMock(return_value=compiler),
    ):
        yield lambda *args: cli_runner.invoke(cli, ["build", "-w", str(workspace_root), *args])


def snapshot(store: ResourceStore) -> dict[str, bytes]:
    return {p.name: p.read_bytes() for p in store.artifact_files()}


class TestBuildScenarios:
    """Scenarios a deployer relies on."""

    def test_empty_store(self, run_build: Callable[..., Result], store: ResourceStore) -> None:
        """Both entries appear and deployer embeds token's entry exactly."""
        result = run_build()

        assert result.exit_code == 0, result.output
        assert sorted(snapshot(store)) == ["deployer.wasm", "token.wasm"]
        assert embedded_payload(store.read("deployer"), "token") == store.read("token")

    def test_token_source_change_reembeds(
        self,
        run_build: Callable[..., Result],
        store: ResourceStore,
        compiler: FakeCompiler,
    ) -> None:
        """A token edit changes both entries in a single run."""
        run_build()
        before = snapshot(store)
        compiler.sources["token"] = b"token:v2"

        result = run_build()

        after = snapshot(store)
        assert result.exit_code == 0, result.output
        assert after["token.wasm"] != before["token.wasm"]
        assert after["deployer.wasm"] != before["deployer.wasm"]
        assert embedded_payload(after["deployer.wasm"], "token") == after["token.wasm"]

    def test_token_compile_failure_keeps_store(
        self,
        run_build: Callable[..., Result],
        store: ResourceStore,
        compiler: FakeCompiler,
    ) -> None:
        """A failing token leaves both existing entries untouched."""
        run_build()
        before = snapshot(store)
        compiler.sources["token"] = b"token:broken"
        compiler.failing.add("token")

        result = run_build()

        assert result.exit_code != 0
        assert "could not compile `token`" in result.output
        assert snapshot(store) == before
        assert compiler.calls[-1] == "all"

    def test_rerun_is_idempotent(self, run_build: Callable[..., Result], store: ResourceStore) -> None:
        run_build()
        first = snapshot(store)

        result = run_build()

        assert result.exit_code == 0
        assert snapshot(store) == first

    def test_verify_after_build(
        self,
        cli_runner: CliRunner,
        workspace_root: Path,
        run_build: Callable[..., Result],
    ) -> None:
        run_build()

        result = cli_runner.invoke(cli, ["verify", "-w", str(workspace_root)])

        assert result.exit_code == 0
        assert "fresh" in result.output
