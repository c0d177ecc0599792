"""Shared pytest fixtures for contract-build tests.

Provides a two-module workspace (``token`` and ``deployer``, where deployer
embeds token), a fake compiler, and CliRunner helpers.
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import pytest
import structlog
from click.testing import CliRunner

from contract_build.builder import BuildClock, WorkspaceBuilder
from contract_build.collector import ArtifactCollector
from contract_build.config import WorkspaceSpec
from contract_build.pipeline import EmbeddingRebuildTrigger
from contract_build.store import ResourceStore
from fakes import FakeCompiler

CONFIG_FILENAME = "contracts.yaml"

WORKSPACE_YAML = """\
version: "1.0.0"
target: wasm32-unknown-unknown
resource_dir: res
modules:
  - name: token
  - name: deployer
    role: embedding
    embeds: [token]
"""


@pytest.fixture(autouse=True)
def configure_structlog_for_tests() -> None:
    """Configure structlog to output to stdout for test capture."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    """A workspace directory holding contracts.yaml."""
    root = tmp_path / "workspace"
    root.mkdir()
    (root / CONFIG_FILENAME).write_text(WORKSPACE_YAML)
    return root


@pytest.fixture
def spec(workspace_root: Path) -> WorkspaceSpec:
    return WorkspaceSpec.from_yaml(workspace_root / CONFIG_FILENAME)


@pytest.fixture
def store(spec: WorkspaceSpec, workspace_root: Path) -> ResourceStore:
    return ResourceStore(spec.resource_path(workspace_root))


@pytest.fixture
def compiler(spec: WorkspaceSpec, workspace_root: Path) -> FakeCompiler:
    return FakeCompiler(spec, workspace_root)


@pytest.fixture
def make_trigger(
    spec: WorkspaceSpec,
    store: ResourceStore,
    compiler: FakeCompiler,
) -> Callable[..., EmbeddingRebuildTrigger]:
    """Factory for a fresh trigger per run, sharing store and compiler.

    The clock is seeded from the store, the way run_pipeline does it.
    """

    def _make(**kwargs: object) -> EmbeddingRebuildTrigger:
        store.reload()
        builder = WorkspaceBuilder(spec, compiler, BuildClock(start=store.last_build_seq()))
        collector = ArtifactCollector(spec, store)
        return EmbeddingRebuildTrigger(spec, builder, collector, store, **kwargs)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click test runner."""
    return CliRunner()
