"""contract-build: Build and stage WebAssembly contract workspaces.

This package provides:
- WorkspaceSpec: Pydantic schema for contracts.yaml
- WorkspaceBuilder / CargoCompiler: Compile a workspace or one module
- ArtifactCollector / ResourceStore: Stage binaries atomically
- EmbeddingRebuildTrigger: Rebuild embedding modules against fresh binaries
"""

from __future__ import annotations

__version__ = "0.1.0"

from contract_build.builder import BuildClock, BuildOutput, WorkspaceBuilder
from contract_build.collector import ArtifactCollector
from contract_build.compiler import BaseCompiler, CargoCompiler
from contract_build.config import ConfigResolver, WorkspaceSpec
from contract_build.errors import (
    BuildFailure,
    CollectFailure,
    ConfigNotFoundError,
    ConfigurationError,
    ContractBuildError,
    ModuleNotFoundInWorkspace,
    PipelineCancelled,
    PipelineLockedError,
    SequencingViolation,
    StaleEmbeddingError,
)
from contract_build.lock import RunLock
from contract_build.models import (
    BuildScope,
    BytecodeArtifact,
    ContractModule,
    ModuleRole,
    PhaseResult,
    PipelineResult,
    PipelineState,
    StoreEntry,
)
from contract_build.pipeline import (
    EmbeddingRebuildTrigger,
    FreshnessProblem,
    check_freshness,
    run_pipeline,
)
from contract_build.store import ResourceStore

__all__ = [
    "__version__",
    # Configuration and models
    "WorkspaceSpec",
    "ConfigResolver",
    "ContractModule",
    "ModuleRole",
    "BuildScope",
    "BytecodeArtifact",
    "StoreEntry",
    "PipelineState",
    "PhaseResult",
    "PipelineResult",
    # Pipeline components
    "BaseCompiler",
    "CargoCompiler",
    "BuildClock",
    "BuildOutput",
    "WorkspaceBuilder",
    "ArtifactCollector",
    "ResourceStore",
    "RunLock",
    "EmbeddingRebuildTrigger",
    "FreshnessProblem",
    "check_freshness",
    "run_pipeline",
    # Errors
    "ContractBuildError",
    "BuildFailure",
    "CollectFailure",
    "SequencingViolation",
    "StaleEmbeddingError",
    "PipelineCancelled",
    "PipelineLockedError",
    "ConfigurationError",
    "ConfigNotFoundError",
    "ModuleNotFoundInWorkspace",
]
