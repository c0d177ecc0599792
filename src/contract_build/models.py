"""Pipeline data models for contract-build.

This module defines the immutable records passed between pipeline phases:
- ModuleRole / ContractModule: a compilable contract unit and its role
- BuildScope: a request to compile the workspace or one module
- BytecodeArtifact: one binary produced by one compiler invocation
- StoreEntry: the manifest record of a resource store slot
- PipelineState / PhaseResult / PipelineResult: run bookkeeping
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing_extensions import Self

# Pattern for valid module names (cargo package names)
MODULE_NAME_PATTERN = r"^[a-zA-Z][a-zA-Z0-9_-]*$"

# File extension of every compiled bytecode binary
ARTIFACT_SUFFIX = ".wasm"


def artifact_name_for(module_name: str) -> str:
    """Return the binary file name the compiler produces for a module.

    Cargo replaces dashes in package names with underscores.

    Example:
        >>> artifact_name_for("deployer-contract")
        'deployer_contract.wasm'
    """
    return module_name.replace("-", "_") + ARTIFACT_SUFFIX


class ModuleRole(str, Enum):
    """Role of a module in the workspace.

    Attributes:
        ORDINARY: Produces a standalone binary.
        EMBEDDING: Bundles the binaries of other modules at build time.
    """

    ORDINARY = "ordinary"
    EMBEDDING = "embedding"


class ContractModule(BaseModel):
    """A compilable contract unit.

    Attributes:
        name: Unique module name (the cargo package name).
        path: Source location relative to the workspace root.
        role: Whether the module embeds other modules' bytecode.
        embeds: Names of the ordinary modules an embedding module bundles.
        verify_embedded: Check that embedded bytes occur verbatim in the
            embedding binary after a run.

    Example:
        >>> ContractModule(
        ...     name="deployer-contract",
        ...     role=ModuleRole.EMBEDDING,
        ...     embeds=["token-set"],
        ... )
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., pattern=MODULE_NAME_PATTERN, description="Module name")
    path: str | None = Field(default=None, description="Source location")
    role: ModuleRole = Field(default=ModuleRole.ORDINARY, description="Module role")
    embeds: list[str] = Field(default_factory=list, description="Embedded modules")
    verify_embedded: bool = Field(
        default=True,
        description="Check embedded bytes after a run",
    )

    @model_validator(mode="after")
    def validate_embeds(self) -> Self:
        """Embedding modules must embed something; ordinary ones must not."""
        if self.role == ModuleRole.EMBEDDING and not self.embeds:
            raise ValueError(f"Embedding module '{self.name}' must declare embeds")
        if self.role == ModuleRole.ORDINARY and self.embeds:
            raise ValueError(
                f"Ordinary module '{self.name}' cannot declare embeds; "
                "set role: embedding"
            )
        if self.name in self.embeds:
            raise ValueError(f"Module '{self.name}' cannot embed itself")
        return self

    @property
    def is_embedding(self) -> bool:
        """Whether this module bundles other modules' bytecode."""
        return self.role == ModuleRole.EMBEDDING

    @property
    def source_path(self) -> str:
        """Source location, defaulting to the module name."""
        return self.path or self.name

    @property
    def artifact_name(self) -> str:
        """Binary file name derived from the module name."""
        return artifact_name_for(self.name)


class BuildScope(BaseModel):
    """A request to compile the whole workspace or one named module.

    Created per phase and discarded afterwards.

    Example:
        >>> BuildScope.all().describe()
        'all'
        >>> BuildScope.single("deployer-contract").describe()
        'deployer-contract'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    module: str | None = Field(default=None, description="Module name, None for all")

    @classmethod
    def all(cls) -> BuildScope:
        """Scope covering every module in the workspace."""
        return cls(module=None)

    @classmethod
    def single(cls, module: str) -> BuildScope:
        """Scope covering one named module."""
        return cls(module=module)

    @property
    def is_all(self) -> bool:
        return self.module is None

    def describe(self) -> str:
        return "all" if self.module is None else self.module


class BytecodeArtifact(BaseModel):
    """A compiled binary produced by one compiler invocation.

    Attributes:
        module: Owning module name.
        path: Location of the binary in the phase output directory.
        sha256: SHA-256 of the binary content.
        size: Size in bytes.
        build_seq: Logical timestamp of the producing compile.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    module: str = Field(..., min_length=1)
    path: str = Field(..., min_length=1)
    sha256: str = Field(..., min_length=64, max_length=64)
    size: int = Field(..., ge=0)
    build_seq: int = Field(..., ge=1)


class StoreEntry(BaseModel):
    """Manifest record for one resource store slot.

    Attributes:
        module: Module name.
        file: File name inside the resource store.
        sha256: SHA-256 of the staged binary.
        size: Size in bytes.
        build_seq: Logical timestamp of the compile that produced it.
        run_id: Pipeline run that staged it.
        staged_at: When it was staged (UTC).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    module: str = Field(..., min_length=1)
    file: str = Field(..., min_length=1)
    sha256: str = Field(..., min_length=64, max_length=64)
    size: int = Field(..., ge=0)
    build_seq: int = Field(..., ge=1)
    run_id: str = Field(..., min_length=1)
    staged_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class PipelineState(str, Enum):
    """States of the embedding rebuild state machine."""

    START = "start"
    FIRST_BUILD = "first_build"
    FIRST_COLLECT = "first_collect"
    EMBEDDING_REBUILD = "embedding_rebuild"
    FINAL_COLLECT = "final_collect"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PhaseResult(BaseModel):
    """Outcome of one completed pipeline phase.

    Attributes:
        state: Phase that ran.
        scopes: Build scopes involved (empty for collect phases).
        modules: Modules built or entries written.
        duration_ms: Phase duration in milliseconds.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    state: PipelineState
    scopes: list[str] = Field(default_factory=list)
    modules: list[str] = Field(default_factory=list)
    duration_ms: int = Field(default=0, ge=0)


class PipelineResult(BaseModel):
    """Aggregated result of a pipeline run.

    Attributes:
        run_id: Identifier of the run.
        final_state: State the run ended in.
        phases: Completed phases, in order.
        staged: Module name to sha256 of every entry staged by this run.
        started_at: When the run started.
        finished_at: When the run finished.
        total_duration_ms: Total duration in milliseconds.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    run_id: str
    final_state: PipelineState
    phases: list[PhaseResult] = Field(default_factory=list)
    staged: dict[str, str] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    total_duration_ms: int = Field(default=0, ge=0)

    @property
    def succeeded(self) -> bool:
        return self.final_state == PipelineState.DONE

    @property
    def failed(self) -> bool:
        return self.final_state in (PipelineState.FAILED, PipelineState.CANCELLED)
