"""Workspace builder for contract-build.

Invokes the compiler once per build scope and snapshots the binaries that
scope is responsible for into an ephemeral per-phase output directory.
The builder never writes to the resource store; the collector stages
from the snapshot and the snapshot is discarded afterwards.
"""

from __future__ import annotations

import shutil
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from types import TracebackType

import structlog

from contract_build.compiler import BaseCompiler
from contract_build.config import WorkspaceSpec
from contract_build.errors import CollectFailure
from contract_build.models import BuildScope, BytecodeArtifact, ContractModule
from contract_build.store import sha256_bytes

logger = structlog.get_logger(__name__)


class BuildClock:
    """Logical clock stamping every compiler invocation.

    Sequence numbers only ever increase, across runs as well when the clock
    is seeded from the resource store manifest.

    Example:
        >>> clock = BuildClock(start=4)
        >>> clock.advance()
        5
    """

    def __init__(self, start: int = 0) -> None:
        self._value = start

    @property
    def value(self) -> int:
        return self._value

    def advance(self) -> int:
        self._value += 1
        return self._value


@dataclass
class BuildOutput:
    """Binaries produced by one build scope, held in a per-phase directory.

    Attributes:
        scope: Scope that was built.
        location: Ephemeral directory holding the binaries.
        artifacts: Artifacts snapshotted from the compiler output.
        build_seq: Logical timestamp of the compile.
        expected: Modules the scope was expected to produce.
    """

    scope: BuildScope
    location: Path
    build_seq: int = 1
    artifacts: list[BytecodeArtifact] = field(default_factory=list)
    expected: list[str] = field(default_factory=list)

    @property
    def produced_paths(self) -> list[Path]:
        return [Path(a.path) for a in self.artifacts]

    @property
    def produced_modules(self) -> list[str]:
        return [a.module for a in self.artifacts]

    def artifact(self, module: str) -> BytecodeArtifact | None:
        for artifact in self.artifacts:
            if artifact.module == module:
                return artifact
        return None

    def discard(self) -> None:
        """Remove the per-phase directory."""
        shutil.rmtree(self.location, ignore_errors=True)

    def __enter__(self) -> BuildOutput:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.discard()


class WorkspaceBuilder:
    """Build a scope and snapshot its binaries.

    Attributes:
        spec: Workspace configuration.
        compiler: Compile capability.
        clock: Logical clock stamping each compiler invocation.

    Example:
        >>> builder = WorkspaceBuilder(spec, CargoCompiler(spec, root))
        >>> with builder.build(BuildScope.all()) as output:
        ...     print(output.produced_modules)
    """

    def __init__(
        self,
        spec: WorkspaceSpec,
        compiler: BaseCompiler,
        clock: BuildClock | None = None,
    ) -> None:
        self.spec = spec
        self.compiler = compiler
        self.clock = clock or BuildClock()
        self._log = logger.bind(component="workspace_builder")

    def scope_modules(self, scope: BuildScope) -> list[ContractModule]:
        """Modules a scope covers.

        Raises:
            ModuleNotFoundInWorkspace: If a single-module scope names an unknown module.
        """
        if scope.is_all:
            return list(self.spec.modules)
        return [self.spec.get_module(scope.describe())]

    def build(self, scope: BuildScope) -> BuildOutput:
        """Compile a scope.

        Args:
            scope: Whole workspace or one known module.

        Returns:
            BuildOutput in a fresh per-phase directory.

        Raises:
            ModuleNotFoundInWorkspace: If the scope names an unknown module.
            BuildFailure: If the compiler rejects any module. Nothing is
                snapshotted in that case.
        """
        modules = self.scope_modules(scope)
        build_seq = self.clock.advance()
        start_time = time.monotonic()

        self._log.info("build_started", scope=scope.describe(), build_seq=build_seq)
        compiled_dir = self.compiler.compile(scope)

        slug = scope.describe().replace("/", "_")
        try:
            location = Path(tempfile.mkdtemp(prefix=f"contract-build-{slug}-"))
        except OSError as e:
            raise CollectFailure(
                "Could not create a build output directory",
                path=tempfile.gettempdir(),
                internal_details=str(e),
            ) from e
        output = BuildOutput(
            scope=scope,
            location=location,
            build_seq=build_seq,
            expected=[m.name for m in modules],
        )

        try:
            for module in modules:
                source = compiled_dir / module.artifact_name
                if not source.is_file():
                    continue
                output.artifacts.append(self._snapshot(module, source, location, build_seq))
        except BaseException:
            output.discard()
            raise

        self._log.info(
            "build_completed",
            scope=scope.describe(),
            build_seq=build_seq,
            produced=output.produced_modules,
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )
        return output

    def _snapshot(
        self,
        module: ContractModule,
        source: Path,
        location: Path,
        build_seq: int,
    ) -> BytecodeArtifact:
        dest = location / module.artifact_name
        try:
            data = source.read_bytes()
        except OSError as e:
            raise CollectFailure(
                f"Build output for '{module.name}' is unreadable",
                module=module.name,
                path=str(source),
                internal_details=str(e),
            ) from e
        try:
            dest.write_bytes(data)
        except OSError as e:
            raise CollectFailure(
                f"Could not snapshot the build output for '{module.name}'",
                module=module.name,
                path=str(dest),
                internal_details=str(e),
            ) from e
        return BytecodeArtifact(
            module=module.name,
            path=str(dest),
            sha256=sha256_bytes(data),
            size=len(data),
            build_seq=build_seq,
        )
