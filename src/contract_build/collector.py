"""Artifact collector for contract-build.

Stages the binaries of a build output into the resource store. Files whose
names do not follow the naming convention of a declared module are ignored.
Every module the build scope was expected to produce must be present and
readable before any entry is written, so a phase is staged whole or not at
all. Collecting the same output twice leaves the store byte-identical.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from pathlib import Path

import structlog

from contract_build.builder import BuildOutput
from contract_build.config import WorkspaceSpec
from contract_build.errors import CollectFailure
from contract_build.models import BytecodeArtifact
from contract_build.store import ResourceStore, sha256_bytes

logger = structlog.get_logger(__name__)


class ArtifactCollector:
    """Copy build outputs into the resource store.

    Attributes:
        spec: Workspace configuration (provides the naming convention).
        store: Destination resource store.

    Example:
        >>> collector = ArtifactCollector(spec, ResourceStore(Path("res")))
        >>> collector.collect(output, run_id="20240101-abc")
        ['deployer-contract', 'token-set']
    """

    def __init__(self, spec: WorkspaceSpec, store: ResourceStore) -> None:
        self.spec = spec
        self.store = store
        self._log = logger.bind(component="artifact_collector")

    def scan(self, location: Path) -> dict[str, Path]:
        """Map module names to the matching binaries found in a directory."""
        found: dict[str, Path] = {}
        if not location.is_dir():
            return found
        for path in sorted(location.iterdir()):
            if not path.is_file():
                continue
            module = self.spec.module_for_artifact(path.name)
            if module is None:
                self._log.debug("file_ignored", file=path.name)
                continue
            found[module.name] = path
        return found

    def collect(self, output: BuildOutput, run_id: str) -> list[str]:
        """Stage every matching binary of a build output.

        Args:
            output: Output of a successful build.
            run_id: Pipeline run recorded in the manifest.

        Returns:
            Names of the entries written, sorted.

        Raises:
            CollectFailure: If an expected binary is missing or unreadable.
        """
        return self.collect_all([output], run_id)

    def collect_all(self, outputs: Sequence[BuildOutput], run_id: str) -> list[str]:
        """Stage the binaries of several build outputs as one unit.

        Every output is checked and read before the first entry is written,
        so a missing binary in any of them leaves the store untouched.

        Raises:
            CollectFailure: If an expected binary is missing or unreadable.
        """
        start_time = time.monotonic()

        staged: list[tuple[str, bytes, BytecodeArtifact]] = []
        for output in outputs:
            staged.extend(self._read_output(output))

        written: list[str] = []
        for name, data, artifact in staged:
            try:
                self.store.write(name, data, artifact, run_id=run_id)
            except OSError as e:
                raise CollectFailure(
                    f"Could not stage '{name}' into the resource store",
                    module=name,
                    path=str(self.store.entry_path(name)),
                    internal_details=str(e),
                ) from e
            written.append(name)
            self._log.info(
                "artifact_staged",
                module=name,
                sha256=artifact.sha256,
                build_seq=artifact.build_seq,
            )

        if written:
            try:
                self.store.save_manifest()
            except OSError as e:
                raise CollectFailure(
                    "Could not write the resource store manifest",
                    path=str(self.store.manifest_path),
                    internal_details=str(e),
                ) from e

        self._log.info(
            "collect_completed",
            scopes=[o.scope.describe() for o in outputs],
            written=sorted(written),
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )
        return sorted(written)

    def _read_output(self, output: BuildOutput) -> list[tuple[str, bytes, BytecodeArtifact]]:
        found = self.scan(output.location)

        missing = [name for name in output.expected if name not in found]
        if missing:
            raise CollectFailure(
                f"Build output is missing expected binaries for: {', '.join(missing)}",
                module=missing[0],
                path=str(output.location),
            )

        staged: list[tuple[str, bytes, BytecodeArtifact]] = []
        for name, path in found.items():
            try:
                data = path.read_bytes()
            except OSError as e:
                raise CollectFailure(
                    f"Build output for '{name}' is unreadable",
                    module=name,
                    path=str(path),
                    internal_details=str(e),
                ) from e
            staged.append((name, data, self._artifact_for(output, name, path, data)))
        return staged

    def _artifact_for(
        self,
        output: BuildOutput,
        name: str,
        path: Path,
        data: bytes,
    ) -> BytecodeArtifact:
        artifact = output.artifact(name)
        digest = sha256_bytes(data)
        if artifact is not None and artifact.sha256 == digest:
            return artifact
        return BytecodeArtifact(
            module=name,
            path=str(path),
            sha256=digest,
            size=len(data),
            build_seq=output.build_seq,
        )
