"""Compiler invocation for contract-build.

The compiler is an opaque external service. This module only decides what
is invoked for a build scope and how its failure is reported:
- BaseCompiler: The compile capability the builder depends on
- CargoCompiler: Invokes cargo for a wasm target

contract-build owns ordering and staging; the toolchain owns compilation,
including the dependency order among ordinary modules.
"""

from __future__ import annotations

import re
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

import structlog

from contract_build.config import WorkspaceSpec
from contract_build.errors import BuildFailure
from contract_build.models import BuildScope

logger = structlog.get_logger(__name__)

# cargo reports each rejected package as: error: could not compile `name`
_FAILED_PACKAGE_RE = re.compile(r"could not compile `([^`]+)`")


class BaseCompiler(ABC):
    """Compile capability used by the WorkspaceBuilder.

    Attributes:
        target: Bytecode target, fixed for the whole run.

    Example:
        >>> class EchoCompiler(BaseCompiler):
        ...     def compile(self, scope: BuildScope) -> Path:
        ...         return Path("out")
    """

    def __init__(self, target: str) -> None:
        self.target = target

    @abstractmethod
    def compile(self, scope: BuildScope) -> Path:
        """Compile the modules covered by scope.

        Args:
            scope: Whole workspace or a single module.

        Returns:
            Directory holding the produced binaries.

        Raises:
            BuildFailure: If any module in scope did not compile.
        """


def parse_failed_packages(stderr: str) -> list[str]:
    """Extract the package names cargo reports as not compiling.

    Example:
        >>> parse_failed_packages("error: could not compile `token-set` (lib)")
        ['token-set']
    """
    names: list[str] = []
    for match in _FAILED_PACKAGE_RE.finditer(stderr):
        if match.group(1) not in names:
            names.append(match.group(1))
    return names


class CargoCompiler(BaseCompiler):
    """Invoke ``cargo build`` for the workspace or a single package.

    Attributes:
        spec: Workspace configuration.
        workspace_root: Directory cargo runs in.

    Example:
        >>> compiler = CargoCompiler(spec, Path("."))
        >>> compiler.command(BuildScope.single("deployer-contract"))
        ['cargo', 'build', '-p', 'deployer-contract', '--target', 'wasm32-unknown-unknown', '--release']
    """

    def __init__(self, spec: WorkspaceSpec, workspace_root: Path | str) -> None:
        super().__init__(spec.target)
        self.spec = spec
        self.workspace_root = Path(workspace_root)
        self._log = logger.bind(component="cargo_compiler", target=self.target)

    @property
    def output_dir(self) -> Path:
        """Directory cargo writes the target's binaries to."""
        # cargo names the dev profile's directory "debug"
        profile_dir = "debug" if self.spec.profile == "dev" else self.spec.profile
        return self.workspace_root / "target" / self.target / profile_dir

    def command(self, scope: BuildScope) -> list[str]:
        """Build the cargo command line for a scope."""
        cmd = [self.spec.toolchain, "build"]
        if scope.is_all:
            cmd.append("--all")
        else:
            cmd.extend(["-p", scope.describe()])
        cmd.extend(["--target", self.target])
        if self.spec.profile == "release":
            cmd.append("--release")
        else:
            cmd.extend(["--profile", self.spec.profile])
        cmd.extend(self.spec.cargo_args)
        return cmd

    def compile(self, scope: BuildScope) -> Path:
        cmd = self.command(scope)
        self._log.info("compile_started", scope=scope.describe(), command=" ".join(cmd))

        try:
            proc = subprocess.run(
                cmd,
                cwd=self.workspace_root,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            raise BuildFailure(
                self._scope_modules(scope),
                diagnostic=f"Could not run {cmd[0]}: {e}",
                scope=scope.describe(),
            ) from e

        if proc.returncode != 0:
            failed = parse_failed_packages(proc.stderr) or self._scope_modules(scope)
            raise BuildFailure(failed, diagnostic=proc.stderr, scope=scope.describe())

        self._log.info("compile_completed", scope=scope.describe())
        return self.output_dir

    def _scope_modules(self, scope: BuildScope) -> list[str]:
        if scope.is_all:
            return self.spec.module_names
        return [scope.describe()]
