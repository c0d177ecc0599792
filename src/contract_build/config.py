"""Workspace configuration for contract-build.

This module handles the contracts.yaml schema and its discovery:
- WorkspaceSpec: Root model for contracts.yaml
- ConfigResolver: Locate contracts.yaml from an explicit path, the
  CONTRACT_BUILD_CONFIG environment variable, or standard locations

Example contracts.yaml:

    version: "1.0.0"
    target: wasm32-unknown-unknown
    resource_dir: res
    modules:
      - name: token-set-fungible-token
        path: token-set
      - name: deployer-contract
        role: embedding
        embeds: [token-set-fungible-token]
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from typing_extensions import Self

from contract_build.errors import (
    ConfigNotFoundError,
    ConfigurationError,
    ModuleNotFoundInWorkspace,
)
from contract_build.models import ARTIFACT_SUFFIX, ContractModule, ModuleRole

logger = structlog.get_logger(__name__)

# Environment variable pointing at an explicit contracts.yaml
CONFIG_ENV_VAR = "CONTRACT_BUILD_CONFIG"

# Standard configuration file name
CONFIG_FILE_NAME = "contracts.yaml"

# Locations searched under the workspace root, in order
CONFIG_SEARCH_PATHS = (
    Path("."),
    Path(".contract-build"),
)

# Workspace spec version for schema compatibility
WORKSPACE_SPEC_VERSION = "1.0.0"

DEFAULT_TARGET = "wasm32-unknown-unknown"


class WorkspaceSpec(BaseModel):
    """Contract workspace configuration.

    Declares every module of the workspace, which of them embed others,
    the compile target and where staged binaries live.

    Attributes:
        version: Schema version.
        target: Compiler target triple, fixed for the whole run.
        profile: Cargo profile whose output directory holds the binaries.
        resource_dir: Resource store directory, relative to the workspace root.
        toolchain: Compiler executable.
        cargo_args: Extra arguments passed to every compile.
        modules: Declared modules.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    version: str = Field(
        default=WORKSPACE_SPEC_VERSION,
        pattern=r"^\d+\.\d+\.\d+$",
        description="Schema version (semver)",
    )
    target: str = Field(default=DEFAULT_TARGET, min_length=1, description="Target triple")
    profile: str = Field(default="release", min_length=1, description="Cargo profile")
    resource_dir: str = Field(default="res", min_length=1, description="Resource store")
    toolchain: str = Field(default="cargo", min_length=1, description="Compiler executable")
    cargo_args: list[str] = Field(default_factory=list, description="Extra compile args")
    modules: list[ContractModule] = Field(..., min_length=1, description="Workspace modules")

    @model_validator(mode="after")
    def validate_modules(self) -> Self:
        """Check names are unique and every embeds entry is a known ordinary module."""
        seen: set[str] = set()
        artifacts: set[str] = set()
        for module in self.modules:
            if module.name in seen:
                raise ValueError(f"Duplicate module name '{module.name}'")
            if module.artifact_name in artifacts:
                raise ValueError(
                    f"Module '{module.name}' maps to an artifact name already in use: "
                    f"{module.artifact_name}"
                )
            seen.add(module.name)
            artifacts.add(module.artifact_name)

        by_name = {m.name: m for m in self.modules}
        for module in self.embedding_modules:
            for embedded in module.embeds:
                target = by_name.get(embedded)
                if target is None:
                    raise ValueError(
                        f"Module '{module.name}' embeds unknown module '{embedded}'"
                    )
                if target.role != ModuleRole.ORDINARY:
                    raise ValueError(
                        f"Module '{module.name}' embeds '{embedded}', "
                        "which is not an ordinary module"
                    )
        return self

    @property
    def module_names(self) -> list[str]:
        return [m.name for m in self.modules]

    @property
    def ordinary_modules(self) -> list[ContractModule]:
        return [m for m in self.modules if m.role == ModuleRole.ORDINARY]

    @property
    def embedding_modules(self) -> list[ContractModule]:
        return [m for m in self.modules if m.role == ModuleRole.EMBEDDING]

    def get_module(self, name: str) -> ContractModule:
        """Look up a module by name.

        Raises:
            ModuleNotFoundInWorkspace: If no module has that name.
        """
        for module in self.modules:
            if module.name == name:
                return module
        raise ModuleNotFoundInWorkspace(name, self.module_names)

    def module_for_artifact(self, filename: str) -> ContractModule | None:
        """Map a binary file name back to its module, or None if it matches none."""
        if not filename.endswith(ARTIFACT_SUFFIX):
            return None
        for module in self.modules:
            if module.artifact_name == filename:
                return module
        return None

    def resource_path(self, workspace_root: Path) -> Path:
        """Absolute resource store directory for a workspace root."""
        path = Path(self.resource_dir)
        if path.is_absolute():
            return path
        return workspace_root / path

    @classmethod
    def from_yaml(cls, path: str | Path) -> WorkspaceSpec:
        """Load and validate a WorkspaceSpec from a YAML file.

        Args:
            path: Path to contracts.yaml.

        Returns:
            Validated WorkspaceSpec instance.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            ConfigurationError: If the YAML is invalid or fails validation.

        Example:
            >>> spec = WorkspaceSpec.from_yaml("contracts.yaml")
            >>> [m.name for m in spec.embedding_modules]
            ['deployer-contract']
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        try:
            with path.open("r") as f:
                data: dict[str, Any] | None = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                "Invalid YAML",
                file_path=str(path),
                internal_details=str(e),
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                "Configuration must be a mapping",
                file_path=str(path),
            )

        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field_path = ".".join(str(x) for x in first["loc"]) or None
            raise ConfigurationError(
                first["msg"],
                file_path=str(path),
                field_path=field_path,
            ) from e


def get_config_env() -> str | None:
    """Return the configuration path from CONTRACT_BUILD_CONFIG, if set."""
    return os.environ.get(CONFIG_ENV_VAR) or None


class ConfigResolver:
    """Resolve the workspace configuration file.

    Resolution order:
    1. Explicit path passed to ``resolve``
    2. CONTRACT_BUILD_CONFIG environment variable
    3. <workspace>/contracts.yaml
    4. <workspace>/.contract-build/contracts.yaml

    Example:
        >>> resolver = ConfigResolver(Path("."))
        >>> spec = resolver.load()
    """

    def __init__(
        self,
        workspace_root: Path | str = ".",
        search_paths: tuple[Path, ...] | None = None,
    ) -> None:
        self.workspace_root = Path(workspace_root)
        self.search_paths = search_paths or CONFIG_SEARCH_PATHS

    def resolve(self, path: Path | str | None = None) -> Path:
        """Find the configuration file.

        Raises:
            ConfigNotFoundError: If no candidate exists.
        """
        if path is not None:
            explicit = Path(path)
            if not explicit.exists():
                raise ConfigNotFoundError([str(explicit)])
            return explicit

        env_path = get_config_env()
        if env_path:
            candidate = Path(env_path)
            if not candidate.exists():
                raise ConfigNotFoundError([f"{candidate} (from {CONFIG_ENV_VAR})"])
            logger.debug("config_from_env", path=str(candidate))
            return candidate

        searched: list[str] = []
        for base in self.search_paths:
            candidate = self.workspace_root / base / CONFIG_FILE_NAME
            if candidate.exists():
                logger.debug("config_found", path=str(candidate))
                return candidate
            searched.append(str(candidate))

        raise ConfigNotFoundError(searched)

    def load(self, path: Path | str | None = None) -> WorkspaceSpec:
        """Resolve and load the configuration."""
        return WorkspaceSpec.from_yaml(self.resolve(path))
