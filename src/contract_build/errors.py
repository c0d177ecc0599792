"""Custom exception hierarchy for contract-build.

This module defines the exception classes raised by the build pipeline:
- ContractBuildError: Base exception for all contract-build errors
- BuildFailure: The compiler rejected one or more modules
- CollectFailure: An expected artifact is missing or unreadable
- SequencingViolation: A phase ran without its required predecessor state
- StaleEmbeddingError: An embedding artifact does not carry fresh bytecode

Every failure aborts the pipeline run. Nothing is retried: recompiling an
unchanged source fails the same way again.

User-facing messages are safe to display. Technical details (full paths,
raw tool output) are logged via structlog when provided as internal_details.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import structlog

logger = structlog.get_logger(__name__)


class ContractBuildError(Exception):
    """Base exception for contract-build.

    Args:
        user_message: Message to display to the user.
        internal_details: Optional technical details, logged but not
            part of the user message.

    Example:
        >>> raise ContractBuildError(
        ...     "Resource store is not writable",
        ...     internal_details="EACCES on /work/res/.token.wasm.tmp",
        ... )
    """

    def __init__(
        self,
        user_message: str,
        *,
        internal_details: str | None = None,
    ) -> None:
        """Initialize ContractBuildError.

        Args:
            user_message: Message to display to the user.
            internal_details: Technical details for internal logging only.
        """
        super().__init__(user_message)
        self.user_message = user_message
        self.internal_details = internal_details

        if internal_details:
            logger.error(
                "contract_build_error",
                error_type=self.__class__.__name__,
                user_message=user_message,
                internal_details=internal_details,
            )


class BuildFailure(ContractBuildError):
    """Raised when the compiler rejects one or more modules.

    The compiler diagnostic is preserved verbatim in ``diagnostic`` so the
    CLI can surface it unchanged.

    Attributes:
        modules: Names of the modules that did not compile.
        diagnostic: Raw compiler output.
        scope: Description of the build scope ("all" or a module name).

    Example:
        >>> raise BuildFailure(
        ...     ["token-set"],
        ...     diagnostic="error[E0425]: cannot find value `x` in this scope",
        ...     scope="all",
        ... )
    """

    def __init__(
        self,
        modules: Sequence[str],
        diagnostic: str,
        *,
        scope: str | None = None,
    ) -> None:
        self.modules = list(modules)
        self.diagnostic = diagnostic
        self.scope = scope

        names = ", ".join(self.modules) if self.modules else "unknown module"
        user_message = f"Build failed for {names}"
        if scope:
            user_message = f"{user_message} (scope: {scope})"

        super().__init__(user_message)

        logger.error(
            "build_failure",
            modules=self.modules,
            scope=scope,
            diagnostic_lines=len(diagnostic.splitlines()),
        )


class CollectFailure(ContractBuildError):
    """Raised when an expected build output is missing or unreadable.

    A silently skipped artifact would leave the resource store inconsistent,
    so this is always fatal.

    Attributes:
        module: Module whose artifact could not be collected (if known).
        path: Path that was expected or could not be read (if known).
    """

    def __init__(
        self,
        user_message: str,
        *,
        module: str | None = None,
        path: str | None = None,
        internal_details: str | None = None,
    ) -> None:
        super().__init__(user_message, internal_details=internal_details)
        self.module = module
        self.path = path


class SequencingViolation(ContractBuildError):
    """Raised when the embedding rebuild cannot observe the state it requires.

    Use this exception when:
    - A module embedded by an embedding module is absent from the store
    - A store entry changed between the first collect and the rebuild
    - The pipeline attempts an illegal state transition

    Attributes:
        module: Embedding module being checked (if any).
        missing: Embedded modules that were absent or changed.
    """

    def __init__(
        self,
        user_message: str,
        *,
        module: str | None = None,
        missing: Iterable[str] = (),
        internal_details: str | None = None,
    ) -> None:
        super().__init__(user_message, internal_details=internal_details)
        self.module = module
        self.missing = list(missing)


class StaleEmbeddingError(SequencingViolation):
    """Raised when an embedding artifact is older than what it embeds.

    Detected after the final collect, either from the logical build sequence
    recorded in the manifest or from the embedded bytes themselves.
    """

    pass


class PipelineCancelled(ContractBuildError):
    """Raised when a cancellation request is observed between phases.

    Attributes:
        state: The phase that would have run next.
    """

    def __init__(self, state: str) -> None:
        super().__init__(f"Pipeline cancelled before {state}")
        self.state = state


class PipelineLockedError(ContractBuildError):
    """Raised when another pipeline run holds the resource store lock.

    Attributes:
        lock_path: Path of the lock file.
        owner_pid: PID recorded in the lock file, if readable.
    """

    def __init__(self, lock_path: str, owner_pid: int | None = None) -> None:
        owner = f" (held by pid {owner_pid})" if owner_pid else ""
        super().__init__(f"Another build is running against this resource store{owner}")
        self.lock_path = lock_path
        self.owner_pid = owner_pid


class ConfigurationError(ContractBuildError):
    """Raised when contracts.yaml cannot be parsed or is invalid.

    Attributes:
        file_path: Path to the configuration file (if known).
        field_path: Dot-separated path to the invalid field (if known).

    Example:
        >>> raise ConfigurationError(
        ...     "Unknown embedded module 'token'",
        ...     file_path="contracts.yaml",
        ...     field_path="modules.1.embeds",
        ... )
    """

    def __init__(
        self,
        user_message: str,
        *,
        file_path: str | None = None,
        field_path: str | None = None,
        internal_details: str | None = None,
    ) -> None:
        context_parts: list[str] = []
        if file_path:
            context_parts.append(f"in {file_path}")
        if field_path:
            context_parts.append(f"field '{field_path}'")

        if context_parts:
            full_message = f"{user_message} ({', '.join(context_parts)})"
        else:
            full_message = user_message

        super().__init__(full_message, internal_details=internal_details)

        self.file_path = file_path
        self.field_path = field_path


class ConfigNotFoundError(ConfigurationError):
    """Raised when contracts.yaml cannot be found in any search location.

    Attributes:
        searched: Paths that were tried, in order.
    """

    def __init__(self, searched: Sequence[str]) -> None:
        super().__init__(
            "Workspace configuration not found. Searched: " + ", ".join(searched)
        )
        self.searched = list(searched)


class ModuleNotFoundInWorkspace(ContractBuildError):
    """Raised when a build scope names a module the workspace does not declare.

    Attributes:
        module_name: The requested module name.
        available_modules: Names of the modules the workspace declares.

    Example:
        >>> raise ModuleNotFoundInWorkspace("nft", ["token-set", "deployer-contract"])
        # User sees: "Module 'nft' not found. Available: token-set, deployer-contract"
    """

    def __init__(self, module_name: str, available_modules: Sequence[str]) -> None:
        available_str = ", ".join(available_modules) if available_modules else "none"
        super().__init__(f"Module '{module_name}' not found. Available: {available_str}")
        self.module_name = module_name
        self.available_modules = list(available_modules)
