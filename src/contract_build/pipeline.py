"""Embedding rebuild pipeline for contract-build.

An embedding module reads the resource store at its own compile time and
bundles the binaries of the modules it embeds. A single workspace build
therefore embeds whatever the store held *before* the build. The pipeline
runs as an explicit state machine to guarantee freshness:

    start -> first_build -> first_collect -> embedding_rebuild
          -> final_collect -> done

- first_build: compile the whole workspace
- first_collect: stage every binary (embedding entries are still stale)
- embedding_rebuild: recompile each embedding module, which now reads the
  freshly staged binaries of the modules it embeds
- final_collect: stage the rebuilt embedding binaries over the stale ones

Any failure moves the run to ``failed`` and nothing from the failing phase
is staged. Cancellation is only observed between phases.

Embedding modules are rebuilt on every run, even when nothing they embed
changed.
"""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import TypeVar

import structlog
from pydantic import BaseModel, ConfigDict

from contract_build.builder import BuildClock, BuildOutput, WorkspaceBuilder
from contract_build.collector import ArtifactCollector
from contract_build.compiler import BaseCompiler, CargoCompiler
from contract_build.config import WorkspaceSpec
from contract_build.errors import (
    CollectFailure,
    ContractBuildError,
    PipelineCancelled,
    SequencingViolation,
    StaleEmbeddingError,
)
from contract_build.lock import LOCK_FILE_NAME, RunLock
from contract_build.models import BuildScope, PhaseResult, PipelineResult, PipelineState
from contract_build.store import ResourceStore

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Legal transitions of the pipeline state machine
TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.START: frozenset({PipelineState.FIRST_BUILD, PipelineState.CANCELLED}),
    PipelineState.FIRST_BUILD: frozenset(
        {PipelineState.FIRST_COLLECT, PipelineState.FAILED, PipelineState.CANCELLED}
    ),
    PipelineState.FIRST_COLLECT: frozenset(
        {PipelineState.EMBEDDING_REBUILD, PipelineState.FAILED, PipelineState.CANCELLED}
    ),
    PipelineState.EMBEDDING_REBUILD: frozenset(
        {PipelineState.FINAL_COLLECT, PipelineState.FAILED, PipelineState.CANCELLED}
    ),
    PipelineState.FINAL_COLLECT: frozenset(
        {PipelineState.DONE, PipelineState.FAILED, PipelineState.CANCELLED}
    ),
    PipelineState.DONE: frozenset(),
    PipelineState.FAILED: frozenset(),
    PipelineState.CANCELLED: frozenset(),
}


class FreshnessProblem(BaseModel):
    """One embedding relation that does not satisfy the freshness invariant.

    Attributes:
        module: Embedding module.
        embedded: Module it embeds.
        reason: What is wrong.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    module: str
    embedded: str
    reason: str

    def describe(self) -> str:
        return f"{self.module} -> {self.embedded}: {self.reason}"


def check_freshness(spec: WorkspaceSpec, store: ResourceStore) -> list[FreshnessProblem]:
    """Check every embedding entry against the entries it embeds.

    An embedding entry is fresh when its logical build sequence is newer
    than that of every module it embeds and, where verification is enabled,
    the embedded binaries occur verbatim inside it.

    Args:
        spec: Workspace configuration.
        store: Resource store to inspect.

    Returns:
        Problems found, empty when the store is fresh.
    """
    problems: list[FreshnessProblem] = []
    for module in spec.embedding_modules:
        entry = store.entry(module.name)
        if entry is None or not store.has_entry(module.name):
            problems.extend(
                FreshnessProblem(module=module.name, embedded=m, reason="embedding entry missing")
                for m in module.embeds
            )
            continue

        embedding_bytes = store.read(module.name) if module.verify_embedded else b""
        for embedded in module.embeds:
            embedded_entry = store.entry(embedded)
            if embedded_entry is None or not store.has_entry(embedded):
                problems.append(
                    FreshnessProblem(
                        module=module.name, embedded=embedded, reason="embedded entry missing"
                    )
                )
                continue
            if entry.build_seq <= embedded_entry.build_seq:
                problems.append(
                    FreshnessProblem(
                        module=module.name,
                        embedded=embedded,
                        reason=(
                            f"built at seq {entry.build_seq}, not after "
                            f"embedded entry seq {embedded_entry.build_seq}"
                        ),
                    )
                )
                continue
            if module.verify_embedded and store.read(embedded) not in embedding_bytes:
                problems.append(
                    FreshnessProblem(
                        module=module.name,
                        embedded=embedded,
                        reason="embedded bytes do not match the staged binary",
                    )
                )
    return problems


def new_run_id() -> str:
    return f"{datetime.now(UTC).strftime('%Y%m%dT%H%M%SZ')}-{uuid.uuid4().hex[:8]}"


class EmbeddingRebuildTrigger:
    """Run the build/collect/rebuild/collect sequence.

    The trigger is the only component that decides when the resource store
    is written; the collector performs the writes.

    Attributes:
        spec: Workspace configuration.
        builder: Workspace builder.
        collector: Artifact collector.
        store: Resource store written by the collector.
        verify: Check the freshness invariant after the final collect.

    Example:
        >>> trigger = EmbeddingRebuildTrigger(spec, builder, collector, store)
        >>> result = trigger.run()
        >>> result.final_state
        <PipelineState.DONE: 'done'>
    """

    def __init__(
        self,
        spec: WorkspaceSpec,
        builder: WorkspaceBuilder,
        collector: ArtifactCollector,
        store: ResourceStore,
        *,
        cancel_event: threading.Event | None = None,
        verify: bool = True,
    ) -> None:
        self.spec = spec
        self.builder = builder
        self.collector = collector
        self.store = store
        self.verify = verify
        self.cancel_event = cancel_event or threading.Event()
        self._state = PipelineState.START
        self._history: list[PipelineState] = [PipelineState.START]
        self._log = logger.bind(component="embedding_rebuild_trigger")

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def history(self) -> list[PipelineState]:
        """States visited by the current or last run, in order."""
        return list(self._history)

    def run(self) -> PipelineResult:
        """Run the pipeline once.

        Returns:
            PipelineResult of a successful run.

        Raises:
            BuildFailure: If the workspace or an embedding module fails to compile.
            CollectFailure: If an expected binary is missing or unreadable.
            SequencingViolation: If an embedded entry is absent before the
                rebuild, or the result is stale after it.
            PipelineCancelled: If cancellation was requested between phases.
        """
        if self._state != PipelineState.START:
            raise SequencingViolation(f"Pipeline already ran (state: {self._state.value})")

        run_id = new_run_id()
        started_at = datetime.now(UTC)
        start_time = time.monotonic()
        phases: list[PhaseResult] = []
        log = self._log.bind(run_id=run_id)

        log.info(
            "pipeline_started",
            modules=len(self.spec.modules),
            embedding_modules=[m.name for m in self.spec.embedding_modules],
        )

        try:
            # Phase 1: whole workspace
            self._enter(PipelineState.FIRST_BUILD)
            first_output, phase = self._timed(
                PipelineState.FIRST_BUILD,
                lambda: self.builder.build(BuildScope.all()),
            )
            phases.append(phase.model_copy(update={"scopes": ["all"]}))

            with first_output:
                self._enter(PipelineState.FIRST_COLLECT)
                written, phase = self._timed(
                    PipelineState.FIRST_COLLECT,
                    lambda: self.collector.collect(first_output, run_id),
                )
                phases.append(phase.model_copy(update={"modules": written}))

            first_digests = {name: self.store.digest(name) for name in written}

            # Phase 2: embedding modules, against the freshly staged store
            self._enter(PipelineState.EMBEDDING_REBUILD)
            self._check_sequencing(first_digests)
            rebuilt, phase = self._timed(
                PipelineState.EMBEDDING_REBUILD,
                self._rebuild_embedding_modules,
            )
            phases.append(
                phase.model_copy(
                    update={
                        "scopes": [o.scope.describe() for o in rebuilt],
                        "modules": [m for o in rebuilt for m in o.produced_modules],
                    }
                )
            )

            try:
                self._enter(PipelineState.FINAL_COLLECT)
                final_written, phase = self._timed(
                    PipelineState.FINAL_COLLECT,
                    lambda: self._collect_all(rebuilt, run_id),
                )
                phases.append(phase.model_copy(update={"modules": final_written}))
            finally:
                for output in rebuilt:
                    output.discard()

            if self.verify:
                self._verify_freshness()

            self._transition(PipelineState.DONE)

        except PipelineCancelled:
            self._transition(PipelineState.CANCELLED)
            log.warning("pipeline_cancelled", phases_completed=len(phases))
            raise
        except ContractBuildError as e:
            failed_in = self._state
            self._transition(PipelineState.FAILED)
            log.error(
                "pipeline_failed",
                state=failed_in.value,
                error_type=type(e).__name__,
                error=e.user_message,
            )
            if failed_in in (PipelineState.EMBEDDING_REBUILD, PipelineState.FINAL_COLLECT):
                log.warning(
                    "embedding_entries_stale",
                    modules=[m.name for m in self.spec.embedding_modules],
                )
            raise

        staged = {
            entry.module: entry.sha256
            for entry in self.store.entries()
            if entry.run_id == run_id
        }
        total_duration_ms = int((time.monotonic() - start_time) * 1000)
        log.info(
            "pipeline_completed",
            staged=sorted(staged),
            total_duration_ms=total_duration_ms,
        )
        return PipelineResult(
            run_id=run_id,
            final_state=self._state,
            phases=phases,
            staged=staged,
            started_at=started_at,
            finished_at=datetime.now(UTC),
            total_duration_ms=total_duration_ms,
        )

    def _enter(self, state: PipelineState) -> None:
        """Cancellation checkpoint, then move to the next phase."""
        if self.cancel_event.is_set():
            raise PipelineCancelled(state.value)
        self._transition(state)

    def _transition(self, state: PipelineState) -> None:
        if state not in TRANSITIONS[self._state]:
            raise SequencingViolation(
                f"Illegal pipeline transition {self._state.value} -> {state.value}"
            )
        self._log.debug("state_changed", from_state=self._state.value, to_state=state.value)
        self._state = state
        self._history.append(state)

    def _timed(
        self, state: PipelineState, action: Callable[[], T]
    ) -> tuple[T, PhaseResult]:
        start_time = time.monotonic()
        value = action()
        duration_ms = int((time.monotonic() - start_time) * 1000)
        self._log.info("phase_completed", phase=state.value, duration_ms=duration_ms)
        return value, PhaseResult(state=state, duration_ms=duration_ms)

    def _check_sequencing(self, first_digests: dict[str, str | None]) -> None:
        """Every embedded module must hold the entry staged by the first collect."""
        for module in self.spec.embedding_modules:
            absent = [
                name
                for name in module.embeds
                if name not in first_digests
                or first_digests[name] is None
                or self.store.digest(name) != first_digests[name]
            ]
            if absent:
                raise SequencingViolation(
                    f"Cannot rebuild '{module.name}': embedded entries not freshly staged: "
                    + ", ".join(absent),
                    module=module.name,
                    missing=absent,
                )

    def _rebuild_embedding_modules(self) -> list[BuildOutput]:
        outputs: list[BuildOutput] = []
        try:
            for module in self.spec.embedding_modules:
                outputs.append(self.builder.build(BuildScope.single(module.name)))
        except BaseException:
            for output in outputs:
                output.discard()
            raise
        return outputs

    def _collect_all(self, outputs: list[BuildOutput], run_id: str) -> list[str]:
        # one unit: a missing rebuilt binary must not leave siblings half-staged
        return self.collector.collect_all(outputs, run_id)

    def _verify_freshness(self) -> None:
        problems = check_freshness(self.spec, self.store)
        if problems:
            raise StaleEmbeddingError(
                "Embedding entries are stale: " + "; ".join(p.describe() for p in problems),
                module=problems[0].module,
                missing=[p.embedded for p in problems],
            )


def run_pipeline(
    spec: WorkspaceSpec,
    workspace_root: Path | str,
    *,
    compiler: BaseCompiler | None = None,
    cancel_event: threading.Event | None = None,
    verify: bool = True,
) -> PipelineResult:
    """Build and stage a workspace under the run lock.

    Args:
        spec: Workspace configuration.
        workspace_root: Directory containing the workspace.
        compiler: Compile capability; cargo when not given.
        cancel_event: Set to stop the run at the next phase boundary.
        verify: Check the freshness invariant after the final collect.

    Returns:
        PipelineResult of a successful run.

    Example:
        >>> spec = ConfigResolver(Path(".")).load()
        >>> result = run_pipeline(spec, Path("."))
        >>> sorted(result.staged)
        ['deployer-contract', 'token-set-fungible-token']
    """
    root = Path(workspace_root)
    store = ResourceStore(spec.resource_path(root))
    try:
        store.ensure()
    except OSError as e:
        raise CollectFailure(
            "Resource store directory cannot be created",
            path=str(store.root),
            internal_details=str(e),
        ) from e

    with RunLock(store.root / LOCK_FILE_NAME):
        compiler = compiler or CargoCompiler(spec, root)
        clock = BuildClock(start=store.last_build_seq())
        builder = WorkspaceBuilder(spec, compiler, clock)
        collector = ArtifactCollector(spec, store)
        trigger = EmbeddingRebuildTrigger(
            spec,
            builder,
            collector,
            store,
            cancel_event=cancel_event,
            verify=verify,
        )
        return trigger.run()
