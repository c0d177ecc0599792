"""Unit tests for pipeline data models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from contract_build.models import (
    BuildScope,
    ContractModule,
    ModuleRole,
    PipelineResult,
    PipelineState,
    artifact_name_for,
)


class TestContractModule:
    """Tests for ContractModule validation."""

    def test_ordinary_defaults(self) -> None:
        module = ContractModule(name="token-set")

        assert module.role == ModuleRole.ORDINARY
        assert not module.is_embedding
        assert module.source_path == "token-set"
        assert module.artifact_name == "token_set.wasm"

    def test_embedding_requires_embeds(self) -> None:
        with pytest.raises(ValidationError, match="must declare embeds"):
            ContractModule(name="deployer", role=ModuleRole.EMBEDDING)

    def test_ordinary_rejects_embeds(self) -> None:
        with pytest.raises(ValidationError, match="cannot declare embeds"):
            ContractModule(name="deployer", embeds=["token"])

    def test_cannot_embed_itself(self) -> None:
        with pytest.raises(ValidationError, match="cannot embed itself"):
            ContractModule(name="deployer", role=ModuleRole.EMBEDDING, embeds=["deployer"])

    @pytest.mark.parametrize("name", ["", "1token", "token set", "token/set"])
    def test_invalid_names(self, name: str) -> None:
        with pytest.raises(ValidationError):
            ContractModule(name=name)

    def test_frozen(self) -> None:
        module = ContractModule(name="token")
        with pytest.raises(ValidationError):
            module.name = "other"  # type: ignore[misc]


class TestBuildScope:
    def test_all(self) -> None:
        scope = BuildScope.all()
        assert scope.is_all
        assert scope.describe() == "all"

    def test_single(self) -> None:
        scope = BuildScope.single("deployer")
        assert not scope.is_all
        assert scope.describe() == "deployer"


class TestPipelineResult:
    @pytest.mark.parametrize(
        ("state", "succeeded", "failed"),
        [
            (PipelineState.DONE, True, False),
            (PipelineState.FAILED, False, True),
            (PipelineState.CANCELLED, False, True),
        ],
    )
    def test_outcome(self, state: PipelineState, succeeded: bool, failed: bool) -> None:
        result = PipelineResult(run_id="r1", final_state=state)
        assert result.succeeded is succeeded
        assert result.failed is failed


def test_artifact_name_for() -> None:
    assert artifact_name_for("deployer-contract") == "deployer_contract.wasm"
    assert artifact_name_for("token") == "token.wasm"
