"""Fixtures for CLI command tests."""

from __future__ import annotations

from collections.abc import Iterator
from unittest.mock import MagicMock, patch

import pytest

from fakes import FakeCompiler


@pytest.fixture
def fake_cargo(compiler: FakeCompiler) -> Iterator[MagicMock]:
    """Make the build command compile with FakeCompiler instead of cargo."""
    factory = MagicMock(return_value=compiler)
    with patch("contract_build_cli.commands.build.CargoCompiler", factory):
        yield factory
