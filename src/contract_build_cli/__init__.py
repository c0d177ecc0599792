"""contract-build-cli: Command-line interface for contract-build."""

from __future__ import annotations

__version__ = "0.1.0"
