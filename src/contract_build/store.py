"""Resource store for staged bytecode binaries.

The resource store is a directory holding the latest binary for every
module, one file per module name, plus a JSON manifest recording the digest
and logical build sequence of each entry. Entries are overwritten, never
appended, and every write is atomic: the content is written to a temporary
file in the same directory and renamed into place, so a concurrent reader
sees either the previous binary or the new one, never a partial file.
"""

from __future__ import annotations

import hashlib
import os
import tempfile
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from contract_build.errors import CollectFailure
from contract_build.models import ARTIFACT_SUFFIX, BytecodeArtifact, StoreEntry, artifact_name_for

logger = structlog.get_logger(__name__)

MANIFEST_FILE_NAME = "contracts.manifest.json"
MANIFEST_VERSION = 1


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def atomic_write_bytes(dest: Path, data: bytes) -> None:
    """Write data to dest so that readers never observe a partial file.

    Args:
        dest: Final path.
        data: Full file content.
    """
    fd, tmp_name = tempfile.mkstemp(dir=dest.parent, prefix=f".{dest.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, dest)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


class StoreManifest(BaseModel):
    """On-disk manifest of the resource store."""

    model_config = ConfigDict(extra="forbid")

    version: int = Field(default=MANIFEST_VERSION)
    entries: dict[str, StoreEntry] = Field(default_factory=dict)


class ResourceStore:
    """Directory of staged binaries addressed by module name.

    Attributes:
        root: Store directory.

    Example:
        >>> store = ResourceStore(Path("res"))
        >>> store.write("token-set", data, artifact, run_id="r1")
        >>> store.save_manifest()
        >>> store.digest("token-set")
        'e3b0c442...'
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)
        self._manifest: StoreManifest | None = None
        self._log = logger.bind(store=str(self.root))

    @property
    def manifest_path(self) -> Path:
        return self.root / MANIFEST_FILE_NAME

    def ensure(self) -> None:
        """Create the store directory if it does not exist."""
        self.root.mkdir(parents=True, exist_ok=True)

    def entry_path(self, module: str) -> Path:
        return self.root / artifact_name_for(module)

    def has_entry(self, module: str) -> bool:
        return self.entry_path(module).is_file()

    def read(self, module: str) -> bytes:
        """Read a module's staged binary.

        Raises:
            CollectFailure: If the entry is missing or unreadable.
        """
        path = self.entry_path(module)
        try:
            return path.read_bytes()
        except OSError as e:
            raise CollectFailure(
                f"Resource store entry for '{module}' is not readable",
                module=module,
                path=str(path),
                internal_details=str(e),
            ) from e

    def digest(self, module: str) -> str | None:
        """SHA-256 of a module's staged binary, or None if absent."""
        if not self.has_entry(module):
            return None
        return sha256_bytes(self.read(module))

    def artifact_files(self) -> list[Path]:
        """Binary files currently present in the store."""
        if not self.root.is_dir():
            return []
        return sorted(
            p for p in self.root.iterdir() if p.is_file() and p.name.endswith(ARTIFACT_SUFFIX)
        )

    def write(self, module: str, data: bytes, artifact: BytecodeArtifact, run_id: str) -> StoreEntry:
        """Atomically replace a module's entry and update its manifest record.

        The manifest itself is only persisted by ``save_manifest``.

        Returns:
            The new manifest record.
        """
        self.ensure()
        dest = self.entry_path(module)
        atomic_write_bytes(dest, data)

        entry = StoreEntry(
            module=module,
            file=dest.name,
            sha256=sha256_bytes(data),
            size=len(data),
            build_seq=artifact.build_seq,
            run_id=run_id,
        )
        self._load_manifest().entries[module] = entry
        self._log.debug(
            "entry_written",
            module=module,
            sha256=entry.sha256,
            build_seq=entry.build_seq,
        )
        return entry

    def entry(self, module: str) -> StoreEntry | None:
        """Manifest record for a module, or None if never staged."""
        return self._load_manifest().entries.get(module)

    def entries(self) -> list[StoreEntry]:
        manifest = self._load_manifest()
        return [manifest.entries[name] for name in sorted(manifest.entries)]

    def last_build_seq(self) -> int:
        """Highest logical build sequence recorded, 0 for an empty store."""
        return max((e.build_seq for e in self._load_manifest().entries.values()), default=0)

    def save_manifest(self) -> None:
        """Persist the manifest atomically."""
        self.ensure()
        manifest = self._load_manifest()
        ordered = StoreManifest(
            version=manifest.version,
            entries={name: manifest.entries[name] for name in sorted(manifest.entries)},
        )
        atomic_write_bytes(self.manifest_path, ordered.model_dump_json(indent=2).encode("utf-8"))

    def reload(self) -> None:
        """Drop the cached manifest so the next access re-reads it from disk."""
        self._manifest = None

    def _load_manifest(self) -> StoreManifest:
        if self._manifest is not None:
            return self._manifest

        if not self.manifest_path.exists():
            self._manifest = StoreManifest()
            return self._manifest

        try:
            self._manifest = StoreManifest.model_validate_json(self.manifest_path.read_bytes())
        except (OSError, PydanticValidationError) as e:
            raise CollectFailure(
                "Resource store manifest is unreadable",
                path=str(self.manifest_path),
                internal_details=str(e),
            ) from e
        return self._manifest
