"""Pydantic records passed between pipeline stages.

  - Asset manifests: the files a processor selected and validated.
  - SchemaBundle: the seven generated schema documents.
  - ToolchainArtifacts: where the compiled binary and bindings landed.
  - SignedEvent / ProvenanceRecord: the signed chain embedded as chain.json.
  - BuildResult: what a finished build hands back to the caller.
"""

import hashlib
import json
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from pipeline.errors import SchemaIntegrityError

# Fixed names consumers read from every package, in bundle order.
REQUIRED_SCHEMA_FILES: tuple[str, ...] = (
    "instantiate_msg.json",
    "execute_msg.json",
    "query_msg.json",
    "external_event_msg.json",
    "info_response.json",
    "metadata.json",
    "config.json",
)


class StaticAssets(BaseModel):
    """Selection result for a static ownable: one display image."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["static"] = "static"
    image: Path


class MusicAssets(BaseModel):
    """Selection result for a music ownable."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["music"] = "music"
    audio: Path
    cover: Path
    """Front image; the only source of the thumbnail."""
    backdrop: Path


AssetManifest = StaticAssets | MusicAssets


class SchemaBundle(BaseModel):
    """A complete set of schema documents, kept as raw bytes.

    Instances only exist for complete bundles: :meth:`from_directory` is the
    single way to load one from disk and it refuses anything less.
    """

    model_config = ConfigDict(frozen=True)

    documents: dict[str, bytes]

    @classmethod
    def from_directory(cls, directory: Path) -> "SchemaBundle":
        """Load every required document from *directory*.

        Raises:
            SchemaIntegrityError: If a document is missing or is not valid JSON.
        """
        directory = Path(directory)
        documents: dict[str, bytes] = {}
        missing: list[str] = []
        malformed: list[str] = []
        for name in REQUIRED_SCHEMA_FILES:
            path = directory / name
            if not path.is_file():
                missing.append(name)
                continue
            raw = path.read_bytes()
            try:
                json.loads(raw)
            except ValueError:
                malformed.append(name)
                continue
            documents[name] = raw

        if missing or malformed:
            parts = []
            if missing:
                parts.append(f"missing required schema files: {', '.join(missing)}")
            if malformed:
                parts.append(f"invalid schema files: {', '.join(malformed)}")
            raise SchemaIntegrityError(
                f"Incomplete schema bundle in {directory}: {'; '.join(parts)}",
                missing=missing,
                malformed=malformed,
            )
        return cls(documents=documents)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(n for n in REQUIRED_SCHEMA_FILES if n in self.documents)

    def document(self, name: str) -> Any:
        """Return the parsed JSON document *name*."""
        return json.loads(self.documents[name])

    def digest(self) -> str:
        """sha256 over the documents in bundle order (diagnostics only)."""
        h = hashlib.sha256()
        for name in REQUIRED_SCHEMA_FILES:
            h.update(name.encode("utf-8"))
            h.update(self.documents[name])
        return h.hexdigest()

    def write_to(self, directory: Path) -> list[Path]:
        """Write every document into *directory*; return the written paths."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        written = []
        for name in REQUIRED_SCHEMA_FILES:
            target = directory / name
            target.write_bytes(self.documents[name])
            written.append(target)
        return written


class ToolchainArtifacts(BaseModel):
    """Outputs of a successful native build + binding generation."""

    model_config = ConfigDict(frozen=True)

    binary: Path
    """Compiled WebAssembly module (``build/<crate>_bg.wasm``)."""

    bindings: Path
    """Generated JavaScript bindings (``build/<crate>.js``)."""

    typings: Path | None = None
    """TypeScript declarations when the bindgen emitted them."""

    def binary_digest(self) -> str:
        return hashlib.sha256(self.binary.read_bytes()).hexdigest()


class SignedEvent(BaseModel):
    """One signed, hash-linked entry of a provenance chain."""

    model_config = ConfigDict(frozen=True)

    timestamp: int
    """Milliseconds since the Unix epoch at signing time."""

    previous: str
    """Hash of the preceding event, or the chain's genesis hash."""

    media_type: str = "application/json"
    data: dict[str, Any]
    signer_key: str
    """Hex-encoded Ed25519 public key."""

    signature: str
    hash: str


class ProvenanceRecord(BaseModel):
    """Append-only signed event chain describing who packaged the ownable."""

    model_config = ConfigDict(frozen=True)

    id: str
    network: str
    account: str
    """Public address of the signing account.  Never the secret."""

    genesis: str
    """Hash anchoring the chain to the account; ``previous`` of the first event."""

    events: tuple[SignedEvent, ...] = Field(default_factory=tuple)

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json"), indent=2)


class BuildResult(BaseModel):
    """Returned by a successful build."""

    archive_path: Path
    name: str
    version: str
    kind: str
    record_id: str
    files: list[str] = Field(default_factory=list)
    """Archive entry names (files only), in archive order."""


__all__ = [
    "REQUIRED_SCHEMA_FILES",
    "StaticAssets",
    "MusicAssets",
    "AssetManifest",
    "SchemaBundle",
    "ToolchainArtifacts",
    "SignedEvent",
    "ProvenanceRecord",
    "BuildResult",
]
