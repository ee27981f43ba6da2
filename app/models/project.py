"""Typed project models read once at the start of a build.

``OwnableKind`` comes from the ``type.txt`` marker file and decides which
asset processor and placeholder set apply.  ``ProjectDescriptor`` comes from
the ``[package]`` table of ``Cargo.toml``; its ``name`` also names the output
archive.  Both are immutable for the rest of the build.
"""

import re
import tomllib
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from pipeline.errors import PreconditionError

KIND_MARKER = "type.txt"
MANIFEST_FILE = "Cargo.toml"

_NAME_RE = re.compile(r"^[a-z0-9-]+$")
_VERSION_RE = re.compile(r"^\d+\.\d+\.\d+$")


class OwnableKind(str, Enum):
    STATIC = "static-ownable"
    MUSIC  = "music-ownable"

    @classmethod
    def from_project(cls, project_root: Path) -> "OwnableKind":
        """Read the kind marker in *project_root*.

        Raises:
            PreconditionError: If the marker is missing or names an unknown kind.
        """
        marker = Path(project_root) / KIND_MARKER
        if not marker.is_file():
            raise PreconditionError(f"No {KIND_MARKER} found in project directory", marker)
        value = marker.read_text(encoding="utf-8").strip()
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(k.value for k in cls)
            raise PreconditionError(
                f"Unknown ownable type {value!r} in {KIND_MARKER} (allowed: {allowed})",
                marker,
            ) from None


def normalize_name(name: str) -> str:
    """Normalise a package name into an archive/identifier stem.

    Rules: strip whitespace -> lowercase -> runs of whitespace and
    underscores become a single hyphen.
    """
    return re.sub(r"[\s_]+", "-", name.strip().lower())


class ProjectDescriptor(BaseModel):
    """Package metadata of the ownable being built."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    version: str
    authors: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()

    @field_validator("name", mode="before")
    @classmethod
    def _normalize_name(cls, v: str) -> str:
        v = normalize_name(str(v))
        if not _NAME_RE.match(v):
            raise ValueError(f"name {v!r} must match [a-z0-9-]+")
        return v

    @field_validator("version")
    @classmethod
    def _check_version(cls, v: str) -> str:
        if not _VERSION_RE.match(v):
            raise ValueError(f"version {v!r} must be major.minor.patch")
        return v

    @field_validator("keywords", mode="before")
    @classmethod
    def _dedupe_keywords(cls, v):
        # Set semantics, first occurrence wins the position.
        return tuple(dict.fromkeys(v or ()))

    @property
    def crate_name(self) -> str:
        """File stem used by cargo and wasm-bindgen for this package."""
        return self.name.replace("-", "_")

    @classmethod
    def from_manifest(cls, manifest_path: Path) -> "ProjectDescriptor":
        """Read ``[package]`` from a ``Cargo.toml``.

        Raises:
            PreconditionError: If the manifest is unreadable, has no
                ``[package]`` table, or its values break the naming rules.
        """
        manifest_path = Path(manifest_path)
        try:
            with manifest_path.open("rb") as fh:
                data = tomllib.load(fh)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise PreconditionError(
                f"Cannot read {manifest_path.name}: {exc}", manifest_path
            ) from exc

        package = data.get("package")
        if not isinstance(package, dict):
            raise PreconditionError(
                f"No [package] table in {manifest_path.name}", manifest_path
            )
        try:
            return cls(
                name=package.get("name", ""),
                description=package.get("description", ""),
                version=package.get("version", ""),
                authors=package.get("authors", []),
                keywords=package.get("keywords", []),
            )
        except ValidationError as exc:
            problems = "; ".join(err["msg"] for err in exc.errors())
            raise PreconditionError(
                f"Invalid package metadata in {manifest_path.name}: {problems}",
                manifest_path,
            ) from exc


__all__ = ["OwnableKind", "ProjectDescriptor", "normalize_name", "KIND_MARKER", "MANIFEST_FILE"]
