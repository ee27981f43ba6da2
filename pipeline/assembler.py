"""PackageAssembler — lays out the output tree and writes the archive.

Output tree (nested layout):

    package.json        npm-style manifest (validated against contracts/package.v1.json)
    metadata.json       project descriptor
    chain.json          provenance record (validated against contracts/chain.v1.json)
    index.html          rendered by the asset processor
    thumbnail.webp      rendered by the asset processor
    ownable.js          JS bindings (+ ownable.d.ts when generated)
    images/ audio/      verbatim asset copies
    schema/*.json       the seven schema documents

With the flat layout the schema documents sit at the root instead, and the
project metadata.json replaces the schema document of the same name.

Archive: the compiled binary is written twice, as ``ownable.wasm`` and as
``ownable_bg.wasm`` (the name the bindings load), followed by every
directory and file of the tree in sorted order.  Timestamps are fixed so
that two builds of the same inputs differ only in chain.json.
"""

import json
import os
import zipfile
from pathlib import Path

import jsonschema

from app.models.project import ProjectDescriptor
from app.utils.logging import get_logger
from models.package import (
    REQUIRED_SCHEMA_FILES,
    ProvenanceRecord,
    SchemaBundle,
    ToolchainArtifacts,
)
from pipeline.config import OutputLayout
from pipeline.errors import AssemblyError

# Contract schemas, loaded once at import time relative to this module.
_CONTRACTS_DIR = Path(__file__).resolve().parent / "contracts"
_PACKAGE_SCHEMA = json.loads((_CONTRACTS_DIR / "package.v1.json").read_text(encoding="utf-8"))
_CHAIN_SCHEMA = json.loads((_CONTRACTS_DIR / "chain.v1.json").read_text(encoding="utf-8"))

BINARY_NAME = "ownable.wasm"
BINDINGS_BINARY_NAME = "ownable_bg.wasm"
BINDINGS_NAME = "ownable.js"
TYPINGS_NAME = "ownable.d.ts"
PACKAGE_FILE = "package.json"
METADATA_FILE = "metadata.json"
CHAIN_FILE = "chain.json"
SCHEMA_DIR = "schema"

# 1980-01-01 is the earliest timestamp the zip format can hold.
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


def package_manifest(descriptor: ProjectDescriptor) -> dict:
    return {
        "name": descriptor.name,
        "authors": list(descriptor.authors),
        "description": descriptor.description,
        "version": descriptor.version,
        "files": [BINDINGS_BINARY_NAME, BINDINGS_NAME, TYPINGS_NAME],
        "module": BINDINGS_NAME,
        "types": TYPINGS_NAME,
        "sideEffects": ["./snippets/*"],
        "keywords": list(descriptor.keywords),
    }


class PackageAssembler:
    """Stage package files into an output tree and archive it.

    Args:
        layout: Where the schema documents go.
    """

    def __init__(self, layout: OutputLayout = OutputLayout.NESTED) -> None:
        self.layout = OutputLayout(layout)
        self._log = get_logger("pipeline.assembler")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def stage(
        self,
        output_root: Path,
        descriptor: ProjectDescriptor,
        artifacts: ToolchainArtifacts,
        bundle: SchemaBundle,
        record: ProvenanceRecord,
    ) -> list[Path]:
        """Write manifest, metadata, provenance, bindings and schema files.

        Raises:
            AssemblyError: If a document breaks its contract or a write fails.
        """
        root = Path(output_root)
        manifest = package_manifest(descriptor)
        chain = record.model_dump(mode="json")
        try:
            jsonschema.validate(instance=manifest, schema=_PACKAGE_SCHEMA)
            jsonschema.validate(instance=chain, schema=_CHAIN_SCHEMA)
        except jsonschema.ValidationError as exc:
            raise AssemblyError(f"Package document breaks its contract: {exc.message}") from exc

        written: list[Path] = []
        try:
            schema_dir = root / SCHEMA_DIR if self.layout is OutputLayout.NESTED else root
            written.extend(bundle.write_to(schema_dir))

            # Written after the schema documents: in the flat layout the
            # descriptor wins the metadata.json name.
            written.append(self._write_json(root / PACKAGE_FILE, manifest))
            written.append(self._write_json(root / METADATA_FILE, descriptor.model_dump(mode="json")))
            written.append(self._write_json(root / CHAIN_FILE, chain))

            bindings = root / BINDINGS_NAME
            bindings.write_bytes(artifacts.bindings.read_bytes())
            written.append(bindings)
            if artifacts.typings is not None:
                typings = root / TYPINGS_NAME
                typings.write_bytes(artifacts.typings.read_bytes())
                written.append(typings)
        except OSError as exc:
            raise AssemblyError(f"Failed to stage package files: {exc}") from exc

        self._log.info("package_staged", layout=self.layout.value, files=len(written))
        return written

    def archive(self, output_root: Path, binary: Path, archive_path: Path) -> Path:
        """Write the archive for *output_root* and return its absolute path.

        The archive is first written next to *archive_path* with a
        ``.partial`` suffix and only renamed once complete.

        Raises:
            AssemblyError: If reading the tree or writing the archive fails.
        """
        root = Path(output_root)
        final = Path(archive_path).resolve()
        partial = final.with_name(final.name + ".partial")
        reserved = {BINARY_NAME, BINDINGS_BINARY_NAME}

        try:
            final.parent.mkdir(parents=True, exist_ok=True)
            binary_bytes = Path(binary).read_bytes()
            with zipfile.ZipFile(partial, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                self._add_file(zf, BINARY_NAME, binary_bytes)
                self._add_file(zf, BINDINGS_BINARY_NAME, binary_bytes)
                for rel, is_dir in self._walk(root):
                    if is_dir:
                        self._add_dir(zf, rel)
                    elif rel not in reserved:
                        self._add_file(zf, rel, (root / rel).read_bytes())
            os.replace(partial, final)
        except (OSError, zipfile.BadZipFile) as exc:
            partial.unlink(missing_ok=True)
            raise AssemblyError(f"Failed to create package: {exc}") from exc
        except BaseException:
            partial.unlink(missing_ok=True)
            raise

        self._log.info("package_archived", archive=str(final))
        return final

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _write_json(path: Path, document: dict) -> Path:
        path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        return path

    @staticmethod
    def _walk(root: Path) -> list[tuple[str, bool]]:
        """Every directory and file below *root* as (posix relative path, is_dir)."""
        entries: list[tuple[str, bool]] = []

        def visit(directory: Path) -> None:
            for child in sorted(directory.iterdir(), key=lambda p: p.name):
                rel = child.relative_to(root).as_posix()
                if child.is_dir():
                    entries.append((rel, True))
                    visit(child)
                else:
                    entries.append((rel, False))

        visit(root)
        return entries

    @staticmethod
    def _add_file(zf: zipfile.ZipFile, name: str, data: bytes) -> None:
        info = zipfile.ZipInfo(name, date_time=_ZIP_EPOCH)
        info.compress_type = zipfile.ZIP_DEFLATED
        info.external_attr = 0o644 << 16
        zf.writestr(info, data)

    @staticmethod
    def _add_dir(zf: zipfile.ZipFile, name: str) -> None:
        info = zipfile.ZipInfo(name.rstrip("/") + "/", date_time=_ZIP_EPOCH)
        info.external_attr = (0o40755 << 16) | 0x10
        zf.writestr(info, b"")


# ----------------------------------------------------------------------
# Post-build checks
# ----------------------------------------------------------------------

_REQUIRED_ENTRIES = (
    BINARY_NAME,
    BINDINGS_BINARY_NAME,
    BINDINGS_NAME,
    PACKAGE_FILE,
    METADATA_FILE,
    CHAIN_FILE,
    "index.html",
    "thumbnail.webp",
)


def verify_archive(archive_path: Path) -> list[str]:
    """Return a list of structural problems in a built archive (empty if none)."""
    problems: list[str] = []
    try:
        with zipfile.ZipFile(archive_path) as zf:
            names = set(zf.namelist())
            for entry in _REQUIRED_ENTRIES:
                if entry not in names:
                    problems.append(f"missing entry: {entry}")

            nested = all(f"{SCHEMA_DIR}/{n}" in names for n in REQUIRED_SCHEMA_FILES)
            prefix = f"{SCHEMA_DIR}/" if nested else ""
            for name in REQUIRED_SCHEMA_FILES:
                entry = prefix + name
                if entry not in names:
                    problems.append(f"missing schema document: {name}")
                    continue
                try:
                    json.loads(zf.read(entry))
                except ValueError:
                    problems.append(f"invalid schema document: {entry}")

            if BINARY_NAME in names and BINDINGS_BINARY_NAME in names:
                if zf.read(BINARY_NAME) != zf.read(BINDINGS_BINARY_NAME):
                    problems.append("binary copies differ")
    except (OSError, zipfile.BadZipFile) as exc:
        problems.append(f"unreadable archive: {exc}")
    return problems


def compare_archives(
    first: Path,
    second: Path,
    ignore: tuple[str, ...] = (CHAIN_FILE,),
) -> list[str]:
    """Return the differences between two archives, skipping *ignore* entries."""
    with zipfile.ZipFile(first) as a, zipfile.ZipFile(second) as b:
        names_a = [n for n in a.namelist() if n not in ignore]
        names_b = [n for n in b.namelist() if n not in ignore]
        differences = [f"only in {Path(first).name}: {n}" for n in sorted(set(names_a) - set(names_b))]
        differences += [f"only in {Path(second).name}: {n}" for n in sorted(set(names_b) - set(names_a))]
        for name in sorted(set(names_a) & set(names_b)):
            if a.read(name) != b.read(name):
                differences.append(f"content differs: {name}")
    return differences


__all__ = [
    "PackageAssembler",
    "package_manifest",
    "verify_archive",
    "compare_archives",
    "BINARY_NAME",
    "BINDINGS_BINARY_NAME",
    "BINDINGS_NAME",
    "CHAIN_FILE",
    "SCHEMA_DIR",
]
