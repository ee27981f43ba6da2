"""BuildOrchestrator — drives one ownable build from project to archive.

States (linear):

    VALIDATING -> COMPILING -> SCHEMA_RESOLVING -> ASSET_PROCESSING
      -> PROVENANCE_RECORDING -> ASSEMBLING -> DONE

Any exception moves the build to FAILED, removes the temporary output tree
(never the project files) and propagates unchanged.  Nothing is retried.

VALIDATING runs the project shape checks and the toolchain prerequisite
checks concurrently, then reads the kind marker and Cargo.toml and lets the
asset processor select and validate its files, so cheap asset problems are
reported before the compile starts.

Usage::

    orchestrator = BuildOrchestrator(Path.cwd(), config, SubprocessRunner())
    result = orchestrator.build(lambda: getpass("Seed phrase: "))
"""

import shutil
import tempfile
import zipfile
from enum import Enum
from pathlib import Path
from typing import Callable

from app.models.project import MANIFEST_FILE, OwnableKind, ProjectDescriptor
from app.utils.logging import get_logger
from models.package import BuildResult, ProvenanceRecord, SchemaBundle, ToolchainArtifacts
from pipeline.assembler import PackageAssembler
from pipeline.config import BuildConfig, CacheScope
from pipeline.errors import AssemblyError, SchemaIntegrityError
from pipeline.schema_cache import CacheKey, SchemaCache
from pipeline.toolchain import CommandRunner, SubprocessRunner, Toolchain
from pipeline.validator import validate_project
from processors.media import run_parallel
from processors.registry import processor_for
from provenance.recorder import ProvenanceRecorder, package_reference
from provenance.signer import Signer

SCHEMA_DIR = "schema"


class BuildState(str, Enum):
    VALIDATING           = "validating"
    COMPILING            = "compiling"
    SCHEMA_RESOLVING     = "schema_resolving"
    ASSET_PROCESSING     = "asset_processing"
    PROVENANCE_RECORDING = "provenance_recording"
    ASSEMBLING           = "assembling"
    DONE                 = "done"
    FAILED               = "failed"


class BuildOrchestrator:
    """Build one ownable project into ``<output_dir>/<name>.zip``.

    Args:
        project_root: The ownable project directory.
        config: Build configuration.
        runner: Command runner used for cargo / wasm-bindgen / wasm-opt.
        signer: Signing capability for the provenance record.
        output_dir: Where the archive is written (defaults to the CWD).
        schema_cache: Explicit cache; otherwise derived from ``config``.
        which: PATH lookup for the prerequisite checks.
        progress_callback: Receives a short message at every stage.
    """

    def __init__(
        self,
        project_root: Path,
        config: BuildConfig | None = None,
        runner: CommandRunner | None = None,
        signer: Signer | None = None,
        output_dir: Path | None = None,
        schema_cache: SchemaCache | None = None,
        which: Callable[[str], str | None] = shutil.which,
        progress_callback: Callable[[str], None] | None = None,
    ) -> None:
        self.project_root = Path(project_root).resolve()
        self.config = config or BuildConfig()
        self.output_dir = Path(output_dir) if output_dir is not None else Path.cwd()
        self.toolchain = Toolchain(runner or SubprocessRunner(), self.config, which=which)
        self.recorder = ProvenanceRecorder(signer, network=self.config.network)
        self.assembler = PackageAssembler(self.config.output_layout)
        self.schema_cache = schema_cache or self._default_cache()
        self.progress_callback = progress_callback

        self.state = BuildState.VALIDATING
        self.failed_stage: BuildState | None = None
        self.error: BaseException | None = None
        self.execution_log: list[str] = []
        self._log = get_logger("pipeline.orchestrator")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self, secret_provider: Callable[[], str]) -> BuildResult:
        """Run every stage and return the archive location.

        Raises:
            OwnableBuildError: Whatever the failing stage raised, unchanged.
        """
        output_tree: Path | None = None
        try:
            self._enter(BuildState.VALIDATING, "Checking environment and project...")
            run_parallel(
                lambda: validate_project(self.project_root),
                lambda: self.toolchain.check_prerequisites(self.project_root),
            )
            kind = OwnableKind.from_project(self.project_root)
            descriptor = ProjectDescriptor.from_manifest(self.project_root / MANIFEST_FILE)
            processor = processor_for(kind)
            assets = processor.discover(self.project_root, descriptor)

            self._enter(BuildState.COMPILING, "Building WebAssembly module...")
            artifacts = self.toolchain.compile(self.project_root, descriptor)

            self._enter(BuildState.SCHEMA_RESOLVING, "Checking schema status...")
            bundle = self.resolve_schema(kind, descriptor)

            self._enter(BuildState.ASSET_PROCESSING, "Processing assets...")
            try:
                output_tree = Path(tempfile.mkdtemp(prefix="ownable-"))
            except OSError as exc:
                raise AssemblyError(f"Cannot create output directory: {exc}") from exc
            processor.place(assets, self.project_root, output_tree)

            self._enter(BuildState.PROVENANCE_RECORDING, "Signing provenance record...")
            record = self.recorder.record(
                secret_provider,
                descriptor,
                package_reference(descriptor, artifacts.binary_digest()),
            )

            self._enter(BuildState.ASSEMBLING, "Creating package...")
            archive = self._assemble(output_tree, descriptor, artifacts, bundle, record)

            self._enter(BuildState.DONE, f"Package created at: {archive}")
            return BuildResult(
                archive_path=archive,
                name=descriptor.name,
                version=descriptor.version,
                kind=kind.value,
                record_id=record.id,
                files=self._archive_files(archive),
            )
        except BaseException as exc:
            self.failed_stage = self.state
            self.error = exc
            self.state = BuildState.FAILED
            self._log.error(
                "build_failed",
                stage=self.failed_stage.value,
                category=getattr(exc, "category", type(exc).__name__),
                error=str(exc),
            )
            raise
        finally:
            if output_tree is not None:
                self._cleanup(output_tree)

    def resolve_schema(self, kind: OwnableKind, descriptor: ProjectDescriptor) -> SchemaBundle:
        """Find or generate the schema bundle for this build.

        1. A complete bundle already in the project is trusted and written
           through to the cache.
        2. Otherwise a cached bundle is copied into the project.
        3. Otherwise the toolchain generates one, which must be complete.

        Raises:
            SchemaIntegrityError: If generation leaves an incomplete bundle.
            ToolchainError: If generation itself fails.
        """
        schema_dir = self.project_root / SCHEMA_DIR
        key = self._cache_key(kind, descriptor)

        project_bundle = self._project_bundle(schema_dir)
        if project_bundle is not None:
            self._progress("Found schema in project, storing for future use")
            self.schema_cache.store(key, schema_dir)
            return project_bundle

        if self.schema_cache.materialize(key, schema_dir):
            self._progress("Using cached schema files...")
            return SchemaBundle.from_directory(schema_dir)

        self._progress("Generating schema files...")
        self.toolchain.generate_schema(self.project_root)
        try:
            bundle = SchemaBundle.from_directory(schema_dir)
        except SchemaIntegrityError as exc:
            raise SchemaIntegrityError(
                f"Schema generation failed: {exc}",
                missing=exc.missing,
                malformed=exc.malformed,
            ) from exc
        self.schema_cache.store(key, schema_dir)
        return bundle

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _default_cache(self) -> SchemaCache:
        if self.config.cache_root is not None:
            return SchemaCache(self.config.cache_root)
        if self.config.cache_scope is CacheScope.PROJECT:
            return SchemaCache.project_store(self.project_root)
        return SchemaCache.global_store()

    def _cache_key(self, kind: OwnableKind, descriptor: ProjectDescriptor) -> CacheKey:
        if self.config.cache_scope is CacheScope.PROJECT:
            return CacheKey(kind, descriptor.name)
        return CacheKey(kind)

    def _project_bundle(self, schema_dir: Path) -> SchemaBundle | None:
        if not schema_dir.is_dir():
            return None
        try:
            return SchemaBundle.from_directory(schema_dir)
        except SchemaIntegrityError as exc:
            self._log.info("project_schema_incomplete", missing=exc.missing, malformed=exc.malformed)
            return None

    def _assemble(
        self,
        output_tree: Path,
        descriptor: ProjectDescriptor,
        artifacts: ToolchainArtifacts,
        bundle: SchemaBundle,
        record: ProvenanceRecord,
    ) -> Path:
        self.assembler.stage(output_tree, descriptor, artifacts, bundle, record)
        return self.assembler.archive(
            output_tree, artifacts.binary, self.output_dir / f"{descriptor.name}.zip"
        )

    @staticmethod
    def _archive_files(archive: Path) -> list[str]:
        with zipfile.ZipFile(archive) as zf:
            return [n for n in zf.namelist() if not n.endswith("/")]

    def _enter(self, state: BuildState, message: str) -> None:
        self.state = state
        self._log.info("build_stage", stage=state.value, project=str(self.project_root))
        self._progress(message)

    def _progress(self, message: str) -> None:
        self.execution_log.append(message)
        if self.progress_callback:
            self.progress_callback(message)

    def _cleanup(self, output_tree: Path) -> None:
        try:
            shutil.rmtree(output_tree)
        except OSError as exc:
            self._log.warning("output_tree_cleanup_failed", path=str(output_tree), error=str(exc))


__all__ = ["BuildOrchestrator", "BuildState"]
