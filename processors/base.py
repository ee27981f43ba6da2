"""Common contract of the kind-specific asset processors.

A processor works in two steps:

  discover(project_root, descriptor) -> AssetManifest
      Read-only.  Selects the files the kind needs and validates them, so the
      orchestrator can run it before the (slow) compile.

  place(assets, project_root, output_root) -> list[Path]
      Copies the selected files into the output tree, derives the thumbnail
      and renders index.html.  On failure every planned target is removed
      again before the error propagates; filesystem errors surface as
      AssemblyError.

``process`` chains both.
"""

import shutil
from abc import ABC, abstractmethod
from pathlib import Path

from app.models.project import OwnableKind, ProjectDescriptor
from app.utils.logging import get_logger
from models.package import AssetManifest
from pipeline.errors import AssemblyError
from pipeline.validator import INDEX_FILE
from processors.media import THUMBNAIL_NAME
from processors.placeholder import render_index


class AssetProcessor(ABC):
    kind: OwnableKind

    def __init__(self) -> None:
        self._log = get_logger(f"processors.{self.kind.name.lower()}")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @abstractmethod
    def discover(self, project_root: Path, descriptor: ProjectDescriptor) -> AssetManifest:
        """Select and validate the assets of this kind without writing anything."""

    def place(self, assets: AssetManifest, project_root: Path, output_root: Path) -> list[Path]:
        output_root = Path(output_root)
        planned = [output_root / rel for rel in self.targets(assets)]
        planned += [output_root / THUMBNAIL_NAME, output_root / INDEX_FILE]
        try:
            self._write_assets(assets, output_root)
            render_index(self.kind, assets, project_root, output_root)
        except BaseException as exc:
            for path in planned:
                path.unlink(missing_ok=True)
            self._log.warning("assets_rolled_back", output_root=str(output_root))
            if isinstance(exc, OSError):
                raise AssemblyError(f"Failed to place assets: {exc}") from exc
            raise
        self._log.info("assets_placed", files=[str(p.relative_to(output_root)) for p in planned])
        return planned

    def process(
        self, project_root: Path, output_root: Path, descriptor: ProjectDescriptor
    ) -> AssetManifest:
        assets = self.discover(project_root, descriptor)
        self.place(assets, project_root, output_root)
        return assets

    @abstractmethod
    def targets(self, assets: AssetManifest) -> list[Path]:
        """Relative output paths of the verbatim copies for *assets*."""

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    @abstractmethod
    def _write_assets(self, assets: AssetManifest, output_root: Path) -> None:
        """Copy the assets and write the thumbnail into *output_root*."""

    @staticmethod
    def _copy(source: Path, target: Path) -> Path:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
        return target


__all__ = ["AssetProcessor"]
