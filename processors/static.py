"""StaticProcessor — one display image per ownable.

Selection: the image file (.jpg .jpeg .png .webp) in assets/images/ whose
name starts with the project name; other files are ignored.  When several
do, the one whose stem is exactly the project name wins; anything else is
ambiguous and fails the build.

Output:
  images/<image>     verbatim copy
  thumbnail.webp     derived from the same image
  index.html         PLACEHOLDER2_IMG substituted
"""

from pathlib import Path

from app.models.project import OwnableKind, ProjectDescriptor
from models.package import StaticAssets
from pipeline.errors import PreconditionError, SelectionAmbiguityError
from pipeline.validator import ASSETS_DIR, IMAGES_DIR, visible_entries
from processors.base import AssetProcessor
from processors.media import ALLOWED_IMAGE_FORMATS, run_parallel, validate_image, write_thumbnail


class StaticProcessor(AssetProcessor):
    kind = OwnableKind.STATIC

    def discover(self, project_root: Path, descriptor: ProjectDescriptor) -> StaticAssets:
        images_dir = Path(project_root) / ASSETS_DIR / IMAGES_DIR
        if not images_dir.is_dir():
            raise PreconditionError("No images directory found in assets directory.", images_dir)
        image = self._select_image(images_dir, descriptor.name)
        validate_image(image)
        self._log.info("asset_selected", role="image", file=image.name)
        return StaticAssets(image=image)

    def targets(self, assets: StaticAssets) -> list[Path]:
        return [Path(IMAGES_DIR) / assets.image.name]

    def _write_assets(self, assets: StaticAssets, output_root: Path) -> None:
        (output_root / IMAGES_DIR).mkdir(parents=True, exist_ok=True)
        run_parallel(
            lambda: self._copy(assets.image, output_root / IMAGES_DIR / assets.image.name),
            lambda: write_thumbnail(assets.image, output_root),
        )

    @staticmethod
    def _select_image(images_dir: Path, project_name: str) -> Path:
        candidates = sorted(
            (
                p
                for p in visible_entries(images_dir)
                if p.is_file()
                and p.name.startswith(project_name)
                and p.suffix.lower() in ALLOWED_IMAGE_FORMATS
            ),
            key=lambda p: p.name,
        )
        if not candidates:
            raise SelectionAmbiguityError(
                f"No image file found for project {project_name} in assets/images",
                images_dir,
            )
        if len(candidates) == 1:
            return candidates[0]

        exact = [p for p in candidates if p.stem == project_name]
        if len(exact) == 1:
            return exact[0]
        raise SelectionAmbiguityError(
            f"Several images match project {project_name} in assets/images: "
            f"{', '.join(p.name for p in candidates)}",
            images_dir,
            [p.name for p in candidates],
        )


__all__ = ["StaticProcessor"]
