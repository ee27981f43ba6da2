"""MusicProcessor — an audio track with cover art and a backdrop image.

Selection rules:
  audio     first file (sorted by name) in assets/audio/ with an allowed
            audio extension
  images    at least two files in assets/images/
  cover     the single image whose name contains "cover" or "front"
  backdrop  the single image whose name contains "backdrop" or "back"

Tags are matched case-insensitively on the file name.  An image carrying
both tag sets, or a tag set matched by zero or several images, is ambiguous.
The outcome only depends on file names, never on directory listing order.

Output:
  audio/<audio>, images/<cover>, images/<backdrop>   verbatim copies
  thumbnail.webp                                     from the cover only
  index.html                                         placeholders substituted
"""

from pathlib import Path

from app.models.project import OwnableKind, ProjectDescriptor
from models.package import MusicAssets
from pipeline.errors import PreconditionError, SelectionAmbiguityError
from pipeline.validator import ASSETS_DIR, AUDIO_DIR, IMAGES_DIR, visible_entries
from processors.base import AssetProcessor
from processors.media import (
    ALLOWED_AUDIO_FORMATS,
    run_parallel,
    validate_audio,
    validate_image,
    write_thumbnail,
)

COVER_TAGS: tuple[str, ...] = ("cover", "front")
BACKDROP_TAGS: tuple[str, ...] = ("backdrop", "back")


def _has_tag(name: str, tags: tuple[str, ...]) -> bool:
    lowered = name.lower()
    return any(tag in lowered for tag in tags)


def select_cover_and_backdrop(images: list[Path], directory: Path | None = None) -> tuple[Path, Path]:
    """Pick the cover and backdrop from *images* by filename tags.

    Raises:
        SelectionAmbiguityError: Unless exactly one image is tagged as cover
            and exactly one (other) image as backdrop.
    """
    covers = sorted(
        (p for p in images if _has_tag(p.name, COVER_TAGS) and not _has_tag(p.name, BACKDROP_TAGS)),
        key=lambda p: p.name,
    )
    backdrops = sorted(
        (p for p in images if _has_tag(p.name, BACKDROP_TAGS) and not _has_tag(p.name, COVER_TAGS)),
        key=lambda p: p.name,
    )
    both = sorted(p.name for p in images if _has_tag(p.name, COVER_TAGS) and _has_tag(p.name, BACKDROP_TAGS))

    if both:
        raise SelectionAmbiguityError(
            f"Image names carry both cover and backdrop tags: {', '.join(both)}",
            directory,
            both,
        )
    if len(covers) != 1:
        raise SelectionAmbiguityError(
            "Exactly one cover art image is required. Please name one image with "
            f"'cover' or 'front' in the filename (matched: {[p.name for p in covers]})",
            directory,
            [p.name for p in covers],
        )
    if len(backdrops) != 1:
        raise SelectionAmbiguityError(
            "Exactly one backdrop image is required. Please name one image with "
            f"'backdrop' or 'back' in the filename (matched: {[p.name for p in backdrops]})",
            directory,
            [p.name for p in backdrops],
        )
    return covers[0], backdrops[0]


class MusicProcessor(AssetProcessor):
    kind = OwnableKind.MUSIC

    def discover(self, project_root: Path, descriptor: ProjectDescriptor) -> MusicAssets:
        assets_dir = Path(project_root) / ASSETS_DIR
        audio_dir = assets_dir / AUDIO_DIR
        images_dir = assets_dir / IMAGES_DIR

        audio_exists, images_exist = run_parallel(audio_dir.is_dir, images_dir.is_dir)
        if not audio_exists:
            raise PreconditionError("No audio directory found in assets", audio_dir)
        if not images_exist:
            raise PreconditionError("No images directory found in assets", images_dir)

        audio_files, images = run_parallel(
            lambda: sorted((p for p in visible_entries(audio_dir) if p.is_file()), key=lambda p: p.name),
            lambda: sorted((p for p in visible_entries(images_dir) if p.is_file()), key=lambda p: p.name),
        )

        audio = next((p for p in audio_files if p.suffix.lower() in ALLOWED_AUDIO_FORMATS), None)
        if audio is None:
            raise SelectionAmbiguityError(
                f"No audio file ({', '.join(ALLOWED_AUDIO_FORMATS)}) found in assets/audio directory",
                audio_dir,
            )

        if len(images) < 2:
            raise SelectionAmbiguityError(
                "At least two images are required in assets/images directory",
                images_dir,
                [p.name for p in images],
            )

        cover, backdrop = select_cover_and_backdrop(images, images_dir)

        run_parallel(
            lambda: validate_audio(audio),
            lambda: validate_image(cover),
            lambda: validate_image(backdrop),
        )
        self._log.info("asset_selected", audio=audio.name, cover=cover.name, backdrop=backdrop.name)
        return MusicAssets(audio=audio, cover=cover, backdrop=backdrop)

    def targets(self, assets: MusicAssets) -> list[Path]:
        return [
            Path(AUDIO_DIR) / assets.audio.name,
            Path(IMAGES_DIR) / assets.cover.name,
            Path(IMAGES_DIR) / assets.backdrop.name,
        ]

    def _write_assets(self, assets: MusicAssets, output_root: Path) -> None:
        (output_root / AUDIO_DIR).mkdir(parents=True, exist_ok=True)
        (output_root / IMAGES_DIR).mkdir(parents=True, exist_ok=True)
        run_parallel(
            lambda: self._copy(assets.audio, output_root / AUDIO_DIR / assets.audio.name),
            lambda: self._copy(assets.cover, output_root / IMAGES_DIR / assets.cover.name),
            lambda: self._copy(assets.backdrop, output_root / IMAGES_DIR / assets.backdrop.name),
            lambda: write_thumbnail(assets.cover, output_root),
        )


__all__ = ["MusicProcessor", "select_cover_and_backdrop", "COVER_TAGS", "BACKDROP_TAGS"]
