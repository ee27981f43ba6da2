"""Project shape checks run before anything expensive.

Checks, in order, stopping at the first failure:
  1. Cargo.toml exists
  2. src/ exists
  3. assets/ exists
  4. assets/index.html exists
  5. assets/images/ exists
  6. assets/images/ is non-empty

Read-only.  Each failure is a PreconditionError carrying the expected path.
"""

from pathlib import Path

from app.models.project import MANIFEST_FILE
from app.utils.logging import get_logger
from pipeline.errors import PreconditionError

logger = get_logger("pipeline.validator")

ASSETS_DIR = "assets"
INDEX_FILE = "index.html"
IMAGES_DIR = "images"
AUDIO_DIR = "audio"


def visible_entries(directory: Path) -> list[Path]:
    """Entries of *directory* that are not hidden (``.DS_Store`` etc.)."""
    return [p for p in directory.iterdir() if not p.name.startswith(".")]


def validate_project(project_root: Path) -> None:
    """Check that *project_root* has the shape the pipeline requires.

    Raises:
        PreconditionError: For the first missing precondition.
    """
    root = Path(project_root)

    manifest = root / MANIFEST_FILE
    if not manifest.is_file():
        raise PreconditionError(
            f"No {MANIFEST_FILE} found in {root}. "
            "Please run this command in an Ownable project directory.",
            manifest,
        )

    src = root / "src"
    if not src.is_dir():
        raise PreconditionError(
            "No src directory found. Please ensure this is a valid Ownable project.",
            src,
        )

    assets = root / ASSETS_DIR
    if not assets.is_dir():
        raise PreconditionError(
            "No assets directory found. Please ensure this is a valid Ownable project.",
            assets,
        )

    index = assets / INDEX_FILE
    if not index.is_file():
        raise PreconditionError(f"No {INDEX_FILE} found in assets directory.", index)

    images = assets / IMAGES_DIR
    if not images.is_dir():
        raise PreconditionError("No images directory found in assets directory.", images)

    if not visible_entries(images):
        raise PreconditionError("No images found in assets/images directory.", images)

    logger.debug("project_valid", project_root=str(root))


__all__ = ["validate_project", "visible_entries", "ASSETS_DIR", "INDEX_FILE", "IMAGES_DIR", "AUDIO_DIR"]
