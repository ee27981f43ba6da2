"""Shared media rules for every ownable kind.

Images:
  - extension in .jpg .jpeg .png .webp, decoded format JPEG / PNG / WEBP
  - width and height each within [300, 4096], bounds inclusive
  - at most 50 MiB on disk
Audio:
  - extension in .mp3 .wav .ogg
  - at most 50 MiB on disk
Thumbnail:
  - fit inside 300x300 (aspect ratio kept, no cropping), WebP quality 80
  - at most 256 KiB, otherwise the source is too detailed to use

Every violation is an AssetValidationError naming the file, the rule and the
limit.
"""

import io
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable

from PIL import Image, ImageOps, UnidentifiedImageError

from app.utils.logging import get_logger
from pipeline.errors import AssetValidationError

logger = get_logger("processors.media")

MAX_IMAGE_SIZE = 50 * 1024 * 1024
MAX_AUDIO_SIZE = 50 * 1024 * 1024
MIN_IMAGE_DIMENSIONS = (300, 300)
MAX_IMAGE_DIMENSIONS = (4096, 4096)
ALLOWED_IMAGE_FORMATS: tuple[str, ...] = (".jpg", ".jpeg", ".png", ".webp")
ALLOWED_AUDIO_FORMATS: tuple[str, ...] = (".mp3", ".wav", ".ogg")
_DECODED_IMAGE_FORMATS = frozenset({"JPEG", "PNG", "WEBP"})

THUMBNAIL_NAME = "thumbnail.webp"
THUMBNAIL_BOX = (300, 300)
THUMBNAIL_QUALITY = 80
MAX_THUMBNAIL_SIZE = 256 * 1024


def _megabytes(n: int) -> str:
    return f"{n // (1024 * 1024)}MB"


def validate_image(path: Path) -> tuple[int, int]:
    """Check *path* against the image rules; return ``(width, height)``.

    Raises:
        AssetValidationError: On the first rule the image breaks.
    """
    path = Path(path)
    if path.suffix.lower() not in ALLOWED_IMAGE_FORMATS:
        raise AssetValidationError(
            path, "unsupported image format", ", ".join(ALLOWED_IMAGE_FORMATS)
        )
    if not path.is_file():
        raise AssetValidationError(path, "image file not found", "must exist")

    max_w, max_h = MAX_IMAGE_DIMENSIONS
    try:
        with Image.open(path) as img:
            fmt = img.format
            width, height = img.size
    except Image.DecompressionBombError as exc:
        raise AssetValidationError(
            path, "image dimensions too large", f"maximum {max_w}x{max_h}", str(exc)
        ) from exc
    except (UnidentifiedImageError, OSError) as exc:
        raise AssetValidationError(
            path, "unreadable image", ", ".join(sorted(_DECODED_IMAGE_FORMATS)), str(exc)
        ) from exc

    if fmt not in _DECODED_IMAGE_FORMATS:
        raise AssetValidationError(
            path,
            "unsupported image encoding",
            ", ".join(sorted(_DECODED_IMAGE_FORMATS)),
            f"decoded as {fmt}",
        )

    min_w, min_h = MIN_IMAGE_DIMENSIONS
    if width < min_w or height < min_h:
        raise AssetValidationError(
            path, "image dimensions too small", f"minimum {min_w}x{min_h}", f"got {width}x{height}"
        )

    if width > max_w or height > max_h:
        raise AssetValidationError(
            path, "image dimensions too large", f"maximum {max_w}x{max_h}", f"got {width}x{height}"
        )

    size = path.stat().st_size
    if size > MAX_IMAGE_SIZE:
        raise AssetValidationError(
            path, "image file too large", _megabytes(MAX_IMAGE_SIZE), f"got {size} bytes"
        )

    logger.debug("image_valid", path=str(path), width=width, height=height, size=size)
    return width, height


def validate_audio(path: Path) -> int:
    """Check *path* against the audio rules; return its size in bytes.

    Raises:
        AssetValidationError: On the first rule the file breaks.
    """
    path = Path(path)
    if path.suffix.lower() not in ALLOWED_AUDIO_FORMATS:
        raise AssetValidationError(
            path, "unsupported audio format", ", ".join(ALLOWED_AUDIO_FORMATS)
        )
    if not path.is_file():
        raise AssetValidationError(path, "audio file not found", "must exist")

    size = path.stat().st_size
    if size > MAX_AUDIO_SIZE:
        raise AssetValidationError(
            path, "audio file too large", _megabytes(MAX_AUDIO_SIZE), f"got {size} bytes"
        )

    logger.debug("audio_valid", path=str(path), size=size)
    return size


def render_thumbnail(source: Path) -> bytes:
    """Return the WebP thumbnail bytes for *source*.

    Raises:
        AssetValidationError: If the encoded thumbnail exceeds the size ceiling.
    """
    with Image.open(source) as img:
        img = ImageOps.exif_transpose(img)
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA" if "A" in img.getbands() or "transparency" in img.info else "RGB")
        thumb = ImageOps.contain(img, THUMBNAIL_BOX, method=Image.Resampling.LANCZOS)

    buf = io.BytesIO()
    thumb.save(buf, format="WEBP", quality=THUMBNAIL_QUALITY)
    data = buf.getvalue()
    if len(data) > MAX_THUMBNAIL_SIZE:
        raise AssetValidationError(
            source,
            "thumbnail exceeds size limit; source image is too detailed",
            f"{MAX_THUMBNAIL_SIZE // 1024}KB",
            f"got {len(data)} bytes",
        )
    return data


def write_thumbnail(source: Path, output_root: Path) -> Path:
    """Render the thumbnail of *source* into ``output_root/thumbnail.webp``."""
    data = render_thumbnail(source)
    target = Path(output_root) / THUMBNAIL_NAME
    target.write_bytes(data)
    logger.debug("thumbnail_written", source=str(source), size=len(data))
    return target


def run_parallel(*calls: Callable[[], Any]) -> list[Any]:
    """Run independent *calls* concurrently and return their results in order.

    Waits for every call to finish before returning or raising, so no worker
    is still writing when the caller starts a rollback.  The first failure
    (in argument order) is re-raised.
    """
    if not calls:
        return []
    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        futures = [pool.submit(call) for call in calls]
    # Leaving the context manager joined every worker.
    for future in futures:
        exc = future.exception()
        if exc is not None:
            raise exc
    return [future.result() for future in futures]


__all__ = [
    "validate_image",
    "validate_audio",
    "render_thumbnail",
    "write_thumbnail",
    "run_parallel",
    "ALLOWED_IMAGE_FORMATS",
    "ALLOWED_AUDIO_FORMATS",
    "MIN_IMAGE_DIMENSIONS",
    "MAX_IMAGE_DIMENSIONS",
    "MAX_IMAGE_SIZE",
    "MAX_AUDIO_SIZE",
    "MAX_THUMBNAIL_SIZE",
    "THUMBNAIL_NAME",
]
