"""HTML placeholder substitution for the ownable display document.

Project templates ship ``assets/index.html`` with placeholder tokens that are
replaced by the packaged asset paths:

  static-ownable:  PLACEHOLDER2_IMG                -> images/<image>
  music-ownable:   src="PLACEHOLDER2_COVER"        -> src="images/<cover>"
                   src="PLACEHOLDER2_BACKGROUND"   -> src="images/<backdrop>"
                   src="PLACEHOLDER2_AUDIO"        -> src="audio/<audio>"
"""

from pathlib import Path

from app.models.project import OwnableKind
from models.package import AssetManifest, MusicAssets, StaticAssets
from pipeline.errors import AssemblyError, PreconditionError
from pipeline.validator import ASSETS_DIR, INDEX_FILE


def placeholders_for(kind: OwnableKind, assets: AssetManifest) -> dict[str, str]:
    """Return the token -> replacement map for *kind*."""
    if kind is OwnableKind.STATIC and isinstance(assets, StaticAssets):
        return {"PLACEHOLDER2_IMG": f"images/{assets.image.name}"}
    if kind is OwnableKind.MUSIC and isinstance(assets, MusicAssets):
        return {
            'src="PLACEHOLDER2_COVER"': f'src="images/{assets.cover.name}"',
            'src="PLACEHOLDER2_BACKGROUND"': f'src="images/{assets.backdrop.name}"',
            'src="PLACEHOLDER2_AUDIO"': f'src="audio/{assets.audio.name}"',
        }
    raise TypeError(f"{type(assets).__name__} does not belong to {kind.value}")


def substitute(html: str, replacements: dict[str, str]) -> str:
    for token, value in replacements.items():
        html = html.replace(token, value)
    return html


def render_index(
    kind: OwnableKind,
    assets: AssetManifest,
    project_root: Path,
    output_root: Path,
) -> Path:
    """Write ``output_root/index.html`` from the project's template.

    Raises:
        PreconditionError: If the template cannot be read as UTF-8 text.
        AssemblyError: If the rendered document cannot be written.
    """
    template = Path(project_root) / ASSETS_DIR / INDEX_FILE
    try:
        html = template.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise PreconditionError(f"Cannot read {ASSETS_DIR}/{INDEX_FILE} as UTF-8: {exc}", template) from exc
    target = Path(output_root) / INDEX_FILE
    try:
        target.write_text(substitute(html, placeholders_for(kind, assets)), encoding="utf-8")
    except OSError as exc:
        raise AssemblyError(f"Failed to write {INDEX_FILE}: {exc}") from exc
    return target
