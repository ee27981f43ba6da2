"""Map an ownable kind to its asset processor."""

from app.models.project import OwnableKind
from processors.base import AssetProcessor
from processors.music import MusicProcessor
from processors.static import StaticProcessor

_PROCESSORS: dict[OwnableKind, type[AssetProcessor]] = {
    OwnableKind.STATIC: StaticProcessor,
    OwnableKind.MUSIC: MusicProcessor,
}


def processor_for(kind: OwnableKind) -> AssetProcessor:
    return _PROCESSORS[OwnableKind(kind)]()
