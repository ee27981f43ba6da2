"""SchemaCache — content store of generated schema bundles.

Schema generation runs ``cargo run --example schema`` and is slow, while the
documents it emits are interchangeable between projects of the same kind.
The cache keeps one complete bundle per key:

    global scope:   {root}/{kind}/            key = CacheKey(kind)
    project scope:  {root}/{project}/{kind}/  key = CacheKey(kind, project)

Default roots:
    global:   ~/.ownables/schema
    project:  <project>/.ownables/schema

Freshness is the presence (and parseability) of the seven required file
names and nothing else.  :meth:`SchemaBundle.digest` is logged on store so
that a content-hash check can be added later, but lookup never compares it.

Every I/O problem is logged and reported as a miss: a build must never fail
because the cache is absent, unreadable or corrupt.  Writers of the same key
race harmlessly (last writer wins).
"""

import shutil
from pathlib import Path
from typing import NamedTuple

from app.models.project import OwnableKind
from app.utils.logging import get_logger
from models.package import REQUIRED_SCHEMA_FILES, SchemaBundle
from pipeline.errors import SchemaIntegrityError

STORE_DIRNAME = ".ownables"


class CacheKey(NamedTuple):
    kind: OwnableKind
    project: str | None = None


class SchemaCache:
    """Read-through / write-through store of complete schema bundles.

    Args:
        root: Directory holding every cache entry.  Injected so that tests
            (and the project-scoped store) can point it anywhere.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self._log = get_logger("pipeline.schema_cache")

    @classmethod
    def global_store(cls, home: Path | None = None) -> "SchemaCache":
        """Machine-wide store under the user's home directory."""
        base = Path(home) if home is not None else Path.home()
        return cls(base / STORE_DIRNAME / "schema")

    @classmethod
    def project_store(cls, project_root: Path) -> "SchemaCache":
        """Store inside a hidden directory of the project itself."""
        return cls(Path(project_root) / STORE_DIRNAME / "schema")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def location(self, key: CacheKey) -> Path:
        kind = OwnableKind(key.kind).value
        if key.project:
            return self.root / key.project / kind
        return self.root / kind

    def lookup(self, key: CacheKey) -> SchemaBundle | None:
        """Return the cached bundle for *key*, or ``None``.

        Any missing or malformed document voids the whole entry.
        """
        location = self.location(key)
        try:
            if not location.is_dir():
                self._log.info("schema_cache_miss", location=str(location), reason="absent")
                return None
            bundle = SchemaBundle.from_directory(location)
        except SchemaIntegrityError as exc:
            self._log.info(
                "schema_cache_miss",
                location=str(location),
                reason="incomplete",
                missing=exc.missing,
                malformed=exc.malformed,
            )
            return None
        except OSError as exc:
            self._log.warning("schema_cache_unreadable", location=str(location), error=str(exc))
            return None

        self._log.info("schema_cache_hit", location=str(location))
        return bundle

    def store(self, key: CacheKey, source_dir: Path) -> bool:
        """Replace the entry for *key* with the bundle found in *source_dir*.

        Incomplete bundles are never stored.  Returns ``True`` on success.
        """
        location = self.location(key)
        try:
            bundle = SchemaBundle.from_directory(source_dir)
        except SchemaIntegrityError as exc:
            self._log.warning(
                "schema_cache_store_skipped",
                source=str(source_dir),
                missing=exc.missing,
                malformed=exc.malformed,
            )
            return False
        except OSError as exc:
            self._log.warning("schema_cache_store_failed", source=str(source_dir), error=str(exc))
            return False

        try:
            if location.exists():
                shutil.rmtree(location)
            bundle.write_to(location)
        except OSError as exc:
            self._log.warning("schema_cache_store_failed", location=str(location), error=str(exc))
            return False

        self._log.info(
            "schema_cache_stored",
            location=str(location),
            documents=len(REQUIRED_SCHEMA_FILES),
            digest=bundle.digest(),
        )
        return True

    def materialize(self, key: CacheKey, project_schema_dir: Path) -> bool:
        """Copy every cached document for *key* into *project_schema_dir*.

        Returns ``False`` when the entry is unusable or the copy fails.
        """
        bundle = self.lookup(key)
        if bundle is None:
            return False
        try:
            bundle.write_to(project_schema_dir)
        except OSError as exc:
            self._log.warning(
                "schema_cache_materialize_failed",
                target=str(project_schema_dir),
                error=str(exc),
            )
            return False

        self._log.info("schema_cache_materialized", target=str(project_schema_dir))
        return True


__all__ = ["SchemaCache", "CacheKey", "STORE_DIRNAME"]
