"""Unit tests for SchemaBundle and SchemaCache.

Covers:
  1. Bundle loading: complete, missing documents, malformed JSON.
  2. Round trip: store then lookup returns byte-identical documents.
  3. Incomplete bundles are never stored and void an existing entry on lookup.
  4. Materialize copies every document into a project.
  5. Global vs project scoped locations.
  6. I/O problems degrade to a miss instead of raising.
"""

import json
from pathlib import Path

import pytest

from app.models.project import OwnableKind
from models.package import REQUIRED_SCHEMA_FILES, SchemaBundle
from pipeline.errors import SchemaIntegrityError
from pipeline.schema_cache import CacheKey, SchemaCache


def _write_bundle(directory: Path, skip: tuple[str, ...] = (), broken: tuple[str, ...] = ()) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    for name in REQUIRED_SCHEMA_FILES:
        if name in skip:
            continue
        body = b"{not json" if name in broken else json.dumps({"title": name}).encode()
        (directory / name).write_bytes(body)
    return directory


STATIC = CacheKey(OwnableKind.STATIC)


# ---------------------------------------------------------------------------
# SchemaBundle
# ---------------------------------------------------------------------------


def test_bundle_loads_all_documents(tmp_path: Path) -> None:
    bundle = SchemaBundle.from_directory(_write_bundle(tmp_path / "schema"))
    assert bundle.names == REQUIRED_SCHEMA_FILES
    assert bundle.document("config.json") == {"title": "config.json"}
    assert len(bundle.digest()) == 64


def test_bundle_reports_missing_and_malformed(tmp_path: Path) -> None:
    directory = _write_bundle(tmp_path / "schema", skip=("query_msg.json",), broken=("config.json",))
    with pytest.raises(SchemaIntegrityError) as excinfo:
        SchemaBundle.from_directory(directory)
    assert excinfo.value.missing == ["query_msg.json"]
    assert excinfo.value.malformed == ["config.json"]


def test_extra_files_are_ignored(tmp_path: Path) -> None:
    directory = _write_bundle(tmp_path / "schema")
    (directory / "notes.txt").write_text("scratch", encoding="utf-8")
    assert SchemaBundle.from_directory(directory).names == REQUIRED_SCHEMA_FILES


# ---------------------------------------------------------------------------
# Round trip
# ---------------------------------------------------------------------------


def test_store_then_lookup_is_byte_exact(tmp_path: Path) -> None:
    source = _write_bundle(tmp_path / "schema")
    cache = SchemaCache(tmp_path / "store")

    assert cache.store(STATIC, source) is True
    bundle = cache.lookup(STATIC)

    assert bundle is not None
    for name in REQUIRED_SCHEMA_FILES:
        assert bundle.documents[name] == (source / name).read_bytes()


def test_lookup_on_empty_store_is_a_miss(tmp_path: Path) -> None:
    assert SchemaCache(tmp_path / "store").lookup(STATIC) is None


def test_incomplete_bundle_is_not_stored(tmp_path: Path) -> None:
    source = _write_bundle(tmp_path / "schema", skip=("metadata.json",))
    cache = SchemaCache(tmp_path / "store")

    assert cache.store(STATIC, source) is False
    assert not cache.location(STATIC).exists()


def test_store_replaces_existing_entry(tmp_path: Path) -> None:
    cache = SchemaCache(tmp_path / "store")
    location = cache.location(STATIC)
    _write_bundle(location)
    (location / "stale.json").write_text("{}", encoding="utf-8")

    fresh = _write_bundle(tmp_path / "schema")
    (fresh / "execute_msg.json").write_text('{"title": "new"}', encoding="utf-8")
    assert cache.store(STATIC, fresh) is True

    assert not (location / "stale.json").exists()
    assert json.loads((location / "execute_msg.json").read_text()) == {"title": "new"}


@pytest.mark.parametrize("name", REQUIRED_SCHEMA_FILES)
def test_one_damaged_document_voids_the_entry(tmp_path: Path, name: str) -> None:
    cache = SchemaCache(tmp_path / "store")
    _write_bundle(cache.location(STATIC), broken=(name,))
    assert cache.lookup(STATIC) is None


# ---------------------------------------------------------------------------
# Materialize
# ---------------------------------------------------------------------------


def test_materialize_copies_every_document(tmp_path: Path) -> None:
    cache = SchemaCache(tmp_path / "store")
    cache.store(STATIC, _write_bundle(tmp_path / "generated"))

    target = tmp_path / "project" / "schema"
    assert cache.materialize(STATIC, target) is True
    assert sorted(p.name for p in target.iterdir()) == sorted(REQUIRED_SCHEMA_FILES)


def test_materialize_miss_writes_nothing(tmp_path: Path) -> None:
    target = tmp_path / "project" / "schema"
    assert SchemaCache(tmp_path / "store").materialize(STATIC, target) is False
    assert not target.exists()


# ---------------------------------------------------------------------------
# Scopes
# ---------------------------------------------------------------------------


def test_global_and_project_locations(tmp_path: Path) -> None:
    global_cache = SchemaCache.global_store(home=tmp_path)
    assert global_cache.location(STATIC) == tmp_path / ".ownables" / "schema" / "static-ownable"

    project_cache = SchemaCache.project_store(tmp_path / "proj")
    key = CacheKey(OwnableKind.MUSIC, "band")
    assert project_cache.location(key) == (
        tmp_path / "proj" / ".ownables" / "schema" / "band" / "music-ownable"
    )


def test_kinds_do_not_share_entries(tmp_path: Path) -> None:
    cache = SchemaCache(tmp_path / "store")
    cache.store(STATIC, _write_bundle(tmp_path / "schema"))
    assert cache.lookup(CacheKey(OwnableKind.MUSIC)) is None


# ---------------------------------------------------------------------------
# Degraded I/O
# ---------------------------------------------------------------------------


def test_store_failure_is_reported_not_raised(tmp_path: Path) -> None:
    blocker = tmp_path / "store"
    blocker.write_text("a file where the store directory should be", encoding="utf-8")
    cache = SchemaCache(blocker)

    assert cache.store(STATIC, _write_bundle(tmp_path / "schema")) is False


def test_unreadable_store_is_a_miss(tmp_path: Path) -> None:
    blocker = tmp_path / "store"
    blocker.write_text("not a directory", encoding="utf-8")
    assert SchemaCache(blocker).lookup(STATIC) is None
