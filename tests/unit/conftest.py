"""Shared fixtures for the ownables unit tests.

  - FakeRunner: stands in for cargo / wasm-bindgen / wasm-opt / rustup and
    writes the files the real tools would produce.
  - make_image: writes a real image of a given size with Pillow.
  - make_project: lays out a complete static or music ownable project.

No network, no Rust toolchain.
"""

import json
import tomllib
from pathlib import Path

import pytest
from PIL import Image

from models.package import REQUIRED_SCHEMA_FILES
from pipeline.toolchain import WASM_TARGET, CommandResult

STATIC_INDEX = '<html><body><img src="PLACEHOLDER2_IMG" alt="ownable"></body></html>\n'
MUSIC_INDEX = (
    "<html><body>"
    '<img class="cover" src="PLACEHOLDER2_COVER">'
    '<img class="backdrop" src="PLACEHOLDER2_BACKGROUND">'
    '<audio src="PLACEHOLDER2_AUDIO"></audio>'
    "</body></html>\n"
)


def schema_documents() -> dict[str, bytes]:
    """A complete, valid schema bundle as raw bytes."""
    return {
        name: json.dumps({"title": name.removesuffix(".json"), "type": "object"}).encode("utf-8")
        for name in REQUIRED_SCHEMA_FILES
    }


# ---------------------------------------------------------------------------
# Fake toolchain
# ---------------------------------------------------------------------------


class FakeRunner:
    """Records every command and fakes its filesystem effects.

    Args:
        fail: ``{command: exit_code}`` for commands that should fail.
        schema: Documents ``cargo run --example schema`` writes
            (defaults to a complete bundle).
    """

    def __init__(self, fail: dict[str, int] | None = None, schema: dict[str, bytes] | None = None):
        self.fail = dict(fail or {})
        self.schema = schema_documents() if schema is None else schema
        self.calls: list[tuple[str, list[str], dict | None]] = []

    def commands(self) -> list[str]:
        return [" ".join([cmd, *args]) for cmd, args, _ in self.calls]

    def run(self, command, args, workdir, env=None):
        self.calls.append((command, list(args), env))
        if command in self.fail:
            return CommandResult("", f"{command}: simulated failure", self.fail[command])

        root = Path(workdir)
        if command == "rustup":
            return CommandResult(f"{WASM_TARGET}\nx86_64-unknown-linux-gnu\n", "", 0)
        if command == "cargo" and args[:1] == ["build"]:
            # Cargo writes every crate's .wasm; the test project has one.
            release = root / "target" / WASM_TARGET / "release"
            release.mkdir(parents=True, exist_ok=True)
            for cargo_name in self._crate_names(root):
                (release / f"{cargo_name}.wasm").write_bytes(b"\0asm\x01\0\0\0" + cargo_name.encode())
        elif command == "wasm-bindgen":
            module = Path(args[0])
            out_dir = root / args[args.index("--out-dir") + 1]
            out_dir.mkdir(parents=True, exist_ok=True)
            stem = module.stem
            (out_dir / f"{stem}_bg.wasm").write_bytes((root / module).read_bytes())
            (out_dir / f"{stem}.js").write_text(
                f"import init from './{stem}_bg.wasm';\nexport default init;\n", encoding="utf-8"
            )
            (out_dir / f"{stem}.d.ts").write_text("export default function init(): void;\n", encoding="utf-8")
        elif command == "cargo" and args[:2] == ["run", "--example"]:
            schema_dir = root / "schema"
            schema_dir.mkdir(parents=True, exist_ok=True)
            for name, data in self.schema.items():
                (schema_dir / name).write_bytes(data)
        return CommandResult("", "", 0)

    @staticmethod
    def _crate_names(root: Path) -> list[str]:
        with (root / "Cargo.toml").open("rb") as fh:
            name = tomllib.load(fh)["package"]["name"]
        return [name.strip().lower().replace("-", "_")]


def present(tool: str) -> str:
    return f"/usr/bin/{tool}"


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


# ---------------------------------------------------------------------------
# Project builders
# ---------------------------------------------------------------------------


def _write_image(path: Path, size: tuple[int, int], fmt: str | None = None, color=(200, 120, 40)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    fmt = fmt or {".jpg": "JPEG", ".jpeg": "JPEG", ".png": "PNG", ".webp": "WEBP"}.get(
        path.suffix.lower(), "PNG"
    )
    Image.new("RGB", size, color).save(path, format=fmt)
    return path


@pytest.fixture
def make_image():
    """Factory: ``make_image(path, (w, h), fmt=None)`` writes a solid-colour image."""
    return _write_image


def _write_project(
    root: Path,
    kind: str = "static-ownable",
    name: str = "sun-icon",
    version: str = "0.1.0",
    keywords: tuple[str, ...] = ("ownable", "static", "ownable"),
    images: dict[str, tuple[int, int]] | None = None,
    audio: dict[str, bytes] | None = None,
    schema: dict[str, bytes] | None = None,
) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    (root / "type.txt").write_text(f"{kind}\n", encoding="utf-8")
    keyword_list = ", ".join(f'"{k}"' for k in keywords)
    (root / "Cargo.toml").write_text(
        "[package]\n"
        f'name = "{name}"\n'
        f'version = "{version}"\n'
        'description = "An ownable for tests"\n'
        'authors = ["Test Author <test@example.com>"]\n'
        f"keywords = [{keyword_list}]\n"
        'edition = "2021"\n',
        encoding="utf-8",
    )
    (root / "src").mkdir(exist_ok=True)
    (root / "src" / "lib.rs").write_text("// contract\n", encoding="utf-8")

    assets = root / "assets"
    assets.mkdir(exist_ok=True)
    music = kind == "music-ownable"
    (assets / "index.html").write_text(MUSIC_INDEX if music else STATIC_INDEX, encoding="utf-8")

    if images is None:
        images = (
            {"cover.png": (600, 600), "backdrop.jpg": (800, 450)}
            if music
            else {f"{name}.png": (512, 512)}
        )
    for filename, size in images.items():
        _write_image(assets / "images" / filename, size)

    if audio is None and music:
        audio = {"track.mp3": b"ID3\x03\x00\x00\x00" + b"\x00" * 256}
    for filename, data in (audio or {}).items():
        (assets / "audio").mkdir(exist_ok=True)
        (assets / "audio" / filename).write_bytes(data)

    if schema is not None:
        (root / "schema").mkdir(exist_ok=True)
        for filename, data in schema.items():
            (root / "schema" / filename).write_bytes(data)
    return root


@pytest.fixture
def make_project():
    """Factory: ``make_project(root, kind=..., name=..., images=..., audio=...)``."""
    return _write_project


@pytest.fixture
def which():
    """PATH lookup that finds every tool."""
    return present
