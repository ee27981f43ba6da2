"""Unit tests for the toolchain boundary and build configuration.

Covers:
  1. Prerequisite checks: missing tools, optional tools, missing wasm target.
  2. compile(): command sequence, environment, optimizer pass, artifacts.
  3. Command failures surface as ToolchainError with stderr.
  4. clean() removes build/ and target/ only.
  5. BuildConfig.from_env precedence.
"""

from pathlib import Path

import pytest

from app.models.project import ProjectDescriptor
from pipeline.config import BuildConfig, CacheScope, OutputLayout
from pipeline.errors import ToolchainError
from pipeline.toolchain import RUSTFLAGS, CommandResult, Toolchain

SUN = ProjectDescriptor(name="sun-icon", version="0.1.0")


def _missing(*tools: str):
    return lambda tool: None if tool in tools else f"/usr/bin/{tool}"


# ---------------------------------------------------------------------------
# Prerequisites
# ---------------------------------------------------------------------------


def test_all_prerequisites_present(tmp_path: Path, fake_runner, which) -> None:
    Toolchain(fake_runner, BuildConfig(), which=which).check_prerequisites(tmp_path)
    assert fake_runner.commands() == ["rustup target list --installed"]


@pytest.mark.parametrize(
    "tool, hint",
    [
        ("rustc", "https://rustup.rs/"),
        ("cargo", "https://rustup.rs/"),
        ("wasm-bindgen", "cargo install wasm-bindgen-cli"),
    ],
)
def test_missing_required_tool(tmp_path: Path, fake_runner, tool: str, hint: str) -> None:
    toolchain = Toolchain(fake_runner, BuildConfig(), which=_missing(tool))
    with pytest.raises(ToolchainError, match=hint):
        toolchain.check_prerequisites(tmp_path)


def test_optional_tools_only_required_when_configured(tmp_path: Path, fake_runner) -> None:
    which = _missing("sccache", "wasm-opt")
    Toolchain(fake_runner, BuildConfig(), which=which).check_prerequisites(tmp_path)

    with pytest.raises(ToolchainError, match="sccache"):
        Toolchain(fake_runner, BuildConfig(use_build_cache=True), which=which).check_prerequisites(tmp_path)
    with pytest.raises(ToolchainError, match="wasm-opt"):
        Toolchain(fake_runner, BuildConfig(run_optimizer=True), which=which).check_prerequisites(tmp_path)


def test_missing_wasm_target(tmp_path: Path, which) -> None:
    class NoTarget:
        def run(self, command, args, workdir, env=None):
            return CommandResult("x86_64-unknown-linux-gnu\n", "", 0)

    with pytest.raises(ToolchainError, match="rustup target add wasm32-unknown-unknown"):
        Toolchain(NoTarget(), which=which).check_prerequisites(tmp_path)


# ---------------------------------------------------------------------------
# compile
# ---------------------------------------------------------------------------


def test_compile_runs_cargo_then_bindgen(tmp_path: Path, make_project, fake_runner) -> None:
    root = make_project(tmp_path / "proj")
    artifacts = Toolchain(fake_runner, BuildConfig()).compile(root, SUN)

    assert fake_runner.commands() == [
        "cargo build --target wasm32-unknown-unknown --release",
        "wasm-bindgen target/wasm32-unknown-unknown/release/sun_icon.wasm --out-dir build --target web",
    ]
    env = fake_runner.calls[0][2]
    assert env["RUSTFLAGS"] == RUSTFLAGS
    assert env["CARGO_TARGET_DIR"] == str(root / "target")
    assert "RUSTC_WRAPPER" not in env

    assert artifacts.binary == root / "build" / "sun_icon_bg.wasm"
    assert artifacts.bindings == root / "build" / "sun_icon.js"
    assert artifacts.typings == root / "build" / "sun_icon.d.ts"


def test_compile_with_cache_and_optimizer(tmp_path: Path, make_project, fake_runner) -> None:
    root = make_project(tmp_path / "proj")
    config = BuildConfig(use_build_cache=True, run_optimizer=True)
    Toolchain(fake_runner, config).compile(root, SUN)

    assert fake_runner.calls[0][2]["RUSTC_WRAPPER"] == "sccache"
    binary = str(root / "build" / "sun_icon_bg.wasm")
    assert fake_runner.commands()[-1] == f"wasm-opt -Oz {binary} -o {binary}"


def test_compile_failure_carries_stderr(tmp_path: Path, make_project, fake_runner) -> None:
    root = make_project(tmp_path / "proj")
    fake_runner.fail["cargo"] = 101

    with pytest.raises(ToolchainError) as excinfo:
        Toolchain(fake_runner, BuildConfig()).compile(root, SUN)
    assert excinfo.value.exit_code == 101
    assert "simulated failure" in excinfo.value.stderr
    assert excinfo.value.category == "toolchain"
    assert len(fake_runner.calls) == 1


def test_missing_output_is_a_toolchain_error(tmp_path: Path, make_project) -> None:
    class Silent:
        def run(self, command, args, workdir, env=None):
            return CommandResult("", "", 0)

    root = make_project(tmp_path / "proj")
    with pytest.raises(ToolchainError, match="Expected build output not found"):
        Toolchain(Silent()).compile(root, SUN)


def test_generate_schema_failure(tmp_path: Path, fake_runner) -> None:
    fake_runner.fail["cargo"] = 1
    with pytest.raises(ToolchainError, match="Schema generation failed"):
        Toolchain(fake_runner).generate_schema(tmp_path)


# ---------------------------------------------------------------------------
# clean
# ---------------------------------------------------------------------------


def test_clean_removes_build_outputs_only(tmp_path: Path, make_project, fake_runner) -> None:
    root = make_project(tmp_path / "proj")
    Toolchain(fake_runner).compile(root, SUN)

    removed = Toolchain(fake_runner).clean(root)

    assert removed == [root / "build", root / "target"]
    assert not (root / "build").exists()
    assert (root / "src" / "lib.rs").is_file()
    assert Toolchain(fake_runner).clean(root) == []


# ---------------------------------------------------------------------------
# BuildConfig
# ---------------------------------------------------------------------------


def test_config_defaults() -> None:
    config = BuildConfig()
    assert config.output_layout is OutputLayout.NESTED
    assert config.cache_scope is CacheScope.GLOBAL
    assert config.network == "T"
    assert not config.use_build_cache and not config.run_optimizer


def test_config_from_env_and_overrides(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("OWNABLES_USE_BUILD_CACHE", "true")
    monkeypatch.setenv("OWNABLES_OUTPUT_LAYOUT", "FLAT")
    monkeypatch.setenv("OWNABLES_SCHEMA_STORE", str(tmp_path))
    monkeypatch.setenv("OWNABLES_NETWORK", "L")

    config = BuildConfig.from_env(output_layout=OutputLayout.NESTED, run_optimizer=None)

    assert config.use_build_cache is True
    assert config.output_layout is OutputLayout.NESTED
    assert config.cache_root == tmp_path
    assert config.network == "L"
    assert config.run_optimizer is False


def test_config_rejects_unknown_layout(monkeypatch) -> None:
    monkeypatch.setenv("OWNABLES_OUTPUT_LAYOUT", "sideways")
    with pytest.raises(ValueError):
        BuildConfig.from_env()
