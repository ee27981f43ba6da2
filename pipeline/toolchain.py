"""Toolchain invoker — the boundary to cargo, wasm-bindgen and wasm-opt.

The pipeline only depends on :class:`CommandRunner`; production code uses
:class:`SubprocessRunner` and tests substitute a fake that writes the files
the real tools would.

Commands (run in the project root):
  1. cargo build --target wasm32-unknown-unknown --release
  2. wasm-bindgen target/wasm32-unknown-unknown/release/<crate>.wasm \
        --out-dir build --target web
  3. wasm-opt -Oz build/<crate>_bg.wasm -o build/<crate>_bg.wasm   (optional)
  4. cargo run --example schema                                   (on demand)

No timeout is applied: a release compile may legitimately take minutes.
"""

import os
import shutil
import subprocess
from pathlib import Path
from typing import Callable, NamedTuple, Protocol

from app.models.project import ProjectDescriptor
from app.utils.logging import get_logger
from models.package import ToolchainArtifacts
from pipeline.config import BuildConfig
from pipeline.errors import ToolchainError

WASM_TARGET = "wasm32-unknown-unknown"
RUSTFLAGS = "-C target-feature=+atomics,+bulk-memory,+mutable-globals"
BUILD_DIR = "build"
TARGET_DIR = "target"


class CommandResult(NamedTuple):
    stdout: str
    stderr: str
    exit_code: int


class CommandRunner(Protocol):
    def run(
        self,
        command: str,
        args: list[str],
        workdir: Path,
        env: dict[str, str] | None = None,
    ) -> CommandResult: ...


class SubprocessRunner:
    """Run commands with :func:`subprocess.run`, capturing text output.

    *env* entries are layered on top of the current process environment.
    """

    def run(
        self,
        command: str,
        args: list[str],
        workdir: Path,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        full_env = {**os.environ, **(env or {})}
        try:
            result = subprocess.run(
                [command, *args],
                cwd=workdir,
                env=full_env,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as exc:
            return CommandResult("", str(exc), 127)
        return CommandResult(result.stdout, result.stderr, result.returncode)


class Toolchain:
    """Compile an ownable and generate its bindings and schema.

    Args:
        runner: Command runner capability.
        config: Build configuration (build cache wrapper, optimizer pass).
        which: PATH lookup used by :meth:`check_prerequisites`.
    """

    def __init__(
        self,
        runner: CommandRunner,
        config: BuildConfig | None = None,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self.runner = runner
        self.config = config or BuildConfig()
        self._which = which
        self._log = get_logger("pipeline.toolchain")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def check_prerequisites(self, workdir: Path | None = None) -> None:
        """Make sure every tool the configured build needs is installed.

        Raises:
            ToolchainError: Naming the first missing tool and how to get it.
        """
        required = {
            "rustc": "Rust is not installed. Install it from https://rustup.rs/",
            "cargo": "Cargo is not installed. Install Rust from https://rustup.rs/",
            "wasm-bindgen": (
                "wasm-bindgen is not installed. "
                "Install it with: cargo install wasm-bindgen-cli"
            ),
        }
        if self.config.use_build_cache:
            required["sccache"] = "sccache is not installed. Install it with: cargo install sccache"
        if self.config.run_optimizer:
            required["wasm-opt"] = "wasm-opt is not installed. Install binaryen to get it."

        for tool, hint in required.items():
            if not self._which(tool):
                raise ToolchainError(hint)

        result = self.runner.run(
            "rustup", ["target", "list", "--installed"], Path(workdir or Path.cwd())
        )
        if result.exit_code != 0 or WASM_TARGET not in result.stdout:
            raise ToolchainError(
                "WebAssembly target not installed. "
                f"Please run: rustup target add {WASM_TARGET}",
                stderr=result.stderr,
                exit_code=result.exit_code,
            )

    def compile(self, project_root: Path, descriptor: ProjectDescriptor) -> ToolchainArtifacts:
        """Build the release WebAssembly module and its JS bindings.

        Raises:
            ToolchainError: If a command fails or an expected output is missing.
        """
        root = Path(project_root)
        build_dir = root / BUILD_DIR
        build_dir.mkdir(parents=True, exist_ok=True)

        env = {
            "RUSTFLAGS": RUSTFLAGS,
            "CARGO_TARGET_DIR": str(root / TARGET_DIR),
        }
        if self.config.use_build_cache:
            env["RUSTC_WRAPPER"] = "sccache"

        self._run(
            "cargo",
            ["build", "--target", WASM_TARGET, "--release"],
            root,
            env,
            "WebAssembly build failed",
        )

        module = Path(TARGET_DIR) / WASM_TARGET / "release" / f"{descriptor.crate_name}.wasm"
        self._run(
            "wasm-bindgen",
            [str(module), "--out-dir", BUILD_DIR, "--target", "web"],
            root,
            None,
            "JavaScript binding generation failed",
        )

        binary = build_dir / f"{descriptor.crate_name}_bg.wasm"
        bindings = build_dir / f"{descriptor.crate_name}.js"
        typings = build_dir / f"{descriptor.crate_name}.d.ts"

        if self.config.run_optimizer:
            self._run(
                "wasm-opt",
                ["-Oz", str(binary), "-o", str(binary)],
                root,
                None,
                "wasm-opt optimization failed",
            )

        for expected in (binary, bindings):
            if not expected.is_file():
                raise ToolchainError(f"Expected build output not found: {expected}")

        self._log.info("toolchain_compiled", binary=str(binary), bindings=str(bindings))
        return ToolchainArtifacts(
            binary=binary,
            bindings=bindings,
            typings=typings if typings.is_file() else None,
        )

    def generate_schema(self, project_root: Path) -> None:
        """Run the project's schema example, which writes ``schema/*.json``."""
        self._run(
            "cargo",
            ["run", "--example", "schema"],
            Path(project_root),
            None,
            "Schema generation failed",
        )

    def clean(self, project_root: Path) -> list[Path]:
        """Remove the build and target directories; return what was removed."""
        removed = []
        for name in (BUILD_DIR, TARGET_DIR):
            path = Path(project_root) / name
            if path.exists():
                shutil.rmtree(path)
                removed.append(path)
                self._log.info("toolchain_cleaned", path=str(path))
        return removed

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _run(
        self,
        command: str,
        args: list[str],
        workdir: Path,
        env: dict[str, str] | None,
        failure: str,
    ) -> CommandResult:
        self._log.info("toolchain_command", command=command, args=args)
        result = self.runner.run(command, args, workdir, env)
        if result.exit_code != 0:
            self._log.error(
                "toolchain_command_failed",
                command=command,
                exit_code=result.exit_code,
            )
            raise ToolchainError(
                f"{failure} ({command} exited with {result.exit_code})",
                stderr=result.stderr,
                exit_code=result.exit_code,
            )
        return result


__all__ = [
    "CommandResult",
    "CommandRunner",
    "SubprocessRunner",
    "Toolchain",
    "WASM_TARGET",
    "RUSTFLAGS",
]
