#!/usr/bin/env python3
"""ownables — CLI for building ownable packages.

Usage:
    ownables build  [--project DIR] [--out DIR] [--use-build-cache] [--optimize]
                    [--layout flat|nested] [--cache-scope global|project] [--log-json]
    ownables clean  [--project DIR]
    ownables verify <archive> [<other-archive>]

Subcommands:
    build     Validate, compile, process assets, sign and package the project
              into <out>/<name>.zip.  The account seed phrase is read from
              OWNABLES_SEED, or prompted for without echo.
    clean     Remove the project's build/ and target/ directories.
    verify    Check an archive's structure.  With a second archive, also check
              that both hold identical files apart from chain.json.

Exit codes:
    0  — success
    1  — pipeline failure or verification problem
    2  — invalid usage
"""
import getpass
import os
import sys
from pathlib import Path

# Ensure project root is on sys.path so pipeline/* and processors/* are
# importable when the script is invoked from any working directory.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.utils.logging import configure_logging  # noqa: E402
from pipeline.assembler import compare_archives, verify_archive  # noqa: E402
from pipeline.config import BuildConfig  # noqa: E402
from pipeline.errors import OwnableBuildError, ToolchainError  # noqa: E402
from pipeline.orchestrator import BuildOrchestrator  # noqa: E402
from pipeline.toolchain import SubprocessRunner, Toolchain  # noqa: E402

SEED_ENV = "OWNABLES_SEED"

_USAGE = """\
Usage:
  ownables build [--project DIR] [--out DIR] [--use-build-cache] [--optimize]
                 [--layout flat|nested] [--cache-scope global|project] [--log-json]
  ownables clean [--project DIR]
  ownables verify <archive> [<other-archive>]
"""


def _report(exc: OwnableBuildError) -> None:
    print(f"ERROR [{exc.category}]: {exc}", file=sys.stderr)
    if isinstance(exc, ToolchainError) and exc.stderr:
        print(exc.stderr.rstrip(), file=sys.stderr)


def _read_seed() -> str:
    seed = os.environ.get(SEED_ENV)
    if seed:
        return seed
    return getpass.getpass("Enter your seed phrase: ")


# ---------------------------------------------------------------------------
# build
# ---------------------------------------------------------------------------

def cmd_build(argv: list[str]) -> int:
    import argparse

    parser = argparse.ArgumentParser(prog="ownables build", add_help=True)
    parser.add_argument("--project", default=".", metavar="DIR",
                        help="Ownable project directory (default: current directory)")
    parser.add_argument("--out", default=None, metavar="DIR",
                        help="Directory the archive is written to (default: current directory)")
    parser.add_argument("--use-build-cache", action="store_true", default=None,
                        help="Wrap rustc with sccache")
    parser.add_argument("--optimize", action="store_true", default=None,
                        help="Run wasm-opt -Oz on the compiled module")
    parser.add_argument("--layout", choices=["flat", "nested"], default=None,
                        help="Where schema documents go inside the archive")
    parser.add_argument("--cache-scope", choices=["global", "project"], default=None,
                        help="Share schema files across projects or keep them per project")
    parser.add_argument("--log-json", action="store_true",
                        help="Emit structured logs as JSON lines")

    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return int(exc.code) if exc.code is not None else 2

    configure_logging(json_output=args.log_json)

    try:
        config = BuildConfig.from_env(
            use_build_cache=args.use_build_cache,
            run_optimizer=args.optimize,
            output_layout=args.layout,
            cache_scope=args.cache_scope,
        )
    except ValueError as exc:
        print(f"ERROR: invalid configuration: {exc}", file=sys.stderr)
        return 2

    orchestrator = BuildOrchestrator(
        Path(args.project),
        config,
        SubprocessRunner(),
        output_dir=Path(args.out) if args.out else Path.cwd(),
        progress_callback=print,
    )
    try:
        result = orchestrator.build(_read_seed)
    except OwnableBuildError as exc:
        _report(exc)
        return 1
    except KeyboardInterrupt:
        print("ERROR: build interrupted", file=sys.stderr)
        return 1

    print(f"OK: package created at {result.archive_path}")
    return 0


# ---------------------------------------------------------------------------
# clean
# ---------------------------------------------------------------------------

def cmd_clean(argv: list[str]) -> int:
    import argparse

    parser = argparse.ArgumentParser(prog="ownables clean", add_help=True)
    parser.add_argument("--project", default=".", metavar="DIR",
                        help="Ownable project directory (default: current directory)")
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return int(exc.code) if exc.code is not None else 2

    configure_logging()
    toolchain = Toolchain(SubprocessRunner(), BuildConfig())
    try:
        removed = toolchain.clean(Path(args.project))
    except OSError as exc:
        print(f"ERROR: clean failed: {exc}", file=sys.stderr)
        return 1

    print(f"OK: cleaned {len(removed)} director{'y' if len(removed) == 1 else 'ies'}")
    return 0


# ---------------------------------------------------------------------------
# verify
# ---------------------------------------------------------------------------

def cmd_verify(argv: list[str]) -> int:
    import argparse

    parser = argparse.ArgumentParser(prog="ownables verify", add_help=True)
    parser.add_argument("archive", metavar="ARCHIVE")
    parser.add_argument("other", nargs="?", default=None, metavar="OTHER",
                        help="Second build of the same project to compare against")
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return int(exc.code) if exc.code is not None else 2

    archives = [Path(args.archive)] + ([Path(args.other)] if args.other else [])
    for archive in archives:
        if not archive.is_file():
            print(f"ERROR: archive not found: {archive}", file=sys.stderr)
            return 2

    problems: list[str] = []
    for archive in archives:
        problems += [f"{archive.name}: {p}" for p in verify_archive(archive)]
    if not problems and len(archives) == 2:
        problems += compare_archives(archives[0], archives[1])

    if problems:
        for problem in problems:
            print(f"ERROR: {problem}", file=sys.stderr)
        return 1

    print("OK: package verified")
    return 0


# ---------------------------------------------------------------------------
# entry point
# ---------------------------------------------------------------------------

def main() -> None:
    if len(sys.argv) < 2:
        print(_USAGE, file=sys.stderr)
        sys.exit(2)

    subcmd, rest = sys.argv[1], sys.argv[2:]

    if subcmd == "build":
        sys.exit(cmd_build(rest))
    elif subcmd == "clean":
        sys.exit(cmd_clean(rest))
    elif subcmd == "verify":
        sys.exit(cmd_verify(rest))
    else:
        print(f"Unknown subcommand: {subcmd!r}\n{_USAGE}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
