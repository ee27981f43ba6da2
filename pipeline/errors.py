"""Error taxonomy for the ownable build pipeline.

Every stage raises one of these and lets it propagate unchanged; the only
place an error is downgraded is the schema cache, where I/O problems become
a cache miss.  The CLI reports ``category`` and the message and exits 1.
"""

from pathlib import Path


class OwnableBuildError(Exception):
    """Base class for all pipeline failures."""

    category: str = "build"


class PreconditionError(OwnableBuildError):
    """A file or directory the pipeline requires is missing or unreadable."""

    category = "precondition"

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class SelectionAmbiguityError(OwnableBuildError):
    """Zero or several assets matched where exactly one is required."""

    category = "selection"

    def __init__(
        self,
        message: str,
        directory: Path | str | None = None,
        candidates: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.directory = Path(directory) if directory is not None else None
        self.candidates = list(candidates or [])


class AssetValidationError(OwnableBuildError):
    """A selected asset violates a format, size or dimension rule."""

    category = "validation"

    def __init__(self, path: Path | str, rule: str, limit: str, detail: str = "") -> None:
        self.path = Path(path)
        self.rule = rule
        self.limit = limit
        message = f"{self.path.name}: {rule} (limit: {limit})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ToolchainError(OwnableBuildError):
    """An external build, bindgen, optimizer or schema command failed."""

    category = "toolchain"

    def __init__(self, message: str, stderr: str = "", exit_code: int | None = None) -> None:
        super().__init__(message)
        self.stderr = stderr
        self.exit_code = exit_code


class SchemaIntegrityError(OwnableBuildError):
    """A schema bundle is missing documents or holds malformed ones."""

    category = "schema"

    def __init__(
        self,
        message: str,
        missing: list[str] | None = None,
        malformed: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.missing = list(missing or [])
        self.malformed = list(malformed or [])


class AssemblyError(OwnableBuildError):
    """The output tree could not be laid out or archived."""

    category = "assembly"


class ProvenanceError(OwnableBuildError):
    """Account derivation or event signing failed."""

    category = "provenance"


__all__ = [
    "OwnableBuildError",
    "PreconditionError",
    "SelectionAmbiguityError",
    "AssetValidationError",
    "ToolchainError",
    "SchemaIntegrityError",
    "AssemblyError",
    "ProvenanceError",
]
