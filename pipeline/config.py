"""Build configuration.

One pipeline, explicitly configured.  Values come from constructor
arguments first; ``BuildConfig.from_env`` is only used at the CLI edge and
reads the ``OWNABLES_*`` variables:

    OWNABLES_USE_BUILD_CACHE   1/true to wrap rustc with sccache
    OWNABLES_RUN_OPTIMIZER     1/true to run wasm-opt -Oz on the binary
    OWNABLES_OUTPUT_LAYOUT     flat | nested
    OWNABLES_CACHE_SCOPE       global | project
    OWNABLES_SCHEMA_STORE      override for the global schema store root
    OWNABLES_NETWORK           provenance network tag (default T)
"""

import os
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict

_TRUE = {"1", "true", "yes", "on"}


class OutputLayout(str, Enum):
    FLAT   = "flat"
    """Schema documents at the archive root, next to package.json."""

    NESTED = "nested"
    """Schema documents under ``schema/``."""


class CacheScope(str, Enum):
    GLOBAL  = "global"
    PROJECT = "project"


class BuildConfig(BaseModel):
    """Knobs of a single build."""

    model_config = ConfigDict(frozen=True)

    use_build_cache: bool = False
    run_optimizer: bool = False
    output_layout: OutputLayout = OutputLayout.NESTED
    cache_scope: CacheScope = CacheScope.GLOBAL
    cache_root: Path | None = None
    """Explicit schema store root; ``None`` picks the scope's default location."""

    network: str = "T"

    @classmethod
    def from_env(cls, **overrides) -> "BuildConfig":
        """Build a config from ``OWNABLES_*`` env vars; *overrides* win."""
        values: dict = {}
        env = os.environ
        if "OWNABLES_USE_BUILD_CACHE" in env:
            values["use_build_cache"] = env["OWNABLES_USE_BUILD_CACHE"].lower() in _TRUE
        if "OWNABLES_RUN_OPTIMIZER" in env:
            values["run_optimizer"] = env["OWNABLES_RUN_OPTIMIZER"].lower() in _TRUE
        if env.get("OWNABLES_OUTPUT_LAYOUT"):
            values["output_layout"] = OutputLayout(env["OWNABLES_OUTPUT_LAYOUT"].lower())
        if env.get("OWNABLES_CACHE_SCOPE"):
            values["cache_scope"] = CacheScope(env["OWNABLES_CACHE_SCOPE"].lower())
        if env.get("OWNABLES_SCHEMA_STORE"):
            values["cache_root"] = Path(env["OWNABLES_SCHEMA_STORE"]).expanduser()
        if env.get("OWNABLES_NETWORK"):
            values["network"] = env["OWNABLES_NETWORK"]
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


__all__ = ["BuildConfig", "OutputLayout", "CacheScope"]
