# src/bulkimport/core/config.py
"""
Configuration schema and loading for import runs.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.
"""

import os
import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class CsvDialectSettings(BaseModel):
    """Delimiter, enclosure and escape rules shared by source and bunch files.

    The same rules apply to packed sub-fields (e.g. additional attributes),
    which are parsed with the file's own CSV grammar.
    """

    model_config = {"frozen": True}

    delimiter: str = Field(default=",", description="Field delimiter")
    enclosure: str = Field(default='"', description="Quote character around fields")
    escape: str = Field(default="\\", description="Escape character inside enclosed fields")
    encoding: str = Field(default="utf-8", description="File encoding")

    @field_validator("delimiter", "enclosure", "escape")
    @classmethod
    def validate_single_character(cls, v: str) -> str:
        if len(v) != 1:
            raise ValueError(f"must be a single character, got {v!r}")
        return v

    @model_validator(mode="after")
    def validate_distinct_characters(self) -> "CsvDialectSettings":
        chars = [self.delimiter, self.enclosure, self.escape]
        if len(set(chars)) != len(chars):
            raise ValueError("delimiter, enclosure and escape must be distinct characters")
        return self


class SplitSettings(BaseModel):
    """Bunch splitting configuration."""

    model_config = {"frozen": True}

    max_rows_per_bunch: int = Field(default=1000, gt=0, description="Maximum data rows per bunch file")
    bunch_dir: Path | None = Field(
        default=None,
        description="Directory for bunch files (default: <target_dir>/bunches)",
    )


class LockSettings(BaseModel):
    """Run lock configuration."""

    model_config = {"frozen": True}

    pid_filename: Path | None = Field(
        default=None,
        description="Marker file listing active serials (default: <target_dir>/bulkimport.pid)",
    )


class RegistrySettings(BaseModel):
    """Status registry backend.

    The memory backend is shared by the worker threads of one process.
    The file backend is shared by every process pointing at the same path.
    """

    model_config = {"frozen": True}

    backend: Literal["memory", "file"] = Field(default="memory", description="Registry backend type")
    path: Path | None = Field(default=None, description="Registry file (file backend only)")

    @model_validator(mode="after")
    def validate_path_for_file_backend(self) -> "RegistrySettings":
        if self.backend == "file" and self.path is None:
            raise ValueError("registry.path is required when backend is 'file'")
        return self


class ConcurrencySettings(BaseModel):
    """Parallel bunch processing configuration."""

    model_config = {"frozen": True}

    max_workers: int = Field(
        default=1,
        gt=0,
        description="Bunches processed in parallel (1 = sequential, source order preserved)",
    )


class ObserverSettings(BaseModel):
    """One entry of the observer chain."""

    model_config = {"frozen": True}

    plugin: str = Field(description="Observer name (additional_attributes, required_values, ...)")
    options: dict[str, Any] = Field(
        default_factory=dict,
        description="Observer-specific configuration options",
    )


class ImportSettings(BaseModel):
    """Top-level import configuration.

    This is the single source of truth for a run. All settings are
    validated and frozen after construction.
    """

    model_config = {"frozen": True}

    source_file: Path = Field(description="CSV file to import")
    target_dir: Path = Field(description="Directory receiving bunches and run artifacts")
    debug_mode: bool = Field(default=False, description="Emit per-row diagnostic traces")
    write_bunch_output: bool = Field(
        default=False,
        description="Write processed rows of every bunch to <target_dir>/<bunch>.out.csv",
    )

    csv: CsvDialectSettings = Field(default_factory=CsvDialectSettings)
    split: SplitSettings = Field(default_factory=SplitSettings)
    lock: LockSettings = Field(default_factory=LockSettings)
    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    concurrency: ConcurrencySettings = Field(default_factory=ConcurrencySettings)
    observers: list[ObserverSettings] = Field(
        default_factory=list,
        description="Ordered observer chain applied to every row",
    )

    @property
    def bunch_dir(self) -> Path:
        if self.split.bunch_dir is not None:
            return self.split.bunch_dir
        return self.target_dir / "bunches"

    @property
    def pid_filename(self) -> Path:
        if self.lock.pid_filename is not None:
            return self.lock.pid_filename
        return self.target_dir / "bulkimport.pid"


# Regex pattern for ${VAR} or ${VAR:-default} syntax
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values.

    Unresolvable references are left as-is so validation reports them.
    """

    def _expand_string(value: str) -> str:
        def replacer(match: re.Match[str]) -> str:
            env_value = os.environ.get(match.group(1))
            if env_value is not None:
                return env_value
            if match.group(2) is not None:
                return match.group(2)
            return match.group(0)

        return _ENV_VAR_PATTERN.sub(replacer, value)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _expand_string(value)
        elif isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [_expand_value(item) for item in value]
        else:
            return value

    return {k: _expand_value(v) for k, v in config.items()}


def _lower_keys(value: Any) -> Any:
    """Lowercase mapping keys recursively (Dynaconf uppercases top-level keys)."""
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_lower_keys(item) for item in value]
    return value


def load_settings(config_path: Path) -> ImportSettings:
    """Load settings from a YAML file with environment variable overrides.

    Precedence (highest first):
    1. Environment variables (BULKIMPORT_*), nested keys separated by "__",
       e.g. BULKIMPORT_SPLIT__MAX_ROWS_PER_BUNCH=500
    2. Config file
    3. Defaults from the Pydantic schema

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValidationError: If configuration fails Pydantic validation
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="BULKIMPORT",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k: v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    # Observer option keys are plugin-defined; only the top-level keys are
    # uppercased by Dynaconf, nested ones keep their spelling.
    raw_config = {k.lower(): v for k, v in raw_config.items()}
    for section in ("csv", "split", "lock", "registry", "concurrency"):
        if section in raw_config:
            raw_config[section] = _lower_keys(raw_config[section])

    raw_config = _expand_env_vars(raw_config)

    return ImportSettings(**raw_config)


def with_overrides(settings: ImportSettings, **overrides: Any) -> ImportSettings:
    """Return a copy of settings with top-level fields replaced (e.g. from CLI flags)."""
    values = {k: v for k, v in overrides.items() if v is not None}
    if not values:
        return settings
    return ImportSettings(**{**settings.model_dump(), **values})
