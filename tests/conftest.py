# tests/conftest.py
"""Shared test fixtures and helpers.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import logging
import os
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
import structlog
from hypothesis import Phase, Verbosity, settings

from bulkimport.core.config import CsvDialectSettings, ImportSettings, ObserverSettings
from bulkimport.core.registry import InMemoryStatusRegistry

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


@pytest.fixture(autouse=True)
def _isolate_logging() -> Iterator[None]:
    """Keep bound run serials and logging configuration from leaking between tests."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()
    logging.getLogger().handlers = []
    logging.getLogger("bulkimport").setLevel(logging.NOTSET)
    structlog.reset_defaults()


@pytest.fixture
def write_csv(tmp_path: Path) -> Callable[..., Path]:
    """Write text to a CSV file under tmp_path, byte for byte."""

    def _write(text: str, name: str = "products.csv") -> Path:
        path = tmp_path / name
        path.write_bytes(text.encode("utf-8"))
        return path

    return _write


@pytest.fixture
def dialect() -> CsvDialectSettings:
    return CsvDialectSettings()


@pytest.fixture
def registry() -> InMemoryStatusRegistry:
    return InMemoryStatusRegistry()


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., ImportSettings]:
    """Build ImportSettings rooted in tmp_path/target."""

    def _make(source: Path, **overrides: object) -> ImportSettings:
        observers = overrides.pop("observers", [])
        values: dict[str, object] = {
            "source_file": source,
            "target_dir": tmp_path / "target",
            "observers": [o if isinstance(o, ObserverSettings) else ObserverSettings(**o) for o in observers],  # type: ignore[attr-defined]
        }
        values.update(overrides)
        return ImportSettings(**values)  # type: ignore[arg-type]

    return _make
