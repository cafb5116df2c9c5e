# src/bulkimport/core/__init__.py
"""Core infrastructure: Configuration, Status registry, Run lock, Splitting, Row cursor, Logging."""

from bulkimport.core.config import (
    ConcurrencySettings,
    CsvDialectSettings,
    ImportSettings,
    LockSettings,
    ObserverSettings,
    RegistrySettings,
    SplitSettings,
    load_settings,
)
from bulkimport.core.lock import RunLock
from bulkimport.core.logging import bind_bunch_context, bind_run_context, configure_logging, enable_row_traces
from bulkimport.core.registry import (
    FileStatusRegistry,
    InMemoryStatusRegistry,
    StatusRegistry,
    create_registry,
    deep_merge,
)
from bulkimport.core.splitter import BunchSplitter
from bulkimport.core.subject import RowCursor

__all__ = [
    "BunchSplitter",
    "ConcurrencySettings",
    "CsvDialectSettings",
    "FileStatusRegistry",
    "ImportSettings",
    "InMemoryStatusRegistry",
    "LockSettings",
    "ObserverSettings",
    "RegistrySettings",
    "RowCursor",
    "RunLock",
    "SplitSettings",
    "StatusRegistry",
    "bind_bunch_context",
    "bind_run_context",
    "configure_logging",
    "create_registry",
    "deep_merge",
    "enable_row_traces",
    "load_settings",
]
