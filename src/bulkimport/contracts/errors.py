# src/bulkimport/contracts/errors.py
"""Exception taxonomy for import runs.

Three severities cross subsystem boundaries:

- FatalImportError: aborts the whole run (lock unavailable, source
  unreadable, target unwritable, observer chain misconfiguration).
- RowError: one row failed one observer. Recorded as a validation message,
  processing continues with the next observer and the next row.
- BunchIOError: one bunch became unreadable. That bunch is aborted, sibling
  bunches continue and the run ends degraded.

SchemaConflictError is raised by the registry merge and is logged and
dropped by the registry itself.
"""

from __future__ import annotations


class BulkImportError(Exception):
    """Base class for all errors raised by bulkimport."""


# =============================================================================
# Fatal errors
# =============================================================================


class FatalImportError(BulkImportError):
    """Aborts the run. The pipeline marks the run failed and releases the lock."""


class RunAlreadyLockedError(FatalImportError):
    """Another run holds the run lock.

    Attributes:
        serial: Serial that attempted to acquire the lock
        active_serials: Serials found in the marker file
    """

    def __init__(self, serial: str, active_serials: list[str]) -> None:
        self.serial = serial
        self.active_serials = active_serials
        super().__init__(f"Cannot start run {serial}: import already running with serial(s) {', '.join(active_serials)}")


class SourceUnreadableError(FatalImportError):
    """The source file cannot be opened or has no header record."""


class TargetUnwritableError(FatalImportError):
    """The bunch target directory cannot be written."""


class PipelineConfigurationError(FatalImportError):
    """The observer chain is misconfigured.

    Raised for unknown observer names and when an observer is applied twice
    to the same row (detected as a duplicate header registration).
    """


# =============================================================================
# Header errors (raised by the row cursor)
# =============================================================================


class HeaderError(BulkImportError):
    """Base class for header lookups and registrations."""

    def __init__(self, name: str, message: str) -> None:
        self.name = name
        super().__init__(message)


class UnknownColumnError(HeaderError):
    """Requested column is not part of the header."""

    def __init__(self, name: str) -> None:
        super().__init__(name, f"Column '{name}' is not a known header")


class DuplicateColumnError(HeaderError):
    """Column is already part of the header and cannot be added again."""

    def __init__(self, name: str, index: int) -> None:
        self.index = index
        super().__init__(name, f"Column '{name}' already registered at index {index}")


# =============================================================================
# Row-level errors
# =============================================================================


class RowError(BulkImportError):
    """A single row failed a single observer.

    Attributes:
        field: Column the failure refers to (None when not column specific)
    """

    def __init__(self, message: str, *, field: str | None = None) -> None:
        self.field = field
        self.message = message
        super().__init__(message)


class MalformedAttributePairError(RowError):
    """A packed attribute pair cannot be turned into a column."""


class RowValidationError(RowError):
    """A row value violates a configured validation rule."""


# =============================================================================
# Bunch and registry errors
# =============================================================================


class BunchIOError(BulkImportError):
    """A bunch file cannot be read or written while it is being processed."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"I/O failure on bunch {path}: {reason}")


class SchemaConflictError(BulkImportError):
    """A registry merge tried to combine a mapping with a scalar.

    Attributes:
        path: Key path (from the group root) where the conflict occurred
    """

    def __init__(self, path: tuple[str, ...], existing: object, new: object) -> None:
        self.path = path
        super().__init__(
            f"Cannot merge {type(new).__name__} into {type(existing).__name__} at '{'.'.join(path)}'"
        )
