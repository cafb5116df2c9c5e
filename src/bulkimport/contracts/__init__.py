"""Shared contracts for cross-boundary data types.

This package is a LEAF MODULE: it imports nothing from core, observers or
engine, so every other subsystem can depend on it.

Import patterns:
    from bulkimport.contracts import Bunch, ValidationMessage, RunStatus
    from bulkimport.contracts.errors import RowValidationError
"""

from bulkimport.contracts.enums import BunchStatus, ExitCode, PipelineState, RunStatus
from bulkimport.contracts.errors import (
    BulkImportError,
    BunchIOError,
    DuplicateColumnError,
    FatalImportError,
    HeaderError,
    MalformedAttributePairError,
    PipelineConfigurationError,
    RowError,
    RowValidationError,
    RunAlreadyLockedError,
    SchemaConflictError,
    SourceUnreadableError,
    TargetUnwritableError,
    UnknownColumnError,
)
from bulkimport.contracts.keys import VALIDATIONS_FILENAME, ColumnKeys, RegistryKeys
from bulkimport.contracts.records import (
    ArtifactDescriptor,
    Bunch,
    BunchResult,
    ExpansionTrace,
    RunResult,
    ValidationMessage,
)

__all__ = [
    "VALIDATIONS_FILENAME",
    "ArtifactDescriptor",
    "BulkImportError",
    "Bunch",
    "BunchIOError",
    "BunchResult",
    "BunchStatus",
    "ColumnKeys",
    "DuplicateColumnError",
    "ExitCode",
    "ExpansionTrace",
    "FatalImportError",
    "HeaderError",
    "MalformedAttributePairError",
    "PipelineConfigurationError",
    "PipelineState",
    "RegistryKeys",
    "RowError",
    "RowValidationError",
    "RunAlreadyLockedError",
    "RunResult",
    "RunStatus",
    "SchemaConflictError",
    "SourceUnreadableError",
    "TargetUnwritableError",
    "UnknownColumnError",
    "ValidationMessage",
]
