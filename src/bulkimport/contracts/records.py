"""Records that cross subsystem boundaries.

Bunch descriptors flow from the splitter to the pipeline, validation
messages and artifact descriptors flow from workers into the status
registry, and RunResult is handed back to the invoker.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from bulkimport.contracts.enums import BunchStatus, RunStatus


@dataclass(frozen=True, slots=True)
class Bunch:
    """One bunch file produced by the splitter.

    Attributes:
        index: 0-based position of the bunch in split order
        path: Location of the bunch file (header + data rows)
        start_line: Source line number of the first data row (header is line 1)
        row_count: Number of data rows in the bunch
    """

    index: int
    path: Path
    start_line: int
    row_count: int

    @property
    def end_line(self) -> int:
        """Source line number of the last data row."""
        return self.start_line + self.row_count - 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "path": str(self.path),
            "start_line": self.start_line,
            "row_count": self.row_count,
        }


@dataclass(frozen=True, slots=True)
class ValidationMessage:
    """A row-level failure collected during a run."""

    file: str
    line: int
    field: str | None
    message: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize in the shape renderers read from the registry."""
        return {
            "file": self.file,
            "line": self.line,
            "field": self.field,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ValidationMessage:
        return cls(
            file=data["file"],
            line=data["line"],
            field=data["field"],
            message=data["message"],
        )


@dataclass(frozen=True, slots=True)
class ExpansionTrace:
    """Diagnostic record for one expanded attribute pair."""

    new_key: str
    new_value: str
    source_column: str
    filename: str
    line_number: int


@dataclass(frozen=True, slots=True)
class ArtifactDescriptor:
    """A file produced during a run.

    content_hash and size_bytes let a later reader verify the artifact was
    not modified after the run registered it.
    """

    path: str
    content_hash: str
    size_bytes: int
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_file(cls, path: Path, content_hash: str, size_bytes: int, **metadata: Any) -> ArtifactDescriptor:
        return cls(path=str(path), content_hash=content_hash, size_bytes=size_bytes, metadata=dict(metadata))

    def registry_entry(self) -> dict[str, dict[str, Any]]:
        """Entry for the registry's files mapping (path -> metadata)."""
        return {
            self.path: {
                "content_hash": self.content_hash,
                "size_bytes": self.size_bytes,
                **self.metadata,
            }
        }


@dataclass(slots=True)
class BunchResult:
    """Outcome of processing one bunch."""

    bunch: Bunch
    status: BunchStatus
    rows_processed: int = 0
    rows_invalid: int = 0
    messages: list[ValidationMessage] = field(default_factory=list)
    artifacts: list[ArtifactDescriptor] = field(default_factory=list)
    error: str | None = None


@dataclass(slots=True)
class RunResult:
    """Outcome of a pipeline run handed back to the invoker."""

    serial: str
    status: RunStatus
    bunch_results: list[BunchResult] = field(default_factory=list)
    artifacts: list[ArtifactDescriptor] = field(default_factory=list)

    @property
    def rows_processed(self) -> int:
        return sum(r.rows_processed for r in self.bunch_results)

    @property
    def rows_invalid(self) -> int:
        return sum(r.rows_invalid for r in self.bunch_results)

    @property
    def failed_bunches(self) -> list[BunchResult]:
        return [r for r in self.bunch_results if r.status == BunchStatus.FAILED]

    @property
    def validation_messages(self) -> list[ValidationMessage]:
        return [m for r in self.bunch_results for m in r.messages]
