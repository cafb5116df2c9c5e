"""Enrichment observer: adds derived columns to every row."""

from typing import Any

from pydantic import Field, model_validator

from bulkimport.contracts.keys import ColumnKeys
from bulkimport.core.subject import RowCursor, place_value
from bulkimport.observers.base import BaseObserver
from bulkimport.plugins.config_base import ObserverConfig


class SourceTraceConfig(ObserverConfig):
    """Configuration for the source trace observer.

    Set filename_column or line_column to null to skip that column.
    """

    filename_column: str | None = Field(default=ColumnKeys.SOURCE_FILE)
    line_column: str | None = Field(default=ColumnKeys.SOURCE_LINE)
    constants: dict[str, str] = Field(default_factory=dict, description="Column -> fixed value")

    @model_validator(mode="after")
    def validate_distinct_columns(self) -> "SourceTraceConfig":
        names = [n for n in (self.filename_column, self.line_column) if n is not None]
        names.extend(self.constants)
        if len(names) != len(set(names)):
            raise ValueError(f"Enrichment columns must be distinct, got {names}")
        return self


class SourceTraceObserver(BaseObserver):
    """Write the bunch file name, line number and constant values into the row.

    Columns that do not exist yet are appended to the header on first use.
    Existing columns (from the file) are overwritten.
    """

    name = "source_trace"
    plugin_version = "1.0.0"

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        super().__init__(config)
        cfg = SourceTraceConfig.from_dict(self.config)
        self._values: list[tuple[str, str | None]] = []
        if cfg.filename_column is not None:
            self._values.append((cfg.filename_column, None))
        if cfg.line_column is not None:
            self._values.append((cfg.line_column, None))
        self._values.extend(cfg.constants.items())
        self._filename_column = cfg.filename_column

    def _value_for(self, subject: RowCursor, column: str, constant: str | None) -> str:
        if constant is not None:
            return constant
        if column == self._filename_column:
            return subject.get_filename()
        return str(subject.get_line_number())

    def handle(self, subject: RowCursor) -> list[str]:
        row = subject.get_row()
        for column, constant in self._values:
            index = subject.get_header(column) if subject.has_header(column) else subject.add_header(column)
            row = place_value(row, index, self._value_for(subject, column, constant))
        return row
