"""Validation observer: checks values without changing the row."""

import re
from typing import Any

from pydantic import Field, field_validator

from bulkimport.contracts.errors import RowValidationError
from bulkimport.core.subject import RowCursor
from bulkimport.observers.base import BaseObserver
from bulkimport.plugins.config_base import ObserverConfig


class RequiredValuesConfig(ObserverConfig):
    """Configuration for the required values observer.

    Attributes:
        columns: Columns that must be present and non-empty
        patterns: Column -> regular expression the whole value must match.
            Only checked for non-empty values; combine with columns to also
            require presence.
    """

    columns: list[str] = Field(default_factory=list)
    patterns: dict[str, str] = Field(default_factory=dict)

    @field_validator("patterns")
    @classmethod
    def validate_patterns_compile(cls, v: dict[str, str]) -> dict[str, str]:
        for column, pattern in v.items():
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid pattern for column '{column}': {e}") from e
        return v


class RequiredValueObserver(BaseObserver):
    """Reject rows with missing, empty or malformed values.

    The first failing column is reported; the row passes through unchanged
    either way.
    """

    name = "required_values"
    plugin_version = "1.0.0"

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        super().__init__(config)
        cfg = RequiredValuesConfig.from_dict(self.config)
        self._columns = list(cfg.columns)
        self._patterns = {column: re.compile(pattern) for column, pattern in cfg.patterns.items()}

    def handle(self, subject: RowCursor) -> list[str]:
        for column in self._columns:
            if not subject.has_header(column):
                raise RowValidationError(f"Required column '{column}' is missing", field=column)
            value = subject.get_value(column, "")
            if value is None or value.strip() == "":
                raise RowValidationError(f"Required value for column '{column}' is empty", field=column)

        for column, pattern in self._patterns.items():
            value = subject.get_value(column, "")
            if not value:
                continue
            if pattern.fullmatch(value) is None:
                raise RowValidationError(
                    f"Value '{value}' of column '{column}' does not match pattern '{pattern.pattern}'",
                    field=column,
                )

        return subject.get_row()
