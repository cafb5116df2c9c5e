# src/bulkimport/observers/additional_attribute.py
"""Expand packed "key=value" attribute lists into first-class columns.

The packed cell holds comma-separated pairs, each following the file's own
CSV quoting rules:

    color=red,size=XL
    "material=cotton, organic","care=30°C"

Every key becomes a column of the bunch. A key that is already a header
(from the source file or from an earlier row of the same bunch) reuses its
index, so each name maps to exactly one index for the lifetime of the bunch.

All pairs are parsed before the row is touched. A malformed pair leaves the
row exactly as it was and is reported as a row-level failure.
"""

from dataclasses import asdict
from typing import Any

import structlog
from pydantic import Field

from bulkimport.contracts.errors import MalformedAttributePairError
from bulkimport.contracts.keys import ColumnKeys
from bulkimport.contracts.records import ExpansionTrace
from bulkimport.core.subject import RowCursor, place_value
from bulkimport.observers.base import BaseObserver
from bulkimport.plugins.config_base import ObserverConfig

logger = structlog.get_logger(__name__)


class AdditionalAttributeConfig(ObserverConfig):
    """Configuration for the attribute expansion observer."""

    source_column: str = Field(
        default=ColumnKeys.ADDITIONAL_ATTRIBUTES,
        min_length=1,
        description="Column holding the packed key=value pairs",
    )


class AdditionalAttributeObserver(BaseObserver):
    """Split the packed attribute column into one column per key.

    Example (header: additional_attributes):
        Input row:  ["attr1=val1,attr2=val2"]
        Output row: ["attr1=val1,attr2=val2", "val1", "val2"]
        Header:     additional_attributes, attr1, attr2

    In debug mode one trace entry is logged per pair, in pair order.

    Applying the observer twice to the same row raises DuplicateColumnError:
    the second pass tries to register the columns the first pass created.
    """

    name = "additional_attributes"
    plugin_version = "1.0.0"

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        super().__init__(config)
        cfg = AdditionalAttributeConfig.from_dict(self.config)
        self._source_column = cfg.source_column

    @property
    def source_column(self) -> str:
        return self._source_column

    def _parse_pairs(self, subject: RowCursor, packed: str) -> list[tuple[str, str]]:
        pairs: list[tuple[str, str]] = []
        seen: set[str] = set()
        try:
            segments = subject.explode(packed)
        except MalformedAttributePairError as e:
            raise MalformedAttributePairError(e.message, field=self._source_column) from None
        for segment in segments:
            if segment.strip() == "":
                continue
            try:
                key, value = subject.explode_pair(segment)
            except MalformedAttributePairError as e:
                raise MalformedAttributePairError(e.message, field=self._source_column) from None
            if key == "":
                raise MalformedAttributePairError(
                    f"Attribute pair '{segment}' has an empty key",
                    field=self._source_column,
                )
            if key == self._source_column:
                raise MalformedAttributePairError(
                    f"Attribute '{key}' would overwrite the packed column",
                    field=self._source_column,
                )
            if key in seen:
                raise MalformedAttributePairError(
                    f"Attribute '{key}' appears more than once",
                    field=self._source_column,
                )
            seen.add(key)
            pairs.append((key, value))
        return pairs

    def handle(self, subject: RowCursor) -> list[str]:
        row = subject.get_row()
        if not subject.has_header(self._source_column):
            return row

        packed = subject.get_value(self._source_column, "") or ""
        pairs = self._parse_pairs(subject, packed)

        for key, value in pairs:
            if subject.is_expanded(key) or not subject.has_header(key):
                # Raises DuplicateColumnError when the row is re-processed
                index = subject.add_header(key)
            else:
                index = subject.get_header(key)
            subject.mark_expanded(key)
            row = place_value(row, index, value)

            if subject.is_debug_mode():
                trace = ExpansionTrace(
                    new_key=key,
                    new_value=value,
                    source_column=self._source_column,
                    filename=subject.get_filename(),
                    line_number=subject.get_line_number(),
                )
                logger.debug("Extracted attribute column", **asdict(trace))

        return row
