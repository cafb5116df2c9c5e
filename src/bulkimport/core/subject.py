# src/bulkimport/core/subject.py
"""Row cursor over one bunch file.

The cursor (the "subject" observers operate on) owns the header mapping and
the current row of a single bunch. It is never shared between workers.

Header contract:
- Indices come from the bunch's header record, in file order.
- add_header() appends at the next free index. Existing indices are never
  reassigned while the bunch is processed, so a column index looked up for
  one row is valid for every later row of the same bunch.

Row contract:
- get_row()/get_line_number() always describe the row currently handed to
  the observer chain.
- Rows are plain lists of strings. Writes past the end pad the gap with "".
"""

from __future__ import annotations

import csv
from collections.abc import Iterator
from pathlib import Path
from typing import IO

from bulkimport.contracts.errors import (
    BunchIOError,
    DuplicateColumnError,
    MalformedAttributePairError,
    UnknownColumnError,
)
from bulkimport.contracts.records import Bunch
from bulkimport.core.config import CsvDialectSettings
from bulkimport.core.dialect import escaped_lines, mask_line_breaks, preserve_escapes, reader_options


class RowCursor:
    """Stateful reader over the rows of one bunch.

    Usage:
        with RowCursor(bunch, settings.csv) as cursor:
            for _ in cursor.rows():
                chain.process(cursor)
    """

    def __init__(
        self,
        bunch: Bunch,
        dialect: CsvDialectSettings | None = None,
        *,
        debug_mode: bool = False,
    ) -> None:
        self._bunch = bunch
        self._dialect = dialect if dialect is not None else CsvDialectSettings()
        self._debug_mode = debug_mode
        self._headers: dict[str, int] = {}
        self._row: list[str] = []
        self._offset = -1
        self._expanded: set[str] = set()
        self._handle: IO[str] | None = None
        self._reader: Iterator[list[str]] | None = None

    @classmethod
    def detached(
        cls,
        header: list[str],
        row: list[str],
        *,
        filename: str = "detached.csv",
        line_number: int = 2,
        dialect: CsvDialectSettings | None = None,
        debug_mode: bool = False,
    ) -> RowCursor:
        """Cursor positioned on a single in-memory row (no file access)."""
        bunch = Bunch(index=0, path=Path(filename), start_line=line_number, row_count=1)
        cursor = cls(bunch, dialect, debug_mode=debug_mode)
        cursor._load_header(header)
        cursor._position(0, list(row))
        return cursor

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """Open the bunch file and read its header record."""
        path = self._bunch.path
        try:
            self._handle = open(path, encoding=self._dialect.encoding, newline="")
            self._reader = csv.reader(escaped_lines(self._handle, self._dialect), **reader_options(self._dialect))
            header = next(self._reader, None)
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            self.close()
            raise BunchIOError(str(path), str(e)) from e
        if header is None:
            self.close()
            raise BunchIOError(str(path), "missing header record")
        self._load_header(header)

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
        self._handle = None
        self._reader = None

    def __enter__(self) -> RowCursor:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _load_header(self, header: list[str]) -> None:
        self._headers = {}
        for name in header:
            if name in self._headers:
                raise BunchIOError(str(self._bunch.path), f"duplicate column '{name}' in header record")
            self._headers[name] = len(self._headers)

    def _position(self, offset: int, row: list[str]) -> None:
        self._offset = offset
        self._row = row
        self._expanded = set()

    def rows(self) -> Iterator[list[str]]:
        """Advance through the data rows, yielding each current row.

        Raises:
            BunchIOError: If the bunch cannot be read any further
        """
        if self._reader is None:
            raise RuntimeError("RowCursor.rows() called before open()")
        offset = 0
        while True:
            try:
                values = next(self._reader)
            except StopIteration:
                return
            except (OSError, UnicodeDecodeError, csv.Error) as e:
                raise BunchIOError(str(self._bunch.path), f"line {self._bunch.start_line + offset}: {e}") from e
            if not values:
                continue
            self._position(offset, values)
            yield self._row
            offset += 1

    # ------------------------------------------------------------------
    # Row access
    # ------------------------------------------------------------------

    @property
    def bunch(self) -> Bunch:
        return self._bunch

    @property
    def headers(self) -> dict[str, int]:
        """Copy of the header mapping (name -> index)."""
        return dict(self._headers)

    def header_names(self) -> list[str]:
        """Header names ordered by index."""
        return sorted(self._headers, key=self._headers.__getitem__)

    def get_row(self) -> list[str]:
        return self._row

    def set_row(self, row: list[str]) -> None:
        self._row = row

    def get_filename(self) -> str:
        return self._bunch.path.name

    def get_line_number(self) -> int:
        return self._bunch.start_line + self._offset

    def is_debug_mode(self) -> bool:
        return self._debug_mode

    # ------------------------------------------------------------------
    # Header access
    # ------------------------------------------------------------------

    def has_header(self, name: str) -> bool:
        return name in self._headers

    def get_header(self, name: str) -> int:
        try:
            return self._headers[name]
        except KeyError:
            raise UnknownColumnError(name) from None

    def add_header(self, name: str) -> int:
        """Append a new column and return its index.

        Raises:
            DuplicateColumnError: If the column already exists
        """
        if name in self._headers:
            raise DuplicateColumnError(name, self._headers[name])
        index = len(self._headers)
        self._headers[name] = index
        return index

    def get_value(self, name: str, default: str | None = None) -> str | None:
        """Value of column name in the current row, or default."""
        if name not in self._headers:
            return default
        index = self._headers[name]
        if index >= len(self._row):
            return default
        return self._row[index]

    def set_value(self, name: str, value: str) -> int:
        """Write value into column name (appending the column if needed)."""
        index = self._headers[name] if name in self._headers else self.add_header(name)
        self._row = place_value(self._row, index, value)
        return index

    # ------------------------------------------------------------------
    # Packed values
    # ------------------------------------------------------------------

    def explode(self, value: str, delimiter: str | None = None) -> list[str]:
        """Split a packed sub-field with the file's enclosure and escape rules.

        Args:
            value: Packed string, e.g. '"a=1","b=x, y"'
            delimiter: Separator (defaults to the file delimiter)

        Line breaks inside value are kept in the resulting parts.

        Raises:
            MalformedAttributePairError: If value cannot be parsed
        """
        if value == "":
            return []
        text, restore = mask_line_breaks(preserve_escapes(value, self._dialect))
        try:
            parts = next(csv.reader([text], **reader_options(self._dialect, delimiter=delimiter)), [])
        except csv.Error as e:
            raise MalformedAttributePairError(f"Cannot split packed value '{value}': {e}") from e
        return [part.translate(restore) for part in parts]

    def explode_pair(self, value: str, separator: str = "=") -> tuple[str, str]:
        """Split "key=value" into (key, value).

        Only the first separator splits; later ones belong to the value.

        Raises:
            MalformedAttributePairError: If the separator is missing
        """
        parts = self.explode(value, separator)
        if len(parts) < 2:
            raise MalformedAttributePairError(f"Attribute pair '{value}' has no '{separator}' separator")
        return parts[0], separator.join(parts[1:])

    # ------------------------------------------------------------------
    # Per-row expansion bookkeeping
    # ------------------------------------------------------------------

    def mark_expanded(self, name: str) -> None:
        """Record that column name was filled by expansion for the current row."""
        self._expanded.add(name)

    def is_expanded(self, name: str) -> bool:
        return name in self._expanded


def place_value(row: list[str], index: int, value: str) -> list[str]:
    """Return a copy of row with value at index, padding the gap with ""."""
    updated = list(row)
    if index >= len(updated):
        updated.extend([""] * (index - len(updated) + 1))
    updated[index] = value
    return updated
