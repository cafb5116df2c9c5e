# src/bulkimport/core/splitter.py
"""Split a source CSV file into bunch files.

Every bunch file starts with the source header and holds up to
max_rows_per_bunch consecutive data records in source order. Records are
copied byte-for-byte: the CSV reader is only used to find record boundaries,
so quoted fields with embedded newlines stay intact and re-splitting the same
source yields identical files.

Line numbers count records, not physical lines. The header is line 1, so the
first data row of bunch k has line number
    2 + sum(row_count of bunches 0..k-1)
"""

from __future__ import annotations

import csv
import os
from collections.abc import Iterator
from pathlib import Path
from typing import IO

import structlog

from bulkimport.contracts.errors import SourceUnreadableError, TargetUnwritableError
from bulkimport.contracts.records import Bunch
from bulkimport.core.config import CsvDialectSettings
from bulkimport.core.dialect import escaped_lines, reader_options

logger = structlog.get_logger(__name__)


class _RecordingLines:
    """Line iterator that remembers the raw lines csv.reader consumed."""

    def __init__(self, handle: IO[str]) -> None:
        self._handle = handle
        self._consumed: list[str] = []

    def __iter__(self) -> _RecordingLines:
        return self

    def __next__(self) -> str:
        line = next(self._handle)
        self._consumed.append(line)
        return line

    def take(self) -> str:
        """Return and forget the raw text consumed since the last take()."""
        raw = "".join(self._consumed)
        self._consumed.clear()
        return raw


def iter_raw_records(handle: IO[str], dialect: CsvDialectSettings) -> Iterator[tuple[list[str], str]]:
    """Yield (parsed values, raw text) for every non-blank CSV record.

    The handle must be opened with newline="" so line endings survive.
    """
    lines = _RecordingLines(handle)
    reader = csv.reader(escaped_lines(lines, dialect), **reader_options(dialect))
    for values in reader:
        raw = lines.take()
        if not values:
            continue
        yield values, raw


def bunch_filename(source_path: Path, index: int) -> str:
    """File name of the bunch at 0-based index (e.g. products_01.csv)."""
    return f"{source_path.stem}_{index + 1:02d}{source_path.suffix or '.csv'}"


class BunchSplitter:
    """Partition a source file into ordered bunch files.

    Usage:
        splitter = BunchSplitter(settings.csv)
        bunches = splitter.split(Path("in/products.csv"), Path("var/bunches"), 1000)
    """

    def __init__(self, dialect: CsvDialectSettings | None = None) -> None:
        self._dialect = dialect if dialect is not None else CsvDialectSettings()

    def _prepare_target(self, target_dir: Path) -> None:
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TargetUnwritableError(f"Cannot create target directory {target_dir}: {e}") from e
        if not target_dir.is_dir():
            raise TargetUnwritableError(f"Target {target_dir} is not a directory")
        if not os.access(target_dir, os.W_OK | os.X_OK):
            raise TargetUnwritableError(f"Target directory {target_dir} is not writable")

    def _write_bunch(self, path: Path, header: str, records: list[str]) -> None:
        tmp_path = path.with_name(f".{path.name}.tmp")
        try:
            with open(tmp_path, "w", encoding=self._dialect.encoding, newline="") as f:
                f.write(header)
                f.writelines(records)
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise TargetUnwritableError(f"Cannot write bunch {path}: {e}") from e

    def split(self, source_path: Path, target_dir: Path, max_rows_per_bunch: int) -> list[Bunch]:
        """Split source_path into bunch files inside target_dir.

        Args:
            source_path: CSV file with a header record
            target_dir: Directory for the bunch files (created if missing)
            max_rows_per_bunch: Maximum data records per bunch

        Returns:
            Bunch descriptors in source order. A header-only source yields [].

        Raises:
            ValueError: If max_rows_per_bunch < 1
            SourceUnreadableError: If the source cannot be read or has no header
            TargetUnwritableError: If a bunch file cannot be written
        """
        if max_rows_per_bunch < 1:
            raise ValueError(f"max_rows_per_bunch must be >= 1, got {max_rows_per_bunch}")

        self._prepare_target(target_dir)

        try:
            # CRITICAL: newline='' keeps \r\n and embedded newlines verbatim
            handle = open(source_path, encoding=self._dialect.encoding, newline="")
        except OSError as e:
            raise SourceUnreadableError(f"Cannot open source file {source_path}: {e}") from e

        bunches: list[Bunch] = []
        with handle:
            try:
                records = iter_raw_records(handle, self._dialect)
                first = next(records, None)
                if first is None:
                    raise SourceUnreadableError(f"Source file {source_path} has no header record")
                header = first[1]
                if not header.endswith(("\n", "\r")):
                    header += "\n"

                pending: list[str] = []
                next_line = 2
                for _values, raw in records:
                    pending.append(raw)
                    if len(pending) == max_rows_per_bunch:
                        bunches.append(self._flush(source_path, target_dir, header, pending, len(bunches), next_line))
                        next_line += len(pending)
                        pending = []
                if pending:
                    bunches.append(self._flush(source_path, target_dir, header, pending, len(bunches), next_line))
            except (UnicodeDecodeError, csv.Error) as e:
                raise SourceUnreadableError(f"Cannot parse source file {source_path}: {e}") from e
            except OSError as e:
                raise SourceUnreadableError(f"Cannot read source file {source_path}: {e}") from e

        logger.info(
            "Split source into bunches",
            source=str(source_path),
            bunches=len(bunches),
            rows=sum(b.row_count for b in bunches),
        )
        return bunches

    def _flush(
        self,
        source_path: Path,
        target_dir: Path,
        header: str,
        records: list[str],
        index: int,
        start_line: int,
    ) -> Bunch:
        path = target_dir / bunch_filename(source_path, index)
        self._write_bunch(path, header, records)
        logger.debug("Wrote bunch", path=str(path), start_line=start_line, rows=len(records))
        return Bunch(index=index, path=path, start_line=start_line, row_count=len(records))
