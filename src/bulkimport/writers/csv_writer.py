# src/bulkimport/writers/csv_writer.py
"""Write processed rows of one bunch to a CSV file.

Writes <target_dir>/<bunch stem>.out.csv using the source dialect and
returns an ArtifactDescriptor with a SHA-256 content hash.

Observers may append columns while the bunch is processed, so rows are
buffered and the file is written on close() with the final header. Rows
shorter than the header are padded with "".
"""

from __future__ import annotations

import csv
import hashlib
import os
from pathlib import Path

import structlog

from bulkimport.contracts.errors import TargetUnwritableError
from bulkimport.contracts.records import ArtifactDescriptor, Bunch
from bulkimport.core.config import CsvDialectSettings
from bulkimport.core.dialect import writer_options
from bulkimport.core.subject import RowCursor

logger = structlog.get_logger(__name__)


def output_path(target_dir: Path, bunch: Bunch) -> Path:
    return target_dir / f"{bunch.path.stem}.out.csv"


class BunchCsvWriter:
    """RowConsumer writing one bunch's processed rows.

    Usage:
        factory = lambda bunch: BunchCsvWriter(settings.target_dir, settings.csv)
    """

    def __init__(self, target_dir: Path, dialect: CsvDialectSettings | None = None) -> None:
        self._target_dir = target_dir
        self._dialect = dialect if dialect is not None else CsvDialectSettings()
        self._rows: list[list[str]] = []
        self._opened = False

    def open(self, subject: RowCursor) -> None:
        self._rows = []
        self._opened = True

    def consume(self, subject: RowCursor, row: list[str]) -> None:
        if not self._opened:
            raise RuntimeError("BunchCsvWriter.consume() called before open()")
        self._rows.append(list(row))

    def close(self, subject: RowCursor) -> list[ArtifactDescriptor]:
        """Write the buffered rows and describe the written file.

        Raises:
            TargetUnwritableError: If the output file cannot be written
        """
        if not self._opened:
            return []
        self._opened = False

        header = subject.header_names()
        path = output_path(self._target_dir, subject.bunch)
        tmp_path = path.with_name(f".{path.name}.tmp")
        try:
            self._target_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding=self._dialect.encoding, newline="") as f:
                writer = csv.writer(f, **writer_options(self._dialect))
                writer.writerow(header)
                for row in self._rows:
                    writer.writerow(row + [""] * (len(header) - len(row)))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            raise TargetUnwritableError(f"Cannot write bunch output {path}: {e}") from e

        rows_written = len(self._rows)
        self._rows = []
        artifact = ArtifactDescriptor.for_file(
            path,
            content_hash=self._compute_file_hash(path),
            size_bytes=path.stat().st_size,
            bunch=subject.bunch.index,
            rows=rows_written,
        )
        logger.debug("Wrote bunch output", path=str(path), rows=rows_written)
        return [artifact]

    @staticmethod
    def _compute_file_hash(path: Path) -> str:
        """Compute SHA-256 hash of the file contents."""
        sha256 = hashlib.sha256()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(8192), b""):
                sha256.update(chunk)
        return sha256.hexdigest()
