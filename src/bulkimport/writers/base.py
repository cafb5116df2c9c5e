# src/bulkimport/writers/base.py
"""Row consumer protocol.

A row consumer receives every processed row of one bunch, after the
observer chain ran. Consumers are created per bunch and never shared
between workers.
"""

from typing import Protocol, runtime_checkable

from bulkimport.contracts.records import ArtifactDescriptor
from bulkimport.core.subject import RowCursor


@runtime_checkable
class RowConsumer(Protocol):
    """Downstream persistence for processed rows.

    Lifecycle (driven by the pipeline):
        open(subject)         once, after the bunch header was read
        consume(subject, row) once per row, in source order
        close(subject)        once, also when the bunch failed part way

    close() returns the artifacts the consumer produced; the pipeline
    registers them under the run's files mapping.
    """

    def open(self, subject: RowCursor) -> None: ...

    def consume(self, subject: RowCursor, row: list[str]) -> None: ...

    def close(self, subject: RowCursor) -> list[ArtifactDescriptor]: ...
