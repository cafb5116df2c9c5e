# src/bulkimport/observers/chain.py
"""Ordered observer chain applied to every row of a bunch."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from bulkimport.contracts.errors import DuplicateColumnError, PipelineConfigurationError, RowError
from bulkimport.contracts.records import ValidationMessage
from bulkimport.core.subject import RowCursor
from bulkimport.observers.base import BaseObserver

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class ChainOutcome:
    """Result of running one row through the chain.

    Attributes:
        row: Row after all observers ran (failed observers rolled back)
        messages: One validation message per failed observer, in chain order
    """

    row: list[str]
    messages: list[ValidationMessage] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.messages


class ObserverChain:
    """Apply observers in declared order to the cursor's current row.

    A row-level failure skips only the failing observer: its changes to the
    row are discarded, a validation message is recorded and the next
    observer sees the row as it was before the failure.
    """

    def __init__(self, observers: Sequence[BaseObserver]) -> None:
        self._observers = list(observers)

    @property
    def observers(self) -> list[BaseObserver]:
        return list(self._observers)

    def __len__(self) -> int:
        return len(self._observers)

    def process(self, subject: RowCursor) -> ChainOutcome:
        """Run every observer against the current row of subject.

        Raises:
            PipelineConfigurationError: If an observer registers a column
                twice (the observer was applied to the same row again)
        """
        messages: list[ValidationMessage] = []
        for observer in self._observers:
            before = subject.get_row()
            try:
                row = observer.handle(subject)
            except DuplicateColumnError as e:
                raise PipelineConfigurationError(
                    f"Observer '{observer.name}' registered column '{e.name}' twice "
                    f"({subject.get_filename()} line {subject.get_line_number()}); "
                    f"observers must not be applied twice to the same row"
                ) from e
            except RowError as e:
                subject.set_row(before)
                message = ValidationMessage(
                    file=subject.get_filename(),
                    line=subject.get_line_number(),
                    field=e.field,
                    message=e.message,
                )
                messages.append(message)
                logger.debug(
                    "Row rejected by observer",
                    observer=observer.name,
                    file=message.file,
                    line=message.line,
                    field=message.field,
                    error=message.message,
                )
                continue
            subject.set_row(row)
        return ChainOutcome(row=subject.get_row(), messages=messages)
