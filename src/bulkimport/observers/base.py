# src/bulkimport/observers/base.py
"""Base class for row observers.

An observer looks at the row the cursor is positioned on and returns the
row that should replace it. It may add columns through the cursor, but it
must not keep per-row state between calls: one observer instance serves
every row of a bunch.

Failure contract:
- RowError (and subclasses): this row is invalid for this observer. The
  chain discards the observer's changes, records a validation message and
  moves on to the next observer.
- DuplicateColumnError: the observer ran twice on the same row. The chain
  escalates this to PipelineConfigurationError and the run fails.
- Anything else: a bug. It propagates.

Observers return new lists instead of mutating the current row in place, so
the chain can roll back a failed observer by restoring the previous row.
"""

from abc import ABC, abstractmethod
from typing import Any

from bulkimport.core.subject import RowCursor


class BaseObserver(ABC):
    """Base class for all observers.

    Subclasses set `name` (used in settings files) and implement handle().
    """

    name: str
    plugin_version: str = "0.0.0"

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self.config = dict(config) if config is not None else {}

    @abstractmethod
    def handle(self, subject: RowCursor) -> list[str]:
        """Return the transformed current row of subject.

        Raises:
            RowError: If the row is invalid for this observer
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
