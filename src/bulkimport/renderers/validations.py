# src/bulkimport/renderers/validations.py
"""Render collected validation messages to validations.json.

The renderer reads the target directory from the registry's status group,
writes the messages there as a pretty printed JSON array and registers the
written file under status.files. Without messages, or without a target
directory, nothing is written.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path

import structlog

from bulkimport.contracts.errors import TargetUnwritableError
from bulkimport.contracts.keys import VALIDATIONS_FILENAME, RegistryKeys
from bulkimport.contracts.records import ValidationMessage
from bulkimport.core.registry import StatusRegistry, atomic_write_text

logger = structlog.get_logger(__name__)


class JsonFileRenderer:
    """Write validation messages as JSON into the run's target directory."""

    def __init__(self, registry: StatusRegistry, *, indent: int = 4) -> None:
        self._registry = registry
        self._indent = indent

    def render(self, messages: Sequence[ValidationMessage]) -> Path | None:
        """Render messages, returning the written path (None when skipped).

        Raises:
            TargetUnwritableError: If the file cannot be written
        """
        if not messages:
            return None

        status = self._registry.get_attribute(RegistryKeys.STATUS) or {}
        target_directory = status.get(RegistryKeys.TARGET_DIRECTORY)
        if not target_directory:
            logger.warning("No target directory registered, validation messages not rendered", count=len(messages))
            return None

        path = Path(target_directory) / VALIDATIONS_FILENAME
        content = json.dumps([m.to_dict() for m in messages], indent=self._indent)
        try:
            atomic_write_text(path, content)
        except OSError as e:
            raise TargetUnwritableError(f"Cannot write {path}: {e}") from e

        self._registry.merge_attributes_recursive(RegistryKeys.STATUS, {RegistryKeys.FILES: {str(path): {}}})
        logger.info("Rendered validation messages", path=str(path), count=len(messages))
        return path
