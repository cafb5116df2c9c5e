# src/bulkimport/core/registry.py
"""Status registry shared by all workers of a run.

The registry is a key/value store of attribute groups (e.g. "status"), each
holding a nested mapping. Workers never replace a group they share; they
merge partial mappings into it:

    registry.merge_attributes_recursive("status", {"files": {path: {}}})

Merge rules (deep_merge):
- mapping + mapping: merged recursively, sibling keys survive
- set + set: union
- list + list: concatenation, order preserved (ordered message logs)
- anything else: the new value replaces the old scalar
- mapping vs. non-mapping: SchemaConflictError

Every read-merge-write happens inside one critical section per group, so
concurrent merges never lose entries and readers never observe a partially
merged group.

Two backends share the same contract:
- InMemoryStatusRegistry: worker threads of one process
- FileStatusRegistry: any number of processes sharing a JSON file
"""

from __future__ import annotations

import copy
import fcntl
import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import structlog

from bulkimport.contracts.errors import SchemaConflictError

logger = structlog.get_logger(__name__)

_SET_TAG = "__set__"
_LOCK_SUFFIX = ".lock"


def deep_merge(
    existing: Mapping[str, Any],
    partial: Mapping[str, Any],
    _path: tuple[str, ...] = (),
) -> dict[str, Any]:
    """Return a new mapping with partial merged into existing.

    Neither argument is modified.

    Raises:
        SchemaConflictError: If a mapping would be merged into a non-mapping
            leaf or vice versa.
    """
    merged = copy.deepcopy(dict(existing))
    for key, new_value in partial.items():
        path = (*_path, str(key))
        if key not in merged:
            merged[key] = copy.deepcopy(new_value)
            continue

        old_value = merged[key]
        old_is_mapping = isinstance(old_value, Mapping)
        new_is_mapping = isinstance(new_value, Mapping)
        if old_is_mapping and new_is_mapping:
            merged[key] = deep_merge(old_value, new_value, path)
        elif old_is_mapping != new_is_mapping and old_value is not None:
            raise SchemaConflictError(path, old_value, new_value)
        elif isinstance(old_value, (set, frozenset)) and isinstance(new_value, (set, frozenset)):
            merged[key] = set(old_value) | set(new_value)
        elif isinstance(old_value, list) and isinstance(new_value, list):
            merged[key] = [*old_value, *copy.deepcopy(new_value)]
        else:
            merged[key] = copy.deepcopy(new_value)
    return merged


class StatusRegistry(ABC):
    """Contract shared by all registry backends."""

    @abstractmethod
    def get_attribute(self, group: str) -> dict[str, Any] | None:
        """Return a copy of the group, or None if it does not exist."""

    @abstractmethod
    def set_attribute(self, group: str, attributes: Mapping[str, Any]) -> None:
        """Replace the whole group."""

    @abstractmethod
    def remove_attribute(self, group: str) -> None:
        """Delete the group. Unknown groups are ignored."""

    @abstractmethod
    def groups(self) -> list[str]:
        """Names of all stored groups, sorted."""

    @abstractmethod
    def _merge_locked(self, group: str, partial: Mapping[str, Any]) -> None:
        """Read, merge and write the group inside its critical section.

        Must raise SchemaConflictError before anything is written.
        """

    def merge_attributes_recursive(self, group: str, partial: Mapping[str, Any]) -> bool:
        """Deep-merge partial into group, creating the group if needed.

        A SchemaConflictError is logged and the whole partial is dropped;
        the group keeps its previous content.

        Returns:
            True if the partial was merged, False if it was dropped.
        """
        try:
            self._merge_locked(group, partial)
        except SchemaConflictError as e:
            logger.warning(
                "Dropped registry merge with schema conflict",
                group=group,
                path=".".join(e.path),
                error=str(e),
            )
            return False
        return True

    def has_attribute(self, group: str) -> bool:
        return self.get_attribute(group) is not None


class InMemoryStatusRegistry(StatusRegistry):
    """Registry for worker threads of a single process."""

    def __init__(self) -> None:
        self._groups: dict[str, dict[str, Any]] = {}
        self._guard = threading.Lock()
        self._group_locks: dict[str, threading.Lock] = {}

    def _lock_for(self, group: str) -> threading.Lock:
        with self._guard:
            lock = self._group_locks.get(group)
            if lock is None:
                lock = threading.Lock()
                self._group_locks[group] = lock
            return lock

    def get_attribute(self, group: str) -> dict[str, Any] | None:
        with self._lock_for(group):
            value = self._groups.get(group)
            return copy.deepcopy(value) if value is not None else None

    def set_attribute(self, group: str, attributes: Mapping[str, Any]) -> None:
        with self._lock_for(group):
            self._groups[group] = copy.deepcopy(dict(attributes))

    def remove_attribute(self, group: str) -> None:
        with self._lock_for(group):
            self._groups.pop(group, None)

    def groups(self) -> list[str]:
        with self._guard:
            return sorted(self._groups)

    def _merge_locked(self, group: str, partial: Mapping[str, Any]) -> None:
        with self._lock_for(group):
            self._groups[group] = deep_merge(self._groups.get(group, {}), partial)


def _encode(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return {_SET_TAG: sorted(value, key=str)}
    if isinstance(value, Path):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not registry serializable")


def _decode(obj: dict[str, Any]) -> Any:
    if len(obj) == 1 and _SET_TAG in obj:
        return set(obj[_SET_TAG])
    return obj


def atomic_write_text(path: Path, content: str) -> None:
    """Write content to path via temp file + rename (no torn reads)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_handle:
            tmp_handle.write(content)
            tmp_handle.flush()
            os.fsync(tmp_handle.fileno())
        os.replace(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class FileStatusRegistry(StatusRegistry):
    """Registry stored as one JSON document, shared across processes.

    All access goes through an exclusive flock on a sidecar lock file, so the
    critical section spans the whole document rather than one group. Writes
    are atomic renames, so a crashed writer never leaves a torn document.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock_path = path.with_suffix(path.suffix + _LOCK_SUFFIX)

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock_path.open("a+", encoding="utf-8") as lock_handle:
            fcntl.flock(lock_handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_handle.fileno(), fcntl.LOCK_UN)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        text = self.path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        data: dict[str, Any] = json.loads(text, object_hook=_decode)
        return data

    def _write(self, data: dict[str, Any]) -> None:
        atomic_write_text(self.path, json.dumps(data, default=_encode, indent=2, sort_keys=True))

    def get_attribute(self, group: str) -> dict[str, Any] | None:
        with self._exclusive():
            value: dict[str, Any] | None = self._read().get(group)
            return value

    def set_attribute(self, group: str, attributes: Mapping[str, Any]) -> None:
        with self._exclusive():
            data = self._read()
            data[group] = dict(attributes)
            self._write(data)

    def remove_attribute(self, group: str) -> None:
        with self._exclusive():
            data = self._read()
            if data.pop(group, None) is not None:
                self._write(data)

    def groups(self) -> list[str]:
        with self._exclusive():
            return sorted(self._read())

    def _merge_locked(self, group: str, partial: Mapping[str, Any]) -> None:
        with self._exclusive():
            data = self._read()
            data[group] = deep_merge(data.get(group, {}), partial)
            self._write(data)


def create_registry(backend: str, path: Path | None = None) -> StatusRegistry:
    """Build a registry backend from its settings name."""
    if backend == "memory":
        return InMemoryStatusRegistry()
    if backend == "file":
        if path is None:
            raise ValueError("File registry requires a path")
        return FileStatusRegistry(path)
    raise ValueError(f"Unknown registry backend: {backend!r}")
