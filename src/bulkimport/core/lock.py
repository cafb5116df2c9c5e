# src/bulkimport/core/lock.py
"""Advisory run lock backed by a marker file.

The marker file lists the serials of active runs, one per line. Every read
and rewrite of the file happens while holding an exclusive flock on it, so
the check-and-append in acquire() is atomic with respect to every other
process using the same file.

There is no expiry. A serial left behind by a crashed process stays until
an operator removes it (see `bulkimport unlock`).
"""

from __future__ import annotations

import fcntl
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO

import structlog

from bulkimport.contracts.errors import RunAlreadyLockedError

logger = structlog.get_logger(__name__)


class RunLock:
    """Mutual exclusion between import runs sharing one marker file.

    Usage:
        lock = RunLock(Path("var/bulkimport.pid"))
        with lock.hold(serial):
            ...  # only one serial can be in here at a time
    """

    def __init__(self, pid_filename: Path) -> None:
        self.pid_filename = pid_filename

    @contextmanager
    def _locked_file(self) -> Iterator[IO[str]]:
        self.pid_filename.parent.mkdir(parents=True, exist_ok=True)
        # a+ creates the file without truncating it
        with self.pid_filename.open("a+", encoding="utf-8") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                handle.seek(0)
                yield handle
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    @staticmethod
    def _read_serials(handle: IO[str]) -> list[str]:
        handle.seek(0)
        return [line.strip() for line in handle.read().splitlines() if line.strip()]

    @staticmethod
    def _rewrite(handle: IO[str], serials: list[str]) -> None:
        handle.seek(0)
        handle.truncate()
        handle.write("".join(f"{serial}\n" for serial in serials))
        handle.flush()

    def acquire(self, serial: str) -> None:
        """Register serial as the active run.

        Re-acquiring with a serial that is already registered is a no-op.

        Raises:
            RunAlreadyLockedError: If any other serial is registered. The
                marker file is left untouched.
        """
        with self._locked_file() as handle:
            serials = self._read_serials(handle)
            others = [s for s in serials if s != serial]
            if others:
                raise RunAlreadyLockedError(serial, others)
            if serial not in serials:
                # a+ mode appends regardless of the current position
                handle.write(f"{serial}\n")
                handle.flush()
        logger.info("Acquired run lock", serial=serial, pid_filename=str(self.pid_filename))

    def release(self, serial: str) -> None:
        """Remove serial from the marker file. Absent serials are ignored."""
        if not self.pid_filename.exists():
            return
        with self._locked_file() as handle:
            serials = self._read_serials(handle)
            if serial not in serials:
                return
            self._rewrite(handle, [s for s in serials if s != serial])
        logger.info("Released run lock", serial=serial, pid_filename=str(self.pid_filename))

    def active_serials(self) -> list[str]:
        """Serials currently registered in the marker file."""
        if not self.pid_filename.exists():
            return []
        with self._locked_file() as handle:
            return self._read_serials(handle)

    def is_locked(self) -> bool:
        return bool(self.active_serials())

    @contextmanager
    def hold(self, serial: str) -> Iterator[None]:
        """Acquire on entry, release on every exit path."""
        self.acquire(serial)
        try:
            yield
        finally:
            self.release(serial)
