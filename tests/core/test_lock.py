"""Tests for the marker-file run lock."""

import multiprocessing
import threading
from pathlib import Path

import pytest

from bulkimport.contracts.errors import RunAlreadyLockedError
from bulkimport.core.lock import RunLock


@pytest.fixture
def pid_file(tmp_path: Path) -> Path:
    return tmp_path / "var" / "bulkimport.pid"


class TestRunLock:
    """Acquire/release semantics."""

    def test_acquire_creates_marker_file(self, pid_file: Path) -> None:
        lock = RunLock(pid_file)
        lock.acquire("serial-1")

        assert pid_file.read_text(encoding="utf-8") == "serial-1\n"
        assert lock.active_serials() == ["serial-1"]
        assert lock.is_locked()

    def test_second_serial_is_rejected(self, pid_file: Path) -> None:
        lock = RunLock(pid_file)
        lock.acquire("serial-1")

        with pytest.raises(RunAlreadyLockedError) as exc_info:
            lock.acquire("serial-2")

        assert exc_info.value.serial == "serial-2"
        assert exc_info.value.active_serials == ["serial-1"]
        assert pid_file.read_text(encoding="utf-8") == "serial-1\n"

    def test_reacquire_same_serial_does_not_duplicate(self, pid_file: Path) -> None:
        lock = RunLock(pid_file)
        lock.acquire("serial-1")
        lock.acquire("serial-1")
        assert lock.active_serials() == ["serial-1"]

    def test_release_removes_serial(self, pid_file: Path) -> None:
        lock = RunLock(pid_file)
        lock.acquire("serial-1")
        lock.release("serial-1")

        assert lock.active_serials() == []
        assert not lock.is_locked()
        RunLock(pid_file).acquire("serial-2")

    def test_release_is_idempotent(self, pid_file: Path) -> None:
        lock = RunLock(pid_file)
        lock.release("never-acquired")
        lock.acquire("serial-1")
        lock.release("serial-1")
        lock.release("serial-1")
        assert lock.active_serials() == []

    def test_release_only_removes_exact_match(self, pid_file: Path) -> None:
        pid_file.parent.mkdir(parents=True)
        pid_file.write_text("abc\nabcd\n", encoding="utf-8")

        RunLock(pid_file).release("abc")

        assert pid_file.read_text(encoding="utf-8") == "abcd\n"

    def test_stale_serial_blocks_until_removed(self, pid_file: Path) -> None:
        pid_file.parent.mkdir(parents=True)
        pid_file.write_text("crashed-run\n", encoding="utf-8")
        lock = RunLock(pid_file)

        with pytest.raises(RunAlreadyLockedError):
            lock.acquire("new-run")

        lock.release("crashed-run")
        lock.acquire("new-run")
        assert lock.active_serials() == ["new-run"]

    def test_hold_releases_on_error(self, pid_file: Path) -> None:
        lock = RunLock(pid_file)

        with pytest.raises(RuntimeError), lock.hold("serial-1"):
            assert lock.active_serials() == ["serial-1"]
            raise RuntimeError("boom")

        assert lock.active_serials() == []


class TestRunLockConcurrency:
    """Exactly one of many concurrent acquirers wins."""

    def test_threads_race_for_lock(self, pid_file: Path) -> None:
        contenders = 16
        barrier = threading.Barrier(contenders)
        winners: list[str] = []
        losers: list[str] = []
        record = threading.Lock()

        def contend(serial: str) -> None:
            barrier.wait()
            try:
                RunLock(pid_file).acquire(serial)
            except RunAlreadyLockedError:
                with record:
                    losers.append(serial)
            else:
                with record:
                    winners.append(serial)

        threads = [threading.Thread(target=contend, args=(f"serial-{i}",)) for i in range(contenders)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(winners) == 1
        assert len(losers) == contenders - 1
        assert RunLock(pid_file).active_serials() == winners


def _acquire_in_process(pid_file: str, serial: str, results: "multiprocessing.Queue[str]") -> None:
    try:
        RunLock(Path(pid_file)).acquire(serial)
    except RunAlreadyLockedError:
        results.put("lost")
    else:
        results.put("won")


@pytest.mark.slow
def test_processes_race_for_lock(pid_file: Path) -> None:
    ctx = multiprocessing.get_context("fork")
    results: multiprocessing.Queue[str] = ctx.Queue()
    processes = [ctx.Process(target=_acquire_in_process, args=(str(pid_file), f"serial-{i}", results)) for i in range(6)]
    for p in processes:
        p.start()
    for p in processes:
        p.join(timeout=60)
        assert p.exitcode == 0

    outcomes = sorted(results.get(timeout=5) for _ in processes)
    assert outcomes == ["lost"] * 5 + ["won"]
    assert len(RunLock(pid_file).active_serials()) == 1
