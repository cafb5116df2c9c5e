"""Tests for the bulkimport CLI."""

import json
from pathlib import Path
from typing import Any

import pytest
import yaml
from typer.testing import CliRunner

from bulkimport.core.lock import RunLock

runner = CliRunner()

SOURCE = "sku,additional_attributes\nSKU-1,color=red\n,size=XL\n"


@pytest.fixture
def settings_file(tmp_path: Path) -> Path:
    source = tmp_path / "products.csv"
    source.write_text(SOURCE, encoding="utf-8")
    path = tmp_path / "settings.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "source_file": str(source),
                "target_dir": str(tmp_path / "target"),
                "registry": {"backend": "file", "path": str(tmp_path / "target" / "registry.json")},
                "observers": [
                    {"plugin": "additional_attributes"},
                    {"plugin": "required_values", "options": {"columns": ["sku"]}},
                ],
            }
        ),
        encoding="utf-8",
    )
    return path


def _invoke(*args: str) -> Any:
    from bulkimport.cli import app

    return runner.invoke(app, ["--no-dotenv", *args])


class TestGlobalOptions:
    def test_version(self) -> None:
        from bulkimport import __version__
        from bulkimport.cli import app

        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"bulkimport version {__version__}" in result.stdout

    def test_missing_env_file(self, tmp_path: Path) -> None:
        from bulkimport.cli import app

        result = runner.invoke(app, ["--env-file", str(tmp_path / "nope.env"), "observers"])

        assert result.exit_code == 4

    def test_env_file_overrides_settings(
        self, settings_file: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from bulkimport.cli import app

        name = "BULKIMPORT_SPLIT__MAX_ROWS_PER_BUNCH"
        # Unset for the test and removed again afterwards
        monkeypatch.setenv(name, "0")
        monkeypatch.delenv(name)
        env_file = tmp_path / "import.env"
        env_file.write_text(f"{name}=1\n", encoding="utf-8")

        result = runner.invoke(app, ["--env-file", str(env_file), "run", "--settings", str(settings_file)])

        assert result.exit_code == 0, result.output
        assert "2 bunches, 2 rows, 1 invalid" in result.stdout


class TestRunCommand:
    """Exit codes of `bulkimport run`."""

    def test_completed_run(self, settings_file: Path, tmp_path: Path) -> None:
        result = _invoke("run", "--settings", str(settings_file), "--serial", "cli-1")

        assert result.exit_code == 0, result.output
        assert "Run cli-1 completed: 1 bunches, 2 rows, 1 invalid" in result.stdout
        assert (tmp_path / "target" / "validations.json").exists()

    def test_missing_settings_file(self, tmp_path: Path) -> None:
        result = _invoke("run", "--settings", str(tmp_path / "nope.yaml"))
        assert result.exit_code == 4

    def test_invalid_settings(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"target_dir": str(tmp_path)}), encoding="utf-8")

        result = _invoke("run", "--settings", str(path))

        assert result.exit_code == 4

    def test_unknown_observer(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text(
            yaml.safe_dump({"source_file": "x.csv", "target_dir": str(tmp_path), "observers": [{"plugin": "nope"}]}),
            encoding="utf-8",
        )

        result = _invoke("run", "--settings", str(path))

        assert result.exit_code == 4

    def test_already_running(self, settings_file: Path, tmp_path: Path) -> None:
        RunLock(tmp_path / "target" / "bulkimport.pid").acquire("someone-else")

        result = _invoke("run", "--settings", str(settings_file))

        assert result.exit_code == 3

    def test_unreadable_source_fails(self, settings_file: Path, tmp_path: Path) -> None:
        result = _invoke("run", "--settings", str(settings_file), "--source", str(tmp_path / "missing.csv"))
        assert result.exit_code == 2

    def test_debug_mode_logs_row_traces(self, settings_file: Path) -> None:
        data = yaml.safe_load(settings_file.read_text(encoding="utf-8"))
        data["debug_mode"] = True
        settings_file.write_text(yaml.safe_dump(data), encoding="utf-8")

        result = _invoke("--json-logs", "run", "--settings", str(settings_file))

        assert result.exit_code == 0, result.output
        assert "Extracted attribute column" in result.output

    def test_source_override(self, settings_file: Path, tmp_path: Path) -> None:
        other = tmp_path / "other.csv"
        other.write_text("sku\nA\nB\nC\n", encoding="utf-8")

        result = _invoke("run", "--settings", str(settings_file), "--source", str(other), "--serial", "cli-2")

        assert result.exit_code == 0, result.output
        assert "3 rows, 0 invalid" in result.stdout


class TestUnlockCommand:
    def test_removes_stale_serial(self, settings_file: Path, tmp_path: Path) -> None:
        lock = RunLock(tmp_path / "target" / "bulkimport.pid")
        lock.acquire("crashed")

        result = _invoke("unlock", "--settings", str(settings_file), "--serial", "crashed")

        assert result.exit_code == 0
        assert "Released serial crashed" in result.stdout
        assert lock.active_serials() == []

    def test_unknown_serial(self, settings_file: Path) -> None:
        result = _invoke("unlock", "--settings", str(settings_file), "--serial", "nobody")

        assert result.exit_code == 0
        assert "not listed" in result.stdout


class TestStatusCommand:
    def test_prints_status_after_run(self, settings_file: Path) -> None:
        _invoke("run", "--settings", str(settings_file), "--serial", "cli-3")

        result = _invoke("status", "--settings", str(settings_file))

        assert result.exit_code == 0, result.output
        status = json.loads(result.stdout)
        assert status["serial"] == "cli-3"
        assert status["state"] == "completed"
        assert len(status["validationMessages"]) == 1

    def test_no_status_yet(self, settings_file: Path) -> None:
        result = _invoke("status", "--settings", str(settings_file))
        assert result.exit_code == 2

    def test_memory_backend_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "mem.yaml"
        path.write_text(yaml.safe_dump({"source_file": "x.csv", "target_dir": str(tmp_path)}), encoding="utf-8")

        result = _invoke("status", "--settings", str(path))

        assert result.exit_code == 4


class TestObserversCommand:
    def test_lists_builtin_observers(self) -> None:
        result = _invoke("observers")

        assert result.exit_code == 0
        names = [line.split()[0] for line in result.stdout.strip().splitlines()]
        assert names == ["additional_attributes", "required_values", "source_trace"]
