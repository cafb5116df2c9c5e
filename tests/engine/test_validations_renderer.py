"""Tests for rendering validation messages to validations.json."""

import json
from pathlib import Path

import pytest

from bulkimport.contracts.errors import TargetUnwritableError
from bulkimport.contracts.records import ValidationMessage
from bulkimport.core.registry import InMemoryStatusRegistry
from bulkimport.renderers.validations import JsonFileRenderer

MESSAGES = [
    ValidationMessage(file="p_01.csv", line=2, field="sku", message="empty"),
    ValidationMessage(file="p_02.csv", line=7, field=None, message="bad"),
]


class TestJsonFileRenderer:
    def test_writes_file_and_registers_it(self, tmp_path: Path, registry: InMemoryStatusRegistry) -> None:
        registry.set_attribute("status", {"targetDirectory": str(tmp_path), "files": {"bunch.out.csv": {"size_bytes": 1}}})

        path = JsonFileRenderer(registry).render(MESSAGES)

        assert path == tmp_path / "validations.json"
        assert json.loads(path.read_text(encoding="utf-8")) == [
            {"file": "p_01.csv", "line": 2, "field": "sku", "message": "empty"},
            {"file": "p_02.csv", "line": 7, "field": None, "message": "bad"},
        ]
        status = registry.get_attribute("status")
        assert status is not None
        assert status["files"] == {"bunch.out.csv": {"size_bytes": 1}, str(path): {}}

    def test_pretty_printed(self, tmp_path: Path, registry: InMemoryStatusRegistry) -> None:
        registry.set_attribute("status", {"targetDirectory": str(tmp_path)})
        path = JsonFileRenderer(registry).render(MESSAGES[:1])
        assert path is not None
        assert path.read_text(encoding="utf-8").startswith('[\n    {\n        "file"')

    def test_no_messages_no_file(self, tmp_path: Path, registry: InMemoryStatusRegistry) -> None:
        registry.set_attribute("status", {"targetDirectory": str(tmp_path)})

        assert JsonFileRenderer(registry).render([]) is None
        assert not (tmp_path / "validations.json").exists()
        assert registry.get_attribute("status") == {"targetDirectory": str(tmp_path)}

    def test_no_target_directory(self, registry: InMemoryStatusRegistry) -> None:
        assert JsonFileRenderer(registry).render(MESSAGES) is None
        assert registry.get_attribute("status") is None

    def test_unwritable_target(self, tmp_path: Path, registry: InMemoryStatusRegistry) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        registry.set_attribute("status", {"targetDirectory": str(blocker / "sub")})

        with pytest.raises(TargetUnwritableError):
            JsonFileRenderer(registry).render(MESSAGES)
