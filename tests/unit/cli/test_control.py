"""Unit tests — CLI settings loading and logging setup."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
import yaml

from jade_guard.cli.commands._control import load_settings


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("HOME", str(tmp_path))
    return tmp_path


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {"logging": {"level": "info", "format": "json", "file": str(tmp_path / "cli.log")}}
        )
    )
    return path


def _file_handlers() -> list[logging.FileHandler]:
    return [h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)]


@pytest.mark.unit
class TestLoadSettings:
    def test_logging_section_applied(self, config_file: Path, tmp_path: Path) -> None:
        settings = load_settings(config_file, None, None)

        assert settings.logging.level == "info"
        assert logging.getLogger().level == logging.INFO
        assert [h.baseFilename for h in _file_handlers()] == [str(tmp_path / "cli.log")]

    def test_log_level_option_overrides_config(self, config_file: Path) -> None:
        load_settings(config_file, None, "error")
        assert logging.getLogger().level == logging.ERROR

    def test_db_option_selects_sqlite(self, tmp_path: Path) -> None:
        settings = load_settings(None, tmp_path / "store.db", "critical")
        assert settings.storage.backend == "sqlite"
        assert settings.storage.path == tmp_path / "store.db"
        assert _file_handlers() == []
