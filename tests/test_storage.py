"""Tests for run artifacts and logging setup."""

from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path

import pytest

from botswarm.logging_utils import configure_logging, session_log_path
from botswarm.storage import DataDirs, save_config_snapshot, write_proxy_list

from conftest import make_config


@pytest.fixture
def dirs(tmp_path: Path) -> DataDirs:
    return DataDirs(tmp_path / "bot-data").create()


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


class TestDataDirs:
    def test_layout_created(self, dirs: DataDirs) -> None:
        for sub in ("logs", "proxies", "configs"):
            assert (dirs.base / sub).is_dir()

    def test_create_is_repeatable(self, dirs: DataDirs) -> None:
        assert dirs.create() is dirs


class TestArtifacts:
    def test_proxy_list(self, dirs: DataDirs) -> None:
        path = write_proxy_list(dirs, ["1.1.1.1:1080", "2.2.2.2:1080"], "working_localhost")

        assert path.parent == dirs.proxies
        assert path.name.startswith("working_localhost_")
        assert path.suffix == ".txt"
        assert path.read_text().splitlines() == ["1.1.1.1:1080", "2.2.2.2:1080"]

    def test_config_snapshot(self, dirs: DataDirs) -> None:
        config = make_config()
        path = save_config_snapshot(dirs, config)

        data = json.loads(path.read_text())
        assert path.parent == dirs.configs
        assert path.name.startswith("session_")
        assert data["target"]["host"] == "127.0.0.1"
        assert data["spawn"]["max_bots"] == config.spawn.max_bots
        assert "timestamp" in data


class TestLogging:
    def test_session_log_name(self, tmp_path: Path) -> None:
        path = session_log_path(tmp_path, date(2024, 3, 9))
        assert path == tmp_path / "session_2024-03-09.log"

    def test_file_handler_appends(self, dirs: DataDirs, restore_logging) -> None:
        configure_logging("DEBUG", dirs.logs)
        logging.getLogger("botswarm.test").info("first run")
        configure_logging("INFO", dirs.logs)
        logging.getLogger("botswarm.test").info("second run")
        for handler in logging.getLogger().handlers:
            handler.flush()

        text = session_log_path(dirs.logs).read_text()
        assert "first run" in text
        assert "second run" in text
        assert "[INFO] botswarm.test:" in text

    def test_reconfigure_replaces_handlers(self, restore_logging) -> None:
        configure_logging("WARNING")
        configure_logging("WARNING")
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.WARNING
        assert logging.getLogger("websockets").level == logging.WARNING
