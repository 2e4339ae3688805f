"""
Tests for settings and logging configuration.
"""

import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from screener_engine.config import AppEnvironment, Settings, get_settings
from screener_engine.logging import (
    EngineFormatter,
    clear_run_id,
    get_in_memory_logs,
    get_logger,
    set_run_id,
    setup_logging,
)


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, tmp_path: Path) -> None:
        settings = Settings(data_dir=tmp_path)
        assert settings.env == AppEnvironment.DEVELOPMENT
        assert settings.log_level == "INFO"
        assert settings.load_max_workers == 8
        assert settings.score_max_workers == 1
        assert settings.default_holding_period == 5

    def test_directories_derive_from_data_dir(self, tmp_path: Path) -> None:
        settings = Settings(data_dir=tmp_path)
        root = tmp_path.resolve()
        assert settings.resolved_stooq_dir == root / "stooq"
        assert settings.resolved_models_dir == root / "models"
        assert settings.resolved_strategies_dir == root / "strategies"
        assert settings.resolved_sessions_dir == root / "sessions"

    def test_explicit_directory_wins(self, tmp_path: Path) -> None:
        settings = Settings(data_dir=tmp_path, stooq_dir=tmp_path / "elsewhere")
        assert settings.resolved_stooq_dir == tmp_path / "elsewhere"

    def test_reads_prefixed_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SCREENER_LOG_LEVEL", "debug")
        monkeypatch.setenv("SCREENER_SCORE_MAX_WORKERS", "4")
        settings = Settings(data_dir=tmp_path)
        assert settings.log_level == "DEBUG"
        assert settings.score_max_workers == 4

    def test_invalid_log_level_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ValidationError):
            Settings(data_dir=tmp_path, log_level="LOUD")

    def test_exchanges_normalized(self, tmp_path: Path) -> None:
        settings = Settings(data_dir=tmp_path, selected_exchanges=[" US ", "Nasdaq", ""])
        assert settings.selected_exchanges == ["us", "nasdaq"]

    def test_data_dir_created(self, tmp_path: Path) -> None:
        target = tmp_path / "new" / "data"
        Settings(data_dir=target)
        assert target.is_dir()

    def test_redacted_config(self, tmp_path: Path) -> None:
        config = Settings(data_dir=tmp_path).get_redacted_config()
        assert config["exchanges"] == "*"
        assert config["log_level"] == "INFO"

    def test_get_settings_is_cached(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SCREENER_DATA_DIR", str(tmp_path))
        get_settings.cache_clear()
        assert get_settings() is get_settings()


class TestLogging:
    """Tests for logging helpers."""

    def test_run_id_recorded_in_memory(self) -> None:
        setup_logging(level="DEBUG")
        logger = get_logger("screener_engine.tests")
        set_run_id("bt-test")
        try:
            logger.info("hello %s", "world")
        finally:
            clear_run_id()
        logger.info("after run")

        logs = get_in_memory_logs(level="INFO", limit=10)
        tagged = [log for log in logs if log["message"] == "hello world"]
        assert tagged and tagged[-1]["run_id"] == "bt-test"
        assert logs[-1]["message"] == "after run"
        assert logs[-1]["run_id"] is None

    def test_in_memory_level_filter(self) -> None:
        setup_logging(level="DEBUG")
        logger = get_logger("screener_engine.tests")
        logger.debug("debug line")
        logger.warning("warning line")
        messages = [log["message"] for log in get_in_memory_logs(level="WARNING", limit=50)]
        assert "warning line" in messages
        assert "debug line" not in messages

    def test_formatter_includes_run_id(self) -> None:
        formatter = EngineFormatter("%(run_id)s%(message)s")
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
        set_run_id("abc")
        try:
            assert formatter.format(record) == "[abc] msg"
        finally:
            clear_run_id()
        assert formatter.format(record) == "msg"
