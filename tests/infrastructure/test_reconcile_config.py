"""
Tests for reconciliation configuration, settings and logging setup.
"""

import json
import logging
import os
from datetime import timedelta

import pytest
from pydantic import ValidationError

from chart_reconcile.infrastructure.config_manager import (
    DEFAULT_MATCH_THRESHOLD,
    ConfigManager,
    ReconciliationConfig,
)
from chart_reconcile.infrastructure.logging_config import StructuredFormatter, setup_logging
from chart_reconcile.infrastructure.settings import Settings


class TestReconciliationConfig:
    """Test threshold validation."""

    def test_defaults(self):
        """Test the default contract constants."""
        config = ReconciliationConfig()

        assert config.match_threshold == DEFAULT_MATCH_THRESHOLD
        assert config.lab_vital_window == timedelta(hours=24)
        assert config.immunization_window == timedelta(days=30)
        assert config.stable_trend_percent == 5.0
        assert config.critical_lab_factor == 1.5

    def test_threshold_out_of_range(self):
        """Test that a threshold above 1 is rejected."""
        with pytest.raises(ValidationError):
            ReconciliationConfig(match_threshold=1.2)

    def test_non_positive_window(self):
        """Test that a zero window is rejected."""
        with pytest.raises(ValidationError):
            ReconciliationConfig(lab_vital_window_hours=0)

    def test_critical_factor_must_exceed_one(self):
        """Test that a factor of 1 is rejected."""
        with pytest.raises(ValidationError):
            ReconciliationConfig(critical_lab_factor=1.0)


class TestConfigManager:
    """Test loading configuration from environment and files."""

    def test_from_environment(self, monkeypatch, tmp_path):
        """Test that CR_* variables override defaults."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("CR_MATCH_THRESHOLD", "0.9")
        monkeypatch.setenv("CR_LAB_VITAL_WINDOW_HOURS", "48")
        monkeypatch.delenv("CR_IMMUNIZATION_WINDOW_DAYS", raising=False)

        config = ConfigManager.from_environment().get_reconciliation_config()

        assert config.match_threshold == 0.9
        assert config.lab_vital_window == timedelta(hours=48)
        assert config.immunization_window_days == 30

    def test_from_dotenv_file(self, monkeypatch, tmp_path):
        """Test that a .env file in the working directory is read."""
        monkeypatch.chdir(tmp_path)
        # setenv first so teardown removes the value the .env file loads
        monkeypatch.setenv("CR_STABLE_TREND_PERCENT", "")
        monkeypatch.delenv("CR_STABLE_TREND_PERCENT")
        (tmp_path / ".env").write_text("CR_STABLE_TREND_PERCENT=7.5\n", encoding="utf-8")

        config = ConfigManager.from_environment().get_reconciliation_config()

        assert config.stable_trend_percent == 7.5

    def test_invalid_environment_value(self, monkeypatch, tmp_path):
        """Test that an out-of-range environment value fails validation."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("CR_MATCH_THRESHOLD", "2")

        with pytest.raises(ValidationError):
            ConfigManager.from_environment().get_reconciliation_config()

    def test_from_file(self, tmp_path):
        """Test loading a JSON configuration file."""
        path = tmp_path / "reconcile.json"
        path.write_text(json.dumps({"reconciliation": {"match_threshold": 0.85}}), encoding="utf-8")
        os.chmod(path, 0o600)

        manager = ConfigManager.from_file(str(path))

        assert manager.get_reconciliation_config().match_threshold == 0.85
        assert manager.get("reconciliation.match_threshold") == 0.85
        assert manager.get("reconciliation.missing", "fallback") == "fallback"

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            ConfigManager.from_file(str(tmp_path / "missing.json"))

    def test_invalid_file(self, tmp_path):
        """Test that malformed JSON and non-objects raise ValueError."""
        broken = tmp_path / "broken.json"
        broken.write_text("{", encoding="utf-8")
        listing = tmp_path / "list.json"
        listing.write_text("[]", encoding="utf-8")

        with pytest.raises(ValueError):
            ConfigManager.from_file(str(broken))
        with pytest.raises(ValueError):
            ConfigManager.from_file(str(listing))

    def test_threshold_override_logged(self, caplog):
        """Test that a non-default threshold is logged as a warning."""
        with caplog.at_level(logging.WARNING):
            ConfigManager({"reconciliation": {"match_threshold": 0.7}}).get_reconciliation_config()
        assert "threshold overridden" in caplog.text


class TestSettings:
    """Test application settings."""

    def test_environment_settings(self, monkeypatch):
        """Test that CR_* application variables are read."""
        monkeypatch.setenv("CR_LOG_JSON", "true")
        monkeypatch.setenv("CR_MAX_WORKERS", "2")
        monkeypatch.setenv("CR_SAVE_REPORT", "false")

        settings = Settings()

        assert settings.log_json
        assert settings.max_workers == 2
        assert not settings.save_report

    def test_reconciliation_loaded_lazily(self, monkeypatch, tmp_path):
        """Test that thresholds are loaded on first access and cached."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("CR_MATCH_THRESHOLD", raising=False)
        settings = Settings()

        assert settings.reconciliation is settings.reconciliation
        assert settings.reconciliation.match_threshold == DEFAULT_MATCH_THRESHOLD


class TestLogging:
    """Test logging setup."""

    def test_structured_formatter(self):
        """Test that records format as JSON with extra fields."""
        record = logging.LogRecord("chart_reconcile.test", logging.INFO, __file__, 10, "merged %d", (3,), None)
        record.extra_fields = {"source": "epic"}
        payload = json.loads(StructuredFormatter().format(record))

        assert payload["message"] == "merged 3"
        assert payload["level"] == "INFO"
        assert payload["source"] == "epic"

    def test_setup_logging_replaces_handlers(self):
        """Test that setup installs exactly one handler at the given level."""
        root = logging.getLogger()
        previous_handlers, previous_level = root.handlers[:], root.level
        try:
            setup_logging(use_json=True, log_level="debug")
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, StructuredFormatter)
            assert root.level == logging.DEBUG
        finally:
            root.handlers[:] = previous_handlers
            root.setLevel(previous_level)
