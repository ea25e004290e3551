"""Application Settings and Configuration.

This module provides application-wide settings that combine configuration
from the configuration manager with application-specific defaults.

Security Impact:
    - Reconciliation thresholds are loaded lazily and validated on first use
    - Defaults are provided for development convenience
"""

import os
from typing import Optional

from chart_reconcile.infrastructure.config_manager import ConfigManager, ReconciliationConfig

# Application metadata
APP_NAME = "chart-reconcile"
APP_VERSION = "0.1.0"

# Default number of concurrent source loads
DEFAULT_MAX_WORKERS = 4


class Settings:
    """Application settings loaded from configuration manager and environment.

    Environment Variables:
        - CR_APP_NAME: Application name
        - CR_LOG_LEVEL: Logging level (default INFO)
        - CR_LOG_JSON: Emit JSON log lines (default false)
        - CR_MAX_WORKERS: Concurrent source loads (default 4)
        - CR_SAVE_REPORT: Save a reconciliation report after each run (default false)
        - CR_REPORT_DIR: Directory for saved reports (default "reports")
    """

    def __init__(self):
        """Initialize settings from environment."""
        self._reconciliation: Optional[ReconciliationConfig] = None
        self._config_manager: Optional[ConfigManager] = None

        self.app_name = os.getenv("CR_APP_NAME", APP_NAME)
        self.log_level = os.getenv("CR_LOG_LEVEL", "INFO")
        self.log_json = os.getenv("CR_LOG_JSON", "false").lower() == "true"
        self.max_workers = int(os.getenv("CR_MAX_WORKERS", str(DEFAULT_MAX_WORKERS)))

        # Reconciliation report settings
        self.save_report = os.getenv("CR_SAVE_REPORT", "false").lower() == "true"
        self.report_dir = os.getenv("CR_REPORT_DIR", "reports")

    @property
    def config_manager(self) -> ConfigManager:
        if self._config_manager is None:
            self._config_manager = ConfigManager.from_environment()
        return self._config_manager

    @property
    def reconciliation(self) -> ReconciliationConfig:
        """Reconciliation thresholds, loaded on first access."""
        if self._reconciliation is None:
            self._reconciliation = self.config_manager.get_reconciliation_config()
        return self._reconciliation


# Global settings instance
settings = Settings()
