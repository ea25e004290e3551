"""Configuration Manager for Reconciliation Thresholds.

This module loads the reconciliation contract constants (patient-match
threshold, merge time windows, lab analysis thresholds) from environment
variables or a JSON file and validates them before use.

Security Impact:
    - An out-of-range threshold is rejected at load time, never applied
    - Lowering the match threshold merges less-certain identities, so the
      value is validated to 0..1 and logged when it differs from the default
    - Configuration files are checked for overly permissive permissions

Architecture:
    - Follows Hexagonal Architecture: Infrastructure layer isolated from domain
    - Domain services receive plain values; this layer owns where they come from
    - Type-safe configuration using Pydantic models
    - Fail-fast validation prevents runtime errors
"""

import json
import logging
import os
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, field_validator

from chart_reconcile.domain.reference_data import REFERENCE_DATA_VERSION

logger = logging.getLogger(__name__)

DEFAULT_MATCH_THRESHOLD = 0.80

# Environment variable -> ReconciliationConfig field
ENV_FIELDS = {
    "CR_MATCH_THRESHOLD": "match_threshold",
    "CR_LAB_VITAL_WINDOW_HOURS": "lab_vital_window_hours",
    "CR_IMMUNIZATION_WINDOW_DAYS": "immunization_window_days",
    "CR_STABLE_TREND_PERCENT": "stable_trend_percent",
    "CR_CRITICAL_LAB_FACTOR": "critical_lab_factor",
}


class ReconciliationConfig(BaseModel):
    """Reconciliation thresholds and windows.

    Parameters:
        match_threshold: Minimum matcher confidence to treat two demographics as one patient
        lab_vital_window_hours: Max distance between lab/vital readings that may merge
        immunization_window_days: Max distance between immunizations that may merge
        stable_trend_percent: |change| below this is a stable lab trend
        critical_lab_factor: Multiplier on the reference bound marking a critical value
        reference_data_version: Version label of the rule tables
    """

    match_threshold: float = Field(default=DEFAULT_MATCH_THRESHOLD, description="Patient-match threshold")
    lab_vital_window_hours: float = Field(default=24, description="Lab/vital merge window (hours)")
    immunization_window_days: float = Field(default=30, description="Immunization merge window (days)")
    stable_trend_percent: float = Field(default=5.0, description="Stable lab trend threshold (%)")
    critical_lab_factor: float = Field(default=1.5, description="Critical lab multiplier")
    reference_data_version: str = Field(default=REFERENCE_DATA_VERSION, description="Rule table version")

    @field_validator("match_threshold")
    @classmethod
    def validate_match_threshold(cls, v: float) -> float:
        """Threshold must be a probability."""
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"match_threshold must be between 0 and 1, got {v}")
        return v

    @field_validator("lab_vital_window_hours", "immunization_window_days")
    @classmethod
    def validate_window(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Merge windows must be positive, got {v}")
        return v

    @field_validator("stable_trend_percent")
    @classmethod
    def validate_stable_trend(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"stable_trend_percent must not be negative, got {v}")
        return v

    @field_validator("critical_lab_factor")
    @classmethod
    def validate_critical_factor(cls, v: float) -> float:
        if v <= 1.0:
            raise ValueError(f"critical_lab_factor must be greater than 1, got {v}")
        return v

    @property
    def lab_vital_window(self) -> timedelta:
        return timedelta(hours=self.lab_vital_window_hours)

    @property
    def immunization_window(self) -> timedelta:
        return timedelta(days=self.immunization_window_days)


class ConfigManager:
    """Configuration manager for reconciliation settings.

    Example Usage:
        ```python
        # Load from environment variables (and .env if present)
        config = ConfigManager.from_environment()
        recon = config.get_reconciliation_config()

        # Load from file
        config = ConfigManager.from_file("reconcile.json")
        recon = config.get_reconciliation_config()
        ```
    """

    def __init__(self, config_data: Dict[str, Any]):
        """Initialize configuration manager.

        Parameters:
            config_data: Configuration dictionary; reconciliation values live
                under the "reconciliation" key
        """
        self._config_data = config_data
        self._reconciliation_config: Optional[ReconciliationConfig] = None

    @classmethod
    def from_environment(cls) -> 'ConfigManager':
        """Load configuration from environment variables.

        Environment Variables:
            - CR_MATCH_THRESHOLD: Patient-match threshold (0..1)
            - CR_LAB_VITAL_WINDOW_HOURS: Lab/vital merge window in hours
            - CR_IMMUNIZATION_WINDOW_DAYS: Immunization merge window in days
            - CR_STABLE_TREND_PERCENT: Stable lab trend threshold
            - CR_CRITICAL_LAB_FACTOR: Critical lab multiplier

        A ``.env`` file found from the working directory upward is loaded
        first; variables already set in the environment take precedence.

        Returns:
            ConfigManager instance
        """
        env_path = find_dotenv(usecwd=True)
        if env_path:
            load_dotenv(env_path)
            logger.debug("Loaded environment variables from %s", env_path)

        reconciliation = {
            field: os.environ[var] for var, field in ENV_FIELDS.items() if os.getenv(var)
        }
        return cls({"reconciliation": reconciliation})

    @classmethod
    def from_file(cls, config_path: str) -> 'ConfigManager':
        """Load configuration from a JSON file.

        Parameters:
            config_path: Path to configuration file

        Returns:
            ConfigManager instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is invalid
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        stat_info = config_file.stat()
        if stat_info.st_mode & 0o077 != 0:
            logger.warning(
                "Configuration file has overly permissive permissions: %s. "
                "Consider setting to 600.", config_path,
            )

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {e}")

        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a JSON object")
        return cls(config_data)

    def get_reconciliation_config(self) -> ReconciliationConfig:
        """Get validated reconciliation configuration.

        Raises:
            pydantic.ValidationError: If any value is out of range
        """
        if self._reconciliation_config is None:
            self._reconciliation_config = ReconciliationConfig(
                **self._config_data.get("reconciliation", {})
            )
            if self._reconciliation_config.match_threshold != DEFAULT_MATCH_THRESHOLD:
                logger.warning(
                    "Patient-match threshold overridden: %.2f (default %.2f)",
                    self._reconciliation_config.match_threshold, DEFAULT_MATCH_THRESHOLD,
                )
        return self._reconciliation_config

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key.

        Parameters:
            key: Configuration key (supports dot notation, e.g., "reconciliation.match_threshold")
            default: Default value if key not found

        Returns:
            Configuration value
        """
        value = self._config_data
        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default

