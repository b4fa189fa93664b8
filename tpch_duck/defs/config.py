"""Configuration management for the tpch-duck project.

This module provides validated configuration with clear error messages.
All configuration is loaded from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

from tpch_duck.exceptions import ConfigurationError

from . import constants


@dataclass(frozen=True)
class TpchDuckConfig:
    """Validated project configuration.

    Attributes:
        duckdb_path: Path to the DuckDB warehouse file
        raw_dir: Directory holding raw ``<table>.parquet`` / ``<table>.csv`` files
        lookback_days: Days reprocessed behind the watermark (default: 3)
        reconciliation_tolerance: Allowed relative difference between an
            order total and its line items (default: 0.01)
        freshness_warn_hours: Source age that triggers a warning (default: 12)
        freshness_error_hours: Source age that triggers an error (default: 24)
    """

    duckdb_path: Path
    raw_dir: Path
    lookback_days: int = constants.LOOKBACK_DAYS
    reconciliation_tolerance: float = constants.RECONCILIATION_TOLERANCE
    freshness_warn_hours: int = constants.FRESHNESS_WARN_HOURS
    freshness_error_hours: int = constants.FRESHNESS_ERROR_HOURS

    @property
    def lookback(self) -> timedelta:
        return timedelta(days=self.lookback_days)

    @property
    def freshness_warn_after(self) -> timedelta:
        return timedelta(hours=self.freshness_warn_hours)

    @property
    def freshness_error_after(self) -> timedelta:
        return timedelta(hours=self.freshness_error_hours)

    @property
    def variables(self) -> dict[str, Any]:
        """Project variables available to model templates through ``var()``."""
        return {
            "lookback_days": self.lookback_days,
            "order_size_small_max": constants.ORDER_SIZE_SMALL_MAX,
            "order_size_medium_max": constants.ORDER_SIZE_MEDIUM_MAX,
            "order_size_large_max": constants.ORDER_SIZE_LARGE_MAX,
            "high_priorities": list(constants.HIGH_PRIORITIES),
            "medium_priorities": list(constants.MEDIUM_PRIORITIES),
        }

    def validate(self) -> None:
        """Validate configuration at startup.

        Creates the warehouse directory if it doesn't exist.

        Raises:
            ConfigurationError: If any configuration is invalid
        """
        try:
            self.duckdb_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                f"Failed to create warehouse directory: {e}. "
                f"Check permissions for parent directories."
            ) from e

        if not os.access(self.duckdb_path.parent, os.W_OK):
            raise ConfigurationError(
                f"DuckDB directory {self.duckdb_path.parent} is not writable. "
                f"Check permissions with: ls -ld {self.duckdb_path.parent}"
            )

        if self.lookback_days < 0:
            raise ConfigurationError(
                f"lookback_days must not be negative, got: {self.lookback_days}"
            )

        if not 0 <= self.reconciliation_tolerance < 1:
            raise ConfigurationError(
                f"reconciliation_tolerance must be in [0, 1), got: {self.reconciliation_tolerance}"
            )

        if self.freshness_warn_hours <= 0:
            raise ConfigurationError(
                f"freshness_warn_hours must be positive, got: {self.freshness_warn_hours}"
            )

        if self.freshness_error_hours < self.freshness_warn_hours:
            raise ConfigurationError(
                f"freshness_error_hours ({self.freshness_error_hours}) must not be "
                f"less than freshness_warn_hours ({self.freshness_warn_hours})"
            )

    @classmethod
    def from_env(cls) -> "TpchDuckConfig":
        """Load and validate configuration from environment variables.

        Environment Variables:
            TPCH_DUCK_DB_PATH: DuckDB database path (default: data/warehouse/tpch.duckdb)
            TPCH_DUCK_RAW_DIR: Raw data directory (default: data/raw)
            TPCH_DUCK_LOOKBACK_DAYS: Incremental lookback in days (default: 3)
            TPCH_DUCK_RECONCILIATION_TOLERANCE: Order total tolerance (default: 0.01)
            TPCH_DUCK_FRESHNESS_WARN_HOURS: Source warn threshold (default: 12)
            TPCH_DUCK_FRESHNESS_ERROR_HOURS: Source error threshold (default: 24)

        Returns:
            Validated configuration object

        Raises:
            ConfigurationError: If configuration is invalid
        """
        # Resolve paths relative to project root
        project_root = Path(__file__).parent.parent.parent
        data_dir = project_root / "data"

        try:
            config = cls(
                duckdb_path=Path(
                    os.environ.get("TPCH_DUCK_DB_PATH", str(data_dir / "warehouse" / "tpch.duckdb"))
                ),
                raw_dir=Path(os.environ.get("TPCH_DUCK_RAW_DIR", str(data_dir / "raw"))),
                lookback_days=int(
                    os.environ.get("TPCH_DUCK_LOOKBACK_DAYS", str(constants.LOOKBACK_DAYS))
                ),
                reconciliation_tolerance=float(
                    os.environ.get(
                        "TPCH_DUCK_RECONCILIATION_TOLERANCE",
                        str(constants.RECONCILIATION_TOLERANCE),
                    )
                ),
                freshness_warn_hours=int(
                    os.environ.get(
                        "TPCH_DUCK_FRESHNESS_WARN_HOURS", str(constants.FRESHNESS_WARN_HOURS)
                    )
                ),
                freshness_error_hours=int(
                    os.environ.get(
                        "TPCH_DUCK_FRESHNESS_ERROR_HOURS", str(constants.FRESHNESS_ERROR_HOURS)
                    )
                ),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric environment variable: {e}") from e

        # Validate before returning
        config.validate()

        return config


# Global configuration instance - validated on import
try:
    CONFIG = TpchDuckConfig.from_env()
except ConfigurationError as e:
    # Re-raise with helpful context
    raise ConfigurationError(
        f"Failed to load configuration: {e}\n\n"
        f"Check your environment variables and directory permissions."
    ) from e
