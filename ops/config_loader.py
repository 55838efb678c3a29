"""
Configuration Loader for the Cadastral Ingestion Pipeline

This module provides a centralized way to load and access configuration
settings from a config.yaml file.

Usage:
    from ops.config_loader import Config

    config = Config()
    sample_size = config.get_import_setting('error_sample_size')
    insert_rpc = config.get_rpc_name('insert_parcel')
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml  # type: ignore[import-untyped]
from loguru import logger

PACKAGED_CONFIG = Path(__file__).parent / "config.yaml"


class Config:
    """Configuration manager for the cadastral ingestion pipeline."""

    # Default values that can be overridden in config
    DEFAULTS: Dict[str, Any] = {
        "ingest": {
            "projected_threshold": 1000.0,
            "parcel_id_prefix": "PARCEL",
            "utm": {
                "central_meridian": 99.0,
                "false_easting": 500000.0,
                "scale_factor": 0.9996,
                "meters_per_degree": 111319.9,
            },
        },
        "import": {
            "error_sample_size": 10,
            "geometry_sample_chars": 200,
        },
        "supabase": {
            "table": "cadastral_parcels",
            "rpc": {
                "insert_parcel": "insert_parcel_with_geometry",
                "insert_parcel_simple": "insert_parcel_with_geometry_simple",
                "parcels_in_bounds": "get_parcels_in_bounds",
                "calculate_area": "calculate_geometry_area",
                "intersecting_parcels": "find_intersecting_parcels",
                "statistics": "get_cadastral_statistics",
                "validate_geometry": "validate_and_repair_geometry",
                "postgis_version": "postgis_version",
            },
        },
    }

    def __init__(self, config_file: Optional[Union[str, Path]] = None):
        """
        Initialize configuration manager.

        Args:
            config_file: Path to config file. If None, looks for:
                        1. Environment variable CADASTRE_CONFIG_PATH
                        2. config.yaml in current directory
                        3. the config.yaml shipped next to this module
        """
        if config_file is None:
            env_config = os.environ.get("CADASTRE_CONFIG_PATH")
            if env_config and Path(env_config).exists():
                config_file = env_config
                logger.debug(f"Using config from environment: {config_file}")
            elif Path("config.yaml").exists():
                config_file = "config.yaml"
            elif PACKAGED_CONFIG.exists():
                config_file = PACKAGED_CONFIG
                logger.debug("Using packaged ops/config.yaml")
            else:
                raise FileNotFoundError(
                    "No config.yaml found. Check current directory or set CADASTRE_CONFIG_PATH"
                )

        self.config_path = Path(config_file).resolve()
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        logger.debug(f"Loading config from: {self.config_path}")

        with open(self.config_path, "r", encoding="utf-8") as f:
            self.data = yaml.safe_load(f) or {}

        if not isinstance(self.data, dict):
            raise ValueError(f"Config file must contain a mapping: {self.config_path}")

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation with intelligent defaults.

        Args:
            key_path: Dot-separated path to the configuration value
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key_path.split(".")

        # Try to get from config first
        value: Any = self.data
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                value = None
                break

        # If not found in config, try defaults
        if value is None:
            value = self.DEFAULTS
            for key in keys:
                if isinstance(value, dict) and key in value:
                    value = value[key]
                else:
                    return default

        return value

    def get_ingest_setting(self, setting_key: str) -> Any:
        """Get ingestion setting with intelligent defaults."""
        return self.get(f"ingest.{setting_key}")

    def get_import_setting(self, setting_key: str) -> Any:
        """Get import setting with intelligent defaults."""
        return self.get(f"import.{setting_key}")

    def get_rpc_name(self, rpc_key: str) -> str:
        """Get the name of a database remote procedure."""
        result = self.get(f"supabase.rpc.{rpc_key}")
        if isinstance(result, str):
            return result
        raise ValueError(f"RPC name not found or not a string: {rpc_key}")

    def get_table_name(self) -> str:
        """Get the parcel table name."""
        return str(self.get("supabase.table"))

    def print_config_summary(self) -> None:
        """Print a summary of the current configuration."""
        logger.debug("📋 Configuration Summary")
        logger.debug("=" * 50)
        logger.debug(f"Project: {self.get('project_name', 'Unknown')}")
        logger.debug(f"Config file: {self.config_path}")
        logger.debug(f"Parcel table: {self.get_table_name()}")
        logger.debug(f"Insert RPC: {self.get_rpc_name('insert_parcel')}")
        logger.debug(f"Error sample size: {self.get_import_setting('error_sample_size')}")
        utm = self.get_ingest_setting("utm")
        logger.debug(f"UTM approximation: {utm}")
