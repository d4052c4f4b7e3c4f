"""
Configuration Loader
Loads WEB-SRM configuration from various sources
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from websrm.config.websrm_config import (
    WebSrmConfig,
    WebSrmEnvironment,
    ENV_VAR_MAPPING,
)
from websrm.config.config_validator import ConfigValidator
from websrm.exceptions import ConfigError


_BOOLEAN_FIELDS = ("verify_server", "enable_audit_log")
_NUMERIC_FIELDS = ("timeout", "retry_attempts", "retry_delay")


class ConfigLoader:
    """
    ConfigLoader class
    Provides multiple ways to load and merge configuration
    """

    def __init__(self) -> None:
        self._validator = ConfigValidator()

    def from_file(self, path: Union[str, Path]) -> Dict[str, Any]:
        """
        Load configuration from a JSON file

        Args:
            path: Path to JSON configuration file

        Returns:
            Loaded configuration dictionary

        Raises:
            ConfigError: If file not found or invalid JSON
        """
        file_path = Path(path).resolve()

        if not file_path.exists():
            raise ConfigError(
                f"Configuration file not found: {file_path}",
                code="CONFIG_FILE_NOT_FOUND"
            )

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                config = json.load(f)
            return self._process_cert_dir(config, file_path.parent)
        except json.JSONDecodeError as e:
            raise ConfigError(
                f"Invalid JSON in configuration file: {file_path}",
                code="CONFIG_PARSE_ERROR"
            ) from e

    def from_environment(self) -> Dict[str, Any]:
        """
        Load configuration from WEBSRM_* environment variables

        Returns:
            Configuration dictionary from environment variables
        """
        config: Dict[str, Any] = {}

        for env_var, config_key in ENV_VAR_MAPPING.items():
            value = os.environ.get(env_var)
            if value is not None and value != "":
                config[config_key] = self._parse_env_value(config_key, value)

        return config

    def from_dict(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of a configuration dictionary"""
        return config.copy()

    def merge(self, *sources: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge multiple configuration sources
        Priority: later sources override earlier sources

        Args:
            sources: Configuration dictionaries in order of increasing priority

        Returns:
            Merged configuration dictionary
        """
        merged: Dict[str, Any] = {}

        for source in sources:
            filtered = self._filter_none(source)
            merged.update(filtered)

        return merged

    def resolve(self, config: Dict[str, Any]) -> WebSrmConfig:
        """
        Resolve configuration with defaults and validation

        Raises:
            ValidationError: If configuration is invalid
        """
        self._validator.validate_or_raise(config)

        return WebSrmConfig(**config)

    def load(
        self,
        file: Optional[Union[str, Path]] = None,
        env: bool = True,
        config: Optional[Dict[str, Any]] = None,
    ) -> WebSrmConfig:
        """
        Load, merge, and resolve configuration from multiple sources

        Args:
            file: Path to JSON configuration file (optional)
            env: Whether to load from environment variables (default: True)
            config: Programmatic configuration dictionary (optional)

        Returns:
            Fully resolved WebSrmConfig object
        """
        sources: list[Dict[str, Any]] = []

        if file is not None:
            sources.append(self.from_file(file))

        if env:
            sources.append(self.from_environment())

        if config is not None:
            sources.append(config)

        merged = self.merge(*sources)
        return self.resolve(merged)

    def create_template(self, path: Union[str, Path]) -> None:
        """
        Create a configuration template file

        Args:
            path: Path to write template
        """
        template = {
            "environment": "DEV",
            "auth_code": "XXXX-XXXX",
            "partner_id": "YOUR_PARTNER_ID",
            "certification_code": "YOUR_CERTIFICATION_CODE",
            "software_id": "YOUR_SOFTWARE_ID",
            "software_version_id": "YOUR_SOFTWARE_VERSION_ID",
            "version": "0.1.0",
            "timeout": 30000,
            "retry_attempts": 0,
            "retry_delay": 1000,
            "cert_dir": "./certs",
            "verify_server": True,
            "enable_audit_log": True,
        }

        file_path = Path(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(file_path, "w", encoding="utf-8") as f:
            json.dump(template, f, indent=2)

    def _parse_env_value(self, key: str, value: str) -> Any:
        """Parse environment variable value to appropriate type"""
        if key in _BOOLEAN_FIELDS:
            return value.lower() in ("true", "1", "yes")

        if key in _NUMERIC_FIELDS:
            try:
                return int(value)
            except ValueError:
                return value

        if key == "environment":
            try:
                return WebSrmEnvironment(value.upper())
            except ValueError:
                return value

        return value

    def _process_cert_dir(
        self, config: Dict[str, Any], base_path: Path
    ) -> Dict[str, Any]:
        """Resolve a relative cert_dir against the config file location"""
        processed = config.copy()

        cert_dir = processed.get("cert_dir")
        if isinstance(cert_dir, str) and cert_dir:
            cert_path = Path(cert_dir)
            if not cert_path.is_absolute():
                processed["cert_dir"] = str(base_path / cert_path)

        return processed

    def _filter_none(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Filter out None values from config dictionary"""
        return {k: v for k, v in config.items() if v is not None}
