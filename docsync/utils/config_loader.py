"""Configuration loader for the sync system."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
import yaml
from pydantic import ValidationError

from docsync.models.config import AppConfig
from docsync.sync.timeout_governor import TimeoutGovernor

log = structlog.stdlib.get_logger()


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""


class ConfigLoader:
    """Loads and validates application configuration from YAML files and environment variables.

    String values may reference environment variables as ``${VAR}`` or
    ``${VAR:-default}``.
    """

    def __init__(self, config_dir: str | Path | None = None) -> None:
        """Initialize the ConfigLoader.

        Args:
            config_dir: Directory holding ``<env>.yaml`` files. Defaults to ``config/``
                        at the repository root.
        """
        self.env_var_pattern = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")
        if config_dir is None:
            config_dir = Path(__file__).parent.parent.parent / "config"
        self.config_dir = Path(config_dir)

    def load_config(self, config_path: Optional[str] = None) -> AppConfig:
        """Load configuration from YAML file with environment variable overrides.

        Args:
            config_path: Path to the configuration YAML file. If None, uses
                         ``<APP_ENV>.yaml`` or ``default.yaml``

        Returns:
            AppConfig: Validated application configuration

        Raises:
            ConfigurationError: If the file is missing or invalid, or validation fails
        """
        if config_path is None:
            config_path = self._get_default_config_path()

        log.info("loading_configuration", config_path=config_path)

        config_dict = self._load_yaml_file(config_path)
        config_dict = self._substitute_env_vars(config_dict)

        try:
            app_config = AppConfig(**config_dict)
        except ValidationError as e:
            log.error("configuration_validation_failed", error=str(e))
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

        self.validate_config(app_config)
        log.info(
            "configuration_loaded_successfully",
            space_key=app_config.confluence.space_key,
        )
        return app_config

    def _get_default_config_path(self) -> str:
        env = os.getenv("APP_ENV", "default")
        config_file = self.config_dir / f"{env}.yaml"

        if not config_file.exists():
            config_file = self.config_dir / "default.yaml"

        if not config_file.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_file}. "
                f"Please create config/default.yaml or set APP_ENV to a valid environment."
            )

        return str(config_file)

    def _load_yaml_file(self, config_path: str) -> Dict[str, Any]:
        """Load YAML configuration file.

        Raises:
            ConfigurationError: If file cannot be read or parsed
        """
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config_dict = yaml.safe_load(f)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Configuration file not found: {config_path}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML file {config_path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(
                f"Failed to load configuration file {config_path}: {e}"
            ) from e

        if config_dict is None:
            raise ConfigurationError(f"Configuration file is empty: {config_path}")
        if not isinstance(config_dict, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

        log.debug("yaml_file_loaded", config_path=config_path)
        return config_dict

    def _substitute_env_vars(self, config: Any) -> Any:
        """Recursively substitute environment variables in configuration."""
        if isinstance(config, dict):
            return {key: self._substitute_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_env_var_in_string(config)
        else:
            return config

    def _substitute_env_var_in_string(self, value: str) -> str:
        """Substitute ``${VAR}`` and ``${VAR:-default}`` patterns in a string.

        Raises:
            ConfigurationError: If a variable without default is not set
        """

        def replace(match: re.Match[str]) -> str:
            var_name, default = match.group(1), match.group(2)
            env_value = os.getenv(var_name)
            if env_value is not None:
                return env_value
            if default is not None:
                return default
            raise ConfigurationError(
                f"Required environment variable not set: {var_name}. "
                f"Please set {var_name} in your environment or .env file."
            )

        return self.env_var_pattern.sub(replace, value)

    def validate_config(self, config: AppConfig) -> list[str]:
        """Check cross-field relationships pydantic cannot express per field.

        Args:
            config: Application configuration to validate

        Returns:
            List of warning messages (empty if no warnings)
        """
        warnings = []

        if config.processing.chunk_overlap >= config.processing.chunk_size:
            warnings.append(
                f"chunk_overlap ({config.processing.chunk_overlap}) should be less than "
                f"chunk_size ({config.processing.chunk_size})"
            )

        if config.sync.lease_ttl_seconds < TimeoutGovernor.MAX_TIMEOUT_SECONDS:
            warnings.append(
                f"sync.lease_ttl_seconds ({config.sync.lease_ttl_seconds}) is shorter than the "
                f"longest pass budget ({TimeoutGovernor.MAX_TIMEOUT_SECONDS}s); a running pass "
                "may lose its lease"
            )

        if warnings:
            log.warning("configuration_validation_warnings", warnings=warnings)

        return warnings
