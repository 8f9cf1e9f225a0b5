"""Configuration management for review-poster."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from review_poster.models import Config, ConfigValidationResult
from review_poster.utils.logger import get_logger
from review_poster.utils.shell import get_git_root

logger = get_logger(__name__)

CONFIG_DIR_NAME = ".review-poster"
ENV_PREFIX = "REVIEW_POSTER_"


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigManager:
    """Configuration manager with hierarchical loading and environment variable support."""

    def __init__(self):
        """Initialize configuration manager."""
        self._config: Optional[Config] = None
        self._user_config_path = Path.home() / CONFIG_DIR_NAME / "config.yaml"
        self._project_config_path: Optional[Path] = None
        self._find_project_config()

    def _find_project_config(self) -> None:
        """Look for <git root>/.review-poster/config.yaml."""
        git_root = get_git_root()
        if not git_root:
            return

        project_config = git_root / CONFIG_DIR_NAME / "config.yaml"
        if project_config.exists() and project_config != self._user_config_path:
            self._project_config_path = project_config
            logger.debug(f"Found project config: {project_config}")

    def _expand_env_vars(self, data: Any) -> Any:
        """Recursively expand ${VAR} and ${VAR:-default} in configuration values."""
        if isinstance(data, str):
            def replace_env_var(match: re.Match) -> str:
                var_expr = match.group(1)
                if ":-" in var_expr:
                    var_name, default_value = var_expr.split(":-", 1)
                    return os.getenv(var_name, default_value)
                var_value = os.getenv(var_expr)
                if var_value is None:
                    logger.warning(f"Environment variable '{var_expr}' not found")
                    return match.group(0)
                return var_value

            return re.sub(r"\$\{([^}]+)\}", replace_env_var, data)
        if isinstance(data, dict):
            return {key: self._expand_env_vars(value) for key, value in data.items()}
        if isinstance(data, list):
            return [self._expand_env_vars(item) for item in data]
        return data

    def _load_yaml_file(self, path: Path) -> Dict[str, Any]:
        """Load and parse YAML configuration file.

        Args:
            path: Path to YAML file

        Returns:
            Parsed configuration data, empty when the file does not exist

        Raises:
            ConfigError: If file cannot be loaded or parsed
        """
        if not path.exists():
            return {}

        logger.debug(f"Loading config file: {path}")
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML file {path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to load config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

        return self._expand_env_vars(data)

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Merge configuration dictionaries recursively."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply REVIEW_POSTER_* environment variables.

        Double underscores separate nested keys, for example
        REVIEW_POSTER_POSTING__BATCH_SIZE -> posting.batch_size.
        """
        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            key_parts = key[len(ENV_PREFIX):].lower().split("__")
            current = config_data
            for part in key_parts[:-1]:
                if not isinstance(current.get(part), dict):
                    current[part] = {}
                current = current[part]

            final_key = key_parts[-1]
            if value.lower() in ("true", "false"):
                current[final_key] = value.lower() == "true"
            elif value.isdigit():
                current[final_key] = int(value)
            else:
                try:
                    current[final_key] = float(value)
                except ValueError:
                    current[final_key] = value

            logger.debug(f"Applied env override: {'.'.join(key_parts)}")

        return config_data

    def load_config(self) -> Config:
        """Load configuration from all sources.

        Loading order (later sources override earlier):
        1. Defaults from the Config model
        2. User configuration (~/.review-poster/config.yaml)
        3. Project configuration (<git root>/.review-poster/config.yaml)
        4. Environment variables

        Raises:
            ConfigError: If configuration is invalid
        """
        config_data: Dict[str, Any] = {}
        config_data = self._merge_configs(config_data, self._load_yaml_file(self._user_config_path))
        if self._project_config_path:
            config_data = self._merge_configs(
                config_data, self._load_yaml_file(self._project_config_path)
            )
        config_data = self._apply_env_overrides(config_data)

        try:
            self._config = Config.model_validate(config_data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

        logger.debug("Configuration loaded successfully")
        return self._config

    def get_config(self) -> Config:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            self._config = self.load_config()
        return self._config

    def reload_config(self) -> Config:
        """Reload configuration from all sources."""
        self._config = None
        self._find_project_config()
        return self.load_config()

    def get_config_value(self, key: str) -> Any:
        """Get configuration value by dot-separated key.

        Raises:
            ConfigError: If key is not found
        """
        current: Any = self.get_config().model_dump(mode="json")
        try:
            for part in key.split("."):
                current = current[part]
            return current
        except (KeyError, TypeError):
            raise ConfigError(f"Configuration key not found: {key}") from None

    def set_config_value(self, key: str, value: Any, user_level: bool = True) -> None:
        """Set configuration value and save to file.

        Args:
            key: Dot-separated key (e.g., 'posting.batch_size')
            value: Value to set
            user_level: If True, save to user config; if False, save to project config

        Raises:
            ConfigError: If configuration cannot be saved
        """
        config_path = self._user_config_path if user_level else self._project_config_path
        if config_path is None:
            config_path = self._default_project_config_path()
            self._project_config_path = config_path

        config_data = self._load_yaml_file(config_path)

        key_parts = key.split(".")
        current = config_data
        for part in key_parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]
        current[key_parts[-1]] = value

        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(config_path, "w") as f:
                yaml.safe_dump(config_data, f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise ConfigError(f"Failed to save configuration to {config_path}: {e}") from e

        logger.info(f"Configuration saved to {config_path}: {key} = {value}")
        self.reload_config()

    def _default_project_config_path(self) -> Path:
        git_root = get_git_root()
        base = git_root if git_root else Path.cwd()
        return base / CONFIG_DIR_NAME / "config.yaml"

    def create_default_config(self, user_level: bool = True) -> Path:
        """Create default configuration file.

        Returns:
            Path to the configuration file (existing files are left untouched)

        Raises:
            ConfigError: If configuration cannot be created
        """
        config_path = self._user_config_path if user_level else self._default_project_config_path()

        if config_path.exists():
            logger.warning(f"Configuration file already exists: {config_path}")
            return config_path

        config_data = Config().model_dump(mode="json")
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(config_path, "w") as f:
                f.write("# review-poster configuration\n\n")
                yaml.safe_dump(config_data, f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise ConfigError(f"Failed to create configuration file {config_path}: {e}") from e

        logger.info(f"Default configuration created: {config_path}")
        if not user_level:
            self._project_config_path = config_path
        self.reload_config()
        return config_path

    def list_config_files(self) -> Dict[str, Optional[Path]]:
        """List user and project configuration file paths."""
        return {
            "user": self._user_config_path if self._user_config_path.exists() else None,
            "project": self._project_config_path,
        }

    def validate(self) -> ConfigValidationResult:
        """Check that the stored configuration can drive a posting workflow."""
        try:
            config = self.get_config()
        except ConfigError as e:
            return ConfigValidationResult(is_valid=False, error=str(e))

        organization_url = config.azure_devops.organization_url
        if not organization_url:
            return ConfigValidationResult(
                is_valid=False,
                error="Organization URL is not configured",
                details="Run 'review-poster config set azure_devops.organization_url <url>'",
            )
        if not organization_url.startswith(("https://", "http://")):
            return ConfigValidationResult(
                is_valid=False,
                error=f"Organization URL must be an http(s) URL: {organization_url}",
            )
        if not config.azure_devops.default_project:
            return ConfigValidationResult(
                is_valid=False,
                error="Default project is not configured",
                details="Run 'review-poster config set azure_devops.default_project <name>'",
            )

        return ConfigValidationResult(is_valid=True)


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> Config:
    """Get current configuration."""
    return config_manager.get_config()
