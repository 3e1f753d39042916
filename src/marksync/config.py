"""Configuration management."""

import os
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

from .core.kv_backend import MEMORY_PATH
from .models.config import AppConfig, EnvSettings

CONFIG_DIR_ENV = "MARKSYNC_CONFIG_DIR"
DEFAULT_DB_NAME = "marksync.db"


class ConfigError(Exception):
    """Configuration-related error."""

    pass


class ConfigManager:
    """Manages application configuration from config.yaml, .env and the environment."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_dir: Configuration directory path. Defaults to $MARKSYNC_CONFIG_DIR
                or ~/.marksync
        """
        if config_dir is None:
            env_config_dir = os.environ.get(CONFIG_DIR_ENV)
            if env_config_dir:
                config_dir = Path(env_config_dir)
            else:
                config_dir = Path.home() / '.marksync'

        self.config_dir = Path(config_dir)
        self.config_file = self.config_dir / 'config.yaml'
        self.env_file = self.config_dir / '.env'

    def load_env_settings(self) -> EnvSettings:
        """Load environment overrides, reading .env first if present.

        Raises:
            ConfigError: If the settings are invalid
        """
        if self.env_file.exists():
            load_dotenv(self.env_file)

        try:
            return EnvSettings()
        except Exception as e:
            raise ConfigError(f"Invalid environment settings: {e}") from e

    def load_app_config(self) -> AppConfig:
        """Load application configuration from config.yaml.

        Returns:
            AppConfig instance

        Raises:
            ConfigError: If config file is missing or invalid
        """
        if not self.config_file.exists():
            raise ConfigError(
                f"Config file not found at {self.config_file}. "
                f"Run 'marksync init' to create configuration."
            )

        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)

            if data is None:
                data = {}

            return AppConfig(**data)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in config file: {e}") from e
        except Exception as e:
            raise ConfigError(f"Failed to load config: {e}") from e

    def save_app_config(self, config: AppConfig) -> None:
        """Save application configuration to config.yaml.

        Raises:
            ConfigError: If save fails
        """
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)

            data = config.model_dump(mode='json')

            with open(self.config_file, 'w', encoding='utf-8') as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)

        except Exception as e:
            raise ConfigError(f"Failed to save config: {e}") from e

    def load(self) -> AppConfig:
        """Load config.yaml and apply environment overrides."""
        return self.resolve(self.load_app_config(), self.load_env_settings())

    def resolve(self, config: AppConfig, env_settings: EnvSettings) -> AppConfig:
        """Apply environment overrides and fill in the database path.

        Args:
            config: Configuration from config.yaml
            env_settings: Environment overrides

        Returns:
            New AppConfig with overrides applied
        """
        overrides = env_settings.model_dump(exclude_none=True)
        try:
            resolved = AppConfig(**{**config.model_dump(), **overrides})
        except Exception as e:
            raise ConfigError(f"Invalid environment override: {e}") from e

        return resolved.model_copy(update={"db_path": self.resolve_db_path(resolved)})

    def resolve_db_path(self, config: AppConfig) -> str:
        """Database path from config, relative paths taken from the config directory."""
        if not config.db_path:
            return str(self.config_dir / DEFAULT_DB_NAME)
        if config.db_path == MEMORY_PATH:
            return MEMORY_PATH

        path = Path(config.db_path).expanduser()
        if not path.is_absolute():
            path = self.config_dir / path
        return str(path)

    def create_env_file(self) -> None:
        """Create a commented .env file listing the supported overrides.

        Raises:
            ConfigError: If file creation fails
        """
        env_content = """# marksync environment overrides (take precedence over config.yaml)
# MARKSYNC_HOST=0.0.0.0
# MARKSYNC_PORT=8080
# MARKSYNC_DB_PATH=/var/lib/marksync/marksync.db
# MARKSYNC_LOG_LEVEL=DEBUG
"""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.env_file, 'w', encoding='utf-8') as f:
                f.write(env_content)
        except Exception as e:
            raise ConfigError(f"Failed to create .env file: {e}") from e

    def validate_db_path(self, db_path: str) -> None:
        """Validate the database file can be created and written.

        Raises:
            ConfigError: If the path is not usable
        """
        if db_path == MEMORY_PATH:
            return

        path = Path(db_path)

        if path.exists() and not path.is_file():
            raise ConfigError(f"Database path is not a file: {db_path}")

        parent = path.parent
        if not parent.exists():
            raise ConfigError(f"Database directory does not exist: {parent}")

        if not os.access(parent, os.W_OK):
            raise ConfigError(f"Database directory is not writable: {parent}")

        if path.exists() and not os.access(path, os.R_OK | os.W_OK):
            raise ConfigError(f"Database file is not readable and writable: {db_path}")
