"""Configuration management for fs-db."""

import logging
import os
import shutil
import tomllib
from pathlib import Path
from typing import Any

import tomli_w
from pydantic import BaseModel, Field, field_validator

from .utils import ensure_dir, expand_path

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_TEMPLATE_PATH = Path(__file__).with_name("config.toml")
CONFIG_ENV_VAR = "FS_DB_CONFIG"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _read_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _overlay(defaults: dict[str, Any], user: dict[str, Any]) -> dict[str, Any]:
    """Return ``defaults`` with ``user`` values laid over it, table by table."""
    result = dict(defaults)
    for key, value in user.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            value = _overlay(result[key], value)
        result[key] = value
    return result


def _seed_config(config_path: Path) -> None:
    """Place the commented template at ``config_path``."""
    ensure_dir(config_path.parent)
    shutil.copyfile(DEFAULT_CONFIG_TEMPLATE_PATH, config_path)


class StoreConfig(BaseModel):
    """Store location."""

    dir: Path

    @field_validator("dir", mode="before")
    @classmethod
    def expand_dir(cls, v: str | Path) -> Path:
        """Expand path strings with ~ and environment variables."""
        if isinstance(v, str):
            return expand_path(v)
        return v


class MigrateConfig(BaseModel):
    """Migration behaviour."""

    backup: bool = True


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="WARNING", description="Python logging level name")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Normalize and check the level name."""
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level {v!r}; expected one of {', '.join(LOG_LEVELS)}")
        return level


class Config(BaseModel):
    """Configuration for fs-db."""

    store: StoreConfig
    migrate: MigrateConfig = Field(default_factory=MigrateConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def store_dir(self) -> Path:
        """Store directory."""
        return self.store.dir

    @property
    def backup(self) -> bool:
        """Whether the store is backed up before migrating."""
        return self.migrate.backup

    @property
    def log_level(self) -> str:
        """Logging level name."""
        return self.logging.level

    def save(self, config_path: Path) -> None:
        """
        Write this configuration as TOML.

        Args:
            config_path: Destination file
        """
        ensure_dir(config_path.parent)
        with open(config_path, "wb") as f:
            tomli_w.dump(self.model_dump(mode="json"), f)


def get_config_path() -> Path:
    """
    Get configuration file path.

    Priority:
    1. FS_DB_CONFIG environment variable
    2. Default: ~/.config/fs-db/config.toml

    Returns:
        Path to config file
    """
    env_config = os.environ.get(CONFIG_ENV_VAR)
    if env_config:
        return expand_path(env_config)

    return expand_path("~/.config/fs-db/config.toml")


def create_default_config() -> Config:
    """Create default configuration from the packaged template."""
    return Config.model_validate(_read_toml(DEFAULT_CONFIG_TEMPLATE_PATH))


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from TOML file using Pydantic validation.

    A missing user config is seeded from the packaged template and user values
    are laid over the template defaults. A config file lacking any of the
    template's tables is rewritten with the complete configuration.

    Args:
        config_path: Optional custom config path

    Returns:
        Config instance with validated values

    Raises:
        ValueError: If config validation fails
    """
    if config_path is None:
        config_path = get_config_path()

    if not config_path.exists():
        try:
            _seed_config(config_path)
        except OSError as e:
            logger.warning(f"Could not write default config to {config_path}: {e}")
            return create_default_config()

    defaults = _read_toml(DEFAULT_CONFIG_TEMPLATE_PATH)
    data = _read_toml(config_path)
    config = Config.model_validate(_overlay(defaults, data))

    missing = [table for table in defaults if table not in data]
    if missing:
        logger.info(f"Adding missing config tables {missing} to {config_path}")
        try:
            config.save(config_path)
        except OSError as e:
            logger.warning(f"Could not update config {config_path}: {e}")

    return config
