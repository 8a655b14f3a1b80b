"""Configuration loading from config/flowloom.yaml.

Lookup order for the file:
  1. explicit path passed to ``load_config``
  2. ``FLOWLOOM_CONFIG_PATH`` environment variable
  3. ``<repo root>/config/flowloom.yaml``
  4. built-in defaults

``DATABASE_URL`` and ``FLOWLOOM_LOG_LEVEL`` override the file.
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

from ..constants import (
    DEFAULT_DATABASE_URL,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_WORKERS,
    DEFAULT_MIN_RELEVANCE,
    MAX_TRACE_DEPTH,
    STRUCTURE_FILENAME,
)

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "flowloom.yaml"
CONFIG_PATH_ENV = "FLOWLOOM_CONFIG_PATH"


class FlowSettings(BaseModel):
    max_depth: int = Field(default=DEFAULT_MAX_DEPTH, ge=0, le=MAX_TRACE_DEPTH)
    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, ge=1)
    min_relevance: int = Field(default=DEFAULT_MIN_RELEVANCE, ge=0)
    structure_filename: str = STRUCTURE_FILENAME


class DatabaseSettings(BaseModel):
    url: str = DEFAULT_DATABASE_URL
    echo: bool = False


class LoggingSettings(BaseModel):
    level: str = DEFAULT_LOG_LEVEL

    @field_validator("level")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()


class FlowLoomConfig(BaseModel):
    flow: FlowSettings = Field(default_factory=FlowSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def get_config_path() -> Path:
    """Directory holding flowloom.yaml (``<repo root>/config``)."""
    return Path(__file__).resolve().parents[3] / "config"


def _resolve_config_file(path: Optional[Union[str, Path]]) -> Optional[Path]:
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        return Path(env_path)
    default = get_config_path() / CONFIG_FILENAME
    return default if default.exists() else None


def load_config(path: Optional[Union[str, Path]] = None) -> FlowLoomConfig:
    """Read and validate the configuration file.

    Raises:
        FileNotFoundError: An explicitly requested file does not exist.
        pydantic.ValidationError: The file has invalid values.
    """
    config_file = _resolve_config_file(path)
    raw = {}
    if config_file is not None:
        with open(config_file, "r") as f:
            raw = yaml.safe_load(f) or {}
        logger.debug(f"Loaded configuration from {config_file}")

    config = FlowLoomConfig.model_validate(raw)

    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        config.database.url = database_url
    log_level = os.environ.get("FLOWLOOM_LOG_LEVEL")
    if log_level:
        config.logging.level = log_level.upper()

    return config


_config: Optional[FlowLoomConfig] = None


def get_config() -> FlowLoomConfig:
    """Cached configuration; see ``reload_config`` to refresh."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config(path: Optional[Union[str, Path]] = None) -> FlowLoomConfig:
    global _config
    _config = load_config(path)
    return _config


def get_config_value(*keys: str, default: Any = None) -> Any:
    """Nested lookup, e.g. ``get_config_value("flow", "max_depth")``."""
    node: Any = get_config()
    for key in keys:
        if isinstance(node, BaseModel):
            node = getattr(node, key, None)
        elif isinstance(node, dict):
            node = node.get(key)
        else:
            node = None
        if node is None:
            return default
    return node
