"""
Configuration loader — reads hostctl.yml into the Settings model.

The file is optional: when none is found every setting takes its
default. A file that exists but cannot be parsed or validated is an
error, never silently ignored.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

from hostctl.core.errors import ConfigError
from hostctl.core.models.settings import Settings

logger = logging.getLogger(__name__)

CONFIG_FILE = "hostctl.yml"
CONFIG_ENV_VAR = "HOSTCTL_CONFIG"
SYSTEM_CONFIG = Path("/etc/hostctl") / CONFIG_FILE

__all__ = ["CONFIG_ENV_VAR", "CONFIG_FILE", "ConfigError", "find_config_file", "load_settings"]


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Locate the config file.

    Search order: ``$HOSTCTL_CONFIG``, ``./hostctl.yml``,
    ``/etc/hostctl/hostctl.yml``.

    Returns:
        Path to the config file, or None if there is none.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)

    local = (start_dir or Path.cwd()) / CONFIG_FILE
    if local.is_file():
        return local

    if SYSTEM_CONFIG.is_file():
        return SYSTEM_CONFIG

    return None


def load_settings(path: Path | None = None) -> Settings:
    """Load and validate hostctl settings.

    Args:
        path: Explicit path to hostctl.yml. If None, searches the
            default locations and falls back to defaults.

    Returns:
        Validated Settings model.

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    explicit = path is not None
    if path is None:
        path = find_config_file()

    if path is None:
        logger.debug("No %s found, using defaults", CONFIG_FILE)
        return Settings()

    if not path.is_file():
        if explicit or os.environ.get(CONFIG_ENV_VAR):
            raise ConfigError(f"Config file not found: {path}")
        return Settings()

    logger.debug("Loading settings from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return Settings()

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "hostctl" key or be flat
    if "hostctl" in data and isinstance(data["hostctl"], dict):
        data = data["hostctl"]

    try:
        settings = Settings.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    logger.info("Loaded settings from %s", path)
    return settings
