"""
Configuration loader — reads fabprov.yml into ProvisionSettings.

Precedence (lowest first):
    built-in defaults  →  fabprov.yml  →  FABRIC_SAMPLES_DIR / PEER_ORG_SETUP_DIR

The file is optional: with no fabprov.yml the defaults reproduce the
stock Org1 layout.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import ValidationError

from fabprov.core.errors import ProvisionError
from fabprov.core.models.settings import ProvisionSettings

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "fabprov.yml"

# environment variable → settings field
ENV_OVERRIDES = {
    "FABRIC_SAMPLES_DIR": "samples_dir",
    "PEER_ORG_SETUP_DIR": "setup_dir",
}

_PATH_FIELDS = ("samples_dir", "setup_dir", "go_path")


class ConfigError(ProvisionError):
    """Raised when the configuration is invalid or unreadable."""

    kind = "config"


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for fabprov.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to fabprov.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def _read_document(path: Path) -> dict:
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # relative directories are relative to the config file
    for key in _PATH_FIELDS:
        value = data.get(key)
        if isinstance(value, str) and not value.startswith("~") and not Path(value).is_absolute():
            data[key] = str(path.parent.resolve() / value)
    return data


def load_settings(
    path: Path | None = None,
    env: Mapping[str, str] | None = None,
    start_dir: Path | None = None,
) -> ProvisionSettings:
    """Load and validate settings.

    Args:
        path: Explicit config file. If None, searches upward from
            *start_dir*; a missing file means defaults.
        env: Environment to read overrides from (default: os.environ).
        start_dir: Where the upward search starts (default: cwd).

    Raises:
        ConfigError: Unreadable or invalid configuration.
    """
    if path is None:
        path = find_config_file(start_dir)

    data: dict = _read_document(path) if path is not None else {}

    environ = os.environ if env is None else env
    for var, key in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            logger.debug("%s overrides %s", var, key)
            data[key] = value

    try:
        settings = ProvisionSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    logger.info(
        "Loaded settings for %s (%d peers) from %s",
        settings.org_name,
        settings.num_peers,
        path or "defaults",
    )
    return settings
