"""Configuration loading for blobflow."""

import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml
from pydantic import ValidationError

from .core import CollectionConfig
from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_DIR = ".blobflow"
CONFIG_FILE = "config.yaml"

# Environment variable -> (config key, converter)
ENV_OVERRIDES = {
    "BLOBFLOW_MAX_ITEMS": ("max_items", int),
    "BLOBFLOW_MAX_RETRIES": ("max_retries", int),
    "BLOBFLOW_OWNER_ID": ("owner_id", int),
}


def config_path(root: Path) -> Path:
    return Path(root) / CONFIG_DIR / CONFIG_FILE


def _env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for var, (key, convert) in ENV_OVERRIDES.items():
        raw = os.environ.get(var)
        if raw is None or raw == "":
            continue
        try:
            overrides[key] = convert(raw)
        except ValueError:
            raise ConfigError(f"{var} must be an integer, got {raw!r}")
    return overrides


def load_config(root: Path) -> CollectionConfig:
    """Load configuration from .blobflow/config.yaml if present.

    Environment variables override file values. ``BLOBFLOW_STORE`` sets
    the filesystem gateway root; a relative gateway root in the file is
    resolved against ``root`` and a missing one defaults to
    ``.blobflow/store``.

    Args:
        root: Project directory

    Returns:
        Effective configuration (defaults when no file exists)

    Raises:
        ConfigError: If the file cannot be parsed or values are invalid
    """
    path = config_path(root)
    data: Dict[str, Any] = {}
    if path.exists():
        try:
            data = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {path}: {e}")
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a mapping")
    else:
        logger.debug("No config at %s, using defaults", path)

    data.update(_env_overrides())

    gateway = dict(data.get("gateway") or {})
    store = os.environ.get("BLOBFLOW_STORE")
    if store:
        gateway["root"] = store
    if not gateway.get("root"):
        gateway["root"] = str(Path(root) / CONFIG_DIR / "store")
    elif not Path(gateway["root"]).is_absolute():
        gateway["root"] = str(Path(root) / gateway["root"])
    data["gateway"] = gateway

    try:
        return CollectionConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}")


def save_config(config: CollectionConfig, root: Path) -> Path:
    """Write configuration to .blobflow/config.yaml."""
    path = config_path(root)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False))
    return path
