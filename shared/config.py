"""
Configuration loading for batchloop.

Settings live in config.yaml at the project root. Components receive the
section they need as a plain dict and read keys with .get(key, default).
"""

import os
from pathlib import Path
from typing import Optional, Union

import yaml

from shared.logging import get_logger

log = get_logger("shared", "config")

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"


def load_config(path: Optional[Union[str, Path]] = None) -> dict:
    """
    Load the YAML configuration.

    Resolution order: explicit path, BATCHLOOP_CONFIG, config.yaml at the
    project root. A missing file yields an empty dict so every component
    falls back to its defaults.
    """
    if path is None:
        path = os.environ.get("BATCHLOOP_CONFIG") or CONFIG_PATH
    config_path = Path(path)

    if not config_path.exists():
        log.warning("shared.config.missing", path=str(config_path))
        return {}

    config = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(config, dict):
        raise ValueError(f"{config_path}: top level must be a mapping")

    log.debug("shared.config.loaded", path=str(config_path), sections=sorted(config))
    return config
