"""Configuration loader from YAML.

A user file is layered over the bundled defaults.yaml, so it only needs the
keys it changes; nested sections merge key by key.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .schema import Config

logger = logging.getLogger(__name__)

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def _read_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    with open(path, 'r') as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level, got {type(data).__name__}")
    return data


def merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(yaml_path: Optional[Union[str, Path]] = None) -> Config:
    """
    Load configuration from YAML file.

    Args:
        yaml_path: Path to a YAML file layered over defaults.yaml (defaults only if None)

    Returns:
        Config object

    Raises:
        ValueError: If the file is not a mapping or the merged config is invalid
    """
    data = _read_yaml(DEFAULTS_PATH)
    if yaml_path is not None:
        data = merge_dicts(data, _read_yaml(yaml_path))
        logger.info("Loaded config overrides from %s", yaml_path)

    return Config.from_dict(data)


def config_from_dict(data: Dict[str, Any]) -> Config:
    """
    Create config from dictionary.

    Args:
        data: Configuration dictionary

    Returns:
        Config object
    """
    return Config.from_dict(data)
