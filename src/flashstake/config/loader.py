"""Layered configuration: packaged defaults.yaml plus optional overrides."""

import copy
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from ..engine.errors import InputValidationError
from .schema import Config

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def read_yaml(path) -> Dict[str, Any]:
    """
    Read one YAML config file.

    An empty file reads as an empty mapping.

    Raises:
        InputValidationError: the file is missing or its top level is not a mapping
    """
    path = Path(path)
    if not path.is_file():
        raise InputValidationError(f"config file not found: {path}")
    with open(path, 'r') as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InputValidationError(
            f"{path}: top level must be a mapping of sections, got {type(data).__name__}"
        )
    return data


def merge_overrides(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """Deep-merge ``overrides`` onto a copy of ``base``; sections merge key by key."""
    merged = copy.deepcopy(dict(base))
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge_overrides(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(yaml_path: Optional[str] = None) -> Config:
    """
    Load configuration.

    The packaged defaults.yaml is always read first; a file given in
    ``yaml_path`` only needs the keys it changes.

    Args:
        yaml_path: Optional YAML file of overrides

    Returns:
        Config object
    """
    data = read_yaml(DEFAULTS_PATH)
    if yaml_path is not None:
        data = merge_overrides(data, read_yaml(yaml_path))
    return Config.from_dict(data)


def config_from_dict(data: Optional[Mapping[str, Any]]) -> Config:
    """Packaged defaults with ``data`` merged on top."""
    return Config.from_dict(merge_overrides(read_yaml(DEFAULTS_PATH), data or {}))
