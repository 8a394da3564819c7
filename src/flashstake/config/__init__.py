"""Protocol configuration."""

from .schema import Config
from .loader import config_from_dict, load_config, merge_overrides

__all__ = [
    "Config",
    "config_from_dict",
    "load_config",
    "merge_overrides",
]
