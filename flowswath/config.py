"""
FLOWSWATH Configuration
=======================

Default parameters for stream and swath extraction, YAML loading and
schema validation. Configuration is a plain nested dictionary; values from a
YAML file and from explicit overrides are deep-merged over the defaults.
"""

import logging
import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Optional, Union

import jsonschema
import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "streams": {
        "threshold_area": 1e6,  # map units squared
        "no_data_exp": None,  # None, 'auto' or an expression over DEM
        "min_flat_area": 1e5,  # map units squared, 'auto' only
        "resample_grid": False,
        "new_cellsize": None,  # defaults to ceil(cellsize)
        "flow_preprocess": "carve",  # carve or fill
    },
    "swath": {
        "sample": None,  # defaults to the DEM cellsize
        "smooth": 0.0,
        "vex": 10.0,
        "display_mode": "envelope",  # envelope, scatter or heatmap
        "sampler": "interpolation",
        "interpolation_order": 1,
        "heatmap_bins": 100,
        "heatmap_sentinel": -1,
    },
    "output": {
        "compress": True,
        "shapefile": True,
    },
}

CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "streams": {
            "type": "object",
            "properties": {
                "threshold_area": {"type": "number", "exclusiveMinimum": 0},
                "no_data_exp": {"type": ["string", "null"]},
                "min_flat_area": {"type": "number", "minimum": 0},
                "resample_grid": {"type": "boolean"},
                "new_cellsize": {"type": ["number", "null"], "exclusiveMinimum": 0},
                "flow_preprocess": {"enum": ["carve", "fill"]},
            },
        },
        "swath": {
            "type": "object",
            "properties": {
                "sample": {"type": ["number", "null"], "exclusiveMinimum": 0},
                "smooth": {"type": "number", "minimum": 0},
                "vex": {"type": "number", "exclusiveMinimum": 0},
                "display_mode": {"enum": ["envelope", "scatter", "heatmap"]},
                "sampler": {"type": "string"},
                "interpolation_order": {"type": "integer", "minimum": 0, "maximum": 5},
                "heatmap_bins": {"type": "integer", "minimum": 1},
                "heatmap_sentinel": {"type": "integer"},
            },
        },
        "output": {
            "type": "object",
            "properties": {
                "compress": {"type": "boolean"},
                "shapefile": {"type": "boolean"},
            },
        },
    },
}


def get_default_config() -> Dict[str, Any]:
    """Fresh copy of the default configuration."""
    return deepcopy(DEFAULT_CONFIG)


def deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, with overlay taking precedence.

    Args:
        base: Base dictionary
        overlay: Overlay dictionary

    Returns:
        Merged dictionary
    """
    result = deepcopy(base)

    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)

    return result


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate a configuration against the schema.

    Raises:
        ConfigurationError: If validation fails
    """
    try:
        jsonschema.validate(config, CONFIG_SCHEMA)
    except jsonschema.ValidationError as e:
        path = ".".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigurationError(f"Invalid configuration at {path}: {e.message}")


def load_config(
    path: Optional[Union[str, os.PathLike]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Load configuration.

    Args:
        path: Optional YAML file
        overrides: Optional dictionary applied last

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: If the file cannot be read or validation fails
    """
    config = get_default_config()

    if path is not None:
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                file_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load configuration from {path}: {e}")

        if not isinstance(file_config, dict):
            raise ConfigurationError(f"Configuration file {path} must contain a mapping")

        config = deep_merge(config, file_config)
        logger.info(f"Loaded configuration from {path}")

    if overrides:
        config = deep_merge(config, overrides)

    validate_config(config)
    return config
