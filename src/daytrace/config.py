"""Configuration loading.

Defaults live here so the pipeline runs without a config file; ``config.yaml``
only needs to list the keys it overrides.
"""

import copy
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .errors import ConfigError

DEFAULT_CONFIG: Dict[str, Any] = {
    'timezone': 'UTC',
    'segmentation': {
        'stay_radius_meters': 150.0,
        'max_sample_gap_minutes': 30.0,
        'min_segment_minutes': 5.0,
        'min_commute_distance_meters': 200.0,
        'max_accuracy_meters': None,
        'speed_bands': {
            'walking': 7.0,
            'cycling': 25.0,
        },
        'default_place_radius_meters': 150.0,
        'place_match_threshold': 0.7,
        'max_merge_gap_minutes': 5.0,
        # app_id -> category; replaced whole by the YAML mapping, not merged
        'app_overrides': None,
    },
    'matching': {
        'same_place_meters': 200.0,
    },
    'gap_filling': {
        'min_gap_minutes': 30.0,
        'max_carry_forward_hours': 16.0,
        'travel_buffer_minutes': 30.0,
        'confidence_decay': 0.6,
        'confidence_floor': 0.3,
    },
    'review': {
        'session_gap_minutes': 15.0,
    },
    'place_inference': {
        'overnight_hours': {'start': 22, 'end': 6},
        'work_hours': {'start': 9, 'end': 17},
        'min_overnight_hours': 2,
        'min_work_hours': 3,
        'min_frequent_days': 2,
    },
    'logging': {
        'level': 'INFO',
        'json': False,
    },
    'output': {
        'directory': 'output',
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` into a copy of ``base``. Unknown keys are dropped."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if key not in merged:
            continue
        if isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Load configuration from a YAML file on top of the defaults.

    Args:
        config_path: Path to YAML configuration file. A missing file (or None)
            yields the defaults.

    Returns:
        Configuration dictionary with every section present

    Raises:
        ConfigError: If the file parses to something other than a mapping, or
            ``segmentation.app_overrides`` is not a mapping
    """
    if config_path is None or not Path(config_path).exists():
        return copy.deepcopy(DEFAULT_CONFIG)

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping, got {type(data).__name__}")

    config = _deep_merge(DEFAULT_CONFIG, data)
    overrides = config['segmentation']['app_overrides']
    if overrides is not None and not isinstance(overrides, dict):
        raise ConfigError(f"{config_path}: segmentation.app_overrides must be a mapping of app to category")
    return config
