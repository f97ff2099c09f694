"""
Configuration loading for the engagement analytics engine.

Configuration lives in a YAML file (see ``config/settings.yaml``). Values
found in the file are merged over the built-in defaults so a partial file
is always valid.
"""

import copy
import logging
from typing import Any, Dict, Optional

import yaml

from .exceptions import ConfigError


logger = logging.getLogger(__name__)


def get_default_config() -> Dict[str, Any]:
    """Get default configuration for the system."""
    return {
        'session': {
            'tick_interval': 0.1,
            'flush_interval': 3.0,
            'buffer_size': 1000,
            'attention_window': 60.0,
            'max_flush_failures': 5,
            'detector_timeout': None,
            'inactivity_timeout': 300.0,
            'max_workers': 4
        },
        'fusion': {
            'gaze_threshold': 0.3,
            'ear_blink_threshold': 0.2,
            'object_confidence': 0.5,
            'posture_bonus_threshold': 70.0,
            'weights': {
                'face': 40.0,
                'looking': 40.0,
                'posture': 20.0,
                'phone': -30.0
            }
        },
        'blink': {
            'debounce_seconds': 0.2,
            'min_elapsed_minutes': 0.1
        },
        'posture': {
            'min_visibility': 0.5
        },
        'analytics': {
            'period_seconds': 300.0,
            'trend_threshold': 5.0,
            'focus_distraction_window': 60.0
        },
        'logging': {
            'level': 'INFO',
            'log_file': None
        }
    }


def merge_config(base: Dict[str, Any], override: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    if not override:
        return merged

    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to YAML file; ``None`` returns the defaults

    Returns:
        Configuration dictionary with defaults filled in
    """
    defaults = get_default_config()
    if config_path is None:
        return defaults

    try:
        with open(config_path, 'r') as f:
            loaded = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning(f"Config file {config_path} not found, using default configuration")
        return defaults
    except yaml.YAMLError as e:
        logger.error(f"Error loading config: {e}")
        return defaults

    if not isinstance(loaded, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping, got {type(loaded).__name__}")

    config = merge_config(defaults, loaded)
    validate_config(config)
    return config


def validate_config(config: Dict[str, Any]) -> None:
    """Check the values the engine cannot run without."""
    session = config.get('session', {})
    for key in ('tick_interval', 'flush_interval'):
        value = session.get(key)
        if not isinstance(value, (int, float)) or value <= 0:
            raise ConfigError(f"session.{key} must be a positive number, got {value!r}")

    buffer_size = session.get('buffer_size')
    if not isinstance(buffer_size, int) or buffer_size <= 0:
        raise ConfigError(f"session.buffer_size must be a positive integer, got {buffer_size!r}")
