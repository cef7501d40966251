import copy
import logging
import math
from pathlib import Path
from typing import Dict, Optional, Union

import yaml

logger = logging.getLogger("Main")


class ConfigError(ValueError):
    """Raised for unreadable config files or invalid thresholds"""


DEFAULT_CONFIG: Dict = {
    'velocity_tracker': {
        'window_seconds': 300,              # 5 minutes
        'min_data_points': 5,
        'velocity_threshold_stddev': 2.0,
        'steady_tolerance': 0.1,            # 10% change in half-window velocity
    },
    'unusual_activity': {
        'alert_cooldown_seconds': 300,      # 5 min between same alerts
        'min_data_points': 5,
        'flash_move_threshold_percent': 10.0,
        'flash_move_window_seconds': 300,
        'whale_trade_notional_threshold': 5000.0,   # $5K single trade
        'whale_position_notional': 10000.0,         # $10K scales whale magnitude
        'volume_spike_multiple': 3.0,
        'volume_window_seconds': 3600,      # 1 hour baseline
        'orderbook_imbalance_ratio': 5.0,   # larger side / smaller side
    },
    'monitor': {
        'cleanup_interval_seconds': 60,
        'price_change_threshold_percent': 1.0,
    },
}

# Keys that must be strictly positive when present
_POSITIVE_KEYS = {
    'velocity_tracker': [
        'window_seconds', 'min_data_points', 'velocity_threshold_stddev',
    ],
    'unusual_activity': [
        'min_data_points', 'flash_move_threshold_percent', 'flash_move_window_seconds',
        'whale_trade_notional_threshold', 'whale_position_notional',
        'volume_spike_multiple', 'volume_window_seconds', 'orderbook_imbalance_ratio',
    ],
    'monitor': ['cleanup_interval_seconds'],
}

# Keys that may be zero (cooldown 0 disables suppression)
_NON_NEGATIVE_KEYS = {
    'velocity_tracker': ['steady_tolerance'],
    'unusual_activity': ['alert_cooldown_seconds'],
    'monitor': ['price_change_threshold_percent'],
}


def load_config(config_file: Union[str, Path]) -> Dict:
    """Load a YAML config file and validate it"""
    try:
        with open(config_file, 'r') as f:
            config = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_file}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_file}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError(f"Config file {config_file} must contain a mapping, got {type(config).__name__}")

    validate_config(config)
    logger.info(f"Loaded config from {config_file} (sections: {sorted(config.keys())})")
    return config


def get_section(config: Optional[Dict], name: str) -> Dict:
    """
    Return a config section merged over its defaults.

    Unknown sections return whatever the caller supplied (or an empty dict).
    """
    section = copy.deepcopy(DEFAULT_CONFIG.get(name, {}))
    supplied = (config or {}).get(name) or {}
    if not isinstance(supplied, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    section.update(supplied)
    return section


def validate_config(config: Optional[Dict]) -> None:
    """Check numeric thresholds; raises ConfigError on the first bad value"""
    for section_name, keys in _POSITIVE_KEYS.items():
        section = get_section(config, section_name)
        for key in keys:
            value = _as_number(section_name, key, section.get(key))
            if value <= 0:
                raise ConfigError(f"{section_name}.{key} must be > 0, got {value}")

    for section_name, keys in _NON_NEGATIVE_KEYS.items():
        section = get_section(config, section_name)
        for key in keys:
            value = _as_number(section_name, key, section.get(key))
            if value < 0:
                raise ConfigError(f"{section_name}.{key} must be >= 0, got {value}")


def _as_number(section_name: str, key: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{section_name}.{key} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ConfigError(f"{section_name}.{key} must be finite, got {value}")
    return float(value)
