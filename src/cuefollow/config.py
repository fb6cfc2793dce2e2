# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Configuration management for cuefollow.
Handles loading and saving settings from a YAML config file.
"""

import copy
import logging
from pathlib import Path
from typing import Any, TypedDict

import yaml

from .matcher import MatcherOptions
from .position_tracker import TrackerOptions
from .scroll_follower import FollowerOptions

logger = logging.getLogger(__name__)

CONFIG_FILENAME: str = ".cuefollow.yaml"


class MatchingSettings(TypedDict):
    """Type definition for matcher configuration settings."""
    radius: int
    min_consecutive: int
    window_size: int
    distance_weight: float
    threshold: float


class TrackingSettings(TypedDict):
    """Type definition for position tracking configuration settings."""
    nearby_threshold: int
    forward_confirm_streak: int
    backward_confirm_streak: int
    confidence_threshold: float
    exploration_band: int


class ScrollSettings(TypedDict):
    """Type definition for scroll animation configuration settings."""
    hold_timeout: int  # ms
    caret_percent: float
    min_pace: float
    max_pace: float
    base_speed: float
    jump_speed: float


class Config(TypedDict):
    """Type definition for the complete configuration."""
    # Server settings
    host: str
    port: int
    # Animation frames per second for the server's frame driver
    fps: int
    # Minimum gap between processed interim transcripts
    interim_throttle_ms: int
    matching: MatchingSettings
    tracking: TrackingSettings
    scroll: ScrollSettings


# Default configuration values
DEFAULT_CONFIG: Config = {
    # Server settings
    "host": "127.0.0.1",
    "port": 8000,
    "fps": 60,
    "interim_throttle_ms": 150,

    # Fragment matching
    "matching": {
        "radius": 100,
        "min_consecutive": 1,
        "window_size": 3,
        "distance_weight": 0.3,
        "threshold": 0.3,
    },

    # Confirmation protocol
    "tracking": {
        "nearby_threshold": 10,
        "forward_confirm_streak": 4,
        # Backward jumps are rarer and more often mis-detections
        "backward_confirm_streak": 6,
        "confidence_threshold": 0.7,
        "exploration_band": 5,
    },

    # Scroll animation
    "scroll": {
        "hold_timeout": 5000,
        "caret_percent": 33,
        "min_pace": 0.5,
        "max_pace": 10.0,
        "base_speed": 4.0,
        "jump_speed": 12.0,
    },
}


def get_config_path() -> Path:
    """Get the path to the config file in the current working directory."""
    return Path.cwd() / CONFIG_FILENAME


def _deep_merge(base, override):
    """
    Deep merge two dictionaries, with override taking precedence.
    Returns a new dictionary without modifying the originals.

    Args:
        base: Base dictionary to merge from.
        override: Dictionary with values that take precedence over base.

    Returns:
        New dictionary with merged values.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file, merged with defaults.

    Args:
        config_path: Optional path to config file. If None, uses default location.

    Returns:
        Configuration dictionary with all values (defaults + overrides from file).
    """
    if config_path is None:
        config_path = get_config_path()

    # Start with defaults
    config: dict[str, Any] = copy.deepcopy(dict(DEFAULT_CONFIG))

    # Load from file if it exists
    if config_path.exists():
        try:
            with open(config_path, encoding='utf-8') as f:
                file_config: dict[str, Any] | None = yaml.safe_load(f)
                if isinstance(file_config, dict):
                    config = _deep_merge(config, file_config)
                elif file_config is not None:
                    logger.warning("Ignoring config %s: not a mapping", config_path)
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Could not load config from %s: %s", config_path, e)

    return config  # type: ignore[return-value]


def save_config(config: Config, config_path: Path | None = None) -> bool:
    """
    Save configuration to file.

    Args:
        config: Configuration dictionary to save.
        config_path: Optional path to config file. If None, uses default location.

    Returns:
        True if save was successful, False otherwise.
    """
    if config_path is None:
        config_path = get_config_path()

    try:
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(dict(config), f, default_flow_style=False, sort_keys=False)
        return True
    except (OSError, yaml.YAMLError) as e:
        logger.error("Error saving config to %s: %s", config_path, e)
        return False


def _section(config: Config, name: str) -> dict[str, Any]:
    defaults: dict[str, Any] = dict(DEFAULT_CONFIG[name])  # type: ignore[literal-required]
    value = config.get(name)
    if isinstance(value, dict):
        defaults.update(value)
    return defaults


def get_matcher_options(config: Config) -> MatcherOptions:
    """
    Build matcher options from the 'matching' section.

    Args:
        config: Configuration dictionary.

    Returns:
        MatcherOptions for WordMatcher.
    """
    s = _section(config, "matching")
    return MatcherOptions(
        radius=int(s["radius"]),
        min_consecutive=int(s["min_consecutive"]),
        window_size=int(s["window_size"]),
        distance_weight=float(s["distance_weight"]),
        threshold=float(s["threshold"]),
    )


def get_tracker_options(config: Config) -> TrackerOptions:
    """
    Build tracker options from the 'tracking' section.

    Args:
        config: Configuration dictionary.

    Returns:
        TrackerOptions for PositionTracker.
    """
    s = _section(config, "tracking")
    return TrackerOptions(
        nearby_threshold=int(s["nearby_threshold"]),
        forward_confirm_streak=int(s["forward_confirm_streak"]),
        backward_confirm_streak=int(s["backward_confirm_streak"]),
        confidence_threshold=float(s["confidence_threshold"]),
        exploration_band=int(s["exploration_band"]),
    )


def get_follower_options(config: Config) -> FollowerOptions:
    """
    Build follower options from the 'scroll' section.

    The skip distance that triggers a jump boost is the tracker's
    nearby_threshold, so both components agree on what a skip is.

    Args:
        config: Configuration dictionary.

    Returns:
        FollowerOptions for ScrollFollower.
    """
    s = _section(config, "scroll")
    return FollowerOptions(
        hold_timeout_ms=float(s["hold_timeout"]),
        caret_percent=float(s["caret_percent"]),
        min_pace=float(s["min_pace"]),
        max_pace=float(s["max_pace"]),
        base_speed=float(s["base_speed"]),
        jump_speed=float(s["jump_speed"]),
        nearby_threshold=int(_section(config, "tracking")["nearby_threshold"]),
    )


def update_config_section(config: Config, section: str, settings: dict[str, Any]) -> Config:
    """
    Update one section of the config with new settings.
    Returns a new config dict.

    Args:
        config: Current configuration.
        section: Section name ('matching', 'tracking' or 'scroll').
        settings: New settings to merge in.

    Returns:
        New configuration with updated settings.
    """
    new_config: dict[str, Any] = copy.deepcopy(dict(config))
    new_config[section] = _deep_merge(
        new_config.get(section, {}),
        settings
    )
    return new_config  # type: ignore[return-value]
