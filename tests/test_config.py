# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for configuration management and conversion to component options.
"""

import logging
import tempfile
from pathlib import Path

import pytest
import yaml

from cuefollow.config import (
    DEFAULT_CONFIG,
    get_follower_options,
    get_matcher_options,
    get_tracker_options,
    load_config,
    save_config,
    update_config_section,
)
from cuefollow.matcher import MatcherOptions
from cuefollow.position_tracker import TrackerOptions


def test_default_config_matches_component_defaults():
    """Defaults in the config file agree with the option dataclasses."""
    assert get_matcher_options(DEFAULT_CONFIG) == MatcherOptions()
    assert get_tracker_options(DEFAULT_CONFIG) == TrackerOptions()
    follower = get_follower_options(DEFAULT_CONFIG)
    assert follower.hold_timeout_ms == 5000
    assert follower.caret_percent == 33


def test_load_config_missing_file_uses_defaults():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = load_config(Path(tmpdir) / ".cuefollow.yaml")
        assert config == DEFAULT_CONFIG


def test_load_config_merges_partial_sections():
    """A partial section overrides only the keys it names."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".cuefollow.yaml"
        config_data = {
            "port": 9000,
            "tracking": {"forward_confirm_streak": 2},
        }
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(config_data, f)

        config = load_config(config_path)

        assert config["port"] == 9000
        assert config["host"] == "127.0.0.1"
        assert config["tracking"]["forward_confirm_streak"] == 2
        assert config["tracking"]["backward_confirm_streak"] == 6
        assert config["matching"] == DEFAULT_CONFIG["matching"]


def test_load_config_invalid_yaml_warns(caplog):
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".cuefollow.yaml"
        config_path.write_text("tracking: [unclosed", encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="cuefollow.config"):
            config = load_config(config_path)

        assert config == DEFAULT_CONFIG
        assert "Could not load config" in caplog.text


def test_load_config_non_mapping_warns(caplog):
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".cuefollow.yaml"
        config_path.write_text("- just\n- a list\n", encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="cuefollow.config"):
            config = load_config(config_path)

        assert config == DEFAULT_CONFIG
        assert "not a mapping" in caplog.text


def test_load_config_does_not_share_defaults():
    """Mutating a loaded config never changes the defaults."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config = load_config(Path(tmpdir) / ".cuefollow.yaml")
        config["scroll"]["caret_percent"] = 70
        assert DEFAULT_CONFIG["scroll"]["caret_percent"] == 33


def test_save_and_reload():
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".cuefollow.yaml"
        config = update_config_section(DEFAULT_CONFIG, "scroll", {"caret_percent": 50})

        assert save_config(config, config_path)
        reloaded = load_config(config_path)

        assert reloaded["scroll"]["caret_percent"] == 50
        assert reloaded["tracking"] == DEFAULT_CONFIG["tracking"]


def test_save_config_failure_returns_false(caplog):
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "missing" / ".cuefollow.yaml"
        with caplog.at_level(logging.ERROR, logger="cuefollow.config"):
            assert not save_config(DEFAULT_CONFIG, config_path)
        assert "Error saving config" in caplog.text


def test_update_config_section_returns_new_config():
    updated = update_config_section(DEFAULT_CONFIG, "matching", {"radius": 40})

    assert updated["matching"]["radius"] == 40
    assert updated["matching"]["window_size"] == 3
    assert DEFAULT_CONFIG["matching"]["radius"] == 100
    assert updated["tracking"] is not DEFAULT_CONFIG["tracking"]


def test_option_conversion():
    config = update_config_section(DEFAULT_CONFIG, "matching", {"radius": "25", "threshold": 0.1})
    config = update_config_section(config, "tracking", {"nearby_threshold": 4})
    config = update_config_section(config, "scroll", {"hold_timeout": 2500, "jump_speed": 20})

    matcher = get_matcher_options(config)
    tracker = get_tracker_options(config)
    follower = get_follower_options(config)

    assert matcher.radius == 25
    assert matcher.threshold == pytest.approx(0.1)
    assert tracker.nearby_threshold == 4
    assert follower.hold_timeout_ms == 2500
    assert follower.jump_speed == 20
    # The follower's skip distance follows the tracker's
    assert follower.nearby_threshold == 4


def test_missing_section_uses_defaults():
    config = dict(DEFAULT_CONFIG)
    del config["scroll"]
    follower = get_follower_options(config)
    assert follower.base_speed == 4.0
