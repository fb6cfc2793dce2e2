"""Tests for the command line entry point."""

import yaml

from cuefollow.config import DEFAULT_CONFIG, update_config_section
from cuefollow.main import build_parser, main


def test_parser_defaults_come_from_config():
    config = dict(DEFAULT_CONFIG)
    config["port"] = 9100
    args = build_parser(config).parse_args([])

    assert args.host == "127.0.0.1"
    assert args.port == 9100
    assert args.fps == 60
    assert not args.save_config
    assert not args.debug_log


def test_parser_overrides():
    args = build_parser(DEFAULT_CONFIG).parse_args(["-p", "8123", "--fps", "30", "-v"])
    assert args.port == 8123
    assert args.fps == 30
    assert args.verbose


def test_save_config_writes_file_and_exits(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    existing = update_config_section(DEFAULT_CONFIG, "tracking", {"forward_confirm_streak": 3})
    (tmp_path / ".cuefollow.yaml").write_text(yaml.safe_dump(dict(existing)), encoding="utf-8")

    main(["--port", "8765", "--save-config"])

    saved = yaml.safe_load((tmp_path / ".cuefollow.yaml").read_text(encoding="utf-8"))
    assert saved["port"] == 8765
    # Settings already in the file are kept
    assert saved["tracking"]["forward_confirm_streak"] == 3
    assert "Configuration saved" in capsys.readouterr().out
