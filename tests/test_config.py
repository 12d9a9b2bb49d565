"""Tests for configuration loading."""
from pathlib import Path

import yaml

from config import DEFAULT_MASK_LENGTH, DEFAULT_POOLS, load_settings, resolve_snapshot_url


def test_load(config_file):
    settings = load_settings(config_file)
    assert settings.snapshot_url == f"sqlite:///{config_file.parent / 'minipam.db'}"
    assert settings.default_pools == ["172.16.0.0/16"]
    assert settings.default_mask_length == 28
    assert settings.log_level == "WARNING"
    assert settings.config_file == str(config_file)


def test_missing_sections_use_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({"logging": {"level": "debug"}}))

    settings = load_settings(path)
    assert settings.default_pools == DEFAULT_POOLS
    assert settings.default_mask_length == DEFAULT_MASK_LENGTH
    assert settings.log_level == "DEBUG"


def test_empty_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert load_settings(path).default_pools == DEFAULT_POOLS


def test_resolve_snapshot_url():
    config = Path("/etc/minipam/config.yaml")
    assert resolve_snapshot_url("sqlite:///state.db", config) == "sqlite:////etc/minipam/state.db"
    assert resolve_snapshot_url("sqlite:////var/lib/x.db", config) == "sqlite:////var/lib/x.db"
    assert resolve_snapshot_url("sqlite:///:memory:", config) == "sqlite:///:memory:"
    assert (
        resolve_snapshot_url("postgresql://u:p@db/ipam", config)
        == "postgresql://u:p@db/ipam"
    )
