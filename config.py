"""
Configuration for minipam
Priority:
1. Explicit config file (--config)
2. XDG config: ~/.config/minipam/config.yaml (created if missing)
3. Legacy: ./config.yaml in current directory
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

XDG_CONFIG_HOME = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
MINIPAM_CONFIG_DIR = Path(XDG_CONFIG_HOME) / "minipam"
MINIPAM_CONFIG_FILE = MINIPAM_CONFIG_DIR / "config.yaml"
MINIPAM_DB_FILE = MINIPAM_CONFIG_DIR / "minipam.db"

# Legacy config location (current directory)
LEGACY_CONFIG_FILE = Path("config.yaml")

DEFAULT_POOLS = ["172.16.0.0/16"]
DEFAULT_MASK_LENGTH = 28


@dataclass
class Settings:
    snapshot_url: str = f"sqlite:///{MINIPAM_DB_FILE}"
    default_pools: List[str] = field(default_factory=lambda: list(DEFAULT_POOLS))
    default_mask_length: int = DEFAULT_MASK_LENGTH
    log_level: str = "INFO"
    config_file: Optional[str] = None


def default_config() -> dict:
    return {
        "snapshot": {
            "url": f"sqlite:///{MINIPAM_DB_FILE}",
        },
        "allocator": {
            "default_pools": list(DEFAULT_POOLS),
            "default_mask_length": DEFAULT_MASK_LENGTH,
        },
        "logging": {
            "level": "INFO",
        },
    }


def _create_default_config() -> Path:
    """Create default config file in XDG location"""
    MINIPAM_CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    with open(MINIPAM_CONFIG_FILE, "w") as f:
        yaml.dump(default_config(), f, default_flow_style=False)
    return MINIPAM_CONFIG_FILE


def find_config(config_file=None) -> Path:
    if config_file:
        return Path(config_file)
    if MINIPAM_CONFIG_FILE.exists():
        return MINIPAM_CONFIG_FILE
    if LEGACY_CONFIG_FILE.exists():
        return LEGACY_CONFIG_FILE
    return _create_default_config()


def resolve_snapshot_url(url: str, config_path: Path) -> str:
    """Relative SQLite paths are taken relative to the config file"""
    if not url.startswith("sqlite:///"):
        return url
    db_path = url.replace("sqlite:///", "", 1)
    if not db_path or db_path == ":memory:" or os.path.isabs(db_path):
        return url
    return f"sqlite:///{config_path.parent / db_path}"


def load_settings(config_file=None) -> Settings:
    config_path = find_config(config_file)

    with open(config_path) as f:
        config = yaml.safe_load(f) or {}

    snapshot = config.get("snapshot") or {}
    allocator = config.get("allocator") or {}
    logging_config = config.get("logging") or {}

    settings = Settings(config_file=str(config_path))
    if snapshot.get("url"):
        settings.snapshot_url = resolve_snapshot_url(snapshot["url"], config_path)
    if allocator.get("default_pools") is not None:
        settings.default_pools = [str(p) for p in allocator["default_pools"]]
    if allocator.get("default_mask_length") is not None:
        settings.default_mask_length = int(allocator["default_mask_length"])
    if logging_config.get("level"):
        settings.log_level = str(logging_config["level"]).upper()

    return settings
