# tests/conftest.py
"""
Pytest fixtures for minipam tests
Snapshot stores live in per-test temporary directories
"""

import sys
from pathlib import Path

import pytest
import yaml

# Add project root for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from allocator import LocalAllocator  # noqa: E402
from snapshot import SnapshotStore  # noqa: E402


@pytest.fixture
def store(tmp_path):
    """SnapshotStore backed by a SQLite file"""
    s = SnapshotStore(f"sqlite:///{tmp_path / 'snapshot.db'}")
    yield s
    s.dispose()


@pytest.fixture
def allocator():
    """Allocator without persistence"""
    a = LocalAllocator()
    yield a
    a.close()


@pytest.fixture
def seeded(allocator):
    """Allocator holding 172.16.0.0/16"""
    allocator.add_pool("172.16.0.0/16")
    return allocator


@pytest.fixture
def config_file(tmp_path):
    """config.yaml pointing the snapshot at the temporary directory"""
    path = tmp_path / "config.yaml"
    config = {
        "snapshot": {"url": "sqlite:///minipam.db"},
        "allocator": {
            "default_pools": ["172.16.0.0/16"],
            "default_mask_length": 28,
        },
        "logging": {"level": "WARNING"},
    }
    with open(path, "w") as f:
        yaml.dump(config, f)
    return path
