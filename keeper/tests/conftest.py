"""Shared test fixtures."""

import json
from pathlib import Path

import pytest
import yaml
from solders.keypair import Keypair

from keeper.config.schema import KeeperConfig
from keeper.storage.ledger import ExecutionLedger


@pytest.fixture
def ledger(tmp_path: Path):
    """A migrated ExecutionLedger backed by a temp SQLite file."""
    led = ExecutionLedger.open(tmp_path / "ledger.db")
    yield led
    led.close()


@pytest.fixture
def default_config() -> KeeperConfig:
    return KeeperConfig()


@pytest.fixture
def keypair() -> Keypair:
    return Keypair()


@pytest.fixture
def keypair_file(tmp_path: Path, keypair: Keypair) -> Path:
    """Write a Solana CLI style keypair file and return its path."""
    path = tmp_path / "id.json"
    path.write_text(json.dumps(list(bytes(keypair))))
    return path


@pytest.fixture
def config_yaml_path(tmp_path: Path) -> Path:
    """Write a minimal valid config YAML and return its path."""
    data = {
        "ops": {"poll_interval_ms": 500, "max_concurrency": 2},
        "oracle": {"feed_allowlist": ["0xAABB", "ccdd"]},
        "ledger": {"sqlite_path": str(tmp_path / "keeper.db")},
    }
    path = tmp_path / "keeper.yaml"
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path
