"""Tests for config loading and environment overrides."""

from pathlib import Path

import pytest

from keeper.config.loader import config_hash, load_config
from keeper.config.schema import Commitment, KeeperConfig
from keeper.errors import ConfigError


class TestLoadConfig:
    def test_load_from_yaml(self, config_yaml_path: Path):
        config = load_config(config_yaml_path, environ={})
        assert config.ops.poll_interval_ms == 500
        assert config.ops.max_concurrency == 2
        assert config.oracle.feed_allowlist == ["aabb", "ccdd"]

    def test_missing_file_uses_defaults(self, tmp_path: Path):
        config = load_config(tmp_path / "absent.yaml", environ={})
        assert config.execution.dry_run is True
        assert config.ops.poll_interval_ms == 2000
        assert config.ops.max_concurrency == 4
        assert config.rpc.commitment == Commitment.CONFIRMED
        assert config.ledger.sqlite_path == "./keeper.db"

    def test_empty_yaml_uses_defaults(self, tmp_path: Path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        config = load_config(path, environ={})
        assert config.mode == "dry-run"

    def test_env_overrides_file(self, config_yaml_path: Path):
        env = {
            "POLL_INTERVAL_MS": "750",
            "DRY_RUN": "false",
            "COMMITMENT": "finalized",
            "STORK_FEED_ALLOWLIST": "0x0102, 0304 ,",
            "SQLITE_PATH": "/tmp/other.db",
        }
        config = load_config(config_yaml_path, environ=env)
        assert config.ops.poll_interval_ms == 750
        assert config.execution.dry_run is False
        assert config.rpc.commitment == Commitment.FINALIZED
        assert config.oracle.feed_allowlist == ["0102", "0304"]
        assert config.ledger.sqlite_path == "/tmp/other.db"

    def test_dry_run_only_false_on_literal_true(self, tmp_path: Path):
        config = load_config(tmp_path / "none.yaml", environ={"DRY_RUN": "yes"})
        assert config.execution.dry_run is False
        config = load_config(tmp_path / "none.yaml", environ={"DRY_RUN": "TRUE"})
        assert config.execution.dry_run is True

    def test_concurrency_clamped_to_one(self, tmp_path: Path):
        config = load_config(tmp_path / "none.yaml", environ={"MAX_CONCURRENCY": "0"})
        assert config.ops.max_concurrency == 1

    def test_invalid_value_raises_config_error(self, tmp_path: Path):
        with pytest.raises(ConfigError):
            load_config(tmp_path / "none.yaml", environ={"COMMITMENT": "eventually"})

    def test_non_numeric_env_raises_config_error(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="MAX_CONCURRENCY"):
            load_config(tmp_path / "none.yaml", environ={"MAX_CONCURRENCY": "many"})

    def test_metrics_port_from_env(self, tmp_path: Path):
        config = load_config(tmp_path / "none.yaml", environ={"METRICS_PORT": "9464"})
        assert config.metrics.port == 9464
        assert load_config(tmp_path / "none.yaml", environ={}).metrics.port == 0

    def test_unknown_key_rejected(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("ops:\n  bogus: 1\n")
        with pytest.raises(ConfigError):
            load_config(path, environ={})

    def test_non_mapping_root_rejected(self, tmp_path: Path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigError):
            load_config(path, environ={})


class TestConfigHash:
    def test_deterministic(self):
        assert config_hash(KeeperConfig()) == config_hash(KeeperConfig())

    def test_changes_with_config(self):
        a = KeeperConfig()
        b = KeeperConfig(ops={"poll_interval_ms": 1})
        assert config_hash(a) != config_hash(b)
        assert len(config_hash(a)) == 16
