"""Tests for CLI commands."""

import json
from pathlib import Path

import pytest
import yaml

from keeper.cli import main
from keeper.models.execution import ExecutionResult, ExecutionStatus, Route
from keeper.storage.ledger import ExecutionLedger
from keeper.tests.factories import make_candidate


@pytest.fixture(autouse=True)
def tmp_data(tmp_path, monkeypatch):
    monkeypatch.setattr("keeper.daemon.PID_FILE", tmp_path / "keeper.pid")
    monkeypatch.setattr("keeper.daemon.STATE_FILE", tmp_path / "keeper_state.json")


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "test.yaml"
    path.write_text("")
    return path


class TestCLI:
    def test_no_command_returns_1(self, capsys):
        assert main([]) == 1

    def test_invalid_config_returns_1(self, tmp_path: Path, capsys):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.dump({"ops": {"max_concurrency": 0}}))
        assert main(["--config", str(path), "status"]) == 1
        assert "Invalid config" in capsys.readouterr().out

    def test_config_show_masks_api_key(self, tmp_path: Path, capsys):
        path = tmp_path / "test.yaml"
        path.write_text(yaml.dump({"oracle": {"api_key": "super-secret"}}))
        assert main(["--config", str(path), "config", "show"]) == 0
        out = capsys.readouterr().out
        assert "super-secret" not in out
        assert json.loads(out)["oracle"]["api_key"] == "***"
        assert json.loads(out)["execution"]["dry_run"] is True

    def test_status_empty(self, tmp_path: Path, config_path: Path, capsys):
        db_path = str(tmp_path / "test.db")
        assert main(["--config", str(config_path), "--db", db_path, "status"]) == 0
        out = capsys.readouterr().out
        assert "Daemon: no state found" in out
        assert "Ledger entries: 0" in out

    def test_ledger_reset(self, tmp_path: Path, config_path: Path, capsys):
        db_path = tmp_path / "test.db"
        cand = make_candidate()
        ledger = ExecutionLedger.open(db_path)
        ledger.record_result(cand, ExecutionResult("", 0, ExecutionStatus.FAILED, "rpc_error"), 3)
        ledger.close()

        args = ["--config", str(config_path), "--db", str(db_path), "ledger", "reset",
                str(cand.order_pubkey), Route.BASE.value]
        assert main(args) == 0
        assert "Reset" in capsys.readouterr().out
        assert main(args) == 1

    def test_once_with_missing_keypair_fails(self, tmp_path: Path, capsys):
        path = tmp_path / "test.yaml"
        path.write_text(yaml.dump({
            "execution": {"keypair_path": str(tmp_path / "missing.json")},
            "ledger": {"sqlite_path": str(tmp_path / "test.db")},
        }))
        assert main(["--config", str(path), "once"]) == 1
