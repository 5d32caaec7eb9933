"""Integration tests for the relaylog CLI against a real store and JSONL sink."""

from __future__ import annotations

import json
import re
import sqlite3
from pathlib import Path

import pytest
from click.testing import CliRunner

from relaylog.cli.main import cli
from relaylog.core.constants import ExitCode


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def env(tmp_path: Path) -> dict[str, str]:
    cfg = tmp_path / "config.toml"
    cfg.write_text("[sink]\nremote_latency_ms = 0\n")
    return {
        "HOME": str(tmp_path / "home"),
        "RELAYLOG_CONFIG": str(cfg),
        "RELAYLOG_DB_PATH": str(tmp_path / "events.db"),
        "RELAYLOG_SINK_KIND": "jsonl",
        "RELAYLOG_SINK_PATH": str(tmp_path / "outbound.jsonl"),
        "RELAYLOG_LOG_LEVEL": "WARNING",
    }


def _invoke(runner: CliRunner, env: dict[str, str], *args: str, **kwargs):
    return runner.invoke(cli, list(args), env=env, **kwargs)


def _spooled(env: dict[str, str]) -> list[dict]:
    path = Path(env["RELAYLOG_SINK_PATH"])
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text().splitlines()]


# ---------------------------------------------------------------------------
# append / pending / drain
# ---------------------------------------------------------------------------


class TestAppendAndDrain:
    def test_online_append_transmits(self, runner: CliRunner, env: dict[str, str]) -> None:
        result = _invoke(runner, env, "append", "boot", "--tx-id", "TX-1", "-m", "n=3", "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["status"] == "transmitted"
        assert data["signature"].startswith("FP-")
        assert _spooled(env)[0]["metrics"] == {"n": 3}

    def test_offline_append_then_drain(self, runner: CliRunner, env: dict[str, str]) -> None:
        for txid in ("TX-1", "TX-2"):
            result = _invoke(runner, env, "append", "reading", "--tx-id", txid, "--offline")
            assert result.exit_code == 0, result.output
        assert _spooled(env) == []

        result = _invoke(runner, env, "pending", "--json")
        assert [r["transactionId"] for r in json.loads(result.stdout)] == ["TX-1", "TX-2"]

        result = _invoke(runner, env, "drain", "--json")
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == {"synced": 2, "remaining": 0, "failed": 0}
        assert [d["transactionId"] for d in _spooled(env)] == ["TX-1", "TX-2"]

        result = _invoke(runner, env, "drain", "--json")
        assert json.loads(result.stdout)["synced"] == 0

    def test_offline_env_var(self, runner: CliRunner, env: dict[str, str]) -> None:
        env = {**env, "RELAYLOG_OFFLINE": "1"}
        result = _invoke(runner, env, "append", "boot", "--json")
        assert json.loads(result.stdout)["status"] == "queued"

    def test_generated_tx_id(self, runner: CliRunner, env: dict[str, str]) -> None:
        result = _invoke(runner, env, "append", "boot", "--json")
        assert re.fullmatch(r"TX-\d+-\d{6}", json.loads(result.stdout)["transactionId"])

    def test_pending_limit(self, runner: CliRunner, env: dict[str, str]) -> None:
        for txid in ("TX-1", "TX-2", "TX-3"):
            _invoke(runner, env, "append", "reading", "--tx-id", txid, "--offline")
        result = _invoke(runner, env, "pending", "--limit", "2", "--json")
        assert [r["transactionId"] for r in json.loads(result.stdout)] == ["TX-1", "TX-2"]

    def test_pending_table(self, runner: CliRunner, env: dict[str, str]) -> None:
        _invoke(runner, env, "append", "reading", "--tx-id", "TX-1", "--offline")
        result = _invoke(runner, env, "pending")
        assert result.exit_code == 0
        assert "TX-1" in result.stdout

    def test_bad_metric_is_validation_error(self, runner: CliRunner, env: dict[str, str]) -> None:
        result = _invoke(runner, env, "append", "boot", "-m", "novalue")
        assert result.exit_code == ExitCode.VALIDATION_ERROR

    def test_blank_event_name_is_validation_error(
        self, runner: CliRunner, env: dict[str, str]
    ) -> None:
        result = _invoke(runner, env, "append", "  ")
        assert result.exit_code == ExitCode.VALIDATION_ERROR
        assert not Path(env["RELAYLOG_DB_PATH"]).exists() or _history(runner, env) == []

    def test_history(self, runner: CliRunner, env: dict[str, str]) -> None:
        _invoke(runner, env, "append", "boot", "--tx-id", "TX-1")
        _invoke(runner, env, "append", "reading", "--tx-id", "TX-2", "--offline")
        rows = _history(runner, env)
        assert [(r["transactionId"], r["synced_at"] is not None) for r in rows] == [
            ("TX-1", True),
            ("TX-2", False),
        ]


def _history(runner: CliRunner, env: dict[str, str]) -> list[dict]:
    result = _invoke(runner, env, "history", "--json")
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


# ---------------------------------------------------------------------------
# verify
# ---------------------------------------------------------------------------


class TestVerify:
    def test_valid_record(self, runner: CliRunner, env: dict[str, str]) -> None:
        _invoke(runner, env, "append", "boot", "--tx-id", "TX-1", "--offline")
        result = _invoke(runner, env, "verify", "TX-1", "--json")
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["valid"] is True

    def test_tampered_record(self, runner: CliRunner, env: dict[str, str]) -> None:
        _invoke(runner, env, "append", "boot", "--tx-id", "TX-1", "-m", "amount=10", "--offline")
        conn = sqlite3.connect(env["RELAYLOG_DB_PATH"])
        raw = json.loads(conn.execute("SELECT record FROM events").fetchone()[0])
        raw["metrics"]["amount"] = 1000
        conn.execute("UPDATE events SET record = ?", (json.dumps(raw),))
        conn.commit()
        conn.close()

        result = _invoke(runner, env, "verify", "TX-1")
        assert result.exit_code == ExitCode.VERIFY_FAILED
        assert "MISMATCH" in result.stdout

    def test_explicit_wrong_signature(self, runner: CliRunner, env: dict[str, str]) -> None:
        _invoke(runner, env, "append", "boot", "--tx-id", "TX-1", "--offline")
        result = _invoke(runner, env, "verify", "TX-1", "--signature", "FP-0000000000000000-1")
        assert result.exit_code == ExitCode.VERIFY_FAILED

    def test_unknown_transaction(self, runner: CliRunner, env: dict[str, str]) -> None:
        result = _invoke(runner, env, "verify", "TX-nope")
        assert result.exit_code == ExitCode.ERROR


# ---------------------------------------------------------------------------
# txid / purge
# ---------------------------------------------------------------------------


class TestHousekeeping:
    def test_txid(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["txid", "--prefix", "OFF"])
        assert result.exit_code == 0
        assert re.fullmatch(r"OFF-\d+-\d{6}", result.stdout.strip())

    def test_purge_keeps_pending(self, runner: CliRunner, env: dict[str, str]) -> None:
        _invoke(runner, env, "append", "boot", "--tx-id", "TX-1")
        _invoke(runner, env, "append", "boot", "--tx-id", "TX-2", "--offline")
        result = _invoke(runner, env, "purge")
        assert result.exit_code == 0
        assert "Removed 1" in result.stdout
        assert [r["transactionId"] for r in _history(runner, env)] == ["TX-2"]

    def test_purge_all_requires_confirmation(
        self, runner: CliRunner, env: dict[str, str]
    ) -> None:
        _invoke(runner, env, "append", "boot", "--tx-id", "TX-1", "--offline")
        result = _invoke(runner, env, "purge", "--all", input="n\n")
        assert result.exit_code != 0
        assert len(_history(runner, env)) == 1

    def test_purge_all_with_yes(self, runner: CliRunner, env: dict[str, str]) -> None:
        _invoke(runner, env, "append", "boot", "--tx-id", "TX-1", "--offline")
        result = _invoke(runner, env, "purge", "--all", "--yes")
        assert result.exit_code == 0
        assert _history(runner, env) == []


# ---------------------------------------------------------------------------
# config / db / version
# ---------------------------------------------------------------------------


class TestConfigCommands:
    def test_show_json_redacts_token(self, runner: CliRunner, env: dict[str, str]) -> None:
        env = {**env, "RELAYLOG_SINK_TOKEN": "abcdefghijklmnop"}
        result = _invoke(runner, env, "config", "show", "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["sink"]["kind"] == "jsonl"
        assert data["sink"]["api_token"] == "abcd***mnop"
        assert data["store"]["effective_path"] == env["RELAYLOG_DB_PATH"]

    def test_show_rich(self, runner: CliRunner, env: dict[str, str]) -> None:
        result = _invoke(runner, env, "config", "show")
        assert result.exit_code == 0
        assert "[sink]" in result.stdout

    def test_validate(self, runner: CliRunner, env: dict[str, str]) -> None:
        result = _invoke(runner, env, "config", "validate")
        assert result.exit_code == 0

    def test_validate_missing(self, runner: CliRunner, env: dict[str, str], tmp_path: Path) -> None:
        env = {**env, "RELAYLOG_CONFIG": str(tmp_path / "absent.toml")}
        result = _invoke(runner, env, "config", "validate")
        assert result.exit_code == ExitCode.CONFIG_ERROR

    def test_invalid_config_blocks_commands(
        self, runner: CliRunner, env: dict[str, str]
    ) -> None:
        Path(env["RELAYLOG_CONFIG"]).write_text('[drain]\npolicy = "whenever"\n')
        result = _invoke(runner, env, "append", "boot")
        assert result.exit_code == ExitCode.CONFIG_ERROR

    def test_init_writes_loadable_config(
        self, runner: CliRunner, env: dict[str, str], tmp_path: Path
    ) -> None:
        cfg = tmp_path / "new" / "config.toml"
        env = {"HOME": env["HOME"], "RELAYLOG_CONFIG": str(cfg)}
        result = _invoke(
            runner,
            env,
            "config",
            "init",
            "--sink",
            "jsonl",
            "--spool-path",
            str(tmp_path / "spool.jsonl"),
            "--drain-policy",
            "skip",
        )
        assert result.exit_code == 0, result.output

        from relaylog.core.config import load_config

        loaded = load_config(cfg)
        assert loaded.sink.kind == "jsonl"
        assert loaded.drain.policy == "skip"

    def test_init_refuses_overwrite(self, runner: CliRunner, env: dict[str, str]) -> None:
        result = _invoke(runner, env, "config", "init")
        assert result.exit_code == ExitCode.CONFIG_ERROR

    def test_init_rejects_http_without_endpoint(
        self, runner: CliRunner, env: dict[str, str]
    ) -> None:
        result = _invoke(runner, env, "config", "init", "--sink", "http", "--force")
        assert result.exit_code == ExitCode.CONFIG_ERROR


class TestDbAndVersion:
    def test_db_info_before_first_append(self, runner: CliRunner, env: dict[str, str]) -> None:
        result = _invoke(runner, env, "db", "info", "--json")
        assert result.exit_code == 0
        assert json.loads(result.stdout)["exists"] is False

    def test_db_info_counts(self, runner: CliRunner, env: dict[str, str]) -> None:
        _invoke(runner, env, "append", "boot", "--tx-id", "TX-1")
        _invoke(runner, env, "append", "boot", "--tx-id", "TX-2", "--offline")
        data = json.loads(_invoke(runner, env, "db", "info", "--json").stdout)
        assert data["records"] == 2
        assert data["pending"] == 1
        assert data["transmitted"] == 1
        assert data["schema_version"] == data["latest_version"]

    def test_version_json(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["version", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["relaylog"]

    def test_version_flag(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--version"])
        assert result.output.startswith("relaylog ")
