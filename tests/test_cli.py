"""Tests for the command-line entry point."""

from __future__ import annotations

import logging

import pytest
import yaml
from click.testing import CliRunner

from telegram_relay import cli
from telegram_relay.config import ENV_FIELDS


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_FIELDS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def recorded_runs(monkeypatch):
    runs = []

    async def fake_run(config, last_update_id):
        runs.append((config, last_update_id))

    monkeypatch.setattr(cli, "run", fake_run)
    return runs


class TestMain:
    def test_missing_token_is_reported(self, clean_env, tmp_path, recorded_runs):
        result = CliRunner().invoke(cli.main, ["--data-dir", str(tmp_path / "data")])

        assert result.exit_code == 1
        assert "TELEGRAM_TOKEN" in result.output
        assert recorded_runs == []

    def test_missing_handler_env_is_reported(self, clean_env, tmp_path, recorded_runs):
        clean_env.setenv("TELEGRAM_TOKEN", "1:abc")

        result = CliRunner().invoke(cli.main, ["--data-dir", str(tmp_path / "data")])

        assert result.exit_code == 1
        assert "TRANSMISSION_ADDRESS" in result.output

    def test_starts_loop_from_stored_offset(self, clean_env, tmp_path, recorded_runs):
        clean_env.setenv("TELEGRAM_TOKEN", "1:abc")
        data_dir = tmp_path / "data"
        data_dir.mkdir()
        (data_dir / "update_id").write_text("99")
        settings = tmp_path / "settings.yaml"
        settings.write_text(yaml.dump({"handlers": ["healthcheck"], "await_handlers": True}))

        result = CliRunner().invoke(
            cli.main, ["--data-dir", str(data_dir), "--settings", str(settings)]
        )

        assert result.exit_code == 0, result.output
        config, last_update_id = recorded_runs[0]
        assert last_update_id == 99
        assert config.enabled_handlers == ["healthcheck"]
        assert config.settings.await_handlers is True

    def test_corrupted_offset_is_fatal(self, clean_env, tmp_path, recorded_runs):
        clean_env.setenv("TELEGRAM_TOKEN", "1:abc")
        data_dir = tmp_path / "data"
        data_dir.mkdir()
        (data_dir / "update_id").write_text("garbage")
        settings = tmp_path / "settings.yaml"
        settings.write_text(yaml.dump({"handlers": ["healthcheck"]}))

        result = CliRunner().invoke(
            cli.main, ["--data-dir", str(data_dir), "--settings", str(settings)]
        )

        assert result.exit_code == 1
        assert "corrupted" in result.output
        assert recorded_runs == []


class TestRedactingFormatter:
    def test_secrets_are_masked(self):
        formatter = cli._RedactingFormatter(["123:token", "", "123"], fmt="%(message)s")
        record = logging.LogRecord(
            "x", logging.INFO, __file__, 1,
            "GET https://api.telegram.org/bot123:token/getUpdates", None, None,
        )

        assert formatter.format(record) == "GET https://api.telegram.org/bot***/getUpdates"
