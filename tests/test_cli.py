"""Tests for gatekeep.cli module."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
import typer
from typer.testing import CliRunner

from gatekeep import __version__
from gatekeep.cli import _version_callback, app, run_bot
from gatekeep.config_store import get_config_path, read_raw_toml, write_raw_toml

runner = CliRunner()

CONFIG = {
    "bot": {"token": "abc", "guild_id": 1000},
    "roles": {"staff": 2000, "muted": 3000},
}


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("GATEKEEP__TOKEN", "GATEKEEP__GUILD_ID", "GATEKEEP__ROLES__STAFF"):
        monkeypatch.delenv(name, raising=False)


class TestVersion:
    """Tests for --version."""

    def test_callback_exits_when_true(self) -> None:
        with pytest.raises(typer.Exit):
            _version_callback(True)

    def test_callback_does_nothing_when_false(self) -> None:
        _version_callback(False)

    def test_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestInit:
    """Tests for the init command."""

    def test_writes_config(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(
            app,
            ["init", "-t", "abc", "-g", "1000", "-s", "2000", "--muted-role", "3000"],
        )

        assert result.exit_code == 0, result.output
        data = read_raw_toml(get_config_path(tmp_path))
        assert data["bot"] == {"token": "abc", "guild_id": 1000}
        assert data["roles"] == {"staff": 2000, "muted": 3000}
        assert data["scheduler"]["interval_s"] == 10.0

    def test_prompts_for_missing_values(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(app, ["init"], input="abc\n1000\n2000\n")

        assert result.exit_code == 0, result.output
        data = read_raw_toml(get_config_path(tmp_path))
        assert data["roles"] == {"staff": 2000}

    def test_refuses_to_overwrite(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        write_raw_toml(CONFIG, get_config_path(tmp_path))

        result = runner.invoke(app, ["init", "-t", "x", "-g", "1", "-s", "2"])

        assert result.exit_code == 1
        assert read_raw_toml(get_config_path(tmp_path)) == CONFIG

    def test_force_backs_up(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        config_path = get_config_path(tmp_path)
        write_raw_toml(CONFIG, config_path)

        result = runner.invoke(app, ["init", "-t", "x", "-g", "1", "-s", "2", "--force"])

        assert result.exit_code == 0, result.output
        assert read_raw_toml(config_path.with_suffix(".toml.bak")) == CONFIG
        assert read_raw_toml(config_path)["bot"]["guild_id"] == 1


class TestCommands:
    """Tests for the commands listing."""

    def test_lists_builtin_commands(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        write_raw_toml(CONFIG, get_config_path(tmp_path))

        result = runner.invoke(app, ["commands"])

        assert result.exit_code == 0, result.output
        for name in ("/remind", "/mute", "/poll"):
            assert name in result.output

    def test_without_config(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(app, ["commands"])
        assert result.exit_code == 1


class TestRun:
    """Tests for the run command."""

    def test_without_config(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(app, ["run"])
        assert result.exit_code == 1

    def test_runs_bot(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        write_raw_toml(CONFIG, get_config_path(tmp_path))

        with (
            patch("gatekeep.cli.anyio.run") as anyio_run,
            patch("gatekeep.cli.setup_logging"),
        ):
            result = runner.invoke(app, ["run"])

        assert result.exit_code == 0, result.output
        func, settings = anyio_run.call_args.args
        assert func is run_bot
        assert settings.guild_id == 1000

    def test_bot_failure_exits_nonzero(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        write_raw_toml(CONFIG, get_config_path(tmp_path))

        with (
            patch("gatekeep.cli.anyio.run", side_effect=RuntimeError("login failed")),
            patch("gatekeep.cli.setup_logging"),
        ):
            result = runner.invoke(app, ["run"])

        assert result.exit_code == 1
