"""Tests for the cfgsync command-line entry point."""

import json

import pytest
import yaml

from cfgsync.common.config import LoaderSettings
from cfgsync.common.exceptions import InvalidSetting
from cfgsync.main import build_parser, main


def test_dry_run_prints_merged_config(tmp_path, capsys, monkeypatch):
    path = tmp_path / "app.yaml"
    path.write_text("server:\n  port: 80\n")
    monkeypatch.setenv("APP_SERVER_PORT", "8080")

    code = main([
        "--config", str(path),
        "--env-prefix", "APP",
        "--set", "server.host=example",
        "--dry-run",
    ])

    assert code == 0
    captured = capsys.readouterr()
    printed = yaml.safe_load(captured.out)
    assert printed["server"] == {"host": "example", "port": "8080"}
    assert printed["config"] == str(path)

    # json logs go to stderr
    first_log = json.loads(captured.err.splitlines()[0])
    assert first_log["level"] == "INFO"


def test_startup_error_exits_nonzero(tmp_path):
    with pytest.raises(SystemExit) as exc_info:
        main(["--config", "ftp://host/file.yaml", "--dry-run"])
    assert exc_info.value.code == 1


def test_missing_default_file_exits_nonzero(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(SystemExit) as exc_info:
        main(["--name", "definitely-not-present-cfgsync", "--dry-run"])
    assert exc_info.value.code == 1


@pytest.mark.parametrize("value", ["soon", "0", "-1"])
def test_bad_interval_setting_exits_nonzero(tmp_path, monkeypatch, capsys, value):
    path = tmp_path / "app.yaml"
    path.write_text("a: 1\n")
    monkeypatch.setenv("CFGSYNC_REMOTE_INTERVAL_S", value)

    with pytest.raises(SystemExit) as exc_info:
        main(["--config", str(path), "--dry-run"])

    assert exc_info.value.code == 1
    assert "CFGSYNC_REMOTE_INTERVAL_S" in capsys.readouterr().err


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("CFGSYNC_FILE_INTERVAL_S", "0.5")
    settings = LoaderSettings.from_env()
    assert settings.file_interval_s == 0.5
    assert settings.remote_interval_s == 5.0

    monkeypatch.setenv("CFGSYNC_HTTP_TIMEOUT_S", "ten")
    with pytest.raises(InvalidSetting):
        LoaderSettings.from_env()


def test_loader_tunables_are_not_config_keys(tmp_path, capsys, monkeypatch):
    path = tmp_path / "app.yaml"
    path.write_text("a: 1\n")
    monkeypatch.setenv("CFGSYNC_FILE_INTERVAL_S", "2")

    assert main(["--config", str(path), "--dry-run"]) == 0

    printed = yaml.safe_load(capsys.readouterr().out)
    assert "file" not in printed
    assert printed["a"] == 1


def test_parser_defaults():
    args = build_parser().parse_args([])
    assert args.env_prefix == "APP"
    assert args.cfg_name == "config"
    assert args.health_port is None
    assert not hasattr(args, "config")
