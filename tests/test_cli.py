# Tests for the command line interface.

import json

import pytest

import cli
from config import ENV_VARS


@pytest.fixture
def cli_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CLIENT_STORE_PATH", str(tmp_path / "clients.jsonl"))
    return tmp_path


def test_register_and_list(cli_env, capsys):
    assert cli.main([
        "register",
        "--name", "Claude",
        "--redirect-uri", "https://claude.ai/api/mcp/auth_callback",
        "--redirect-uri", "http://localhost:6274/callback",
    ]) == 0
    client = json.loads(capsys.readouterr().out)
    assert client["client_name"] == "Claude"
    assert client["redirect_uris"] == [
        "https://claude.ai/api/mcp/auth_callback",
        "http://localhost:6274/callback",
    ]
    assert client["client_id"] in (cli_env / "clients.jsonl").read_text()

    assert cli.main(["clients"]) == 0
    out = capsys.readouterr().out
    assert client["client_id"] in out
    assert "http://localhost:6274/callback" in out


def test_register_rejects_bad_redirect(cli_env, capsys):
    assert cli.main(["register", "--name", "Bad", "--redirect-uri", "http://evil.example.com/cb"]) == 1
    assert "invalid_redirect_uri" in capsys.readouterr().err
    assert not (cli_env / "clients.jsonl").exists()


def test_clients_empty(cli_env, capsys):
    assert cli.main(["clients"]) == 0
    assert "No registered clients." in capsys.readouterr().out


def test_invalid_configuration(cli_env, monkeypatch, capsys):
    monkeypatch.setenv("CLIENT_STORE", "redis")
    assert cli.main(["clients"]) == 1
    assert "CLIENT_STORE" in capsys.readouterr().err


def test_serve_uses_settings(cli_env, monkeypatch):
    calls = {}
    monkeypatch.setattr(cli, "build_app", lambda settings: "app")
    monkeypatch.setattr(cli.uvicorn, "run", lambda app, **kwargs: calls.update(app=app, **kwargs))

    assert cli.main(["serve", "--host", "127.0.0.1", "--port", "4100"]) == 0
    assert calls == {"app": "app", "host": "127.0.0.1", "port": 4100, "log_level": "info"}


def test_no_command_prints_help(cli_env, capsys):
    assert cli.main([]) == 1
    assert "usage" in capsys.readouterr().out


def test_version(capsys):
    assert cli.main(["version"]) == 0
    assert "task-calendar-mcp v" in capsys.readouterr().out
