# Tests for environment-driven settings.

from pathlib import Path

import pytest

from config import DEFAULT_CLIENT_STORE_PATH, ENV_VARS, Settings, load_settings


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    # setenv first so monkeypatch restores the variable's absence afterwards
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


def test_defaults():
    settings = Settings()
    assert settings.issuer == "http://localhost:3001"
    assert settings.host == "0.0.0.0"
    assert settings.port == 3001
    assert settings.log_level == "info"
    assert settings.allowed_origins == ["http://localhost:3000"]
    assert settings.enable_mcp is True
    assert settings.client_store == "file"
    assert settings.client_store_path == DEFAULT_CLIENT_STORE_PATH
    assert settings.supabase_logging is False
    assert settings.max_sessions == 1000
    assert settings.validate() == []


def test_load_from_environment(clean_env):
    clean_env.setenv("OAUTH_ISSUER", "https://mcp.example.com/")
    clean_env.setenv("MCP_PORT", "8080")
    clean_env.setenv("ALLOWED_ORIGINS", "https://claude.ai, https://chatgpt.com ,")
    clean_env.setenv("ENABLE_MCP", "false")
    clean_env.setenv("MAX_SESSIONS", "5")
    clean_env.setenv("LOG_LEVEL", "DEBUG")

    settings = load_settings()

    assert settings.issuer == "https://mcp.example.com"
    assert settings.port == 8080
    assert settings.allowed_origins == ["https://claude.ai", "https://chatgpt.com"]
    assert settings.enable_mcp is False
    assert settings.max_sessions == 5
    assert settings.log_level == "debug"


def test_load_from_dotenv_file(clean_env, tmp_path):
    (tmp_path / ".env").write_text("OAUTH_ISSUER=https://from-dotenv.example.com\nCLIENT_STORE_PATH=~/clients.jsonl\n")

    settings = load_settings()

    assert settings.issuer == "https://from-dotenv.example.com"
    assert settings.client_store_path == Path.home() / "clients.jsonl"


def test_environment_wins_over_dotenv(clean_env, tmp_path):
    env_file = tmp_path / "custom.env"
    env_file.write_text("MCP_PORT=9999\n")
    clean_env.setenv("MCP_PORT", "4000")

    assert load_settings(env_file).port == 4000


@pytest.mark.parametrize(
    "data, message",
    [
        ({"port": "0"}, "MCP_PORT"),
        ({"port": "70000"}, "MCP_PORT"),
        ({"port": "abc"}, "MCP_PORT"),
        ({"oauth_issuer": "mcp.example.com"}, "OAUTH_ISSUER"),
        ({"oauth_issuer": "ftp://mcp.example.com"}, "OAUTH_ISSUER"),
        ({"client_store": "redis"}, "CLIENT_STORE"),
        ({"client_store": "supabase"}, "SUPABASE_URL"),
        ({"max_sessions": "0"}, "MAX_SESSIONS"),
        ({"max_sessions": "many"}, "MAX_SESSIONS"),
    ],
)
def test_validate(data, message):
    errors = Settings(data).validate()
    assert len(errors) == 1
    assert message in errors[0]


def test_supabase_store_with_credentials_is_valid():
    settings = Settings({
        "client_store": "supabase",
        "supabase_url": "https://project.supabase.co",
        "supabase_anon_key": "key",
    })
    assert settings.validate() == []


@pytest.mark.parametrize("value, expected", [("1", True), ("yes", True), ("On", True), ("0", False), ("no", False)])
def test_boolean_flags(value, expected):
    assert Settings({"supabase_logging": value}).supabase_logging is expected
