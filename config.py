"""Config management for task-calendar-mcp.

Settings come from environment variables, with a ``.env`` file in the
working directory loaded first when present.
"""
import os
from pathlib import Path
from urllib.parse import urlsplit

from dotenv import load_dotenv

CONFIG_DIR = Path.home() / ".task-calendar-mcp"
DEFAULT_CLIENT_STORE_PATH = CONFIG_DIR / "clients.jsonl"

CLIENT_STORE_KINDS = ("file", "supabase")


def _as_bool(value, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    return str(value).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Configuration container."""

    def __init__(self, data: dict = None):
        self.data = data or {}

    @property
    def issuer(self) -> str:
        return self.data.get("oauth_issuer", "http://localhost:3001").rstrip("/")

    @property
    def host(self) -> str:
        return self.data.get("host", "0.0.0.0")

    @property
    def port(self) -> int:
        return int(self.data.get("port", 3001))

    @property
    def log_level(self) -> str:
        return self.data.get("log_level", "info").lower()

    @property
    def allowed_origins(self) -> list[str]:
        origins = self.data.get("allowed_origins", "http://localhost:3000")
        if isinstance(origins, str):
            origins = origins.split(",")
        return [o.strip() for o in origins if o.strip()]

    @property
    def enable_mcp(self) -> bool:
        return _as_bool(self.data.get("enable_mcp"), default=True)

    @property
    def client_store(self) -> str:
        return self.data.get("client_store", "file").lower()

    @property
    def client_store_path(self) -> Path:
        return Path(self.data.get("client_store_path") or DEFAULT_CLIENT_STORE_PATH).expanduser()

    @property
    def supabase_url(self) -> str:
        return self.data.get("supabase_url", "")

    @property
    def supabase_key(self) -> str:
        return self.data.get("supabase_anon_key", "")

    @property
    def supabase_logging(self) -> bool:
        return _as_bool(self.data.get("supabase_logging"))

    @property
    def max_sessions(self) -> int:
        return int(self.data.get("max_sessions", 1000))

    def validate(self) -> list[str]:
        """Return a list of configuration problems (empty when valid)."""
        errors = []

        try:
            port = self.port
            if port < 1 or port > 65535:
                errors.append("MCP_PORT must be a valid port number (1-65535)")
        except ValueError:
            errors.append("MCP_PORT must be a valid port number (1-65535)")

        issuer = urlsplit(self.issuer)
        if issuer.scheme not in ("http", "https") or not issuer.netloc:
            errors.append("OAUTH_ISSUER must be an absolute http(s) URL")

        if self.client_store not in CLIENT_STORE_KINDS:
            errors.append(f"CLIENT_STORE must be one of: {', '.join(CLIENT_STORE_KINDS)}")
        elif self.client_store == "supabase" and not (self.supabase_url and self.supabase_key):
            errors.append("CLIENT_STORE=supabase requires SUPABASE_URL and SUPABASE_ANON_KEY")

        try:
            if self.max_sessions < 1:
                errors.append("MAX_SESSIONS must be positive")
        except ValueError:
            errors.append("MAX_SESSIONS must be an integer")

        return errors


# Environment variable -> settings key
ENV_VARS = {
    "OAUTH_ISSUER": "oauth_issuer",
    "MCP_HOST": "host",
    "MCP_PORT": "port",
    "LOG_LEVEL": "log_level",
    "ALLOWED_ORIGINS": "allowed_origins",
    "ENABLE_MCP": "enable_mcp",
    "CLIENT_STORE": "client_store",
    "CLIENT_STORE_PATH": "client_store_path",
    "SUPABASE_URL": "supabase_url",
    "SUPABASE_ANON_KEY": "supabase_anon_key",
    "SUPABASE_LOGGING": "supabase_logging",
    "MAX_SESSIONS": "max_sessions",
}


def load_settings(env_file: Path | None = None) -> Settings:
    """Load settings from the environment (and ``.env`` if present)."""
    env_file = env_file or Path(".env")
    if env_file.exists():
        load_dotenv(env_file)

    data = {}
    for env_name, key in ENV_VARS.items():
        value = os.getenv(env_name)
        if value is not None and value != "":
            data[key] = value
    return Settings(data)
