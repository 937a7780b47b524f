# Shared fixtures: a controllable clock, file-backed client storage in
# tmp_path, and an application built with the MCP mount disabled.

import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app
from oauth.persistence import JsonLinesClientStorage
from oauth.server import AuthorizationServer
from oauth.stores import AuthorizationCodeStore, ClientRegistry, TokenStore
from sessions import SessionCoordinator

ISSUER = "https://mcp.example.com"
ALLOWED_ORIGIN = "https://claude.ai"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client_store_path(tmp_path):
    return tmp_path / "clients.jsonl"


@pytest.fixture
def storage(client_store_path):
    return JsonLinesClientStorage(client_store_path)


@pytest.fixture
def registry(storage, clock):
    return ClientRegistry(storage, clock=clock)


@pytest.fixture
def auth_server(registry, clock):
    return AuthorizationServer(
        clients=registry,
        codes=AuthorizationCodeStore(clock=clock),
        tokens=TokenStore(clock=clock),
        clock=clock,
    )


@pytest.fixture
def sessions(clock):
    return SessionCoordinator(clock=clock)


@pytest.fixture
def settings(client_store_path):
    return Settings({
        "oauth_issuer": ISSUER,
        "allowed_origins": ALLOWED_ORIGIN,
        "enable_mcp": "false",
        "client_store_path": str(client_store_path),
    })


@pytest.fixture
def app(settings, clock):
    return create_app(settings, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
