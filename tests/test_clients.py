# Tests for the client registry and its storage backends.

import asyncio
import json
import os
import stat
from types import SimpleNamespace

import pytest

from config import Settings
from oauth.errors import ClientPersistenceError, InvalidRedirectUri, InvalidRequest
from oauth.models import Client
from oauth.persistence import (
    JsonLinesClientStorage,
    SupabaseClientStorage,
    build_client_storage,
)
from oauth.stores import ClientRegistry, check_redirect_target


class FailingStorage:
    def load(self):
        return []

    def append(self, client):
        raise OSError("disk full")


class CountingStorage:
    def __init__(self, clients=None, fail_first=False):
        self.clients = clients or []
        self.fail_first = fail_first
        self.loads = 0

    def load(self):
        self.loads += 1
        if self.fail_first and self.loads == 1:
            raise OSError("storage unavailable")
        return list(self.clients)

    def append(self, client):
        self.clients.append(client)


class FakeSupabase:
    """Just enough of the supabase client's table API."""

    def __init__(self):
        self.rows = {}

    def table(self, name):
        return FakeTable(self.rows.setdefault(name, []))


class FakeTable:
    def __init__(self, rows):
        self.rows = rows
        self._pending = None

    def select(self, columns):
        self._pending = lambda: list(self.rows)
        return self

    def insert(self, row):
        def do_insert():
            self.rows.append(row)
            return [row]

        self._pending = do_insert
        return self

    def execute(self):
        return SimpleNamespace(data=self._pending())


# ===================== Redirect target checks =====================


class TestRedirectTargets:
    @pytest.mark.parametrize(
        "uri",
        [
            "https://app.example.com/callback",
            "https://claude.ai/api/mcp/auth_callback",
            "http://localhost:8080/callback",
            "http://127.0.0.1/cb",
            "http://[::1]:3000/cb",
        ],
    )
    def test_accepted(self, uri):
        check_redirect_target(uri)

    @pytest.mark.parametrize(
        "uri",
        ["http://app.example.com/callback", "myapp://callback", "ftp://localhost/cb"],
    )
    def test_rejected_scheme(self, uri):
        with pytest.raises(InvalidRedirectUri, match="must be HTTPS or localhost"):
            check_redirect_target(uri)

    @pytest.mark.parametrize("uri", ["not a url", "/relative/path", "https://"])
    def test_rejected_format(self, uri):
        with pytest.raises(InvalidRedirectUri, match="Invalid redirect URI format"):
            check_redirect_target(uri)


# ===================== Registration =====================


class TestClientRegistry:
    @pytest.mark.asyncio
    async def test_register_persists_client(self, registry, client_store_path, clock):
        client = await registry.register("Claude", ["https://claude.ai/api/mcp/auth_callback"])

        assert len(client.client_id) == 32
        assert client.display_name == "Claude"
        assert client.redirect_targets == ("https://claude.ai/api/mcp/auth_callback",)
        assert client.created_at == clock()
        assert await registry.get(client.client_id) == client

        lines = client_store_path.read_text().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["client_id"] == client.client_id
        assert stat.S_IMODE(os.stat(client_store_path).st_mode) == 0o600

    @pytest.mark.asyncio
    async def test_clients_survive_restart(self, registry, storage):
        first = await registry.register("One", ["https://one.example.com/cb"])
        second = await registry.register("Two", ["http://localhost:9000/cb", "https://two.example.com/cb"])

        reloaded = ClientRegistry(storage)
        await reloaded.ensure_loaded()

        assert len(reloaded) == 2
        assert await reloaded.get(first.client_id) == first
        assert await reloaded.get(second.client_id) == second

    @pytest.mark.asyncio
    async def test_client_ids_are_unique(self, registry):
        clients = await asyncio.gather(
            *[registry.register(f"client-{i}", ["https://app.example.com/cb"]) for i in range(25)]
        )
        assert len({c.client_id for c in clients}) == 25
        assert len(registry) == 25

    @pytest.mark.asyncio
    async def test_unknown_client(self, registry):
        assert await registry.get("does-not-exist") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "name, uris",
        [
            (None, ["https://app.example.com/cb"]),
            ("", ["https://app.example.com/cb"]),
            ("   ", ["https://app.example.com/cb"]),
            ("App", None),
            ("App", []),
            ("App", "https://app.example.com/cb"),
            ("App", ["https://app.example.com/cb", ""]),
        ],
    )
    async def test_invalid_request(self, registry, name, uris):
        with pytest.raises(InvalidRequest):
            await registry.register(name, uris)
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_one_bad_redirect_rejects_registration(self, registry, client_store_path):
        with pytest.raises(InvalidRedirectUri):
            await registry.register("App", ["https://app.example.com/cb", "http://evil.example.com/cb"])
        assert len(registry) == 0
        assert not client_store_path.exists()

    @pytest.mark.asyncio
    async def test_persistence_failure_is_not_published(self, clock):
        registry = ClientRegistry(FailingStorage(), clock=clock)

        with pytest.raises(ClientPersistenceError) as exc_info:
            await registry.register("App", ["https://app.example.com/cb"])

        assert exc_info.value.status_code == 500
        assert exc_info.value.error == "server_error"
        assert registry.all() == []


class TestRegistryLoading:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_load(self):
        stored = Client("abc", "Stored", ("https://app.example.com/cb",), 1.0)
        storage = CountingStorage([stored])
        registry = ClientRegistry(storage)

        await asyncio.gather(*[registry.ensure_loaded() for _ in range(10)])
        await registry.ensure_loaded()

        assert storage.loads == 1
        assert await registry.get("abc") == stored

    @pytest.mark.asyncio
    async def test_failed_load_is_retried(self):
        storage = CountingStorage(fail_first=True)
        registry = ClientRegistry(storage)

        with pytest.raises(OSError):
            await registry.ensure_loaded()
        await registry.ensure_loaded()

        assert storage.loads == 2

    @pytest.mark.asyncio
    async def test_register_waits_for_load(self):
        stored = Client("abc", "Stored", ("https://app.example.com/cb",), 1.0)
        registry = ClientRegistry(CountingStorage([stored]))

        await registry.register("New", ["https://new.example.com/cb"])

        assert len(registry) == 2


# ===================== Storage backends =====================


class TestJsonLinesStorage:
    def test_missing_file_loads_nothing(self, tmp_path):
        assert JsonLinesClientStorage(tmp_path / "absent.jsonl").load() == []

    def test_malformed_lines_are_skipped(self, tmp_path):
        path = tmp_path / "clients.jsonl"
        good = Client("abc", "Good", ("https://app.example.com/cb",), 1.0)
        path.write_text(
            "not json\n"
            + json.dumps({"client_id": "missing-fields"}) + "\n"
            + "\n"
            + json.dumps(good.to_dict()) + "\n"
        )

        assert JsonLinesClientStorage(path).load() == [good]

    def test_last_write_wins(self, tmp_path):
        storage = JsonLinesClientStorage(tmp_path / "nested" / "clients.jsonl")
        storage.append(Client("abc", "Old", ("https://app.example.com/cb",), 1.0))
        storage.append(Client("abc", "New", ("https://app.example.com/cb",), 2.0))

        clients = storage.load()
        assert len(clients) == 1
        assert clients[0].display_name == "New"


class TestSupabaseStorage:
    def test_append_and_load(self):
        supabase = FakeSupabase()
        storage = SupabaseClientStorage(supabase)
        client = Client("abc", "App", ("https://app.example.com/cb",), 1.0)

        storage.append(client)

        assert supabase.rows["oauth_clients"] == [client.to_dict()]
        assert storage.load() == [client]

    def test_malformed_rows_are_skipped(self):
        supabase = FakeSupabase()
        supabase.rows["oauth_clients"] = [{"client_id": "broken"}]
        assert SupabaseClientStorage(supabase).load() == []


class TestBuildClientStorage:
    def test_file_backend(self, tmp_path):
        storage = build_client_storage(Settings({"client_store_path": str(tmp_path / "c.jsonl")}))
        assert isinstance(storage, JsonLinesClientStorage)
        assert storage.path == tmp_path / "c.jsonl"

    def test_supabase_backend(self):
        storage = build_client_storage(Settings({"client_store": "supabase"}), FakeSupabase())
        assert isinstance(storage, SupabaseClientStorage)

    def test_supabase_backend_requires_client(self):
        with pytest.raises(ValueError):
            build_client_storage(Settings({"client_store": "supabase"}))
