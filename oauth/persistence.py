"""Durable storage backends for registered OAuth clients.

The registry only needs two things from a backend: replay everything on
startup, and append one client so that it survives a restart before the
registration response goes out. Both backends are synchronous; the registry
runs them off the event loop.
"""

import json
import logging
import os
from pathlib import Path
from typing import Protocol

from oauth.models import Client

logger = logging.getLogger(__name__)


class ClientStorage(Protocol):
    def load(self) -> list[Client]: ...

    def append(self, client: Client) -> None: ...


class JsonLinesClientStorage:
    """Append-only JSON Lines file, one client per line.

    Each append is flushed and fsynced before returning. On replay later
    lines win, so a duplicated append is harmless.
    """

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()

    def load(self) -> list[Client]:
        if not self.path.exists():
            return []

        clients: dict[str, Client] = {}
        with open(self.path, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    client = Client.from_dict(json.loads(line))
                except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                    logger.warning(f"[STORE] Skipping malformed client record at {self.path}:{lineno}: {e}")
                    continue
                clients[client.client_id] = client

        logger.info(f"[STORE] Loaded {len(clients)} clients from {self.path}")
        return list(clients.values())

    def append(self, client: Client) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(client.to_dict()) + "\n")
            f.flush()
            os.fsync(f.fileno())

        # Owner read/write only
        try:
            os.chmod(self.path, 0o600)
        except OSError as e:
            logger.warning(f"[STORE] Could not restrict permissions on {self.path}: {e}")


class SupabaseClientStorage:
    """Clients stored as rows of a Supabase table."""

    TABLE = "oauth_clients"

    def __init__(self, supabase_client, table: str = TABLE):
        self.supabase = supabase_client
        self.table = table

    def load(self) -> list[Client]:
        response = self.supabase.table(self.table).select("*").execute()
        clients: dict[str, Client] = {}
        for row in response.data or []:
            try:
                client = Client.from_dict(row)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"[STORE] Skipping malformed client row: {e}")
                continue
            clients[client.client_id] = client
        logger.info(f"[STORE] Loaded {len(clients)} clients from Supabase table {self.table}")
        return list(clients.values())

    def append(self, client: Client) -> None:
        self.supabase.table(self.table).insert(client.to_dict()).execute()


def build_client_storage(settings, supabase_client=None) -> ClientStorage:
    """Pick the storage backend named by ``settings.client_store``."""
    if settings.client_store == "supabase":
        if supabase_client is None:
            raise ValueError("CLIENT_STORE=supabase requires SUPABASE_URL and SUPABASE_ANON_KEY")
        return SupabaseClientStorage(supabase_client)
    return JsonLinesClientStorage(settings.client_store_path)
