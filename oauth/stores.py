"""Stores for OAuth clients, authorization codes and access tokens.

Each store owns its map and an asyncio lock held around every mutation.
Lookups of already-published entries are plain dict reads and never wait
on the lock.
"""

import asyncio
import logging
import time
from typing import Callable
from urllib.parse import urlsplit

from oauth.errors import (
    ClientPersistenceError,
    InvalidGrant,
    InvalidRedirectUri,
    InvalidRequest,
)
from oauth.models import AuthorizationCode, Client, Token
from oauth.persistence import ClientStorage
from oauth.tokens import generate_authorization_code, generate_client_id

logger = logging.getLogger(__name__)

CODE_TTL_SECONDS = 10 * 60

LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}


def check_redirect_target(uri: str) -> None:
    """Raise InvalidRedirectUri unless ``uri`` is HTTPS or loopback."""
    try:
        parts = urlsplit(uri)
        hostname = parts.hostname
        parts.port  # raises ValueError on a malformed port
    except ValueError:
        raise InvalidRedirectUri(f"Invalid redirect URI format: {uri}") from None

    if not parts.scheme or not hostname:
        raise InvalidRedirectUri(f"Invalid redirect URI format: {uri}")

    is_https = parts.scheme == "https"
    is_loopback = parts.scheme in ("http", "https") and hostname in LOOPBACK_HOSTS
    if not (is_https or is_loopback):
        raise InvalidRedirectUri(f"Redirect URI must be HTTPS or localhost: {uri}")


class ClientRegistry:
    """Registered clients, backed by durable storage."""

    def __init__(self, storage: ClientStorage, clock: Callable[[], float] = time.time):
        self._storage = storage
        self._clock = clock
        self._clients: dict[str, Client] = {}
        self._write_lock = asyncio.Lock()
        self._loaded = False
        self._loading: asyncio.Task | None = None

    async def ensure_loaded(self) -> None:
        """Repopulate from storage once; concurrent callers share the load."""
        if self._loaded:
            return
        if self._loading is None:
            self._loading = asyncio.create_task(self._load())
        try:
            await asyncio.shield(self._loading)
        except Exception:
            # Let the next caller retry a failed load
            self._loading = None
            raise

    async def _load(self) -> None:
        clients = await asyncio.to_thread(self._storage.load)
        async with self._write_lock:
            for client in clients:
                self._clients.setdefault(client.client_id, client)
            self._loaded = True

    async def register(self, display_name, redirect_targets) -> Client:
        """Validate, persist and publish a new client.

        The client is only visible to lookups once storage has accepted it.
        """
        if not isinstance(display_name, str) or not display_name.strip():
            raise InvalidRequest("client_name is required")
        if (
            not isinstance(redirect_targets, list)
            or not redirect_targets
            or not all(isinstance(uri, str) and uri for uri in redirect_targets)
        ):
            raise InvalidRequest("redirect_uris must be a non-empty list of URIs")

        for uri in redirect_targets:
            check_redirect_target(uri)

        await self.ensure_loaded()

        async with self._write_lock:
            client_id = generate_client_id()
            while client_id in self._clients:
                client_id = generate_client_id()

            client = Client(
                client_id=client_id,
                display_name=display_name,
                redirect_targets=tuple(redirect_targets),
                created_at=self._clock(),
            )

            try:
                await asyncio.to_thread(self._storage.append, client)
            except Exception as e:
                logger.error(f"[REGISTER] Failed to persist client {client_id}: {e}")
                raise ClientPersistenceError("Client registration could not be persisted") from e

            self._clients[client_id] = client

        logger.info(f"[REGISTER] Registered client {client_id} ({display_name})")
        return client

    async def get(self, client_id: str) -> Client | None:
        await self.ensure_loaded()
        return self._clients.get(client_id)

    def all(self) -> list[Client]:
        return list(self._clients.values())

    def __len__(self) -> int:
        return len(self._clients)


class AuthorizationCodeStore:
    """Single-use authorization codes."""

    def __init__(self, clock: Callable[[], float] = time.time, ttl: float = CODE_TTL_SECONDS):
        self._clock = clock
        self.ttl = ttl
        self._codes: dict[str, AuthorizationCode] = {}
        self._lock = asyncio.Lock()

    async def issue(self, client_id: str, redirect_target: str, code_challenge: str) -> AuthorizationCode:
        now = self._clock()
        async with self._lock:
            code = generate_authorization_code()
            while code in self._codes:
                code = generate_authorization_code()
            auth_code = AuthorizationCode(
                code=code,
                client_id=client_id,
                redirect_target=redirect_target,
                code_challenge=code_challenge,
                created_at=now,
                expires_at=now + self.ttl,
            )
            self._codes[code] = auth_code
        return auth_code

    async def redeem(self, code: str, check: Callable[[AuthorizationCode], None]) -> AuthorizationCode:
        """Atomically look up, verify and consume a code.

        ``check`` raises an OAuthError to reject the exchange; the code is
        left unconsumed in that case.
        """
        async with self._lock:
            auth_code = self._codes.get(code)
            if auth_code is None:
                raise InvalidGrant("Invalid or expired authorization code")
            if auth_code.consumed:
                raise InvalidGrant("Authorization code has already been used")
            if auth_code.is_expired(self._clock()):
                del self._codes[code]
                raise InvalidGrant("Authorization code expired")

            check(auth_code)
            auth_code.consumed = True
            return auth_code

    def get(self, code: str) -> AuthorizationCode | None:
        return self._codes.get(code)

    async def sweep(self) -> int:
        """Drop expired and consumed codes."""
        now = self._clock()
        async with self._lock:
            stale = [k for k, v in self._codes.items() if v.consumed or v.is_expired(now)]
            for k in stale:
                del self._codes[k]
        return len(stale)

    def __len__(self) -> int:
        return len(self._codes)


class TokenStore:
    """Live bearer tokens keyed by their value."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._tokens: dict[str, Token] = {}
        self._lock = asyncio.Lock()

    async def add(self, token: Token) -> None:
        async with self._lock:
            if token.value in self._tokens:
                raise ValueError("token value collision")
            self._tokens[token.value] = token

    def get(self, value: str) -> Token | None:
        return self._tokens.get(value)

    async def touch(self, value: str) -> Token | None:
        """Record a use of a live token. Expired tokens are evicted instead."""
        now = self._clock()
        async with self._lock:
            token = self._tokens.get(value)
            if token is None:
                return None
            if token.is_expired(now):
                del self._tokens[value]
                return None
            token.last_used_at = now
            return token

    async def remove(self, value: str) -> bool:
        async with self._lock:
            return self._tokens.pop(value, None) is not None

    async def sweep(self) -> int:
        now = self._clock()
        async with self._lock:
            expired = [k for k, v in self._tokens.items() if v.is_expired(now)]
            for k in expired:
                del self._tokens[k]
        return len(expired)

    def __contains__(self, value: str) -> bool:
        return value in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)
