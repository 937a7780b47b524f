"""OAuth 2.1 authorization server.

Implements dynamic client registration, the authorization code flow with
PKCE (RFC 7636), the client credentials grant, bearer token validation with
hierarchical scopes, introspection (RFC 7662) and revocation (RFC 7009).

No consent step is modeled: authorization requests from a registered client
with a registered redirect URI are approved automatically.
"""

import logging
import time
from typing import Callable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from background import PeriodicTask
from oauth import pkce
from oauth.errors import (
    InsufficientScope,
    InvalidClient,
    InvalidGrant,
    InvalidRedirectUri,
    InvalidRequest,
    InvalidToken,
    UnsupportedGrantType,
    UnsupportedResponseType,
)
from oauth.models import (
    AuthContext,
    AuthorizationCode,
    AuthorizationCodeToken,
    Client,
    ClientCredentialsToken,
    GrantKind,
    Token,
)
from oauth.scopes import DEFAULT_GRANT_SCOPES, missing_scopes
from oauth.stores import AuthorizationCodeStore, ClientRegistry, TokenStore
from oauth.tokens import generate_access_token, generate_token_id, is_well_formed_token

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TTL_SECONDS = 60 * 60
SWEEP_INTERVAL_SECONDS = 5 * 60


def _redirect_with_params(uri: str, params: dict) -> str:
    """Merge ``params`` into the query string of ``uri``."""
    parts = urlsplit(uri)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query = [(k, v) for k, v in query if k not in params]
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


class AuthorizationServer:
    """Issues and validates bearer tokens for the MCP endpoint."""

    def __init__(
        self,
        clients: ClientRegistry,
        codes: AuthorizationCodeStore,
        tokens: TokenStore,
        clock: Callable[[], float] = time.time,
        token_ttl: float = ACCESS_TOKEN_TTL_SECONDS,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
    ):
        self.clients = clients
        self.codes = codes
        self.tokens = tokens
        self.token_ttl = token_ttl
        self._clock = clock
        self._sweeper = PeriodicTask("oauth-expiry-sweep", sweep_interval, self.sweep_expired)

    # ============== Lifecycle ==============

    async def start(self) -> None:
        """Load the client registry and start the expiry sweep."""
        await self.clients.ensure_loaded()
        logger.info(f"[STARTUP] Client registry ready with {len(self.clients)} clients")
        self._sweeper.start()

    async def stop(self) -> None:
        await self._sweeper.stop()

    # ============== Registration ==============

    async def register(self, display_name, redirect_targets) -> Client:
        return await self.clients.register(display_name, redirect_targets)

    # ============== Authorization ==============

    async def authorize(
        self,
        client_id: str | None,
        response_type: str | None,
        redirect_uri: str | None,
        code_challenge: str | None,
        code_challenge_method: str | None,
        state: str | None = None,
        scope: str | None = None,
    ) -> str:
        """Validate an authorization request and return the redirect URL carrying the code."""
        if not all([client_id, response_type, redirect_uri, code_challenge, code_challenge_method]):
            raise InvalidRequest("Missing required parameters")

        if response_type != "code":
            raise UnsupportedResponseType("Only authorization code flow is supported")

        if code_challenge_method != pkce.SUPPORTED_METHOD:
            raise InvalidRequest("Only S256 code challenge method is supported")

        client = await self.clients.get(client_id)
        if client is None:
            raise InvalidClient("Unknown client")

        # Exact string match, no normalization
        if redirect_uri not in client.redirect_targets:
            raise InvalidRedirectUri("Redirect URI not registered for this client")

        auth_code = await self.codes.issue(client_id, redirect_uri, code_challenge)
        logger.info(f"[AUTHORIZE] Code issued for client {client_id} (requested scope: {scope or '-'})")

        params = {"code": auth_code.code}
        if state:
            params["state"] = state
        return _redirect_with_params(redirect_uri, params)

    # ============== Token issuance ==============

    async def token(
        self,
        grant_type: str | None,
        client_id: str | None,
        code: str | None = None,
        redirect_uri: str | None = None,
        code_verifier: str | None = None,
    ) -> Token:
        if not grant_type or not client_id:
            raise InvalidRequest("Missing required parameters: grant_type and client_id")
        # JSON bodies can carry any type
        for value in (grant_type, client_id, code, redirect_uri, code_verifier):
            if value is not None and not isinstance(value, str):
                raise InvalidRequest("Token request parameters must be strings")

        if grant_type == GrantKind.AUTHORIZATION_CODE.value:
            return await self._exchange_code(client_id, code, redirect_uri, code_verifier)
        if grant_type == GrantKind.CLIENT_CREDENTIALS.value:
            return await self._client_credentials(client_id)

        raise UnsupportedGrantType("Supported grant types: authorization_code, client_credentials")

    async def _exchange_code(self, client_id, code, redirect_uri, code_verifier) -> Token:
        if not code or not redirect_uri or not code_verifier:
            raise InvalidRequest("Missing required parameters for authorization_code grant")

        def check(auth_code: AuthorizationCode) -> None:
            if auth_code.client_id != client_id or auth_code.redirect_target != redirect_uri:
                raise InvalidGrant("Client ID or redirect URI mismatch")
            if not pkce.is_valid_verifier(code_verifier):
                raise InvalidRequest("code_verifier must be 43-128 unreserved characters")
            if not pkce.verify_challenge(code_verifier, auth_code.code_challenge):
                raise InvalidGrant("PKCE verification failed")

        try:
            auth_code = await self.codes.redeem(code, check)
        except InvalidGrant as e:
            logger.info(f"[TOKEN] Code exchange rejected for client {client_id}: {e.description}")
            raise

        now = self._clock()
        token = AuthorizationCodeToken(
            value=generate_access_token(),
            client_id=client_id,
            scope=DEFAULT_GRANT_SCOPES,
            issued_at=now,
            expires_at=now + self.token_ttl,
            unique_id=generate_token_id(),
            redirect_target=auth_code.redirect_target,
        )
        await self.tokens.add(token)
        logger.info(
            f"[TOKEN] Access token issued to client {client_id} (authorization_code)",
            extra={"client_id": client_id},
        )
        return token

    async def _client_credentials(self, client_id: str) -> Token:
        client = await self.clients.get(client_id)
        if client is None:
            raise InvalidClient("Unknown client")

        now = self._clock()
        token = ClientCredentialsToken(
            value=generate_access_token(),
            client_id=client_id,
            scope=DEFAULT_GRANT_SCOPES,
            issued_at=now,
            expires_at=now + self.token_ttl,
            unique_id=generate_token_id(),
        )
        await self.tokens.add(token)
        # No PKCE and no client secret on this path
        logger.warning(
            f"[TOKEN] Access token issued to client {client_id} via client_credentials without PKCE",
            extra={"client_id": client_id},
        )
        return token

    # ============== Validation ==============

    async def validate(self, token_value: str, required_scope=None) -> AuthContext:
        """Check a bearer token and, optionally, that it carries ``required_scope``."""
        if not is_well_formed_token(token_value):
            raise InvalidToken("Malformed access token")

        if self.tokens.get(token_value) is None:
            raise InvalidToken("Unknown access token")

        token = await self.tokens.touch(token_value)
        if token is None:
            raise InvalidToken("Access token expired")

        context = AuthContext.from_token(token)
        if required_scope:
            missing = missing_scopes(context.scope, required_scope)
            if missing:
                raise InsufficientScope(f"Required scope: {' '.join(missing)}")
        return context

    # ============== Introspection & revocation ==============

    def introspect(self, token_value: str) -> dict:
        """RFC 7662 introspection. Never fails for unknown tokens."""
        token = self.tokens.get(token_value) if is_well_formed_token(token_value) else None
        if token is None or token.is_expired(self._clock()):
            return {"active": False}

        return {
            "active": True,
            "client_id": token.client_id,
            "scope": token.scope_string,
            "token_type": "Bearer",
            "grant_type": token.grant_kind.value,
            "exp": int(token.expires_at),
            "iat": int(token.issued_at),
            "jti": token.unique_id,
        }

    async def revoke(self, token_value: str) -> None:
        """RFC 7009 revocation. Succeeds whether or not the token exists."""
        if isinstance(token_value, str) and token_value and await self.tokens.remove(token_value):
            logger.info("[REVOKE] Access token revoked")

    # ============== Maintenance ==============

    async def sweep_expired(self) -> tuple[int, int]:
        codes = await self.codes.sweep()
        tokens = await self.tokens.sweep()
        if codes or tokens:
            logger.info(f"[SWEEP] Removed {codes} authorization codes and {tokens} access tokens")
        return codes, tokens
