"""OAuth middleware for MCP endpoints.

Validates Bearer tokens against the authorization server and resolves the
caller's session through the session coordinator. The validated AuthContext
and Session are placed on ``request.state`` for the tool layer.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from oauth.discovery import protected_resource_metadata_url
from oauth.errors import InvalidToken, OAuthError
from oauth.server import AuthorizationServer
from sessions import SessionCoordinator, SessionCreationAborted, SessionLimitExceeded

logger = logging.getLogger(__name__)

SESSION_HEADER = "Mcp-Session-Id"
REALM = "task-calendar-mcp"


def extract_bearer_token(auth_header: str | None) -> str | None:
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header[7:].strip()
    return token or None


def www_authenticate(issuer: str, error: OAuthError | None = None) -> str:
    """RFC 6750 challenge pointing at the resource metadata (RFC 9728)."""
    parts = [f'realm="{REALM}"']
    if error is not None:
        parts.append(f'error="{error.error}"')
        if error.description:
            parts.append(f'error_description="{error.description}"')
    parts.append(f'resource_metadata="{protected_resource_metadata_url(issuer)}"')
    return "Bearer " + ", ".join(parts)


def unauthorized_response(issuer: str, error: OAuthError | None = None) -> JSONResponse:
    """Return 401 with a WWW-Authenticate header."""
    if error is None:
        body = {"error": "unauthorized", "error_description": "Bearer token required"}
    else:
        body = error.to_dict()
    return JSONResponse(
        body,
        status_code=401,
        headers={"WWW-Authenticate": www_authenticate(issuer, error)},
    )


async def authenticate_request(
    request: Request,
    auth_server: AuthorizationServer,
    issuer: str,
    required_scope=None,
):
    """Validate the request's bearer token.

    Returns ``(auth_context, None)`` on success or ``(None, response)`` with
    the 401 response to send.
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    if token is None:
        logger.info("[AUTH] Request rejected: no Bearer token")
        return None, unauthorized_response(issuer)

    try:
        context = await auth_server.validate(token, required_scope)
    except OAuthError as e:
        logger.info(f"[AUTH] Request rejected: {e.error}: {e.description}")
        return None, unauthorized_response(issuer, e)

    return context, None


class MCPOAuthMiddleware(BaseHTTPMiddleware):
    """Middleware to validate OAuth Bearer tokens for the Streamable HTTP MCP endpoint."""

    def __init__(
        self,
        app,
        auth_server: AuthorizationServer,
        sessions: SessionCoordinator,
        issuer: str,
        required_scope=None,
    ):
        super().__init__(app)
        self.auth_server = auth_server
        self.sessions = sessions
        self.issuer = issuer
        self.required_scope = required_scope

    async def dispatch(self, request: Request, call_next):
        context, rejection = await authenticate_request(
            request, self.auth_server, self.issuer, self.required_scope
        )
        if rejection is not None:
            return rejection

        request.state.auth_context = context
        request.state.session = None

        session_id = request.headers.get(SESSION_HEADER)
        if session_id:
            client_info = {
                "ip_address": request.client.host if request.client else None,
                "user_agent": request.headers.get("User-Agent"),
                "client_id": context.client_id,
            }
            try:
                session = await self.sessions.get_or_create(
                    session_id,
                    auth_context=context,
                    client_info=client_info,
                    entry={"method": request.method, "path": request.url.path},
                )
            except (SessionLimitExceeded, SessionCreationAborted) as e:
                logger.warning(f"[SESSION] Rejecting request: {e}")
                return JSONResponse(
                    {"error": "temporarily_unavailable", "error_description": str(e)},
                    status_code=503,
                )

            if session.auth_context is not None and session.auth_context.client_id != context.client_id:
                logger.warning(
                    f"[AUTH] Session {session_id} belongs to another client",
                    extra={"session_id": session_id, "client_id": context.client_id},
                )
                return unauthorized_response(
                    self.issuer, InvalidToken("Session belongs to a different client")
                )
            request.state.session = session

        response = await call_next(request)

        # Client-initiated teardown
        if session_id and request.method == "DELETE":
            await self.sessions.destroy(session_id)

        return response
