"""OAuth 2.1 endpoints for the MCP server.

This module contains all OAuth-related endpoints:
- Discovery metadata (/.well-known/*)
- Client registration (/oauth/register)
- Authorization (/oauth/authorize), auto-approved, no consent page
- Token endpoint (/oauth/token)
- Introspection and revocation (/oauth/introspect, /oauth/revoke)

The authorization server is created once by the application factory and
reached through ``request.app.state``.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse

from oauth.discovery import (
    authorization_server_metadata,
    mcp_discovery,
    protected_resource_metadata,
)
from oauth.errors import InvalidRequest, OAuthError, ServerError
from oauth.server import AuthorizationServer

logger = logging.getLogger(__name__)

# Router for OAuth endpoints
router = APIRouter(tags=["oauth"])

NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}


def get_auth_server(request: Request) -> AuthorizationServer:
    return request.app.state.auth_server


def oauth_error_response(error: OAuthError) -> JSONResponse:
    return JSONResponse(error.to_dict(), status_code=error.status_code, headers=NO_STORE_HEADERS)


def _internal_error(tag: str) -> JSONResponse:
    logger.exception(f"[{tag}] Unexpected error")
    return oauth_error_response(ServerError("Internal server error"))


async def _read_params(request: Request) -> dict:
    """Request parameters from a form body, or a JSON body as a fallback."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            data = await request.json()
        except ValueError:
            raise InvalidRequest("Request body is not valid JSON") from None
        if not isinstance(data, dict):
            raise InvalidRequest("Request body must be a JSON object")
        return data
    form = await request.form()
    return {key: form.get(key) for key in form.keys()}


# ============== Discovery Endpoints ==============

@router.get("/.well-known/oauth-authorization-server")
async def oauth_authorization_server(request: Request):
    """OAuth 2.0 Authorization Server Metadata (RFC 8414)."""
    return authorization_server_metadata(request.app.state.settings.issuer)


@router.get("/.well-known/oauth-protected-resource")
async def oauth_protected_resource(request: Request):
    """OAuth 2.0 Protected Resource Metadata (RFC 9728)."""
    return protected_resource_metadata(request.app.state.settings.issuer, request.app.state.tool_count)


@router.get("/.well-known/mcp")
async def mcp_metadata(request: Request):
    """MCP discovery document."""
    return mcp_discovery(request.app.state.settings.issuer, request.app.state.tool_count)


# ============== Client Registration ==============

@router.post("/oauth/register")
async def register_client(request: Request, server: AuthorizationServer = Depends(get_auth_server)):
    """OAuth 2.0 Dynamic Client Registration (RFC 7591)."""
    try:
        data = await request.json()
    except ValueError:
        return oauth_error_response(InvalidRequest("Request body must be JSON"))
    if not isinstance(data, dict):
        return oauth_error_response(InvalidRequest("Request body must be a JSON object"))

    display_name = data.get("client_name", data.get("display_name"))
    redirect_targets = data.get("redirect_uris", data.get("redirect_targets"))

    try:
        client = await server.register(display_name, redirect_targets)
    except OAuthError as e:
        logger.info(f"[REGISTER] Registration rejected: {e.error}: {e.description}")
        return oauth_error_response(e)
    except Exception:
        return _internal_error("REGISTER")

    redirect_uris = list(client.redirect_targets)
    return JSONResponse({
        "client_id": client.client_id,
        "client_name": client.display_name,
        "display_name": client.display_name,
        "redirect_uris": redirect_uris,
        "redirect_targets": redirect_uris,
        "client_id_issued_at": int(client.created_at),
        "grant_types": ["authorization_code", "client_credentials"],
        "response_types": ["code"],
        "token_endpoint_auth_method": "none",
    })


# ============== Authorization ==============

@router.get("/oauth/authorize")
async def authorize(
    client_id: str | None = None,
    response_type: str | None = None,
    redirect_uri: str | None = None,
    redirect_target: str | None = None,
    code_challenge: str | None = None,
    code_challenge_method: str | None = None,
    state: str | None = None,
    scope: str | None = None,
    server: AuthorizationServer = Depends(get_auth_server),
):
    """OAuth 2.0 Authorization Endpoint - approves and redirects with a code."""
    try:
        location = await server.authorize(
            client_id=client_id,
            response_type=response_type,
            redirect_uri=redirect_uri or redirect_target,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
            state=state,
            scope=scope,
        )
    except OAuthError as e:
        logger.info(f"[AUTHORIZE] Request rejected: {e.error}: {e.description}")
        return oauth_error_response(e)
    except Exception:
        return _internal_error("AUTHORIZE")

    return RedirectResponse(url=location, status_code=302)


# ============== Token Endpoint ==============

@router.post("/oauth/token")
async def token(request: Request, server: AuthorizationServer = Depends(get_auth_server)):
    """OAuth 2.0 Token Endpoint."""
    try:
        params = await _read_params(request)
        logger.debug(f"[TOKEN] grant_type: {params.get('grant_type')}, client_id: {params.get('client_id')}")
        issued = await server.token(
            grant_type=params.get("grant_type"),
            client_id=params.get("client_id"),
            code=params.get("code"),
            redirect_uri=params.get("redirect_uri") or params.get("redirect_target"),
            code_verifier=params.get("code_verifier"),
        )
    except OAuthError as e:
        return oauth_error_response(e)
    except Exception:
        return _internal_error("TOKEN")

    return JSONResponse(
        {
            "access_token": issued.value,
            "token_type": "Bearer",
            "expires_in": int(issued.expires_at - issued.issued_at),
            "scope": issued.scope_string,
        },
        headers=NO_STORE_HEADERS,
    )


# ============== Introspection & Revocation ==============

@router.post("/oauth/introspect")
async def introspect(request: Request, server: AuthorizationServer = Depends(get_auth_server)):
    """OAuth 2.0 Token Introspection (RFC 7662)."""
    try:
        params = await _read_params(request)
        token_value = params.get("token")
        if not token_value:
            raise InvalidRequest("token is required")
        result = server.introspect(token_value)
    except OAuthError as e:
        return oauth_error_response(e)
    except Exception:
        return _internal_error("INTROSPECT")

    return JSONResponse(result, headers=NO_STORE_HEADERS)


@router.post("/oauth/revoke")
async def revoke(request: Request, server: AuthorizationServer = Depends(get_auth_server)):
    """OAuth 2.0 Token Revocation (RFC 7009). Always succeeds."""
    try:
        params = await _read_params(request)
        token_value = params.get("token")
        if token_value:
            await server.revoke(token_value)
    except OAuthError as e:
        # Unreadable request bodies still report success
        logger.info(f"[REVOKE] Ignoring malformed revocation request: {e.description}")
    except Exception:
        return _internal_error("REVOKE")
    return JSONResponse({})
