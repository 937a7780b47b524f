"""Task/Calendar MCP Server.

This server exposes Google Tasks and Calendar tools to MCP clients and acts
as its own OAuth 2.1 authorization server. It handles:
- MCP protocol endpoints via Streamable HTTP (/mcp), behind bearer auth
- OAuth flow for MCP clients (oauth/)
- Session bookkeeping keyed by Mcp-Session-Id (/sessions)

Everything is built once by create_app() and shared through app.state.
"""
import logging
import time
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware import Middleware
from supabase import Client, create_client

from config import Settings, load_settings
from logging_config import setup_logging
from oauth.discovery import protected_resource_metadata_url
from oauth.endpoints import router as oauth_router
from oauth.middleware import SESSION_HEADER, MCPOAuthMiddleware
from oauth.persistence import ClientStorage, build_client_storage
from oauth.server import AuthorizationServer
from oauth.stores import AuthorizationCodeStore, ClientRegistry, TokenStore
from session_endpoints import router as session_router
from sessions import SessionCoordinator
from tools import TOOL_SCOPES, mcp

logger = logging.getLogger(__name__)

SERVICE_NAME = "task-calendar-mcp"
VERSION = "1.0.0"


def create_supabase_client(settings: Settings) -> Client | None:
    """Supabase client from settings, or None when not configured."""
    if settings.supabase_url and settings.supabase_key:
        return create_client(settings.supabase_url, settings.supabase_key)
    return None


def create_app(
    settings: Settings | None = None,
    *,
    client_storage: ClientStorage | None = None,
    clock: Callable[[], float] = time.time,
    supabase_client: Client | None = None,
) -> FastAPI:
    """Build the FastAPI application and every store it serves."""
    settings = settings or load_settings()

    # ============== Stores ==============
    storage = client_storage or build_client_storage(settings, supabase_client)
    auth_server = AuthorizationServer(
        clients=ClientRegistry(storage, clock=clock),
        codes=AuthorizationCodeStore(clock=clock),
        tokens=TokenStore(clock=clock),
        clock=clock,
    )
    sessions = SessionCoordinator(clock=clock, max_sessions=settings.max_sessions)

    # ============== Streamable HTTP MCP App ==============
    mcp_http_app = None
    if settings.enable_mcp:
        mcp_http_app = mcp.http_app(
            path="/",  # Route at root of mounted app
            transport="streamable-http",
            middleware=[
                Middleware(
                    MCPOAuthMiddleware,
                    auth_server=auth_server,
                    sessions=sessions,
                    issuer=settings.issuer,
                )
            ],
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await auth_server.start()
        sessions.start()
        try:
            if mcp_http_app is not None:
                # Required for FastMCP task group initialization
                async with mcp_http_app.lifespan(app):
                    yield
            else:
                yield
        finally:
            await sessions.shutdown()
            await auth_server.stop()
            logger.info("[SHUTDOWN] Stores stopped")

    # ============== FastAPI App ==============
    app = FastAPI(
        title="Task Calendar MCP Server",
        description="MCP server for Google Tasks and Calendar with OAuth 2.1",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.auth_server = auth_server
    app.state.sessions = sessions
    app.state.tool_count = len(TOOL_SCOPES)

    allowed_origins = set(settings.allowed_origins)

    @app.middleware("http")
    async def origin_guard(request: Request, call_next):
        """Reject browser requests from origins not explicitly allowed."""
        origin = request.headers.get("Origin")
        if origin and origin not in allowed_origins:
            logger.warning(f"[ORIGIN] Rejected request from origin: {origin}")
            return JSONResponse({"error": "forbidden"}, status_code=403)
        return await call_next(request)

    # Added last so it wraps the origin guard
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[SESSION_HEADER],
    )

    if mcp_http_app is not None:
        app.mount("/mcp", mcp_http_app)

    # ============== Include Routers ==============
    app.include_router(oauth_router)
    app.include_router(session_router)

    # ============== Server Info Endpoints ==============

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": SERVICE_NAME, "sessions": len(sessions)}

    @app.get("/")
    async def root():
        """Root endpoint with server info."""
        return {
            "name": SERVICE_NAME,
            "version": VERSION,
            "transport": "streamable-http",
            "endpoints": {
                "streamable_http": "/mcp",
                "sessions": "/sessions",
            },
            "mcp_enabled": mcp_http_app is not None,
            "tools": sorted(TOOL_SCOPES),
            "oauth": {
                "protected_resource": protected_resource_metadata_url(settings.issuer),
                "authorization_server": f"{settings.issuer}/.well-known/oauth-authorization-server",
            },
        }

    logger.info(f"[STARTUP] Issuer: {settings.issuer}")
    logger.info(f"[STARTUP] MCP enabled: {settings.enable_mcp}, client store: {settings.client_store}")
    return app


def build_app(settings: Settings | None = None) -> FastAPI:
    """Configure logging from settings and build the app for serving."""
    settings = settings or load_settings()
    errors = settings.validate()
    if errors:
        raise ValueError("Invalid configuration: " + "; ".join(errors))

    supabase = create_supabase_client(settings)
    setup_logging(
        service_name=SERVICE_NAME,
        level=settings.log_level,
        supabase_client=supabase if settings.supabase_logging else None,
    )
    return create_app(settings, supabase_client=supabase)


# ============== Main Entry Point ==============

if __name__ == "__main__":
    import uvicorn

    _settings = load_settings()
    logger.info(f"Starting MCP server on {_settings.host}:{_settings.port}")
    uvicorn.run(build_app(_settings), host=_settings.host, port=_settings.port)
