"""Discovery documents derived from the issuer URL."""

from oauth.scopes import SCOPE_DESCRIPTIONS, SUPPORTED_SCOPES, UNIVERSAL_SCOPE

MCP_PROTOCOL_VERSION = "2025-03-26"
TOOL_CATEGORIES = ["tasks", "calendar"]


def protected_resource_metadata_url(issuer: str) -> str:
    return f"{issuer}/.well-known/oauth-protected-resource"


def authorization_server_metadata(issuer: str) -> dict:
    """OAuth 2.0 Authorization Server Metadata (RFC 8414)."""
    return {
        "issuer": issuer,
        "authorization_endpoint": f"{issuer}/oauth/authorize",
        "token_endpoint": f"{issuer}/oauth/token",
        "registration_endpoint": f"{issuer}/oauth/register",
        "revocation_endpoint": f"{issuer}/oauth/revoke",
        "introspection_endpoint": f"{issuer}/oauth/introspect",
        "scopes_supported": SUPPORTED_SCOPES,
        "response_types_supported": ["code"],
        "response_modes_supported": ["query"],
        "grant_types_supported": ["authorization_code", "client_credentials"],
        "token_endpoint_auth_methods_supported": ["none"],
        "code_challenge_methods_supported": ["S256"],
        "subject_types_supported": ["public"],
        "service_documentation": f"{issuer}/.well-known/mcp",
        "ui_locales_supported": ["en"],
    }


def protected_resource_metadata(issuer: str, tool_count: int) -> dict:
    """OAuth 2.0 Protected Resource Metadata (RFC 9728)."""
    return {
        "resource": issuer,
        "authorization_servers": [issuer],
        "scopes_supported": SUPPORTED_SCOPES,
        "scope_descriptions": dict(SCOPE_DESCRIPTIONS),
        "bearer_methods_supported": ["header"],
        "resource_documentation": f"{issuer}/.well-known/mcp",
        "supported_claims": ["client_id", "scope", "exp", "iat", "jti"],
        "token_introspection_endpoint": f"{issuer}/oauth/introspect",
        "mcp_version": MCP_PROTOCOL_VERSION,
        "transport_methods": ["streamable-http"],
        "tool_count": tool_count,
        "resource_categories": TOOL_CATEGORIES,
    }


def mcp_discovery(issuer: str, tool_count: int) -> dict:
    return {
        "mcpVersion": MCP_PROTOCOL_VERSION,
        "transport": {
            "type": "streamable-http",
            "endpoint": f"{issuer}/mcp",
        },
        "authentication": {
            "type": "oauth2",
            "authorizationEndpoint": f"{issuer}/oauth/authorize",
            "tokenEndpoint": f"{issuer}/oauth/token",
            "resourceMetadata": protected_resource_metadata_url(issuer),
            "scopes": [UNIVERSAL_SCOPE],
        },
        "capabilities": {
            "tools": {
                "count": tool_count,
                "categories": TOOL_CATEGORIES,
            },
        },
    }
