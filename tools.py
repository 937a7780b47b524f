"""MCP tools for task-calendar-mcp.

The task and calendar handlers themselves live with the Google API
integration; this module owns what the authorization layer needs from the
tool side: which scope each tool requires, the guard every handler calls
before acting, and two diagnostic tools.
"""

import logging

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.server.dependencies import get_http_request

from oauth.models import AuthContext
from oauth.scopes import missing_scopes

logger = logging.getLogger(__name__)

# Scope required by each task/calendar tool
TOOL_SCOPES = {
    "list_task_lists": "tasks:read",
    "list_tasks": "tasks:read",
    "add_task": "tasks:write",
    "update_task": "tasks:write",
    "delete_task": "tasks:write",
    "list_calendars": "calendar:read",
    "list_events": "calendar:read",
    "create_event": "calendar:write",
    "update_event": "calendar:write",
    "delete_event": "calendar:write",
}

# Create the FastMCP server instance
mcp = FastMCP("task-calendar-mcp")


def current_auth_context() -> AuthContext:
    """AuthContext placed on the request by MCPOAuthMiddleware."""
    request = get_http_request()
    context = getattr(request.state, "auth_context", None)
    if context is None:
        raise ToolError("invalid_token: request was not authenticated")
    return context


def require_tool_scope(context: AuthContext, tool_name: str) -> None:
    """Raise ToolError unless ``context`` may run ``tool_name``."""
    required = TOOL_SCOPES.get(tool_name)
    if required is None:
        raise ToolError(f"Unknown tool: {tool_name}")
    if missing_scopes(context.scope, required):
        logger.info(f"[TOOL] {tool_name} denied for client {context.client_id}: needs {required}")
        raise ToolError(f"insufficient_scope: {required} scope required for {tool_name}")


def describe_access(context: AuthContext) -> dict:
    return {
        "client_id": context.client_id,
        "grant_type": context.grant_kind.value,
        "scope": sorted(context.scope),
        "expires_at": int(context.expires_at),
        "tools": sorted(name for name, scope in TOOL_SCOPES.items() if not missing_scopes(context.scope, scope)),
    }


@mcp.tool()
def whoami() -> dict:
    """Describe the authenticated client and the tools its token allows.

    Returns:
        Client id, grant type, granted scopes, expiry and permitted tools
    """
    context = current_auth_context()
    logger.info(f"[TOOL] whoami invoked by client {context.client_id}")
    return describe_access(context)


@mcp.tool()
def check_access(tool_name: str) -> dict:
    """Check whether the current token may call a given tool.

    Args:
        tool_name: Name of the task/calendar tool

    Returns:
        Whether access is allowed and the scope the tool requires
    """
    context = current_auth_context()
    try:
        require_tool_scope(context, tool_name)
    except ToolError as e:
        return {"tool": tool_name, "allowed": False, "reason": str(e)}
    return {"tool": tool_name, "allowed": True, "required_scope": TOOL_SCOPES[tool_name]}
