"""CLI entry point for task-calendar-mcp.

Runs the server and manages registered OAuth clients in the configured
client store without going through HTTP.
"""
import argparse
import asyncio
import json
import sys

import uvicorn

from config import load_settings
from main import VERSION, build_app, create_supabase_client
from oauth.errors import OAuthError
from oauth.persistence import build_client_storage
from oauth.stores import ClientRegistry


def _registry(settings) -> ClientRegistry:
    supabase = create_supabase_client(settings) if settings.client_store == "supabase" else None
    return ClientRegistry(build_client_storage(settings, supabase))


def _config_errors(settings) -> bool:
    errors = settings.validate()
    for error in errors:
        print(f"[ERROR] {error}", file=sys.stderr)
    return bool(errors)


# ============== Commands ==============

def cmd_serve(args) -> int:
    """Run the HTTP server in the foreground."""
    settings = load_settings()
    if args.host:
        settings.data["host"] = args.host
    if args.port:
        settings.data["port"] = args.port
    if _config_errors(settings):
        return 1

    uvicorn.run(build_app(settings), host=settings.host, port=settings.port, log_level=settings.log_level)
    return 0


def cmd_register(args) -> int:
    """Register a client directly into the client store."""
    settings = load_settings()
    if _config_errors(settings):
        return 1

    async def register():
        registry = _registry(settings)
        await registry.ensure_loaded()
        return await registry.register(args.name, args.redirect_uri)

    try:
        client = asyncio.run(register())
    except OAuthError as e:
        print(f"[ERROR] {e.error}: {e.description}", file=sys.stderr)
        return 1

    print(json.dumps(client.to_dict(), indent=2))
    return 0


def cmd_clients(args) -> int:
    """List registered clients."""
    settings = load_settings()
    if _config_errors(settings):
        return 1

    async def load():
        registry = _registry(settings)
        await registry.ensure_loaded()
        return registry.all()

    clients = asyncio.run(load())
    if not clients:
        print("No registered clients.")
        return 0
    for client in clients:
        print(f"{client.client_id}  {client.display_name}")
        for uri in client.redirect_targets:
            print(f"    {uri}")
    return 0


def cmd_version(args) -> int:
    print(f"task-calendar-mcp v{VERSION}")
    return 0


# ============== Main Entry Point ==============

def main(argv=None) -> int:
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        prog="task-calendar-mcp",
        description="Task/Calendar MCP server with OAuth 2.1",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  task-calendar-mcp serve --port 3001
  task-calendar-mcp register --name "Claude" --redirect-uri https://claude.ai/api/mcp/auth_callback
  task-calendar-mcp clients
""",
    )
    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Run the MCP server")
    serve.add_argument("--host", help="Bind address (default: MCP_HOST)")
    serve.add_argument("--port", type=int, help="Port (default: MCP_PORT)")
    serve.set_defaults(func=cmd_serve)

    register = subparsers.add_parser("register", help="Register an OAuth client")
    register.add_argument("--name", required=True, help="Client display name")
    register.add_argument(
        "--redirect-uri",
        action="append",
        required=True,
        help="Allowed redirect URI (repeatable)",
    )
    register.set_defaults(func=cmd_register)

    clients = subparsers.add_parser("clients", help="List registered OAuth clients")
    clients.set_defaults(func=cmd_clients)

    version = subparsers.add_parser("version", help="Show version")
    version.set_defaults(func=cmd_version)

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
