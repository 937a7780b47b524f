"""Scope definitions and hierarchical scope checks.

Scopes are ``resource:action`` strings. The rules:

- the universal scope ``mcp`` satisfies any requirement
- ``resource:write`` implies ``resource:read``
- a bare ``resource`` implies both ``resource:read`` and ``resource:write``
"""

from typing import Iterable

UNIVERSAL_SCOPE = "mcp"

SCOPE_DESCRIPTIONS = {
    "mcp": "Full access to all MCP server capabilities",
    "claudeai": "Claude AI specific access scope",
    "tasks:read": "Read access to Google Tasks",
    "tasks:write": "Write access to Google Tasks",
    "calendar:read": "Read access to Google Calendar",
    "calendar:write": "Write access to Google Calendar",
}

SUPPORTED_SCOPES = list(SCOPE_DESCRIPTIONS)

# Granted to every token regardless of grant kind.
DEFAULT_GRANT_SCOPES = frozenset(
    {"tasks:read", "tasks:write", "calendar:read", "calendar:write"}
)


def parse_scope(value) -> frozenset[str]:
    """Parse a space-delimited scope string (or an iterable of scopes)."""
    if not value:
        return frozenset()
    if isinstance(value, str):
        return frozenset(value.split())
    return frozenset(value)


def _implied_by(required: str) -> set[str]:
    """Every granted scope that would satisfy ``required``."""
    satisfying = {required, UNIVERSAL_SCOPE}
    resource, sep, action = required.partition(":")
    if not sep:
        return satisfying
    if action == "read":
        satisfying.add(f"{resource}:write")
    if action in ("read", "write"):
        satisfying.add(resource)
    return satisfying


def scope_satisfied(granted: Iterable[str], required: Iterable[str] | str) -> bool:
    """Return True if ``granted`` covers every scope in ``required``."""
    granted = parse_scope(granted)
    if UNIVERSAL_SCOPE in granted:
        return True
    return all(granted & _implied_by(scope) for scope in parse_scope(required))


def missing_scopes(granted: Iterable[str], required: Iterable[str] | str) -> list[str]:
    granted = parse_scope(granted)
    if UNIVERSAL_SCOPE in granted:
        return []
    return sorted(s for s in parse_scope(required) if not granted & _implied_by(s))
