"""Opaque identifier generation for clients, codes and bearer tokens.

Access tokens carry a version prefix so their accepted shape is declared
next to the code that produces them. Changing the format means adding a new
version here, not editing the validator elsewhere.
"""

import re
import secrets
import uuid

TOKEN_VERSION = "tcm1"

# token_urlsafe(32) yields exactly 43 characters
_TOKEN_SHAPES = {
    "tcm1": re.compile(r"^tcm1_[A-Za-z0-9_-]{43}$"),
}


def generate_access_token() -> str:
    return f"{TOKEN_VERSION}_{secrets.token_urlsafe(32)}"


def token_version(value: str) -> str | None:
    """Return the version of a well-formed token value, or None."""
    if not isinstance(value, str):
        return None
    version, sep, _ = value.partition("_")
    shape = _TOKEN_SHAPES.get(version) if sep else None
    if shape is None or not shape.match(value):
        return None
    return version


def is_well_formed_token(value: str) -> bool:
    return token_version(value) is not None


def generate_client_id() -> str:
    return secrets.token_hex(16)


def generate_authorization_code() -> str:
    return secrets.token_urlsafe(32)


def generate_token_id() -> str:
    return str(uuid.uuid4())
