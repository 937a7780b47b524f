"""PKCE (Proof Key for Code Exchange) helpers, RFC 7636.

Only the S256 method is supported.
"""

import base64
import hashlib
import re
import secrets

SUPPORTED_METHOD = "S256"

# 43-128 characters from the unreserved set [A-Za-z0-9-._~]
_VERIFIER_RE = re.compile(r"^[A-Za-z0-9\-._~]{43,128}$")


def is_valid_verifier(code_verifier: str) -> bool:
    return bool(code_verifier) and _VERIFIER_RE.match(code_verifier) is not None


def compute_challenge(code_verifier: str) -> str:
    """BASE64URL(SHA256(code_verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def verify_challenge(code_verifier: str, code_challenge: str) -> bool:
    return secrets.compare_digest(
        compute_challenge(code_verifier).encode("ascii"),
        code_challenge.encode("utf-8"),
    )


def generate_verifier() -> str:
    """Random verifier, used by the CLI and tests to drive the flow."""
    return secrets.token_urlsafe(48)
