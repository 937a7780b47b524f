"""OAuth data models.

Clients, authorization codes and tokens as held by the stores. Tokens are a
tagged union: one class per grant kind sharing a common envelope.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar


class GrantKind(str, Enum):
    AUTHORIZATION_CODE = "authorization_code"
    CLIENT_CREDENTIALS = "client_credentials"


@dataclass(frozen=True)
class Client:
    """Registered OAuth client. Immutable once created."""

    client_id: str
    display_name: str
    redirect_targets: tuple[str, ...]
    created_at: float

    def to_dict(self) -> dict:
        return {
            "client_id": self.client_id,
            "client_name": self.display_name,
            "redirect_uris": list(self.redirect_targets),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Client":
        return cls(
            client_id=data["client_id"],
            display_name=data["client_name"],
            redirect_targets=tuple(data["redirect_uris"]),
            created_at=float(data["created_at"]),
        )


@dataclass
class AuthorizationCode:
    """Short-lived, single-use code bound to a client, redirect and PKCE challenge."""

    code: str
    client_id: str
    redirect_target: str
    code_challenge: str
    created_at: float
    expires_at: float
    consumed: bool = False

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


@dataclass
class Token:
    """Common envelope for bearer tokens."""

    value: str
    client_id: str
    scope: frozenset[str]
    issued_at: float
    expires_at: float
    unique_id: str
    last_used_at: float | None = None

    grant_kind: ClassVar[GrantKind]

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    @property
    def scope_string(self) -> str:
        return " ".join(sorted(self.scope))


@dataclass
class AuthorizationCodeToken(Token):
    """Token minted by exchanging a PKCE-verified authorization code."""

    redirect_target: str = ""

    grant_kind: ClassVar[GrantKind] = GrantKind.AUTHORIZATION_CODE


@dataclass
class ClientCredentialsToken(Token):
    """Token minted directly for a registered client id (no PKCE)."""

    grant_kind: ClassVar[GrantKind] = GrantKind.CLIENT_CREDENTIALS


@dataclass(frozen=True)
class AuthContext:
    """What a validated bearer token grants, handed to the tool layer."""

    client_id: str
    scope: frozenset[str]
    grant_kind: GrantKind
    issued_at: float
    expires_at: float
    last_used_at: float | None
    token_id: str = field(repr=False)

    @classmethod
    def from_token(cls, token: Token) -> "AuthContext":
        return cls(
            client_id=token.client_id,
            scope=token.scope,
            grant_kind=token.grant_kind,
            issued_at=token.issued_at,
            expires_at=token.expires_at,
            last_used_at=token.last_used_at,
            token_id=token.unique_id,
        )
