"""OAuth error kinds.

Every failure the authorization server reports is one of these. The HTTP
layer turns them into ``{"error": ..., "error_description": ...}`` bodies.
"""


class OAuthError(Exception):
    """Base class for errors reported to OAuth clients."""

    error = "server_error"
    status_code = 400

    def __init__(self, description: str = "", status_code: int = None):
        super().__init__(description or self.error)
        self.description = description
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        body = {"error": self.error}
        if self.description:
            body["error_description"] = self.description
        return body


class InvalidRequest(OAuthError):
    error = "invalid_request"


class InvalidClient(OAuthError):
    error = "invalid_client"


class InvalidRedirectUri(OAuthError):
    error = "invalid_redirect_uri"


class UnsupportedResponseType(OAuthError):
    error = "unsupported_response_type"


class UnsupportedGrantType(OAuthError):
    error = "unsupported_grant_type"


class InvalidGrant(OAuthError):
    error = "invalid_grant"


class InvalidToken(OAuthError):
    error = "invalid_token"
    status_code = 401


class InsufficientScope(OAuthError):
    error = "insufficient_scope"
    status_code = 401


class ServerError(OAuthError):
    error = "server_error"
    status_code = 500


class ClientPersistenceError(ServerError):
    """Client registration could not be written to durable storage."""
