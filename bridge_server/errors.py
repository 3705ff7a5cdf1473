"""
Errors raised by the bridge. Each carries the RFC 6749 error code and the HTTP status
the outer layer should answer with; main.py turns them into {error, error_description}.
"""


class OAuthError(Exception):
    """OAuth protocol error."""

    error = "invalid_request"
    status_code = 400

    def __init__(self, error_description: str, *, error: str | None = None, status_code: int | None = None):
        if error is not None:
            self.error = error
        if status_code is not None:
            self.status_code = status_code
        self.error_description = error_description
        super().__init__(f"{self.error}: {error_description}")

    def to_dict(self) -> dict:
        return {"error": self.error, "error_description": self.error_description}


class InvalidState(OAuthError):
    """Unknown, expired or already-consumed pending authorization."""

    error = "invalid_request"


class UpstreamExchangeFailed(OAuthError):
    """The upstream IdP rejected the code exchange or could not be reached."""

    error = "server_error"
    status_code = 502


class InvalidCode(OAuthError):
    error = "invalid_grant"


class ClientMismatch(OAuthError):
    error = "invalid_grant"


class InvalidToken(OAuthError):
    error = "invalid_token"
    status_code = 401


class MissingToken(InvalidToken):
    """No bearer credentials on the request."""

    error = "invalid_request"


class TokenExpired(InvalidToken):
    pass


class Unsupported(OAuthError):
    error = "unsupported_grant_type"


class InvalidClient(OAuthError):
    error = "invalid_client"
    status_code = 401
