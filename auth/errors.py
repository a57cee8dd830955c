"""
Exception taxonomy for credentials and session tokens.

Only ``HashFormatError`` and ``SigningError`` are meant to reach an end
caller as-is.  Every ``TokenError`` is an ordinary "authentication failed"
outcome and is collapsed to a single unauthenticated answer before it
leaves the auth layer.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all auth failures."""


class HashFormatError(AuthError):
    """A stored password hash is not a well-formed bcrypt string."""


class SigningError(AuthError):
    """The signing secret is unavailable or a token could not be signed."""


class TokenError(AuthError):
    """Base class for token checks that failed."""


class InvalidSignatureError(TokenError):
    pass


class MalformedTokenError(TokenError):
    pass


class TokenExpiredError(TokenError):
    pass


class EmailAlreadyRegisteredError(AuthError):
    def __init__(self, email: str) -> None:
        super().__init__(f"Email already registered: {email}")
        self.email = email
