"""
JWT session-token issuance and verification.

Tokens are standard HS256 JWTs (PyJWT) carrying ``sub``, ``iat``, ``exp``
and a random ``jti``.  The secret is loaded from ``config.jwt_secret``
(env var: ``JWT_SECRET``).

A token is only accepted when the signature is valid, it has not expired,
and it is the token currently stored on the user record.  The last check
lives in ``TokenValidator.resolve`` and makes a fresh login supersede any
earlier token.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import TYPE_CHECKING, Callable, Optional, Union
from uuid import UUID

import jwt
from pydantic import BaseModel

from auth.errors import (
    InvalidSignatureError,
    MalformedTokenError,
    SigningError,
    TokenError,
    TokenExpiredError,
)
from config.settings import config

if TYPE_CHECKING:
    from database.models import User
    from database.user_store import UserStore

logger = logging.getLogger(__name__)

Clock = Callable[[], int]

_REQUIRED_CLAIMS = ["sub", "iat", "exp"]


def now_ms() -> int:
    """Current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


class IssuedToken(BaseModel):
    token: str
    expires_at: int  # ms since epoch


class TokenClaims(BaseModel):
    user_id: str
    issued_at: int   # ms since epoch
    expires_at: int  # ms since epoch
    token_id: Optional[str] = None


class TokenIssuer:
    """Create signed, time-bounded session tokens bound to a user id."""

    def __init__(
        self,
        secret: Optional[str],
        algorithm: str = "HS256",
        expiry_seconds: int = 3600,
        clock: Clock = now_ms,
    ) -> None:
        self._secret = secret
        self.algorithm = algorithm
        self.expiry_seconds = expiry_seconds
        self._clock = clock

    def issue(self, user_id: Union[UUID, str]) -> IssuedToken:
        """
        Sign a token for ``user_id``.

        ``expires_at`` is returned in milliseconds and matches the ``exp``
        claim exactly, so the caller can persist it next to the token.
        """
        if not self._secret:
            raise SigningError("Token signing secret is not configured")

        issued_at = self._clock() // 1000
        expires = issued_at + self.expiry_seconds
        payload = {
            "sub": str(user_id),
            "iat": issued_at,
            "exp": expires,
            "jti": secrets.token_hex(16),
        }
        try:
            token = jwt.encode(payload, self._secret, algorithm=self.algorithm)
        except (jwt.PyJWTError, NotImplementedError, TypeError, ValueError) as exc:
            raise SigningError(f"Could not sign token: {exc}") from exc

        logger.debug("Issued token for user %s (exp=%d)", user_id, expires)
        return IssuedToken(token=token, expires_at=expires * 1000)


class TokenValidator:
    """Verify token signatures and resolve tokens back to user records."""

    def __init__(
        self,
        secret: Optional[str],
        algorithm: str = "HS256",
        clock: Clock = now_ms,
    ) -> None:
        self._secret = secret
        self.algorithm = algorithm
        self._clock = clock

    def validate(self, token: str) -> TokenClaims:
        """
        Verify the signature and decode the claims.

        Expiry is *not* checked here; see ``check_expiry`` and ``resolve``.
        """
        if not self._secret:
            raise SigningError("Token signing secret is not configured")
        if not isinstance(token, str) or not token:
            raise MalformedTokenError("Empty token")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "require": _REQUIRED_CLAIMS,
                },
            )
        except jwt.InvalidSignatureError as exc:
            raise InvalidSignatureError("Token signature verification failed") from exc
        except jwt.PyJWTError as exc:
            raise MalformedTokenError(f"Token could not be decoded: {exc}") from exc

        sub, iat, exp = payload.get("sub"), payload.get("iat"), payload.get("exp")
        if not isinstance(sub, str) or not sub:
            raise MalformedTokenError("Token subject is missing")
        if not isinstance(iat, int) or not isinstance(exp, int):
            raise MalformedTokenError("Token timestamps are not integers")

        return TokenClaims(
            user_id=sub,
            issued_at=iat * 1000,
            expires_at=exp * 1000,
            token_id=payload.get("jti"),
        )

    def check_expiry(self, expires_at: Optional[int]) -> None:
        """Raise ``TokenExpiredError`` once ``now >= expires_at``."""
        if expires_at is None or self._clock() >= expires_at:
            raise TokenExpiredError("Token has expired")

    async def resolve(self, token: str, store: "UserStore") -> Optional["User"]:
        """
        Return the user owning ``token`` or ``None``.

        ``None`` covers every failure (bad signature, malformed, expired,
        unknown user, superseded token) so callers cannot tell them apart.
        """
        try:
            claims = self.validate(token)
            self.check_expiry(claims.expires_at)
        except TokenError as exc:
            logger.debug("Token rejected: %s", exc)
            return None

        user = await store.find_by_token(token, user_id=claims.user_id)
        if user is None:
            logger.debug("Token not current for user %s", claims.user_id)
            return None

        try:
            self.check_expiry(user.token_expires_at)
        except TokenExpiredError:
            logger.debug("Stored token expired for user %s", user.user_id)
            return None
        return user


token_issuer = TokenIssuer(
    config.jwt_secret,
    algorithm=config.jwt_algorithm,
    expiry_seconds=config.token_expiry_seconds,
)
token_validator = TokenValidator(config.jwt_secret, algorithm=config.jwt_algorithm)
