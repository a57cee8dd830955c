"""
Account flows built on the hasher, token issuer/validator and user store.

Each flow is a straight ``await`` pipeline: the first exception aborts it
and nothing is retried here.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.errors import EmailAlreadyRegisteredError
from auth.jwt import TokenIssuer, TokenValidator, token_issuer, token_validator
from auth.password import CredentialHasher
from database.models import User
from database.user_store import UserStore

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(
        self,
        store: UserStore,
        issuer: Optional[TokenIssuer] = None,
        validator: Optional[TokenValidator] = None,
        hasher: Optional[CredentialHasher] = None,
    ) -> None:
        self.store = store
        self.issuer = issuer or token_issuer
        self.validator = validator or token_validator
        self.hasher = hasher or store.hasher

    async def register(
        self,
        email: str,
        password: str,
        name: Optional[str] = None,
        lastname: Optional[str] = None,
        image: Optional[str] = None,
    ) -> User:
        """Create an account.  Token fields start out empty."""
        self.hasher.check_plaintext(password)
        if await self.store.find_by_email(email) is not None:
            raise EmailAlreadyRegisteredError(email)

        user = User(email=email, name=name, lastname=lastname, image=image, role=0)
        user.set_password(password)
        try:
            return await self.store.create(user)
        except IntegrityError as exc:
            # a concurrent registration won the unique email constraint
            raise EmailAlreadyRegisteredError(email) from exc

    async def login(self, email: str, password: str) -> Optional[User]:
        """
        Check credentials and issue a fresh token.

        Returns ``None`` for an unknown email or a wrong password.  The new
        token overwrites any earlier one, which stops resolving from now on.
        """
        user = await self.store.find_by_email(email)
        if user is None:
            await self.hasher.verify_dummy_async(password)
            logger.info("Login failed: unknown email")
            return None

        if not await self.hasher.verify_async(password, user.password_hash):
            logger.info("Login failed for user %s: wrong password", user.user_id)
            return None

        if self.hasher.needs_rehash(user.password_hash):
            user.set_password(password)

        issued = self.issuer.issue(user.user_id)
        user.token = issued.token
        user.token_expires_at = issued.expires_at
        await self.store.update(user)
        logger.info("Login: %s", user.user_id)
        return user

    async def logout(self, user: User) -> None:
        user.clear_token()
        await self.store.update(user)
        logger.info("Logout: %s", user.user_id)

    async def change_password(
        self,
        user: User,
        current_password: str,
        new_password: str,
    ) -> bool:
        """Replace the password after checking the current one."""
        if not await self.hasher.verify_async(current_password, user.password_hash):
            return False
        self.hasher.check_plaintext(new_password)
        user.set_password(new_password)
        await self.store.update(user)
        return True

    async def authenticate(self, token: str) -> Optional[User]:
        """Return the user for a bearer token, or ``None``."""
        return await self.validator.resolve(token, self.store)
