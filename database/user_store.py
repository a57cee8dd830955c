"""
User record store — persist and look up ``User`` rows.

Password hashing happens here, and only when the record carries a pending
plaintext set through ``User.set_password``.  Saving a record whose
password did not change leaves ``password_hash`` untouched.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth.password import CredentialHasher, default_hasher
from database.models import User

logger = logging.getLogger(__name__)


def _to_uuid(value: str | uuid.UUID) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(value)
    except (TypeError, ValueError):
        return None


class UserStore:
    def __init__(
        self,
        session: AsyncSession,
        hasher: Optional[CredentialHasher] = None,
    ) -> None:
        self.session = session
        self.hasher = hasher or default_hasher

    async def create(self, user: User) -> User:
        """Insert a new user.  A password must have been set."""
        await self._apply_pending_password(user)
        if not user.password_hash:
            raise ValueError("Cannot create a user without a password")
        _check_token_pair(user)
        if user.user_id is None:
            user.user_id = uuid.uuid4()
        self.session.add(user)
        await self.session.flush()
        logger.info("Created user %s", user.user_id)
        return user

    async def update(self, user: User) -> User:
        changed = await self._apply_pending_password(user)
        _check_token_pair(user)
        self.session.add(user)
        await self.session.flush()
        if changed:
            logger.info("Password changed for user %s", user.user_id)
        return user

    async def find_by_id(self, user_id: str | uuid.UUID) -> Optional[User]:
        uid = _to_uuid(user_id)
        if uid is None:
            return None
        result = await self.session.execute(select(User).where(User.user_id == uid))
        return result.scalar_one_or_none()

    async def find_by_email(self, email: str) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def find_by_token(
        self,
        token: str,
        user_id: str | uuid.UUID | None = None,
    ) -> Optional[User]:
        """
        Return the user whose *current* token equals ``token``.

        When ``user_id`` is given the record must also carry that id.  Expiry
        is not checked here.
        """
        if not token:
            return None
        stmt = select(User).where(User.token == token)
        if user_id is not None:
            uid = _to_uuid(user_id)
            if uid is None:
                return None
            stmt = stmt.where(User.user_id == uid)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _apply_pending_password(self, user: User) -> bool:
        if not user.password_changed:
            return False
        try:
            user.password_hash = await self.hasher.hash_async(user.pending_password)
        finally:
            user.clear_pending_password()
        return True


def _check_token_pair(user: User) -> None:
    if (user.token is None) != (user.token_expires_at is None):
        raise ValueError("token and token_expires_at must be set together")
