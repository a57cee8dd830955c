"""
SQLAlchemy ORM models.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    user_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(128))
    lastname = Column(String(128))
    role = Column(Integer, nullable=False, default=0)
    image = Column(Text)
    password_hash = Column(String(255), nullable=False, default="")
    token = Column(Text, nullable=True, index=True)
    token_expires_at = Column(BigInteger, nullable=True)  # ms since epoch
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    # Plaintext waiting to be hashed by the store; never persisted.
    _pending_password = None

    def set_password(self, plaintext: str) -> None:
        """Mark the password as changed; the store hashes it on save."""
        self._pending_password = plaintext

    @property
    def pending_password(self) -> Optional[str]:
        return self._pending_password

    @property
    def password_changed(self) -> bool:
        return self._pending_password is not None

    def clear_pending_password(self) -> None:
        self._pending_password = None

    def clear_token(self) -> None:
        self.token = None
        self.token_expires_at = None

    def __repr__(self) -> str:
        return f"<User {self.user_id} {self.email}>"
