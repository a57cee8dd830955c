"""
Password hashing and verification.

Uses bcrypt for password hashing with automatic salting and a
configurable work factor.  The encoded hash carries its own cost, so
raising ``bcrypt_rounds`` later never breaks verification of old hashes.

bcrypt is deliberately slow; async callers should use ``hash_async`` /
``verify_async`` which run the work in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
import re
import secrets

import bcrypt

from auth.errors import HashFormatError
from config.settings import config

logger = logging.getLogger(__name__)

# $2b$10$ + 22 chars salt + 31 chars digest
_BCRYPT_HASH_RE = re.compile(r"^\$2[abxy]?\$(\d{2})\$[./A-Za-z0-9]{53}$")

MAX_PASSWORD_BYTES = 72


class CredentialHasher:
    """Salted one-way password hashing with bcrypt."""

    MIN_ROUNDS = 4
    MAX_ROUNDS = 31

    def __init__(self, rounds: int = 10) -> None:
        if not (self.MIN_ROUNDS <= rounds <= self.MAX_ROUNDS):
            raise ValueError(
                f"bcrypt rounds must be between {self.MIN_ROUNDS} and "
                f"{self.MAX_ROUNDS}, got {rounds}"
            )
        self.rounds = rounds
        self._dummy_hash = None

    @staticmethod
    def check_plaintext(plaintext: str) -> bytes:
        """Return the encoded password, or raise ``ValueError`` if bcrypt cannot take it."""
        if not isinstance(plaintext, str) or not plaintext:
            raise ValueError("Password must be a non-empty string")
        raw = plaintext.encode()
        if len(raw) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password exceeds {MAX_PASSWORD_BYTES} bytes")
        return raw

    def hash(self, plaintext: str) -> str:
        """
        Hash ``plaintext`` with a fresh random salt.

        Returns the self-describing bcrypt string (algorithm, cost, salt
        and digest).  Raises ``ValueError`` for an empty password or one
        longer than bcrypt's 72-byte input limit.
        """
        raw = self.check_plaintext(plaintext)
        return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=self.rounds)).decode()

    def verify(self, plaintext: str, stored_hash: str) -> bool:
        """
        Constant-time comparison against a bcrypt hash.

        A mismatch is ``False``.  A malformed ``stored_hash`` raises
        ``HashFormatError``.
        """
        if not isinstance(stored_hash, str) or not _BCRYPT_HASH_RE.match(stored_hash):
            raise HashFormatError("Stored password hash is not a bcrypt hash")
        if not isinstance(plaintext, str) or not plaintext:
            return False
        raw = plaintext.encode()
        if len(raw) > MAX_PASSWORD_BYTES:
            return False
        try:
            return bcrypt.checkpw(raw, stored_hash.encode())
        except ValueError as exc:
            raise HashFormatError(str(exc)) from exc

    async def hash_async(self, plaintext: str) -> str:
        return await asyncio.to_thread(self.hash, plaintext)

    async def verify_async(self, plaintext: str, stored_hash: str) -> bool:
        return await asyncio.to_thread(self.verify, plaintext, stored_hash)

    def verify_dummy(self, plaintext: str) -> bool:
        """
        Spend the time of a real ``verify`` when there is no stored hash.

        Always ``False``.  Keeps lookups of unknown accounts from answering
        faster than wrong passwords.
        """
        if self._dummy_hash is None:
            self._dummy_hash = self.hash(secrets.token_urlsafe(16))
        self.verify(plaintext, self._dummy_hash)
        return False

    async def verify_dummy_async(self, plaintext: str) -> bool:
        return await asyncio.to_thread(self.verify_dummy, plaintext)

    def needs_rehash(self, stored_hash: str) -> bool:
        """True when ``stored_hash`` was made with a lower work factor."""
        match = _BCRYPT_HASH_RE.match(stored_hash or "")
        if match is None:
            raise HashFormatError("Stored password hash is not a bcrypt hash")
        return int(match.group(1)) < self.rounds


default_hasher = CredentialHasher(rounds=config.bcrypt_rounds)
