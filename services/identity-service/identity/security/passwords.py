"""One-way password hashing backed by bcrypt."""

from __future__ import annotations

import logging

import bcrypt

from ..domain.errors import UnacceptablePassword

logger = logging.getLogger(__name__)

MAX_PASSWORD_BYTES = 72


def password_byte_length(plaintext: str) -> int:
    return len(plaintext.encode("utf-8"))


class BcryptPasswordHasher:
    """Hash and verify passwords with bcrypt's adaptive cost factor.

    bcrypt rejects inputs longer than 72 UTF-8 bytes. The registration payload
    enforces that byte limit, and ``hash`` raises ``UnacceptablePassword`` for
    any caller that skips it.
    """

    def __init__(self, rounds: int = 12) -> None:
        self._rounds = rounds

    def hash(self, plaintext: str) -> str:
        if password_byte_length(plaintext) > MAX_PASSWORD_BYTES:
            raise UnacceptablePassword()
        salt = bcrypt.gensalt(rounds=self._rounds)
        return bcrypt.hashpw(plaintext.encode("utf-8"), salt).decode("utf-8")

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Return ``True`` when ``plaintext`` matches ``hashed``; malformed hashes never match."""
        if password_byte_length(plaintext) > MAX_PASSWORD_BYTES:
            # nothing longer than the limit was ever hashed
            return False
        try:
            return bcrypt.checkpw(plaintext.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            logger.warning("stored password hash is not a valid bcrypt hash")
            return False
