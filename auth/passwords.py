"""
auth/passwords.py -- bcrypt password hashing.

Security design decisions:
  bcrypt directly (no passlib wrapper). passlib's wrap-bug detection builds a
  password longer than 72 bytes, which current bcrypt releases reject.

  Work factor: fixed per hasher instance, 12 rounds by default. Settings only
  allows fewer rounds in DEBUG mode (test suite speed).

  72-byte limit: bcrypt only looks at the first 72 bytes and current releases
  raise on longer input. hash() refuses such passwords. verify() returns False
  for them -- no hash this module produced can match.

  Malformed hashes: bcrypt.checkpw raises ValueError ("Invalid salt") for a
  stored value that is not a bcrypt hash. That is re-raised as
  HashFormatError so a corrupt record is never reported as "wrong password".

  Timing equalization: verify_dummy() runs one full verification against a
  hash computed at construction time. Login calls it when the email is
  unknown so response time does not reveal which accounts exist.

Layer rule: no imports from api/, web/ or core/.
"""

from __future__ import annotations

import bcrypt

from auth.errors import HashFormatError

BCRYPT_MAX_BYTES = 72
DEFAULT_ROUNDS = 12


class PasswordHasher:
    """Salted one-way hashing with a fixed bcrypt cost.

    Usage:
        hasher = PasswordHasher(rounds=12)
        hashed = hasher.hash("pw123")
        hasher.verify("pw123", hashed)  # True
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self.rounds = rounds
        self._dummy_hash = self.hash("membergate_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of plain with a fresh random salt."""
        encoded = plain.encode("utf-8")
        if len(encoded) > BCRYPT_MAX_BYTES:
            raise ValueError(f"Password exceeds bcrypt's {BCRYPT_MAX_BYTES}-byte limit.")
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if plain matches hashed.

        Raises HashFormatError if hashed is not a bcrypt hash.
        """
        encoded = plain.encode("utf-8")
        if len(encoded) > BCRYPT_MAX_BYTES:
            return False
        try:
            return bcrypt.checkpw(encoded, hashed.encode("utf-8"))
        except ValueError as exc:
            raise HashFormatError("Stored password hash is not a valid bcrypt hash.") from exc

    def verify_dummy(self, plain: str) -> None:
        """Spend one verification's worth of time. Result is discarded."""
        bcrypt.checkpw(plain.encode("utf-8")[:BCRYPT_MAX_BYTES], self._dummy_hash.encode("utf-8"))
