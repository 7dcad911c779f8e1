"""
auth/passwords.py -- Credential hasher.

Calls the bcrypt package directly. The cost factor is
Settings.bcrypt_rounds (BCRYPT_ROUNDS), read once at module load, so a
change of cost only applies to hashes written after a restart; older hashes
keep verifying because bcrypt stores the cost inside the hash.

Contract:
  hash_password()   -- raises HashingError if bcrypt cannot produce a hash.
  verify_password() -- a mismatch is a normal False. HashingError only for a
                       stored hash bcrypt cannot parse.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import bcrypt

from auth.errors import HashingError, PasswordTooLong
from core.config import get_settings

_settings = get_settings()

# bcrypt's input ceiling. bcrypt 4.x truncates past it, 5.x raises ValueError.
MAX_PASSWORD_BYTES = 72


def password_fits(plain: str) -> bool:
    """True if bcrypt will read every byte of the password."""
    return len(plain.encode("utf-8")) <= MAX_PASSWORD_BYTES


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Raises PasswordTooLong past 72 UTF-8 bytes so no bcrypt version silently
    truncates. The API layer rejects such input with a 422 before it gets here.
    """
    if not password_fits(plain):
        raise PasswordTooLong()
    try:
        salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
        return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")
    except (ValueError, OSError, NotImplementedError) as exc:
        raise HashingError(f"Password hashing failed: {exc}") from exc


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A password over 72 bytes can never have been stored, so it is a mismatch.
    """
    if not hashed:
        raise HashingError("Stored password hash is empty.")
    if not password_fits(plain):
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError as exc:
        # bcrypt raises ValueError("Invalid salt") for anything it cannot parse.
        raise HashingError("Stored password hash is malformed.") from exc


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("gatekeeper_timing_dummy")


def burn_verification(plain: str) -> None:
    """Run one bcrypt verification against a throwaway hash.

    Called on the "no such account" signin path so its response time matches
    the wrong-password path and cannot be used to enumerate usernames [C1].
    """
    verify_password(plain, _DUMMY_HASH)
