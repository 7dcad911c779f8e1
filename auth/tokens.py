"""
auth/tokens.py -- Opaque token generation and bearer-header parsing.

Security design decisions:
  Tokens: secrets.token_hex(32) gives 256 bits of entropy -- brute-force is
       computationally infeasible and collisions are negligible. The UNIQUE
       index on the token columns is the backstop, not the entropy source.
       The same generator serves session tokens and reset tokens; they live
       in separate tables, so the namespaces never overlap.

  At rest: tokens are stored and looked up by their raw value. A store
       compromise therefore discloses usable tokens. Hashing tokens at rest
       (raw value only in the client response) is a known hardening step
       not taken here; see DESIGN.md.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import secrets

from auth.errors import EntropyError

TOKEN_BYTES = 32

_BEARER_SCHEME = "bearer"


def generate_token() -> str:
    """Return a new 64-character hex token drawn from the OS CSPRNG.

    Raises EntropyError if the system random source is unavailable.
    """
    try:
        return secrets.token_hex(TOKEN_BYTES)
    except (OSError, NotImplementedError) as exc:
        raise EntropyError(f"Could not read secure random bytes: {exc}") from exc


def extract_bearer_token(header_value: str | None) -> str | None:
    """Return the token from an Authorization header value, or None if absent.

    The scheme is matched case-insensitively, so "Bearer", "bearer" and
    "BEARER" are all stripped. A bare token is accepted as-is. A scheme with
    nothing after it is a missing token.
    """
    if not header_value:
        return None
    value = header_value.strip()
    scheme, _, rest = value.partition(" ")
    if scheme.lower() == _BEARER_SCHEME:
        value = rest.strip()
    return value or None
