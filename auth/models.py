"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class. Dataclasses own domain shape; stores and the auth service
do the work. The only logic here is the read-time liveness predicates, because
expiry is computed (never stored) and every caller must compute it the same way.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime

# Account.status
ACCOUNT_ACTIVE = "active"
ACCOUNT_INACTIVE = "inactive"
ACCOUNT_BANNED = "banned"
ACCOUNT_STATUSES = (ACCOUNT_ACTIVE, ACCOUNT_INACTIVE, ACCOUNT_BANNED)

# Account.role
ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLE_MODERATOR = "moderator"
ROLES = (ROLE_USER, ROLE_ADMIN, ROLE_MODERATOR)

# Session.status
SESSION_ACTIVE = "active"
SESSION_LOGOUT = "logout"
SESSION_REVOKED = "revoked"
SESSION_EXPIRED = "expired"
SESSION_STATUSES = (SESSION_ACTIVE, SESSION_LOGOUT, SESSION_REVOKED, SESSION_EXPIRED)


@dataclass
class Account:
    """A registered identity.

    hashed_password is a bcrypt hash and must never leave the service layer
    populated -- use without_password() before handing an Account outward.

    deleted_at is the soft-delete marker. Soft-deleted rows are invisible to
    every store lookup, which also frees their username and email for reuse.

    id is None before the record is written to the database.
    """

    username: str
    email: str
    hashed_password: str
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    avatar: str = ""
    status: str = ACCOUNT_ACTIVE  # "active" | "inactive" | "banned"
    role: str = ROLE_USER  # "user" | "admin" | "moderator"
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status == ACCOUNT_ACTIVE and self.deleted_at is None

    def without_password(self) -> Account:
        return dataclasses.replace(self, hashed_password="")


@dataclass
class Session:
    """One authenticated login, referenced by an opaque bearer token.

    expires_at is fixed at creation. Validation only moves last_used_at.
    device / platform are an informational classification of user_agent and
    are never used for access decisions.
    """

    user_id: int
    token: str
    expires_at: datetime
    ip_address: str = ""
    user_agent: str = ""
    device: str = ""  # "web" | "mobile" | "tablet" | "bot" | "unknown"
    platform: str = ""  # "windows" | "macos" | "linux" | "ios" | "android" | "unknown"
    status: str = SESSION_ACTIVE  # "active" | "logout" | "revoked" | "expired"
    last_used_at: datetime | None = None
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def is_live(self, now: datetime) -> bool:
        return self.status == SESSION_ACTIVE and not self.is_expired(now)


@dataclass
class PasswordResetToken:
    """A one-time, time-boxed capability to set a new password.

    Records are never deleted. used flips False -> True exactly once.
    """

    user_id: int
    token: str
    expires_at: datetime
    used: bool = False
    id: int | None = None
    created_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def is_valid(self, now: datetime) -> bool:
        return not self.used and not self.is_expired(now)
