"""
API request and response models for Gatekeeper REST endpoints.

Pydantic v2 models for the JSON bodies of /api/v1/*. The dataclasses in
auth/models.py stay internal; route handlers convert with the from_* factory
classmethods below.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.

Shape validation (lengths, email format) happens here, before the auth service
is called. No response model has a password field, and only SigninResponse
carries a session token.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import Account, Session
from auth.passwords import MAX_PASSWORD_BYTES, password_fits

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one "@", no whitespace, a dot in the domain. Deliverability
# is the mailer's problem.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# Character bounds. The real ceiling is MAX_PASSWORD_BYTES of UTF-8, checked
# by _password_within_bcrypt_limit: 72 characters of "é" is 144 bytes.
PASSWORD_MAX_LENGTH = MAX_PASSWORD_BYTES
PASSWORD_MIN_LENGTH = 6


def _password_within_bcrypt_limit(value: str) -> str:
    if not password_fits(value):
        raise ValueError(f"must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
    return value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/auth/signup."""

    username: str = Field(min_length=3, max_length=50)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    phone: str = Field(default="", max_length=20)

    @field_validator("password")
    @classmethod
    def password_within_bcrypt_limit(cls, value: str) -> str:
        return _password_within_bcrypt_limit(value)


class SigninRequest(BaseModel):
    """Request body for POST /api/v1/auth/signin. username may also be an email."""

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("password")
    @classmethod
    def password_within_bcrypt_limit(cls, value: str) -> str:
        return _password_within_bcrypt_limit(value)


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/forgot-password."""

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/reset-password."""

    token: str = Field(min_length=1, max_length=255)
    new_password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("new_password")
    @classmethod
    def new_password_within_bcrypt_limit(cls, value: str) -> str:
        return _password_within_bcrypt_limit(value)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """Public view of an Account. There is no password field to leak."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    first_name: str
    last_name: str
    phone: str
    avatar: str
    status: str
    role: str
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        """Factory Method -- the domain-to-wire mapping lives beside the wire model."""
        return cls(
            id=account.id,
            username=account.username,
            email=account.email,
            first_name=account.first_name,
            last_name=account.last_name,
            phone=account.phone,
            avatar=account.avatar,
            status=account.status,
            role=account.role,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )


class SessionResponse(BaseModel):
    """Public view of a Session. The token is omitted; see SigninResponse.token."""

    model_config = ConfigDict(frozen=True)

    id: int
    user_id: int
    ip_address: str
    user_agent: str
    device: str
    platform: str
    status: str
    expires_at: datetime
    last_used_at: Optional[datetime]
    created_at: Optional[datetime]

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            id=session.id,
            user_id=session.user_id,
            ip_address=session.ip_address,
            user_agent=session.user_agent,
            device=session.device,
            platform=session.platform,
            status=session.status,
            expires_at=session.expires_at,
            last_used_at=session.last_used_at,
            created_at=session.created_at,
        )


class SignupResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: AccountResponse
    message: str


class SigninResponse(BaseModel):
    """Response body for POST /api/v1/auth/signin.

    token is the raw session token. This is the only response that ever
    contains it.
    """

    model_config = ConfigDict(frozen=True)

    user: AccountResponse
    session: SessionResponse
    token: str
    token_type: str = "bearer"
    expires_in: int
    message: str


class ValidateResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: AccountResponse
    session: SessionResponse
    valid: bool = True


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class LogoutAllResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    sessions_logged_out: int


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
