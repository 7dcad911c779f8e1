"""
api/routes/v1/auth.py -- Authentication and session REST endpoints.

Routes:
  POST /api/v1/auth/signup            -- create an account (no session)
  POST /api/v1/auth/signin            -- password login; returns the session token once
  POST /api/v1/auth/logout            -- end the bearer's session
  POST /api/v1/auth/logout-all        -- end every active session of the bearer's account
  POST /api/v1/auth/forgot-password   -- issue a reset token and hand it to the notifier
  POST /api/v1/auth/reset-password    -- consume a reset token, set a new password
  GET  /api/v1/auth/validate          -- check the bearer token, return user + session
  GET  /api/v1/auth/sessions          -- list the bearer account's live sessions

Handlers are thin: parse, call AuthService, map the result to a response
model. AuthError subclasses propagate to the handler in api/main.py, which
owns the error-to-status mapping.

Security:
  [C2] forgot-password answers with the same body whether or not the email
       exists, and a notifier failure never changes that answer.
  [M5] Cache-Control: no-store on signin responses (they carry the token).
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response

from api.models import (
    AccountResponse,
    ForgotPasswordRequest,
    LogoutAllResponse,
    MessageResponse,
    ResetPasswordRequest,
    SessionResponse,
    SigninRequest,
    SigninResponse,
    SignupRequest,
    SignupResponse,
    ValidateResponse,
)
from auth.dependencies import get_auth_service, get_bearer_token, get_current_identity
from auth.service import AuthService, ValidationResult

logger = logging.getLogger("gatekeeper.api.auth")

# Auth policy:
# - POST /auth/signup, /auth/signin, /auth/forgot-password, /auth/reset-password: public
# - POST /auth/logout:     requires a bearer token (session may already be logged out)
# - POST /auth/logout-all: requires a live session (get_current_identity)
# - GET  /auth/validate:   requires a live session (get_current_identity)
# - GET  /auth/sessions:   requires a live session (get_current_identity)
router = APIRouter()


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else ""


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/signup", response_model=SignupResponse, status_code=201)
def signup(
    request: Request,
    body: SignupRequest,
    service: AuthService = Depends(get_auth_service),
) -> SignupResponse:
    """Register a new account. Duplicate username or email returns 409."""
    result = service.signup(
        body.username,
        body.email,
        body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        phone=body.phone,
    )
    logger.info("Signup from %s for username=%s", _client_ip(request) or "unknown", body.username)
    return SignupResponse(user=AccountResponse.from_account(result.account), message=result.message)


@router.post("/auth/signin", response_model=SigninResponse)
def signin(
    request: Request,
    response: Response,
    body: SigninRequest,
    service: AuthService = Depends(get_auth_service),
) -> SigninResponse:
    """Authenticate with username (or email) and password.

    Unknown account and wrong password both return 401 invalid_credentials
    with an identical message [C2].
    """
    result = service.signin(
        body.username,
        body.password,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("User-Agent", ""),
    )
    response.headers["Cache-Control"] = "no-store"  # [M5]
    expires_in = int((result.session.expires_at - result.session.created_at).total_seconds())
    return SigninResponse(
        user=AccountResponse.from_account(result.account),
        session=SessionResponse.from_session(result.session),
        token=result.token,
        expires_in=expires_in,
        message=result.message,
    )


@router.post("/auth/forgot-password", response_model=MessageResponse)
def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Start a password reset. The token goes to the notifier, never into the response [C2]."""
    result = service.forgot_password(body.email)
    if result.token is not None:
        try:
            request.app.state.reset_notifier.send_reset(body.email, result.token)
        except Exception:
            # The token is already stored; the user can ask again. Failing the
            # request here would reveal that the email exists.
            logger.warning("Reset notifier failed", exc_info=True)
    return MessageResponse(message=result.message)


@router.post("/auth/reset-password", response_model=MessageResponse)
def reset_password(
    body: ResetPasswordRequest,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Set a new password with a reset token. Logs out every active session of the account."""
    service.reset_password(body.token, body.new_password)
    return MessageResponse(message="Password reset successful")


# ---------------------------------------------------------------------------
# Token-bearing endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    token: str = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """End the session named by the bearer token."""
    service.logout(token)
    return MessageResponse(message="Logout successful")


@router.post("/auth/logout-all", response_model=LogoutAllResponse)
def logout_all(
    identity: ValidationResult = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
) -> LogoutAllResponse:
    """End every active session of the bearer's account, including the current one."""
    count = service.logout_all(identity.account.id)
    return LogoutAllResponse(message="All sessions logged out", sessions_logged_out=count)


@router.get("/auth/validate", response_model=ValidateResponse)
def validate(identity: ValidationResult = Depends(get_current_identity)) -> ValidateResponse:
    """Return the account and session behind a live bearer token."""
    return ValidateResponse(
        user=AccountResponse.from_account(identity.account),
        session=SessionResponse.from_session(identity.session),
    )


@router.get("/auth/sessions", response_model=list[SessionResponse])
def list_sessions(
    identity: ValidationResult = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
) -> list[SessionResponse]:
    """List the bearer account's live sessions, newest first. Tokens are never included."""
    return [SessionResponse.from_session(s) for s in service.list_sessions(identity.account.id)]
