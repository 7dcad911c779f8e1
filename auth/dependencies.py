"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Session tokens travel in the Authorization header ("Bearer <token>"; a bare
token is also accepted). All token checks funnel through
AuthService.validate_token(), so liveness, account status and last_used_at
bookkeeping behave identically on every protected route.

get_bearer_token() raises HTTP 401 when no token is present.
get_current_identity() wraps it and lets AuthError propagate -- the handler
in api/main.py turns SessionNotFound / SessionExpired / AccountDisabled into
the right status code.

Layer rule: auth/dependencies.py may import from fastapi because this module
is part of the FastAPI dependency injection system. It does not import api/.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from auth.service import AuthService, ValidationResult
from auth.tokens import extract_bearer_token


def get_auth_service(request: Request) -> AuthService:
    """Return the AuthService wired onto app.state by the lifespan."""
    return request.app.state.auth_service


def get_bearer_token(request: Request) -> str:
    """Return the session token from the Authorization header or raise HTTP 401."""
    token = extract_bearer_token(request.headers.get("Authorization"))
    if token is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "missing_token", "message": "Missing authentication token."},
        )
    return token


def get_current_identity(
    token: str = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
) -> ValidationResult:
    """Require a live session. Returns the (session, account) pair.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: ValidationResult = Depends(get_current_identity)): ...
    """
    return service.validate_token(token)
