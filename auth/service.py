"""
auth/service.py -- The auth engine: signup, signin, logout, password reset, validation.

AuthService owns every business rule of the auth core and nothing else. It is
constructed with its three stores (explicit dependency injection -- no module
globals, no app.state lookups) and a clock callable so expiry can be tested by
moving time instead of sleeping.

Inputs arrive already shape-validated by the transport layer (lengths, email
format). The service re-checks only semantic rules: uniqueness, credentials,
status, liveness, single use.

Failure policy:
  Every failure is a typed AuthError (auth/errors.py). Store errors surface
  as StoreFailure unchanged -- no retries here. Exactly two steps are
  best-effort and are logged-and-ignored on StoreFailure:
    - the last_used_at bookkeeping write in validate_token()
    - the session sweep after a successful reset_password()
  Both trade consistency for availability: a slow or failing bookkeeping
  write must not lock users out, and a password change must not be reported
  as failed after the new hash is already stored.

Concurrency:
  Methods are stateless; any number may run at once. Read-then-write
  sequences are not wrapped in a transaction -- uniqueness is the store's
  UNIQUE indexes' job (see signup()).

Security:
  [C1] signin() burns a bcrypt verification for unknown identifiers so
       response time does not reveal whether an account exists.
  [C2] signin() and forgot_password() never let the caller distinguish
       "no such account" from any other outcome.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from auth.errors import (
    AccountDisabled,
    AccountNotFound,
    DuplicateEmail,
    DuplicateRecord,
    DuplicateUsername,
    InvalidCredentials,
    InvalidResetToken,
    SessionExpired,
    SessionNotFound,
    StoreFailure,
    TokenAlreadyUsed,
    TokenExpired,
    ValidationConflict,
)
from auth.models import (
    ACCOUNT_ACTIVE,
    ROLE_USER,
    SESSION_ACTIVE,
    SESSION_LOGOUT,
    Account,
    PasswordResetToken,
    Session,
)
from auth.passwords import burn_verification, hash_password, verify_password
from auth.store import ResetTokenStore, SessionStore, UserStore
from auth.tokens import generate_token
from auth.useragent import classify_user_agent
from core.clock import utcnow
from core.config import Settings

logger = logging.getLogger("gatekeeper.auth")

DEFAULT_SESSION_TTL = timedelta(days=7)
DEFAULT_RESET_TOKEN_TTL = timedelta(hours=1)

SIGNUP_MESSAGE = "Registration successful"
SIGNIN_MESSAGE = "Login successful"
# Same text whether or not the email matched an account [C2].
FORGOT_PASSWORD_MESSAGE = "If the email exists, a reset link has been sent"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SignupResult:
    account: Account  # hashed_password cleared
    message: str = SIGNUP_MESSAGE


@dataclass(frozen=True)
class SigninResult:
    """account has its hashed_password cleared. token is the only copy the caller gets."""

    account: Account
    session: Session
    token: str
    message: str = SIGNIN_MESSAGE


@dataclass(frozen=True)
class ForgotPasswordResult:
    """token is None when no account matched. It is meant for a ResetNotifier,
    never for the HTTP response."""

    message: str
    token: str | None = None


@dataclass(frozen=True)
class ValidationResult:
    session: Session
    account: Account  # hashed_password cleared


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class AuthService:
    """Orchestrates the credential hasher, token generator and the three stores.

    Usage:
        engine = create_store_engine("sqlite:///gatekeeper.db")
        service = AuthService(SQLUserStore(engine), SQLSessionStore(engine), SQLResetTokenStore(engine))
        service.signup("alice", "alice@example.com", "secret1")
        result = service.signin("alice", "secret1", ip_address="10.0.0.1", user_agent="curl/8.0")
        service.validate_token(result.token)
    """

    def __init__(
        self,
        users: UserStore,
        sessions: SessionStore,
        reset_tokens: ResetTokenStore,
        *,
        clock: Callable[[], datetime] = utcnow,
        session_ttl: timedelta = DEFAULT_SESSION_TTL,
        reset_token_ttl: timedelta = DEFAULT_RESET_TOKEN_TTL,
    ) -> None:
        self.users = users
        self.sessions = sessions
        self.reset_tokens = reset_tokens
        self._clock = clock
        self.session_ttl = session_ttl
        self.reset_token_ttl = reset_token_ttl

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        users: UserStore,
        sessions: SessionStore,
        reset_tokens: ResetTokenStore,
    ) -> AuthService:
        return cls(
            users,
            sessions,
            reset_tokens,
            session_ttl=timedelta(days=settings.session_ttl_days),
            reset_token_ttl=timedelta(seconds=settings.reset_token_ttl_seconds),
        )

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def signup(
        self,
        username: str,
        email: str,
        password: str,
        *,
        first_name: str = "",
        last_name: str = "",
        phone: str = "",
    ) -> SignupResult:
        """Create an active account with role "user". No session is created.

        Raises DuplicateUsername / DuplicateEmail (both ValidationConflict).
        When both keys are taken the username conflict is reported.

        The pre-insert lookup is a courtesy for a precise error message. The
        authoritative check is the store's UNIQUE index: if a concurrent signup
        wins the race, create() raises DuplicateRecord and the lookup is re-run
        to name the colliding field [M1].
        """
        self._raise_if_taken(username, email)

        account = Account(
            username=username,
            email=email,
            hashed_password=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            status=ACCOUNT_ACTIVE,
            role=ROLE_USER,
            created_at=self._clock(),
        )
        try:
            created = self.users.create(account)
        except DuplicateRecord as exc:
            logger.info("Signup lost a uniqueness race for username=%s", username)
            self._raise_if_taken(username, email)
            raise ValidationConflict() from exc

        logger.info("Account created: id=%s username=%s", created.id, created.username)
        return SignupResult(account=created.without_password())

    def _raise_if_taken(self, username: str, email: str) -> None:
        conflicts = self.users.find_conflicting(username, email)
        if any(a.username == username for a in conflicts):
            raise DuplicateUsername()
        if conflicts:
            raise DuplicateEmail()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def signin(
        self,
        username_or_email: str,
        password: str,
        ip_address: str = "",
        user_agent: str = "",
    ) -> SigninResult:
        """Verify credentials and open a new session.

        Unknown account and wrong password both raise the same
        InvalidCredentials [C2]. The password is checked before the status,
        so AccountDisabled is only ever revealed to someone who knows the
        password.
        """
        account = self.users.find_by_username_or_email(username_or_email)
        if account is None:
            burn_verification(password)  # [C1]
            raise InvalidCredentials()
        if not verify_password(password, account.hashed_password):
            raise InvalidCredentials()
        if not account.is_active:
            logger.info("Signin refused for disabled account id=%s status=%s", account.id, account.status)
            raise AccountDisabled()

        now = self._clock()
        token = generate_token()
        device, platform = classify_user_agent(user_agent)
        session = self.sessions.create(
            Session(
                user_id=account.id,
                token=token,
                ip_address=ip_address,
                user_agent=user_agent,
                device=device,
                platform=platform,
                status=SESSION_ACTIVE,
                expires_at=now + self.session_ttl,
                last_used_at=now,
                created_at=now,
            )
        )
        logger.info("Signin: account id=%s session id=%s ip=%s", account.id, session.id, ip_address or "-")
        return SigninResult(account=account.without_password(), session=session, token=token)

    def logout(self, token: str) -> None:
        """Move one session to status "logout".

        Logging out an already logged-out session is harmless (same terminal
        status), but the session row must still exist.
        """
        session = self.sessions.find_by_token(token)
        if session is None:
            raise SessionNotFound()
        self.sessions.update(dataclasses.replace(session, status=SESSION_LOGOUT))
        logger.info("Logout: session id=%s account id=%s", session.id, session.user_id)

    def logout_all(self, account_id: int) -> int:
        """Move every currently active session of the account to "logout".

        One bulk store update, not a loop. Sessions in any other status are
        untouched. Returns how many sessions changed.
        """
        count = self.sessions.update_status_by_user(account_id, SESSION_ACTIVE, SESSION_LOGOUT)
        logger.info("Logout-all: account id=%s sessions=%d", account_id, count)
        return count

    def validate_token(self, token: str) -> ValidationResult:
        """Gate for every authenticated request.

        One token lookup, one best-effort bookkeeping write, one account
        lookup. last_used_at moves; expires_at never does.
        """
        session = self.sessions.find_by_token(token)
        if session is None:
            raise SessionNotFound()

        now = self._clock()
        if not session.is_live(now):
            raise SessionExpired()

        try:
            self.sessions.update_last_used_at(session.id, now)
            session = dataclasses.replace(session, last_used_at=now)
        except StoreFailure:
            logger.warning("Could not record last_used_at for session id=%s", session.id, exc_info=True)

        account = self.users.find_by_id(session.user_id)
        if account is None:
            raise AccountNotFound()
        if not account.is_active:
            raise AccountDisabled()
        return ValidationResult(session=session, account=account.without_password())

    def list_sessions(self, account_id: int) -> list[Session]:
        """Return the account's live sessions, newest first."""
        now = self._clock()
        return [s for s in self.sessions.list_by_user(account_id) if s.is_live(now)]

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> ForgotPasswordResult:
        """Issue a one-hour reset token if the email belongs to an account.

        The message is identical in both branches [C2]. Earlier unused tokens
        for the same account stay valid until they expire or are used.
        """
        account = self.users.find_by_email(email)
        if account is None:
            logger.info("Password reset requested for unknown email")
            return ForgotPasswordResult(message=FORGOT_PASSWORD_MESSAGE)

        now = self._clock()
        token = generate_token()
        record = self.reset_tokens.create(
            PasswordResetToken(
                user_id=account.id,
                token=token,
                expires_at=now + self.reset_token_ttl,
                used=False,
                created_at=now,
            )
        )
        logger.info("Password reset token issued: id=%s account id=%s", record.id, account.id)
        return ForgotPasswordResult(message=FORGOT_PASSWORD_MESSAGE, token=token)

    def reset_password(self, token: str, new_password: str) -> None:
        """Consume a reset token and set a new password.

        Checks run in a fixed order: exists, unused, unexpired, owner exists.
        The token is then claimed with a conditional write before the password
        changes, so of two concurrent resets with one token only the first sets
        a password; the other gets TokenAlreadyUsed. A store failure after the
        claim leaves the token spent and the password unchanged; the user asks
        for a new token. After the new hash is stored, every active session of
        the account is logged out on a best-effort basis.
        """
        record = self.reset_tokens.find_by_token(token)
        if record is None:
            raise InvalidResetToken()
        if record.used:
            raise TokenAlreadyUsed()
        if record.is_expired(self._clock()):
            raise TokenExpired()

        account = self.users.find_by_id(record.user_id)
        if account is None:
            raise AccountNotFound()

        new_hash = hash_password(new_password)
        if not self.reset_tokens.mark_used(record.id):
            raise TokenAlreadyUsed()
        self.users.update(dataclasses.replace(account, hashed_password=new_hash))
        logger.info("Password reset: account id=%s token id=%s", account.id, record.id)

        try:
            self.logout_all(account.id)
        except StoreFailure:
            logger.warning("Session sweep after password reset failed for account id=%s", account.id, exc_info=True)
