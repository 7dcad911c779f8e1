"""
auth/store.py -- Store contracts and SQLAlchemy Core persistence for auth entities.

Pattern: Repository + Data Mapper. One repository per entity (UserStore,
SessionStore, ResetTokenStore) described as a typing.Protocol, so the auth
service depends on capabilities rather than on SQL. The SQL* classes are the
SQLAlchemy-backed implementations; _row_to_* functions are the mappers.

Contract shared by every store:
  - lookups return the record or None ("not found" is not an error)
  - unique-key violations raise DuplicateRecord
  - any other storage error raises StoreFailure, original chained as __cause__

Uniqueness is a schema guarantee, not a service check. The service reads
before it writes, but two concurrent signups can both pass that read; the
partial UNIQUE indexes below are what rejects the second insert. They are
partial (WHERE deleted_at IS NULL) so a soft-deleted account releases its
username and email.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Protocol

from sqlalchemy import (
    Column,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    case,
    create_engine,
    event,
    or_,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import DuplicateRecord, StoreFailure
from auth.models import Account, PasswordResetToken, Session
from core.clock import from_iso, to_iso, utcnow

# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


class UserStore(Protocol):
    def find_by_id(self, user_id: int) -> Account | None: ...

    def find_by_username(self, username: str) -> Account | None: ...

    def find_by_email(self, email: str) -> Account | None: ...

    def find_by_username_or_email(self, value: str) -> Account | None: ...

    def find_conflicting(self, username: str, email: str) -> list[Account]: ...

    def create(self, account: Account) -> Account: ...

    def update(self, account: Account) -> Account: ...


class SessionStore(Protocol):
    def find_by_token(self, token: str) -> Session | None: ...

    def find_by_id(self, session_id: int) -> Session | None: ...

    def list_by_user(self, user_id: int) -> list[Session]: ...

    def create(self, session: Session) -> Session: ...

    def update(self, session: Session) -> Session: ...

    def update_last_used_at(self, session_id: int, when: datetime) -> None: ...

    def update_status_by_user(self, user_id: int, from_status: str, to_status: str) -> int: ...

    def delete(self, session_id: int) -> bool: ...


class ResetTokenStore(Protocol):
    def find_by_token(self, token: str) -> PasswordResetToken | None: ...

    def find_by_id(self, token_id: int) -> PasswordResetToken | None: ...

    def create(self, reset_token: PasswordResetToken) -> PasswordResetToken: ...

    def update(self, reset_token: PasswordResetToken) -> PasswordResetToken: ...

    def mark_used(self, token_id: int) -> bool: ...


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(50), nullable=False),
    Column("email", String(255), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("first_name", String(100), nullable=False, server_default=""),
    Column("last_name", String(100), nullable=False, server_default=""),
    Column("phone", String(20), nullable=False, server_default=""),
    Column("avatar", String(255), nullable=False, server_default=""),
    Column("status", String(20), nullable=False, server_default="active"),
    Column("role", String(20), nullable=False, server_default="user"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("deleted_at", String(32)),  # soft-delete marker
)

Index(
    "uq_users_username_live",
    _users.c.username,
    unique=True,
    sqlite_where=_users.c.deleted_at.is_(None),
    postgresql_where=_users.c.deleted_at.is_(None),
)
Index(
    "uq_users_email_live",
    _users.c.email,
    unique=True,
    sqlite_where=_users.c.deleted_at.is_(None),
    postgresql_where=_users.c.deleted_at.is_(None),
)

_sessions = Table(
    "sessions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("token", String(255), nullable=False, unique=True),
    Column("ip_address", String(45), nullable=False, server_default=""),  # fits IPv6
    Column("user_agent", String(500), nullable=False, server_default=""),
    Column("device", String(50), nullable=False, server_default=""),
    Column("platform", String(50), nullable=False, server_default=""),
    Column("status", String(20), nullable=False, server_default="active"),
    Column("expires_at", String(32), nullable=False, index=True),
    Column("last_used_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_reset_tokens = Table(
    "password_reset_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("token", String(255), nullable=False, unique=True),
    Column("expires_at", String(32), nullable=False),
    Column("used", Integer, nullable=False, server_default="0"),  # boolean stored as 0/1
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_store_engine(db_url: str) -> Engine:
    """Build the shared Engine for all three stores and create missing tables.

    SQLite gets check_same_thread=False (FastAPI runs sync handlers in a thread
    pool) and WAL mode. Any other URL is passed through untouched, so moving to
    PostgreSQL is a connection string change.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    with _translate_errors("create schema"):
        metadata.create_all(engine)
    return engine


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    try:
        yield
    except IntegrityError as exc:
        raise DuplicateRecord(f"{action}: unique constraint violated") from exc
    except SQLAlchemyError as exc:
        raise StoreFailure(f"{action} failed: {exc.__class__.__name__}") from exc


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class SQLUserStore:
    """UserStore over the users table. Soft-deleted rows are never returned."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def _select_live(self):
        return _users.select().where(_users.c.deleted_at.is_(None))

    def _fetch_one(self, action: str, stmt) -> Account | None:
        with _translate_errors(action), self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_id(self, user_id: int) -> Account | None:
        return self._fetch_one("find user by id", self._select_live().where(_users.c.id == user_id))

    def find_by_username(self, username: str) -> Account | None:
        """Exact, case-sensitive match."""
        return self._fetch_one("find user by username", self._select_live().where(_users.c.username == username))

    def find_by_email(self, email: str) -> Account | None:
        return self._fetch_one("find user by email", self._select_live().where(_users.c.email == email))

    def find_by_username_or_email(self, value: str) -> Account | None:
        """One query covering both keys.

        If value is one account's username and another account's email, the
        username match wins so login-by-username is never shadowed.
        """
        stmt = (
            self._select_live()
            .where(or_(_users.c.username == value, _users.c.email == value))
            .order_by(case((_users.c.username == value, 0), else_=1), _users.c.id)
            .limit(1)
        )
        return self._fetch_one("find user by username or email", stmt)

    def find_conflicting(self, username: str, email: str) -> list[Account]:
        """Return every live account holding this username or this email (at most two)."""
        stmt = (
            self._select_live()
            .where(or_(_users.c.username == username, _users.c.email == email))
            .order_by(_users.c.id)
            .limit(2)
        )
        with _translate_errors("find conflicting users"), self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_account(r) for r in rows]

    def create(self, account: Account) -> Account:
        """Insert a new account and return it with id and timestamps filled in.

        Raises DuplicateRecord if a live account already holds the username or
        email -- including the race where a concurrent signup won [M1].
        """
        now = account.created_at or utcnow()
        with _translate_errors("create user"), self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=account.username,
                    email=account.email,
                    hashed_password=account.hashed_password,
                    first_name=account.first_name,
                    last_name=account.last_name,
                    phone=account.phone,
                    avatar=account.avatar,
                    status=account.status,
                    role=account.role,
                    created_at=to_iso(now),
                    updated_at=to_iso(now),
                    deleted_at=to_iso(account.deleted_at),
                )
            )
            conn.commit()
            new_id = result.inserted_primary_key[0]
        return _replace(account, id=new_id, created_at=now, updated_at=now)

    def update(self, account: Account) -> Account:
        """Replace every mutable column of an existing account (whole-record save)."""
        now = utcnow()
        with _translate_errors("update user"), self.engine.connect() as conn:
            conn.execute(
                _users.update()
                .where(_users.c.id == account.id)
                .values(
                    username=account.username,
                    email=account.email,
                    hashed_password=account.hashed_password,
                    first_name=account.first_name,
                    last_name=account.last_name,
                    phone=account.phone,
                    avatar=account.avatar,
                    status=account.status,
                    role=account.role,
                    updated_at=to_iso(now),
                    deleted_at=to_iso(account.deleted_at),
                )
            )
            conn.commit()
        return _replace(account, updated_at=now)


class SQLSessionStore:
    """SessionStore over the sessions table."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def _fetch_one(self, action: str, stmt) -> Session | None:
        with _translate_errors(action), self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_session(row) if row is not None else None

    def find_by_token(self, token: str) -> Session | None:
        """O(1) via the UNIQUE index on token."""
        return self._fetch_one("find session by token", _sessions.select().where(_sessions.c.token == token))

    def find_by_id(self, session_id: int) -> Session | None:
        return self._fetch_one("find session by id", _sessions.select().where(_sessions.c.id == session_id))

    def list_by_user(self, user_id: int) -> list[Session]:
        """Return every session of a user, newest first, regardless of status."""
        stmt = (
            _sessions.select()
            .where(_sessions.c.user_id == user_id)
            .order_by(_sessions.c.created_at.desc(), _sessions.c.id.desc())
        )
        with _translate_errors("list sessions"), self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_session(r) for r in rows]

    def create(self, session: Session) -> Session:
        now = session.created_at or utcnow()
        with _translate_errors("create session"), self.engine.connect() as conn:
            result = conn.execute(
                _sessions.insert().values(
                    user_id=session.user_id,
                    token=session.token,
                    ip_address=session.ip_address,
                    user_agent=session.user_agent,
                    device=session.device,
                    platform=session.platform,
                    status=session.status,
                    expires_at=to_iso(session.expires_at),
                    last_used_at=to_iso(session.last_used_at),
                    created_at=to_iso(now),
                    updated_at=to_iso(now),
                )
            )
            conn.commit()
            new_id = result.inserted_primary_key[0]
        return _replace(session, id=new_id, created_at=now, updated_at=now)

    def update(self, session: Session) -> Session:
        """Whole-record save. token, user_id and created_at are immutable and not written."""
        now = utcnow()
        with _translate_errors("update session"), self.engine.connect() as conn:
            conn.execute(
                _sessions.update()
                .where(_sessions.c.id == session.id)
                .values(
                    ip_address=session.ip_address,
                    user_agent=session.user_agent,
                    device=session.device,
                    platform=session.platform,
                    status=session.status,
                    expires_at=to_iso(session.expires_at),
                    last_used_at=to_iso(session.last_used_at),
                    updated_at=to_iso(now),
                )
            )
            conn.commit()
        return _replace(session, updated_at=now)

    def update_last_used_at(self, session_id: int, when: datetime) -> None:
        """Targeted single-column write used on every token validation."""
        with _translate_errors("update session last_used_at"), self.engine.connect() as conn:
            conn.execute(_sessions.update().where(_sessions.c.id == session_id).values(last_used_at=to_iso(when)))
            conn.commit()

    def update_status_by_user(self, user_id: int, from_status: str, to_status: str) -> int:
        """Move every session of user_id currently in from_status to to_status.

        One UPDATE statement, so the transition is as atomic as the database
        makes a single statement. Returns the number of rows changed.
        """
        with _translate_errors("bulk update session status"), self.engine.connect() as conn:
            result = conn.execute(
                _sessions.update()
                .where((_sessions.c.user_id == user_id) & (_sessions.c.status == from_status))
                .values(status=to_status, updated_at=to_iso(utcnow()))
            )
            conn.commit()
        return result.rowcount

    def delete(self, session_id: int) -> bool:
        """Physically remove a session row. Returns True if a row was deleted."""
        with _translate_errors("delete session"), self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.id == session_id))
            conn.commit()
        return result.rowcount > 0


class SQLResetTokenStore:
    """ResetTokenStore over the password_reset_tokens table. Rows are never deleted."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def _fetch_one(self, action: str, stmt) -> PasswordResetToken | None:
        with _translate_errors(action), self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_reset_token(row) if row is not None else None

    def find_by_token(self, token: str) -> PasswordResetToken | None:
        return self._fetch_one("find reset token", _reset_tokens.select().where(_reset_tokens.c.token == token))

    def find_by_id(self, token_id: int) -> PasswordResetToken | None:
        return self._fetch_one("find reset token by id", _reset_tokens.select().where(_reset_tokens.c.id == token_id))

    def create(self, reset_token: PasswordResetToken) -> PasswordResetToken:
        now = reset_token.created_at or utcnow()
        with _translate_errors("create reset token"), self.engine.connect() as conn:
            result = conn.execute(
                _reset_tokens.insert().values(
                    user_id=reset_token.user_id,
                    token=reset_token.token,
                    expires_at=to_iso(reset_token.expires_at),
                    used=1 if reset_token.used else 0,
                    created_at=to_iso(now),
                )
            )
            conn.commit()
            new_id = result.inserted_primary_key[0]
        return _replace(reset_token, id=new_id, created_at=now)

    def update(self, reset_token: PasswordResetToken) -> PasswordResetToken:
        with _translate_errors("update reset token"), self.engine.connect() as conn:
            conn.execute(
                _reset_tokens.update()
                .where(_reset_tokens.c.id == reset_token.id)
                .values(
                    expires_at=to_iso(reset_token.expires_at),
                    used=1 if reset_token.used else 0,
                )
            )
            conn.commit()
        return reset_token

    def mark_used(self, token_id: int) -> bool:
        """Flip used 0 -> 1 in one conditional UPDATE.

        Returns False when the row was already used (or does not exist), so of
        two concurrent callers with the same token exactly one gets True.
        """
        with _translate_errors("mark reset token used"), self.engine.connect() as conn:
            result = conn.execute(
                _reset_tokens.update()
                .where(_reset_tokens.c.id == token_id, _reset_tokens.c.used == 0)
                .values(used=1)
            )
            conn.commit()
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _replace(record, **changes):
    return dataclasses.replace(record, **changes)


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        first_name=row.first_name or "",
        last_name=row.last_name or "",
        phone=row.phone or "",
        avatar=row.avatar or "",
        status=row.status,
        role=row.role,
        created_at=from_iso(row.created_at),
        updated_at=from_iso(row.updated_at),
        deleted_at=from_iso(row.deleted_at),
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        ip_address=row.ip_address or "",
        user_agent=row.user_agent or "",
        device=row.device or "",
        platform=row.platform or "",
        status=row.status,
        expires_at=from_iso(row.expires_at),
        last_used_at=from_iso(row.last_used_at),
        created_at=from_iso(row.created_at),
        updated_at=from_iso(row.updated_at),
    )


def _row_to_reset_token(row) -> PasswordResetToken:
    return PasswordResetToken(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        expires_at=from_iso(row.expires_at),
        used=bool(row.used),
        created_at=from_iso(row.created_at),
    )
