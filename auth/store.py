"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore and RefreshTokenStore are the repositories; _row_to_user /
_row_to_refresh_token are the mappers. Service and route code never touches
SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Consistency:
  Every method runs in its own transaction via engine.begin(), which commits
  before the method returns. A caller that receives a new refresh token can
  therefore always redeem it, and a caller told a token was deleted can rely
  on it being gone.

  Deletes report how many rows they removed. SessionService uses the count
  from RefreshTokenStore.delete() to decide which of two concurrent refreshes
  of the same token wins -- the DELETE itself is the atomic step, there is no
  separate existence check in front of it.

  refresh_tokens.user_id is declared ON DELETE CASCADE. SQLite only honours
  that with PRAGMA foreign_keys=ON, which is set on every new connection.

DB path: auth/shopdesk_auth.db by default (see core.config.Settings.database_url).

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import EmailInUse
from auth.models import RefreshToken, Role, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(20), nullable=False, server_default=Role.CUSTOMER.value),
    Column("first_name", String(100)),
    Column("last_name", String(100)),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", String(64), nullable=False, unique=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    sqlite_autoincrement=True,
)

# Fields update_user() accepts. Anything else is a programming error.
_MUTABLE_USER_FIELDS = {"email", "role", "first_name", "last_name"}


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. Without foreign_keys=ON the cascade from users
    to refresh_tokens is silently ignored.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_auth_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_utc(value: datetime) -> datetime:
    # SQLite drops the offset on write, so bind every timestamp as UTC.
    return value.astimezone(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything we write is UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User accounts.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user = store.create_user(User(email="a@example.com", hashed_password=hash_password("secret")))
        same = store.get_by_email("a@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = create_auth_engine(db_url)

    def ping(self) -> bool:
        """Round-trip a trivial query. Used by the health endpoint."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def create_user(self, user: User) -> User:
        """Insert a new account and return it with id and timestamps filled in.

        Raises EmailInUse if the email already exists. The UNIQUE constraint is
        the source of truth; there is no pre-check, so two concurrent
        registrations of the same email cannot both succeed.
        """
        now = _utcnow()
        user_id = str(uuid.uuid4())
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user_id,
                        email=user.email,
                        hashed_password=user.hashed_password,
                        role=Role(user.role).value,
                        first_name=user.first_name,
                        last_name=user.last_name,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError as exc:
            raise EmailInUse() from exc
        return User(
            id=user_id,
            email=user.email,
            hashed_password=user.hashed_password,
            role=Role(user.role),
            first_name=user.first_name,
            last_name=user.last_name,
            created_at=now,
            updated_at=now,
        )

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by email. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: str, **fields) -> User | None:
        """Update profile fields on an existing user.

        Accepted fields: email, role, first_name, last_name. Unknown fields
        raise ValueError. Returns the updated user, or None if user_id was not
        found. Raises EmailInUse if the new email belongs to another account.
        """
        unknown = set(fields) - _MUTABLE_USER_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "role" in fields:
            fields["role"] = Role(fields["role"]).value
        fields["updated_at"] = _utcnow()
        try:
            with self.engine.begin() as conn:
                result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
        except IntegrityError as exc:
            raise EmailInUse() from exc
        if result.rowcount == 0:
            return None
        return self.get_by_id(user_id)

    def update_password(self, user_id: str, hashed_password: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(hashed_password=hashed_password, updated_at=_utcnow())
            )
        return result.rowcount > 0

    def delete_user(self, user_id: str) -> bool:
        """Permanently delete a user. Their refresh tokens go with them (cascade).

        Returns True if deleted, False if not found.
        """
        with self.engine.begin() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Refresh tokens
# ---------------------------------------------------------------------------


class RefreshTokenStore:
    """Repository for persisted refresh tokens.

    Shares the engine of the UserStore it is paired with so the foreign key to
    users resolves against the same database:

        users = UserStore(db_url)
        tokens = RefreshTokenStore(users.engine)

    All deletes are idempotent: removing a row that is already gone returns
    False / 0, never raises.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        _metadata.create_all(self.engine)

    def create(self, user_id: str, expires_at: datetime) -> str:
        """Persist a new refresh token for user_id and return its value.

        secrets.token_urlsafe(32) draws 32 random bytes (256 bits), so the
        value cannot feasibly be guessed.
        """
        token = secrets.token_urlsafe(32)
        with self.engine.begin() as conn:
            conn.execute(
                _refresh_tokens.insert().values(
                    token=token,
                    user_id=user_id,
                    expires_at=_to_utc(expires_at),
                    created_at=_utcnow(),
                )
            )
        return token

    def find_by_token(self, token: str) -> RefreshToken | None:
        """Exact-match lookup. No partial or case-insensitive matching."""
        with self.engine.connect() as conn:
            row = conn.execute(_refresh_tokens.select().where(_refresh_tokens.c.token == token)).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def delete(self, token_id: int, token: str) -> bool:
        """Delete the row read earlier as (token_id, token).

        Returns True only for the caller that removed it. Matching on the
        token value as well as the id means a stale caller can never remove a
        different row that happens to carry the same id.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _refresh_tokens.delete().where(
                    (_refresh_tokens.c.id == token_id) & (_refresh_tokens.c.token == token)
                )
            )
        return result.rowcount == 1

    def delete_by_user_and_token(self, user_id: str, token: str) -> bool:
        """Delete the row matching both user_id and token.

        Both conditions must match, so one user cannot revoke another user's
        session even if they hold the token value.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _refresh_tokens.delete().where(
                    (_refresh_tokens.c.user_id == user_id) & (_refresh_tokens.c.token == token)
                )
            )
        return result.rowcount > 0

    def delete_all_for_user(self, user_id: str) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.user_id == user_id))
        return result.rowcount

    def delete_expired(self, now: datetime) -> int:
        """Delete every row whose expires_at is at or before now. Returns the count."""
        with self.engine.begin() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.expires_at <= _to_utc(now)))
        return result.rowcount

    def count_for_user(self, user_id: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_refresh_tokens).where(_refresh_tokens.c.user_id == user_id)
            ).scalar()
        return result or 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        hashed_password=row.hashed_password,
        role=Role(row.role),
        first_name=row.first_name,
        last_name=row.last_name,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        id=row.id,
        token=row.token,
        user_id=row.user_id,
        expires_at=_as_utc(row.expires_at),
        created_at=_as_utc(row.created_at),
    )
