"""
auth/store.py -- SQLAlchemy Core persistence layer for principals and refresh tokens.

Pattern: Repository + Data Mapper. PrincipalStore and RefreshTokenStore are
the repositories; _row_to_principal / _row_to_refresh_token are the mappers.
The service never touches SQL directly.

Uses SQLAlchemy Core (not ORM) so the dataclasses in auth/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Atomicity: every operation is a single statement on its own connection,
committed before the method returns. Lookup and revoke are conditional on
the validity predicate in SQL, so there is no read-modify-write window.

Errors: SQLAlchemyError never escapes this module. Unique-email violations
become Conflict; everything else, including a refresh token primary-key
collision, becomes PersistenceError. Nothing is retried.

Security: all queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from sqlalchemy import Column, DateTime, ForeignKey, Index, MetaData, String, Table, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import Conflict, PersistenceError
from auth.models import Principal, RefreshToken
from auth.tokens import generate_refresh_token
from core.clock import Clock, as_utc, utc_now

DEFAULT_REFRESH_TTL = timedelta(days=60)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_principals = Table(
    "principals",
    _metadata,
    Column("id", String(36), primary_key=True),  # UUID4
    Column("email", String(255), nullable=False, unique=True),  # normalized
    Column("password_hash", String(128), nullable=False),  # bcrypt $2b$ hash
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("token", String(64), primary_key=True),
    Column(
        "principal_id",
        String(36),
        ForeignKey("principals.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("revoked_at", DateTime(timezone=True)),  # NULL until revoked, then never cleared
    Index("idx_refresh_tokens_principal_id", "principal_id"),
    Index("idx_refresh_tokens_expires_at", "expires_at"),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. foreign_keys=ON is what makes
    ON DELETE CASCADE fire -- SQLite ignores FK clauses without it.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def _engine_kwargs(db_url: str, timeout_seconds: float) -> dict:
    """create_engine() keyword arguments that bound every storage call by timeout_seconds.

    SQLite: busy timeout. PostgreSQL: statement_timeout set per connection.
    MySQL/MariaDB: max_execution_time set per session. Server databases also
    get a pool checkout timeout, so a call can wait at most timeout_seconds
    for a connection and timeout_seconds for its statement.
    """
    if db_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False, "timeout": timeout_seconds}}

    timeout_ms = int(timeout_seconds * 1000)
    kwargs: dict = {"pool_timeout": timeout_seconds, "pool_pre_ping": True}
    if db_url.startswith("postgresql"):
        kwargs["connect_args"] = {"options": f"-c statement_timeout={timeout_ms}"}
    elif db_url.startswith(("mysql", "mariadb")):
        kwargs["connect_args"] = {"init_command": f"SET SESSION max_execution_time={timeout_ms}"}
    return kwargs


def create_auth_engine(db_url: str, timeout_seconds: float = 5.0) -> Engine:
    """Create the pooled engine shared by both stores and ensure the schema exists.

    timeout_seconds bounds how long a storage call can run; see _engine_kwargs().
    """
    engine = create_engine(db_url, **_engine_kwargs(db_url, timeout_seconds))
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class PrincipalStore:
    """Repository for Principal records.

    Usage:
        engine = create_auth_engine("sqlite:///auth.db")
        store = PrincipalStore(engine)
        principal = store.create("a@b.com", hasher.hash("password1"))
        store.get_by_email("a@b.com")
    """

    def __init__(self, engine: Engine, clock: Clock = utc_now) -> None:
        self.engine = engine
        self._clock = clock

    def create(self, email: str, password_hash: str) -> Principal:
        """Insert a new principal. email must already be normalized.

        Raises Conflict if the email is taken, including when a concurrent
        registration wins the race after the caller's own existence check.
        """
        now = as_utc(self._clock())
        principal = Principal(
            id=str(uuid.uuid4()),
            email=email,
            password_hash=password_hash,
            created_at=now,
            updated_at=now,
        )
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _principals.insert().values(
                        id=principal.id,
                        email=principal.email,
                        password_hash=principal.password_hash,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise Conflict() from exc
        except SQLAlchemyError as exc:
            raise PersistenceError() from exc
        return principal

    def get_by_email(self, email: str) -> Principal | None:
        """Look up a principal by normalized email. Returns None if not found."""
        try:
            with self.engine.connect() as conn:
                row = conn.execute(_principals.select().where(_principals.c.email == email)).fetchone()
        except SQLAlchemyError as exc:
            raise PersistenceError() from exc
        return _row_to_principal(row) if row is not None else None

    def get_by_id(self, principal_id: str) -> Principal | None:
        """Look up a principal by primary key. Returns None if not found."""
        try:
            with self.engine.connect() as conn:
                row = conn.execute(_principals.select().where(_principals.c.id == principal_id)).fetchone()
        except SQLAlchemyError as exc:
            raise PersistenceError() from exc
        return _row_to_principal(row) if row is not None else None

    def delete(self, principal_id: str) -> bool:
        """Delete a principal and, by cascade, all of its refresh tokens.

        Admin path only (main.py delete-principal). Returns False if the
        principal did not exist.
        """
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_principals.delete().where(_principals.c.id == principal_id))
                conn.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError() from exc
        return result.rowcount > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True


class RefreshTokenStore:
    """Repository for RefreshToken records.

    Usage:
        store = RefreshTokenStore(engine)
        rt = store.create(principal.id)
        store.lookup(rt.token)    # RefreshToken while valid, else None
        store.revoke(rt.token)    # idempotent
    """

    def __init__(self, engine: Engine, ttl: timedelta = DEFAULT_REFRESH_TTL, clock: Clock = utc_now) -> None:
        self.engine = engine
        self.ttl = ttl
        self._clock = clock

    def create(self, principal_id: str, ttl: timedelta | None = None) -> RefreshToken:
        """Generate, persist and return a new refresh token for principal_id.

        A primary-key collision is reported as PersistenceError like any
        other write failure; with 256 bits of entropy it does not happen.
        """
        now = as_utc(self._clock())
        record = RefreshToken(
            token=generate_refresh_token(),
            principal_id=principal_id,
            expires_at=now + (ttl if ttl is not None else self.ttl),
            created_at=now,
            updated_at=now,
        )
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _refresh_tokens.insert().values(
                        token=record.token,
                        principal_id=record.principal_id,
                        expires_at=record.expires_at,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError() from exc
        return record

    def lookup(self, token: str) -> RefreshToken | None:
        """Return the record for token only if it is currently valid.

        Revoked, expired and unknown tokens all return None from the same
        query, so callers cannot tell them apart.
        """
        now = as_utc(self._clock())
        query = _refresh_tokens.select().where(
            (_refresh_tokens.c.token == token)
            & (_refresh_tokens.c.revoked_at.is_(None))
            & (_refresh_tokens.c.expires_at > now)
        )
        try:
            with self.engine.connect() as conn:
                row = conn.execute(query).fetchone()
        except SQLAlchemyError as exc:
            raise PersistenceError() from exc
        return _row_to_refresh_token(row) if row is not None else None

    def revoke(self, token: str) -> None:
        """Mark token revoked. No-op if it is already revoked or does not exist."""
        now = as_utc(self._clock())
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _refresh_tokens.update()
                    .where((_refresh_tokens.c.token == token) & (_refresh_tokens.c.revoked_at.is_(None)))
                    .values(revoked_at=now, updated_at=now)
                )
                conn.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError() from exc

    def get(self, token: str) -> RefreshToken | None:
        """Return the raw record regardless of validity. Admin/audit use only."""
        try:
            with self.engine.connect() as conn:
                row = conn.execute(_refresh_tokens.select().where(_refresh_tokens.c.token == token)).fetchone()
        except SQLAlchemyError as exc:
            raise PersistenceError() from exc
        return _row_to_refresh_token(row) if row is not None else None

    def purge_expired(self, before: datetime | None = None) -> int:
        """Delete tokens whose expires_at is earlier than before (default: now).

        Returns the number of rows removed. Revoked-but-unexpired tokens are
        kept for audit until they expire.
        """
        cutoff = as_utc(before if before is not None else self._clock())
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.expires_at < cutoff))
                conn.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError() from exc
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_principal(row) -> Principal:
    return Principal(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        token=row.token,
        principal_id=row.principal_id,
        expires_at=as_utc(row.expires_at),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        revoked_at=as_utc(row.revoked_at) if row.revoked_at is not None else None,
    )
