"""
PostgreSQL repository adapters - User, friend and biometric repositories.

This module provides the PostgreSQL implementation of the domain's
repository ports using psycopg3 with raw SQL.

Uniqueness Backstop:
--------------------
Advisory locks narrow the window for duplicate concurrent mutations but do
not close it. The schema closes it:

1. **users.username UNIQUE**: two concurrent registrations that both pass the
   lock check still produce exactly one account; the loser gets
   UserAlreadyExists.

2. **uq_friends_pair**: a unique index on
   (LEAST(source_id, target_id), GREATEST(source_id, target_id)) allows one
   edge per unordered pair regardless of direction; the loser gets
   AlreadyExists.

3. **uq_biometrics_active_user**: a partial unique index allows one ACTIVE
   biometric registration per user; the loser gets AlreadyExists.

Connection failures are logged and surfaced as TransientInfraError.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import psycopg
from psycopg import sql
from psycopg_pool import ConnectionPool

from src.domain.exceptions import AlreadyExists, TransientInfraError, UserAlreadyExists
from src.domain.ports import (
    Biometric,
    BiometricStatus,
    Friend,
    FriendStatus,
    FriendView,
    User,
    UserStatus,
)

logger = logging.getLogger(__name__)

_USER_COLUMNS = (
    "id, username, password_hash, name, status, phone_number, email, avatar, birth_day, verified,"
    " deleted_at"
)
_UPDATABLE_USER_FIELDS = frozenset(
    {
        "password_hash",
        "name",
        "status",
        "phone_number",
        "email",
        "avatar",
        "birth_day",
        "verified",
        "deleted_at",
    }
)

_BIOMETRIC_COLUMNS = (
    "id, user_id, username, device_id, public_key, secret_key, status, delete_reason, created_at"
)


def _like_pattern(text: str) -> str:
    """Substring pattern for ILIKE with the wildcards in text escaped."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@contextmanager
def _translate_errors(pool: ConnectionPool) -> Iterator[psycopg.Connection]:
    try:
        with pool.connection() as conn:
            yield conn
    except psycopg.OperationalError as e:
        logger.error("Database unavailable: %s", e)
        raise TransientInfraError(detail="database unavailable") from e


def _row_to_user(row: tuple) -> User:
    return User(
        id=row[0],
        username=row[1],
        password_hash=row[2],
        name=row[3],
        status=UserStatus(row[4]),
        phone_number=row[5],
        email=row[6],
        avatar=row[7],
        birth_day=row[8],
        verified=row[9],
        deleted_at=row[10],
    )


def _row_to_friend(row: tuple) -> Friend:
    return Friend(
        id=row[0],
        source_id=row[1],
        target_id=row[2],
        status=FriendStatus(row[3]),
        created_at=row[4],
    )


def _row_to_view(row: tuple) -> FriendView:
    return FriendView(
        friend_id=row[0],
        status=FriendStatus(row[1]),
        user_id=row[2],
        name=row[3],
        user_status=UserStatus(row[4]),
        avatar=row[5],
        phone_number=row[6],
        birth_day=row[7],
    )


def _row_to_biometric(row: tuple) -> Biometric:
    return Biometric(
        id=row[0],
        user_id=row[1],
        username=row[2],
        device_id=row[3],
        public_key=row[4],
        secret_key=row[5],
        status=BiometricStatus(row[6]),
        delete_reason=row[7],
        created_at=row[8],
    )


class PostgresUserRepository:
    """
    Implements UserRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    def find_by_id(self, user_id: int, status: UserStatus | None = None) -> User | None:
        query = f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s"
        params: list[Any] = [user_id]
        if status is not None:
            query += " AND status = %s"
            params.append(status.value)
        with _translate_errors(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(query, params)
            row = cursor.fetchone()
        return _row_to_user(row) if row else None

    def find_by_username(self, username: str) -> User | None:
        with _translate_errors(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE username = %s", (username,))
            row = cursor.fetchone()
        return _row_to_user(row) if row else None

    def insert(self, user: User) -> User:
        """
        Insert a new account.

        The UNIQUE constraints on username, phone_number and email make a
        concurrent duplicate fail here even if both callers passed the lock.
        """
        query = f"""
            INSERT INTO users (username, password_hash, name, status, phone_number, email,
                               avatar, birth_day, verified)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_USER_COLUMNS}
        """
        try:
            with _translate_errors(self._pool) as conn, conn.cursor() as cursor:
                cursor.execute(
                    query,
                    (
                        user.username,
                        user.password_hash,
                        user.name,
                        user.status.value,
                        user.phone_number,
                        user.email,
                        user.avatar,
                        user.birth_day,
                        user.verified,
                    ),
                )
                row = cursor.fetchone()
                conn.commit()
        except psycopg.errors.UniqueViolation as e:
            raise UserAlreadyExists() from e
        return _row_to_user(row)

    def update(self, user_id: int, **fields: Any) -> None:
        unknown = set(fields) - _UPDATABLE_USER_FIELDS
        if unknown:
            raise ValueError(f"Cannot update user fields: {sorted(unknown)}")
        if not fields:
            return
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(name)) for name in fields
        )
        query = sql.SQL("UPDATE users SET {}, updated_at = NOW() WHERE id = %s").format(
            assignments
        )
        values = [v.value if isinstance(v, UserStatus) else v for v in fields.values()]
        with _translate_errors(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(query, (*values, user_id))
            conn.commit()

    def find_many(self, user_ids: list[int]) -> list[User]:
        if not user_ids:
            return []
        with _translate_errors(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE id = ANY(%s) ORDER BY id",
                (list(user_ids),),
            )
            rows = cursor.fetchall()
        return [_row_to_user(r) for r in rows]

    def search_by_name(
        self, text: str, exclude_id: int, offset: int, limit: int
    ) -> list[User]:
        query = f"""
            SELECT {_USER_COLUMNS} FROM users
            WHERE name ILIKE %s AND id <> %s AND status = %s
            ORDER BY id
            OFFSET %s LIMIT %s
        """
        with _translate_errors(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(
                query, (_like_pattern(text), exclude_id, UserStatus.ACTIVE.value, offset, limit)
            )
            rows = cursor.fetchall()
        return [_row_to_user(r) for r in rows]

    def find_contacts(
        self,
        exclude_id: int,
        text: str | None,
        phones: list[str] | None,
        offset: int,
        limit: int,
    ) -> list[User]:
        """
        Filters are appended only when given; an empty phones list matches
        nobody.
        """
        clauses = ["id <> %s", "status = %s"]
        params: list[Any] = [exclude_id, UserStatus.ACTIVE.value]
        if text is not None:
            clauses.append("(name ILIKE %s OR email ILIKE %s OR phone_number ILIKE %s)")
            params.extend([_like_pattern(text)] * 3)
        if phones is not None:
            clauses.append("phone_number = ANY(%s)")
            params.append(list(phones))
        query = (
            f"SELECT {_USER_COLUMNS} FROM users WHERE {' AND '.join(clauses)}"
            " ORDER BY id OFFSET %s LIMIT %s"
        )
        with _translate_errors(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(query, (*params, offset, limit))
            rows = cursor.fetchall()
        return [_row_to_user(r) for r in rows]

    def list_inactive_before(self, cutoff: datetime) -> list[int]:
        with _translate_errors(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(
                "SELECT id FROM users WHERE status = %s AND deleted_at < %s ORDER BY id",
                (UserStatus.INACTIVE.value, cutoff),
            )
            rows = cursor.fetchall()
        return [r[0] for r in rows]

    def delete_many(self, user_ids: list[int]) -> None:
        if not user_ids:
            return
        with _translate_errors(self._pool) as conn:
            conn.execute("DELETE FROM users WHERE id = ANY(%s)", (list(user_ids),))
            conn.commit()


class PostgresFriendRepository:
    """
    Implements FriendRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Pair lookups match both orderings of (source_id, target_id).
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def find_by_id(self, friend_id: int) -> Friend | None:
        with _translate_errors(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(
                "SELECT id, source_id, target_id, status, created_at FROM friends WHERE id = %s",
                (friend_id,),
            )
            row = cursor.fetchone()
        return _row_to_friend(row) if row else None

    def find_by_pair(self, user_a: int, user_b: int) -> list[Friend]:
        query = """
            SELECT id, source_id, target_id, status, created_at
            FROM friends
            WHERE (source_id = %s AND target_id = %s)
               OR (source_id = %s AND target_id = %s)
            ORDER BY id
        """
        with _translate_errors(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(query, (user_a, user_b, user_b, user_a))
            rows = cursor.fetchall()
        return [_row_to_friend(r) for r in rows]

    def insert(self, source_id: int, target_id: int, status: FriendStatus) -> Friend:
        query = """
            INSERT INTO friends (source_id, target_id, status)
            VALUES (%s, %s, %s)
            RETURNING id, source_id, target_id, status, created_at
        """
        try:
            with _translate_errors(self._pool) as conn, conn.cursor() as cursor:
                cursor.execute(query, (source_id, target_id, status.value))
                row = cursor.fetchone()
                conn.commit()
        except psycopg.errors.UniqueViolation as e:
            # uq_friends_pair: another edge for this unordered pair won the race
            raise AlreadyExists() from e
        return _row_to_friend(row)

    def update_pair_status(self, user_a: int, user_b: int, status: FriendStatus) -> int:
        query = """
            UPDATE friends
            SET status = %s, source_id = %s, target_id = %s, updated_at = NOW()
            WHERE (source_id = %s AND target_id = %s)
               OR (source_id = %s AND target_id = %s)
        """
        with _translate_errors(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(query, (status.value, user_a, user_b, user_a, user_b, user_b, user_a))
            conn.commit()
            return cursor.rowcount

    def update_status(self, friend_id: int, status: FriendStatus) -> None:
        with _translate_errors(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(
                "UPDATE friends SET status = %s, updated_at = NOW() WHERE id = %s",
                (status.value, friend_id),
            )
            conn.commit()

    def delete(self, friend_id: int) -> None:
        with _translate_errors(self._pool) as conn:
            conn.execute("DELETE FROM friends WHERE id = %s", (friend_id,))
            conn.commit()

    def delete_all_for(self, user_id: int) -> None:
        with _translate_errors(self._pool) as conn:
            conn.execute(
                "DELETE FROM friends WHERE source_id = %s OR target_id = %s", (user_id, user_id)
            )
            conn.commit()

    def list_for(
        self, user_id: int, status: FriendStatus, offset: int, limit: int
    ) -> list[FriendView]:
        query = """
            SELECT f.id, f.status, u.id, u.name, u.status, u.avatar, u.phone_number, u.birth_day
            FROM friends f
            JOIN users u
              ON u.id = CASE WHEN f.source_id = %s THEN f.target_id ELSE f.source_id END
            WHERE (f.source_id = %s OR f.target_id = %s) AND f.status = %s
            ORDER BY f.id
            OFFSET %s LIMIT %s
        """
        with _translate_errors(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(query, (user_id, user_id, user_id, status.value, offset, limit))
            rows = cursor.fetchall()
        return [_row_to_view(r) for r in rows]

    def list_blocked_by(self, user_id: int, offset: int, limit: int) -> list[FriendView]:
        query = """
            SELECT f.id, f.status, u.id, u.name, u.status, u.avatar, u.phone_number, u.birth_day
            FROM friends f
            JOIN users u ON u.id = f.target_id
            WHERE f.source_id = %s AND f.status = %s
            ORDER BY f.id
            OFFSET %s LIMIT %s
        """
        with _translate_errors(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(query, (user_id, FriendStatus.BLOCKED.value, offset, limit))
            rows = cursor.fetchall()
        return [_row_to_view(r) for r in rows]


class PostgresBiometricRepository:
    """
    Implements BiometricRepository protocol via psycopg3.

    uq_biometrics_active_user allows one ACTIVE row per user; a concurrent
    second registration fails with AlreadyExists.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def find_active(self, username: str, device_id: str | None = None) -> Biometric | None:
        query = f"SELECT {_BIOMETRIC_COLUMNS} FROM biometrics WHERE username = %s AND status = %s"
        params: list[Any] = [username, BiometricStatus.ACTIVE.value]
        if device_id is not None:
            query += " AND device_id = %s"
            params.append(device_id)
        with _translate_errors(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(query + " ORDER BY id DESC LIMIT 1", params)
            row = cursor.fetchone()
        return _row_to_biometric(row) if row else None

    def list_active(self, user_id: int) -> list[Biometric]:
        with _translate_errors(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(
                f"SELECT {_BIOMETRIC_COLUMNS} FROM biometrics"
                " WHERE user_id = %s AND status = %s ORDER BY id",
                (user_id, BiometricStatus.ACTIVE.value),
            )
            rows = cursor.fetchall()
        return [_row_to_biometric(r) for r in rows]

    def insert(self, biometric: Biometric) -> Biometric:
        query = f"""
            INSERT INTO biometrics (user_id, username, device_id, public_key, secret_key, status)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING {_BIOMETRIC_COLUMNS}
        """
        try:
            with _translate_errors(self._pool) as conn, conn.cursor() as cursor:
                cursor.execute(
                    query,
                    (
                        biometric.user_id,
                        biometric.username,
                        biometric.device_id,
                        biometric.public_key,
                        biometric.secret_key,
                        biometric.status.value,
                    ),
                )
                row = cursor.fetchone()
                conn.commit()
        except psycopg.errors.UniqueViolation as e:
            raise AlreadyExists() from e
        return _row_to_biometric(row)

    def deactivate(self, biometric_id: int, reason: str) -> None:
        with _translate_errors(self._pool) as conn:
            conn.execute(
                "UPDATE biometrics SET status = %s, delete_reason = %s, updated_at = NOW()"
                " WHERE id = %s",
                (BiometricStatus.INACTIVE.value, reason, biometric_id),
            )
            conn.commit()


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: src/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning(f"Migrations directory not found: {migrations_dir}")
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info(f"Running {len(sql_files)} migration(s)")

    for sql_file in sql_files:
        logger.info(f"Executing migration: {sql_file.name}")
        try:
            sql_content = sql_file.read_text()

            with pool.connection() as conn:
                conn.execute(sql_content)

            logger.info(f"Migration complete: {sql_file.name}")
        except Exception as e:
            logger.error(f"Migration failed: {sql_file.name} - {e}")
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
