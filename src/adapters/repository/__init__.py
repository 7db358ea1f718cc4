"""Repository adapters - Database implementations."""

from .postgres import PostgresFriendRepository, PostgresUserRepository, run_migrations

__all__ = ["PostgresFriendRepository", "PostgresUserRepository", "run_migrations"]
