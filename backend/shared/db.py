"""
Small psycopg helpers shared by the Postgres-backed stores.

Design:
- Each store call opens a short-lived connection; there is no pool and no
  cross-call transaction. Provisioning relies on compensation, not on a
  database transaction spanning the identity provider.
- Driver errors are translated into the shared error taxonomy so workflows
  never depend on psycopg types.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator
import os

try:
    import psycopg
    from psycopg import errors as pg_errors
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional in some dev envs
    psycopg = None  # type: ignore
    pg_errors = None  # type: ignore
    HAVE_PSYCOPG = False

from backend.shared.errors import Conflict, Unavailable


def _default_service_dsn() -> str:
    host = os.getenv("TEST_DB_HOST", "127.0.0.1")
    port = os.getenv("TEST_DB_PORT", "54322")
    return f"postgresql://postgres:postgres@{host}:{port}/postgres"


def resolve_dsn(*env_names: str) -> str:
    """Return the first configured DSN among `env_names`, then DATABASE_URL, then the local default."""
    for name in (*env_names, "DATABASE_URL", "SUPABASE_DB_URL"):
        val = (os.getenv(name) or "").strip()
        if val:
            return val
    return _default_service_dsn()


@contextmanager
def translate_db_errors(conflict_message: str = "already_exists") -> Iterator[None]:
    """Map psycopg errors to `Conflict` (unique violation) and `Unavailable` (connection)."""
    try:
        yield
    except Exception as exc:
        if pg_errors is not None:
            if isinstance(exc, pg_errors.UniqueViolation):
                raise Conflict(conflict_message) from exc
            if isinstance(exc, psycopg.OperationalError):
                raise Unavailable("database_unavailable") from exc
        raise


__all__ = ["HAVE_PSYCOPG", "psycopg", "resolve_dsn", "translate_db_errors"]
