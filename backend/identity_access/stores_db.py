"""
Database-backed Role Store (Postgres/Supabase).

Why: Role assignments must survive restarts and be shared across instances.
This store persists them in `public.user_roles` (unique on user_id, role) and
exposes the same contract as the in-memory `RoleStore`.

Security:
- Intended to be used with a service-role connection string. Writes are only
  issued by the provisioning/de-provisioning workflows after the policy layer
  confirmed the caller is an admin.

Note: This module uses psycopg3; tests substitute a fake driver.
"""
from __future__ import annotations

from typing import Optional
import re

from backend.identity_access.domain import ALLOWED_ROLES
from backend.identity_access.stores import RoleAssignment
from backend.shared.db import HAVE_PSYCOPG, psycopg, resolve_dsn, translate_db_errors
from backend.shared.errors import InvalidArgument


class DBRoleStore:
    """Postgres-backed role store.

    Parameters
    ----------
    dsn:
        Psycopg3 connection string. Defaults to ROLE_STORE_DATABASE_URL, then
        PROVISIONING_DATABASE_URL / DATABASE_URL.
    table:
        Fully qualified table name. Defaults to `public.user_roles`.
    """

    def __init__(self, dsn: str | None = None, table: str = "public.user_roles") -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBRoleStore")
        self._dsn = dsn or resolve_dsn("ROLE_STORE_DATABASE_URL", "PROVISIONING_DATABASE_URL")
        # Validate table identifier early
        if not re.match(r'^[A-Za-z_][A-Za-z0-9_]{0,62}(?:\.[A-Za-z_][A-Za-z0-9_]{0,62})?$', table or ''):
            raise ValueError("Invalid table name")
        self._table = table

    def list_roles(self, account_id: str) -> list[str]:
        with translate_db_errors():
            with psycopg.connect(self._dsn) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"select role::text from {self._table} where user_id = %s order by role",
                        (account_id,),
                    )
                    rows = cur.fetchall() or []
        return [str(r[0]) for r in rows]

    def assign_role(self, *, account_id: str, role: str, created_by: Optional[str]) -> RoleAssignment:
        if role not in ALLOWED_ROLES:
            raise InvalidArgument(f"Unknown role: {role}")
        with translate_db_errors("Role already assigned"):
            with psycopg.connect(self._dsn, autocommit=True) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"insert into {self._table} (user_id, role, created_by) values (%s, %s, %s) "
                        "returning to_char(created_at at time zone 'utc', 'YYYY-MM-DD\"T\"HH24:MI:SS\"+00:00\"')",
                        (account_id, role, created_by),
                    )
                    row = cur.fetchone()
        return RoleAssignment(
            account_id=account_id,
            role=role,
            created_by=created_by,
            created_at=str(row[0]) if row else "",
        )

    def revoke_all(self, account_id: str) -> int:
        with translate_db_errors():
            with psycopg.connect(self._dsn, autocommit=True) as conn:
                with conn.cursor() as cur:
                    cur.execute(f"delete from {self._table} where user_id = %s", (account_id,))
                    return int(getattr(cur, "rowcount", 0) or 0)


__all__ = ["DBRoleStore"]
