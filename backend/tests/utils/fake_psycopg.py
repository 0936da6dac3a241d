"""
Lightweight psycopg stand-in for unit tests.

Provides ``install_fake_psycopg`` which monkeypatches a target module so that
``psycopg.connect`` returns an in-memory role table. Supports the subset of SQL
issued by DBRoleStore (INSERT ... RETURNING / SELECT / DELETE) and raises the
real ``psycopg.errors.UniqueViolation`` on duplicate (user_id, role) pairs so
error translation is exercised end to end.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Tuple
import types

from psycopg import errors as pg_errors


class _FakeCursor:
    def __init__(self, rows: Dict[Tuple[str, str], Optional[str]], log: List[str]) -> None:
        self._rows = rows
        self._log = log
        self._row = None
        self._many: list = []
        self.rowcount = 0

    def execute(self, sql: str, params: tuple | list) -> None:
        sql_low = " ".join((sql or "").lower().split())
        self._log.append(sql_low)
        if sql_low.startswith("insert into"):
            user_id, role, created_by = params
            if (user_id, role) in self._rows:
                raise pg_errors.UniqueViolation("duplicate key value violates unique constraint")
            self._rows[(user_id, role)] = created_by
            self._row = ("2025-01-01T00:00:00+00:00",)
            self.rowcount = 1
        elif sql_low.startswith("select"):
            user_id = params[0]
            self._many = [(role,) for (uid, role) in sorted(self._rows) if uid == user_id]
            self.rowcount = len(self._many)
        elif sql_low.startswith("delete"):
            user_id = params[0]
            doomed = [key for key in self._rows if key[0] == user_id]
            for key in doomed:
                self._rows.pop(key)
            self.rowcount = len(doomed)
        else:
            raise AssertionError(f"Unexpected SQL in fake psycopg: {sql}")

    def fetchone(self):
        return self._row

    def fetchall(self):
        return list(self._many)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class _FakeConn:
    def __init__(self, rows, log) -> None:
        self._rows = rows
        self._log = log

    def cursor(self):
        return _FakeCursor(self._rows, self._log)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


def install_fake_psycopg(monkeypatch, target_module):
    """
    Patch ``target_module`` so psycopg operations go against an in-memory table.

    Returns ``(rows, log)``: the mutable {(user_id, role): created_by} mapping
    and the list of normalized SQL statements executed.
    """
    rows: Dict[Tuple[str, str], Optional[str]] = {}
    log: List[str] = []

    def fake_connect(dsn: str, autocommit: bool | None = None):
        return _FakeConn(rows, log)

    fake_psycopg = types.SimpleNamespace(connect=fake_connect)
    monkeypatch.setattr(target_module, "HAVE_PSYCOPG", True, raising=False)
    monkeypatch.setattr(target_module, "psycopg", fake_psycopg, raising=False)
    return rows, log


__all__ = ["install_fake_psycopg"]
