"""
Postgres-backed directory repository (profiles, students, staff).

Security:
- Uses a service-role DSN (PROVISIONING_DATABASE_URL / DATABASE_URL). The
  application-level policy layer has already confirmed the caller is an admin
  before any method here is called.

Design:
- Minimal psycopg3 usage; each call opens a short-lived connection and commits
  on its own. Provisioning compensates explicitly instead of relying on a
  transaction spanning the identity provider.
- Returns the dataclasses from `provisioning.models` to keep the web adapter
  independent of the driver.
"""
from __future__ import annotations

from typing import List, Optional, Tuple

from backend.shared.db import HAVE_PSYCOPG, psycopg, resolve_dsn, translate_db_errors

from .models import Profile, StaffData, StaffRecord, StudentData, StudentRecord


_STUDENT_COLUMNS_SQL = """
    id::text,
    user_id::text,
    student_id,
    course,
    semester,
    emergency_contact,
    registered_by::text,
    status
"""

_STAFF_COLUMNS_SQL = """
    id::text,
    user_id::text,
    employee_id,
    department,
    position
"""


def _student_row(row: Tuple) -> StudentRecord:
    return StudentRecord(
        id=row[0],
        user_id=row[1],
        student_id=row[2],
        course=row[3],
        semester=int(row[4]) if row[4] is not None else 1,
        emergency_contact=row[5],
        registered_by=row[6],
        status=row[7] or "active",
    )


def _staff_row(row: Tuple) -> StaffRecord:
    return StaffRecord(id=row[0], user_id=row[1], employee_id=row[2], department=row[3], position=row[4])


class DBDirectoryRepo:
    def __init__(self, dsn: Optional[str] = None) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBDirectoryRepo")
        self._dsn = dsn or resolve_dsn("PROVISIONING_DATABASE_URL")

    def _execute(self, sql: str, params: tuple, *, fetch: str = "none", conflict_message: str = "already_exists"):
        with translate_db_errors(conflict_message):
            with psycopg.connect(self._dsn, autocommit=True) as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, params)
                    if fetch == "one":
                        return cur.fetchone()
                    if fetch == "all":
                        return cur.fetchall() or []
                    return int(getattr(cur, "rowcount", 0) or 0)

    # --- Profiles ---------------------------------------------------------------
    def insert_profile(self, profile: Profile) -> Profile:
        self._execute(
            """
            insert into public.profiles (id, email, full_name, phone, address, profile_picture_url)
            values (%s, %s, %s, %s, %s, %s)
            """,
            (profile.id, profile.email, profile.full_name, profile.phone, profile.address, profile.profile_picture_url),
            conflict_message="Profile already exists",
        )
        return profile

    def get_profile(self, account_id: str) -> Optional[Profile]:
        row = self._execute(
            "select id::text, email, full_name, phone, address, profile_picture_url from public.profiles where id = %s",
            (account_id,),
            fetch="one",
        )
        if not row:
            return None
        return Profile(id=row[0], email=row[1], full_name=row[2], phone=row[3], address=row[4], profile_picture_url=row[5])

    def set_profile_picture(self, account_id: str, url: str) -> None:
        count = self._execute(
            "update public.profiles set profile_picture_url = %s where id = %s",
            (url, account_id),
        )
        if not count:
            raise LookupError("profile_not_found")

    def delete_profile(self, account_id: str) -> bool:
        return bool(self._execute("delete from public.profiles where id = %s", (account_id,)))

    # --- Role-specific records ----------------------------------------------------
    def insert_student(self, *, account_id: str, data: StudentData, registered_by: Optional[str]) -> StudentRecord:
        row = self._execute(
            f"""
            insert into public.students (user_id, student_id, course, semester, emergency_contact, registered_by)
            values (%s, %s, %s, %s, %s, %s)
            returning {_STUDENT_COLUMNS_SQL}
            """,
            (account_id, data.student_id, data.course, int(data.semester), data.emergency_contact, registered_by),
            fetch="one",
            conflict_message=f"Student ID {data.student_id} is already in use",
        )
        return _student_row(row)

    def insert_staff(self, *, account_id: str, data: StaffData) -> StaffRecord:
        row = self._execute(
            f"""
            insert into public.staff (user_id, employee_id, department, position)
            values (%s, %s, %s, %s)
            returning {_STAFF_COLUMNS_SQL}
            """,
            (account_id, data.employee_id, data.department, data.position),
            fetch="one",
            conflict_message=f"Employee ID {data.employee_id} is already in use",
        )
        return _staff_row(row)

    def get_student(self, record_id: str) -> Optional[StudentRecord]:
        row = self._execute(f"select {_STUDENT_COLUMNS_SQL} from public.students where id::text = %s", (record_id,), fetch="one")
        return _student_row(row) if row else None

    def get_staff(self, record_id: str) -> Optional[StaffRecord]:
        row = self._execute(f"select {_STAFF_COLUMNS_SQL} from public.staff where id::text = %s", (record_id,), fetch="one")
        return _staff_row(row) if row else None

    def find_student_by_account(self, account_id: str) -> Optional[StudentRecord]:
        row = self._execute(f"select {_STUDENT_COLUMNS_SQL} from public.students where user_id::text = %s", (account_id,), fetch="one")
        return _student_row(row) if row else None

    def find_staff_by_account(self, account_id: str) -> Optional[StaffRecord]:
        row = self._execute(f"select {_STAFF_COLUMNS_SQL} from public.staff where user_id::text = %s", (account_id,), fetch="one")
        return _staff_row(row) if row else None

    def delete_student(self, record_id: str) -> bool:
        return bool(self._execute("delete from public.students where id::text = %s", (record_id,)))

    def delete_staff(self, record_id: str) -> bool:
        return bool(self._execute("delete from public.staff where id::text = %s", (record_id,)))

    def list_identifiers(self, kind: str, prefix: str) -> List[str]:
        if kind == "student":
            sql = "select student_id from public.students where student_id like %s"
        elif kind == "staff":
            sql = "select employee_id from public.staff where employee_id like %s"
        else:
            raise ValueError("invalid_kind")
        rows = self._execute(sql, (f"{prefix}%",), fetch="all")
        return [str(r[0]) for r in rows]


__all__ = ["DBDirectoryRepo"]
