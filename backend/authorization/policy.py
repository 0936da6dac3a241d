"""
Authorization Policy Layer: declarative row-level rules evaluated in Python.

Why:
    Every data-access path asks the same question: may this caller perform
    this operation on this table (and this row)? Expressing the rules as a
    registry of small predicates keeps them reviewable in one place and unit
    testable without a database.

Model:
    - A `Policy` names a table, the operations it covers and a predicate over
      a `PolicyContext` (caller, row, request time).
    - A request is allowed if ANY policy for (table, operation) evaluates true.
      No matching policy means deny.
    - The caller's effective role is computed once when the `Caller` is built,
      never per policy.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, FrozenSet, Iterable, List, Mapping, Optional
import logging

from backend.identity_access.domain import effective_role
from backend.shared.errors import PermissionDenied


logger = logging.getLogger("webcapz.authorization")

OPERATIONS = frozenset({"select", "insert", "update", "delete"})
ALL = OPERATIONS


@dataclass(frozen=True)
class Caller:
    """Resolved request principal.

    `student_record_id` is the id of the caller's own StudentRecord when one
    exists; self-access rules on attendance/results/certificates compare rows
    against it.
    """

    account_id: Optional[str]
    roles: FrozenSet[str] = field(default_factory=frozenset)
    role: Optional[str] = None
    student_record_id: Optional[str] = None

    @classmethod
    def build(cls, account_id: Optional[str], roles: Iterable[str], *, student_record_id: Optional[str] = None) -> "Caller":
        held = frozenset(str(r).lower() for r in roles or ())
        return cls(account_id=account_id, roles=held, role=effective_role(held), student_record_id=student_record_id)

    @classmethod
    def anonymous(cls) -> "Caller":
        return cls(account_id=None)

    @property
    def authenticated(self) -> bool:
        return bool(self.account_id)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True)
class PolicyContext:
    caller: Caller
    row: Optional[Mapping[str, Any]]
    now: datetime


Predicate = Callable[[PolicyContext], bool]


@dataclass(frozen=True)
class Policy:
    name: str
    table: str
    operations: FrozenSet[str]
    predicate: Predicate


# --- Predicate building blocks ------------------------------------------------

def anyone(ctx: PolicyContext) -> bool:
    return True


def authenticated(ctx: PolicyContext) -> bool:
    return ctx.caller.authenticated


def role_in(*roles: str) -> Predicate:
    allowed = frozenset(roles)

    def _pred(ctx: PolicyContext) -> bool:
        return ctx.caller.role in allowed

    return _pred


def owns_row(column: str) -> Predicate:
    """Row's `column` equals the caller's account id."""

    def _pred(ctx: PolicyContext) -> bool:
        if not ctx.caller.authenticated or ctx.row is None:
            return False
        return str(ctx.row.get(column) or "") == ctx.caller.account_id

    return _pred


def owns_student_record(column: str = "student_id") -> Predicate:
    """Row's student reference resolves to the caller's own StudentRecord."""

    def _pred(ctx: PolicyContext) -> bool:
        sid = ctx.caller.student_record_id
        if not sid or ctx.row is None:
            return False
        return str(ctx.row.get(column) or "") == sid

    return _pred


def owns_storage_folder(ctx: PolicyContext) -> bool:
    """First path segment of the object key equals the caller's account id."""
    if not ctx.caller.authenticated or ctx.row is None:
        return False
    path = str(ctx.row.get("path") or "").lstrip("/")
    return path.split("/", 1)[0] == ctx.caller.account_id


def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        ts = value
    else:
        try:
            ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def qr_code_visible(ctx: PolicyContext) -> bool:
    """General/permanent codes are always visible; course codes until they expire."""
    if not ctx.caller.authenticated or ctx.row is None:
        return False
    row = ctx.row
    if row.get("qr_type") == "general" or bool(row.get("is_permanent")):
        return True
    expires_at = _parse_ts(row.get("expires_at"))
    return expires_at is not None and expires_at > ctx.now


def _ops(*names: str) -> FrozenSet[str]:
    return frozenset(names)


STAFF_OR_ADMIN = role_in("admin", "staff")
ADMIN_ONLY = role_in("admin")

PROFILE_PICTURES = "storage:profile-pictures"


POLICIES: tuple[Policy, ...] = (
    # Profiles
    Policy("profiles are readable by signed-in users", "profiles", _ops("select"), authenticated),
    Policy("users manage their own profile", "profiles", _ops("insert", "update"), owns_row("id")),
    Policy("staff and admins create or update any profile", "profiles", _ops("insert", "update"), STAFF_OR_ADMIN),
    Policy("admins delete profiles", "profiles", _ops("delete"), ADMIN_ONLY),
    # Role assignments
    Policy("users view their own roles", "user_roles", _ops("select"), owns_row("user_id")),
    Policy("admins manage roles", "user_roles", ALL, ADMIN_ONLY),
    # Students
    Policy("students view their own record", "students", _ops("select"), owns_row("user_id")),
    Policy("staff and admins view students", "students", _ops("select"), STAFF_OR_ADMIN),
    Policy("staff and admins register and update students", "students", _ops("insert", "update"), STAFF_OR_ADMIN),
    Policy("admins delete students", "students", _ops("delete"), ADMIN_ONLY),
    # Staff
    Policy("staff view their own record", "staff", _ops("select"), owns_row("user_id")),
    Policy("admins manage staff", "staff", ALL, ADMIN_ONLY),
    # Public catalog tables
    Policy("everyone can view courses", "courses", _ops("select"), anyone),
    Policy("staff manage courses", "courses", ALL, STAFF_OR_ADMIN),
    Policy("everyone can view exams", "exams", _ops("select"), anyone),
    Policy("staff manage exams", "exams", ALL, STAFF_OR_ADMIN),
    Policy("everyone can view class schedules", "class_schedules", _ops("select"), anyone),
    Policy("staff manage class schedules", "class_schedules", ALL, STAFF_OR_ADMIN),
    # Results and attendance
    Policy("students view their own results", "exam_results", _ops("select"), owns_student_record()),
    Policy("staff manage results", "exam_results", ALL, STAFF_OR_ADMIN),
    Policy("students view their own attendance", "attendance_records", _ops("select"), owns_student_record()),
    Policy("students check in for themselves", "attendance_records", _ops("insert"), owns_student_record()),
    Policy("staff manage attendance", "attendance_records", ALL, STAFF_OR_ADMIN),
    # QR codes
    Policy("students view active QR codes", "qr_codes", _ops("select"), qr_code_visible),
    Policy("staff manage QR codes", "qr_codes", ALL, STAFF_OR_ADMIN),
    # Certificates
    Policy("anyone can verify certificates", "certificates", _ops("select"), anyone),
    Policy("staff manage certificates", "certificates", ALL, STAFF_OR_ADMIN),
    # Notifications
    Policy("users view their own notifications", "notifications", _ops("select", "update"), owns_row("user_id")),
    Policy("staff create notifications", "notifications", _ops("insert"), STAFF_OR_ADMIN),
    # Profile picture bucket
    Policy("profile pictures are public", PROFILE_PICTURES, _ops("select"), anyone),
    Policy("users manage their own picture", PROFILE_PICTURES, _ops("insert", "update", "delete"), owns_storage_folder),
    Policy("admins manage any picture", PROFILE_PICTURES, _ops("insert", "update", "delete"), ADMIN_ONLY),
)


def policies_for(table: str, operation: str, registry: Iterable[Policy] = POLICIES) -> List[Policy]:
    return [p for p in registry if p.table == table and operation in p.operations]


def authorize(
    caller: Caller,
    table: str,
    operation: str,
    row: Optional[Mapping[str, Any]] = None,
    *,
    now: Optional[datetime] = None,
    registry: Iterable[Policy] = POLICIES,
) -> bool:
    """Return True when any policy for (table, operation) allows the request."""
    op = (operation or "").lower()
    if op not in OPERATIONS:
        return False
    ctx = PolicyContext(caller=caller, row=row, now=now or datetime.now(timezone.utc))
    for policy in policies_for(table, op, registry):
        if policy.predicate(ctx):
            return True
    return False


def require(
    caller: Caller,
    table: str,
    operation: str,
    row: Optional[Mapping[str, Any]] = None,
    *,
    now: Optional[datetime] = None,
) -> None:
    """Raise PermissionDenied unless `authorize` allows the request."""
    if not authorize(caller, table, operation, row, now=now):
        logger.info("Denied %s on %s for role=%s", operation, table, caller.role)
        raise PermissionDenied("Permission denied")


__all__ = [
    "OPERATIONS",
    "PROFILE_PICTURES",
    "Caller",
    "Policy",
    "PolicyContext",
    "POLICIES",
    "authorize",
    "require",
    "policies_for",
]
