"""
In-memory Role Store for development and tests.

Why: The role store is read on every request to build the caller context and
written only by the provisioning/de-provisioning workflows. This store keeps
the same contract as `DBRoleStore` so workflows and tests stay storage-agnostic.

Invariants:
- (account_id, role) is unique; a duplicate grant raises `Conflict`.
- Unknown role names are rejected with `InvalidArgument`.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol
import threading

from backend.identity_access.domain import ALLOWED_ROLES
from backend.shared.errors import Conflict, InvalidArgument


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class RoleAssignment:
    account_id: str
    role: str
    created_by: Optional[str]
    created_at: str


class RoleStoreProtocol(Protocol):
    def list_roles(self, account_id: str) -> list[str]: ...

    def assign_role(self, *, account_id: str, role: str, created_by: Optional[str]) -> RoleAssignment: ...

    def revoke_all(self, account_id: str) -> int: ...


class RoleStore:
    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, RoleAssignment]] = {}
        self._lock = threading.Lock()

    def list_roles(self, account_id: str) -> list[str]:
        with self._lock:
            return sorted((self._data.get(account_id) or {}).keys())

    def assign_role(self, *, account_id: str, role: str, created_by: Optional[str]) -> RoleAssignment:
        if role not in ALLOWED_ROLES:
            raise InvalidArgument(f"Unknown role: {role}")
        with self._lock:
            bucket = self._data.setdefault(account_id, {})
            if role in bucket:
                raise Conflict("Role already assigned")
            rec = RoleAssignment(account_id=account_id, role=role, created_by=created_by, created_at=_now_iso())
            bucket[role] = rec
            return rec

    def revoke_all(self, account_id: str) -> int:
        with self._lock:
            removed = self._data.pop(account_id, None) or {}
            return len(removed)


__all__ = ["RoleAssignment", "RoleStoreProtocol", "RoleStore"]
