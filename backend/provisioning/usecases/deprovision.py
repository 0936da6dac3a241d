from __future__ import annotations

from typing import Callable, List, Optional, Tuple
import logging

from backend.authorization.policy import Caller, require
from backend.identity_access.admin_client import IdentityProviderProtocol
from backend.identity_access.stores import RoleStoreProtocol
from backend.shared.errors import InvalidArgument, PermissionDenied, Unauthenticated

from ..models import DeprovisionResult
from ..repo import DirectoryRepoProtocol


logger = logging.getLogger("webcapz.provisioning")

# role kind -> table holding its role-specific records
RECORD_TABLES = {"student": "students", "staff": "staff"}


class DeprovisionUserUseCase:
    """Remove an account and everything provisioning created for it.

    Cleanup is best-effort: each step is attempted in dependency order
    (role-specific record, role assignments, profile, identity account) and a
    failing step only adds a warning. The outcome is decided by the final
    identity provider delete, whose error propagates unchanged.
    """

    def __init__(
        self,
        *,
        identity: IdentityProviderProtocol,
        roles: RoleStoreProtocol,
        directory: DirectoryRepoProtocol,
    ) -> None:
        self._identity = identity
        self._roles = roles
        self._directory = directory

    def _resolve(self, target_ref: str, role_hint: Optional[str]) -> Tuple[str, Optional[str], Optional[str]]:
        """Return (account_id, record_kind, record_id) for a record id or account id."""
        kinds = [role_hint] if role_hint else ["student", "staff"]
        for kind in kinds:
            rec = self._directory.get_student(target_ref) if kind == "student" else self._directory.get_staff(target_ref)
            if rec is not None:
                return rec.user_id, kind, rec.id
        # Not a record id: treat as the account id and look for a record it owns.
        for kind in kinds:
            if kind == "student":
                owned = self._directory.find_student_by_account(target_ref)
            else:
                owned = self._directory.find_staff_by_account(target_ref)
            if owned is not None:
                return target_ref, kind, owned.id
        return target_ref, None, None

    def execute(self, caller: Caller, target_ref: str, role_hint: Optional[str] = None) -> DeprovisionResult:
        """Delete the target account with best-effort cleanup.

        Parameters:
            target_ref: StudentRecord/StaffRecord id, or the account id itself.
            role_hint: "student" or "staff"; narrows which record table is used.

        Raises:
            Unauthenticated, PermissionDenied, InvalidArgument: before any delete.
            NotFound/Unavailable: when the identity provider delete fails.
        """
        if not caller.authenticated:
            raise Unauthenticated()
        if not caller.is_admin:
            raise PermissionDenied("Admin access required")
        ref = (target_ref or "").strip()
        if not ref:
            raise InvalidArgument("userId is required")
        hint = (role_hint or "").strip().lower() or None
        if hint is not None and hint not in RECORD_TABLES:
            raise InvalidArgument("Invalid user type. Must be student or staff")

        account_id, kind, record_id = self._resolve(ref, hint)
        for table in filter(None, (RECORD_TABLES.get(kind or ""), "user_roles", "profiles")):
            require(caller, table, "delete")
        if account_id == caller.account_id:
            raise InvalidArgument("Admins cannot delete their own account")

        warnings: List[str] = []

        def attempt(step: str, action: Callable[[], object]) -> None:
            try:
                action()
            except Exception as exc:
                logger.warning("Deprovision step failed: step=%s account=%s error=%s", step, account_id, exc.__class__.__name__)
                warnings.append(f"{step} failed: {getattr(exc, 'message', None) or exc.__class__.__name__}")

        if kind == "student" and record_id:
            attempt("delete_student_record", lambda: self._directory.delete_student(record_id))
        elif kind == "staff" and record_id:
            attempt("delete_staff_record", lambda: self._directory.delete_staff(record_id))
        attempt("delete_role_assignments", lambda: self._roles.revoke_all(account_id))
        attempt("delete_profile", lambda: self._directory.delete_profile(account_id))

        # Final step decides success; its error propagates to the caller.
        self._identity.delete_account(account_id)
        logger.info("Deprovisioned account %s (warnings=%d)", account_id, len(warnings))
        return DeprovisionResult(ok=True, account_id=account_id, message="User deleted successfully", warnings=warnings)


__all__ = ["DeprovisionUserUseCase"]
