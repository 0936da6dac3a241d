from __future__ import annotations

from typing import Callable, Optional
import logging
import re

from backend.authorization.policy import PROFILE_PICTURES, Caller, authorize, require
from backend.identity_access.admin_client import IdentityProviderProtocol
from backend.identity_access.domain import PROVISIONABLE_ROLES
from backend.identity_access.stores import RoleStoreProtocol
from backend.shared.errors import InvalidArgument, PartialFailure, PermissionDenied, Unauthenticated
from backend.storage.config import extension_for, get_profile_picture_max_bytes, get_profile_pictures_bucket, profile_picture_key
from backend.storage.ports import PublicBlobStorage

from ..credentials import MIN_PASSWORD_LENGTH, generate_one_time_credential, mask_email
from ..models import Profile, ProfilePicture, ProvisionRequest, ProvisionResult, StaffData, StudentData
from ..repo import DirectoryRepoProtocol
from ..saga import CompensationStack


logger = logging.getLogger("webcapz.provisioning")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _require_text(value: Optional[str], field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise InvalidArgument(f"{field} is required")
    return text


def _validate_student(data: Optional[StudentData]) -> StudentData:
    if data is None:
        raise InvalidArgument("studentData is required for students")
    try:
        semester = int(data.semester)
    except (TypeError, ValueError):
        raise InvalidArgument("semester must be a positive number") from None
    if semester < 1:
        raise InvalidArgument("semester must be a positive number")
    return StudentData(
        student_id=_require_text(data.student_id, "studentId"),
        course=_require_text(data.course, "course"),
        semester=semester,
        emergency_contact=(data.emergency_contact or "").strip() or None,
    )


def _validate_staff(data: Optional[StaffData]) -> StaffData:
    if data is None:
        raise InvalidArgument("staffData is required for staff")
    return StaffData(
        employee_id=_require_text(data.employee_id, "employeeId"),
        department=_require_text(data.department, "department"),
        position=_require_text(data.position, "position"),
    )


def validate_request(req: ProvisionRequest) -> ProvisionRequest:
    """Return a normalized copy of `req` or raise InvalidArgument.

    Runs before any mutation so rejected requests leave no state behind.
    """
    email = (req.email or "").strip().lower()
    if not _EMAIL_RE.match(email):
        raise InvalidArgument("A valid email address is required")
    full_name = _require_text(req.full_name, "fullName")
    role = (req.role or "").strip().lower()
    if role not in PROVISIONABLE_ROLES:
        raise InvalidArgument("Invalid role. Must be student or staff")
    if req.password is not None and len(req.password) < MIN_PASSWORD_LENGTH:
        raise InvalidArgument(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    student = _validate_student(req.student) if role == "student" else None
    staff = _validate_staff(req.staff) if role == "staff" else None
    picture = req.profile_picture
    if picture is not None:
        if not extension_for(picture.content_type):
            raise InvalidArgument("Profile picture must be a JPEG, PNG, GIF or WebP image")
        if not picture.content:
            raise InvalidArgument("Profile picture is empty")
        if len(picture.content) > get_profile_picture_max_bytes():
            raise InvalidArgument("Profile picture must be less than 5MB")
    return ProvisionRequest(
        email=email,
        full_name=full_name,
        role=role,
        phone=(req.phone or "").strip() or None,
        address=(req.address or "").strip() or None,
        password=req.password,
        profile_picture_url=(req.profile_picture_url or "").strip() or None,
        profile_picture=picture,
        student=student,
        staff=staff,
    )


class ProvisionUserUseCase:
    """Create an account with profile, role and role-specific record.

    Steps run in order; every completed step pushes its undo action onto a
    `CompensationStack`. A failing step unwinds the stack most-recent-first
    and re-raises the original error, or `PartialFailure` when an undo step
    itself failed.
    """

    def __init__(
        self,
        *,
        identity: IdentityProviderProtocol,
        roles: RoleStoreProtocol,
        directory: DirectoryRepoProtocol,
        storage: Optional[PublicBlobStorage] = None,
        credential_factory: Callable[[], str] = generate_one_time_credential,
    ) -> None:
        self._identity = identity
        self._roles = roles
        self._directory = directory
        self._storage = storage
        self._credential_factory = credential_factory

    def execute(self, caller: Caller, request: ProvisionRequest) -> ProvisionResult:
        """Provision a student or staff member on behalf of an admin caller.

        Permissions:
            Caller must hold the admin effective role; checked before any
            validation result or mutation is produced.

        Returns:
            ProvisionResult with the new account id. When the password was
            generated here, it is returned once in `one_time_credential` and
            never logged or stored.

        Raises:
            Unauthenticated, PermissionDenied, InvalidArgument: before mutation.
            Conflict/Unavailable: from a mutation step, after compensation.
            PartialFailure: when compensation could not undo every step.
        """
        if not caller.authenticated:
            raise Unauthenticated()
        if not caller.is_admin:
            raise PermissionDenied("Admin access required")
        req = validate_request(request)
        require(caller, "profiles", "insert")
        require(caller, "user_roles", "insert")
        require(caller, "students" if req.role == "student" else "staff", "insert")

        generated = req.password is None
        credential = self._credential_factory() if generated else req.password
        stack = CompensationStack()
        account_id: Optional[str] = None
        logger.info("Provisioning %s account for %s", req.role, mask_email(req.email))
        try:
            account_id = self._identity.create_account(
                email=req.email, password=credential, display_name=req.full_name, email_verified=True
            )
            created = account_id
            stack.push("delete_account", lambda: self._identity.delete_account(created))

            self._directory.insert_profile(
                Profile(
                    id=created,
                    email=req.email,
                    full_name=req.full_name,
                    phone=req.phone,
                    address=req.address,
                    profile_picture_url=req.profile_picture_url,
                )
            )
            stack.push("delete_profile", lambda: self._directory.delete_profile(created))

            self._roles.assign_role(account_id=created, role=req.role, created_by=caller.account_id)
            stack.push("revoke_roles", lambda: self._roles.revoke_all(created))

            # validate_request sets exactly one of student/staff to match the role
            if req.student is not None:
                self._directory.insert_student(account_id=created, data=req.student, registered_by=caller.account_id)
            elif req.staff is not None:
                self._directory.insert_staff(account_id=created, data=req.staff)
        except Exception as exc:
            logger.warning(
                "Provisioning failed for %s: %s; rolling back %d step(s)",
                mask_email(req.email),
                exc.__class__.__name__,
                len(stack),
            )
            failures = stack.run()
            if failures:
                raise PartialFailure(exc, failures) from exc
            raise

        picture_url = req.profile_picture_url
        if req.profile_picture is not None:
            picture_url = self._store_picture(caller, account_id, req.profile_picture) or picture_url

        logger.info("Provisioned %s account %s", req.role, account_id)
        return ProvisionResult(
            account_id=account_id,
            message=f"User {req.full_name} created successfully",
            one_time_credential=credential if generated else None,
            credential_generated=generated,
            profile_picture_url=picture_url,
        )

    def _store_picture(self, caller: Caller, account_id: str, picture: ProfilePicture) -> Optional[str]:
        """Upload the picture and patch the profile; failures are logged, not raised.

        When the profile patch fails after a successful upload, the object is
        removed again so the bucket holds no picture without a profile row.
        """
        if self._storage is None:
            logger.warning("Profile picture skipped for %s: storage not configured", account_id)
            return None
        key = profile_picture_key(account_id, picture.content_type)
        if not authorize(caller, PROFILE_PICTURES, "insert", {"path": key}):
            logger.warning("Profile picture skipped for %s: upload not permitted", account_id)
            return None
        bucket = get_profile_pictures_bucket()
        try:
            url = self._storage.upload(bucket=bucket, key=key, body=picture.content, content_type=picture.content_type)
        except Exception as exc:
            logger.warning("Profile picture upload failed for %s: %s", account_id, exc.__class__.__name__)
            return None
        try:
            self._directory.set_profile_picture(account_id, url)
        except Exception as exc:
            logger.warning("Profile picture patch failed for %s: %s", account_id, exc.__class__.__name__)
            try:
                self._storage.delete_object(bucket=bucket, key=key)
            except Exception as cleanup_exc:
                logger.error(
                    "Orphaned profile picture left in storage: account=%s error=%s",
                    account_id,
                    cleanup_exc.__class__.__name__,
                )
            return None
        return url


__all__ = ["ProvisionUserUseCase", "validate_request"]
