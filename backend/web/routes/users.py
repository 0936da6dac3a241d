"""
Admin user-management API routes: provision, de-provision, welcome email.

Why:
    Expose the provisioning workflows over HTTP while keeping FastAPI out of
    the use cases. The adapter resolves the bearer token to a `Caller`, maps
    the shared error taxonomy to status codes and returns every response with
    `Cache-Control: private, no-store`.

Notes:
    - Workflows are blocking (HTTP + psycopg); they run in a worker thread so
      concurrent requests do not block the event loop.
    - Persistence prefers the Postgres-backed stores when psycopg is present;
      dev/test falls back to in-memory stores. Tests swap collaborators with
      the `set_*` helpers.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional
import asyncio
import base64
import binascii
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.functional_validators import field_validator

from backend.authorization.policy import Caller
from backend.identity_access.admin_client import IdentityProviderProtocol, KeycloakAdminClient
from backend.identity_access.stores import RoleStore, RoleStoreProtocol
from backend.notifications.welcome_email import WelcomeEmail, send_welcome_email
from backend.provisioning.ids import next_identifier, prefix_for_role
from backend.provisioning.models import ProfilePicture, ProvisionRequest, StaffData, StudentData
from backend.provisioning.repo import DirectoryRepoProtocol, InMemoryDirectoryRepo
from backend.provisioning.usecases import DeprovisionUserUseCase, ProvisionUserUseCase
from backend.shared.errors import InvalidArgument, PermissionDenied, ProvisioningError, Unauthenticated
from backend.storage.ports import PublicBlobStorage
from backend.web.config import is_prod_like


users_router = APIRouter(tags=["Users"])  # explicit paths below
logger = logging.getLogger("webcapz.web")


# --- Collaborator wiring ----------------------------------------------------------

_IDENTITY: Optional[IdentityProviderProtocol] = None
_ROLES: Optional[RoleStoreProtocol] = None
_DIRECTORY: Optional[DirectoryRepoProtocol] = None
_STORAGE: Optional[PublicBlobStorage] = None
_STORAGE_WIRED = False
_EMAIL_SENDER = send_welcome_email


def _build_default_role_store() -> RoleStoreProtocol:
    try:
        from backend.identity_access.stores_db import DBRoleStore

        return DBRoleStore()
    except Exception as exc:
        if is_prod_like():
            raise
        logger.warning("Role store DB unavailable (%s); using in-memory fallback", exc.__class__.__name__)
        return RoleStore()


def _build_default_directory() -> DirectoryRepoProtocol:
    try:
        from backend.provisioning.repo_db import DBDirectoryRepo

        return DBDirectoryRepo()
    except Exception as exc:
        if is_prod_like():
            raise
        logger.warning("Directory DB unavailable (%s); using in-memory fallback", exc.__class__.__name__)
        return InMemoryDirectoryRepo()


def _get_identity() -> IdentityProviderProtocol:
    global _IDENTITY
    if _IDENTITY is None:
        _IDENTITY = KeycloakAdminClient()
    return _IDENTITY


def _get_roles() -> RoleStoreProtocol:
    global _ROLES
    if _ROLES is None:
        _ROLES = _build_default_role_store()
    return _ROLES


def _get_directory() -> DirectoryRepoProtocol:
    global _DIRECTORY
    if _DIRECTORY is None:
        _DIRECTORY = _build_default_directory()
    return _DIRECTORY


def _get_storage() -> Optional[PublicBlobStorage]:
    """Wire Supabase storage lazily; None keeps picture uploads disabled."""
    global _STORAGE, _STORAGE_WIRED
    if _STORAGE is None and not _STORAGE_WIRED:
        _STORAGE_WIRED = True
        try:
            from backend.storage.supabase import build_storage_from_env

            _STORAGE = build_storage_from_env()
        except Exception as exc:
            logger.warning("Storage wiring failed: %s", exc.__class__.__name__)
    return _STORAGE


def set_identity_provider(identity: Optional[IdentityProviderProtocol]) -> None:
    """Allow tests to provide a fake identity provider."""
    global _IDENTITY
    _IDENTITY = identity


def set_role_store(store: Optional[RoleStoreProtocol]) -> None:
    global _ROLES
    _ROLES = store


def set_directory_repo(repo: Optional[DirectoryRepoProtocol]) -> None:
    global _DIRECTORY
    _DIRECTORY = repo


def set_storage_adapter(adapter: Optional[PublicBlobStorage]) -> None:
    """Allow tests to provide a storage adapter (e.g., fake or failing stub)."""
    global _STORAGE, _STORAGE_WIRED
    _STORAGE = adapter
    _STORAGE_WIRED = True


def set_email_sender(sender) -> None:
    global _EMAIL_SENDER
    _EMAIL_SENDER = sender or send_welcome_email


# --- Request models ---------------------------------------------------------------

class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class StudentDataPayload(_Payload):
    student_id: str | None = Field(default=None, alias="studentId")
    course: str | None = None
    semester: int | None = None
    emergency_contact: str | None = Field(default=None, alias="emergencyContact")


class StaffDataPayload(_Payload):
    employee_id: str | None = Field(default=None, alias="employeeId")
    department: str | None = None
    position: str | None = None


class ProfilePicturePayload(_Payload):
    content_type: str | None = Field(default=None, alias="contentType")
    data: str | None = None


class CreateUserPayload(_Payload):
    email: str | None = None
    password: str | None = None
    full_name: str | None = Field(default=None, alias="fullName")
    phone: str | None = None
    address: str | None = None
    role: str | None = None
    profile_picture_url: str | None = Field(default=None, alias="profilePictureUrl")
    profile_picture: ProfilePicturePayload | None = Field(default=None, alias="profilePicture")
    student_data: StudentDataPayload | None = Field(default=None, alias="studentData")
    staff_data: StaffDataPayload | None = Field(default=None, alias="staffData")

    @field_validator("password", "phone", "address", "profile_picture_url")
    @classmethod
    def _strip_empty(cls, v):
        if isinstance(v, str):
            return v if v.strip() else None
        return v


class DeleteUserPayload(_Payload):
    user_id: str | None = Field(default=None, alias="userId")
    user_type: str | None = Field(default=None, alias="userType")


class WelcomeEmailPayload(_Payload):
    email: str | None = None
    full_name: str | None = Field(default=None, alias="fullName")
    role: str | None = None
    temporary_password: str | None = Field(default=None, alias="temporaryPassword", repr=False)
    login_url: str | None = Field(default=None, alias="loginUrl")


# --- Helpers ----------------------------------------------------------------------

def _private_no_store() -> dict:
    return {"Cache-Control": "private, no-store"}


def _json_private(payload: Any, *, status_code: int = 200) -> JSONResponse:
    return JSONResponse(content=payload, status_code=status_code, headers=_private_no_store())


def _error_response(exc: ProvisioningError) -> JSONResponse:
    return _json_private({"error": exc.message}, status_code=exc.status_code)


def _internal_error() -> JSONResponse:
    return _json_private({"error": "internal_error"}, status_code=500)


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated()
    return token.strip()


def _resolve_caller_sync(token: str) -> Caller:
    account_id = _get_identity().resolve_caller_from_token(token)
    roles = _get_roles().list_roles(account_id)
    student_record_id = None
    if "student" in roles:
        rec = _get_directory().find_student_by_account(account_id)
        student_record_id = rec.id if rec else None
    return Caller.build(account_id, roles, student_record_id=student_record_id)


async def _resolve_admin(request: Request) -> Caller:
    """Return the calling admin or raise Unauthenticated/PermissionDenied."""
    token = _bearer_token(request)
    caller = await asyncio.to_thread(_resolve_caller_sync, token)
    if not caller.is_admin:
        raise PermissionDenied("Admin access required")
    return caller


def _decode_picture(payload: ProfilePicturePayload | None) -> ProfilePicture | None:
    if payload is None or not payload.data:
        return None
    raw = payload.data
    # Accept data URLs as produced by browsers' FileReader.readAsDataURL
    if raw.startswith("data:") and "," in raw:
        raw = raw.split(",", 1)[1]
    try:
        content = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidArgument("Profile picture data must be base64 encoded") from None
    return ProfilePicture(content=content, content_type=(payload.content_type or "").strip())


def _to_request(payload: CreateUserPayload) -> ProvisionRequest:
    student = None
    if payload.student_data is not None:
        sd = payload.student_data
        student = StudentData(
            student_id=sd.student_id or "",
            course=sd.course or "",
            semester=sd.semester if sd.semester is not None else 0,
            emergency_contact=sd.emergency_contact,
        )
    staff = None
    if payload.staff_data is not None:
        st = payload.staff_data
        staff = StaffData(employee_id=st.employee_id or "", department=st.department or "", position=st.position or "")
    return ProvisionRequest(
        email=payload.email or "",
        full_name=payload.full_name or "",
        role=payload.role or "",
        phone=payload.phone,
        address=payload.address,
        password=payload.password,
        profile_picture_url=payload.profile_picture_url,
        profile_picture=_decode_picture(payload.profile_picture),
        student=student,
        staff=staff,
    )


# --- Endpoints --------------------------------------------------------------------

@users_router.post("/api/admin/users")
async def create_user(request: Request, payload: CreateUserPayload):
    """Provision a student or staff account (admins only).

    Behavior:
        - 200 `{success, userId, message}`; `temporaryPassword` is included
          only when the server generated the credential.
        - Picture upload failures do not fail the request.

    Permissions:
        Caller must hold the admin effective role (bearer token).
    """
    try:
        caller = await _resolve_admin(request)
        req = _to_request(payload)
        uc = ProvisionUserUseCase(
            identity=_get_identity(), roles=_get_roles(), directory=_get_directory(), storage=_get_storage()
        )
        result = await asyncio.to_thread(uc.execute, caller, req)
    except ProvisioningError as exc:
        return _error_response(exc)
    except Exception:
        logger.exception("Unexpected error while provisioning a user")
        return _internal_error()
    body: dict[str, Any] = {"success": True, "userId": result.account_id, "message": result.message}
    if result.credential_generated and result.one_time_credential:
        body["temporaryPassword"] = result.one_time_credential
    if result.profile_picture_url:
        body["profilePictureUrl"] = result.profile_picture_url
    return _json_private(body)


@users_router.post("/api/admin/users/delete")
async def delete_user(request: Request, payload: DeleteUserPayload):
    """De-provision a user by record id (or account id) (admins only).

    Behavior:
        Best-effort cleanup; partial failures come back as `warnings`. Only a
        failed identity provider delete turns into an error response.
    """
    try:
        caller = await _resolve_admin(request)
        uc = DeprovisionUserUseCase(identity=_get_identity(), roles=_get_roles(), directory=_get_directory())
        result = await asyncio.to_thread(uc.execute, caller, payload.user_id or "", payload.user_type)
    except ProvisioningError as exc:
        return _error_response(exc)
    except Exception:
        logger.exception("Unexpected error while deleting a user")
        return _internal_error()
    return _json_private({"success": True, "message": result.message, "warnings": result.warnings})


@users_router.post("/api/admin/users/welcome-email")
async def send_welcome(request: Request, payload: WelcomeEmailPayload):
    """Send the welcome email with a one-time credential (admins only).

    Separate from provisioning: a failure here never affects the account.
    """
    try:
        await _resolve_admin(request)
        msg = WelcomeEmail(
            to=(payload.email or "").strip(),
            display_name=(payload.full_name or "").strip() or (payload.email or ""),
            role=(payload.role or "").strip() or "user",
            temporary_password=payload.temporary_password or "",
            login_url=payload.login_url,
        )
        message_id = await asyncio.to_thread(_EMAIL_SENDER, msg)
    except ProvisioningError as exc:
        return _error_response(exc)
    except Exception:
        logger.exception("Unexpected error while sending a welcome email")
        return _internal_error()
    return _json_private({"success": True, "id": message_id})


@users_router.get("/api/admin/identifiers/next")
async def next_user_identifier(request: Request, role: str = ""):
    """Suggest the next free student/employee number for the current year."""
    try:
        await _resolve_admin(request)
        try:
            prefix = prefix_for_role(role)
        except ValueError:
            raise InvalidArgument("Invalid role. Must be student or staff") from None
        kind = (role or "").lower()
        year = datetime.now(timezone.utc).year
        existing = await asyncio.to_thread(_get_directory().list_identifiers, kind, f"{prefix}{year}")
        identifier = next_identifier(prefix, existing, year)
    except ProvisioningError as exc:
        return _error_response(exc)
    except Exception:
        logger.exception("Unexpected error while suggesting an identifier")
        return _internal_error()
    return _json_private({"identifier": identifier})


__all__ = [
    "users_router",
    "set_identity_provider",
    "set_role_store",
    "set_directory_repo",
    "set_storage_adapter",
    "set_email_sender",
]
