"""Data carried through the provisioning workflows."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class StudentData:
    student_id: str
    course: str
    semester: int
    emergency_contact: Optional[str] = None


@dataclass
class StaffData:
    employee_id: str
    department: str
    position: str


@dataclass
class ProfilePicture:
    content: bytes
    content_type: str


@dataclass
class ProvisionRequest:
    email: str
    full_name: str
    role: str
    phone: Optional[str] = None
    address: Optional[str] = None
    password: Optional[str] = None
    profile_picture_url: Optional[str] = None
    profile_picture: Optional[ProfilePicture] = None
    student: Optional[StudentData] = None
    staff: Optional[StaffData] = None


@dataclass
class ProvisionResult:
    account_id: str
    message: str
    # Returned exactly once to the calling admin; never persisted.
    one_time_credential: Optional[str] = field(default=None, repr=False)
    credential_generated: bool = False
    profile_picture_url: Optional[str] = None


@dataclass
class DeprovisionResult:
    ok: bool
    account_id: str
    message: str
    warnings: List[str] = field(default_factory=list)


@dataclass
class Profile:
    id: str
    email: str
    full_name: str
    phone: Optional[str] = None
    address: Optional[str] = None
    profile_picture_url: Optional[str] = None


@dataclass
class StudentRecord:
    id: str
    user_id: str
    student_id: str
    course: str
    semester: int
    emergency_contact: Optional[str]
    registered_by: Optional[str]
    status: str = "active"


@dataclass
class StaffRecord:
    id: str
    user_id: str
    employee_id: str
    department: str
    position: str


__all__ = [
    "StudentData",
    "StaffData",
    "ProfilePicture",
    "ProvisionRequest",
    "ProvisionResult",
    "DeprovisionResult",
    "Profile",
    "StudentRecord",
    "StaffRecord",
]
