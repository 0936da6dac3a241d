"""
Directory repository contract plus an in-memory implementation.

Holds the rows the provisioning workflow writes besides role assignments:
profiles, student records and staff records. The in-memory repo mirrors the
unique constraints of the Postgres schema so tests observe the same conflicts.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Protocol
from uuid import uuid4
import threading

from backend.shared.errors import Conflict

from .models import Profile, StaffData, StaffRecord, StudentData, StudentRecord


class DirectoryRepoProtocol(Protocol):
    def insert_profile(self, profile: Profile) -> Profile: ...

    def get_profile(self, account_id: str) -> Optional[Profile]: ...

    def set_profile_picture(self, account_id: str, url: str) -> None: ...

    def delete_profile(self, account_id: str) -> bool: ...

    def insert_student(self, *, account_id: str, data: StudentData, registered_by: Optional[str]) -> StudentRecord: ...

    def insert_staff(self, *, account_id: str, data: StaffData) -> StaffRecord: ...

    def get_student(self, record_id: str) -> Optional[StudentRecord]: ...

    def get_staff(self, record_id: str) -> Optional[StaffRecord]: ...

    def find_student_by_account(self, account_id: str) -> Optional[StudentRecord]: ...

    def find_staff_by_account(self, account_id: str) -> Optional[StaffRecord]: ...

    def delete_student(self, record_id: str) -> bool: ...

    def delete_staff(self, record_id: str) -> bool: ...

    def list_identifiers(self, kind: str, prefix: str) -> List[str]: ...


class InMemoryDirectoryRepo:
    def __init__(self) -> None:
        self.profiles: Dict[str, Profile] = {}
        self.students: Dict[str, StudentRecord] = {}
        self.staff: Dict[str, StaffRecord] = {}
        self._lock = threading.Lock()

    # --- Profiles ---------------------------------------------------------------
    def insert_profile(self, profile: Profile) -> Profile:
        with self._lock:
            if profile.id in self.profiles:
                raise Conflict("Profile already exists")
            self.profiles[profile.id] = profile
            return profile

    def get_profile(self, account_id: str) -> Optional[Profile]:
        return self.profiles.get(account_id)

    def set_profile_picture(self, account_id: str, url: str) -> None:
        with self._lock:
            prof = self.profiles.get(account_id)
            if prof is None:
                raise LookupError("profile_not_found")
            prof.profile_picture_url = url

    def delete_profile(self, account_id: str) -> bool:
        with self._lock:
            return self.profiles.pop(account_id, None) is not None

    # --- Role-specific records ----------------------------------------------------
    def insert_student(self, *, account_id: str, data: StudentData, registered_by: Optional[str]) -> StudentRecord:
        with self._lock:
            if any(s.student_id == data.student_id for s in self.students.values()):
                raise Conflict(f"Student ID {data.student_id} is already in use")
            if any(s.user_id == account_id for s in self.students.values()):
                raise Conflict("Student record already exists for this account")
            rec = StudentRecord(
                id=str(uuid4()),
                user_id=account_id,
                student_id=data.student_id,
                course=data.course,
                semester=int(data.semester),
                emergency_contact=data.emergency_contact,
                registered_by=registered_by,
            )
            self.students[rec.id] = rec
            return rec

    def insert_staff(self, *, account_id: str, data: StaffData) -> StaffRecord:
        with self._lock:
            if any(s.employee_id == data.employee_id for s in self.staff.values()):
                raise Conflict(f"Employee ID {data.employee_id} is already in use")
            if any(s.user_id == account_id for s in self.staff.values()):
                raise Conflict("Staff record already exists for this account")
            rec = StaffRecord(
                id=str(uuid4()),
                user_id=account_id,
                employee_id=data.employee_id,
                department=data.department,
                position=data.position,
            )
            self.staff[rec.id] = rec
            return rec

    def get_student(self, record_id: str) -> Optional[StudentRecord]:
        return self.students.get(record_id)

    def get_staff(self, record_id: str) -> Optional[StaffRecord]:
        return self.staff.get(record_id)

    def find_student_by_account(self, account_id: str) -> Optional[StudentRecord]:
        return next((s for s in self.students.values() if s.user_id == account_id), None)

    def find_staff_by_account(self, account_id: str) -> Optional[StaffRecord]:
        return next((s for s in self.staff.values() if s.user_id == account_id), None)

    def delete_student(self, record_id: str) -> bool:
        with self._lock:
            return self.students.pop(record_id, None) is not None

    def delete_staff(self, record_id: str) -> bool:
        with self._lock:
            return self.staff.pop(record_id, None) is not None

    def list_identifiers(self, kind: str, prefix: str) -> List[str]:
        if kind == "student":
            values = [s.student_id for s in self.students.values()]
        elif kind == "staff":
            values = [s.employee_id for s in self.staff.values()]
        else:
            raise ValueError("invalid_kind")
        return [v for v in values if v.startswith(prefix)]


__all__ = ["DirectoryRepoProtocol", "InMemoryDirectoryRepo"]
