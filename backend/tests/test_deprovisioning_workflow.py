"""
De-provisioning workflow: best-effort cleanup in dependency order; only the
final identity provider delete decides success.
"""
from __future__ import annotations

import pytest

from backend.authorization import policy
from backend.authorization.policy import Caller
from backend.provisioning.models import ProvisionRequest, StaffData, StudentData
from backend.provisioning.usecases import DeprovisionUserUseCase, ProvisionUserUseCase
from backend.provisioning.usecases import deprovision as deprovision_mod
from backend.shared.errors import InvalidArgument, NotFound, PermissionDenied, Unavailable
from utils.fakes import FakeIdentityProvider, FlakyDirectoryRepo, FlakyRoleStore  # type: ignore


ADMIN = Caller.build("admin-1", ["admin"])
STAFF = Caller.build("staff-1", ["staff"])


@pytest.fixture
def world():
    identity = FakeIdentityProvider()
    roles = FlakyRoleStore()
    directory = FlakyDirectoryRepo()
    provision = ProvisionUserUseCase(identity=identity, roles=roles, directory=directory)
    deprovision = DeprovisionUserUseCase(identity=identity, roles=roles, directory=directory)
    return identity, roles, directory, provision, deprovision


def _student(provision) -> str:
    res = provision.execute(
        ADMIN,
        ProvisionRequest(
            email="a@x.com",
            full_name="Ada",
            role="student",
            student=StudentData(student_id="STU20250001", course="CS", semester=1),
        ),
    )
    return res.account_id


def test_scenario_b_delete_by_student_record_then_repeat_fails_only_at_identity_step(world):
    identity, roles, directory, provision, deprovision = world
    account_id = _student(provision)
    record_id = directory.find_student_by_account(account_id).id

    res = deprovision.execute(ADMIN, record_id, "student")
    assert res.ok is True
    assert res.account_id == account_id
    assert res.message == "User deleted successfully"
    assert res.warnings == []
    assert directory.students == {}
    assert roles.list_roles(account_id) == []
    assert directory.get_profile(account_id) is None
    assert account_id not in identity.accounts

    with pytest.raises(NotFound):
        deprovision.execute(ADMIN, record_id, "student")
    # Only the identity step was attempted against the provider on the repeat
    assert identity.calls[-1] == "delete_account"


def test_delete_by_account_id_finds_owned_record(world):
    identity, roles, directory, provision, deprovision = world
    account_id = _student(provision)
    res = deprovision.execute(ADMIN, account_id, "student")
    assert res.ok
    assert directory.students == {}


def test_staff_record_deleted_without_role_hint(world):
    identity, roles, directory, provision, deprovision = world
    res = provision.execute(
        ADMIN,
        ProvisionRequest(
            email="s@x.com",
            full_name="Sam",
            role="staff",
            staff=StaffData(employee_id="EMP20250001", department="IT", position="Lecturer"),
        ),
    )
    record_id = directory.find_staff_by_account(res.account_id).id
    out = deprovision.execute(ADMIN, record_id, None)
    assert out.account_id == res.account_id
    assert directory.staff == {}


def test_intermediate_failures_become_warnings_and_later_steps_still_run(world):
    identity, roles, directory, provision, deprovision = world
    account_id = _student(provision)
    directory.fail_on.add("delete_student")
    roles.fail_on.add("revoke_all")

    res = deprovision.execute(ADMIN, account_id, "student")
    assert res.ok is True
    assert len(res.warnings) == 2
    assert res.warnings[0].startswith("delete_student_record failed")
    assert res.warnings[1].startswith("delete_role_assignments failed")
    # Profile and account were still removed
    assert directory.get_profile(account_id) is None
    assert account_id not in identity.accounts


def test_identity_failure_propagates_after_cleanup(world):
    identity, roles, directory, provision, deprovision = world
    account_id = _student(provision)
    identity.fail_on.add("delete_account")
    with pytest.raises(Unavailable):
        deprovision.execute(ADMIN, account_id, "student")
    # Earlier steps were still attempted
    assert directory.students == {}
    assert roles.list_roles(account_id) == []


def test_non_admin_denied_before_any_delete(world):
    identity, roles, directory, provision, deprovision = world
    account_id = _student(provision)
    with pytest.raises(PermissionDenied):
        deprovision.execute(STAFF, account_id, "student")
    assert account_id in identity.accounts
    assert roles.list_roles(account_id) == ["student"]


@pytest.mark.parametrize("ref, hint", [("", "student"), ("x", "parent")])
def test_invalid_arguments(world, ref, hint):
    *_, deprovision = world
    with pytest.raises(InvalidArgument):
        deprovision.execute(ADMIN, ref, hint)


def test_admin_cannot_delete_self(world):
    identity, roles, directory, provision, deprovision = world
    with pytest.raises(InvalidArgument):
        deprovision.execute(ADMIN, "admin-1", None)
    assert identity.calls == []


@pytest.mark.parametrize("kind, table", [("student", "students"), ("staff", "staff")])
def test_delete_checks_record_table_for_target_kind(world, monkeypatch: pytest.MonkeyPatch, kind, table):
    identity, roles, directory, provision, deprovision = world
    if kind == "student":
        account_id = _student(provision)
    else:
        account_id = provision.execute(
            ADMIN,
            ProvisionRequest(
                email="s@x.com",
                full_name="Sam",
                role="staff",
                staff=StaffData(employee_id="EMP20250001", department="IT", position="Lecturer"),
            ),
        ).account_id
    checked = []

    def recording_require(caller, tbl, op, row=None):
        checked.append((tbl, op))
        return policy.require(caller, tbl, op, row)

    monkeypatch.setattr(deprovision_mod, "require", recording_require)
    res = deprovision.execute(ADMIN, account_id, kind)
    assert res.ok
    assert checked == [(table, "delete"), ("user_roles", "delete"), ("profiles", "delete")]
