"""
Admin users API: bearer auth, admin gate, status mapping and no-store headers.

Collaborators are swapped through the `set_*` helpers of the users route; the
workflows themselves run unchanged.
"""
from __future__ import annotations

import base64
from datetime import datetime, timezone

import httpx
import pytest
from httpx import ASGITransport

from backend.provisioning.models import StudentData
from backend.web import main
from backend.web.routes import users
from utils.fakes import FakeBlobStorage, FakeIdentityProvider, FlakyDirectoryRepo, FlakyRoleStore  # type: ignore


pytestmark = pytest.mark.anyio("asyncio")

NO_STORE = "private, no-store"


async def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test")


class _Env:
    def __init__(self, *, repo_fail=(), storage=None):
        self.identity = FakeIdentityProvider()
        self.roles = FlakyRoleStore()
        self.directory = FlakyDirectoryRepo(fail_on=set(repo_fail))
        users.set_identity_provider(self.identity)
        users.set_role_store(self.roles)
        users.set_directory_repo(self.directory)
        users.set_storage_adapter(storage)
        self.admin_id = self._seed("admin@school.test", "tok-admin", "admin")
        self.staff_id = self._seed("staff@school.test", "tok-staff", "staff")

    def _seed(self, email, token, role):
        account_id = self.identity.seed(email, token)
        self.roles.assign_role(account_id=account_id, role=role, created_by=None)
        return account_id


def _auth(token="tok-admin") -> dict:
    return {"Authorization": f"Bearer {token}"}


STUDENT_BODY = {
    "email": "new.student@school.test",
    "fullName": "New Student",
    "role": "student",
    "studentData": {"studentId": "STU20250001", "course": "CS", "semester": 1},
}


@pytest.mark.anyio
async def test_create_without_token_is_401():
    _Env()
    async with (await _client()) as c:
        r = await c.post("/api/admin/users", json=STUDENT_BODY)
    assert r.status_code == 401
    assert r.json() == {"error": "Unauthorized"}
    assert r.headers.get("Cache-Control") == NO_STORE


@pytest.mark.anyio
async def test_unknown_token_is_401():
    _Env()
    async with (await _client()) as c:
        r = await c.post("/api/admin/users", json=STUDENT_BODY, headers=_auth("tok-unknown"))
    assert r.status_code == 401


@pytest.mark.anyio
async def test_staff_caller_is_403_and_nothing_created():
    env = _Env()
    accounts_before = dict(env.identity.accounts)
    async with (await _client()) as c:
        r = await c.post("/api/admin/users", json=STUDENT_BODY, headers=_auth("tok-staff"))
    assert r.status_code == 403
    assert r.json() == {"error": "Admin access required"}
    assert env.identity.accounts == accounts_before


@pytest.mark.anyio
async def test_admin_creates_student_and_gets_one_time_password():
    env = _Env()
    async with (await _client()) as c:
        r = await c.post("/api/admin/users", json=STUDENT_BODY, headers=_auth())
    assert r.status_code == 200
    assert r.headers.get("Cache-Control") == NO_STORE
    body = r.json()
    assert body["success"] is True
    assert body["message"] == "User New Student created successfully"
    assert env.identity.accounts[body["userId"]].password == body["temporaryPassword"]
    assert env.roles.list_roles(body["userId"]) == ["student"]
    rec = env.directory.find_student_by_account(body["userId"])
    assert rec.registered_by == env.admin_id


@pytest.mark.anyio
async def test_supplied_password_not_echoed():
    _Env()
    async with (await _client()) as c:
        r = await c.post("/api/admin/users", json={**STUDENT_BODY, "password": "Chosen#Pass1"}, headers=_auth())
    assert r.status_code == 200
    assert "temporaryPassword" not in r.json()


@pytest.mark.anyio
async def test_create_with_picture_returns_public_url():
    storage = FakeBlobStorage()
    _Env(storage=storage)
    picture = {"contentType": "image/png", "data": "data:image/png;base64," + base64.b64encode(b"\x89PNG").decode()}
    async with (await _client()) as c:
        r = await c.post("/api/admin/users", json={**STUDENT_BODY, "profilePicture": picture}, headers=_auth())
    assert r.status_code == 200
    user_id = r.json()["userId"]
    assert r.json()["profilePictureUrl"].endswith(f"/profile-pictures/{user_id}/{user_id}.png")
    assert storage.objects[f"profile-pictures/{user_id}/{user_id}.png"] == b"\x89PNG"


@pytest.mark.anyio
@pytest.mark.parametrize(
    "body",
    [
        {**STUDENT_BODY, "email": "nope"},
        {**STUDENT_BODY, "role": "admin"},
        {k: v for k, v in STUDENT_BODY.items() if k != "studentData"},
        {**STUDENT_BODY, "profilePicture": {"contentType": "image/png", "data": "!!not-base64!!"}},
        {**STUDENT_BODY, "studentData": {"studentId": "S1", "course": "CS", "semester": "first"}},
    ],
    ids=["email", "role", "missing-record", "picture", "semester-type"],
)
async def test_invalid_body_is_400_with_error(body):
    env = _Env()
    before = set(env.identity.accounts)
    async with (await _client()) as c:
        r = await c.post("/api/admin/users", json=body, headers=_auth())
    assert r.status_code == 400
    assert "error" in r.json()
    assert r.headers.get("Cache-Control") == NO_STORE
    assert set(env.identity.accounts) == before


@pytest.mark.anyio
async def test_duplicate_student_id_is_400_and_rolled_back():
    env = _Env()
    async with (await _client()) as c:
        first = await c.post("/api/admin/users", json=STUDENT_BODY, headers=_auth())
        accounts = set(env.identity.accounts)
        r = await c.post("/api/admin/users", json={**STUDENT_BODY, "email": "other@school.test"}, headers=_auth())
    assert first.status_code == 200
    assert r.status_code == 400
    assert "STU20250001" in r.json()["error"]
    assert set(env.identity.accounts) == accounts


@pytest.mark.anyio
async def test_incomplete_rollback_is_500():
    _Env(repo_fail={"insert_student", "delete_profile"})
    async with (await _client()) as c:
        r = await c.post("/api/admin/users", json=STUDENT_BODY, headers=_auth())
    assert r.status_code == 500
    assert "error" in r.json()
    assert r.headers.get("Cache-Control") == NO_STORE


@pytest.mark.anyio
async def test_delete_user_by_record_id():
    env = _Env()
    async with (await _client()) as c:
        created = await c.post("/api/admin/users", json=STUDENT_BODY, headers=_auth())
        user_id = created.json()["userId"]
        record_id = env.directory.find_student_by_account(user_id).id
        r = await c.post("/api/admin/users/delete", json={"userId": record_id, "userType": "student"}, headers=_auth())
        again = await c.post("/api/admin/users/delete", json={"userId": record_id, "userType": "student"}, headers=_auth())
    assert r.status_code == 200
    assert r.json() == {"success": True, "message": "User deleted successfully", "warnings": []}
    assert user_id not in env.identity.accounts
    assert again.status_code == 400
    assert again.json() == {"error": "User not found"}


@pytest.mark.anyio
async def test_delete_reports_warnings():
    env = _Env()
    async with (await _client()) as c:
        created = await c.post("/api/admin/users", json=STUDENT_BODY, headers=_auth())
        env.directory.fail_on.add("delete_student")
        r = await c.post(
            "/api/admin/users/delete", json={"userId": created.json()["userId"], "userType": "student"}, headers=_auth()
        )
    assert r.status_code == 200
    assert r.json()["warnings"][0].startswith("delete_student_record failed")


@pytest.mark.anyio
async def test_delete_forbidden_for_staff():
    env = _Env()
    async with (await _client()) as c:
        r = await c.post("/api/admin/users/delete", json={"userId": env.admin_id}, headers=_auth("tok-staff"))
    assert r.status_code == 403
    assert env.admin_id in env.identity.accounts


@pytest.mark.anyio
async def test_welcome_email_uses_configured_sender():
    _Env()
    sent = []

    def fake_sender(msg):
        sent.append(msg)
        return "email-1"

    users.set_email_sender(fake_sender)
    body = {"email": "new@school.test", "fullName": "New", "role": "student", "temporaryPassword": "Tmp#Pass123"}
    async with (await _client()) as c:
        r = await c.post("/api/admin/users/welcome-email", json=body, headers=_auth())
    assert r.status_code == 200
    assert r.json() == {"success": True, "id": "email-1"}
    assert sent[0].to == "new@school.test" and sent[0].temporary_password == "Tmp#Pass123"


@pytest.mark.anyio
async def test_welcome_email_without_provider_key_is_503():
    _Env()
    body = {"email": "new@school.test", "fullName": "New", "role": "student", "temporaryPassword": "Tmp#Pass123"}
    async with (await _client()) as c:
        r = await c.post("/api/admin/users/welcome-email", json=body, headers=_auth())
    assert r.status_code == 503
    assert r.json() == {"error": "email_not_configured"}


@pytest.mark.anyio
async def test_next_identifier_suggestion():
    env = _Env()
    year = datetime.now(timezone.utc).year
    env.directory.insert_student(
        account_id="acc-x", data=StudentData(f"STU{year}0004", "CS", 1), registered_by=env.admin_id
    )
    async with (await _client()) as c:
        r = await c.get("/api/admin/identifiers/next", params={"role": "student"}, headers=_auth())
        staff = await c.get("/api/admin/identifiers/next", params={"role": "staff"}, headers=_auth())
        bad = await c.get("/api/admin/identifiers/next", params={"role": "admin"}, headers=_auth())
    assert r.json() == {"identifier": f"STU{year}0005"}
    assert staff.json() == {"identifier": f"EMP{year}0001"}
    assert bad.status_code == 400


@pytest.mark.anyio
async def test_health_is_public_and_not_cached():
    async with (await _client()) as c:
        r = await c.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "healthy"}
    assert r.headers.get("Cache-Control") == NO_STORE
    assert r.headers.get("X-Content-Type-Options") == "nosniff"
    assert "Strict-Transport-Security" not in r.headers
