import uuid

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from sss_backend.core.db import SessionLocal
from sss_backend.core.security import hash_secret
from sss_backend.main import create_app
from sss_backend.models.admin import Admin
from sss_backend.models.blocked_site import BlockedSite
from sss_backend.models.center import Center
from sss_backend.models.student import Student


@pytest.fixture(scope="module")
def client():
    with TestClient(create_app()) as test_client:
        yield test_client


@pytest.fixture()
def seeded(client):
    """Fresh center, student and super admin in the app's own database."""
    tag = uuid.uuid4().hex[:8]
    with SessionLocal() as db:
        center = Center(name=f"Center {tag}", code=f"C{tag}")
        db.add(center)
        db.flush()
        student = Student(student_code=f"S{tag}".upper(), name="Api Student", pin_hash=hash_secret("4321"), center_id=center.id)
        admin = Admin(email=f"root-{tag}@sss.local", name="Root", password_hash=hash_secret("secret-pass"), role="super_admin")
        db.add_all([student, admin])
        db.commit()
        return {
            "center_id": center.id,
            "student_id": student.id,
            "student_code": student.student_code,
            "admin_email": admin.email,
        }


def _student_headers(client, seeded) -> dict:
    resp = client.post("/api/v1/auth/student/login", json={"studentCode": seeded["student_code"].lower(), "pin": "4321"})
    assert resp.status_code == 200
    return {"X-Session-Token": resp.json()["data"]["sessionToken"]}


def _admin_headers(client, seeded) -> dict:
    resp = client.post("/api/v1/auth/admin/login", json={"email": seeded["admin_email"], "password": "secret-pass"})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['data']['token']}"}


def test_health(client):
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["success"] is True


def test_extension_requires_session(client):
    resp = client.get("/api/v1/extension/blocklist")
    assert resp.status_code == 401
    assert resp.json() == {"success": False, "message": "Not authorized, no session token"}


def test_bad_credentials_use_error_envelope(client, seeded):
    resp = client.post("/api/v1/auth/student/login", json={"studentCode": seeded["student_code"], "pin": "0000"})
    assert resp.status_code == 401
    assert resp.json()["success"] is False

    resp = client.get("/api/v1/policies")
    assert resp.status_code == 401


def test_student_blocklist_and_url_check(client, seeded):
    with SessionLocal() as db:
        db.add(
            BlockedSite(
                pattern=f"blocked-{seeded['student_code'].lower()}.example",
                pattern_type="domain",
                category="gaming",
                scope="student",
                scope_id=seeded["student_id"],
            )
        )
        db.commit()
    headers = _student_headers(client, seeded)
    blocked_domain = f"blocked-{seeded['student_code'].lower()}.example"

    resp = client.get("/api/v1/extension/blocklist", headers=headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert blocked_domain in data["blockedDomains"]
    rule = next(r for r in data["rules"] if r["condition"].get("urlFilter") == f"||{blocked_domain}")
    assert rule["priority"] == 53
    assert isinstance(data["version"], str)

    resp = client.post("/api/v1/extension/check-url", json={"url": f"https://{blocked_domain}/", "domain": blocked_domain}, headers=headers)
    assert resp.json()["data"] == {"blocked": True, "reason": "gaming", "category": "gaming"}

    resp = client.post("/api/v1/extension/check-url", json={"url": "https://fine.example/", "domain": "fine.example"}, headers=headers)
    assert resp.json()["data"] == {"blocked": False}


def test_admin_policy_flow_reaches_extension(client, seeded):
    admin = _admin_headers(client, seeded)
    body = {
        "name": "Study hours",
        "policyType": "time_restriction",
        "scope": "student",
        "student": seeded["student_id"],
        "rules": {"allowedHours": {"start": "08:00", "end": "18:00"}, "allowedDays": [1, 2]},
    }
    resp = client.post("/api/v1/policies", json=body, headers=admin)
    assert resp.status_code == 201
    created = resp.json()["data"]
    assert created["rules"]["allowedDays"] == ["monday", "tuesday"]

    student = _student_headers(client, seeded)
    resp = client.get("/api/v1/extension/time-restrictions", headers=student)
    restrictions = resp.json()["data"]
    assert restrictions["enabled"] is True
    assert restrictions["policyId"] == created["id"]
    assert restrictions["timeWindows"] == [{"start": "08:00", "end": "18:00"}]

    resp = client.post("/api/v1/policies", json={**body, "name": "Clash"}, headers=admin)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Priority is already used for this scope"

    resp = client.post("/api/v1/policies", json={**body, "rules": {}, "priority": 9}, headers=admin)
    assert resp.status_code == 400


def test_command_delivered_over_heartbeat(client, seeded):
    admin = _admin_headers(client, seeded)
    resp = client.post(
        "/api/v1/admin/commands",
        json={"type": "FORCE_LOGOUT", "targetType": "student", "targetId": seeded["student_id"]},
        headers=admin,
    )
    assert resp.status_code == 201
    assert resp.json()["data"] == {"count": 1, "batchId": None}

    student = _student_headers(client, seeded)
    resp = client.post("/api/v1/extension/heartbeat", json={"deviceId": "laptop"}, headers=student)
    commands = resp.json()["data"]["commands"]
    assert [c["type"] for c in commands] == ["FORCE_LOGOUT"]
    assert "serverTime" in resp.json()["data"]

    resp = client.post("/api/v1/extension/heartbeat", json={"acknowledgedCommandIds": [commands[0]["id"]]}, headers=student)
    assert resp.json()["data"]["commands"] == []

    resp = client.get(f"/api/v1/admin/commands/{commands[0]['id']}", headers=admin)
    assert resp.json()["data"]["status"] == "acknowledged"


def test_command_pushed_to_live_socket(client, seeded):
    admin = _admin_headers(client, seeded)
    token = _student_headers(client, seeded)["X-Session-Token"]
    with client.websocket_connect(f"/api/v1/live/ws?token={token}") as socket:
        resp = client.post(
            "/api/v1/admin/commands",
            json={"type": "SYNC_BLOCKLIST", "targetType": "student", "targetId": seeded["student_id"]},
            headers=admin,
        )
        assert resp.status_code == 201
        message = socket.receive_json()
    assert message["event"] == "admin_command"
    assert message["data"]["type"] == "SYNC_BLOCKLIST"


def test_live_socket_rejects_bad_token(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/api/v1/live/ws?token=nope"):
            pass


def test_activity_batch_ingestion(client, seeded):
    headers = _student_headers(client, seeded)
    resp = client.post(
        "/api/v1/activity/batch",
        json={
            "entries": [
                {"url": "https://docs.example/page", "visitTime": "2026-03-01T09:00:00Z", "durationSeconds": 12},
                {"url": "https://no-time.example/"},
            ]
        },
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["data"] == {"received": 2, "processed": 1}

    resp = client.post("/api/v1/activity/batch", json={"entries": []}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid request"
