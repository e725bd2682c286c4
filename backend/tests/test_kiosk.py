# Overview: Pytest coverage for kiosk devices: login, pass issuing and token rotation.

import pytest

from passpilot.models import Pass
from passpilot.services import kiosk_service, pass_service, session_service


PIN = "2468"


@pytest.fixture(scope='function')
def device_a(school_a, admin_a):
    return kiosk_service.create_device(school_a.id, "Room 101", PIN, admin_a.id)


def kiosk_login(app, device, pin=PIN):
    client = app.test_client()
    resp = client.post("/kiosk/login", json={"schoolId": device.school_id, "room": device.room, "pin": pin})
    assert resp.status_code == 200, resp.get_json()
    return client


class TestKioskLogin:

    def test_login_sets_kiosk_cookie(self, app, client, device_a):
        resp = client.post("/kiosk/login", json={"schoolId": device_a.school_id, "room": "Room 101", "pin": PIN})
        assert resp.status_code == 200
        assert resp.get_json()["data"]["kiosk"]["room"] == "Room 101"
        assert app.config["KIOSK_COOKIE_NAME"] in resp.headers.get("Set-Cookie")

        me = client.get("/kiosk/me")
        assert me.status_code == 200
        assert me.get_json()["data"]["kiosk"]["id"] == device_a.id

    def test_wrong_pin(self, client, device_a):
        resp = client.post("/kiosk/login", json={"schoolId": device_a.school_id, "room": "Room 101", "pin": "0000"})
        assert resp.status_code == 401

    def test_wrong_school(self, client, device_a, school_b):
        resp = client.post("/kiosk/login", json={"schoolId": school_b.id, "room": "Room 101", "pin": PIN})
        assert resp.status_code == 401

    def test_missing_fields(self, client, db_session):
        assert client.post("/kiosk/login", json={"room": "Room 101"}).status_code == 400

    def test_inactive_device(self, client, db_session, device_a):
        device_a.active = False
        db_session.commit()
        resp = client.post("/kiosk/login", json={"schoolId": device_a.school_id, "room": "Room 101", "pin": PIN})
        assert resp.status_code == 401

    def test_user_cookie_is_not_a_kiosk_session(self, teacher_client):
        assert teacher_client.get("/kiosk/me").status_code == 401

    def test_logout(self, app, device_a):
        client = kiosk_login(app, device_a)
        client.post("/kiosk/logout")
        assert client.get("/kiosk/me").status_code == 401


class TestKioskPasses:

    def test_issue_and_return(self, app, db_session, device_a, student_a):
        client = kiosk_login(app, device_a)

        resp = client.post("/kiosk/passes", json={"studentId": student_a.id, "type": "general"})
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["kioskDeviceId"] == device_a.id
        assert data["issuedByUserId"] is None
        assert data["issuedBy"] == "Kiosk (Room 101)"

        active = client.get("/kiosk/passes/active").get_json()["data"]
        assert [p["id"] for p in active] == [data["id"]]

        resp = client.patch(f"/kiosk/passes/{data['id']}/return")
        assert resp.status_code == 200
        assert resp.get_json()["data"]["status"] == "returned"
        assert client.get("/kiosk/passes/active").get_json()["data"] == []

    def test_kiosk_respects_one_active_pass(self, app, device_a, teacher_a, student_a):
        pass_service.create_pass(student_a.school_id, student_id=student_a.id, pass_type="general",
                                 issued_by_user_id=teacher_a.id)
        client = kiosk_login(app, device_a)
        resp = client.post("/kiosk/passes", json={"studentId": student_a.id, "type": "nurse"})
        assert resp.status_code == 409

    def test_kiosk_students_are_tenant_scoped(self, app, device_a, student_a, student_b):
        client = kiosk_login(app, device_a)
        names = [s["name"] for s in client.get("/kiosk/students").get_json()["data"]]
        assert names == ["Alice Anderson"]

    def test_kiosk_cannot_use_foreign_school(self, app, db_session, device_a, student_b, school_b):
        client = kiosk_login(app, device_a)
        assert client.post("/kiosk/passes", json={"studentId": student_b.id, "type": "general"}).status_code == 404
        resp = client.post("/kiosk/passes", json={
            "studentId": student_b.id, "type": "general", "schoolId": school_b.id,
        })
        assert resp.status_code == 403
        assert db_session.query(Pass).count() == 0


class TestKioskRotation:

    def test_rotate_ends_existing_sessions(self, app, admin_client, device_a):
        client = kiosk_login(app, device_a)
        assert client.get("/kiosk/me").status_code == 200

        resp = admin_client.post(f"/api/admin/kiosks/{device_a.id}/rotate", json={})
        assert resp.status_code == 200
        assert client.get("/kiosk/me").status_code == 401

        # Same PIN still signs in again
        kiosk_login(app, device_a)

    def test_rotate_with_new_pin(self, app, admin_client, device_a):
        admin_client.post(f"/api/admin/kiosks/{device_a.id}/rotate", json={"pin": "97531"})
        client = app.test_client()
        old = client.post("/kiosk/login", json={"schoolId": device_a.school_id, "room": "Room 101", "pin": PIN})
        assert old.status_code == 401
        kiosk_login(app, device_a, pin="97531")

    def test_deactivate_ends_sessions(self, app, admin_client, device_a):
        client = kiosk_login(app, device_a)
        resp = admin_client.patch(f"/api/admin/kiosks/{device_a.id}/active", json={"active": False})
        assert resp.status_code == 200
        assert client.get("/kiosk/me").status_code == 401

    def test_forged_token_rejected(self, app, device_a):
        client = app.test_client()
        payload = session_service.kiosk_payload(device_a)
        payload["token"] = "guessed"
        client.set_cookie(app.config["KIOSK_COOKIE_NAME"], session_service.create_session(payload))
        assert client.get("/kiosk/me").status_code == 401
