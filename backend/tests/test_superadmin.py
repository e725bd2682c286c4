# Overview: Pytest coverage for cross-tenant superadmin operations.

from passpilot.extensions import db
from passpilot.models import (
    School, User, Grade, Student, Pass, KioskDevice, RegistrationToken, TeacherGradeMap, Audit,
)
from passpilot.services import kiosk_service, pass_service, registration_service, roster_service


class TestSchools:

    def test_create_and_list(self, superadmin_client):
        resp = superadmin_client.post("/api/sa/schools", json={"name": "Lincoln Elementary", "seatsAllowed": 50})
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["seatsAllowed"] == 50
        assert data["seatsUsed"] == 0
        assert data["active"] is True

        names = [s["name"] for s in superadmin_client.get("/api/sa/schools").get_json()["data"]]
        assert "Lincoln Elementary" in names

    def test_create_validation(self, superadmin_client):
        assert superadmin_client.post("/api/sa/schools", json={}).status_code == 400
        assert superadmin_client.post("/api/sa/schools", json={"name": "X"}).status_code == 400
        assert superadmin_client.post("/api/sa/schools", json={"name": "Big", "seatsAllowed": 0}).status_code == 400
        assert superadmin_client.post("/api/sa/schools", json={"name": "Big", "seatsAllowed": 2.5}).status_code == 400
        assert superadmin_client.post("/api/sa/schools", json={"name": "Big", "color": "red"}).status_code == 400

    def test_update_and_deactivate(self, app, superadmin_client, school_a, teacher_a):
        resp = superadmin_client.patch(f"/api/sa/schools/{school_a.id}", json={"seatsAllowed": 75, "active": False})
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["seatsAllowed"] == 75
        assert data["active"] is False

        client = app.test_client()
        resp = client.post("/api/auth/login", json={
            "email": teacher_a.email, "password": "Password123!", "schoolId": school_a.id,
        })
        assert resp.status_code == 401

    def test_unknown_school(self, superadmin_client):
        assert superadmin_client.patch("/api/sa/schools/9999", json={"name": "Nope"}).status_code == 404
        assert superadmin_client.delete("/api/sa/schools/9999").status_code == 404


class TestDeleteSchool:

    def test_cascade(self, db_session, superadmin_client, school_a, school_b, admin_a, teacher_a, grade_a,
                     student_a, student_b):
        roster_service.set_teacher_grade_selection(teacher_a.id, school_a.id, [grade_a.id])
        pass_service.create_pass(school_a.id, student_id=student_a.id, pass_type="general",
                                 issued_by_user_id=teacher_a.id)
        kiosk_service.create_device(school_a.id, "101", "1234", admin_a.id)
        registration_service.create_invite(email="new@lincoln.edu", role="teacher", school_id=school_a.id,
                                           created_by_user_id=admin_a.id)

        resp = superadmin_client.delete(f"/api/sa/schools/{school_a.id}")
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["schoolId"] == school_a.id
        assert data["deleted"] == {
            "passes": 1, "teacherGradeMap": 1, "students": 1, "grades": 1,
            "kiosks": 1, "invites": 1, "users": 2,
        }

        assert db_session.get(School, school_a.id) is None
        for model in (User, Grade, Student, Pass, KioskDevice, RegistrationToken, TeacherGradeMap):
            assert db_session.query(model).filter_by(school_id=school_a.id).count() == 0

        # Other tenants untouched
        assert db_session.get(School, school_b.id) is not None
        assert db_session.query(Student).filter_by(school_id=school_b.id).count() == 1

        # Audit history survives, with deleted actors nulled
        audits = db_session.query(Audit).filter_by(school_id=school_a.id).all()
        assert any(a.action == "SCHOOL_DELETED" for a in audits)
        assert all(a.actor_user_id is None for a in audits if a.action != "SCHOOL_DELETED")

    def test_cannot_delete_own_school(self, superadmin_client, hq_school):
        assert superadmin_client.delete(f"/api/sa/schools/{hq_school.id}").status_code == 409


class TestUsers:

    def test_list_requires_school(self, superadmin_client, school_a, teacher_a):
        assert superadmin_client.get("/api/sa/users").status_code == 400
        data = superadmin_client.get(f"/api/sa/users?schoolId={school_a.id}").get_json()["data"]
        assert [u["email"] for u in data] == [teacher_a.email]

    def test_create_with_password(self, app, superadmin_client, school_a):
        resp = superadmin_client.post("/api/sa/users", json={
            "email": "Admin@Lincoln.edu", "password": "Password123!", "role": "admin",
            "schoolId": school_a.id, "displayName": "Dr. Hibbert",
        })
        assert resp.status_code == 201
        user = resp.get_json()["data"]["user"]
        assert user["email"] == "admin@lincoln.edu"
        assert user["role"] == "admin"

        client = app.test_client()
        resp = client.post("/api/auth/login", json={
            "email": "admin@lincoln.edu", "password": "Password123!", "schoolId": school_a.id,
        })
        assert resp.status_code == 200

    def test_create_without_password_issues_invite(self, db_session, superadmin_client, school_a):
        resp = superadmin_client.post("/api/sa/users", json={
            "email": "invitee@lincoln.edu", "role": "teacher", "schoolId": school_a.id,
        })
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert len(data["code"]) == 6
        assert data["activationUrl"].startswith(f"/activate?schoolId={school_a.id}")
        assert db_session.query(RegistrationToken).count() == 1
        assert db_session.query(User).filter_by(email="invitee@lincoln.edu").count() == 0

    def test_duplicate_email(self, superadmin_client, teacher_a, school_b):
        resp = superadmin_client.post("/api/sa/users", json={
            "email": teacher_a.email, "password": "Password123!", "role": "teacher", "schoolId": school_b.id,
        })
        assert resp.status_code == 409

    def test_promote_across_schools(self, superadmin_client, teacher_b):
        resp = superadmin_client.post(f"/api/sa/users/{teacher_b.id}/promote", json={"role": "superadmin"})
        assert resp.status_code == 200
        assert resp.get_json()["data"]["role"] == "superadmin"

        resp = superadmin_client.post(f"/api/sa/users/{teacher_b.id}/demote", json={"role": "admin"})
        assert resp.status_code == 200
        assert resp.get_json()["data"]["role"] == "admin"

    def test_deactivate_across_schools(self, superadmin_client, teacher_b):
        resp = superadmin_client.patch(f"/api/sa/users/{teacher_b.id}/active", json={"active": False})
        assert resp.status_code == 200
        assert resp.get_json()["data"]["active"] is False

    def test_audits_across_schools(self, superadmin_client, school_a, school_b):
        superadmin_client.patch(f"/api/sa/schools/{school_a.id}", json={"name": "Lincoln Elem"})
        superadmin_client.patch(f"/api/sa/schools/{school_b.id}", json={"name": "Roosevelt MS"})

        all_audits = superadmin_client.get("/api/sa/audits").get_json()["data"]
        assert {a["schoolId"] for a in all_audits} >= {school_a.id, school_b.id}

        only_a = superadmin_client.get(f"/api/sa/audits?schoolId={school_a.id}").get_json()["data"]
        assert {a["schoolId"] for a in only_a} == {school_a.id}
        assert db.session.query(Audit).count() == 2
