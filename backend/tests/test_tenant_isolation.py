# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that cross-tenant access is denied for core resources.

These tests create two schools with their own admins, teachers, grades and
students, then verify that:
1. A user of school A cannot read or write data of school B
2. Declaring a foreign schoolId (body, query or path) is a 403
3. Ids owned by another school answer 404, revealing nothing
4. Listings only ever contain the caller's school
"""

import pytest

from passpilot.extensions import db
from passpilot.models import Pass
from passpilot.services import pass_service
from passpilot.services.tenant_service import (
    TenantAccessError,
    enforce_tenant,
    get_student_in_school,
    get_grade_in_school,
)
from passpilot.validation import NotFoundError


class TestTenantServiceHelpers:
    """Test tenant_service helper functions."""

    def test_get_student_in_own_school(self, db_session, school_a, student_a):
        result = get_student_in_school(student_a.id, school_a.id)
        assert result.id == student_a.id

    def test_get_student_cross_tenant_is_not_found(self, db_session, school_a, student_b):
        with pytest.raises(NotFoundError):
            get_student_in_school(student_b.id, school_a.id)

    def test_get_grade_nonexistent(self, db_session, school_a):
        with pytest.raises(NotFoundError):
            get_grade_in_school(99999, school_a.id)

    @pytest.mark.parametrize("declared", [None, "", 5, "5", " 5 "])
    def test_enforce_tenant_accepts_matching_or_absent(self, app, declared):
        with app.test_request_context():
            enforce_tenant(5, declared)

    @pytest.mark.parametrize("declared", [6, "6", "abc"])
    def test_enforce_tenant_rejects_mismatch(self, app, declared):
        with app.test_request_context():
            with pytest.raises(TenantAccessError):
                enforce_tenant(5, declared)


class TestDeclaredSchoolId:
    """A schoolId that differs from the session's is rejected, wherever it appears."""

    def test_body_school_id_mismatch(self, teacher_client, school_b, student_a):
        resp = teacher_client.post("/api/passes", json={
            "studentId": student_a.id, "type": "general", "schoolId": school_b.id,
        })
        assert resp.status_code == 403
        assert db.session.query(Pass).count() == 0

    def test_query_school_id_mismatch(self, teacher_client, school_b):
        assert teacher_client.get(f"/api/passes?schoolId={school_b.id}").status_code == 403
        assert teacher_client.get(f"/api/students?schoolId={school_b.id}").status_code == 403

    def test_matching_school_id_is_allowed(self, teacher_client, school_a):
        assert teacher_client.get(f"/api/passes?schoolId={school_a.id}").status_code == 200

    def test_admin_settings_with_foreign_school(self, admin_client, school_a, school_b):
        resp = admin_client.patch("/api/admin/settings", json={"name": "Hijacked", "schoolId": school_b.id})
        assert resp.status_code == 403
        db.session.refresh(school_b)
        assert school_b.name == "Roosevelt Middle"


class TestCrossTenantResources:

    def test_cannot_issue_pass_for_foreign_student(self, teacher_client, student_b):
        resp = teacher_client.post("/api/passes", json={"studentId": student_b.id, "type": "nurse"})
        assert resp.status_code == 404
        assert db.session.query(Pass).count() == 0

    def test_cannot_return_foreign_pass(self, teacher_client, school_b, student_b, teacher_b):
        p = pass_service.create_pass(school_b.id, student_id=student_b.id, pass_type="general",
                                     issued_by_user_id=teacher_b.id)
        resp = teacher_client.patch(f"/api/passes/{p.id}/return")
        assert resp.status_code == 404
        db.session.refresh(p)
        assert p.status == "active"

    def test_cannot_update_foreign_student(self, teacher_client, student_b):
        resp = teacher_client.patch(f"/api/students/{student_b.id}", json={"name": "Renamed"})
        assert resp.status_code == 404

    def test_cannot_select_foreign_grade(self, teacher_client, grade_b):
        resp = teacher_client.post("/api/roster/select", json={"gradeIds": [grade_b.id]})
        assert resp.status_code == 404

    def test_cannot_create_student_in_foreign_grade(self, teacher_client, grade_b):
        resp = teacher_client.post("/api/students", json={"name": "Mallory", "gradeId": grade_b.id})
        assert resp.status_code == 404

    def test_admin_cannot_manage_foreign_user(self, admin_client, teacher_b):
        resp = admin_client.patch(f"/api/admin/users/{teacher_b.id}/active", json={"active": False})
        assert resp.status_code == 404
        db.session.refresh(teacher_b)
        assert teacher_b.active is True

    def test_listings_only_show_own_school(self, admin_client, admin_b_client, student_a, student_b):
        a_names = [s["name"] for s in admin_client.get("/api/students").get_json()["data"]]
        b_names = [s["name"] for s in admin_b_client.get("/api/students").get_json()["data"]]
        assert a_names == ["Alice Anderson"]
        assert b_names == ["Carol Chen"]

    def test_passes_listing_is_per_school(self, admin_client, teacher_a, teacher_b, student_a, student_b):
        pass_service.create_pass(student_a.school_id, student_id=student_a.id, pass_type="general",
                                 issued_by_user_id=teacher_a.id)
        pass_service.create_pass(student_b.school_id, student_id=student_b.id, pass_type="general",
                                 issued_by_user_id=teacher_b.id)

        data = admin_client.get("/api/passes").get_json()["data"]
        assert [p["studentName"] for p in data] == ["Alice Anderson"]

    def test_admin_audits_are_per_school(self, admin_client, admin_b_client, grade_a):
        admin_client.post("/api/admin/kiosks", json={"room": "101", "pin": "1234"})
        b_audits = admin_b_client.get("/api/admin/audits").get_json()["data"]
        assert all(a["action"] != "KIOSK_CREATED" for a in b_audits)
