# Overview: Pytest coverage for the pass lifecycle and its one-active-pass invariant.

from datetime import datetime, timedelta

import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from passpilot.extensions import db
from passpilot.models import Pass, Audit
from passpilot.services import pass_service
from passpilot.time_utils import utcnow
from passpilot.validation import ConflictError, ValidationError, NotFoundError
from conftest import login


def _pass(student, user, **kwargs):
    kwargs.setdefault("pass_type", "general")
    return pass_service.create_pass(student.school_id, student_id=student.id, issued_by_user_id=user.id, **kwargs)


class TestCreatePass:

    def test_create_via_api(self, teacher_client, teacher_a, student_a):
        resp = teacher_client.post("/api/passes", json={"studentId": student_a.id, "type": "nurse"})
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["status"] == "active"
        assert data["studentName"] == "Alice Anderson"
        assert data["type"] == "nurse"
        assert data["issuedByUserId"] == teacher_a.id
        assert data["endsAt"] is None
        assert data["startsAt"].endswith("Z")
        assert data["durationMinutes"] == 0

    def test_create_records_audit(self, db_session, teacher_a, student_a):
        p = _pass(student_a, teacher_a)
        audit = db_session.query(Audit).filter_by(action="PASS_CREATED").one()
        assert audit.target_id == p.id
        assert audit.actor_user_id == teacher_a.id

    def test_reason_only_defaults_to_general(self, db_session, teacher_a, student_a):
        p = pass_service.create_pass(student_a.school_id, student_id=student_a.id, reason="Bathroom",
                                     issued_by_user_id=teacher_a.id)
        assert p.type == "general"
        assert p.reason == "Bathroom"

    def test_requires_reason_or_type(self, db_session, teacher_a, student_a):
        with pytest.raises(ValidationError):
            pass_service.create_pass(student_a.school_id, student_id=student_a.id, issued_by_user_id=teacher_a.id)

    def test_invalid_type(self, teacher_client, student_a):
        resp = teacher_client.post("/api/passes", json={"studentId": student_a.id, "type": "lunch"})
        assert resp.status_code == 400

    def test_custom_requires_custom_reason(self, teacher_client, student_a):
        resp = teacher_client.post("/api/passes", json={"studentId": student_a.id, "type": "custom"})
        assert resp.status_code == 400
        resp = teacher_client.post("/api/passes", json={
            "studentId": student_a.id, "type": "custom", "customReason": "Library",
        })
        assert resp.status_code == 200
        assert resp.get_json()["data"]["customReason"] == "Library"

    def test_free_text_student_name(self, db_session, school_a, teacher_a):
        p = pass_service.create_pass(school_a.id, student_name="  Visiting Student ", pass_type="general",
                                     issued_by_user_id=teacher_a.id)
        assert p.student_id is None
        assert p.student_name == "Visiting Student"

    def test_requires_a_student(self, db_session, school_a, teacher_a):
        with pytest.raises(ValidationError):
            pass_service.create_pass(school_a.id, pass_type="general", issued_by_user_id=teacher_a.id)

    def test_unknown_student(self, db_session, school_a, teacher_a):
        with pytest.raises(NotFoundError):
            pass_service.create_pass(school_a.id, student_id=4242, pass_type="general",
                                     issued_by_user_id=teacher_a.id)

    def test_inactive_student(self, db_session, teacher_a, student_a):
        student_a.is_active = False
        db_session.commit()
        with pytest.raises(ValidationError):
            _pass(student_a, teacher_a)


class TestOneActivePassInvariant:

    def test_second_active_pass_is_conflict(self, teacher_client, student_a):
        first = teacher_client.post("/api/passes", json={"studentId": student_a.id, "type": "general"})
        assert first.status_code == 200
        second = teacher_client.post("/api/passes", json={"studentId": student_a.id, "type": "nurse"})
        assert second.status_code == 409
        assert db.session.query(Pass).filter_by(student_id=student_a.id, status="active").count() == 1

    def test_after_return_a_new_pass_is_allowed(self, db_session, teacher_a, student_a):
        p = _pass(student_a, teacher_a)
        pass_service.return_pass(p.id, student_a.school_id, teacher_a.id)
        again = _pass(student_a, teacher_a)
        assert again.status == "active"

    def test_database_index_enforces_invariant(self, db_session, school_a, student_a):
        now = utcnow()
        db_session.add(Pass(school_id=school_a.id, student_id=student_a.id, student_name="Alice",
                            type="general", status="active", starts_at=now))
        db_session.commit()

        db_session.add(Pass(school_id=school_a.id, student_id=student_a.id, student_name="Alice",
                            type="general", status="active", starts_at=now))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_index_allows_many_terminal_passes(self, db_session, school_a, student_a):
        now = utcnow()
        for _ in range(3):
            db_session.add(Pass(school_id=school_a.id, student_id=student_a.id, student_name="Alice",
                                type="general", status="returned", starts_at=now, ends_at=now))
        db_session.commit()
        assert db_session.query(Pass).count() == 3

    def test_lost_race_maps_to_conflict(self, db_session, monkeypatch, teacher_a, student_a):
        _pass(student_a, teacher_a)
        # Simulate a concurrent request that passed the existence check
        monkeypatch.setattr(pass_service, "has_active_pass", lambda student_id: False)

        with pytest.raises(ConflictError):
            _pass(student_a, teacher_a)

        assert db_session.query(Pass).filter_by(student_id=student_a.id, status="active").count() == 1


class TestReturnPass:

    def test_return_sets_ends_at(self, teacher_client, teacher_a, student_a):
        p = _pass(student_a, teacher_a)
        resp = teacher_client.patch(f"/api/passes/{p.id}/return")
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["status"] == "returned"
        assert data["endsAt"] is not None

    def test_return_is_idempotent(self, db_session, teacher_a, student_a):
        p = _pass(student_a, teacher_a)
        first = pass_service.return_pass(p.id, student_a.school_id, teacher_a.id)
        ends_at = first.ends_at

        second = pass_service.return_pass(p.id, student_a.school_id, teacher_a.id)
        assert second.status == "returned"
        assert second.ends_at == ends_at
        assert db_session.query(Audit).filter_by(action="PASS_RETURNED").count() == 1

    def test_return_racing_another_return_keeps_first_ends_at(self, db_session, teacher_a, student_a):
        p = _pass(student_a, teacher_a)
        assert p.status == "active"

        # Another worker returns the pass; this session's copy of the row is now stale
        first_end = datetime(2026, 3, 2, 9, 30, 0)
        db_session.execute(
            update(Pass).where(Pass.id == p.id).values(status="returned", ends_at=first_end),
            execution_options={"synchronize_session": False},
        )
        assert p.status == "active"

        returned = pass_service.return_pass(p.id, student_a.school_id, teacher_a.id)
        assert returned.status == "returned"
        assert returned.ends_at == first_end
        assert db_session.query(Audit).filter_by(action="PASS_RETURNED").count() == 0

    def test_return_racing_expire_keeps_expired(self, db_session, school_a, student_a):
        start = utcnow() - timedelta(hours=10)
        p = Pass(school_id=school_a.id, student_id=student_a.id, student_name="Alice Anderson",
                 type="general", status="active", starts_at=start)
        db_session.add(p)
        db_session.commit()
        assert p.status == "active"

        db_session.execute(
            update(Pass).where(Pass.id == p.id).values(status="expired", ends_at=start + timedelta(hours=4)),
            execution_options={"synchronize_session": False},
        )

        returned = pass_service.return_pass(p.id, school_a.id)
        assert returned.status == "expired"
        assert returned.ends_at == start + timedelta(hours=4)

    def test_return_unknown_pass(self, teacher_client):
        assert teacher_client.patch("/api/passes/999/return").status_code == 404


class TestDuration:

    @pytest.mark.parametrize(
        "seconds,expected",
        [(0, 0), (29, 0), (30, 1), (89, 1), (90, 2), (600, 10), (-5, 0)],
    )
    def test_rounding(self, seconds, expected):
        start = datetime(2026, 3, 2, 9, 0, 0)
        p = Pass(starts_at=start, ends_at=start + timedelta(seconds=seconds))
        assert pass_service.duration_minutes(p) == expected

    def test_active_pass_uses_now(self):
        start = datetime(2026, 3, 2, 9, 0, 0)
        p = Pass(starts_at=start, ends_at=None)
        assert pass_service.duration_minutes(p, now=start + timedelta(minutes=12)) == 12


class TestListPasses:

    def test_teacher_default_scope_is_mine(self, db_session, app, teacher_a, admin_a, student_a, student_a2,
                                           grade_a):
        _pass(student_a2, admin_a)
        _pass(student_a, admin_a)

        client = login(app, teacher_a.email, teacher_a.school_id)
        assert client.get("/api/passes").get_json()["data"] == []

        client.post("/api/roster/select", json={"gradeIds": [grade_a.id]})
        data = client.get("/api/passes").get_json()["data"]
        assert [p["studentName"] for p in data] == ["Alice Anderson"]

    def test_mine_includes_passes_i_issued(self, teacher_client, teacher_a, student_a2):
        _pass(student_a2, teacher_a)
        data = teacher_client.get("/api/passes").get_json()["data"]
        assert len(data) == 1

    def test_admin_default_scope_is_school(self, admin_client, teacher_a, student_a, student_a2):
        _pass(student_a, teacher_a)
        _pass(student_a2, teacher_a)
        assert len(admin_client.get("/api/passes").get_json()["data"]) == 2

    def test_newest_first_and_filters(self, db_session, admin_client, school_a, student_a, student_a2):
        base = datetime(2026, 3, 2, 9, 0, 0)
        older = Pass(school_id=school_a.id, student_id=student_a.id, student_name="Alice Anderson",
                     type="general", status="returned", starts_at=base, ends_at=base + timedelta(minutes=5))
        newer = Pass(school_id=school_a.id, student_id=student_a2.id, student_name="Bart Brown",
                     type="nurse", status="active", starts_at=base + timedelta(days=1))
        db_session.add_all([older, newer])
        db_session.commit()

        data = admin_client.get("/api/passes").get_json()["data"]
        assert [p["id"] for p in data] == [newer.id, older.id]

        active = admin_client.get("/api/passes?status=active").get_json()["data"]
        assert [p["id"] for p in active] == [newer.id]

        # Date-only `to` covers the whole day
        day = admin_client.get("/api/passes?from=2026-03-02&to=2026-03-02").get_json()["data"]
        assert [p["id"] for p in day] == [older.id]

    def test_bad_status_and_dates(self, admin_client):
        assert admin_client.get("/api/passes?status=lost").status_code == 400
        assert admin_client.get("/api/passes?from=yesterday").status_code == 400
        assert admin_client.get("/api/passes?scope=everyone").status_code == 400


class TestExpireStalePasses:

    def test_expire_sets_status_and_ends_at(self, db_session, school_a, student_a, student_a2):
        now = datetime(2026, 3, 2, 12, 0, 0)
        stale = Pass(school_id=school_a.id, student_id=student_a.id, student_name="Alice Anderson",
                     type="general", status="active", starts_at=now - timedelta(hours=5))
        fresh = Pass(school_id=school_a.id, student_id=student_a2.id, student_name="Bart Brown",
                     type="general", status="active", starts_at=now - timedelta(minutes=10))
        db_session.add_all([stale, fresh])
        db_session.commit()

        assert pass_service.expire_stale_passes(timedelta(hours=4), now=now) == 1

        db_session.refresh(stale)
        db_session.refresh(fresh)
        assert stale.status == "expired"
        assert stale.ends_at == stale.starts_at + timedelta(hours=4)
        assert fresh.status == "active"

    def test_expired_pass_is_not_returned_again(self, db_session, school_a, student_a):
        start = utcnow() - timedelta(hours=10)
        p = Pass(school_id=school_a.id, student_id=student_a.id, student_name="Alice Anderson",
                 type="general", status="active", starts_at=start)
        db_session.add(p)
        db_session.commit()
        pass_service.expire_stale_passes(timedelta(hours=4))

        returned = pass_service.return_pass(p.id, school_a.id)
        assert returned.status == "expired"
        assert returned.ends_at == start + timedelta(hours=4)

    def test_cli_command(self, app, db_session, school_a, student_a):
        p = Pass(school_id=school_a.id, student_id=student_a.id, student_name="Alice Anderson",
                 type="general", status="active", starts_at=utcnow() - timedelta(hours=9))
        db_session.add(p)
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["maintenance", "expire-passes", "--hours", "8"])
        assert result.exit_code == 0, result.output
        assert "Expired 1 passes" in result.output
        db_session.refresh(p)
        assert p.status == "expired"
