# Overview: Pytest coverage for the persistent fixed-window rate limiter.

from datetime import datetime, timedelta

from passpilot.models import RateLimitBucket
from passpilot.services import kiosk_service, rate_limit_service


class TestRateLimitService:

    def test_window_alignment(self):
        now = datetime(2026, 3, 2, 9, 0, 47)
        assert rate_limit_service.window_start_for(now, 60) == datetime(2026, 3, 2, 9, 0, 0)
        assert rate_limit_service.window_start_for(now, 10) == datetime(2026, 3, 2, 9, 0, 40)

    def test_limit_within_window(self, db_session):
        now = datetime(2026, 3, 2, 9, 0, 5)
        results = [rate_limit_service.hit("1.2.3.4:/x", 3, 60, now=now) for _ in range(4)]
        assert [allowed for allowed, _ in results] == [True, True, True, False]
        assert results[-1][1] == 55
        assert db_session.query(RateLimitBucket).count() == 1

    def test_new_window_resets(self, db_session):
        now = datetime(2026, 3, 2, 9, 0, 5)
        for _ in range(2):
            rate_limit_service.hit("k", 1, 60, now=now)
        allowed, retry_after = rate_limit_service.hit("k", 1, 60, now=now + timedelta(minutes=1))
        assert allowed is True
        assert retry_after == 0

    def test_keys_are_independent(self, db_session):
        now = datetime(2026, 3, 2, 9, 0, 5)
        assert rate_limit_service.hit("a", 1, 60, now=now)[0] is True
        assert rate_limit_service.hit("b", 1, 60, now=now)[0] is True

    def test_cleanup(self, db_session):
        rate_limit_service.hit("old", 5, 60, now=datetime(2020, 1, 1))
        rate_limit_service.hit("new", 5, 60)
        assert rate_limit_service.cleanup(timedelta(hours=1)) == 1
        assert [b.key for b in db_session.query(RateLimitBucket).all()] == ["new"]


class TestRateLimitedRoutes:

    def test_login_limited(self, app, client, monkeypatch, teacher_a):
        monkeypatch.setitem(app.config, "RATELIMIT_ENABLED", True)
        monkeypatch.setitem(app.config, "RATELIMIT_LOGIN", (2, 60))

        body = {"email": teacher_a.email, "password": "Wrong123!", "schoolId": teacher_a.school_id}
        assert client.post("/api/auth/login", json=body).status_code == 401
        assert client.post("/api/auth/login", json=body).status_code == 401

        resp = client.post("/api/auth/login", json=body)
        assert resp.status_code == 429
        assert int(resp.headers["Retry-After"]) >= 1
        assert resp.get_json()["retryAfter"] >= 1

    def test_kiosk_pass_limited(self, app, monkeypatch, school_a, admin_a, grade_a):
        kiosk_service.create_device(school_a.id, "Gym", "1234", admin_a.id)
        client = app.test_client()
        client.post("/kiosk/login", json={"schoolId": school_a.id, "room": "Gym", "pin": "1234"})

        monkeypatch.setitem(app.config, "RATELIMIT_ENABLED", True)
        monkeypatch.setitem(app.config, "RATELIMIT_KIOSK_PASS", (1, 60))

        assert client.post("/kiosk/passes", json={"studentName": "Visitor One", "type": "general"}).status_code == 200
        assert client.post("/kiosk/passes", json={"studentName": "Visitor Two", "type": "general"}).status_code == 429

    def test_disabled_by_config(self, client, teacher_a):
        body = {"email": teacher_a.email, "password": "Wrong123!", "schoolId": teacher_a.school_id}
        for _ in range(25):
            assert client.post("/api/auth/login", json=body).status_code == 401
