"""
Pytest fixtures for PassPilot backend tests.

Provides an in-memory database, two schools for tenant isolation checks,
an admin and a teacher per school, a superadmin, and a login helper that
returns a signed-in test client.
"""

import pytest

from passpilot import create_app
from passpilot.extensions import db
from passpilot.models import School, User, Grade, Student
from passpilot.models.auth import ROLE_ADMIN, ROLE_TEACHER, ROLE_SUPERADMIN
from passpilot.services.auth_service import hash_password


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SECRET_KEY': 'test-secret',
        'BCRYPT_ROUNDS': 4,
        'RATELIMIT_ENABLED': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    # Clear all data but keep schema
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    # Cleanup after test
    db.session.rollback()


def _make_school(name: str, seats: int = 50) -> School:
    school = School(name=name, seats_allowed=seats, active=True)
    db.session.add(school)
    db.session.commit()
    return school


def make_user(school: School, email: str, role: str = ROLE_TEACHER, password: str = PASSWORD, **kwargs) -> User:
    user = User(
        email=email,
        password_hash=hash_password(password),
        role=role,
        school_id=school.id,
        active=True,
        **kwargs,
    )
    db.session.add(user)
    db.session.commit()
    return user


def make_grade(school: School, name: str) -> Grade:
    grade = Grade(school_id=school.id, name=name, is_active=True)
    db.session.add(grade)
    db.session.commit()
    return grade


def make_student(grade: Grade, name: str, code: str | None = None) -> Student:
    student = Student(school_id=grade.school_id, grade_id=grade.id, name=name, student_code=code, is_active=True)
    db.session.add(student)
    db.session.commit()
    return student


@pytest.fixture(scope='function')
def school_a(db_session):
    """School A (first tenant)."""
    return _make_school("Lincoln Elementary")


@pytest.fixture(scope='function')
def school_b(db_session):
    """School B (second tenant)."""
    return _make_school("Roosevelt Middle")


@pytest.fixture(scope='function')
def admin_a(school_a):
    return make_user(school_a, "admin@lincoln.edu", ROLE_ADMIN, display_name="Principal Skinner")


@pytest.fixture(scope='function')
def teacher_a(school_a):
    return make_user(school_a, "teacher@lincoln.edu", ROLE_TEACHER, display_name="Ms. Krabappel")


@pytest.fixture(scope='function')
def admin_b(school_b):
    return make_user(school_b, "admin@roosevelt.edu", ROLE_ADMIN)


@pytest.fixture(scope='function')
def teacher_b(school_b):
    return make_user(school_b, "teacher@roosevelt.edu", ROLE_TEACHER)


@pytest.fixture(scope='function')
def hq_school(db_session):
    """The operator's own school, home of the superadmin account."""
    return _make_school("PassPilot HQ", seats=5)


@pytest.fixture(scope='function')
def superadmin(hq_school):
    return make_user(hq_school, "root@passpilot.test", ROLE_SUPERADMIN)


@pytest.fixture(scope='function')
def grade_a(school_a):
    return make_grade(school_a, "6th Grade")


@pytest.fixture(scope='function')
def grade_a2(school_a):
    return make_grade(school_a, "7th Grade")


@pytest.fixture(scope='function')
def grade_b(school_b):
    return make_grade(school_b, "6th Grade")


@pytest.fixture(scope='function')
def student_a(grade_a):
    return make_student(grade_a, "Alice Anderson", "S-1001")


@pytest.fixture(scope='function')
def student_a2(grade_a2):
    return make_student(grade_a2, "Bart Brown", "S-1002")


@pytest.fixture(scope='function')
def student_b(grade_b):
    return make_student(grade_b, "Carol Chen", "R-2001")


def login(app, email: str, school_id: int, password: str = PASSWORD):
    """Return a fresh test client carrying a session cookie for the user."""
    client = app.test_client()
    resp = client.post('/api/auth/login', json={
        'email': email,
        'password': password,
        'schoolId': school_id,
    })
    assert resp.status_code == 200, resp.get_json()
    return client


@pytest.fixture(scope='function')
def admin_client(app, admin_a):
    return login(app, admin_a.email, admin_a.school_id)


@pytest.fixture(scope='function')
def teacher_client(app, teacher_a):
    return login(app, teacher_a.email, teacher_a.school_id)


@pytest.fixture(scope='function')
def admin_b_client(app, admin_b):
    return login(app, admin_b.email, admin_b.school_id)


@pytest.fixture(scope='function')
def superadmin_client(app, superadmin):
    return login(app, superadmin.email, superadmin.school_id)
