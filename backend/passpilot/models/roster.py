from __future__ import annotations

from ..extensions import db
from passpilot.time_utils import to_utc_z


class Grade(db.Model):
    """
    Logical grouping of students inside a school ("6th", "Homeroom B").

    MULTI-TENANT: school-scoped; names are unique per school.
    Soft-deleted through is_active so historical passes keep their grade.
    """
    __tablename__ = "grades"
    __table_args__ = (
        db.UniqueConstraint("school_id", "name", name="uq_grades_school_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey("schools.id"), nullable=False, index=True)
    name = db.Column(db.String(80), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "schoolId": self.school_id,
            "name": self.name,
            "isActive": self.is_active,
            "createdAt": to_utc_z(self.created_at),
        }


class Student(db.Model):
    """
    A student on a school's roster. Belongs to exactly one grade at a time.

    Soft-deleted through is_active; inactive students cannot be issued passes
    but their past passes still resolve.
    """
    __tablename__ = "students"
    __table_args__ = (
        db.Index("ix_students_school_grade", "school_id", "grade_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey("schools.id"), nullable=False, index=True)
    grade_id = db.Column(db.Integer, db.ForeignKey("grades.id"), nullable=False, index=True)
    name = db.Column(db.String(140), nullable=False)
    student_code = db.Column(db.String(80), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    grade = db.relationship("Grade", backref=db.backref("students", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "schoolId": self.school_id,
            "gradeId": self.grade_id,
            "name": self.name,
            "studentCode": self.student_code,
            "isActive": self.is_active,
            "createdAt": to_utc_z(self.created_at),
        }


class TeacherGradeMap(db.Model):
    """Which grades a teacher has opted to manage ("My Class")."""
    __tablename__ = "teacher_grade_map"
    __table_args__ = (
        db.UniqueConstraint("user_id", "grade_id", name="uq_teacher_grade_map_user_grade"),
        db.Index("ix_teacher_grade_map_school_user", "school_id", "user_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    school_id = db.Column(db.Integer, db.ForeignKey("schools.id"), nullable=False)
    grade_id = db.Column(db.Integer, db.ForeignKey("grades.id"), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "schoolId": self.school_id,
            "gradeId": self.grade_id,
        }
