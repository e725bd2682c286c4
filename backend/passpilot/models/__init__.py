from .tenancy import School
from .auth import User, RegistrationToken, KioskDevice
from .roster import Grade, Student, TeacherGradeMap
from .passes import Pass
from .security import Audit, RateLimitBucket

__all__ = [
    'School',
    'User', 'RegistrationToken', 'KioskDevice',
    'Grade', 'Student', 'TeacherGradeMap',
    'Pass',
    'Audit', 'RateLimitBucket',
]
