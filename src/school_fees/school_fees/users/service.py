from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from werkzeug.security import check_password_hash

from ..common.validators import require_non_empty
from ..core.enums import Role
from ..core.exceptions import AuthenticationError
from ..students.repository import StudentRepository
from .repository import UserRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionUser:
    """What we store into Flask session after login."""

    user_id: int
    full_name: str
    role: Role
    student_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "name": self.full_name,
            "role": self.role.value,
            "studentId": self.student_id,
        }


class AuthService:
    """Use case: authenticate user (login)."""

    def __init__(self, users: UserRepository, students: StudentRepository):
        self._users = users
        self._students = students

    def authenticate(self, username: str, password: str) -> SessionUser:
        username = require_non_empty(username, "username")
        user = self._users.get_by_username(username)
        if not user or not user.is_active:
            raise AuthenticationError("Invalid username or password")

        try:
            ok = check_password_hash(user.password_hash, password or "")
        except ValueError:
            # placeholder hashes like 'CHANGE_ME' or corrupted values
            ok = False

        if not ok:
            logger.info("Rejected login for %s", username)
            raise AuthenticationError("Invalid username or password")

        student_id = None
        if user.role == Role.STUDENT:
            student = self._students.get_by_user_id(user.user_id)
            student_id = student.student_id if student else None

        return SessionUser(
            user_id=user.user_id,
            full_name=user.full_name,
            role=user.role,
            student_id=student_id,
        )
