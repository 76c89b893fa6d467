# backend/lessonbook/api/dependencies/auth.py
"""
Identity dependencies.

Sessions are owned by an upstream identity provider that forwards the
caller as ``X-User-Id`` / ``X-User-Role`` headers. This module only maps
that identity onto teacher and student profiles.
"""

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from ...repositories.factory import RepositoryFactory
from .database import get_db

logger = logging.getLogger(__name__)


class UserRole(str, Enum):
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class CurrentUser:
    user_id: str
    role: UserRole
    teacher_profile_id: Optional[str] = None
    student_profile_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
    db: Session = Depends(get_db),
) -> CurrentUser:
    if not x_user_id or not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Not authenticated", "code": "NOT_AUTHENTICATED", "details": {}},
        )
    try:
        role = UserRole(x_user_role.upper())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Unknown role", "code": "INVALID_ROLE", "details": {"role": x_user_role}},
        )

    repository = RepositoryFactory.create_teacher_repository(db)
    teacher = repository.get_by_user_id(x_user_id)
    student = repository.get_student_by_user_id(x_user_id)
    return CurrentUser(
        user_id=x_user_id,
        role=role,
        teacher_profile_id=teacher.id if teacher else None,
        student_profile_id=student.id if student else None,
    )


def require_teacher(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Caller must be a teacher with a profile."""
    if current_user.role not in (UserRole.TEACHER, UserRole.ADMIN) or not current_user.teacher_profile_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": "Teacher profile required", "code": "TEACHER_REQUIRED", "details": {}},
        )
    return current_user


def require_admin(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not current_user.is_admin:
        logger.info(f"Non-admin user {current_user.user_id} attempted an admin action")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": "Admin access required", "code": "ADMIN_REQUIRED", "details": {}},
        )
    return current_user
