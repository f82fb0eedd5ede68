"""
Newsroom Workflow Engine - User Model
=====================================
Staff and radio-station accounts. Only STAFF users take part in the
editorial workflow; the role decides which slots they may occupy.
"""

import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String, func

from app.core.database import Base


class StaffRole(str, enum.Enum):
    INTERN = "INTERN"
    JOURNALIST = "JOURNALIST"
    SUB_EDITOR = "SUB_EDITOR"
    EDITOR = "EDITOR"
    ADMIN = "ADMIN"
    SUPERADMIN = "SUPERADMIN"


# Seniority order, used for read-class actions only.
ROLE_SENIORITY: dict[StaffRole, int] = {role: rank for rank, role in enumerate(StaffRole)}


class UserType(str, enum.Enum):
    STAFF = "STAFF"
    RADIO = "RADIO"


class Language(str, enum.Enum):
    ENGLISH = "ENGLISH"
    AFRIKAANS = "AFRIKAANS"
    XHOSA = "XHOSA"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Identity
    username = Column(String(50), unique=True, nullable=False, index=True)
    full_name = Column(String(120), nullable=False)
    email = Column(String(255), nullable=True, unique=True)

    # Role & language
    user_type = Column(Enum(UserType, name="user_type"), nullable=False, default=UserType.STAFF)
    staff_role = Column(Enum(StaffRole, name="staff_role"), nullable=True, index=True)
    translation_language = Column(Enum(Language, name="story_language"), nullable=True, index=True)

    # Status
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_staff(self) -> bool:
        return self.user_type == UserType.STAFF and self.staff_role is not None

    def __repr__(self):
        return f"<User {self.username} ({self.staff_role.value if self.staff_role else self.user_type})>"
