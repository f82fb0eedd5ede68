"""
Newsroom Workflow Engine - Authentication Schemas
=================================================
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from app.models.user import Language, StaffRole, UserType


class UserProfile(BaseModel):
    id: int
    username: str
    full_name: str
    user_type: UserType
    staff_role: Optional[StaffRole] = None
    translation_language: Optional[Language] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ActorProfile(UserProfile):
    """Current actor plus what the static policy lets them do outside any stage."""

    allowed_actions: list[str] = []
