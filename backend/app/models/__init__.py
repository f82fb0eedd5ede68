"""Models package."""
from app.models.user import Language, ROLE_SENIORITY, StaffRole, User, UserType
from app.models.story import Story, StoryStage
from app.models.translation import (
    ACTIVE_TRANSLATION_STATUSES,
    OPEN_TRANSLATION_STATUSES,
    Translation,
    TranslationStatus,
)
from app.models.task import OPEN_TASK_STATUSES, Task, TaskPriority, TaskStatus, TaskType
from app.models.audit import AuditLogEntry, AuditLogImmutableError

__all__ = [
    "Language",
    "ROLE_SENIORITY",
    "StaffRole",
    "User",
    "UserType",
    "Story",
    "StoryStage",
    "ACTIVE_TRANSLATION_STATUSES",
    "OPEN_TRANSLATION_STATUSES",
    "Translation",
    "TranslationStatus",
    "OPEN_TASK_STATUSES",
    "Task",
    "TaskPriority",
    "TaskStatus",
    "TaskType",
    "AuditLogEntry",
    "AuditLogImmutableError",
]
