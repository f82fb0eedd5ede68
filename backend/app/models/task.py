"""
Newsroom Workflow Engine - Task Model
=====================================
Derived work items attached to content. Bookkeeping only: stage truth lives
on Story/Translation, and tasks are reconciled against it.
"""

import enum
from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Integer, String, Text

from app.core.database import Base


class TaskType(str, enum.Enum):
    STORY_REVIEW = "STORY_REVIEW"
    STORY_APPROVAL = "STORY_APPROVAL"
    STORY_REVISION_TO_AUTHOR = "STORY_REVISION_TO_AUTHOR"
    STORY_TRANSLATE = "STORY_TRANSLATE"
    STORY_PUBLISH = "STORY_PUBLISH"
    STORY_FOLLOW_UP = "STORY_FOLLOW_UP"
    BULLETIN_CREATE = "BULLETIN_CREATE"


class TaskPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class TaskStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"


OPEN_TASK_STATUSES = frozenset({TaskStatus.PENDING, TaskStatus.IN_PROGRESS})


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(Enum(TaskType, name="task_type"), nullable=False, index=True)
    priority = Column(Enum(TaskPriority, name="task_priority"), nullable=False, default=TaskPriority.MEDIUM)
    status = Column(Enum(TaskStatus, name="task_status"), nullable=False, default=TaskStatus.PENDING, index=True)
    title = Column(String(512), nullable=False)
    description = Column(Text, nullable=True)

    content_type = Column(String(32), nullable=True)  # story|translation|bulletin
    content_id = Column(Integer, nullable=True)

    assigned_to_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    due_date = Column(DateTime, nullable=True, index=True)
    scheduled_for = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_tasks_content", "content_type", "content_id"),
        Index("ix_tasks_assignee_status", "assigned_to_id", "status"),
    )

    @property
    def due_at(self) -> datetime | None:
        return self.due_date or self.scheduled_for
