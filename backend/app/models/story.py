from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)

from app.core.database import Base
from app.models.user import Language


class StoryStage(str, enum.Enum):
    DRAFT = "DRAFT"
    NEEDS_JOURNALIST_REVIEW = "NEEDS_JOURNALIST_REVIEW"
    NEEDS_SUB_EDITOR_APPROVAL = "NEEDS_SUB_EDITOR_APPROVAL"
    APPROVED = "APPROVED"
    READY_TO_PUBLISH = "READY_TO_PUBLISH"
    PUBLISHED = "PUBLISHED"
    NEEDS_REVISION = "NEEDS_REVISION"
    ARCHIVED = "ARCHIVED"


class Story(Base):
    __tablename__ = "stories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(512), nullable=False)
    body = Column(Text, nullable=False, default="")
    stage = Column(Enum(StoryStage, name="story_stage"), nullable=False, default=StoryStage.DRAFT, index=True)
    language = Column(Enum(Language, name="story_language"), nullable=False, default=Language.ENGLISH, index=True)
    category_id = Column(Integer, nullable=True, index=True)

    author_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    assigned_reviewer_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    assigned_approver_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    is_translation = Column(Boolean, nullable=False, default=False, index=True)
    original_story_id = Column(Integer, ForeignKey("stories.id", ondelete="SET NULL"), nullable=True, index=True)

    published_at = Column(DateTime, nullable=True)
    published_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Post-publication reminder; independent of stage.
    follow_up_date = Column(DateTime, nullable=True, index=True)
    follow_up_note = Column(Text, nullable=True)
    follow_up_completed = Column(Boolean, nullable=False, default=False)
    follow_up_completed_at = Column(DateTime, nullable=True)
    follow_up_completed_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "assigned_reviewer_id IS NULL OR stage = 'NEEDS_JOURNALIST_REVIEW'",
            name="ck_stories_reviewer_only_in_review",
        ),
        CheckConstraint(
            "assigned_approver_id IS NULL OR stage = 'NEEDS_SUB_EDITOR_APPROVAL'",
            name="ck_stories_approver_only_in_approval",
        ),
        CheckConstraint(
            "stage <> 'NEEDS_JOURNALIST_REVIEW' OR assigned_reviewer_id IS NOT NULL",
            name="ck_stories_review_owned",
        ),
        CheckConstraint(
            "stage <> 'NEEDS_SUB_EDITOR_APPROVAL' OR assigned_approver_id IS NOT NULL",
            name="ck_stories_approval_owned",
        ),
        Index("ix_stories_stage_updated", "stage", "updated_at"),
    )

    def __repr__(self):
        return f"<Story {self.id} {self.stage.value if self.stage else None}>"
