from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Integer, Text, text

from app.core.database import Base
from app.models.user import Language


class TranslationStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PUBLISHED = "PUBLISHED"


ACTIVE_TRANSLATION_STATUSES = frozenset(status for status in TranslationStatus if status != TranslationStatus.REJECTED)
OPEN_TRANSLATION_STATUSES = frozenset(
    {TranslationStatus.PENDING, TranslationStatus.IN_PROGRESS, TranslationStatus.NEEDS_REVIEW}
)


class Translation(Base):
    __tablename__ = "translations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    original_story_id = Column(Integer, ForeignKey("stories.id", ondelete="CASCADE"), nullable=False, index=True)
    translated_story_id = Column(Integer, ForeignKey("stories.id", ondelete="SET NULL"), nullable=True, index=True)
    assigned_to_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    target_language = Column(Enum(Language, name="story_language"), nullable=False, index=True)
    status = Column(
        Enum(TranslationStatus, name="translation_status"),
        nullable=False,
        default=TranslationStatus.PENDING,
        index=True,
    )

    translator_notes = Column(Text, nullable=True)
    reviewer_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    started_at = Column(DateTime, nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        # At most one non-rejected translation per (source, language).
        Index(
            "uq_translations_active_story_language",
            "original_story_id",
            "target_language",
            unique=True,
            postgresql_where=text("status <> 'REJECTED'"),
            sqlite_where=text("status <> 'REJECTED'"),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_TRANSLATION_STATUSES
