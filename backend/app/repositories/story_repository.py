from __future__ import annotations

from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from app.core.config import get_settings
from app.core.database import translate_db_error
from app.models import Language, Story, StoryStage, User

settings = get_settings()


async def fetch_locked(db: AsyncSession, stmt: Select, *, entity: str, nowait: bool | None = None) -> Any:
    """Load one row under `FOR UPDATE`, mapping lock and outage failures to workflow errors."""
    lock_nowait = settings.transition_lock_nowait if nowait is None else nowait
    try:
        row = await db.execute(
            stmt.with_for_update(nowait=lock_nowait).execution_options(populate_existing=True)
        )
    except DBAPIError as exc:
        translated = translate_db_error(exc, entity=entity)
        if translated is exc:
            raise
        raise translated from exc
    return row.scalar_one_or_none()


class StoryRepository:
    async def create_story(
        self,
        db: AsyncSession,
        *,
        title: str,
        body: str,
        author_id: int,
        language: Language,
        category_id: int | None = None,
        is_translation: bool = False,
        original_story_id: int | None = None,
    ) -> Story:
        story = Story(
            title=title,
            body=body,
            stage=StoryStage.DRAFT,
            language=language,
            category_id=category_id,
            author_id=author_id,
            is_translation=is_translation,
            original_story_id=original_story_id,
            follow_up_completed=False,
        )
        db.add(story)
        await db.flush()
        await db.refresh(story)
        return story

    async def get_story_by_id(self, db: AsyncSession, story_id: int) -> Story | None:
        row = await db.execute(select(Story).where(Story.id == story_id))
        return row.scalar_one_or_none()

    async def lock_story(self, db: AsyncSession, story_id: int, *, nowait: bool | None = None) -> Story | None:
        return await fetch_locked(
            db,
            select(Story).where(Story.id == story_id),
            entity=f"story:{story_id}",
            nowait=nowait,
        )

    async def list_by_stage(self, db: AsyncSession, stage: StoryStage, *, limit: int = 100) -> list[Story]:
        rows = await db.execute(
            select(Story)
            .where(Story.stage == stage)
            .order_by(Story.updated_at.desc(), Story.id.desc())
            .limit(max(1, min(limit, 500)))
        )
        return list(rows.scalars().all())

    async def list_for_user(self, db: AsyncSession, user_id: int, *, limit: int = 200) -> list[Story]:
        """Stories the user authors (drafts/revisions) or currently holds a slot on."""
        rows = await db.execute(
            select(Story)
            .where(
                or_(
                    (Story.author_id == user_id)
                    & Story.stage.in_([StoryStage.DRAFT, StoryStage.NEEDS_REVISION]),
                    Story.assigned_reviewer_id == user_id,
                    Story.assigned_approver_id == user_id,
                )
            )
            .order_by(Story.updated_at.desc(), Story.id.desc())
            .limit(max(1, min(limit, 500)))
        )
        return list(rows.scalars().all())

    async def list_follow_ups(self, db: AsyncSession, *, limit: int = 200) -> list[Story]:
        rows = await db.execute(
            select(Story)
            .where(Story.follow_up_date.is_not(None), Story.follow_up_completed.is_(False))
            .order_by(Story.follow_up_date.asc(), Story.id.asc())
            .limit(max(1, min(limit, 500)))
        )
        return list(rows.scalars().all())


class UserRepository:
    async def get_user_by_id(self, db: AsyncSession, user_id: int | None) -> User | None:
        if user_id is None:
            return None
        row = await db.execute(select(User).where(User.id == user_id))
        return row.scalar_one_or_none()

    async def get_user_by_username(self, db: AsyncSession, username: str) -> User | None:
        row = await db.execute(select(User).where(User.username == username))
        return row.scalar_one_or_none()


story_repository = StoryRepository()
user_repository = UserRepository()
