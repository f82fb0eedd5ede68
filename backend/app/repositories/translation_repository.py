from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import ACTIVE_TRANSLATION_STATUSES, Language, Translation, TranslationStatus
from app.repositories.story_repository import fetch_locked


class TranslationRepository:
    async def create_translation(
        self,
        db: AsyncSession,
        *,
        original_story_id: int,
        target_language: Language,
        assigned_to_id: int,
        created_by_id: int,
    ) -> Translation:
        translation = Translation(
            original_story_id=original_story_id,
            target_language=target_language,
            assigned_to_id=assigned_to_id,
            created_by_id=created_by_id,
            status=TranslationStatus.PENDING,
        )
        db.add(translation)
        await db.flush()
        await db.refresh(translation)
        return translation

    async def get_translation_by_id(self, db: AsyncSession, translation_id: int) -> Translation | None:
        row = await db.execute(select(Translation).where(Translation.id == translation_id))
        return row.scalar_one_or_none()

    async def lock_translation(
        self, db: AsyncSession, translation_id: int, *, nowait: bool | None = None
    ) -> Translation | None:
        return await fetch_locked(
            db,
            select(Translation).where(Translation.id == translation_id),
            entity=f"translation:{translation_id}",
            nowait=nowait,
        )

    async def find_active(
        self, db: AsyncSession, *, original_story_id: int, target_language: Language
    ) -> Translation | None:
        row = await db.execute(
            select(Translation)
            .where(
                Translation.original_story_id == original_story_id,
                Translation.target_language == target_language,
                Translation.status.in_(ACTIVE_TRANSLATION_STATUSES),
            )
            .limit(1)
        )
        return row.scalar_one_or_none()

    async def list_for_story(self, db: AsyncSession, original_story_id: int) -> list[Translation]:
        rows = await db.execute(
            select(Translation)
            .where(Translation.original_story_id == original_story_id)
            .order_by(Translation.created_at.asc(), Translation.id.asc())
        )
        return list(rows.scalars().all())

    async def list_assigned(self, db: AsyncSession, user_id: int, *, statuses=None, limit: int = 200) -> list[Translation]:
        wanted = statuses or ACTIVE_TRANSLATION_STATUSES
        rows = await db.execute(
            select(Translation)
            .where(Translation.assigned_to_id == user_id, Translation.status.in_(wanted))
            .order_by(Translation.updated_at.desc(), Translation.id.desc())
            .limit(max(1, min(limit, 500)))
        )
        return list(rows.scalars().all())


translation_repository = TranslationRepository()
