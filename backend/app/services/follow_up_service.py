"""
Follow-up reminders on stories.

A follow-up is a dated reminder that lives beside the stage. Setting or
completing one never changes `Story.stage`.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidRequest, NotFound
from app.core.logging import get_logger
from app.domain.workflow.role_policy import RolePolicy, WorkflowAction, get_role_policy
from app.models import Story, User
from app.repositories.story_repository import story_repository
from app.schemas.audit import FollowUpDetails
from app.services.audit_service import audit_service
from app.services.task_service import task_service
from app.services.workflow_pipeline import MutationContext, run_mutation

logger = get_logger("services.follow_up")


def _naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class FollowUpService:
    def __init__(self, policy: RolePolicy | None = None) -> None:
        self.policy = policy or get_role_policy()

    async def _locked_story(self, db: AsyncSession, story_id: int, actor: User) -> Story:
        story = await story_repository.lock_story(db, story_id)
        if not story:
            raise NotFound(f"Story {story_id} not found", entity=f"story:{story_id}")
        self.policy.authorize(actor, WorkflowAction.MANAGE_FOLLOW_UP, story.stage)
        return story

    async def set_follow_up(
        self,
        *,
        db: AsyncSession,
        story_id: int,
        actor: User,
        follow_up_date: datetime | None,
        note: str | None = None,
    ) -> Story:
        ctx = MutationContext(db=db, operation="set_follow_up", actor=actor, target_type="story", target_id=story_id)

        async def handler(ctx: MutationContext) -> Story:
            story = await self._locked_story(db, story_id, actor)
            previous_date = story.follow_up_date
            previous_completed = bool(story.follow_up_completed)

            story.follow_up_date = _naive_utc(follow_up_date)
            story.follow_up_note = note
            story.follow_up_completed = False
            story.follow_up_completed_at = None
            story.follow_up_completed_by_id = None
            await db.flush()

            await audit_service.record(
                db,
                actor_id=actor.id,
                action="set_follow_up",
                target_type="story",
                target_id=story.id,
                details=FollowUpDetails(
                    previous_date=previous_date,
                    new_date=story.follow_up_date,
                    previous_completed=previous_completed,
                    new_completed=False,
                    note=note,
                ),
            )
            await task_service.sync_follow_up(db, story, actor_id=actor.id)

            ctx.touch(actor.id, story.author_id)
            ctx.emit("story.follow_up_set")
            return story

        return await run_mutation(ctx, handler)

    async def complete_follow_up(
        self,
        *,
        db: AsyncSession,
        story_id: int,
        actor: User,
        completed: bool = True,
        note: str | None = None,
    ) -> Story:
        ctx = MutationContext(
            db=db,
            operation="complete_follow_up",
            actor=actor,
            target_type="story",
            target_id=story_id,
        )

        async def handler(ctx: MutationContext) -> Story:
            story = await self._locked_story(db, story_id, actor)
            if story.follow_up_date is None:
                raise InvalidRequest("Story has no follow-up scheduled", story_id=story.id)

            previous_completed = bool(story.follow_up_completed)
            story.follow_up_completed = completed
            story.follow_up_completed_at = datetime.utcnow() if completed else None
            story.follow_up_completed_by_id = actor.id if completed else None
            if note is not None:
                story.follow_up_note = note
            await db.flush()

            await audit_service.record(
                db,
                actor_id=actor.id,
                action="complete_follow_up" if completed else "reopen_follow_up",
                target_type="story",
                target_id=story.id,
                details=FollowUpDetails(
                    previous_date=story.follow_up_date,
                    new_date=story.follow_up_date,
                    previous_completed=previous_completed,
                    new_completed=completed,
                    note=note,
                ),
            )
            await task_service.sync_follow_up(db, story, actor_id=actor.id)

            ctx.touch(actor.id, story.author_id)
            ctx.emit("story.follow_up_completed" if completed else "story.follow_up_reopened")
            logger.info("follow_up_updated", story_id=story.id, completed=completed, stage=story.stage.value)
            return story

        return await run_mutation(ctx, handler)


follow_up_service = FollowUpService()
