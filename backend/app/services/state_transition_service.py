from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, InvalidAssignee, NotFound
from app.core.logging import get_logger
from app.domain.workflow.role_policy import WorkflowAction
from app.domain.workflow.stage_machine import StageMachine, TransitionPlan, stage_machine
from app.models import Story, StoryStage, User
from app.repositories.story_repository import story_repository, user_repository
from app.schemas.audit import StageTransitionDetails
from app.services.audit_service import audit_service
from app.services.task_service import task_service
from app.services.workflow_pipeline import MutationContext, run_mutation

logger = get_logger("services.state_transition")


@dataclass(slots=True)
class TransitionOutcome:
    story: Story
    plan: TransitionPlan


class StateTransitionService:
    def __init__(self, machine: StageMachine | None = None) -> None:
        self.machine = machine or stage_machine

    async def transition_story(
        self,
        *,
        db: AsyncSession,
        story_id: int,
        actor: User,
        target: StoryStage | None = None,
        action: WorkflowAction | None = None,
        assignee_id: int | None = None,
        expected_stage: StoryStage | None = None,
        expected_version: int | None = None,
        note: str | None = None,
    ) -> TransitionOutcome:
        ctx = MutationContext(db=db, operation="transition_stage", actor=actor, target_type="story", target_id=story_id)

        async def handler(ctx: MutationContext) -> TransitionOutcome:
            story = await story_repository.lock_story(db, story_id)
            if not story:
                raise NotFound(f"Story {story_id} not found", entity=ctx.entity)

            current = story.stage or StoryStage.DRAFT
            if expected_stage and current != expected_stage:
                raise Conflict(
                    "The story stage changed before transition.",
                    entity=ctx.entity,
                    expected_current_state=expected_stage.value,
                    actual_current_state=current.value,
                )
            if expected_version is not None and story.version != expected_version:
                raise Conflict(
                    "The story was modified before transition.",
                    entity=ctx.entity,
                    expected_version=expected_version,
                    actual_version=story.version,
                )

            assignee = None
            if assignee_id is not None:
                assignee = await user_repository.get_user_by_id(db, assignee_id)
                if assignee is None:
                    raise InvalidAssignee(f"User {assignee_id} does not exist", assignee_id=assignee_id)

            author = actor
            if actor.id != story.author_id:
                author = await user_repository.get_user_by_id(db, story.author_id)
            plan = self.machine.plan(story, actor, target=target, action=action, assignee=assignee, author=author)
            self.machine.apply(story, plan, now=datetime.utcnow())
            await db.flush()

            await audit_service.record(
                db,
                actor_id=actor.id,
                action=plan.action.value,
                target_type="story",
                target_id=story.id,
                from_state=plan.from_stage.value,
                to_state=plan.to_stage.value,
                details=StageTransitionDetails(
                    from_stage=plan.from_stage.value,
                    to_stage=plan.to_stage.value,
                    transition_action=plan.action.value,
                    previous_reviewer_id=plan.previous_reviewer_id,
                    new_reviewer_id=story.assigned_reviewer_id,
                    previous_approver_id=plan.previous_approver_id,
                    new_approver_id=story.assigned_approver_id,
                    note=note,
                ),
            )
            await task_service.sync_story_stage(db, story, actor_id=actor.id)

            ctx.touch(
                actor.id,
                story.author_id,
                plan.previous_reviewer_id,
                plan.previous_approver_id,
                story.assigned_reviewer_id,
                story.assigned_approver_id,
            )
            ctx.emit("story.stage_changed")
            if plan.to_stage == StoryStage.PUBLISHED:
                ctx.emit("story.published")
            logger.info(
                "stage_transition_applied",
                story_id=story.id,
                from_stage=plan.from_stage.value,
                to_stage=plan.to_stage.value,
                transition_action=plan.action.value,
                actor_id=actor.id,
            )
            return TransitionOutcome(story=story, plan=plan)

        return await run_mutation(ctx, handler)


state_transition_service = StateTransitionService()
