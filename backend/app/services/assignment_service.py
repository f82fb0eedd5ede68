"""
Assignment manager.

Fills the reviewer / approver slot of a story or the translator slot of a
translation. Never changes stage. Checks run in a fixed order so the same
request always fails the same way: content, stage, assignee, actor.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidAssignee, NotFound, StageMismatch
from app.core.logging import get_logger
from app.domain.workflow.role_policy import AssignmentSlot, RolePolicy, WorkflowAction, get_role_policy
from app.domain.workflow.stage_machine import (
    STAGE_FOR_SLOT,
    check_assignee,
    check_not_self_review,
    check_translator,
)
from app.models import OPEN_TRANSLATION_STATUSES, Story, TaskType, Translation, User
from app.repositories.story_repository import story_repository, user_repository
from app.repositories.translation_repository import translation_repository
from app.schemas.audit import AssignmentDetails
from app.services.audit_service import audit_service
from app.services.task_service import CONTENT_STORY, CONTENT_TRANSLATION, task_service
from app.services.workflow_pipeline import MutationContext, run_mutation

logger = get_logger("services.assignment")

_REASSIGN_ACTION = {
    AssignmentSlot.reviewer: WorkflowAction.REASSIGN_REVIEWER,
    AssignmentSlot.approver: WorkflowAction.REASSIGN_APPROVER,
    AssignmentSlot.translator: WorkflowAction.REASSIGN_TRANSLATOR,
}

_SLOT_TASK = {
    AssignmentSlot.reviewer: TaskType.STORY_REVIEW,
    AssignmentSlot.approver: TaskType.STORY_APPROVAL,
    AssignmentSlot.translator: TaskType.STORY_TRANSLATE,
}


@dataclass(slots=True)
class AssignmentResult:
    slot: AssignmentSlot
    content_type: str
    content_id: int
    stage: str
    previous_assignee_id: int | None
    assignee_id: int
    changed: bool


def _slot_value(content: Story | Translation, slot: AssignmentSlot) -> int | None:
    if slot == AssignmentSlot.reviewer:
        return content.assigned_reviewer_id
    if slot == AssignmentSlot.approver:
        return content.assigned_approver_id
    return content.assigned_to_id


def _set_slot(content: Story | Translation, slot: AssignmentSlot, user_id: int) -> None:
    if slot == AssignmentSlot.reviewer:
        content.assigned_reviewer_id = user_id
    elif slot == AssignmentSlot.approver:
        content.assigned_approver_id = user_id
    else:
        content.assigned_to_id = user_id


class AssignmentService:
    def __init__(self, policy: RolePolicy | None = None) -> None:
        self.policy = policy or get_role_policy()

    async def _load_story(self, db: AsyncSession, story_id: int, slot: AssignmentSlot) -> tuple[Story, str]:
        story = await story_repository.lock_story(db, story_id)
        if not story:
            raise NotFound(f"Story {story_id} not found", entity=f"story:{story_id}")
        required = STAGE_FOR_SLOT[slot]
        if story.stage != required:
            raise StageMismatch(
                f"A {slot.value} can only be assigned while the story is {required.value}",
                slot=slot.value,
                stage=story.stage.value,
                required_stage=required.value,
            )
        return story, story.stage.value

    async def _load_translation(self, db: AsyncSession, translation_id: int) -> tuple[Translation, str]:
        translation = await translation_repository.lock_translation(db, translation_id)
        if not translation:
            raise NotFound(f"Translation {translation_id} not found", entity=f"translation:{translation_id}")
        if translation.status not in OPEN_TRANSLATION_STATUSES:
            raise StageMismatch(
                f"A translator cannot be assigned to a {translation.status.value} translation",
                slot=AssignmentSlot.translator.value,
                status=translation.status.value,
                required_status=sorted(status.value for status in OPEN_TRANSLATION_STATUSES),
            )
        return translation, translation.status.value

    async def assign(
        self,
        *,
        db: AsyncSession,
        slot: AssignmentSlot,
        content_id: int,
        target_user_id: int,
        actor: User,
        note: str | None = None,
    ) -> AssignmentResult:
        content_type = CONTENT_TRANSLATION if slot == AssignmentSlot.translator else CONTENT_STORY
        ctx = MutationContext(
            db=db,
            operation=f"assign_{slot.value}",
            actor=actor,
            target_type=content_type,
            target_id=content_id,
        )

        async def handler(ctx: MutationContext) -> AssignmentResult:
            if slot == AssignmentSlot.translator:
                content, stage = await self._load_translation(db, content_id)
            else:
                content, stage = await self._load_story(db, content_id, slot)

            target = await user_repository.get_user_by_id(db, target_user_id)
            if target is None:
                raise InvalidAssignee(f"User {target_user_id} does not exist", slot=slot.value, assignee_id=target_user_id)
            if slot == AssignmentSlot.translator:
                check_translator(target, content.target_language, policy=self.policy)
            else:
                check_assignee(target, slot, policy=self.policy)
                check_not_self_review(content, target, slot)

            # Translator reassignment is not keyed by story stage.
            policy_stage = None if slot == AssignmentSlot.translator else content.stage
            self.policy.authorize(actor, _REASSIGN_ACTION[slot], policy_stage)

            previous = _slot_value(content, slot)
            if previous == target.id:
                logger.info(
                    "assignment_noop",
                    slot=slot.value,
                    content_type=content_type,
                    content_id=content_id,
                    assignee_id=target.id,
                )
                return AssignmentResult(
                    slot=slot,
                    content_type=content_type,
                    content_id=content_id,
                    stage=stage,
                    previous_assignee_id=previous,
                    assignee_id=target.id,
                    changed=False,
                )

            _set_slot(content, slot, target.id)
            await db.flush()

            await audit_service.record(
                db,
                actor_id=actor.id,
                action=_REASSIGN_ACTION[slot].value,
                target_type=content_type,
                target_id=content_id,
                details=AssignmentDetails(
                    slot=slot.value,
                    previous_assignee_id=previous,
                    new_assignee_id=target.id,
                    stage=stage,
                    note=note,
                ),
            )
            await task_service.reassign(
                db,
                content_type=content_type,
                content_id=content_id,
                task_type=_SLOT_TASK[slot],
                assignee_id=target.id,
            )

            ctx.touch(actor.id, previous, target.id)
            ctx.emit(f"{content_type}.assigned")
            logger.info(
                "assignment_applied",
                slot=slot.value,
                content_type=content_type,
                content_id=content_id,
                previous_assignee_id=previous,
                assignee_id=target.id,
            )
            return AssignmentResult(
                slot=slot,
                content_type=content_type,
                content_id=content_id,
                stage=stage,
                previous_assignee_id=previous,
                assignee_id=target.id,
                changed=True,
            )

        return await run_mutation(ctx, handler)


assignment_service = AssignmentService()
