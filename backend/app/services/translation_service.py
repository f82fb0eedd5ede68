"""
Translation forker.

A translation is an independent per-language sub-workflow hanging off a
source story. Its status moves on its own track; the source story keeps
moving through its stages regardless.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    DuplicateFork,
    InvalidAssignee,
    InvalidRequest,
    InvalidTransition,
    NotFound,
    StageMismatch,
    Unauthorized,
)
from app.core.logging import get_logger
from app.domain.workflow.role_policy import RolePolicy, WorkflowAction, get_role_policy
from app.domain.workflow.stage_machine import check_translator
from app.models import (
    OPEN_TRANSLATION_STATUSES,
    Language,
    Story,
    StoryStage,
    Translation,
    TranslationStatus,
    User,
)
from app.repositories.story_repository import story_repository, user_repository
from app.repositories.translation_repository import translation_repository
from app.schemas.audit import TranslationCompletedDetails, TranslationForkedDetails, TranslationStatusDetails
from app.services.audit_service import audit_service
from app.services.task_service import task_service
from app.services.workflow_pipeline import MutationContext, run_mutation

logger = get_logger("services.translation")

T = TranslationStatus

FORKABLE_STAGES = frozenset({StoryStage.APPROVED, StoryStage.READY_TO_PUBLISH, StoryStage.PUBLISHED})

# (from, to) -> (audit action name, policy action). PUBLISHED is reached only through `complete`.
TRANSLATION_TRANSITIONS: dict[tuple[TranslationStatus, TranslationStatus], tuple[str, WorkflowAction]] = {
    (T.PENDING, T.IN_PROGRESS): ("start_translation", WorkflowAction.WORK_TRANSLATION),
    (T.IN_PROGRESS, T.NEEDS_REVIEW): ("submit_translation", WorkflowAction.WORK_TRANSLATION),
    (T.NEEDS_REVIEW, T.APPROVED): ("approve_translation", WorkflowAction.REVIEW_TRANSLATION),
    (T.NEEDS_REVIEW, T.IN_PROGRESS): ("return_translation", WorkflowAction.REVIEW_TRANSLATION),
    (T.PENDING, T.REJECTED): ("reject_translation", WorkflowAction.REVIEW_TRANSLATION),
    (T.IN_PROGRESS, T.REJECTED): ("reject_translation", WorkflowAction.REVIEW_TRANSLATION),
    (T.NEEDS_REVIEW, T.REJECTED): ("reject_translation", WorkflowAction.REVIEW_TRANSLATION),
}


def allowed_statuses(current: TranslationStatus) -> list[TranslationStatus]:
    return sorted((to for frm, to in TRANSLATION_TRANSITIONS if frm == current), key=lambda item: item.value)


class TranslationService:
    def __init__(self, policy: RolePolicy | None = None) -> None:
        self.policy = policy or get_role_policy()

    async def fork(
        self,
        *,
        db: AsyncSession,
        story_id: int,
        target_language: Language,
        assignee_id: int,
        actor: User,
    ) -> Translation:
        ctx = MutationContext(db=db, operation="fork_translation", actor=actor, target_type="story", target_id=story_id)

        async def handler(ctx: MutationContext) -> Translation:
            source = await story_repository.lock_story(db, story_id)
            if not source:
                raise NotFound(f"Story {story_id} not found", entity=ctx.entity)

            self.policy.authorize(actor, WorkflowAction.FORK_TRANSLATION, source.stage)

            if source.is_translation:
                raise StageMismatch(
                    "A translation cannot be forked from another translation",
                    story_id=source.id,
                    original_story_id=source.original_story_id,
                )
            if source.stage not in FORKABLE_STAGES:
                raise StageMismatch(
                    f"Stories in {source.stage.value} cannot be translated yet",
                    stage=source.stage.value,
                    required_stage=sorted(stage.value for stage in FORKABLE_STAGES),
                )
            if target_language == source.language:
                raise InvalidAssignee(
                    f"Story is already written in {target_language.value}",
                    target_language=target_language.value,
                )

            assignee = await user_repository.get_user_by_id(db, assignee_id)
            if assignee is None:
                raise InvalidAssignee(f"User {assignee_id} does not exist", assignee_id=assignee_id)
            check_translator(assignee, target_language, policy=self.policy)

            existing = await translation_repository.find_active(
                db, original_story_id=source.id, target_language=target_language
            )
            if existing:
                raise DuplicateFork(
                    story_id=source.id,
                    target_language=target_language.value,
                    translation_id=existing.id,
                    status=existing.status.value,
                )

            try:
                translation = await translation_repository.create_translation(
                    db,
                    original_story_id=source.id,
                    target_language=target_language,
                    assigned_to_id=assignee.id,
                    created_by_id=actor.id,
                )
            except IntegrityError as exc:
                # Lost a race with a concurrent fork for the same pair.
                raise DuplicateFork(story_id=source.id, target_language=target_language.value) from exc

            await audit_service.record(
                db,
                actor_id=actor.id,
                action=WorkflowAction.FORK_TRANSLATION.value,
                target_type="translation",
                target_id=translation.id,
                to_state=translation.status.value,
                details=TranslationForkedDetails(
                    original_story_id=source.id,
                    target_language=target_language.value,
                    assigned_to_id=assignee.id,
                    source_stage=source.stage.value,
                ),
            )
            await task_service.open_translation_task(db, translation, actor_id=actor.id)

            ctx.touch(actor.id, assignee.id)
            ctx.emit("translation.forked", target_type="translation", target_id=translation.id)
            logger.info(
                "translation_forked",
                story_id=source.id,
                translation_id=translation.id,
                target_language=target_language.value,
                assignee_id=assignee.id,
            )
            return translation

        return await run_mutation(ctx, handler)

    def _authorize_status_change(self, actor: User, translation: Translation, policy_action: WorkflowAction) -> None:
        self.policy.authorize(actor, policy_action)
        if policy_action != WorkflowAction.WORK_TRANSLATION or translation.assigned_to_id == actor.id:
            return
        # Reviewers may drive the translator's steps on their behalf.
        if self.policy.is_allowed(actor.staff_role, WorkflowAction.REVIEW_TRANSLATION):
            return
        raise Unauthorized(
            "Only the assigned translator can work on this translation",
            translation_id=translation.id,
            assigned_to_id=translation.assigned_to_id,
        )

    async def advance(
        self,
        *,
        db: AsyncSession,
        translation_id: int,
        target_status: TranslationStatus,
        actor: User,
        notes: str | None = None,
        rejection_reason: str | None = None,
    ) -> Translation:
        ctx = MutationContext(
            db=db,
            operation="advance_translation",
            actor=actor,
            target_type="translation",
            target_id=translation_id,
        )

        async def handler(ctx: MutationContext) -> Translation:
            translation = await translation_repository.lock_translation(db, translation_id)
            if not translation:
                raise NotFound(f"Translation {translation_id} not found", entity=ctx.entity)

            current = translation.status
            edge = TRANSLATION_TRANSITIONS.get((current, target_status))
            if edge is None:
                raise InvalidTransition(
                    f"No transition from {current.value} to {target_status.value}",
                    from_state=current.value,
                    to_state=target_status.value,
                    allowed_targets=[item.value for item in allowed_statuses(current)],
                )
            audit_action, policy_action = edge
            self._authorize_status_change(actor, translation, policy_action)

            if target_status == T.REJECTED and not (rejection_reason or "").strip():
                raise InvalidRequest("A rejection reason is required", translation_id=translation.id)

            now = datetime.utcnow()
            translation.status = target_status
            if target_status == T.IN_PROGRESS and translation.started_at is None:
                translation.started_at = now
            elif target_status == T.NEEDS_REVIEW:
                translation.submitted_at = now
            elif target_status == T.APPROVED:
                translation.approved_at = now
            elif target_status == T.REJECTED:
                translation.rejected_at = now
                translation.rejection_reason = rejection_reason.strip()

            if notes:
                if policy_action == WorkflowAction.WORK_TRANSLATION:
                    translation.translator_notes = notes
                else:
                    translation.reviewer_notes = notes
            await db.flush()

            await audit_service.record(
                db,
                actor_id=actor.id,
                action=audit_action,
                target_type="translation",
                target_id=translation.id,
                from_state=current.value,
                to_state=target_status.value,
                details=TranslationStatusDetails(
                    from_status=current.value,
                    to_status=target_status.value,
                    notes=notes,
                    rejection_reason=translation.rejection_reason if target_status == T.REJECTED else None,
                ),
            )
            if target_status not in OPEN_TRANSLATION_STATUSES:
                await task_service.close_translation_task(db, translation)

            ctx.touch(actor.id, translation.assigned_to_id)
            ctx.emit("translation.status_changed")
            logger.info(
                "translation_status_changed",
                translation_id=translation.id,
                from_status=current.value,
                to_status=target_status.value,
                actor_id=actor.id,
            )
            return translation

        return await run_mutation(ctx, handler)

    async def complete(
        self,
        *,
        db: AsyncSession,
        translation_id: int,
        translated_story_id: int,
        actor: User,
    ) -> Translation:
        ctx = MutationContext(
            db=db,
            operation="complete_translation",
            actor=actor,
            target_type="translation",
            target_id=translation_id,
        )

        async def handler(ctx: MutationContext) -> Translation:
            translation = await translation_repository.lock_translation(db, translation_id)
            if not translation:
                raise NotFound(f"Translation {translation_id} not found", entity=ctx.entity)

            self.policy.authorize(actor, WorkflowAction.COMPLETE_TRANSLATION)

            if translation.status != T.APPROVED:
                raise InvalidTransition(
                    f"Only APPROVED translations can be completed (status is {translation.status.value})",
                    from_state=translation.status.value,
                    to_state=T.PUBLISHED.value,
                )

            target = await story_repository.lock_story(db, translated_story_id)
            if not target:
                raise NotFound(f"Story {translated_story_id} not found", entity=f"story:{translated_story_id}")
            self._check_target_story(translation, target)

            previous_target_id = translation.translated_story_id
            now = datetime.utcnow()
            translation.translated_story_id = target.id
            translation.status = T.PUBLISHED
            translation.completed_at = now
            target.is_translation = True
            target.original_story_id = translation.original_story_id
            await db.flush()

            await audit_service.record(
                db,
                actor_id=actor.id,
                action=WorkflowAction.COMPLETE_TRANSLATION.value,
                target_type="translation",
                target_id=translation.id,
                from_state=T.APPROVED.value,
                to_state=T.PUBLISHED.value,
                details=TranslationCompletedDetails(
                    original_story_id=translation.original_story_id,
                    translated_story_id=target.id,
                    previous_translated_story_id=previous_target_id,
                    target_language=translation.target_language.value,
                ),
            )
            await task_service.close_translation_task(db, translation)

            ctx.touch(actor.id, translation.assigned_to_id)
            ctx.emit("translation.completed")
            logger.info(
                "translation_completed",
                translation_id=translation.id,
                original_story_id=translation.original_story_id,
                translated_story_id=target.id,
            )
            return translation

        return await run_mutation(ctx, handler)

    @staticmethod
    def _check_target_story(translation: Translation, target: Story) -> None:
        if target.id == translation.original_story_id:
            raise InvalidRequest("A story cannot be its own translation", story_id=target.id)
        if target.language != translation.target_language:
            raise InvalidRequest(
                f"Target story is written in {target.language.value}, expected {translation.target_language.value}",
                story_id=target.id,
            )
        if target.original_story_id is not None and target.original_story_id != translation.original_story_id:
            raise InvalidRequest(
                "Target story is already linked to another source story",
                story_id=target.id,
                original_story_id=target.original_story_id,
            )


translation_service = TranslationService()
