from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.envelope import success_envelope
from app.api.routes.auth import get_current_user
from app.core.database import get_db
from app.domain.workflow.role_policy import AssignmentSlot
from app.models import Story
from app.models.user import User
from app.schemas import (
    AssignmentResponse,
    FollowUpComplete,
    FollowUpSet,
    ReconcileResponse,
    StageTransitionRequest,
    StoryAssignRequest,
    StoryCreate,
    StoryResponse,
    TranslationFork,
    TranslationResponse,
)
from app.services.assignment_service import assignment_service
from app.services.follow_up_service import follow_up_service
from app.services.state_transition_service import state_transition_service
from app.services.story_service import story_service
from app.services.task_service import task_service
from app.services.translation_service import translation_service

router = APIRouter(prefix="/stories", tags=["Stories"])


def _story_to_dict(story: Story, allowed_transitions: list[dict] | None = None) -> dict:
    data = StoryResponse.model_validate(story).model_dump(mode="json")
    if allowed_transitions is not None:
        data["allowed_transitions"] = allowed_transitions
    return data


async def _story_with_transitions(db: AsyncSession, story: Story, current_user: User) -> dict:
    allowed = await story_service.allowed_transitions(db=db, story=story, actor=current_user)
    return _story_to_dict(story, allowed)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_story(
    payload: StoryCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    story = await story_service.create_story(
        db=db,
        author=current_user,
        title=payload.title,
        body=payload.body,
        language=payload.language,
        category_id=payload.category_id,
    )
    return success_envelope(await _story_with_transitions(db, story, current_user), status_code=status.HTTP_201_CREATED)


@router.get("/{story_id}")
async def get_story(
    story_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    story = await story_service.get_story(db=db, story_id=story_id, actor=current_user)
    return success_envelope(await _story_with_transitions(db, story, current_user))


@router.post("/{story_id}/stage")
async def transition_stage(
    story_id: int,
    payload: StageTransitionRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    outcome = await state_transition_service.transition_story(
        db=db,
        story_id=story_id,
        actor=current_user,
        target=payload.target_stage,
        action=payload.action,
        assignee_id=payload.assignee_id,
        expected_stage=payload.expected_stage,
        expected_version=payload.expected_version,
        note=payload.note,
    )
    return success_envelope(
        await _story_with_transitions(db, outcome.story, current_user),
        meta={
            "from_stage": outcome.plan.from_stage.value,
            "to_stage": outcome.plan.to_stage.value,
            "transition_action": outcome.plan.action.value,
        },
    )


@router.post("/{story_id}/assign")
async def assign_story_slot(
    story_id: int,
    payload: StoryAssignRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = await assignment_service.assign(
        db=db,
        slot=AssignmentSlot(payload.slot),
        content_id=story_id,
        target_user_id=payload.user_id,
        actor=current_user,
        note=payload.note,
    )
    return success_envelope(AssignmentResponse.model_validate(result).model_dump(mode="json"))


@router.put("/{story_id}/follow-up")
async def set_follow_up(
    story_id: int,
    payload: FollowUpSet,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    story = await follow_up_service.set_follow_up(
        db=db,
        story_id=story_id,
        actor=current_user,
        follow_up_date=payload.follow_up_date,
        note=payload.note,
    )
    return success_envelope(_story_to_dict(story))


@router.patch("/{story_id}/follow-up")
async def complete_follow_up(
    story_id: int,
    payload: FollowUpComplete,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    story = await follow_up_service.complete_follow_up(
        db=db,
        story_id=story_id,
        actor=current_user,
        completed=payload.completed,
        note=payload.note,
    )
    return success_envelope(_story_to_dict(story))


@router.post("/{story_id}/translations", status_code=status.HTTP_201_CREATED)
async def fork_translation(
    story_id: int,
    payload: TranslationFork,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    translation = await translation_service.fork(
        db=db,
        story_id=story_id,
        target_language=payload.target_language,
        assignee_id=payload.assignee_id,
        actor=current_user,
    )
    return success_envelope(
        TranslationResponse.model_validate(translation).model_dump(mode="json"),
        status_code=status.HTTP_201_CREATED,
    )


@router.post("/{story_id}/tasks/reconcile")
async def reconcile_tasks(
    story_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = await task_service.reconcile(db=db, story_id=story_id, actor=current_user)
    return success_envelope(ReconcileResponse.model_validate(result).model_dump(mode="json"))
