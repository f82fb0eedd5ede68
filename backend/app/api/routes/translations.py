from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.rbac import require_action
from app.api.envelope import success_envelope
from app.api.routes.auth import get_current_user
from app.core.database import get_db
from app.core.errors import NotFound
from app.domain.workflow.role_policy import AssignmentSlot, WorkflowAction
from app.models.user import User
from app.repositories.translation_repository import translation_repository
from app.schemas import (
    AssignmentResponse,
    TranslationComplete,
    TranslationResponse,
    TranslationStatusUpdate,
    TranslatorAssignRequest,
)
from app.services.assignment_service import assignment_service
from app.services.translation_service import allowed_statuses, translation_service

router = APIRouter(prefix="/translations", tags=["Translations"])


def _translation_to_dict(translation) -> dict:
    data = TranslationResponse.model_validate(translation).model_dump(mode="json")
    data["allowed_statuses"] = [status.value for status in allowed_statuses(translation.status)]
    return data


@router.get("/{translation_id}")
async def get_translation(
    translation_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_action(WorkflowAction.READ_STORY)),
):
    translation = await translation_repository.get_translation_by_id(db, translation_id)
    if not translation:
        raise NotFound(f"Translation {translation_id} not found", entity=f"translation:{translation_id}")
    return success_envelope(_translation_to_dict(translation))


@router.post("/{translation_id}/status")
async def advance_translation(
    translation_id: int,
    payload: TranslationStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    translation = await translation_service.advance(
        db=db,
        translation_id=translation_id,
        target_status=payload.status,
        actor=current_user,
        notes=payload.notes,
        rejection_reason=payload.rejection_reason,
    )
    return success_envelope(_translation_to_dict(translation))


@router.post("/{translation_id}/assign")
async def assign_translator(
    translation_id: int,
    payload: TranslatorAssignRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = await assignment_service.assign(
        db=db,
        slot=AssignmentSlot.translator,
        content_id=translation_id,
        target_user_id=payload.user_id,
        actor=current_user,
        note=payload.note,
    )
    return success_envelope(AssignmentResponse.model_validate(result).model_dump(mode="json"))


@router.post("/{translation_id}/complete")
async def complete_translation(
    translation_id: int,
    payload: TranslationComplete,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    translation = await translation_service.complete(
        db=db,
        translation_id=translation_id,
        translated_story_id=payload.translated_story_id,
        actor=current_user,
    )
    return success_envelope(_translation_to_dict(translation))
