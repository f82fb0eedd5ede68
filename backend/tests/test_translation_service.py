from __future__ import annotations

import pytest
from sqlalchemy import select

from app.core.errors import (
    DuplicateFork,
    InvalidAssignee,
    InvalidRequest,
    InvalidTransition,
    StageMismatch,
    Unauthorized,
)
from app.domain.workflow.role_policy import AssignmentSlot
from app.models import Language, StaffRole, StoryStage, Task, TaskStatus, TaskType, TranslationStatus
from app.services.assignment_service import assignment_service
from app.services.translation_service import allowed_statuses, translation_service

T = TranslationStatus


@pytest.fixture
def newsroom(make_user, make_story):
    async def _build(stage: StoryStage = StoryStage.APPROVED):
        author = await make_user(StaffRole.JOURNALIST)
        desk = await make_user(StaffRole.SUB_EDITOR)
        translator = await make_user(StaffRole.JOURNALIST, language=Language.AFRIKAANS)
        story = await make_story(author, stage=stage)
        return author, desk, translator, story

    return _build


async def _translate_tasks(db, translation_id: int) -> list[Task]:
    rows = await db.execute(
        select(Task).where(
            Task.content_type == "translation",
            Task.content_id == translation_id,
            Task.type == TaskType.STORY_TRANSLATE,
        )
    )
    return list(rows.scalars().all())


def test_allowed_statuses_from_review() -> None:
    assert allowed_statuses(T.NEEDS_REVIEW) == [T.APPROVED, T.IN_PROGRESS, T.REJECTED]
    assert allowed_statuses(T.REJECTED) == []
    assert allowed_statuses(T.PUBLISHED) == []


@pytest.mark.asyncio
async def test_second_fork_for_same_language_is_rejected(db, newsroom) -> None:
    _, desk, translator, story = await newsroom()

    first = await translation_service.fork(
        db=db, story_id=story.id, target_language=Language.AFRIKAANS, assignee_id=translator.id, actor=desk
    )
    assert first.status == T.PENDING
    assert first.assigned_to_id == translator.id
    first_id = first.id

    with pytest.raises(DuplicateFork) as exc_info:
        await translation_service.fork(
            db=db, story_id=story.id, target_language=Language.AFRIKAANS, assignee_id=translator.id, actor=desk
        )
    assert exc_info.value.details["translation_id"] == first_id


@pytest.mark.asyncio
async def test_rejection_frees_the_language_for_a_new_fork(db, newsroom) -> None:
    _, desk, translator, story = await newsroom(StoryStage.PUBLISHED)
    first = await translation_service.fork(
        db=db, story_id=story.id, target_language=Language.AFRIKAANS, assignee_id=translator.id, actor=desk
    )

    rejected = await translation_service.advance(
        db=db,
        translation_id=first.id,
        target_status=T.REJECTED,
        actor=desk,
        rejection_reason="Wrong source version",
    )
    assert rejected.status == T.REJECTED
    assert rejected.rejection_reason == "Wrong source version"
    assert [task.status for task in await _translate_tasks(db, first.id)] == [TaskStatus.DONE]

    second = await translation_service.fork(
        db=db, story_id=story.id, target_language=Language.AFRIKAANS, assignee_id=translator.id, actor=desk
    )
    assert second.id != first.id
    assert second.status == T.PENDING


@pytest.mark.asyncio
async def test_rejected_translation_cannot_be_resurrected(db, newsroom) -> None:
    _, desk, translator, story = await newsroom()
    translation = await translation_service.fork(
        db=db, story_id=story.id, target_language=Language.AFRIKAANS, assignee_id=translator.id, actor=desk
    )
    await translation_service.advance(
        db=db, translation_id=translation.id, target_status=T.REJECTED, actor=desk, rejection_reason="dup"
    )

    with pytest.raises(InvalidTransition):
        await translation_service.advance(
            db=db, translation_id=translation.id, target_status=T.IN_PROGRESS, actor=desk
        )


@pytest.mark.asyncio
async def test_fork_preconditions(db, newsroom, reload) -> None:
    author, desk, translator, draft = await newsroom(StoryStage.DRAFT)

    with pytest.raises(StageMismatch):
        await translation_service.fork(
            db=db, story_id=draft.id, target_language=Language.AFRIKAANS, assignee_id=translator.id, actor=desk
        )

    await reload(author, desk, translator, draft)
    with pytest.raises(Unauthorized):
        await translation_service.fork(
            db=db, story_id=draft.id, target_language=Language.AFRIKAANS, assignee_id=translator.id, actor=author
        )


@pytest.mark.asyncio
async def test_fork_into_source_language_or_wrong_translator(db, newsroom, make_user, reload) -> None:
    _, desk, translator, story = await newsroom()
    xhosa = await make_user(StaffRole.INTERN, language=Language.XHOSA)

    with pytest.raises(InvalidAssignee):
        await translation_service.fork(
            db=db, story_id=story.id, target_language=Language.ENGLISH, assignee_id=translator.id, actor=desk
        )

    await reload(desk, story, xhosa)
    with pytest.raises(InvalidAssignee) as exc_info:
        await translation_service.fork(
            db=db, story_id=story.id, target_language=Language.AFRIKAANS, assignee_id=xhosa.id, actor=desk
        )
    assert exc_info.value.details["target_language"] == "AFRIKAANS"


@pytest.mark.asyncio
async def test_translation_lifecycle_through_completion(db, newsroom, make_story) -> None:
    author, desk, translator, story = await newsroom(StoryStage.READY_TO_PUBLISH)
    translation = await translation_service.fork(
        db=db, story_id=story.id, target_language=Language.AFRIKAANS, assignee_id=translator.id, actor=desk
    )

    await translation_service.advance(
        db=db, translation_id=translation.id, target_status=T.IN_PROGRESS, actor=translator
    )
    await translation_service.advance(
        db=db, translation_id=translation.id, target_status=T.NEEDS_REVIEW, actor=translator, notes="done"
    )
    approved = await translation_service.advance(
        db=db, translation_id=translation.id, target_status=T.APPROVED, actor=desk, notes="good"
    )
    assert approved.translator_notes == "done"
    assert approved.reviewer_notes == "good"
    assert approved.started_at and approved.submitted_at and approved.approved_at
    assert [task.status for task in await _translate_tasks(db, translation.id)] == [TaskStatus.DONE]

    afrikaans = await make_story(translator, stage=StoryStage.DRAFT, language=Language.AFRIKAANS, title="Vloedwaarskuwing")
    completed = await translation_service.complete(
        db=db, translation_id=translation.id, translated_story_id=afrikaans.id, actor=desk
    )

    assert completed.status == T.PUBLISHED
    assert completed.translated_story_id == afrikaans.id
    assert afrikaans.is_translation is True
    assert afrikaans.original_story_id == story.id
    # The source keeps its own stage.
    assert story.stage == StoryStage.READY_TO_PUBLISH


@pytest.mark.asyncio
async def test_only_the_assigned_translator_works_the_translation(db, newsroom, make_user) -> None:
    _, desk, translator, story = await newsroom()
    bystander = await make_user(StaffRole.JOURNALIST, language=Language.AFRIKAANS)
    translation = await translation_service.fork(
        db=db, story_id=story.id, target_language=Language.AFRIKAANS, assignee_id=translator.id, actor=desk
    )

    with pytest.raises(Unauthorized):
        await translation_service.advance(
            db=db, translation_id=translation.id, target_status=T.IN_PROGRESS, actor=bystander
        )


@pytest.mark.asyncio
async def test_rejection_needs_a_reason(db, newsroom) -> None:
    _, desk, translator, story = await newsroom()
    translation = await translation_service.fork(
        db=db, story_id=story.id, target_language=Language.AFRIKAANS, assignee_id=translator.id, actor=desk
    )

    with pytest.raises(InvalidRequest):
        await translation_service.advance(
            db=db, translation_id=translation.id, target_status=T.REJECTED, actor=desk, rejection_reason="  "
        )


@pytest.mark.asyncio
async def test_complete_requires_approved_translation(db, newsroom, make_story) -> None:
    _, desk, translator, story = await newsroom()
    translation = await translation_service.fork(
        db=db, story_id=story.id, target_language=Language.AFRIKAANS, assignee_id=translator.id, actor=desk
    )
    target = await make_story(translator, language=Language.AFRIKAANS)

    with pytest.raises(InvalidTransition):
        await translation_service.complete(
            db=db, translation_id=translation.id, translated_story_id=target.id, actor=desk
        )


@pytest.mark.asyncio
async def test_translator_reassignment_moves_the_open_task(db, newsroom, make_user) -> None:
    _, desk, translator, story = await newsroom()
    other = await make_user(StaffRole.SUB_EDITOR, language=Language.AFRIKAANS)
    translation = await translation_service.fork(
        db=db, story_id=story.id, target_language=Language.AFRIKAANS, assignee_id=translator.id, actor=desk
    )

    result = await assignment_service.assign(
        db=db,
        slot=AssignmentSlot.translator,
        content_id=translation.id,
        target_user_id=other.id,
        actor=desk,
    )

    assert result.changed is True
    assert result.stage == "PENDING"
    (task,) = await _translate_tasks(db, translation.id)
    assert task.assigned_to_id == other.id
