from __future__ import annotations

import pytest
from sqlalchemy import func, select

from app.core.errors import InvalidAssignee, NotFound, StageMismatch, Unauthorized
from app.domain.workflow.role_policy import AssignmentSlot
from app.models import AuditLogEntry, StaffRole, StoryStage, Task, TaskStatus, TaskType
from app.services.assignment_service import assignment_service
from app.services.state_transition_service import state_transition_service


async def _assignment_audits(db, story_id: int) -> list[AuditLogEntry]:
    rows = await db.execute(
        select(AuditLogEntry)
        .where(AuditLogEntry.target_id == str(story_id), AuditLogEntry.action.like("reassign_%"))
        .order_by(AuditLogEntry.id.asc())
    )
    return list(rows.scalars().all())


@pytest.mark.asyncio
async def test_editor_reassigns_reviewer_without_touching_stage(db, make_user, make_story) -> None:
    author = await make_user(StaffRole.JOURNALIST)
    first = await make_user(StaffRole.JOURNALIST)
    second = await make_user(StaffRole.JOURNALIST)
    editor = await make_user(StaffRole.EDITOR)
    story = await make_story(author)
    await state_transition_service.transition_story(
        db=db, story_id=story.id, actor=author, target=StoryStage.NEEDS_JOURNALIST_REVIEW, assignee_id=first.id
    )

    result = await assignment_service.assign(
        db=db,
        slot=AssignmentSlot.reviewer,
        content_id=story.id,
        target_user_id=second.id,
        actor=editor,
    )

    assert result.changed is True
    assert result.previous_assignee_id == first.id
    assert result.assignee_id == second.id
    assert story.stage == StoryStage.NEEDS_JOURNALIST_REVIEW
    assert story.assigned_reviewer_id == second.id

    (entry,) = await _assignment_audits(db, story.id)
    assert entry.action == "reassign_reviewer"
    assert entry.details["previous_assignee_id"] == first.id
    assert entry.details["new_assignee_id"] == second.id
    assert entry.details["stage"] == "NEEDS_JOURNALIST_REVIEW"
    assert entry.from_state is None and entry.to_state is None

    rows = await db.execute(
        select(Task).where(
            Task.content_id == story.id,
            Task.type == TaskType.STORY_REVIEW,
            Task.status != TaskStatus.DONE,
        )
    )
    (task,) = rows.scalars().all()
    assert task.assigned_to_id == second.id


@pytest.mark.asyncio
async def test_sub_editor_cannot_be_a_reviewer(db, make_user, make_story, reload) -> None:
    author = await make_user(StaffRole.JOURNALIST)
    reviewer = await make_user(StaffRole.JOURNALIST)
    sub_editor = await make_user(StaffRole.SUB_EDITOR)
    editor = await make_user(StaffRole.EDITOR)
    story = await make_story(author, stage=StoryStage.NEEDS_JOURNALIST_REVIEW, reviewer=reviewer)

    with pytest.raises(InvalidAssignee) as exc_info:
        await assignment_service.assign(
            db=db,
            slot=AssignmentSlot.reviewer,
            content_id=story.id,
            target_user_id=sub_editor.id,
            actor=editor,
        )

    assert exc_info.value.details["required_roles"] == ["JOURNALIST"]
    await reload(story, reviewer)
    assert story.assigned_reviewer_id == reviewer.id
    assert await _assignment_audits(db, story.id) == []


@pytest.mark.asyncio
async def test_repeating_an_assignment_is_a_silent_no_op(db, make_user, make_story) -> None:
    author = await make_user(StaffRole.JOURNALIST)
    approver = await make_user(StaffRole.SUB_EDITOR)
    editor = await make_user(StaffRole.EDITOR)
    story = await make_story(author, stage=StoryStage.NEEDS_SUB_EDITOR_APPROVAL, approver=approver)

    result = await assignment_service.assign(
        db=db,
        slot=AssignmentSlot.approver,
        content_id=story.id,
        target_user_id=approver.id,
        actor=editor,
    )

    assert result.changed is False
    assert result.previous_assignee_id == approver.id
    count = await db.execute(select(func.count(AuditLogEntry.id)))
    assert count.scalar_one() == 0


@pytest.mark.asyncio
async def test_slot_must_match_current_stage(db, make_user, make_story) -> None:
    author = await make_user(StaffRole.JOURNALIST)
    reviewer = await make_user(StaffRole.JOURNALIST)
    editor = await make_user(StaffRole.EDITOR)
    story = await make_story(author, stage=StoryStage.DRAFT)

    with pytest.raises(StageMismatch) as exc_info:
        await assignment_service.assign(
            db=db,
            slot=AssignmentSlot.reviewer,
            content_id=story.id,
            target_user_id=reviewer.id,
            actor=editor,
        )
    assert exc_info.value.details["required_stage"] == "NEEDS_JOURNALIST_REVIEW"


@pytest.mark.asyncio
async def test_journalist_may_not_reassign(db, make_user, make_story) -> None:
    author = await make_user(StaffRole.JOURNALIST)
    reviewer = await make_user(StaffRole.JOURNALIST)
    other = await make_user(StaffRole.JOURNALIST)
    story = await make_story(author, stage=StoryStage.NEEDS_JOURNALIST_REVIEW, reviewer=reviewer)

    with pytest.raises(Unauthorized):
        await assignment_service.assign(
            db=db,
            slot=AssignmentSlot.reviewer,
            content_id=story.id,
            target_user_id=other.id,
            actor=author,
        )


@pytest.mark.asyncio
async def test_unknown_content_is_not_found(db, make_user) -> None:
    editor = await make_user(StaffRole.EDITOR)
    with pytest.raises(NotFound):
        await assignment_service.assign(
            db=db,
            slot=AssignmentSlot.approver,
            content_id=123456,
            target_user_id=editor.id,
            actor=editor,
        )


@pytest.mark.asyncio
async def test_author_cannot_be_moved_into_the_reviewer_slot(db, make_user, make_story) -> None:
    author = await make_user(StaffRole.JOURNALIST)
    reviewer = await make_user(StaffRole.JOURNALIST)
    editor = await make_user(StaffRole.EDITOR)
    story = await make_story(author, stage=StoryStage.NEEDS_JOURNALIST_REVIEW, reviewer=reviewer)
    story_id, author_id = story.id, author.id

    with pytest.raises(InvalidAssignee) as exc_info:
        await assignment_service.assign(
            db=db,
            slot=AssignmentSlot.reviewer,
            content_id=story_id,
            target_user_id=author_id,
            actor=editor,
        )

    assert exc_info.value.details == {"slot": "reviewer", "assignee_id": author_id}
    assert await _assignment_audits(db, story_id) == []
