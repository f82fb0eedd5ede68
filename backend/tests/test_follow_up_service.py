from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from app.core.errors import InvalidRequest, Unauthorized
from app.models import AuditLogEntry, StaffRole, StoryStage, Task, TaskStatus, TaskType
from app.services.follow_up_service import follow_up_service


async def _follow_up_tasks(db, story_id: int) -> list[Task]:
    rows = await db.execute(
        select(Task)
        .where(Task.content_id == story_id, Task.type == TaskType.STORY_FOLLOW_UP)
        .order_by(Task.id.asc())
    )
    return list(rows.scalars().all())


@pytest.mark.asyncio
async def test_set_and_complete_follow_up_never_moves_stage(db, make_user, make_story) -> None:
    author = await make_user(StaffRole.JOURNALIST)
    desk = await make_user(StaffRole.SUB_EDITOR)
    story = await make_story(author, stage=StoryStage.PUBLISHED)
    due = datetime(2026, 11, 2, 8, 0, tzinfo=timezone(timedelta(hours=2)))

    updated = await follow_up_service.set_follow_up(
        db=db, story_id=story.id, actor=desk, follow_up_date=due, note="Check court ruling"
    )
    assert updated.stage == StoryStage.PUBLISHED
    assert updated.follow_up_date == datetime(2026, 11, 2, 6, 0)
    assert updated.follow_up_completed is False

    (task,) = await _follow_up_tasks(db, story.id)
    assert task.status == TaskStatus.PENDING
    assert task.due_date == datetime(2026, 11, 2, 6, 0)

    done = await follow_up_service.complete_follow_up(db=db, story_id=story.id, actor=desk)
    assert done.stage == StoryStage.PUBLISHED
    assert done.follow_up_completed is True
    assert done.follow_up_completed_by_id == desk.id
    assert [item.status for item in await _follow_up_tasks(db, story.id)] == [TaskStatus.DONE]

    rows = await db.execute(
        select(AuditLogEntry.action).where(AuditLogEntry.target_id == str(story.id)).order_by(AuditLogEntry.id)
    )
    assert list(rows.scalars().all()) == ["set_follow_up", "complete_follow_up"]


@pytest.mark.asyncio
async def test_reopen_follow_up(db, make_user, make_story) -> None:
    author = await make_user(StaffRole.JOURNALIST)
    editor = await make_user(StaffRole.EDITOR)
    story = await make_story(author, stage=StoryStage.APPROVED)
    await follow_up_service.set_follow_up(
        db=db, story_id=story.id, actor=editor, follow_up_date=datetime(2026, 12, 1, 9, 0)
    )
    await follow_up_service.complete_follow_up(db=db, story_id=story.id, actor=editor)

    reopened = await follow_up_service.complete_follow_up(db=db, story_id=story.id, actor=editor, completed=False)

    assert reopened.follow_up_completed is False
    assert reopened.follow_up_completed_at is None
    assert reopened.stage == StoryStage.APPROVED
    statuses = [item.status for item in await _follow_up_tasks(db, story.id)]
    assert statuses == [TaskStatus.DONE, TaskStatus.PENDING]


@pytest.mark.asyncio
async def test_complete_without_follow_up_is_invalid(db, make_user, make_story) -> None:
    author = await make_user(StaffRole.JOURNALIST)
    desk = await make_user(StaffRole.SUB_EDITOR)
    story = await make_story(author, stage=StoryStage.PUBLISHED)

    with pytest.raises(InvalidRequest):
        await follow_up_service.complete_follow_up(db=db, story_id=story.id, actor=desk)


@pytest.mark.asyncio
async def test_journalists_cannot_manage_follow_ups(db, make_user, make_story) -> None:
    author = await make_user(StaffRole.JOURNALIST)
    story = await make_story(author, stage=StoryStage.PUBLISHED)

    with pytest.raises(Unauthorized):
        await follow_up_service.set_follow_up(
            db=db, story_id=story.id, actor=author, follow_up_date=datetime(2026, 12, 1)
        )
