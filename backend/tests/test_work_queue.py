from __future__ import annotations

from datetime import datetime, timedelta

import pytest

import app.services.work_queue_service as work_queue_module
from app.core.errors import Unauthorized
from app.models import Language, StaffRole, StoryStage, Task, TaskStatus, TaskType, TranslationStatus
from app.services.follow_up_service import follow_up_service
from app.services.translation_service import translation_service
from app.services.work_queue_service import (
    UrgencyBucket,
    bucket_for,
    days_until,
    group_by_urgency,
    work_queue_service,
)

NOW = datetime(2026, 10, 18, 9, 0)


@pytest.mark.parametrize(
    ("due", "bucket"),
    [
        (NOW - timedelta(days=1), UrgencyBucket.overdue),
        (NOW + timedelta(hours=3), UrgencyBucket.due_today),
        (NOW + timedelta(days=5), UrgencyBucket.due_soon),
        (NOW + timedelta(days=30), UrgencyBucket.upcoming),
        (None, UrgencyBucket.upcoming),
    ],
)
def test_urgency_buckets(due, bucket) -> None:
    assert bucket_for(due, NOW, due_soon_days=7) == bucket


def test_earlier_today_counts_as_due_today_not_overdue() -> None:
    assert bucket_for(NOW.replace(hour=1), NOW, due_soon_days=7) == UrgencyBucket.due_today
    assert bucket_for(NOW.replace(hour=0) - timedelta(minutes=1), NOW, due_soon_days=7) == UrgencyBucket.overdue


def test_days_until_rounds_up() -> None:
    assert days_until(NOW + timedelta(hours=3), NOW) == 1
    assert days_until(NOW + timedelta(days=5), NOW) == 5
    assert days_until(NOW - timedelta(days=1), NOW) == -1


def test_group_by_urgency_sorts_each_bucket_by_due_date() -> None:
    dates = [NOW + timedelta(days=4), NOW + timedelta(days=2), NOW - timedelta(days=3), None]
    grouped = group_by_urgency(dates, NOW, due_of=lambda item: item, due_soon_days=7)
    assert grouped["due_soon"] == [NOW + timedelta(days=2), NOW + timedelta(days=4)]
    assert grouped["overdue"] == [NOW - timedelta(days=3)]
    assert grouped["upcoming"] == [None]
    assert grouped["due_today"] == []


@pytest.mark.asyncio
async def test_my_work_snapshot(db, make_user, make_story) -> None:
    me = await make_user(StaffRole.JOURNALIST, language=Language.XHOSA)
    author = await make_user(StaffRole.JOURNALIST)
    desk = await make_user(StaffRole.SUB_EDITOR)

    await make_story(me, title="My draft")
    await make_story(me, stage=StoryStage.PUBLISHED, title="Already out")
    await make_story(author, stage=StoryStage.NEEDS_JOURNALIST_REVIEW, reviewer=me, title="Review me")
    source = await make_story(author, stage=StoryStage.APPROVED, title="Source")
    await translation_service.fork(
        db=db, story_id=source.id, target_language=Language.XHOSA, assignee_id=me.id, actor=desk
    )
    db.add_all(
        [
            Task(type=TaskType.BULLETIN_CREATE, title="Morning bulletin", assigned_to_id=me.id, due_date=NOW - timedelta(days=1)),
            Task(type=TaskType.BULLETIN_CREATE, title="Noon bulletin", assigned_to_id=me.id, due_date=NOW + timedelta(hours=3)),
            Task(
                type=TaskType.BULLETIN_CREATE,
                title="Old bulletin",
                assigned_to_id=me.id,
                status=TaskStatus.DONE,
                due_date=NOW - timedelta(days=2),
            ),
        ]
    )
    await db.commit()

    snapshot = await work_queue_service.my_work(db=db, user=me, now=NOW)

    assert [row["title"] for row in snapshot["my_drafts"]] == ["My draft"]
    assert [row["title"] for row in snapshot["needs_my_review"]] == ["Review me"]
    assert snapshot["needs_my_approval"] == []
    assert [row["status"] for row in snapshot["my_translations"]] == [TranslationStatus.PENDING.value]
    assert [row["title"] for row in snapshot["tasks"]["overdue"]] == ["Morning bulletin"]
    assert snapshot["tasks"]["due_today"][0]["title"] == "Noon bulletin"
    assert snapshot["tasks"]["due_today"][0]["days_until"] == 1
    # The translate task opened by the fork has no due date.
    assert [row["type"] for row in snapshot["tasks"]["upcoming"]] == ["STORY_TRANSLATE"]
    assert snapshot["counts"]["tasks_overdue"] == 1


@pytest.mark.asyncio
async def test_stage_queue_requires_journalist(db, make_user, make_story) -> None:
    intern = await make_user(StaffRole.INTERN)
    journalist = await make_user(StaffRole.JOURNALIST)
    await make_story(journalist, stage=StoryStage.APPROVED, title="Approved one")

    rows = await work_queue_service.stage_queue(db=db, user=journalist, stage=StoryStage.APPROVED)
    assert [row["title"] for row in rows] == ["Approved one"]

    with pytest.raises(Unauthorized):
        await work_queue_service.stage_queue(db=db, user=intern, stage=StoryStage.APPROVED)


@pytest.mark.asyncio
async def test_workload_counts_slots_per_person(db, make_user, make_story) -> None:
    author = await make_user(StaffRole.JOURNALIST)
    busy = await make_user(StaffRole.JOURNALIST)
    quiet = await make_user(StaffRole.JOURNALIST)
    approver = await make_user(StaffRole.SUB_EDITOR)
    await make_story(author, stage=StoryStage.NEEDS_JOURNALIST_REVIEW, reviewer=busy)
    await make_story(author, stage=StoryStage.NEEDS_JOURNALIST_REVIEW, reviewer=busy)
    await make_story(author, stage=StoryStage.NEEDS_JOURNALIST_REVIEW, reviewer=quiet)
    await make_story(author, stage=StoryStage.NEEDS_SUB_EDITOR_APPROVAL, approver=approver)

    workload = await work_queue_service.workload(db=db, user=approver)

    assert workload["reviewers"] == [{"user_id": busy.id, "count": 2}, {"user_id": quiet.id, "count": 1}]
    assert workload["approvers"] == [{"user_id": approver.id, "count": 1}]
    assert workload["translators"] == []


@pytest.mark.asyncio
async def test_follow_up_view_groups_by_urgency(db, make_user, make_story) -> None:
    author = await make_user(StaffRole.JOURNALIST)
    desk = await make_user(StaffRole.SUB_EDITOR)
    late = await make_story(author, stage=StoryStage.PUBLISHED, title="Late")
    soon = await make_story(author, stage=StoryStage.PUBLISHED, title="Soon")
    await follow_up_service.set_follow_up(
        db=db, story_id=late.id, actor=desk, follow_up_date=NOW - timedelta(days=2)
    )
    await follow_up_service.set_follow_up(
        db=db, story_id=soon.id, actor=desk, follow_up_date=NOW + timedelta(days=3)
    )

    view = await work_queue_service.follow_ups(db=db, user=desk, now=NOW)

    assert [row["title"] for row in view["buckets"]["overdue"]] == ["Late"]
    assert [row["title"] for row in view["buckets"]["due_soon"]] == ["Soon"]
    assert view["buckets"]["due_soon"][0]["days_until"] == 3
    assert view["counts"] == {"overdue": 1, "due_today": 0, "due_soon": 1, "upcoming": 0}


@pytest.fixture
def memory_cache(monkeypatch):
    """Swap Redis for a dict that keeps the same generation semantics."""
    state = {"values": {}, "generations": {}}
    cache = work_queue_module.cache_service

    async def get_json(key):
        return state["values"].get(key)

    async def generation(key):
        return str(state["generations"].get(key, 0))

    async def set_json_if_current(key, value, *, generation, ttl=None):
        if str(state["generations"].get(key, 0)) != generation:
            return False
        state["values"][key] = value
        return True

    async def invalidate_work_queues(user_ids):
        for user_id in user_ids:
            key = work_queue_module.work_queue_key(user_id)
            state["generations"][key] = state["generations"].get(key, 0) + 1
            state["values"].pop(key, None)

    monkeypatch.setattr(cache, "get_json", get_json)
    monkeypatch.setattr(cache, "generation", generation)
    monkeypatch.setattr(cache, "set_json_if_current", set_json_if_current)
    monkeypatch.setattr(cache, "invalidate_work_queues", invalidate_work_queues)
    return state


@pytest.mark.asyncio
async def test_snapshot_invalidated_mid_build_is_not_cached(db, make_user, make_story, memory_cache, monkeypatch) -> None:
    me = await make_user(StaffRole.JOURNALIST)
    await make_story(me, title="Harbour closure")
    key = work_queue_module.work_queue_key(me.id)
    list_for_user = work_queue_module.story_repository.list_for_user

    async def commit_lands_during_build(db, user_id, **kwargs):
        rows = await list_for_user(db, user_id, **kwargs)
        await work_queue_module.cache_service.invalidate_work_queues([user_id])
        return rows

    monkeypatch.setattr(work_queue_module.story_repository, "list_for_user", commit_lands_during_build)
    snapshot = await work_queue_service.my_work(db=db, user=me)

    assert snapshot["counts"]["my_drafts"] == 1
    assert key not in memory_cache["values"]

    monkeypatch.setattr(work_queue_module.story_repository, "list_for_user", list_for_user)
    await work_queue_service.my_work(db=db, user=me)
    assert memory_cache["values"][key]["counts"]["my_drafts"] == 1
