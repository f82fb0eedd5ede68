"""
Work-queue projector.

Read-only views derived from stories, translations and tasks: what each
person has on their plate, per-stage queues, workload counts and urgency
buckets. Nothing here is ever consulted by a write path.
"""

from __future__ import annotations

import enum
import math
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.logging import get_logger
from app.domain.workflow.role_policy import RolePolicy, WorkflowAction, get_role_policy
from app.models import (
    OPEN_TASK_STATUSES,
    OPEN_TRANSLATION_STATUSES,
    Story,
    StoryStage,
    Task,
    Translation,
    TranslationStatus,
    User,
)
from app.repositories.story_repository import story_repository
from app.repositories.translation_repository import translation_repository
from app.schemas import StoryBrief, TaskResponse, TranslationResponse
from app.services.cache_service import cache_service, follow_up_key, work_queue_key, workload_key

logger = get_logger("services.work_queue")
settings = get_settings()

T = TypeVar("T")

DAY = timedelta(days=1)

# Translations still in someone's hands: open, or approved but not yet published.
UNFINISHED_TRANSLATION_STATUSES = OPEN_TRANSLATION_STATUSES | {TranslationStatus.APPROVED}


class UrgencyBucket(str, enum.Enum):
    overdue = "overdue"
    due_today = "due_today"
    due_soon = "due_soon"
    upcoming = "upcoming"


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def start_of_day(now: datetime) -> datetime:
    return _naive_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)


def days_until(due: datetime, now: datetime) -> int:
    return math.ceil((_naive_utc(due) - _naive_utc(now)) / DAY)


def bucket_for(due: datetime | None, now: datetime, *, due_soon_days: int | None = None) -> UrgencyBucket:
    if due is None:
        return UrgencyBucket.upcoming
    window = settings.work_queue_due_soon_days if due_soon_days is None else due_soon_days
    due = _naive_utc(due)
    start = start_of_day(now)
    end = start + DAY
    if due < start:
        return UrgencyBucket.overdue
    if due < end:
        return UrgencyBucket.due_today
    if due < start + timedelta(days=window):
        return UrgencyBucket.due_soon
    return UrgencyBucket.upcoming


def group_by_urgency(
    items: Iterable[T],
    now: datetime,
    *,
    due_of: Callable[[T], datetime | None],
    due_soon_days: int | None = None,
) -> dict[str, list[T]]:
    grouped: dict[str, list[T]] = {bucket.value: [] for bucket in UrgencyBucket}
    for item in items:
        grouped[bucket_for(due_of(item), now, due_soon_days=due_soon_days).value].append(item)
    for bucket in grouped.values():
        bucket.sort(key=lambda item: (due_of(item) is None, due_of(item) or datetime.max))
    return grouped


def _task_row(task: Task, now: datetime) -> dict[str, Any]:
    row = TaskResponse.model_validate(task).model_dump(mode="json")
    row["days_until"] = days_until(task.due_at, now) if task.due_at else None
    return row


def _story_row(story: Story, now: datetime | None = None) -> dict[str, Any]:
    row = StoryBrief.model_validate(story).model_dump(mode="json")
    if now is not None and story.follow_up_date is not None:
        row["days_until"] = days_until(story.follow_up_date, now)
    return row


def _ttl() -> timedelta:
    return timedelta(seconds=settings.work_queue_cache_ttl_seconds)


class WorkQueueService:
    def __init__(self, policy: RolePolicy | None = None) -> None:
        self.policy = policy or get_role_policy()

    async def _open_tasks_for(self, db: AsyncSession, user_id: int) -> list[Task]:
        rows = await db.execute(
            select(Task)
            .where(Task.assigned_to_id == user_id, Task.status.in_(OPEN_TASK_STATUSES))
            .order_by(Task.id.asc())
            .limit(settings.work_queue_list_limit)
        )
        return list(rows.scalars().all())

    def build_snapshot(
        self,
        *,
        user_id: int,
        stories: Iterable[Story],
        translations: Iterable[Translation],
        tasks: Iterable[Task],
        now: datetime,
    ) -> dict[str, Any]:
        """Pure projection over already-loaded rows."""
        drafts, review, approval = [], [], []
        for story in stories:
            if story.author_id == user_id and story.stage in (StoryStage.DRAFT, StoryStage.NEEDS_REVISION):
                drafts.append(_story_row(story))
            if story.stage == StoryStage.NEEDS_JOURNALIST_REVIEW and story.assigned_reviewer_id == user_id:
                review.append(_story_row(story))
            if story.stage == StoryStage.NEEDS_SUB_EDITOR_APPROVAL and story.assigned_approver_id == user_id:
                approval.append(_story_row(story))

        my_translations = [
            TranslationResponse.model_validate(item).model_dump(mode="json")
            for item in translations
            if item.assigned_to_id == user_id and item.status in UNFINISHED_TRANSLATION_STATUSES
        ]
        open_tasks = [task for task in tasks if task.assigned_to_id == user_id and task.status in OPEN_TASK_STATUSES]
        grouped = group_by_urgency(open_tasks, now, due_of=lambda task: task.due_at)

        return {
            "user_id": user_id,
            "generated_at": _naive_utc(now).isoformat(),
            "my_drafts": drafts,
            "needs_my_review": review,
            "needs_my_approval": approval,
            "my_translations": my_translations,
            "tasks": {bucket: [_task_row(task, now) for task in items] for bucket, items in grouped.items()},
            "counts": {
                "my_drafts": len(drafts),
                "needs_my_review": len(review),
                "needs_my_approval": len(approval),
                "my_translations": len(my_translations),
                **{f"tasks_{bucket}": len(items) for bucket, items in grouped.items()},
            },
        }

    async def my_work(self, *, db: AsyncSession, user: User, now: datetime | None = None) -> dict[str, Any]:
        self.policy.authorize(user, WorkflowAction.READ_STORY)
        use_cache = now is None
        key = work_queue_key(user.id)
        if use_cache:
            cached = await cache_service.get_json(key)
            if cached:
                return cached
            generation = await cache_service.generation(key)

        current = now or datetime.utcnow()
        snapshot = self.build_snapshot(
            user_id=user.id,
            stories=await story_repository.list_for_user(db, user.id, limit=settings.work_queue_list_limit),
            translations=await translation_repository.list_assigned(
                db, user.id, statuses=UNFINISHED_TRANSLATION_STATUSES, limit=settings.work_queue_list_limit
            ),
            tasks=await self._open_tasks_for(db, user.id),
            now=current,
        )
        if use_cache:
            await cache_service.set_json_if_current(key, snapshot, generation=generation, ttl=_ttl())
        return snapshot

    async def stage_queue(self, *, db: AsyncSession, user: User, stage: StoryStage, limit: int = 100) -> list[dict]:
        self.policy.authorize(user, WorkflowAction.VIEW_STAGE_QUEUE, stage)
        stories = await story_repository.list_by_stage(db, stage, limit=limit)
        return [_story_row(story) for story in stories]

    async def workload(self, *, db: AsyncSession, user: User) -> dict[str, Any]:
        self.policy.authorize(user, WorkflowAction.VIEW_WORKLOAD)
        cached = await cache_service.get_json(workload_key())
        if cached:
            return cached
        generation = await cache_service.generation(workload_key())

        reviewers = await db.execute(
            select(Story.assigned_reviewer_id, func.count(Story.id))
            .where(Story.stage == StoryStage.NEEDS_JOURNALIST_REVIEW, Story.assigned_reviewer_id.is_not(None))
            .group_by(Story.assigned_reviewer_id)
        )
        approvers = await db.execute(
            select(Story.assigned_approver_id, func.count(Story.id))
            .where(Story.stage == StoryStage.NEEDS_SUB_EDITOR_APPROVAL, Story.assigned_approver_id.is_not(None))
            .group_by(Story.assigned_approver_id)
        )
        translators = await db.execute(
            select(Translation.assigned_to_id, func.count(Translation.id))
            .where(
                Translation.status.in_(UNFINISHED_TRANSLATION_STATUSES),
                Translation.assigned_to_id.is_not(None),
            )
            .group_by(Translation.assigned_to_id)
        )
        tasks = await db.execute(
            select(Task.assigned_to_id, func.count(Task.id))
            .where(Task.status.in_(OPEN_TASK_STATUSES), Task.assigned_to_id.is_not(None))
            .group_by(Task.assigned_to_id)
        )

        def _rows(result) -> list[dict[str, int]]:
            return sorted(
                ({"user_id": int(user_id), "count": int(count)} for user_id, count in result.all()),
                key=lambda row: (-row["count"], row["user_id"]),
            )

        snapshot = {
            "reviewers": _rows(reviewers),
            "approvers": _rows(approvers),
            "translators": _rows(translators),
            "open_tasks": _rows(tasks),
        }
        await cache_service.set_json_if_current(workload_key(), snapshot, generation=generation, ttl=_ttl())
        return snapshot

    async def follow_ups(self, *, db: AsyncSession, user: User, now: datetime | None = None) -> dict[str, Any]:
        self.policy.authorize(user, WorkflowAction.VIEW_FOLLOW_UPS)
        use_cache = now is None
        if use_cache:
            cached = await cache_service.get_json(follow_up_key())
            if cached:
                return cached
            generation = await cache_service.generation(follow_up_key())

        current = now or datetime.utcnow()
        stories = await story_repository.list_follow_ups(db, limit=settings.work_queue_list_limit)
        grouped = group_by_urgency(stories, current, due_of=lambda story: story.follow_up_date)
        snapshot = {
            "generated_at": _naive_utc(current).isoformat(),
            "buckets": {bucket: [_story_row(story, current) for story in items] for bucket, items in grouped.items()},
            "counts": {bucket: len(items) for bucket, items in grouped.items()},
        }
        if use_cache:
            await cache_service.set_json_if_current(follow_up_key(), snapshot, generation=generation, ttl=_ttl())
        return snapshot


work_queue_service = WorkQueueService()
