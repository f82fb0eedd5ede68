"""
Task bookkeeping.

Tasks mirror stage truth for people's to-do lists; they are never consulted
to decide a transition. Sync writes run inside a savepoint so a failing task
write cannot take the surrounding workflow mutation down with it. Drift is
repaired by `reconcile_story`.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFound
from app.core.logging import get_logger
from app.domain.workflow.role_policy import WorkflowAction, get_role_policy
from app.models import (
    OPEN_TASK_STATUSES,
    OPEN_TRANSLATION_STATUSES,
    Story,
    StoryStage,
    Task,
    TaskPriority,
    TaskStatus,
    TaskType,
    Translation,
    User,
)
from app.repositories.story_repository import story_repository
from app.repositories.translation_repository import translation_repository
from app.schemas.audit import TasksReconciledDetails
from app.services.audit_service import audit_service
from app.services.workflow_pipeline import MutationContext, run_mutation

logger = get_logger("services.tasks")

CONTENT_STORY = "story"
CONTENT_TRANSLATION = "translation"

# Task types whose lifetime follows the story's stage.
STAGE_TASK_TYPES = frozenset(
    {
        TaskType.STORY_REVIEW,
        TaskType.STORY_APPROVAL,
        TaskType.STORY_REVISION_TO_AUTHOR,
        TaskType.STORY_PUBLISH,
    }
)

_PRIORITY = {
    TaskType.STORY_REVIEW: TaskPriority.MEDIUM,
    TaskType.STORY_APPROVAL: TaskPriority.HIGH,
    TaskType.STORY_REVISION_TO_AUTHOR: TaskPriority.MEDIUM,
    TaskType.STORY_PUBLISH: TaskPriority.HIGH,
    TaskType.STORY_TRANSLATE: TaskPriority.MEDIUM,
    TaskType.STORY_FOLLOW_UP: TaskPriority.LOW,
}

_TITLES = {
    TaskType.STORY_REVIEW: "Review story",
    TaskType.STORY_APPROVAL: "Approve story",
    TaskType.STORY_REVISION_TO_AUTHOR: "Revise story",
    TaskType.STORY_PUBLISH: "Publish story",
    TaskType.STORY_TRANSLATE: "Translate story",
    TaskType.STORY_FOLLOW_UP: "Follow up story",
}

KEEP_ASSIGNEE = object()


@dataclass(frozen=True, slots=True)
class ExpectedTask:
    type: TaskType
    content_type: str
    content_id: int
    assigned_to_id: int | None | object
    due_date: datetime | None = None


@dataclass(slots=True)
class ReconcileResult:
    created: int = 0
    closed: int = 0
    reassigned: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.created or self.closed or self.reassigned)


def stage_task_for(story: Story) -> ExpectedTask | None:
    """The one stage-driven task a story should carry right now, if any."""
    stage = story.stage
    if stage == StoryStage.NEEDS_JOURNALIST_REVIEW:
        return ExpectedTask(TaskType.STORY_REVIEW, CONTENT_STORY, story.id, story.assigned_reviewer_id)
    if stage == StoryStage.NEEDS_SUB_EDITOR_APPROVAL:
        return ExpectedTask(TaskType.STORY_APPROVAL, CONTENT_STORY, story.id, story.assigned_approver_id)
    if stage == StoryStage.NEEDS_REVISION:
        return ExpectedTask(TaskType.STORY_REVISION_TO_AUTHOR, CONTENT_STORY, story.id, story.author_id)
    if stage == StoryStage.READY_TO_PUBLISH:
        return ExpectedTask(TaskType.STORY_PUBLISH, CONTENT_STORY, story.id, KEEP_ASSIGNEE)
    return None


def expected_tasks(story: Story, translations: Iterable[Translation]) -> list[ExpectedTask]:
    expected: list[ExpectedTask] = []
    stage_task = stage_task_for(story)
    if stage_task:
        expected.append(stage_task)
    if story.follow_up_date is not None and not story.follow_up_completed:
        expected.append(
            ExpectedTask(
                TaskType.STORY_FOLLOW_UP,
                CONTENT_STORY,
                story.id,
                KEEP_ASSIGNEE,
                due_date=story.follow_up_date,
            )
        )
    for translation in translations:
        if translation.status in OPEN_TRANSLATION_STATUSES:
            expected.append(
                ExpectedTask(
                    TaskType.STORY_TRANSLATE,
                    CONTENT_TRANSLATION,
                    translation.id,
                    translation.assigned_to_id,
                )
            )
    return expected


class TaskService:
    async def _best_effort(self, db: AsyncSession, label: str, work: Callable[[], Awaitable[None]], **fields) -> bool:
        try:
            async with db.begin_nested():
                await work()
            return True
        except SQLAlchemyError as exc:
            logger.warning("task_sync_failed", step=label, error=str(exc.__class__.__name__), **fields)
            return False

    async def open_tasks(
        self,
        db: AsyncSession,
        *,
        content_type: str,
        content_ids: Iterable[int],
        types: Iterable[TaskType] | None = None,
    ) -> list[Task]:
        ids = list(content_ids)
        if not ids:
            return []
        stmt = select(Task).where(
            Task.content_type == content_type,
            Task.content_id.in_(ids),
            Task.status.in_(OPEN_TASK_STATUSES),
        )
        if types is not None:
            stmt = stmt.where(Task.type.in_(list(types)))
        rows = await db.execute(stmt.order_by(Task.id.asc()))
        return list(rows.scalars().all())

    def _new_task(self, expected: ExpectedTask, *, created_by_id: int | None, title_suffix: str = "") -> Task:
        assignee = None if expected.assigned_to_id is KEEP_ASSIGNEE else expected.assigned_to_id
        return Task(
            type=expected.type,
            priority=_PRIORITY.get(expected.type, TaskPriority.MEDIUM),
            status=TaskStatus.PENDING,
            title=f"{_TITLES.get(expected.type, expected.type.value)}{title_suffix}",
            content_type=expected.content_type,
            content_id=expected.content_id,
            assigned_to_id=assignee,
            created_by_id=created_by_id,
            due_date=expected.due_date,
        )

    @staticmethod
    def _close(task: Task, now: datetime) -> None:
        task.status = TaskStatus.DONE
        task.completed_at = now

    async def sync_story_stage(self, db: AsyncSession, story: Story, *, actor_id: int) -> bool:
        """Close stale stage tasks and open the one the new stage calls for."""

        async def work() -> None:
            now = datetime.utcnow()
            wanted = stage_task_for(story)
            if wanted and wanted.assigned_to_id is KEEP_ASSIGNEE:
                wanted = ExpectedTask(wanted.type, wanted.content_type, wanted.content_id, actor_id)
            keep_open = False
            for task in await self.open_tasks(
                db, content_type=CONTENT_STORY, content_ids=[story.id], types=STAGE_TASK_TYPES
            ):
                if wanted and task.type == wanted.type and task.assigned_to_id == wanted.assigned_to_id:
                    keep_open = True
                    continue
                self._close(task, now)
            if wanted and not keep_open:
                db.add(self._new_task(wanted, created_by_id=actor_id, title_suffix=f": {story.title}"))

        return await self._best_effort(db, "stage", work, story_id=story.id)

    async def reassign(
        self,
        db: AsyncSession,
        *,
        content_type: str,
        content_id: int,
        task_type: TaskType,
        assignee_id: int,
    ) -> bool:
        async def work() -> None:
            for task in await self.open_tasks(db, content_type=content_type, content_ids=[content_id], types=[task_type]):
                task.assigned_to_id = assignee_id

        return await self._best_effort(db, "reassign", work, content_type=content_type, content_id=content_id)

    async def open_translation_task(self, db: AsyncSession, translation: Translation, *, actor_id: int) -> bool:
        async def work() -> None:
            expected = ExpectedTask(
                TaskType.STORY_TRANSLATE,
                CONTENT_TRANSLATION,
                translation.id,
                translation.assigned_to_id,
            )
            db.add(
                self._new_task(
                    expected,
                    created_by_id=actor_id,
                    title_suffix=f" ({translation.target_language.value})",
                )
            )

        return await self._best_effort(db, "translation_open", work, translation_id=translation.id)

    async def close_translation_task(self, db: AsyncSession, translation: Translation) -> bool:
        async def work() -> None:
            now = datetime.utcnow()
            for task in await self.open_tasks(
                db, content_type=CONTENT_TRANSLATION, content_ids=[translation.id], types=[TaskType.STORY_TRANSLATE]
            ):
                self._close(task, now)

        return await self._best_effort(db, "translation_close", work, translation_id=translation.id)

    async def sync_follow_up(self, db: AsyncSession, story: Story, *, actor_id: int) -> bool:
        async def work() -> None:
            now = datetime.utcnow()
            tasks = await self.open_tasks(
                db, content_type=CONTENT_STORY, content_ids=[story.id], types=[TaskType.STORY_FOLLOW_UP]
            )
            active = story.follow_up_date is not None and not story.follow_up_completed
            if not active:
                for task in tasks:
                    self._close(task, now)
                return
            if tasks:
                for task in tasks:
                    task.due_date = story.follow_up_date
                return
            expected = ExpectedTask(
                TaskType.STORY_FOLLOW_UP, CONTENT_STORY, story.id, actor_id, due_date=story.follow_up_date
            )
            db.add(self._new_task(expected, created_by_id=actor_id, title_suffix=f": {story.title}"))

        return await self._best_effort(db, "follow_up", work, story_id=story.id)

    async def reconcile_story(
        self,
        db: AsyncSession,
        story: Story,
        translations: list[Translation],
        *,
        actor_id: int,
    ) -> ReconcileResult:
        """Bring open tasks of a story and its translations in line with current truth."""
        result = ReconcileResult()
        now = datetime.utcnow()
        expected = {(item.type, item.content_type, item.content_id): item for item in expected_tasks(story, translations)}

        existing = await self.open_tasks(db, content_type=CONTENT_STORY, content_ids=[story.id])
        existing += await self.open_tasks(
            db, content_type=CONTENT_TRANSLATION, content_ids=[item.id for item in translations]
        )

        seen: set[tuple] = set()
        for task in existing:
            key = (task.type, task.content_type, task.content_id)
            wanted = expected.get(key)
            if wanted is None or key in seen:
                self._close(task, now)
                result.closed += 1
                continue
            seen.add(key)
            if wanted.assigned_to_id is not KEEP_ASSIGNEE and task.assigned_to_id != wanted.assigned_to_id:
                task.assigned_to_id = wanted.assigned_to_id
                result.reassigned += 1
            if wanted.due_date is not None and task.due_date != wanted.due_date:
                task.due_date = wanted.due_date

        for key, wanted in expected.items():
            if key in seen:
                continue
            if wanted.assigned_to_id is KEEP_ASSIGNEE:
                wanted = ExpectedTask(wanted.type, wanted.content_type, wanted.content_id, actor_id, wanted.due_date)
            db.add(self._new_task(wanted, created_by_id=actor_id, title_suffix=f": {story.title}"))
            result.created += 1

        await db.flush()
        if result.changed:
            logger.info(
                "tasks_reconciled",
                story_id=story.id,
                created=result.created,
                closed=result.closed,
                reassigned=result.reassigned,
            )
        return result

    async def reconcile(self, *, db: AsyncSession, story_id: int, actor: User) -> ReconcileResult:
        """Locked, audited reconciliation of one story's tasks."""
        ctx = MutationContext(db=db, operation="reconcile_tasks", actor=actor, target_type="story", target_id=story_id)

        async def handler(ctx: MutationContext) -> ReconcileResult:
            story = await story_repository.lock_story(db, story_id)
            if not story:
                raise NotFound(f"Story {story_id} not found", entity=ctx.entity)
            get_role_policy().authorize(actor, WorkflowAction.RECONCILE_TASKS, story.stage)

            translations = await translation_repository.list_for_story(db, story.id)
            result = await self.reconcile_story(db, story, translations, actor_id=actor.id)
            if not result.changed:
                return result

            await audit_service.record(
                db,
                actor_id=actor.id,
                action=WorkflowAction.RECONCILE_TASKS.value,
                target_type="story",
                target_id=story.id,
                details=TasksReconciledDetails(
                    created=result.created,
                    closed=result.closed,
                    reassigned=result.reassigned,
                ),
            )
            ctx.touch(
                actor.id,
                story.author_id,
                story.assigned_reviewer_id,
                story.assigned_approver_id,
                *(item.assigned_to_id for item in translations),
            )
            return result

        return await run_mutation(ctx, handler)


task_service = TaskService()
