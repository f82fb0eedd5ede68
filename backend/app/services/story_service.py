from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidRequest, NotFound
from app.core.logging import get_logger
from app.domain.workflow.role_policy import RolePolicy, WorkflowAction, get_role_policy
from app.domain.workflow.stage_machine import stage_machine
from app.models import Language, Story, User
from app.repositories.story_repository import story_repository, user_repository
from app.schemas.audit import StoryCreatedDetails
from app.services.audit_service import audit_service
from app.services.workflow_pipeline import MutationContext, run_mutation

logger = get_logger("services.story")


async def load_actor(db: AsyncSession, actor_id: int) -> User:
    actor = await user_repository.get_user_by_id(db, actor_id)
    if actor is None:
        raise NotFound(f"User {actor_id} not found", entity=f"user:{actor_id}")
    return actor


class StoryService:
    def __init__(self, policy: RolePolicy | None = None) -> None:
        self.policy = policy or get_role_policy()

    async def create_story(
        self,
        *,
        db: AsyncSession,
        author: User,
        title: str,
        body: str = "",
        language: Language = Language.ENGLISH,
        category_id: int | None = None,
    ) -> Story:
        ctx = MutationContext(db=db, operation="create_story", actor=author, target_type="story")

        async def handler(ctx: MutationContext) -> Story:
            self.policy.authorize(author, WorkflowAction.CREATE_STORY)
            clean_title = (title or "").strip()
            if not clean_title:
                raise InvalidRequest("Story title is required")

            story = await story_repository.create_story(
                db,
                title=clean_title,
                body=body or "",
                author_id=author.id,
                language=language,
                category_id=category_id,
            )
            ctx.target_id = story.id

            await audit_service.record(
                db,
                actor_id=author.id,
                action=WorkflowAction.CREATE_STORY.value,
                target_type="story",
                target_id=story.id,
                to_state=story.stage.value,
                details=StoryCreatedDetails(
                    title=story.title,
                    language=story.language.value,
                    category_id=story.category_id,
                ),
            )
            ctx.touch(author.id)
            ctx.emit("story.created")
            return story

        return await run_mutation(ctx, handler)

    async def get_story(self, *, db: AsyncSession, story_id: int, actor: User) -> Story:
        self.policy.authorize(actor, WorkflowAction.READ_STORY)
        story = await story_repository.get_story_by_id(db, story_id)
        if not story:
            raise NotFound(f"Story {story_id} not found", entity=f"story:{story_id}")
        return story

    async def allowed_transitions(self, *, db: AsyncSession, story: Story, actor: User) -> list[dict]:
        author = actor
        if actor.id != story.author_id:
            author = await user_repository.get_user_by_id(db, story.author_id)
        return stage_machine.available(story, actor, author=author)


story_service = StoryService()
