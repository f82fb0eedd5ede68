"""
Mutation pipeline.

Every workflow write runs as a core handler wrapped by an ordered list of
middlewares. The default chain, outermost first:

    log_mutation -> post_commit_effects -> atomic -> handler

`atomic` commits the business write and its audit row together or rolls both
back. `post_commit_effects` only runs after a successful commit; its effects
(cache invalidation, notifications) can fail without undoing anything.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.database import translate_db_error
from app.core.errors import Conflict, WorkflowError
from app.core.logging import get_logger
from app.models import User
from app.services.cache_service import cache_service
from app.services.notification_service import WorkflowEvent, notification_service

logger = get_logger("services.workflow_pipeline")


@dataclass
class MutationContext:
    db: AsyncSession
    operation: str
    actor: User
    target_type: str
    target_id: int | None = None
    touched_user_ids: set[int] = field(default_factory=set)
    events: list[WorkflowEvent] = field(default_factory=list)
    # Read once: a rollback expires the actor row and it cannot lazy-load here.
    actor_id: int = field(init=False)

    def __post_init__(self) -> None:
        self.actor_id = self.actor.id

    @property
    def entity(self) -> str:
        return f"{self.target_type}:{self.target_id}" if self.target_id is not None else self.target_type

    def touch(self, *user_ids: int | None) -> None:
        self.touched_user_ids.update(user_id for user_id in user_ids if user_id is not None)

    def emit(self, event_type: str, *, target_type: str | None = None, target_id: int | None = None) -> None:
        self.events.append(
            WorkflowEvent(
                type=event_type,
                target_type=target_type or self.target_type,
                target_id=target_id if target_id is not None else self.target_id,
                actor_id=self.actor_id,
            )
        )


Handler = Callable[[MutationContext], Awaitable[Any]]
Middleware = Callable[[MutationContext, Handler], Awaitable[Any]]


async def log_mutation(ctx: MutationContext, call_next: Handler) -> Any:
    started = time.perf_counter()
    try:
        result = await call_next(ctx)
    except WorkflowError as exc:
        logger.info(
            "workflow_mutation_rejected",
            operation=ctx.operation,
            entity=ctx.entity,
            actor_id=ctx.actor_id,
            code=exc.code,
            reason=exc.message,
        )
        raise
    except Exception:
        logger.exception("workflow_mutation_failed", operation=ctx.operation, entity=ctx.entity, actor_id=ctx.actor_id)
        raise
    logger.info(
        "workflow_mutation_applied",
        operation=ctx.operation,
        entity=ctx.entity,
        actor_id=ctx.actor_id,
        duration_ms=int((time.perf_counter() - started) * 1000),
    )
    return result


async def atomic(ctx: MutationContext, call_next: Handler) -> Any:
    db = ctx.db
    try:
        result = await call_next(ctx)
        await db.commit()
        return result
    except WorkflowError:
        await db.rollback()
        raise
    except StaleDataError as exc:
        await db.rollback()
        raise Conflict(entity=ctx.entity) from exc
    except DBAPIError as exc:
        await db.rollback()
        translated = translate_db_error(exc, entity=ctx.entity)
        if translated is exc:
            raise
        raise translated from exc
    except SQLAlchemyError:
        await db.rollback()
        raise


async def post_commit_effects(ctx: MutationContext, call_next: Handler) -> Any:
    result = await call_next(ctx)
    if ctx.touched_user_ids:
        await cache_service.invalidate_work_queues(ctx.touched_user_ids)
    for event in ctx.events:
        await notification_service.publish(event)
    return result


DEFAULT_MIDDLEWARES: tuple[Middleware, ...] = (log_mutation, post_commit_effects, atomic)


def compose(handler: Handler, middlewares: Sequence[Middleware]) -> Handler:
    wrapped = handler
    for middleware in reversed(middlewares):
        wrapped = _bind(middleware, wrapped)
    return wrapped


def _bind(middleware: Middleware, call_next: Handler) -> Handler:
    async def _run(ctx: MutationContext) -> Any:
        return await middleware(ctx, call_next)

    return _run


async def run_mutation(
    ctx: MutationContext,
    handler: Handler,
    *,
    middlewares: Iterable[Middleware] | None = None,
) -> Any:
    chain = tuple(middlewares) if middlewares is not None else DEFAULT_MIDDLEWARES
    return await compose(handler, chain)(ctx)
