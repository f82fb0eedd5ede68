from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.envelope import success_envelope
from app.api.routes.auth import get_current_user
from app.core.database import get_db
from app.models import StoryStage
from app.models.user import User
from app.services.work_queue_service import work_queue_service

router = APIRouter(prefix="/work-queue", tags=["Work Queue"])


@router.get("/me")
async def my_work(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    snapshot = await work_queue_service.my_work(db=db, user=current_user)
    return success_envelope(snapshot)


@router.get("/stages/{stage}")
async def stage_queue(
    stage: StoryStage,
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    items = await work_queue_service.stage_queue(db=db, user=current_user, stage=stage, limit=limit)
    return success_envelope(items, meta={"stage": stage.value, "count": len(items)})


@router.get("/workload")
async def workload(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return success_envelope(await work_queue_service.workload(db=db, user=current_user))


@router.get("/follow-ups")
async def follow_ups(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return success_envelope(await work_queue_service.follow_ups(db=db, user=current_user))
