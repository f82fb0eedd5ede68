from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.rbac import require_action
from app.api.envelope import paginated_envelope
from app.core.database import get_db
from app.domain.workflow.role_policy import WorkflowAction
from app.models.user import User
from app.schemas.audit import AuditLogItem
from app.services.audit_service import audit_service

router = APIRouter(prefix="/audit-logs", tags=["Audit"])


@router.get("")
async def list_audit_logs(
    target_type: Optional[str] = Query(None, max_length=40),
    target_id: Optional[str] = Query(None, max_length=64),
    user_id: Optional[int] = None,
    action: Optional[str] = Query(None, max_length=80),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_action(WorkflowAction.VIEW_AUDIT_LOG)),
):
    entries, total = await audit_service.list_entries(
        db,
        target_type=target_type,
        target_id=target_id,
        user_id=user_id,
        action=action,
        page=page,
        per_page=per_page,
    )
    return paginated_envelope(
        [AuditLogItem.model_validate(entry).model_dump(mode="json") for entry in entries],
        page=page,
        per_page=per_page,
        total=total,
    )
