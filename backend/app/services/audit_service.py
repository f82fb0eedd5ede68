from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.correlation import get_correlation_id, get_request_id
from app.core.errors import Unavailable
from app.core.logging import get_logger
from app.models import AuditLogEntry
from app.schemas.audit import AuditDetails

logger = get_logger("services.audit")

SENSITIVE_FIELDS = ("password", "token", "secret", "key", "authorization")


def sanitize_details(details: dict[str, Any]) -> dict[str, Any]:
    clean: dict[str, Any] = {}
    for key, value in details.items():
        if any(marker in key.lower() for marker in SENSITIVE_FIELDS):
            continue
        if isinstance(value, dict):
            clean[key] = sanitize_details(value)
        elif isinstance(value, list):
            clean[key] = [sanitize_details(item) if isinstance(item, dict) else item for item in value]
        else:
            clean[key] = value
    return clean


class AuditService:
    """Append-only audit recorder.

    Writes share the caller's transaction. A failed write raises Unavailable so
    the business mutation it describes is rolled back with it.
    """

    async def record(
        self,
        db: AsyncSession,
        *,
        action: str,
        target_type: str,
        target_id: str | int | None,
        details: AuditDetails,
        actor_id: int | None = None,
        from_state: str | None = None,
        to_state: str | None = None,
    ) -> AuditLogEntry:
        payload = sanitize_details(details.model_dump(mode="json", exclude_none=True))
        entry = AuditLogEntry(
            user_id=actor_id,
            action=action,
            target_type=target_type,
            target_id=str(target_id) if target_id is not None else None,
            from_state=from_state,
            to_state=to_state,
            details=payload,
            correlation_id=get_correlation_id() or None,
            request_id=get_request_id() or None,
        )
        try:
            db.add(entry)
            await db.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "audit_log_failed",
                action=action,
                target_type=target_type,
                target_id=target_id,
                error=str(exc.__class__.__name__),
            )
            raise Unavailable(
                "Audit record could not be written; the operation was not applied",
                action=action,
            ) from exc
        return entry

    async def list_entries(
        self,
        db: AsyncSession,
        *,
        target_type: str | None = None,
        target_id: str | None = None,
        user_id: int | None = None,
        action: str | None = None,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[AuditLogEntry], int]:
        filters = []
        if target_type:
            filters.append(AuditLogEntry.target_type == target_type)
        if target_id:
            filters.append(AuditLogEntry.target_id == str(target_id))
        if user_id is not None:
            filters.append(AuditLogEntry.user_id == user_id)
        if action:
            filters.append(AuditLogEntry.action == action)

        total = await db.execute(select(func.count(AuditLogEntry.id)).where(*filters))
        per_page = max(1, min(per_page, 200))
        rows = await db.execute(
            select(AuditLogEntry)
            .where(*filters)
            .order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
            .offset((max(1, page) - 1) * per_page)
            .limit(per_page)
        )
        return list(rows.scalars().all()), int(total.scalar_one() or 0)


audit_service = AuditService()
