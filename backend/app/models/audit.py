"""
Newsroom Workflow Engine - Audit Log
====================================
Append-only record of every applied workflow mutation.
"""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, event

from app.core.database import Base


class AuditLogEntry(Base):
    __tablename__ = "audit_log_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=True, index=True)
    action = Column(String(80), nullable=False, index=True)
    target_type = Column(String(40), nullable=False, index=True)
    target_id = Column(String(64), nullable=True, index=True)
    from_state = Column(String(64), nullable=True)
    to_state = Column(String(64), nullable=True)
    # "metadata" is reserved on declarative classes.
    details = Column("metadata", JSON, nullable=False, default=dict)
    correlation_id = Column(String(64), nullable=True, index=True)
    request_id = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        Index("ix_audit_target_created", "target_type", "target_id", "created_at"),
    )


class AuditLogImmutableError(RuntimeError):
    pass


@event.listens_for(AuditLogEntry, "before_update")
def _refuse_update(_mapper, _connection, target: AuditLogEntry) -> None:
    raise AuditLogImmutableError(f"audit entry {target.id} is append-only")


@event.listens_for(AuditLogEntry, "before_delete")
def _refuse_delete(_mapper, _connection, target: AuditLogEntry) -> None:
    raise AuditLogImmutableError(f"audit entry {target.id} is append-only")
