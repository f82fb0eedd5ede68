"""
Typed audit payloads.

Each audit action family has its own payload model, discriminated by `kind`,
so stored metadata always has a known shape.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _AuditPayload(BaseModel):
    model_config = ConfigDict(extra="forbid", use_enum_values=True)


class StoryCreatedDetails(_AuditPayload):
    kind: Literal["story_created"] = "story_created"
    title: str
    language: str
    category_id: Optional[int] = None
    is_translation: bool = False
    original_story_id: Optional[int] = None


class StageTransitionDetails(_AuditPayload):
    kind: Literal["stage_transition"] = "stage_transition"
    from_stage: str
    to_stage: str
    transition_action: str
    previous_reviewer_id: Optional[int] = None
    new_reviewer_id: Optional[int] = None
    previous_approver_id: Optional[int] = None
    new_approver_id: Optional[int] = None
    note: Optional[str] = None


class AssignmentDetails(_AuditPayload):
    kind: Literal["assignment"] = "assignment"
    slot: Literal["reviewer", "approver", "translator"]
    previous_assignee_id: Optional[int] = None
    new_assignee_id: int
    stage: str
    note: Optional[str] = None


class TranslationForkedDetails(_AuditPayload):
    kind: Literal["translation_forked"] = "translation_forked"
    original_story_id: int
    target_language: str
    assigned_to_id: int
    source_stage: str


class TranslationStatusDetails(_AuditPayload):
    kind: Literal["translation_status"] = "translation_status"
    from_status: str
    to_status: str
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None


class TranslationCompletedDetails(_AuditPayload):
    kind: Literal["translation_completed"] = "translation_completed"
    original_story_id: int
    translated_story_id: int
    previous_translated_story_id: Optional[int] = None
    target_language: str


class FollowUpDetails(_AuditPayload):
    kind: Literal["follow_up"] = "follow_up"
    previous_date: Optional[datetime] = None
    new_date: Optional[datetime] = None
    previous_completed: bool
    new_completed: bool
    note: Optional[str] = None


class TasksReconciledDetails(_AuditPayload):
    kind: Literal["tasks_reconciled"] = "tasks_reconciled"
    created: int
    closed: int
    reassigned: int


AuditDetails = Annotated[
    Union[
        StoryCreatedDetails,
        StageTransitionDetails,
        AssignmentDetails,
        TranslationForkedDetails,
        TranslationStatusDetails,
        TranslationCompletedDetails,
        FollowUpDetails,
        TasksReconciledDetails,
    ],
    Field(discriminator="kind"),
]

audit_details_adapter: TypeAdapter[AuditDetails] = TypeAdapter(AuditDetails)


class AuditLogItem(BaseModel):
    id: int
    user_id: Optional[int] = None
    action: str
    target_type: str
    target_id: Optional[str] = None
    from_state: Optional[str] = None
    to_state: Optional[str] = None
    details: dict
    request_id: Optional[str] = None
    correlation_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
