"""
Newsroom Workflow Engine - Pydantic Schemas
===========================================
Request/Response schemas for the API layer.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.domain.workflow.role_policy import AssignmentSlot, WorkflowAction
from app.models import Language, StoryStage, TaskPriority, TaskStatus, TaskType, TranslationStatus


# ── Story Schemas ──

class StoryCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=512)
    body: str = ""
    language: Language = Language.ENGLISH
    category_id: Optional[int] = None


class StoryResponse(BaseModel):
    id: int
    title: str
    body: str
    stage: StoryStage
    language: Language
    category_id: Optional[int] = None
    author_id: int
    assigned_reviewer_id: Optional[int] = None
    assigned_approver_id: Optional[int] = None
    is_translation: bool
    original_story_id: Optional[int] = None
    published_at: Optional[datetime] = None
    published_by_id: Optional[int] = None
    follow_up_date: Optional[datetime] = None
    follow_up_note: Optional[str] = None
    follow_up_completed: bool = False
    follow_up_completed_at: Optional[datetime] = None
    follow_up_completed_by_id: Optional[int] = None
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class StoryBrief(BaseModel):
    id: int
    title: str
    stage: StoryStage
    language: Language
    author_id: int
    assigned_reviewer_id: Optional[int] = None
    assigned_approver_id: Optional[int] = None
    follow_up_date: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class StageTransitionRequest(BaseModel):
    target_stage: Optional[StoryStage] = None
    action: Optional[WorkflowAction] = None
    assignee_id: Optional[int] = None
    expected_stage: Optional[StoryStage] = None
    expected_version: Optional[int] = None
    note: Optional[str] = Field(None, max_length=2000)


# ── Assignment Schemas ──

class StoryAssignRequest(BaseModel):
    slot: Literal["reviewer", "approver"]
    user_id: int
    note: Optional[str] = Field(None, max_length=2000)


class TranslatorAssignRequest(BaseModel):
    user_id: int
    note: Optional[str] = Field(None, max_length=2000)


class AssignmentResponse(BaseModel):
    slot: AssignmentSlot
    content_type: str
    content_id: int
    stage: str
    previous_assignee_id: Optional[int] = None
    assignee_id: int
    changed: bool

    model_config = ConfigDict(from_attributes=True)


# ── Follow-up Schemas ──

class FollowUpSet(BaseModel):
    follow_up_date: Optional[datetime] = None
    note: Optional[str] = Field(None, max_length=2000)


class FollowUpComplete(BaseModel):
    completed: bool = True
    note: Optional[str] = Field(None, max_length=2000)


# ── Translation Schemas ──

class TranslationFork(BaseModel):
    target_language: Language
    assignee_id: int


class TranslationStatusUpdate(BaseModel):
    status: TranslationStatus
    notes: Optional[str] = Field(None, max_length=4000)
    rejection_reason: Optional[str] = Field(None, max_length=2000)


class TranslationComplete(BaseModel):
    translated_story_id: int


class TranslationResponse(BaseModel):
    id: int
    original_story_id: int
    translated_story_id: Optional[int] = None
    assigned_to_id: Optional[int] = None
    created_by_id: Optional[int] = None
    target_language: Language
    status: TranslationStatus
    translator_notes: Optional[str] = None
    reviewer_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ── Task Schemas ──

class TaskResponse(BaseModel):
    id: int
    type: TaskType
    priority: TaskPriority
    status: TaskStatus
    title: str
    content_type: Optional[str] = None
    content_id: Optional[int] = None
    assigned_to_id: Optional[int] = None
    due_date: Optional[datetime] = None
    scheduled_for: Optional[datetime] = None
    due_at: Optional[datetime] = None
    days_until: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class ReconcileResponse(BaseModel):
    created: int
    closed: int
    reassigned: int
    changed: bool

    model_config = ConfigDict(from_attributes=True)


# ── General ──

class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "1.0.0"
    database: str = "connected"
    redis: str = "connected"
    uptime_seconds: float = 0
