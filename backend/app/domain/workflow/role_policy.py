"""
Central permission table for the editorial workflow.

Every mutating component asks this module; no call site keeps its own role
list. Read-class actions follow seniority, write-class actions are keyed by
the stage the content is in.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType

from app.core.errors import Unauthorized
from app.models.story import StoryStage
from app.models.user import ROLE_SENIORITY, StaffRole, User


class WorkflowAction(str, enum.Enum):
    CREATE_STORY = "create_story"
    READ_STORY = "read_story"

    # Stage edges
    SUBMIT_FOR_REVIEW = "submit_for_review"
    SEND_FOR_APPROVAL = "send_for_approval"
    APPROVE = "approve"
    REQUEST_REVISION = "request_revision"
    RESUBMIT = "resubmit"
    MARK_READY = "mark_ready"
    PUBLISH = "publish"
    ARCHIVE = "archive"
    UNARCHIVE = "unarchive"

    # Slots
    REASSIGN_REVIEWER = "reassign_reviewer"
    REASSIGN_APPROVER = "reassign_approver"
    REASSIGN_TRANSLATOR = "reassign_translator"

    # Translations
    FORK_TRANSLATION = "fork_translation"
    WORK_TRANSLATION = "work_translation"
    REVIEW_TRANSLATION = "review_translation"
    COMPLETE_TRANSLATION = "complete_translation"

    # Follow-ups, queues, bookkeeping
    VIEW_FOLLOW_UPS = "view_follow_ups"
    MANAGE_FOLLOW_UP = "manage_follow_up"
    VIEW_STAGE_QUEUE = "view_stage_queue"
    VIEW_WORKLOAD = "view_workload"
    VIEW_AUDIT_LOG = "view_audit_log"
    RECONCILE_TASKS = "reconcile_tasks"

    # Deletion-class actions on plain CRUD resources
    DELETE_CATEGORY = "delete_category"
    DELETE_TAG = "delete_tag"
    DELETE_CLASSIFICATION = "delete_classification"


class AssignmentSlot(str, enum.Enum):
    reviewer = "reviewer"
    approver = "approver"
    translator = "translator"


class Seat(str, enum.Enum):
    """Who currently "holds" a story for the purpose of moving it on."""

    author = "author"
    reviewer = "reviewer"
    approver = "approver"


ANY_STAGE = None


def at_least(role: StaffRole) -> frozenset[StaffRole]:
    floor = ROLE_SENIORITY[role]
    return frozenset(r for r in StaffRole if ROLE_SENIORITY[r] >= floor)


ALL_STAFF = frozenset(StaffRole)
JOURNALISTS_UP = at_least(StaffRole.JOURNALIST)
SUB_EDITORS_UP = at_least(StaffRole.SUB_EDITOR)
EDITORS_UP = at_least(StaffRole.EDITOR)
ADMINS_UP = at_least(StaffRole.ADMIN)

def effective_role(user: User | None) -> StaffRole | None:
    """The role a user acts with; radio accounts and inactive staff have none."""
    if user is None or not user.is_staff or not user.is_active:
        return None
    return user.staff_role


RuleTable = Mapping[WorkflowAction, Mapping[StoryStage | None, frozenset[StaffRole]]]


def _stages(roles: frozenset[StaffRole], *stages: StoryStage) -> dict[StoryStage, frozenset[StaffRole]]:
    return {stage: roles for stage in stages}


def _default_rules() -> dict[WorkflowAction, dict[StoryStage | None, frozenset[StaffRole]]]:
    S = StoryStage
    return {
        WorkflowAction.CREATE_STORY: {ANY_STAGE: ALL_STAFF},
        WorkflowAction.READ_STORY: {ANY_STAGE: ALL_STAFF},
        WorkflowAction.SUBMIT_FOR_REVIEW: {S.DRAFT: ALL_STAFF},
        WorkflowAction.SEND_FOR_APPROVAL: _stages(JOURNALISTS_UP, S.DRAFT, S.NEEDS_JOURNALIST_REVIEW),
        WorkflowAction.APPROVE: _stages(SUB_EDITORS_UP, S.DRAFT, S.NEEDS_SUB_EDITOR_APPROVAL),
        WorkflowAction.REQUEST_REVISION: {
            S.NEEDS_JOURNALIST_REVIEW: JOURNALISTS_UP,
            **_stages(SUB_EDITORS_UP, S.NEEDS_SUB_EDITOR_APPROVAL, S.APPROVED, S.READY_TO_PUBLISH),
        },
        WorkflowAction.RESUBMIT: {S.NEEDS_REVISION: ALL_STAFF},
        WorkflowAction.MARK_READY: {S.APPROVED: SUB_EDITORS_UP},
        WorkflowAction.PUBLISH: {S.READY_TO_PUBLISH: SUB_EDITORS_UP},
        WorkflowAction.ARCHIVE: _stages(
            EDITORS_UP,
            S.NEEDS_JOURNALIST_REVIEW,
            S.NEEDS_SUB_EDITOR_APPROVAL,
            S.NEEDS_REVISION,
            S.APPROVED,
            S.READY_TO_PUBLISH,
            S.PUBLISHED,
        ),
        WorkflowAction.UNARCHIVE: {S.ARCHIVED: EDITORS_UP},
        WorkflowAction.REASSIGN_REVIEWER: {S.NEEDS_JOURNALIST_REVIEW: SUB_EDITORS_UP},
        WorkflowAction.REASSIGN_APPROVER: {S.NEEDS_SUB_EDITOR_APPROVAL: SUB_EDITORS_UP},
        WorkflowAction.REASSIGN_TRANSLATOR: {ANY_STAGE: SUB_EDITORS_UP},
        WorkflowAction.FORK_TRANSLATION: {ANY_STAGE: SUB_EDITORS_UP},
        WorkflowAction.WORK_TRANSLATION: {ANY_STAGE: ALL_STAFF},
        WorkflowAction.REVIEW_TRANSLATION: {ANY_STAGE: SUB_EDITORS_UP},
        WorkflowAction.COMPLETE_TRANSLATION: {ANY_STAGE: SUB_EDITORS_UP},
        WorkflowAction.VIEW_FOLLOW_UPS: {ANY_STAGE: SUB_EDITORS_UP},
        WorkflowAction.MANAGE_FOLLOW_UP: {ANY_STAGE: SUB_EDITORS_UP},
        WorkflowAction.VIEW_STAGE_QUEUE: {ANY_STAGE: JOURNALISTS_UP},
        WorkflowAction.VIEW_WORKLOAD: {ANY_STAGE: SUB_EDITORS_UP},
        WorkflowAction.VIEW_AUDIT_LOG: {ANY_STAGE: ADMINS_UP},
        WorkflowAction.RECONCILE_TASKS: {ANY_STAGE: EDITORS_UP},
        WorkflowAction.DELETE_CATEGORY: {ANY_STAGE: EDITORS_UP},
        WorkflowAction.DELETE_TAG: {ANY_STAGE: EDITORS_UP},
        WorkflowAction.DELETE_CLASSIFICATION: {ANY_STAGE: EDITORS_UP},
    }


_SLOT_ROLES: dict[AssignmentSlot, frozenset[StaffRole]] = {
    AssignmentSlot.reviewer: frozenset({StaffRole.JOURNALIST}),
    AssignmentSlot.approver: SUB_EDITORS_UP,
    AssignmentSlot.translator: ALL_STAFF,
}

_STAGE_SEATS: dict[StoryStage, Seat] = {
    StoryStage.DRAFT: Seat.author,
    StoryStage.NEEDS_REVISION: Seat.author,
    StoryStage.NEEDS_JOURNALIST_REVIEW: Seat.reviewer,
    StoryStage.NEEDS_SUB_EDITOR_APPROVAL: Seat.approver,
}

# Edges that depend on who wrote the story, not only on who is acting.
# Intern drafts always pass through journalist review; only senior authors
# may have a draft approved directly.
_AUTHOR_GATES: dict[tuple[StoryStage, StoryStage], frozenset[StaffRole]] = {
    (StoryStage.DRAFT, StoryStage.NEEDS_SUB_EDITOR_APPROVAL): JOURNALISTS_UP,
    (StoryStage.DRAFT, StoryStage.APPROVED): SUB_EDITORS_UP,
}


@dataclass(frozen=True, slots=True)
class RolePolicy:
    rules: RuleTable
    slot_roles: Mapping[AssignmentSlot, frozenset[StaffRole]]
    stage_seats: Mapping[StoryStage, Seat]
    seat_exempt_roles: frozenset[StaffRole]
    author_gates: Mapping[tuple[StoryStage, StoryStage], frozenset[StaffRole]]

    def is_allowed(self, role: StaffRole | None, action: WorkflowAction, stage: StoryStage | None = None) -> bool:
        if role is None:
            return False
        by_stage = self.rules.get(action)
        if not by_stage:
            return False
        if stage is not None and stage in by_stage:
            return role in by_stage[stage]
        return role in by_stage.get(ANY_STAGE, frozenset())

    def authorize(self, actor: User, action: WorkflowAction, stage: StoryStage | None = None) -> None:
        role = effective_role(actor)
        if self.is_allowed(role, action, stage):
            return
        raise Unauthorized(
            f"Role {role.value if role else 'none'} may not {action.value}"
            + (f" in stage {stage.value}" if stage else ""),
            action=action.value,
            role=role.value if role else None,
            stage=stage.value if stage else None,
        )

    def allowed_actions(self, role: StaffRole | None, stage: StoryStage | None) -> list[WorkflowAction]:
        return [action for action in WorkflowAction if self.is_allowed(role, action, stage)]

    def can_occupy(self, role: StaffRole | None, slot: AssignmentSlot) -> bool:
        return role is not None and role in self.slot_roles.get(slot, frozenset())

    def slot_role_names(self, slot: AssignmentSlot) -> list[str]:
        return sorted(role.value for role in self.slot_roles.get(slot, frozenset()))

    def seat_for(self, stage: StoryStage) -> Seat | None:
        return self.stage_seats.get(stage)

    def requires_seat(self, role: StaffRole | None, stage: StoryStage) -> bool:
        if role in self.seat_exempt_roles:
            return False
        return stage in self.stage_seats

    def author_may_take(self, author_role: StaffRole | None, from_stage: StoryStage, to_stage: StoryStage) -> bool:
        gate = self.author_gates.get((from_stage, to_stage))
        return gate is None or (author_role is not None and author_role in gate)

    def author_gate_names(self, from_stage: StoryStage, to_stage: StoryStage) -> list[str]:
        return sorted(role.value for role in self.author_gates.get((from_stage, to_stage), frozenset()))


def _freeze(rules: dict[WorkflowAction, dict[StoryStage | None, Iterable[StaffRole]]]) -> RuleTable:
    return MappingProxyType(
        {action: MappingProxyType({stage: frozenset(roles) for stage, roles in by_stage.items()}) for action, by_stage in rules.items()}
    )


@lru_cache()
def get_role_policy() -> RolePolicy:
    """Static policy, built once per process."""
    return RolePolicy(
        rules=_freeze(_default_rules()),
        slot_roles=MappingProxyType(dict(_SLOT_ROLES)),
        stage_seats=MappingProxyType(dict(_STAGE_SEATS)),
        seat_exempt_roles=EDITORS_UP,
        author_gates=MappingProxyType(dict(_AUTHOR_GATES)),
    )
