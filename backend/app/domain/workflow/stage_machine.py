"""
Story stage machine.

The edge table is the only source of legal stage moves. `plan` validates a
request against the edge table, the role policy, the seat rule, the author
gates and the slot requirements, and touches nothing; `apply` writes a plan
onto the story. Assignment, audit and task bookkeeping happen in the services.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from app.core.errors import InvalidAssignee, InvalidRequest, InvalidTransition, Unauthorized
from app.domain.workflow.role_policy import (
    AssignmentSlot,
    RolePolicy,
    Seat,
    WorkflowAction,
    effective_role,
    get_role_policy,
)
from app.models.story import Story, StoryStage
from app.models.user import Language, StaffRole, User

S = StoryStage
A = WorkflowAction

# Authoritative edge table: each (from, to) pair carries exactly one action.
STAGE_EDGES: dict[tuple[StoryStage, StoryStage], WorkflowAction] = {
    (S.DRAFT, S.NEEDS_JOURNALIST_REVIEW): A.SUBMIT_FOR_REVIEW,
    (S.DRAFT, S.NEEDS_SUB_EDITOR_APPROVAL): A.SEND_FOR_APPROVAL,
    (S.DRAFT, S.APPROVED): A.APPROVE,
    (S.NEEDS_JOURNALIST_REVIEW, S.NEEDS_SUB_EDITOR_APPROVAL): A.SEND_FOR_APPROVAL,
    (S.NEEDS_JOURNALIST_REVIEW, S.NEEDS_REVISION): A.REQUEST_REVISION,
    (S.NEEDS_JOURNALIST_REVIEW, S.ARCHIVED): A.ARCHIVE,
    (S.NEEDS_SUB_EDITOR_APPROVAL, S.APPROVED): A.APPROVE,
    (S.NEEDS_SUB_EDITOR_APPROVAL, S.NEEDS_REVISION): A.REQUEST_REVISION,
    (S.NEEDS_SUB_EDITOR_APPROVAL, S.ARCHIVED): A.ARCHIVE,
    (S.NEEDS_REVISION, S.NEEDS_JOURNALIST_REVIEW): A.RESUBMIT,
    (S.NEEDS_REVISION, S.NEEDS_SUB_EDITOR_APPROVAL): A.RESUBMIT,
    (S.NEEDS_REVISION, S.ARCHIVED): A.ARCHIVE,
    (S.APPROVED, S.READY_TO_PUBLISH): A.MARK_READY,
    (S.APPROVED, S.NEEDS_REVISION): A.REQUEST_REVISION,
    (S.APPROVED, S.ARCHIVED): A.ARCHIVE,
    (S.READY_TO_PUBLISH, S.PUBLISHED): A.PUBLISH,
    (S.READY_TO_PUBLISH, S.NEEDS_REVISION): A.REQUEST_REVISION,
    (S.READY_TO_PUBLISH, S.ARCHIVED): A.ARCHIVE,
    (S.PUBLISHED, S.ARCHIVED): A.ARCHIVE,
    (S.ARCHIVED, S.DRAFT): A.UNARCHIVE,
}

STATE_TRANSITIONS: dict[StoryStage, set[StoryStage]] = {stage: set() for stage in StoryStage}
for _from, _to in STAGE_EDGES:
    STATE_TRANSITIONS[_from].add(_to)

# Stages that must always be owned by an assignee in the matching slot.
SLOT_FOR_STAGE: dict[StoryStage, AssignmentSlot] = {
    S.NEEDS_JOURNALIST_REVIEW: AssignmentSlot.reviewer,
    S.NEEDS_SUB_EDITOR_APPROVAL: AssignmentSlot.approver,
}
STAGE_FOR_SLOT: dict[AssignmentSlot, StoryStage] = {slot: stage for stage, slot in SLOT_FOR_STAGE.items()}


@dataclass(slots=True)
class TransitionValidationResult:
    valid: bool
    from_state: StoryStage
    to_state: StoryStage
    action: WorkflowAction | None
    allowed_targets: list[StoryStage]


@dataclass(slots=True)
class TransitionPlan:
    story_id: int
    from_stage: StoryStage
    to_stage: StoryStage
    action: WorkflowAction
    actor_id: int
    assignee_id: int | None
    previous_reviewer_id: int | None
    previous_approver_id: int | None


def allowed_targets(from_state: StoryStage) -> set[StoryStage]:
    return set(STATE_TRANSITIONS.get(from_state, set()))


def can_transition(from_state: StoryStage, to_state: StoryStage) -> bool:
    return to_state in allowed_targets(from_state)


def edge_action(from_state: StoryStage, to_state: StoryStage) -> WorkflowAction | None:
    return STAGE_EDGES.get((from_state, to_state))


def targets_for_action(from_state: StoryStage, action: WorkflowAction) -> list[StoryStage]:
    return sorted(
        (to for (frm, to), edge in STAGE_EDGES.items() if frm == from_state and edge == action),
        key=lambda item: item.value,
    )


def validate_transition(from_state: StoryStage, to_state: StoryStage) -> TransitionValidationResult:
    targets = sorted(allowed_targets(from_state), key=lambda item: item.value)
    return TransitionValidationResult(
        valid=can_transition(from_state, to_state),
        from_state=from_state,
        to_state=to_state,
        action=edge_action(from_state, to_state),
        allowed_targets=targets,
    )


def validate_path(states: Iterable[StoryStage]) -> bool:
    sequence = list(states)
    if len(sequence) <= 1:
        return True
    return all(can_transition(sequence[idx], sequence[idx + 1]) for idx in range(0, len(sequence) - 1))


def resolve_edge(
    current: StoryStage,
    *,
    target: StoryStage | None = None,
    action: WorkflowAction | None = None,
) -> tuple[StoryStage, WorkflowAction]:
    """Turn a (target stage | action) request into a concrete edge or fail."""
    if target is None and action is None:
        raise InvalidRequest("Either a target stage or an action is required")

    if target is None:
        candidates = targets_for_action(current, action)
        if not candidates:
            raise _invalid(current, action=action)
        if len(candidates) > 1:
            raise InvalidRequest(
                f"Action {action.value} from {current.value} needs an explicit target stage",
                choices=[stage.value for stage in candidates],
            )
        target = candidates[0]

    edge = edge_action(current, target)
    if edge is None or (action is not None and edge != action):
        raise _invalid(current, target=target, action=action)
    return target, edge


def _invalid(
    current: StoryStage,
    *,
    target: StoryStage | None = None,
    action: WorkflowAction | None = None,
) -> InvalidTransition:
    return InvalidTransition(
        f"No transition from {current.value}" + (f" to {target.value}" if target else "")
        + (f" via {action.value}" if action else ""),
        from_state=current.value,
        to_state=target.value if target else None,
        requested_action=action.value if action else None,
        allowed_targets=[item.value for item in sorted(allowed_targets(current), key=lambda s: s.value)],
    )


def seat_holder_id(story: Story, seat: Seat) -> int | None:
    if seat == Seat.author:
        return story.author_id
    if seat == Seat.reviewer:
        return story.assigned_reviewer_id
    return story.assigned_approver_id


def check_assignee(
    assignee: User | None,
    slot: AssignmentSlot,
    *,
    policy: RolePolicy | None = None,
) -> None:
    policy = policy or get_role_policy()
    if assignee is None:
        raise InvalidAssignee(f"A {slot.value} must be assigned", slot=slot.value)
    if not assignee.is_staff or not assignee.is_active:
        raise InvalidAssignee(
            "Assignee must be an active staff member",
            slot=slot.value,
            assignee_id=assignee.id,
        )
    if not policy.can_occupy(assignee.staff_role, slot):
        raise InvalidAssignee(
            f"Role {assignee.staff_role.value} cannot occupy the {slot.value} slot",
            slot=slot.value,
            assignee_id=assignee.id,
            required_roles=policy.slot_role_names(slot),
        )


def check_not_self_review(story: Story, assignee: User, slot: AssignmentSlot) -> None:
    if slot == AssignmentSlot.reviewer and assignee.id == story.author_id:
        raise InvalidAssignee(
            "The author cannot review their own story",
            slot=slot.value,
            assignee_id=assignee.id,
        )


def check_translator(assignee: User | None, language: Language, *, policy: RolePolicy | None = None) -> None:
    check_assignee(assignee, AssignmentSlot.translator, policy=policy)
    if assignee.translation_language != language:
        raise InvalidAssignee(
            f"Assignee does not translate into {language.value}",
            slot=AssignmentSlot.translator.value,
            assignee_id=assignee.id,
            target_language=language.value,
            assignee_language=assignee.translation_language.value if assignee.translation_language else None,
        )


def author_role(author: User | None) -> StaffRole | None:
    """Role the story was written with, whether or not the author is still active."""
    if author is None or not author.is_staff:
        return None
    return author.staff_role


class StageMachine:
    """Validates stage requests against the edge table and the role policy."""

    def __init__(self, policy: RolePolicy | None = None) -> None:
        self.policy = policy or get_role_policy()

    def plan(
        self,
        story: Story,
        actor: User,
        *,
        target: StoryStage | None = None,
        action: WorkflowAction | None = None,
        assignee: User | None = None,
        author: User | None = None,
    ) -> TransitionPlan:
        current = story.stage or StoryStage.DRAFT
        to_stage, edge = resolve_edge(current, target=target, action=action)

        self.policy.authorize(actor, edge, current)
        self._check_seat(story, actor, current)
        self._check_author_gate(story, self._resolve_author(story, actor, author), current, to_stage)

        if edge == WorkflowAction.APPROVE and story.category_id is None:
            raise InvalidRequest(
                "Story must have a category before approval",
                field="category_id",
                story_id=story.id,
            )

        slot = SLOT_FOR_STAGE.get(to_stage)
        if slot is not None:
            check_assignee(assignee, slot, policy=self.policy)
            check_not_self_review(story, assignee, slot)

        return TransitionPlan(
            story_id=story.id,
            from_stage=current,
            to_stage=to_stage,
            action=edge,
            actor_id=actor.id,
            assignee_id=assignee.id if slot is not None else None,
            previous_reviewer_id=story.assigned_reviewer_id,
            previous_approver_id=story.assigned_approver_id,
        )

    def apply(self, story: Story, plan: TransitionPlan, *, now: datetime | None = None) -> Story:
        story.stage = plan.to_stage
        story.assigned_reviewer_id = plan.assignee_id if plan.to_stage == S.NEEDS_JOURNALIST_REVIEW else None
        story.assigned_approver_id = plan.assignee_id if plan.to_stage == S.NEEDS_SUB_EDITOR_APPROVAL else None
        if plan.to_stage == S.PUBLISHED:
            story.published_at = now or datetime.utcnow()
            story.published_by_id = plan.actor_id
        return story

    def available(self, story: Story, actor: User, *, author: User | None = None) -> list[dict]:
        """Edges the actor could take right now (assignee and category requirements aside).

        Author-gated edges are listed only when the author is known, either
        passed in or because the actor wrote the story.
        """
        current = story.stage or StoryStage.DRAFT
        role = effective_role(actor)
        author = self._resolve_author(story, actor, author)
        options = []
        for to_stage in sorted(allowed_targets(current), key=lambda item: item.value):
            edge = STAGE_EDGES[(current, to_stage)]
            if not self.policy.is_allowed(role, edge, current):
                continue
            if not self.policy.author_may_take(author_role(author), current, to_stage):
                continue
            try:
                self._check_seat(story, actor, current)
            except Unauthorized:
                continue
            slot = SLOT_FOR_STAGE.get(to_stage)
            options.append(
                {
                    "action": edge.value,
                    "target_stage": to_stage.value,
                    "requires_assignee": slot.value if slot else None,
                }
            )
        return options

    @staticmethod
    def _resolve_author(story: Story, actor: User, author: User | None) -> User | None:
        if author is not None:
            return author
        return actor if actor.id == story.author_id else None

    def _check_author_gate(
        self,
        story: Story,
        author: User | None,
        current: StoryStage,
        to_stage: StoryStage,
    ) -> None:
        if self.policy.author_may_take(author_role(author), current, to_stage):
            return
        role = author_role(author)
        raise InvalidTransition(
            f"A story written by {role.value if role else 'an unknown author'} "
            f"cannot move from {current.value} to {to_stage.value}",
            story_id=story.id,
            from_state=current.value,
            to_state=to_stage.value,
            author_role=role.value if role else None,
            required_author_roles=self.policy.author_gate_names(current, to_stage),
        )

    def _check_seat(self, story: Story, actor: User, current: StoryStage) -> None:
        if not self.policy.requires_seat(effective_role(actor), current):
            return
        seat = self.policy.seat_for(current)
        if seat is None or seat_holder_id(story, seat) == actor.id:
            return
        raise Unauthorized(
            f"Only the story's {seat.value} can move it out of {current.value}",
            seat=seat.value,
            stage=current.value,
        )


stage_machine = StageMachine()
