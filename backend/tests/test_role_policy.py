import pytest

from app.core.errors import Unauthorized
from app.domain.workflow.role_policy import AssignmentSlot, Seat, WorkflowAction, get_role_policy
from app.models import StaffRole, StoryStage, User, UserType

policy = get_role_policy()


def _user(role: StaffRole | None, *, user_type: UserType = UserType.STAFF, active: bool = True) -> User:
    return User(id=1, username="u", full_name="U", user_type=user_type, staff_role=role, is_active=active)


@pytest.mark.parametrize(
    ("role", "allowed"),
    [
        (StaffRole.INTERN, False),
        (StaffRole.JOURNALIST, True),
        (StaffRole.SUB_EDITOR, False),
        (StaffRole.EDITOR, False),
        (StaffRole.SUPERADMIN, False),
    ],
)
def test_only_journalists_occupy_the_reviewer_slot(role, allowed) -> None:
    assert policy.can_occupy(role, AssignmentSlot.reviewer) is allowed


def test_approver_slot_requires_sub_editor_or_above() -> None:
    assert not policy.can_occupy(StaffRole.JOURNALIST, AssignmentSlot.approver)
    for role in (StaffRole.SUB_EDITOR, StaffRole.EDITOR, StaffRole.ADMIN, StaffRole.SUPERADMIN):
        assert policy.can_occupy(role, AssignmentSlot.approver)


def test_any_staff_role_can_be_a_translator() -> None:
    assert all(policy.can_occupy(role, AssignmentSlot.translator) for role in StaffRole)
    assert not policy.can_occupy(None, AssignmentSlot.translator)


def test_reviewer_reassignment_is_keyed_to_the_review_stage() -> None:
    assert policy.is_allowed(StaffRole.SUB_EDITOR, WorkflowAction.REASSIGN_REVIEWER, StoryStage.NEEDS_JOURNALIST_REVIEW)
    assert not policy.is_allowed(StaffRole.SUB_EDITOR, WorkflowAction.REASSIGN_REVIEWER, StoryStage.DRAFT)
    assert not policy.is_allowed(StaffRole.JOURNALIST, WorkflowAction.REASSIGN_REVIEWER, StoryStage.NEEDS_JOURNALIST_REVIEW)


def test_request_revision_from_review_is_open_to_journalists() -> None:
    assert policy.is_allowed(StaffRole.JOURNALIST, WorkflowAction.REQUEST_REVISION, StoryStage.NEEDS_JOURNALIST_REVIEW)
    assert not policy.is_allowed(StaffRole.JOURNALIST, WorkflowAction.REQUEST_REVISION, StoryStage.APPROVED)


def test_interns_may_create_and_submit_but_not_approve() -> None:
    assert policy.is_allowed(StaffRole.INTERN, WorkflowAction.CREATE_STORY)
    assert policy.is_allowed(StaffRole.INTERN, WorkflowAction.SUBMIT_FOR_REVIEW, StoryStage.DRAFT)
    assert not policy.is_allowed(StaffRole.INTERN, WorkflowAction.APPROVE, StoryStage.DRAFT)


def test_deletion_class_actions_need_editor() -> None:
    for action in (WorkflowAction.DELETE_CATEGORY, WorkflowAction.DELETE_TAG, WorkflowAction.DELETE_CLASSIFICATION):
        assert not policy.is_allowed(StaffRole.SUB_EDITOR, action)
        assert policy.is_allowed(StaffRole.EDITOR, action)


def test_unknown_role_is_denied_everything() -> None:
    assert policy.allowed_actions(None, None) == []


def test_authorize_rejects_radio_accounts_and_inactive_staff() -> None:
    with pytest.raises(Unauthorized):
        policy.authorize(_user(None, user_type=UserType.RADIO), WorkflowAction.READ_STORY)
    with pytest.raises(Unauthorized) as exc_info:
        policy.authorize(_user(StaffRole.EDITOR, active=False), WorkflowAction.READ_STORY)
    assert exc_info.value.details["action"] == "read_story"


def test_authorize_reports_stage_in_details() -> None:
    with pytest.raises(Unauthorized) as exc_info:
        policy.authorize(_user(StaffRole.JOURNALIST), WorkflowAction.PUBLISH, StoryStage.READY_TO_PUBLISH)
    assert exc_info.value.details == {
        "action": "publish",
        "role": "JOURNALIST",
        "stage": "READY_TO_PUBLISH",
    }


def test_seats_and_exemptions() -> None:
    assert policy.seat_for(StoryStage.DRAFT) == Seat.author
    assert policy.seat_for(StoryStage.NEEDS_SUB_EDITOR_APPROVAL) == Seat.approver
    assert policy.seat_for(StoryStage.APPROVED) is None
    assert policy.requires_seat(StaffRole.SUB_EDITOR, StoryStage.NEEDS_SUB_EDITOR_APPROVAL)
    assert not policy.requires_seat(StaffRole.EDITOR, StoryStage.NEEDS_SUB_EDITOR_APPROVAL)


def test_policy_table_is_read_only() -> None:
    with pytest.raises(TypeError):
        policy.rules[WorkflowAction.PUBLISH] = {}


@pytest.mark.parametrize(
    ("author_role", "to_stage", "allowed"),
    [
        (StaffRole.INTERN, StoryStage.APPROVED, False),
        (StaffRole.JOURNALIST, StoryStage.APPROVED, False),
        (StaffRole.SUB_EDITOR, StoryStage.APPROVED, True),
        (StaffRole.EDITOR, StoryStage.APPROVED, True),
        (StaffRole.INTERN, StoryStage.NEEDS_SUB_EDITOR_APPROVAL, False),
        (StaffRole.JOURNALIST, StoryStage.NEEDS_SUB_EDITOR_APPROVAL, True),
        (StaffRole.INTERN, StoryStage.NEEDS_JOURNALIST_REVIEW, True),
        (None, StoryStage.APPROVED, False),
        (None, StoryStage.NEEDS_JOURNALIST_REVIEW, True),
    ],
)
def test_author_gates_on_draft_edges(author_role, to_stage, allowed) -> None:
    assert policy.author_may_take(author_role, StoryStage.DRAFT, to_stage) is allowed


def test_ungated_edges_list_no_author_roles() -> None:
    assert policy.author_gate_names(StoryStage.NEEDS_SUB_EDITOR_APPROVAL, StoryStage.APPROVED) == []
    assert policy.author_gate_names(StoryStage.DRAFT, StoryStage.NEEDS_SUB_EDITOR_APPROVAL) == [
        "ADMIN",
        "EDITOR",
        "JOURNALIST",
        "SUB_EDITOR",
        "SUPERADMIN",
    ]
