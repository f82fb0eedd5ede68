"""
Workflow error kinds.

Every business-rule failure is a recoverable, caller-facing WorkflowError.
Unavailable is reserved for persistence-layer outages so callers can tell
"retry later" apart from "this request is invalid".
"""

from __future__ import annotations

from typing import Any


class WorkflowError(Exception):
    code = "workflow_error"
    status_code = 400
    default_message = "Workflow operation failed"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details = {key: value for key, value in details.items() if value is not None}
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, {self.details!r})"


class NotFound(WorkflowError):
    code = "not_found"
    status_code = 404
    default_message = "Referenced entity does not exist"


class Unauthorized(WorkflowError):
    code = "unauthorized"
    status_code = 403
    default_message = "Actor is not allowed to perform this action"


class InvalidTransition(WorkflowError):
    code = "invalid_transition"
    status_code = 409
    default_message = "Stage transition is not defined"


class StageMismatch(WorkflowError):
    code = "stage_mismatch"
    status_code = 409
    default_message = "Operation is not valid in the current stage"


class InvalidAssignee(WorkflowError):
    code = "invalid_assignee"
    status_code = 422
    default_message = "Assignee cannot occupy this slot"


class DuplicateFork(WorkflowError):
    code = "duplicate_fork"
    status_code = 409
    default_message = "An active translation already exists for this language"


class Conflict(WorkflowError):
    code = "conflict"
    status_code = 409
    default_message = "Content was modified concurrently. Retry."


class InvalidRequest(WorkflowError):
    code = "invalid_request"
    status_code = 400
    default_message = "Request is invalid"


class Unavailable(WorkflowError):
    code = "unavailable"
    status_code = 503
    default_message = "Persistence layer is unavailable. Retry later."
