from __future__ import annotations

from fastapi import Depends

from app.api.routes.auth import get_current_user
from app.domain.workflow.role_policy import WorkflowAction, get_role_policy
from app.models.user import User


def require_action(action: WorkflowAction):
    """Route-level gate for actions the policy grants independent of stage."""

    async def _dependency(current_user: User = Depends(get_current_user)) -> User:
        get_role_policy().authorize(current_user, action)
        return current_user

    return _dependency
