"""
Newsroom Workflow Engine - Authentication Routes
================================================
Bearer-token actor resolution and the current-actor endpoint.
Tokens are issued by the external identity service; `sub` is the username.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.envelope import success_envelope
from app.core.database import get_db
from app.core.logging import get_logger
from app.core.security import decode_access_token
from app.domain.workflow.role_policy import get_role_policy
from app.models.user import User
from app.repositories.story_repository import user_repository
from app.schemas.auth import ActorProfile

router = APIRouter(prefix="/auth", tags=["Authentication"])
logger = get_logger("auth")
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired access token",
        )

    username = payload.get("sub")
    if not username:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token has no subject",
        )

    user = await user_repository.get_user_by_username(db, str(username))
    if not user or not user.is_active:
        logger.warning("auth_rejected", username=username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account does not exist or is disabled",
        )
    return user


# -- Current user --
@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    profile = ActorProfile.model_validate(current_user)
    role = current_user.staff_role if current_user.is_staff else None
    profile.allowed_actions = [action.value for action in get_role_policy().allowed_actions(role, None)]
    return success_envelope(profile.model_dump(mode="json"))
