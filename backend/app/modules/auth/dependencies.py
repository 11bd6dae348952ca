from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional
import uuid

from app.core.database import get_db
from app.core.exceptions import AuthenticationError, UnauthorizedError
from app.core.logging_config import logger, set_user_id
from app.core.security import decode_token, security
from app.models.user import User
from app.modules.auth.capabilities import ActorContext


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Get current authenticated user"""

    if credentials is None:
        raise AuthenticationError("Missing bearer token")

    payload = decode_token(credentials.credentials)

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    try:
        uuid.UUID(str(user_id))
    except ValueError:
        raise AuthenticationError("Invalid user ID format")

    result = await db.execute(
        select(User).where(User.id == str(user_id))
    )
    user = result.scalar_one_or_none()

    if not user:
        logger.log_auth_event("token", success=False, user_id=str(user_id), reason="unknown user")
        raise AuthenticationError("User not found")

    if not user.is_active:
        logger.log_auth_event("token", success=False, user_id=user.id, reason="inactive")
        raise UnauthorizedError("User account is inactive")

    set_user_id(user.id)
    return user


async def get_actor_context(
    current_user: User = Depends(get_current_user)
) -> ActorContext:
    """Build the explicit actor context handed to every service call"""
    return ActorContext.for_user(current_user)
