"""
shared/middleware/auth.py
Authentication and role dependencies for the routers.
Identity comes from the bearer token on each request; nothing is cached
between requests beyond the Redis deny-list.
"""

import uuid
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from shared.models.models import StudentProfile, TutorProfile, User, UserRole, UserStatus
from shared.utils.security import verify_access_token

bearer_scheme = HTTPBearer(auto_error=False)


class TokenData:
    def __init__(self, payload: dict):
        self.payload = payload
        self.user_id: str = payload["sub"]
        self.email: str = payload["email"]
        self.role: UserRole = UserRole(payload["role"])
        self.jti: str = payload["jti"]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _decode(token: str, redis) -> TokenData:
    try:
        payload = verify_access_token(token)
    except JWTError:
        raise _unauthorized("Invalid or expired token")
    if await RedisCache(redis).is_token_revoked(payload.get("jti", "")):
        raise _unauthorized("Token has been revoked")
    return TokenData(payload)


async def get_token_data(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    redis=Depends(get_redis),
) -> TokenData:
    if credentials is None:
        raise _unauthorized("Authentication required")
    return await _decode(credentials.credentials, redis)


async def get_optional_token_data(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    redis=Depends(get_redis),
) -> Optional[TokenData]:
    """Like get_token_data, but a missing or unusable token yields None."""
    if credentials is None:
        return None
    try:
        return await _decode(credentials.credentials, redis)
    except HTTPException:
        return None


async def get_current_user(
    token_data: TokenData = Depends(get_token_data),
    db: AsyncSession = Depends(get_db),
) -> User:
    """The token's user, who must still exist and must not be suspended."""
    try:
        user_id = uuid.UUID(token_data.user_id)
    except ValueError:
        raise _unauthorized("Invalid or expired token")

    user = await db.get(User, user_id)
    if user is None:
        raise _unauthorized("User not found")
    if user.status == UserStatus.SUSPENDED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is suspended",
        )
    return user


class RoleRequired:
    """Dependency that admits only users holding one of `roles`."""

    def __init__(self, *roles: UserRole):
        self.roles = roles

    async def __call__(self, current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in self.roles:
            allowed = ", ".join(role.value for role in self.roles)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"This action requires role: {allowed}",
            )
        return current_user


require_student = RoleRequired(UserRole.STUDENT)
require_tutor = RoleRequired(UserRole.TUTOR)
require_admin = RoleRequired(UserRole.ADMIN)


async def get_student_profile(user: User, db: AsyncSession) -> Optional[StudentProfile]:
    return await db.scalar(select(StudentProfile).where(StudentProfile.user_id == user.id))


async def get_tutor_profile(user: User, db: AsyncSession) -> Optional[TutorProfile]:
    return await db.scalar(select(TutorProfile).where(TutorProfile.user_id == user.id))
