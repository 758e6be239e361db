"""Authentication middleware for JWT token verification.

Users live in Supabase Auth. The middleware reads the user's identity from
the Supabase JWT itself; the local ``profiles`` row is only consulted for
admin checks and plan limits.
"""

import jwt
from typing import Optional
from uuid import UUID
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moodboard.config import settings
from moodboard.db import get_db
from moodboard.logging_config import logger
from moodboard.models import Profile, ProfileRole

# Security scheme for extracting Bearer token
security = HTTPBearer()


class AuthUser:
    """Authenticated user context extracted from a Supabase JWT."""

    def __init__(
        self,
        user_id: UUID,
        email: str,
        email_verified: bool = False,
        full_name: Optional[str] = None,
        role: str = "user",
    ):
        self.user_id = user_id
        self.email = email
        self.email_verified = email_verified
        self.full_name = full_name
        self.role = role

    def __repr__(self):
        return f"<AuthUser(user_id={self.user_id}, email={self.email})>"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def verify_token(token: str) -> dict:
    """Decode a Supabase access token (HS256, ``authenticated`` audience).

    Raises:
        HTTPException: 401 when the token is expired, malformed, signed with
            another secret or the secret is not configured
    """
    if not settings.supabase_jwt_secret:
        logger.error("SUPABASE_JWT_SECRET is not configured")
        raise _unauthorized("Invalid authentication token")

    try:
        return jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=["HS256"],
            audience=settings.supabase_jwt_audience,
            leeway=settings.supabase_jwt_leeway_seconds,
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Token expired")
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token", error=str(e))
        raise _unauthorized("Invalid authentication token")


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> AuthUser:
    """Resolve the caller from the bearer token; ``sub`` must be the Supabase user UUID."""
    payload = await verify_token(credentials.credentials)
    try:
        user_id = UUID(str(payload["sub"]))
    except ValueError:
        raise _unauthorized("Invalid token: malformed user ID")

    user_metadata = payload.get("user_metadata") or {}
    app_metadata = payload.get("app_metadata") or {}

    return AuthUser(
        user_id=user_id,
        email=payload.get("email") or "",
        email_verified=payload.get("email_confirmed_at") is not None,
        full_name=user_metadata.get("full_name") or user_metadata.get("name"),
        role=app_metadata.get("role", "user"),  # Role in app_metadata, not user-editable
    )


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(
        HTTPBearer(auto_error=False)
    ),
) -> Optional[AuthUser]:
    """Get current user if authenticated, None otherwise.

    Args:
        credentials: Optional HTTP Bearer credentials

    Returns:
        Authenticated user or None
    """
    if not credentials:
        return None

    try:
        return await get_current_user(credentials)
    except HTTPException:
        return None


async def require_admin(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> AuthUser:
    """Allow the request only for admins.

    A user is an admin when their email is listed in ``ADMIN_EMAILS`` or
    their profile role is ``admin``.

    Raises:
        HTTPException: 403 for non-admin users
    """
    if current_user.email and current_user.email.lower() in settings.admin_emails:
        return current_user

    result = await db.execute(select(Profile.role).where(Profile.id == current_user.user_id))
    role = result.scalar_one_or_none()
    if role == ProfileRole.ADMIN:
        return current_user

    logger.warning("Admin access denied", user_id=str(current_user.user_id))
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Admin access required",
    )
