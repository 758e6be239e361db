"""Profile synchronization between Supabase Auth and the local database."""

from typing import Optional
from uuid import UUID
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from moodboard.auth.middleware import AuthUser
from moodboard.logging_config import logger
from moodboard.models import Profile


async def get_profile(db: AsyncSession, user_id: UUID) -> Optional[Profile]:
    result = await db.execute(select(Profile).where(Profile.id == user_id))
    return result.scalar_one_or_none()


async def ensure_profile(db: AsyncSession, user: AuthUser) -> Profile:
    """Get the profile of an authenticated user, creating it on first use.

    Args:
        db: Database session
        user: Authenticated user from the JWT

    Returns:
        Profile: existing or newly created row
    """
    profile = await get_profile(db, user.user_id)
    if profile:
        if user.email and profile.email != user.email:
            profile.email = user.email
        return profile

    profile = Profile(
        id=user.user_id,
        email=user.email or None,
        full_name=user.full_name,
    )
    db.add(profile)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        # Created concurrently by another request
        logger.info("Profile created concurrently", user_id=str(user.user_id))
        profile = await get_profile(db, user.user_id)
        if profile is None:
            raise
        return profile

    logger.info("Created profile from Supabase auth", user_id=str(user.user_id), email=user.email)
    return profile
