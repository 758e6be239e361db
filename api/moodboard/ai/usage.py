"""Daily AI image quota.

A slot is reserved (committed) before the image call so concurrent requests
see it, and released again if the call fails.
"""

from datetime import date, datetime, timezone
from typing import Optional
from uuid import UUID
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from moodboard.config import settings
from moodboard.logging_config import logger
from moodboard.models import AIImageUsage, Profile


class QuotaExceeded(Exception):
    """The user has used all image generations for today."""

    def __init__(self, limit: int, used: int):
        super().__init__(f"Daily image limit of {limit} reached")
        self.limit = limit
        self.used = used


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def daily_image_limit(profile: Profile) -> int:
    return settings.pro_tier_images_per_day if profile.is_pro else settings.free_tier_images_per_day


async def get_image_usage(db: AsyncSession, user_id: UUID, day: Optional[date] = None) -> int:
    result = await db.execute(
        select(AIImageUsage.used).where(
            AIImageUsage.user_id == user_id,
            AIImageUsage.usage_date == (day or utc_today()),
        )
    )
    return result.scalar_one_or_none() or 0


async def reserve_image_slot(db: AsyncSession, user_id: UUID, limit: int, day: Optional[date] = None) -> int:
    """Atomically take one image slot for ``day`` and commit.

    Args:
        db: Database session (committed on success)
        user_id: Owner of the quota
        limit: Daily limit for the user's tier
        day: Usage day, defaults to today in UTC

    Returns:
        Usage count including this reservation

    Raises:
        QuotaExceeded: If the limit is already reached
    """
    day = day or utc_today()

    for _ in range(2):
        result = await db.execute(
            update(AIImageUsage)
            .where(
                AIImageUsage.user_id == user_id,
                AIImageUsage.usage_date == day,
                AIImageUsage.used < limit,
            )
            .values(used=AIImageUsage.used + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            await db.commit()
            return await get_image_usage(db, user_id, day)

        used = await get_image_usage(db, user_id, day)
        exists = await db.execute(
            select(AIImageUsage.user_id).where(AIImageUsage.user_id == user_id, AIImageUsage.usage_date == day)
        )
        if exists.scalar_one_or_none() is not None or limit < 1:
            raise QuotaExceeded(limit=limit, used=used)

        db.add(AIImageUsage(user_id=user_id, usage_date=day, used=1))
        try:
            await db.commit()
            return 1
        except IntegrityError:
            # Another request created today's row first; retry the conditional update
            await db.rollback()

    raise QuotaExceeded(limit=limit, used=await get_image_usage(db, user_id, day))


async def release_image_slot(db: AsyncSession, user_id: UUID, day: date) -> None:
    """Give back a reserved slot after a failed generation (never below zero)."""
    try:
        await db.execute(
            update(AIImageUsage)
            .where(
                AIImageUsage.user_id == user_id,
                AIImageUsage.usage_date == day,
                AIImageUsage.used > 0,
            )
            .values(used=AIImageUsage.used - 1)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Failed to release image slot", user_id=str(user_id), day=day.isoformat(), error=str(e))
