"""Account routes for the signed-in user."""

from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from moodboard.ai.usage import daily_image_limit, get_image_usage, utc_today
from moodboard.auth.middleware import AuthUser, get_current_user
from moodboard.auth.profiles import ensure_profile
from moodboard.config import settings
from moodboard.db import get_db
from moodboard.models import ActivityLog, Dashboard, Profile, UserDataTable
from moodboard.models.base import as_utc

router = APIRouter()


class ProfileUpdate(BaseModel):
    """Editable profile fields."""

    full_name: Optional[str] = Field(None, max_length=255)
    avatar_url: Optional[str] = Field(None, max_length=1024)
    company: Optional[str] = Field(None, max_length=255)


def _iso(value) -> Optional[str]:
    return as_utc(value).isoformat() if value else None


def profile_to_dict(profile: Profile) -> dict:
    return {
        "id": str(profile.id),
        "email": profile.email,
        "full_name": profile.full_name,
        "avatar_url": profile.avatar_url,
        "company": profile.company,
        "role": profile.role.value,
        "subscription_tier": profile.subscription_tier.value,
        "subscription_status": profile.subscription_status,
        "current_period_end": _iso(profile.current_period_end),
        "cancel_at": _iso(profile.cancel_at),
        "trial_ends_at": _iso(profile.trial_ends_at),
        "has_billing_account": bool(profile.stripe_customer_id),
        "created_at": _iso(profile.created_at),
    }


def _is_chart(item) -> bool:
    return isinstance(item, dict) and "chart" in str(item.get("type") or "").lower()


@router.get("/profile")
async def get_profile(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    profile = await ensure_profile(db, current_user)
    return {"profile": profile_to_dict(profile)}


@router.patch("/profile")
async def update_profile(
    request: ProfileUpdate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    profile = await ensure_profile(db, current_user)
    for field, value in request.model_dump(exclude_unset=True).items():
        setattr(profile, field, value)
    await db.flush()
    return {"profile": profile_to_dict(profile)}


@router.get("/stats")
async def get_stats(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Dashboard, table and chart counts."""
    tables = await db.execute(
        select(func.count(UserDataTable.id)).where(UserDataTable.user_id == current_user.user_id)
    )
    canvases = await db.execute(
        select(Dashboard.canvas_items).where(Dashboard.user_id == current_user.user_id)
    )
    canvas_items = [items or [] for items in canvases.scalars().all()]
    return {
        "dashboards_count": len(canvas_items),
        "data_tables_count": tables.scalar_one(),
        "charts_count": sum(1 for items in canvas_items for item in items if _is_chart(item)),
    }


@router.get("/usage")
async def get_usage(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Today's image usage and the plan limits."""
    profile = await ensure_profile(db, current_user)
    tables = await db.execute(
        select(func.count(UserDataTable.id)).where(UserDataTable.user_id == current_user.user_id)
    )
    return {
        "tier": profile.subscription_tier.value,
        "images": {
            "date": utc_today().isoformat(),
            "used": await get_image_usage(db, current_user.user_id),
            "limit": daily_image_limit(profile),
        },
        "tables": {
            "used": tables.scalar_one(),
            "limit": None if profile.is_pro else settings.free_tier_max_tables,
        },
    }


@router.get("/activity")
async def get_activity(
    limit: int = 10,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Most recent activity entries."""
    result = await db.execute(
        select(ActivityLog)
        .where(ActivityLog.user_id == current_user.user_id)
        .order_by(ActivityLog.created_at.desc())
        .limit(max(1, min(limit, 100)))
    )
    return {
        "activity": [
            {
                "id": str(entry.id),
                "action": entry.action,
                "resource_type": entry.resource_type,
                "resource_id": entry.resource_id,
                "metadata": entry.activity_metadata,
                "created_at": _iso(entry.created_at),
            }
            for entry in result.scalars().all()
        ]
    }
