"""Admin metrics: totals, 30-day daily series and top users."""

from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Union
from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from moodboard.ai.usage import utc_today
from moodboard.auth.middleware import AuthUser, require_admin
from moodboard.db import get_db
from moodboard.logging_config import logger
from moodboard.models import AIImageUsage, ActivityLog, DataConnection, Dashboard, Profile, UserDataTable
from moodboard.models.base import as_utc, utcnow

router = APIRouter()

WINDOW_DAYS = 30
TOP_USERS = 10


def _day(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return as_utc(value).date()
    return value


def daily_series(
    entries: Iterable[tuple[Union[date, datetime], int]],
    days: int = WINDOW_DAYS,
    today: Optional[date] = None,
) -> list[dict]:
    """Sum ``(timestamp, value)`` pairs per UTC day, oldest day first, zero-filled."""
    today = today or utc_today()
    totals: dict[date, int] = defaultdict(int)
    for stamp, value in entries:
        totals[_day(stamp)] += value
    return [
        {"date": day.isoformat(), "count": totals.get(day, 0)}
        for day in (today - timedelta(days=offset) for offset in range(days - 1, -1, -1))
    ]


async def _count(db: AsyncSession, column) -> int:
    result = await db.execute(select(func.count(column)))
    return result.scalar_one()


async def _with_profiles(db: AsyncSession, rows: list[dict]) -> list[dict]:
    user_ids = [row["user_id"] for row in rows]
    if not user_ids:
        return rows
    result = await db.execute(
        select(Profile.id, Profile.email, Profile.full_name).where(Profile.id.in_(user_ids))
    )
    profiles = {pid: (email, name) for pid, email, name in result.all()}
    for row in rows:
        email, name = profiles.get(row["user_id"], (None, None))
        row["email"] = email
        row["full_name"] = name
        row["user_id"] = str(row["user_id"])
    return rows


@router.get("/metrics")
async def admin_metrics(
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Platform metrics for the admin dashboard."""
    since = utcnow() - timedelta(days=WINDOW_DAYS)
    since_day = utc_today() - timedelta(days=WINDOW_DAYS - 1)

    dashboards_recent = await db.execute(select(Dashboard.created_at).where(Dashboard.created_at >= since))
    tables_recent = (
        await db.execute(
            select(UserDataTable.created_at, UserDataTable.row_count).where(UserDataTable.created_at >= since)
        )
    ).all()
    ai_recent = await db.execute(
        select(AIImageUsage.usage_date, AIImageUsage.used).where(AIImageUsage.usage_date >= since_day)
    )

    activity_counts = await db.execute(
        select(ActivityLog.user_id, func.count(ActivityLog.id).label("count"))
        .where(ActivityLog.created_at >= since)
        .group_by(ActivityLog.user_id)
        .order_by(func.count(ActivityLog.id).desc())
        .limit(TOP_USERS)
    )
    ai_totals = await db.execute(
        select(AIImageUsage.user_id, func.sum(AIImageUsage.used).label("total_used"))
        .group_by(AIImageUsage.user_id)
        .order_by(func.sum(AIImageUsage.used).desc())
        .limit(TOP_USERS)
    )

    table_days = daily_series((created, 1) for created, _ in tables_recent)
    row_days = daily_series((created, rows or 0) for created, rows in tables_recent)

    metrics = {
        "users": await _count(db, Profile.id),
        "dashboards": await _count(db, Dashboard.id),
        "dataTables": await _count(db, UserDataTable.id),
        "connections": await _count(db, DataConnection.id),
        "totalRows": sum(rows or 0 for _, rows in tables_recent),
        "dashboardsByDay": daily_series((created, 1) for created in dashboards_recent.scalars().all()),
        "tablesByDay": [
            {"date": t["date"], "tables": t["count"], "rows": r["count"]}
            for t, r in zip(table_days, row_days)
        ],
        "aiUsageByDay": daily_series((day, used or 0) for day, used in ai_recent.all()),
        "activityPerUser": await _with_profiles(
            db, [{"user_id": uid, "count": count} for uid, count in activity_counts.all()]
        ),
        "topAiUsers": await _with_profiles(
            db, [{"user_id": uid, "total_used": int(total or 0)} for uid, total in ai_totals.all()]
        ),
    }
    logger.info("Admin metrics served", admin_id=str(admin.user_id))
    return metrics
