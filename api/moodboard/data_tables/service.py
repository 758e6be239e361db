"""Queries over a user's stored data tables."""

from typing import Optional
from uuid import UUID
from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from moodboard.config import settings
from moodboard.logging_config import logger
from moodboard.models import Profile, UserDataTable

UPGRADE_MESSAGE = "Free plan limit reached. Upgrade to Pro to add more tables."


def _parse_uuid(value: Optional[str]) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


def table_context(table: UserDataTable) -> dict:
    """Shape a stored table the way canvas state carries ``dataTables`` entries."""
    return {
        "id": str(table.id),
        "name": table.name,
        "tableName": table.name,
        "source": table.source,
        "schema": table.table_schema or [],
        "data": table.data or [],
        "rowCount": table.row_count,
    }


async def get_user_table(db: AsyncSession, user_id: UUID, table_id: str) -> Optional[UserDataTable]:
    parsed = _parse_uuid(table_id)
    if parsed is None:
        return None
    result = await db.execute(
        select(UserDataTable).where(UserDataTable.id == parsed, UserDataTable.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def count_user_tables(db: AsyncSession, user_id: UUID) -> int:
    result = await db.execute(
        select(func.count(UserDataTable.id)).where(UserDataTable.user_id == user_id)
    )
    return result.scalar_one()


async def upsert_user_table(
    db: AsyncSession,
    profile: Profile,
    name: str,
    source: str,
    data: Optional[list] = None,
    schema: Optional[list] = None,
    row_count: Optional[int] = None,
    description: Optional[str] = None,
    source_config: Optional[dict] = None,
) -> tuple[UserDataTable, bool]:
    """Insert a table or replace the contents of the user's table with the same name.

    Free-tier users are limited to ``FREE_TIER_MAX_TABLES`` tables; the limit
    applies to new tables only.

    Returns:
        (table, created)

    Raises:
        HTTPException: 402 with ``requiresUpgrade`` when the free limit is reached
    """
    data = data or []
    result = await db.execute(
        select(UserDataTable).where(UserDataTable.user_id == profile.id, UserDataTable.name == name)
    )
    table = result.scalar_one_or_none()

    if table is None:
        if not profile.is_pro:
            existing = await count_user_tables(db, profile.id)
            if existing >= settings.free_tier_max_tables:
                logger.info("Free tier table limit reached", user_id=str(profile.id), tables=existing)
                raise HTTPException(
                    status_code=status.HTTP_402_PAYMENT_REQUIRED,
                    detail={"error": UPGRADE_MESSAGE, "requiresUpgrade": True},
                )
        table = UserDataTable(user_id=profile.id, name=name)
        db.add(table)
        created = True
    else:
        created = False

    table.source = source
    table.data = data
    table.table_schema = schema or []
    table.row_count = row_count if row_count is not None else len(data)
    if description is not None:
        table.description = description
    if source_config is not None:
        table.source_config = source_config

    await db.flush()
    return table, created


class UserTableLoader:
    """Dataset loader backed by the authenticated user's stored tables."""

    def __init__(self, db: AsyncSession, user_id: UUID):
        self.db = db
        self.user_id = user_id

    async def find_table(self, name: Optional[str] = None, table_id: Optional[str] = None) -> Optional[dict]:
        if table_id:
            table = await get_user_table(self.db, self.user_id, table_id)
            if table is not None:
                return table_context(table)
        if not name:
            return None

        result = await self.db.execute(
            select(UserDataTable)
            .where(
                UserDataTable.user_id == self.user_id,
                func.lower(UserDataTable.name) == name.strip().lower(),
            )
            .limit(1)
        )
        table = result.scalar_one_or_none()
        return table_context(table) if table else None

    async def list_datasets(self) -> list[dict]:
        result = await self.db.execute(
            select(UserDataTable.name, UserDataTable.row_count, UserDataTable.source)
            .where(UserDataTable.user_id == self.user_id)
            .order_by(UserDataTable.created_at.desc())
        )
        return [
            {"name": name, "row_count": row_count, "source": source}
            for name, row_count, source in result.all()
        ]
