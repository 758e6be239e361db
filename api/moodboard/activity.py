"""Activity log helper shared by the user-facing routes."""

from typing import Any, Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from moodboard.logging_config import logger, redact_sensitive_data
from moodboard.models import ActivityLog


async def record_activity(
    db: AsyncSession,
    user_id: UUID,
    action: str,
    resource_type: Optional[str] = None,
    resource_id: Optional[Any] = None,
    metadata: Optional[dict] = None,
) -> ActivityLog:
    """Add an activity row to the current session; committed with the request."""
    entry = ActivityLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        activity_metadata=redact_sensitive_data(metadata) if metadata else None,
    )
    db.add(entry)
    logger.info(
        "Activity recorded",
        user_id=str(user_id),
        action=action,
        resource_type=resource_type,
        resource_id=entry.resource_id,
    )
    return entry
