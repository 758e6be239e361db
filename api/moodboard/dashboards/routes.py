"""Dashboard routes: CRUD, autosave, duplication, publishing and shared views."""

import re
import secrets
import string
import time
from typing import Any, Literal, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from moodboard.activity import record_activity
from moodboard.auth.middleware import AuthUser, get_current_user
from moodboard.db import get_db
from moodboard.logging_config import logger
from moodboard.models import Dashboard
from moodboard.models.base import as_utc

router = APIRouter()

_SLUG_CHARS = string.ascii_lowercase + string.digits
_BASE36 = string.digits + string.ascii_lowercase
_NON_SLUG = re.compile(r"[^a-z0-9]+")


class DashboardCreate(BaseModel):
    """New dashboard."""

    name: str = Field("Untitled Dashboard", max_length=255)
    description: Optional[str] = None
    slug: Optional[str] = None
    canvas_mode: str = "design"
    canvas_items: list[Any] = Field(default_factory=list)
    canvas_elements: list[Any] = Field(default_factory=list)
    data_tables: list[Any] = Field(default_factory=list)
    connections: list[Any] = Field(default_factory=list)
    canvas_background: Optional[dict[str, Any]] = None
    theme: Optional[str] = None
    state_json: Optional[dict[str, Any]] = None
    thumbnail_url: Optional[str] = None


class DashboardUpdate(BaseModel):
    """Partial dashboard update; only fields present in the body are applied."""

    name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    canvas_mode: Optional[str] = None
    canvas_background: Optional[dict[str, Any]] = None
    theme: Optional[str] = None
    thumbnail_url: Optional[str] = None


# Columns a partial update may change but never clear
NON_NULLABLE_FIELDS = ("name", "canvas_mode")


class DashboardState(BaseModel):
    """Autosave payload."""

    canvas_items: list[Any]
    canvas_elements: Optional[list[Any]] = None
    data_tables: list[Any] = Field(default_factory=list)
    connections: list[Any] = Field(default_factory=list)
    state_json: Optional[dict[str, Any]] = None


class DuplicateRequest(BaseModel):
    name: Optional[str] = None


class PublishRequest(BaseModel):
    visibility: Literal["public", "unlisted", "private"]
    allowComments: bool = False
    allowDownloads: bool = False


def generate_slug(name: str) -> str:
    """URL slug from a name plus a base-36 millisecond suffix."""
    base = _NON_SLUG.sub("-", name.lower()).strip("-")
    return f"{base}-{_base36(int(time.time() * 1000))}"


def generate_share_slug() -> str:
    suffix = "".join(secrets.choice(_SLUG_CHARS) for _ in range(8))
    return f"proj_{int(time.time() * 1000)}_{suffix}"


def _base36(value: int) -> str:
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits)) or "0"


def dashboard_to_dict(dashboard: Dashboard, include_canvas: bool = True) -> dict:
    payload = {
        "id": str(dashboard.id),
        "name": dashboard.name,
        "description": dashboard.description,
        "slug": dashboard.slug,
        "share_slug": dashboard.share_slug,
        "visibility": dashboard.visibility,
        "is_public": dashboard.is_public,
        "is_unlisted": dashboard.is_unlisted,
        "allow_comments": dashboard.allow_comments,
        "allow_downloads": dashboard.allow_downloads,
        "thumbnail_url": dashboard.thumbnail_url,
        "view_count": dashboard.view_count,
        "created_at": as_utc(dashboard.created_at).isoformat() if dashboard.created_at else None,
        "updated_at": as_utc(dashboard.updated_at).isoformat() if dashboard.updated_at else None,
    }
    if include_canvas:
        payload.update({
            "canvas_mode": dashboard.canvas_mode,
            "canvas_items": dashboard.canvas_items or [],
            "canvas_elements": dashboard.canvas_elements or [],
            "data_tables": dashboard.data_tables or [],
            "connections": dashboard.connections or [],
            "canvas_background": dashboard.canvas_background,
            "theme": dashboard.theme,
            "state_json": dashboard.state_json,
        })
    return payload


async def _get_owned(db: AsyncSession, user_id: UUID, dashboard_id: UUID) -> Dashboard:
    result = await db.execute(
        select(Dashboard).where(Dashboard.id == dashboard_id, Dashboard.user_id == user_id)
    )
    dashboard = result.scalar_one_or_none()
    if dashboard is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Dashboard not found")
    return dashboard


async def _create(db: AsyncSession, user_id: UUID, data: DashboardCreate) -> Dashboard:
    dashboard = Dashboard(
        user_id=user_id,
        slug=data.slug or generate_slug(data.name),
        **data.model_dump(exclude={"slug"}),
    )
    db.add(dashboard)
    await db.flush()
    await record_activity(db, user_id, "dashboard_create", "dashboard", dashboard.id, {"name": dashboard.name})
    return dashboard


@router.get("")
async def list_dashboards(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The user's dashboards, most recently updated first."""
    result = await db.execute(
        select(Dashboard)
        .where(Dashboard.user_id == current_user.user_id)
        .order_by(Dashboard.updated_at.desc())
    )
    return {"dashboards": [dashboard_to_dict(d, include_canvas=False) for d in result.scalars().all()]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_dashboard(
    request: DashboardCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    dashboard = await _create(db, current_user.user_id, request)
    logger.info("Dashboard created", user_id=str(current_user.user_id), dashboard_id=str(dashboard.id))
    return {"dashboard": dashboard_to_dict(dashboard)}


@router.get("/shared/{share_slug}")
async def get_shared_dashboard(
    share_slug: str,
    db: AsyncSession = Depends(get_db),
):
    """Read a published dashboard by its share slug; counts a view."""
    result = await db.execute(select(Dashboard).where(Dashboard.share_slug == share_slug))
    dashboard = result.scalar_one_or_none()
    if dashboard is None or not dashboard.is_public:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Dashboard not found")

    await db.execute(
        update(Dashboard)
        .where(Dashboard.id == dashboard.id)
        .values(view_count=Dashboard.view_count + 1)
        .execution_options(synchronize_session=False)
    )
    payload = dashboard_to_dict(dashboard)
    payload["view_count"] = (dashboard.view_count or 0) + 1
    return {"dashboard": payload}


@router.get("/{dashboard_id}")
async def get_dashboard(
    dashboard_id: UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    dashboard = await _get_owned(db, current_user.user_id, dashboard_id)
    return {"dashboard": dashboard_to_dict(dashboard)}


@router.patch("/{dashboard_id}")
async def update_dashboard(
    dashboard_id: UUID,
    request: DashboardUpdate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    dashboard = await _get_owned(db, current_user.user_id, dashboard_id)
    changes = request.model_dump(exclude_unset=True)
    cleared = sorted(field for field in NON_NULLABLE_FIELDS if field in changes and changes[field] is None)
    if cleared:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Field cannot be null: {', '.join(cleared)}")
    for field, value in changes.items():
        setattr(dashboard, field, value)
    await db.flush()

    await record_activity(db, current_user.user_id, "dashboard_update", "dashboard", dashboard.id, {"fields": sorted(changes)})
    return {"dashboard": dashboard_to_dict(dashboard)}


@router.put("/{dashboard_id}/state")
async def save_dashboard_state(
    dashboard_id: UUID,
    request: DashboardState,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Autosave the canvas; elements and state_json are only replaced when sent."""
    dashboard = await _get_owned(db, current_user.user_id, dashboard_id)
    dashboard.canvas_items = request.canvas_items
    dashboard.data_tables = request.data_tables
    dashboard.connections = request.connections
    if request.canvas_elements is not None:
        dashboard.canvas_elements = request.canvas_elements
    if request.state_json is not None:
        dashboard.state_json = request.state_json
    await db.flush()

    logger.debug("Dashboard state saved", dashboard_id=str(dashboard.id), items=len(request.canvas_items))
    return {"dashboard": dashboard_to_dict(dashboard, include_canvas=False)}


@router.delete("/{dashboard_id}")
async def delete_dashboard(
    dashboard_id: UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    dashboard = await _get_owned(db, current_user.user_id, dashboard_id)
    await db.delete(dashboard)
    await record_activity(db, current_user.user_id, "dashboard_delete", "dashboard", dashboard_id, {"name": dashboard.name})
    logger.info("Dashboard deleted", user_id=str(current_user.user_id), dashboard_id=str(dashboard_id))
    return {"success": True}


@router.post("/{dashboard_id}/duplicate", status_code=status.HTTP_201_CREATED)
async def duplicate_dashboard(
    dashboard_id: UUID,
    request: Optional[DuplicateRequest] = None,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Copy the canvas into a new private dashboard."""
    original = await _get_owned(db, current_user.user_id, dashboard_id)
    name = (request.name if request else None) or f"{original.name} (Copy)"
    duplicate = await _create(db, current_user.user_id, DashboardCreate(
        name=name,
        description=original.description,
        canvas_mode=original.canvas_mode or "design",
        canvas_items=list(original.canvas_items or []),
        canvas_elements=list(original.canvas_elements or []),
        data_tables=list(original.data_tables or []),
        connections=list(original.connections or []),
        canvas_background=original.canvas_background,
        theme=original.theme,
        state_json=original.state_json,
    ))
    return {"dashboard": dashboard_to_dict(duplicate)}


@router.post("/{dashboard_id}/publish")
async def publish_dashboard(
    dashboard_id: UUID,
    request: PublishRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Set visibility and sharing options; a share slug is assigned on first publish."""
    dashboard = await _get_owned(db, current_user.user_id, dashboard_id)
    dashboard.is_public = request.visibility != "private"
    dashboard.is_unlisted = request.visibility == "unlisted"
    dashboard.allow_comments = request.allowComments
    dashboard.allow_downloads = request.allowDownloads
    if not dashboard.share_slug:
        dashboard.share_slug = generate_share_slug()
    await db.flush()

    await record_activity(db, current_user.user_id, "dashboard_publish", "dashboard", dashboard.id, {"visibility": request.visibility})
    logger.info("Dashboard published", dashboard_id=str(dashboard.id), visibility=request.visibility)
    return {"dashboard": dashboard_to_dict(dashboard, include_canvas=False)}
