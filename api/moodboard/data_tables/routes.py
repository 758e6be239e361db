"""Data table routes: list, upsert, fetch, delete and transform stored tables."""

from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moodboard.activity import record_activity
from moodboard.auth.middleware import AuthUser, get_current_user
from moodboard.auth.profiles import ensure_profile
from moodboard.data.transforms import process_transform_node
from moodboard.data_tables.service import get_user_table, upsert_user_table
from moodboard.db import get_db
from moodboard.logging_config import logger
from moodboard.models import UserDataTable

router = APIRouter()


class SaveTableRequest(BaseModel):
    """Create or replace a table by name."""

    name: Optional[str] = None
    source: Optional[str] = None
    description: Optional[str] = None
    data: list[dict[str, Any]] = Field(default_factory=list)
    table_schema: list[dict[str, Any]] = Field(default_factory=list, alias="schema")
    row_count: Optional[int] = None

    model_config = {"populate_by_name": True}


class TransformRequest(BaseModel):
    """Run one transform node over a stored table or inline rows."""

    node_type: str = Field(..., alias="nodeType")
    config: dict[str, Any] = Field(default_factory=dict)
    table_id: Optional[str] = Field(None, alias="tableId")
    data: Optional[list[dict[str, Any]]] = None
    secondary_table_id: Optional[str] = Field(None, alias="secondaryTableId")
    secondary_data: Optional[list[dict[str, Any]]] = Field(None, alias="secondaryData")
    save_as: Optional[str] = Field(None, alias="saveAs")

    model_config = {"populate_by_name": True}


def _infer_schema(rows: list[dict]) -> list[dict]:
    if not rows:
        return []
    schema = []
    for column, value in rows[0].items():
        if isinstance(value, bool):
            kind = "boolean"
        elif isinstance(value, (int, float)):
            kind = "number"
        else:
            kind = "string"
        schema.append({"name": column, "type": kind})
    return schema


@router.get("")
async def list_tables(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List the user's tables without their rows, newest first."""
    result = await db.execute(
        select(UserDataTable)
        .where(UserDataTable.user_id == current_user.user_id)
        .order_by(UserDataTable.created_at.desc())
    )
    tables = [table.to_dict(include_data=False) for table in result.scalars().all()]
    return {"success": True, "tables": tables}


@router.post("")
async def save_table(
    request: SaveTableRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Upsert a table by name.

    Raises:
        HTTPException: 400 without name/source, 402 when a free user hits the table limit
    """
    if not request.name or not request.source:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name and source are required",
        )

    profile = await ensure_profile(db, current_user)
    table, created = await upsert_user_table(
        db,
        profile,
        name=request.name,
        source=request.source,
        data=request.data,
        schema=request.table_schema,
        row_count=request.row_count,
        description=request.description,
    )

    if created:
        await record_activity(db, current_user.user_id, "table_create", "data_table", table.id, {"name": table.name})

    logger.info(
        "Data table saved",
        user_id=str(current_user.user_id),
        table_id=str(table.id),
        created=created,
        row_count=table.row_count,
    )
    return {"success": True, "table": table.to_dict()}


@router.post("/transform")
async def transform_table(
    request: TransformRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Apply a transform node and optionally store the output as a table."""
    rows = request.data
    if request.table_id:
        table = await get_user_table(db, current_user.user_id, request.table_id)
        if table is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Table not found")
        rows = table.data or []
    if rows is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="tableId or data is required",
        )

    secondary = request.secondary_data
    if request.secondary_table_id:
        other = await get_user_table(db, current_user.user_id, request.secondary_table_id)
        if other is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Secondary table not found")
        secondary = other.data or []

    output = process_transform_node(request.node_type, request.config, rows, secondary)
    response: dict[str, Any] = {"success": True, "data": output, "row_count": len(output)}

    if request.save_as:
        profile = await ensure_profile(db, current_user)
        table, _ = await upsert_user_table(
            db,
            profile,
            name=request.save_as,
            source="transform",
            data=output,
            schema=_infer_schema(output),
            source_config={"nodeType": request.node_type, "config": request.config, "tableId": request.table_id},
        )
        response["table"] = table.to_dict(include_data=False)

    return response


@router.get("/{table_id}")
async def get_table(
    table_id: str,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Fetch one table with its rows."""
    table = await get_user_table(db, current_user.user_id, table_id)
    if table is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Table not found")
    return {"success": True, "table": table.to_dict()}


@router.delete("/{table_id}")
async def delete_table(
    table_id: str,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete one of the user's tables."""
    table = await get_user_table(db, current_user.user_id, table_id)
    if table is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Table not found")

    await db.delete(table)
    await record_activity(db, current_user.user_id, "table_delete", "data_table", table_id, {"name": table.name})
    logger.info("Data table deleted", user_id=str(current_user.user_id), table_id=table_id)
    return {"success": True}
