"""Google Sheets proxy: read ranges and list worksheets."""

import json
from typing import Any, Optional
from urllib.parse import quote
import httpx
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moodboard.auth.middleware import AuthUser, get_current_user, get_current_user_optional
from moodboard.config import settings
from moodboard.crypto import DecryptionError, decrypt_string
from moodboard.db import get_db
from moodboard.integrations.http import get_http_client
from moodboard.logging_config import logger
from moodboard.models import IntegrationCredential

router = APIRouter()

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"


class SheetsRequest(BaseModel):
    """Sheets proxy request."""

    action: str
    spreadsheet_id: Optional[str] = Field(None, alias="spreadsheetId")
    range: Optional[str] = None
    access_token: Optional[str] = Field(None, alias="accessToken")

    model_config = {"populate_by_name": True}


def rows_from_values(values: list[list[Any]]) -> dict:
    """Turn a values grid into a table; the first row holds the headers."""
    headers = [str(h) for h in values[0]]
    rows = values[1:]
    data = [
        {header: (row[index] if index < len(row) and row[index] != "" else None) for index, header in enumerate(headers)}
        for row in rows
    ]
    return {
        "schema": [{"name": header, "type": "VARCHAR(255)"} for header in headers],
        "data": data,
        "headers": headers,
        "rowCount": len(rows),
    }


async def _stored_access_token(db: AsyncSession, user: Optional[AuthUser]) -> Optional[str]:
    if user is None:
        return None
    result = await db.execute(
        select(IntegrationCredential).where(
            IntegrationCredential.user_id == user.user_id,
            IntegrationCredential.provider == "google_sheets",
        )
    )
    credential = result.scalar_one_or_none()
    if credential is None:
        return None
    try:
        return decrypt_string(credential.access_token_encrypted)
    except DecryptionError:
        logger.error("Stored Google Sheets token could not be decrypted", user_id=str(user.user_id))
        return None


async def _get_json(http: httpx.AsyncClient, url: str, token: str, what: str) -> dict:
    try:
        response = await http.get(url, headers={"Authorization": f"Bearer {token}"})
    except httpx.HTTPError as e:
        logger.error("Google Sheets request failed", error=str(e))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Failed to fetch {what}")
    if response.status_code >= 400:
        logger.warning("Google Sheets API error", status_code=response.status_code, body=response.text[:300])
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to fetch {what}: {response.reason_phrase}",
        )
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        logger.warning("Google Sheets returned an unexpected body", body=response.text[:300])
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Failed to fetch {what}")
    return payload


@router.post("")
async def google_sheets(
    request: SheetsRequest,
    current_user: Optional[AuthUser] = Depends(get_current_user_optional),
    db: AsyncSession = Depends(get_db),
    http: httpx.AsyncClient = Depends(get_http_client),
):
    """``fetchData`` reads a range as a table; ``listSheets`` lists worksheets.

    Without ``accessToken`` the caller's stored Google Sheets credential is used.
    """
    if request.action not in ("fetchData", "listSheets"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid action")
    if not request.spreadsheet_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="spreadsheetId is required")

    token = request.access_token or await _stored_access_token(db, current_user)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Google Sheets is not connected")

    spreadsheet = quote(request.spreadsheet_id, safe="")

    if request.action == "fetchData":
        cell_range = request.range or "A1:Z1000"
        payload = await _get_json(http, f"{SHEETS_API}/{spreadsheet}/values/{quote(cell_range, safe='')}", token, "data")
        values = payload.get("values") or []
        if not values:
            return {"success": False, "error": "No data found in the specified range"}
        logger.info("Google Sheets range fetched", rows=len(values) - 1)
        return {"success": True, **rows_from_values(values)}

    payload = await _get_json(http, f"{SHEETS_API}/{spreadsheet}", token, "spreadsheet info")
    sheets = [
        {
            "title": sheet.get("properties", {}).get("title"),
            "sheetId": sheet.get("properties", {}).get("sheetId"),
            "rowCount": sheet.get("properties", {}).get("gridProperties", {}).get("rowCount"),
            "columnCount": sheet.get("properties", {}).get("gridProperties", {}).get("columnCount"),
        }
        for sheet in payload.get("sheets") or []
    ]
    return {
        "success": True,
        "sheets": sheets,
        "spreadsheetTitle": payload.get("properties", {}).get("title"),
    }


def service_account_email() -> Optional[str]:
    """Configured service account email, falling back to the key's ``client_email``."""
    if not settings.google_service_account_key:
        return None
    if settings.google_service_account_email:
        return settings.google_service_account_email
    try:
        return json.loads(settings.google_service_account_key).get("client_email")
    except (ValueError, AttributeError):
        logger.warning("GOOGLE_SERVICE_ACCOUNT_KEY is not valid JSON")
        return None


@router.get("/quick-connect")
async def quick_connect(current_user: AuthUser = Depends(get_current_user)):
    """Service account email users share their sheet with (one-click connect)."""
    email = service_account_email()
    if not email:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Service account not configured",
        )
    return {"success": True, "email": email}
