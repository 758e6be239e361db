"""Shopify Admin API token storage and order import."""

from typing import Any, Optional
import httpx
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moodboard.activity import record_activity
from moodboard.auth.middleware import AuthUser, get_current_user
from moodboard.auth.profiles import ensure_profile
from moodboard.config import settings
from moodboard.crypto import DecryptionError, decrypt_string, encrypt_string
from moodboard.data_tables.service import upsert_user_table
from moodboard.db import get_db
from moodboard.integrations.http import get_http_client
from moodboard.integrations.providers import valid_shop_domain
from moodboard.logging_config import logger
from moodboard.models import ApiKey, IntegrationCredential
from moodboard.models.base import utcnow

router = APIRouter()

ORDER_SCHEMA = [
    {"name": "id", "type": "INTEGER"},
    {"name": "order_number", "type": "VARCHAR(50)"},
    {"name": "email", "type": "VARCHAR(255)"},
    {"name": "total_price", "type": "DECIMAL(10,2)"},
    {"name": "financial_status", "type": "VARCHAR(50)"},
    {"name": "created_at", "type": "DATE"},
    {"name": "currency", "type": "VARCHAR(10)"},
]


class ConnectRequest(BaseModel):
    shop_domain: Optional[str] = Field(None, alias="shopDomain")
    access_token: Optional[str] = Field(None, alias="accessToken")

    model_config = {"populate_by_name": True}


class ImportRequest(BaseModel):
    shop_domain: Optional[str] = Field(None, alias="shopDomain")
    api_key_id: Optional[str] = Field(None, alias="apiKeyId")
    save_as: Optional[str] = Field(None, alias="saveAs")

    model_config = {"populate_by_name": True}


def _price(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def flatten_orders(orders: list[dict]) -> list[dict]:
    """Flatten Shopify orders into table rows."""
    return [
        {
            "id": order.get("id"),
            "order_number": order.get("order_number"),
            "email": order.get("email"),
            "total_price": _price(order.get("total_price")),
            "financial_status": order.get("financial_status"),
            "created_at": (order.get("created_at") or "")[:10] or None,
            "currency": order.get("currency"),
        }
        for order in orders
        if isinstance(order, dict)
    ]


@router.post("/connect")
async def connect(
    request: ConnectRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Store an Admin API access token (encrypted) for a shop."""
    if not request.shop_domain or not request.access_token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing credentials")
    if not valid_shop_domain(request.shop_domain):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid shop domain")

    result = await db.execute(
        select(ApiKey).where(ApiKey.user_id == current_user.user_id, ApiKey.service == "shopify")
    )
    api_key = result.scalar_one_or_none()
    if api_key is None:
        api_key = ApiKey(user_id=current_user.user_id, service="shopify")
        db.add(api_key)
    api_key.key_name = request.shop_domain.lower()
    api_key.encrypted_key = encrypt_string(request.access_token)
    await db.flush()

    await record_activity(db, current_user.user_id, "integration_connect", "integration", "shopify")
    logger.info("Shopify token stored", user_id=str(current_user.user_id), shop=api_key.key_name)
    return {"success": True, "apiKeyId": str(api_key.id)}


async def _access_token(db: AsyncSession, user: AuthUser, request: ImportRequest) -> str:
    if request.api_key_id:
        result = await db.execute(
            select(ApiKey).where(ApiKey.user_id == user.user_id, ApiKey.service == "shopify")
        )
        api_key = result.scalar_one_or_none()
        if api_key is None or str(api_key.id) != request.api_key_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="API key not found")
        encrypted = api_key.encrypted_key
        api_key.last_used_at = utcnow()
    else:
        result = await db.execute(
            select(IntegrationCredential).where(
                IntegrationCredential.user_id == user.user_id,
                IntegrationCredential.provider == "shopify",
            )
        )
        credential = result.scalar_one_or_none()
        if credential is None or (credential.credential_metadata or {}).get("shop") != request.shop_domain.lower():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing parameters")
        encrypted = credential.access_token_encrypted

    try:
        return decrypt_string(encrypted)
    except DecryptionError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Stored Shopify token could not be decrypted",
        )


@router.post("/import")
async def import_orders(
    request: ImportRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    http: httpx.AsyncClient = Depends(get_http_client),
):
    """Import the 50 most recent orders as a flat table."""
    if not request.shop_domain or not valid_shop_domain(request.shop_domain):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing parameters")

    token = await _access_token(db, current_user, request)
    url = f"https://{request.shop_domain.lower()}/admin/api/{settings.shopify_api_version}/orders.json"

    try:
        response = await http.get(
            url,
            params={"status": "any", "limit": 50},
            headers={
                "X-Shopify-Access-Token": token,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )
    except httpx.HTTPError as e:
        logger.error("Shopify request failed", error=str(e), shop=request.shop_domain)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to import from Shopify")

    if response.status_code >= 400:
        logger.warning("Shopify API error", status_code=response.status_code, shop=request.shop_domain)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Shopify API error: {response.status_code}",
        )

    try:
        body = response.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        logger.warning("Shopify returned an unexpected body", shop=request.shop_domain)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to import from Shopify")

    orders = body.get("orders")
    data = flatten_orders(orders if isinstance(orders, list) else [])
    result: dict[str, Any] = {"success": True, "data": data, "schema": ORDER_SCHEMA, "rowCount": len(data)}

    if request.save_as:
        profile = await ensure_profile(db, current_user)
        table, _ = await upsert_user_table(
            db,
            profile,
            name=request.save_as,
            source="shopify",
            data=data,
            schema=ORDER_SCHEMA,
            source_config={"shop": request.shop_domain.lower(), "resource": "orders"},
        )
        result["table"] = table.to_dict(include_data=False)

    logger.info("Shopify orders imported", user_id=str(current_user.user_id), rows=len(data))
    return result
