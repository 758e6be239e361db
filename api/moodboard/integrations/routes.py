"""OAuth connection routes for data source providers.

Callbacks are browser redirects from the provider, so they never answer
with JSON errors: every outcome redirects back to the site with either
``?integration=<provider>&status=connected`` or ``?error=<code>``.
"""

import json
from datetime import timedelta
from typing import Optional
from urllib.parse import urlencode
from uuid import UUID
import httpx
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from moodboard.activity import record_activity
from moodboard.auth.middleware import AuthUser, get_current_user
from moodboard.config import settings
from moodboard.crypto import encrypt_string, generate_token, verify_shopify_hmac
from moodboard.db import get_db
from moodboard.integrations.http import get_http_client
from moodboard.integrations.providers import (
    OAuthProvider,
    ProviderNotConfigured,
    TokenExchangeError,
    get_provider,
    valid_shop_domain,
)
from moodboard.logging_config import logger
from moodboard.metrics import oauth_connections_total
from moodboard.models import ApiKey, DataConnection, IntegrationCredential, OAuthState
from moodboard.models.base import as_utc, utcnow

router = APIRouter()

# Token response fields worth keeping next to the encrypted tokens
METADATA_FIELDS = ("scope", "token_type", "stripe_user_id", "stripe_publishable_key", "livemode")


def _site_redirect(**params: str) -> RedirectResponse:
    url = f"{settings.site_url.rstrip('/')}/?{urlencode(params)}"
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)


def _callback_error(provider: OAuthProvider, code: str) -> RedirectResponse:
    oauth_connections_total.labels(provider=provider.name, status=code).inc()
    return _site_redirect(error=code)


def _lookup_provider(slug: str) -> OAuthProvider:
    provider = get_provider(slug)
    if provider is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown provider: {slug}")
    return provider


async def store_tokens(
    db: AsyncSession,
    provider: OAuthProvider,
    user_id: UUID,
    tokens: dict,
    shop: Optional[str] = None,
) -> None:
    """Encrypt and upsert the tokens of a completed OAuth flow."""
    expires_at = None
    if tokens.get("expires_in"):
        expires_at = utcnow() + timedelta(seconds=int(tokens["expires_in"]))

    if provider.storage == "connection":
        label = f"{provider.label} Connection"
        config = {
            "access_token": tokens["access_token"],
            "refresh_token": tokens.get("refresh_token"),
            "expires_at": expires_at.isoformat() if expires_at else None,
        }
        result = await db.execute(
            select(DataConnection).where(
                DataConnection.user_id == user_id,
                DataConnection.source_type == provider.name,
                DataConnection.label == label,
            )
        )
        connection = result.scalar_one_or_none()
        if connection is None:
            connection = DataConnection(user_id=user_id, source_type=provider.name, label=label)
            db.add(connection)
        connection.config_encrypted = encrypt_string(json.dumps(config))
        return

    metadata = {key: tokens[key] for key in METADATA_FIELDS if key in tokens}
    if shop:
        metadata["shop"] = shop

    result = await db.execute(
        select(IntegrationCredential).where(
            IntegrationCredential.user_id == user_id,
            IntegrationCredential.provider == provider.name,
        )
    )
    credential = result.scalar_one_or_none()
    if credential is None:
        credential = IntegrationCredential(user_id=user_id, provider=provider.name)
        db.add(credential)
    credential.access_token_encrypted = encrypt_string(tokens["access_token"])
    credential.refresh_token_encrypted = (
        encrypt_string(tokens["refresh_token"]) if tokens.get("refresh_token") else None
    )
    credential.expires_at = expires_at
    credential.credential_metadata = metadata
    credential.updated_at = utcnow()


@router.get("")
async def list_integrations(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List the user's connections without any secret material."""
    credentials = await db.execute(
        select(IntegrationCredential).where(IntegrationCredential.user_id == current_user.user_id)
    )
    connections = await db.execute(
        select(DataConnection).where(DataConnection.user_id == current_user.user_id)
    )
    api_keys = await db.execute(select(ApiKey).where(ApiKey.user_id == current_user.user_id))

    integrations = [
        {
            "provider": c.provider,
            "kind": "oauth",
            "expires_at": as_utc(c.expires_at).isoformat() if c.expires_at else None,
            "metadata": c.credential_metadata or {},
            "updated_at": as_utc(c.updated_at).isoformat() if c.updated_at else None,
        }
        for c in credentials.scalars().all()
    ]
    integrations += [
        {
            "provider": c.source_type,
            "kind": "connection",
            "label": c.label,
            "last_used": as_utc(c.last_used).isoformat() if c.last_used else None,
            "updated_at": as_utc(c.updated_at).isoformat() if c.updated_at else None,
        }
        for c in connections.scalars().all()
    ]
    integrations += [
        {
            "provider": k.service,
            "kind": "api_key",
            "id": str(k.id),
            "label": k.key_name,
            "last_used": as_utc(k.last_used_at).isoformat() if k.last_used_at else None,
        }
        for k in api_keys.scalars().all()
    ]
    return {"integrations": integrations}


@router.delete("/{provider_slug}")
async def disconnect_integration(
    provider_slug: str,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Remove every stored credential the user holds for a provider."""
    provider = _lookup_provider(provider_slug)
    removed = 0
    for stmt in (
        delete(IntegrationCredential).where(
            IntegrationCredential.user_id == current_user.user_id,
            IntegrationCredential.provider == provider.name,
        ),
        delete(DataConnection).where(
            DataConnection.user_id == current_user.user_id,
            DataConnection.source_type == provider.name,
        ),
        delete(ApiKey).where(ApiKey.user_id == current_user.user_id, ApiKey.service == provider.name),
    ):
        result = await db.execute(stmt)
        removed += result.rowcount or 0

    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Integration not connected")

    await record_activity(db, current_user.user_id, "integration_disconnect", "integration", provider.name)
    logger.info("Integration disconnected", user_id=str(current_user.user_id), provider=provider.name)
    return {"success": True}


@router.get("/{provider_slug}/authorize")
async def authorize(
    provider_slug: str,
    shop: Optional[str] = None,
    redirect: bool = True,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Start an OAuth flow: persist a single-use state and send the user to the provider.

    With ``redirect=false`` the authorization URL is returned as JSON.
    """
    provider = _lookup_provider(provider_slug)
    if provider.requires_shop:
        if not valid_shop_domain(shop):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid shop parameter")
        shop = shop.lower()

    state = generate_token(24)
    try:
        url = provider.build_authorize_url(state, shop=shop)
    except ProviderNotConfigured as e:
        logger.error("OAuth provider not configured", provider=provider.name)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    cutoff = utcnow() - timedelta(seconds=settings.oauth_state_ttl_seconds)
    await db.execute(
        delete(OAuthState).where(OAuthState.user_id == current_user.user_id, OAuthState.created_at < cutoff)
    )
    db.add(OAuthState(
        state=state,
        user_id=current_user.user_id,
        provider=provider.name,
        extra={"shop": shop} if shop else None,
    ))

    logger.info("OAuth flow started", user_id=str(current_user.user_id), provider=provider.name)
    if redirect:
        return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)
    return {"url": url}


@router.get("/{provider_slug}/callback")
async def oauth_callback(
    provider_slug: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    http: httpx.AsyncClient = Depends(get_http_client),
):
    """Complete an OAuth flow and store the encrypted tokens."""
    provider = _lookup_provider(provider_slug)
    params = dict(request.query_params)

    if params.get("error"):
        logger.warning(
            "OAuth authorization denied",
            provider=provider.name,
            error=params.get("error"),
            error_description=params.get("error_description"),
        )
        return _callback_error(provider, f"{provider.name}_auth_denied")

    code, state = params.get("code"), params.get("state")
    if not code or not state:
        return _callback_error(provider, "invalid_callback")

    result = await db.execute(
        select(OAuthState).where(OAuthState.state == state, OAuthState.provider == provider.name)
    )
    oauth_state = result.scalar_one_or_none()
    if oauth_state is None:
        logger.warning("Unknown OAuth state", provider=provider.name)
        return _callback_error(provider, "invalid_state")

    # Single use, whatever happens next
    await db.delete(oauth_state)
    await db.commit()

    created_at = as_utc(oauth_state.created_at)
    if created_at and created_at < utcnow() - timedelta(seconds=settings.oauth_state_ttl_seconds):
        logger.warning("Expired OAuth state", provider=provider.name, user_id=str(oauth_state.user_id))
        return _callback_error(provider, "invalid_state")

    shop = None
    if provider.requires_shop:
        shop = (oauth_state.extra or {}).get("shop")
        if not shop or params.get("shop", shop).lower() != shop:
            return _callback_error(provider, "invalid_state")
        if not verify_shopify_hmac(params, settings.shopify_client_secret or ""):
            logger.warning("Shopify HMAC verification failed", shop=shop)
            return _callback_error(provider, "invalid_hmac")

    try:
        tokens = await provider.exchange_code(http, code, shop=shop)
    except (TokenExchangeError, ProviderNotConfigured) as e:
        logger.error("OAuth token exchange failed", provider=provider.name, error=str(e))
        return _callback_error(provider, "token_exchange_failed")

    await store_tokens(db, provider, oauth_state.user_id, tokens, shop=shop)
    await record_activity(db, oauth_state.user_id, "integration_connect", "integration", provider.name)

    oauth_connections_total.labels(provider=provider.name, status="connected").inc()
    logger.info("Integration connected", provider=provider.name, user_id=str(oauth_state.user_id))
    return _site_redirect(integration=provider.name, status="connected")
