"""OAuth provider registry.

Each provider describes where to send the user, how to exchange the code
and where the resulting tokens are stored.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Optional
from urllib.parse import urlencode
import httpx
from moodboard.config import settings
from moodboard.logging_config import logger, redact_sensitive_data

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

SHOP_DOMAIN = re.compile(r"^[a-z0-9][a-z0-9-]*\.myshopify\.com$")


class ProviderNotConfigured(Exception):
    """Client credentials for a provider are missing from the environment."""


class TokenExchangeError(Exception):
    """The provider rejected the authorization code."""


@dataclass(frozen=True)
class OAuthProvider:
    """OAuth 2.0 authorization-code provider."""

    name: str                      # storage key, e.g. "google_ads"
    slug: str                      # URL segment, e.g. "google-ads"
    label: str
    authorize_url: str
    token_url: str
    client_id: Callable[[], Optional[str]]
    client_secret: Callable[[], Optional[str]]
    scopes: tuple[str, ...] = ()
    authorize_params: dict = field(default_factory=dict)
    json_token_request: bool = False
    storage: str = "credentials"   # "credentials" or "connection"
    requires_shop: bool = False

    def credentials(self) -> tuple[str, str]:
        client_id, client_secret = self.client_id(), self.client_secret()
        if not client_id or not client_secret:
            raise ProviderNotConfigured(f"{self.label} integration is not configured")
        return client_id, client_secret

    def redirect_uri(self) -> str:
        return f"{settings.api_base_url.rstrip('/')}/integrations/{self.slug}/callback"

    def build_authorize_url(self, state: str, shop: Optional[str] = None) -> str:
        client_id, _ = self.credentials()
        params = {
            "client_id": client_id,
            "redirect_uri": self.redirect_uri(),
            "state": state,
            **self.authorize_params,
        }
        if self.scopes:
            params["scope"] = ("," if self.requires_shop else " ").join(self.scopes)
        base = self.authorize_url.format(shop=shop) if shop else self.authorize_url
        return f"{base}?{urlencode(params)}"

    async def exchange_code(self, client: httpx.AsyncClient, code: str, shop: Optional[str] = None) -> dict:
        """Exchange an authorization code for tokens.

        Raises:
            TokenExchangeError: On transport errors, non-2xx responses or a
                response without ``access_token``
        """
        client_id, client_secret = self.credentials()
        body = {
            "code": code,
            "client_id": client_id,
            "client_secret": client_secret,
        }
        if not self.json_token_request:
            body["redirect_uri"] = self.redirect_uri()
            body["grant_type"] = "authorization_code"

        url = self.token_url.format(shop=shop) if shop else self.token_url
        try:
            if self.json_token_request:
                response = await client.post(url, json=body)
            else:
                response = await client.post(url, data=body)
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"{self.label} token request failed: {e}") from e

        if response.status_code >= 400:
            logger.warning(
                "Token exchange rejected",
                provider=self.name,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise TokenExchangeError(f"{self.label} token exchange failed with {response.status_code}")

        try:
            tokens = response.json()
        except ValueError as e:
            raise TokenExchangeError(f"{self.label} returned a non-JSON token response") from e

        if not isinstance(tokens, dict) or not tokens.get("access_token"):
            logger.warning(
                "Token response without access_token",
                provider=self.name,
                tokens=redact_sensitive_data(tokens) if isinstance(tokens, dict) else None,
            )
            raise TokenExchangeError(f"{self.label} returned no access token")
        return tokens


def _google(name: str, slug: str, label: str, scopes: tuple[str, ...], client_id, client_secret, storage: str = "credentials") -> OAuthProvider:
    return OAuthProvider(
        name=name,
        slug=slug,
        label=label,
        authorize_url=GOOGLE_AUTHORIZE_URL,
        token_url=GOOGLE_TOKEN_URL,
        client_id=client_id,
        client_secret=client_secret,
        scopes=scopes,
        authorize_params={"response_type": "code", "access_type": "offline", "prompt": "consent"},
        storage=storage,
    )


PROVIDERS: dict[str, OAuthProvider] = {
    provider.slug: provider
    for provider in (
        _google(
            "google_ads", "google-ads", "Google Ads",
            ("https://www.googleapis.com/auth/adwords",),
            lambda: settings.google_ads_client_id,
            lambda: settings.google_ads_client_secret,
        ),
        _google(
            "google_sheets", "google-sheets", "Google Sheets",
            (
                "https://www.googleapis.com/auth/spreadsheets.readonly",
                "https://www.googleapis.com/auth/drive.readonly",
            ),
            lambda: settings.google_sheets_client_id,
            lambda: settings.google_sheets_client_secret,
        ),
        _google(
            "bigquery", "bigquery", "BigQuery",
            ("https://www.googleapis.com/auth/bigquery.readonly",),
            lambda: settings.bigquery_client_id,
            lambda: settings.bigquery_client_secret,
            storage="connection",
        ),
        OAuthProvider(
            name="stripe",
            slug="stripe",
            label="Stripe",
            authorize_url="https://connect.stripe.com/oauth/authorize",
            token_url="https://connect.stripe.com/oauth/token",
            client_id=lambda: settings.stripe_connect_client_id,
            client_secret=lambda: settings.stripe_secret_key,
            authorize_params={"response_type": "code", "scope": "read_only"},
        ),
        OAuthProvider(
            name="shopify",
            slug="shopify",
            label="Shopify",
            authorize_url="https://{shop}/admin/oauth/authorize",
            token_url="https://{shop}/admin/oauth/access_token",
            client_id=lambda: settings.shopify_client_id,
            client_secret=lambda: settings.shopify_client_secret,
            scopes=tuple(s.strip() for s in settings.shopify_scopes.split(",") if s.strip()),
            json_token_request=True,
            requires_shop=True,
        ),
    )
}


def get_provider(slug: str) -> Optional[OAuthProvider]:
    return PROVIDERS.get(slug) or next((p for p in PROVIDERS.values() if p.name == slug), None)


def valid_shop_domain(shop: Optional[str]) -> bool:
    return bool(shop) and bool(SHOP_DOMAIN.match(shop.lower()))
