"""Tests for the OAuth provider registry."""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from moodboard.config import settings
from moodboard.integrations.providers import (
    PROVIDERS,
    ProviderNotConfigured,
    TokenExchangeError,
    get_provider,
    valid_shop_domain,
)


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setattr(settings, "google_sheets_client_id", "sheets-id")
    monkeypatch.setattr(settings, "google_sheets_client_secret", "sheets-secret")
    monkeypatch.setattr(settings, "shopify_client_id", "shop-id")
    monkeypatch.setattr(settings, "shopify_client_secret", "shop-secret")


def test_lookup_by_slug_or_name():
    assert get_provider("google-ads") is PROVIDERS["google-ads"]
    assert get_provider("google_ads") is PROVIDERS["google-ads"]
    assert get_provider("dropbox") is None


def test_unconfigured_provider(monkeypatch):
    monkeypatch.setattr(settings, "google_ads_client_id", None)
    with pytest.raises(ProviderNotConfigured):
        get_provider("google-ads").build_authorize_url("state")


def test_google_authorize_url(configured):
    url = urlparse(get_provider("google-sheets").build_authorize_url("s1"))
    query = parse_qs(url.query)
    assert url.netloc == "accounts.google.com"
    assert query["state"] == ["s1"]
    assert query["access_type"] == ["offline"]
    assert query["redirect_uri"] == [f"{settings.api_base_url}/integrations/google-sheets/callback"]
    assert " " in query["scope"][0]


def test_shopify_authorize_url(configured):
    url = urlparse(get_provider("shopify").build_authorize_url("s2", shop="demo.myshopify.com"))
    assert url.netloc == "demo.myshopify.com"
    assert url.path == "/admin/oauth/authorize"
    assert parse_qs(url.query)["scope"] == ["read_products,read_orders,read_customers"]


@pytest.mark.parametrize("shop,valid", [
    ("demo.myshopify.com", True),
    ("Demo-Store.myshopify.com", True),
    ("evil.com", False),
    ("demo.myshopify.com.evil.com", False),
    (None, False),
])
def test_shop_domain(shop, valid):
    assert valid_shop_domain(shop) is valid


async def test_exchange_code_form_encoded(configured):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"access_token": "ya29", "refresh_token": "1//r", "expires_in": 3600})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        tokens = await get_provider("google-sheets").exchange_code(http, "auth-code")

    assert tokens["access_token"] == "ya29"
    assert seen["body"]["grant_type"] == ["authorization_code"]
    assert seen["body"]["code"] == ["auth-code"]


async def test_exchange_code_json_for_shopify(configured):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.host == "demo.myshopify.com"
        assert request.headers["content-type"] == "application/json"
        return httpx.Response(200, json={"access_token": "shpat", "scope": "read_orders"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        tokens = await get_provider("shopify").exchange_code(http, "c", shop="demo.myshopify.com")
    assert tokens["access_token"] == "shpat"


@pytest.mark.parametrize("response", [
    httpx.Response(400, json={"error": "invalid_grant"}),
    httpx.Response(200, json={"token_type": "bearer"}),
    httpx.Response(200, text="<html>"),
])
async def test_exchange_code_failures(configured, response):
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: response)) as http:
        with pytest.raises(TokenExchangeError):
            await get_provider("google-sheets").exchange_code(http, "c")
