"""OAuth connection, Google Sheets and Shopify route tests."""

import hashlib
import hmac
import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from sqlalchemy import select

from moodboard.config import settings
from moodboard.crypto import decrypt_string, encrypt_string
from moodboard.models import ApiKey, DataConnection, IntegrationCredential, OAuthState


@pytest.fixture(autouse=True)
def oauth_clients(monkeypatch):
    for provider in ("google_sheets", "bigquery", "shopify"):
        monkeypatch.setattr(settings, f"{provider}_client_id", f"{provider}-id")
        monkeypatch.setattr(settings, f"{provider}_client_secret", f"{provider}-secret")


def query(response) -> dict:
    return {key: values[0] for key, values in parse_qs(urlparse(response.headers["location"]).query).items()}


async def start_flow(client, headers, slug, **params) -> str:
    response = await client.get(f"/integrations/{slug}/authorize", params={"redirect": "false", **params}, headers=headers)
    assert response.status_code == 200
    return parse_qs(urlparse(response.json()["url"]).query)["state"][0]


def token_response(**extra):
    return lambda request: httpx.Response(
        200, json={"access_token": "ya29.token", "refresh_token": "1//refresh", "expires_in": 3600, **extra}
    )


async def test_authorize_redirects_to_provider(client, auth_headers):
    response = await client.get("/integrations/google-sheets/authorize", headers=auth_headers)
    assert response.status_code == 302
    assert response.headers["location"].startswith("https://accounts.google.com/o/oauth2/v2/auth?")


async def test_authorize_unknown_or_unconfigured(client, auth_headers, monkeypatch):
    assert (await client.get("/integrations/dropbox/authorize", headers=auth_headers)).status_code == 404

    monkeypatch.setattr(settings, "google_ads_client_id", None)
    assert (await client.get("/integrations/google-ads/authorize", headers=auth_headers)).status_code == 503


async def test_callback_stores_encrypted_tokens(client, auth_headers, user_id, provider_http, session_factory):
    state = await start_flow(client, auth_headers, "google-sheets")
    provider_http.respond = token_response(scope="spreadsheets.readonly")

    response = await client.get("/integrations/google-sheets/callback", params={"code": "auth-code", "state": state})
    assert response.status_code == 302
    assert query(response) == {"integration": "google_sheets", "status": "connected"}

    [token_request] = provider_http.requests
    assert token_request.url == "https://oauth2.googleapis.com/token"

    async with session_factory() as session:
        credential = (await session.execute(select(IntegrationCredential))).scalar_one()
        states = (await session.execute(select(OAuthState))).scalars().all()
    assert credential.user_id == user_id
    assert credential.access_token_encrypted != "ya29.token"
    assert decrypt_string(credential.access_token_encrypted) == "ya29.token"
    assert decrypt_string(credential.refresh_token_encrypted) == "1//refresh"
    assert credential.credential_metadata == {"scope": "spreadsheets.readonly"}
    assert states == []


async def test_state_is_single_use(client, auth_headers, provider_http):
    state = await start_flow(client, auth_headers, "google-sheets")
    provider_http.respond = token_response()

    await client.get("/integrations/google-sheets/callback", params={"code": "c", "state": state})
    replay = await client.get("/integrations/google-sheets/callback", params={"code": "c", "state": state})
    assert query(replay) == {"error": "invalid_state"}


async def test_state_bound_to_provider(client, auth_headers, provider_http):
    state = await start_flow(client, auth_headers, "google-sheets")
    response = await client.get("/integrations/bigquery/callback", params={"code": "c", "state": state})
    assert query(response) == {"error": "invalid_state"}
    assert provider_http.requests == []


@pytest.mark.parametrize("params,error", [
    ({"error": "access_denied"}, "google_sheets_auth_denied"),
    ({"code": "c"}, "invalid_callback"),
    ({"code": "c", "state": "forged"}, "invalid_state"),
])
async def test_callback_errors_redirect(client, provider_http, params, error):
    response = await client.get("/integrations/google-sheets/callback", params=params)
    assert response.status_code == 302
    assert query(response) == {"error": error}


async def test_token_exchange_failure(client, auth_headers, provider_http):
    state = await start_flow(client, auth_headers, "google-sheets")
    provider_http.respond = lambda request: httpx.Response(400, json={"error": "invalid_grant"})
    response = await client.get("/integrations/google-sheets/callback", params={"code": "c", "state": state})
    assert query(response) == {"error": "token_exchange_failed"}


async def test_bigquery_stored_as_connection(client, auth_headers, provider_http, session_factory):
    state = await start_flow(client, auth_headers, "bigquery")
    provider_http.respond = token_response()
    await client.get("/integrations/bigquery/callback", params={"code": "c", "state": state})

    async with session_factory() as session:
        connection = (await session.execute(select(DataConnection))).scalar_one()
    assert connection.source_type == "bigquery"
    assert connection.label == "BigQuery Connection"
    assert json.loads(decrypt_string(connection.config_encrypted))["access_token"] == "ya29.token"


def shopify_callback(state, secret="shopify-secret", **overrides):
    params = {"code": "shop-code", "shop": "demo.myshopify.com", "state": state, "timestamp": "1700000000", **overrides}
    message = "&".join(f"{key}={params[key]}" for key in sorted(params))
    params["hmac"] = hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()
    return params


async def test_shopify_requires_valid_shop(client, auth_headers):
    response = await client.get("/integrations/shopify/authorize", params={"shop": "evil.com"}, headers=auth_headers)
    assert response.status_code == 400


async def test_shopify_flow(client, auth_headers, provider_http, session_factory):
    state = await start_flow(client, auth_headers, "shopify", shop="Demo.myshopify.com")
    provider_http.respond = lambda request: httpx.Response(200, json={"access_token": "shpat_1", "scope": "read_orders"})

    response = await client.get("/integrations/shopify/callback", params=shopify_callback(state))
    assert query(response) == {"integration": "shopify", "status": "connected"}
    assert provider_http.requests[0].url == "https://demo.myshopify.com/admin/oauth/access_token"

    async with session_factory() as session:
        credential = (await session.execute(select(IntegrationCredential))).scalar_one()
    assert credential.credential_metadata == {"scope": "read_orders", "shop": "demo.myshopify.com"}


async def test_shopify_bad_hmac(client, auth_headers, provider_http):
    state = await start_flow(client, auth_headers, "shopify", shop="demo.myshopify.com")
    response = await client.get("/integrations/shopify/callback", params=shopify_callback(state, secret="wrong"))
    assert query(response) == {"error": "invalid_hmac"}
    assert provider_http.requests == []


async def test_shopify_shop_must_match_state(client, auth_headers, provider_http):
    state = await start_flow(client, auth_headers, "shopify", shop="demo.myshopify.com")
    response = await client.get(
        "/integrations/shopify/callback",
        params=shopify_callback(state, shop="other.myshopify.com"),
    )
    assert query(response) == {"error": "invalid_state"}


async def test_list_and_disconnect(client, auth_headers, user_id, session_factory):
    async with session_factory() as session:
        session.add(IntegrationCredential(
            user_id=user_id,
            provider="google_ads",
            access_token_encrypted=encrypt_string("secret-token"),
        ))
        await session.commit()

    listed = (await client.get("/integrations", headers=auth_headers)).json()["integrations"]
    assert [(i["provider"], i["kind"]) for i in listed] == [("google_ads", "oauth")]
    assert "secret-token" not in json.dumps(listed)

    assert (await client.delete("/integrations/google-ads", headers=auth_headers)).json() == {"success": True}
    assert (await client.delete("/integrations/google-ads", headers=auth_headers)).status_code == 404


# Google Sheets proxy


async def test_sheets_fetch_data(client, provider_http):
    provider_http.respond = lambda request: httpx.Response(
        200, json={"values": [["month", "sales"], ["Jan", "10"], ["Feb"]]}
    )
    response = await client.post(
        "/google-sheets",
        json={"action": "fetchData", "spreadsheetId": "sheet-1", "range": "Sheet1!A1:B3", "accessToken": "tok"},
    )
    body = response.json()
    assert body["success"] is True
    assert body["headers"] == ["month", "sales"]
    assert body["data"] == [{"month": "Jan", "sales": "10"}, {"month": "Feb", "sales": None}]
    assert body["rowCount"] == 2

    [request] = provider_http.requests
    assert request.headers["Authorization"] == "Bearer tok"
    assert request.url.path.endswith("/sheet-1/values/Sheet1!A1:B3") or "Sheet1%21A1%3AB3" in str(request.url)


async def test_sheets_uses_stored_token(client, auth_headers, user_id, provider_http, session_factory):
    async with session_factory() as session:
        session.add(IntegrationCredential(
            user_id=user_id,
            provider="google_sheets",
            access_token_encrypted=encrypt_string("stored-token"),
        ))
        await session.commit()

    provider_http.respond = lambda request: httpx.Response(
        200, json={"properties": {"title": "Budget"}, "sheets": [{"properties": {"title": "Q1", "sheetId": 0}}]}
    )
    response = await client.post("/google-sheets", json={"action": "listSheets", "spreadsheetId": "s"}, headers=auth_headers)
    assert response.json()["spreadsheetTitle"] == "Budget"
    assert response.json()["sheets"][0]["title"] == "Q1"
    assert provider_http.requests[0].headers["Authorization"] == "Bearer stored-token"


@pytest.mark.parametrize("body,status_code", [
    ({"action": "deleteSheet", "spreadsheetId": "s", "accessToken": "t"}, 400),
    ({"action": "fetchData", "accessToken": "t"}, 400),
    ({"action": "fetchData", "spreadsheetId": "s"}, 401),
])
async def test_sheets_bad_requests(client, provider_http, body, status_code):
    assert (await client.post("/google-sheets", json=body)).status_code == status_code


async def test_sheets_upstream_error(client, provider_http):
    provider_http.respond = lambda request: httpx.Response(403, json={"error": {"message": "forbidden"}})
    response = await client.post("/google-sheets", json={"action": "listSheets", "spreadsheetId": "s", "accessToken": "t"})
    assert response.status_code == 502


# Shopify Admin API


async def test_shopify_connect_and_import(client, auth_headers, provider_http, session_factory):
    response = await client.post(
        "/shopify/connect",
        json={"shopDomain": "demo.myshopify.com", "accessToken": "shpat_admin"},
        headers=auth_headers,
    )
    api_key_id = response.json()["apiKeyId"]

    async with session_factory() as session:
        stored = (await session.execute(select(ApiKey))).scalar_one()
    assert decrypt_string(stored.encrypted_key) == "shpat_admin"

    provider_http.respond = lambda request: httpx.Response(200, json={"orders": [
        {"id": 1, "order_number": 1001, "email": "a@example.com", "total_price": "19.90",
         "financial_status": "paid", "created_at": "2024-05-01T10:00:00-04:00", "currency": "USD"},
    ]})
    response = await client.post(
        "/shopify/import",
        json={"shopDomain": "demo.myshopify.com", "apiKeyId": api_key_id, "saveAs": "shopify_orders"},
        headers=auth_headers,
    )
    body = response.json()
    assert body["rowCount"] == 1
    assert body["data"][0]["total_price"] == 19.9
    assert body["data"][0]["created_at"] == "2024-05-01"
    assert body["table"]["name"] == "shopify_orders"
    assert provider_http.requests[0].headers["X-Shopify-Access-Token"] == "shpat_admin"


async def test_shopify_import_unknown_key(client, auth_headers, provider_http):
    response = await client.post(
        "/shopify/import",
        json={"shopDomain": "demo.myshopify.com", "apiKeyId": "missing"},
        headers=auth_headers,
    )
    assert response.status_code == 404


@pytest.mark.parametrize("upstream", [
    httpx.Response(200, text="<html>maintenance</html>"),
    httpx.Response(200, json=["not", "an", "object"]),
])
async def test_shopify_import_unreadable_body(client, auth_headers, provider_http, upstream):
    response = await client.post(
        "/shopify/connect",
        json={"shopDomain": "demo.myshopify.com", "accessToken": "shpat_admin"},
        headers=auth_headers,
    )
    api_key_id = response.json()["apiKeyId"]

    provider_http.respond = lambda request: upstream
    response = await client.post(
        "/shopify/import",
        json={"shopDomain": "demo.myshopify.com", "apiKeyId": api_key_id},
        headers=auth_headers,
    )
    assert response.status_code == 502


async def test_sheets_unreadable_body(client, provider_http):
    provider_http.respond = lambda request: httpx.Response(200, text="not json")
    response = await client.post("/google-sheets", json={"action": "listSheets", "spreadsheetId": "s", "accessToken": "t"})
    assert response.status_code == 502
