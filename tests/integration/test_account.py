"""Account route tests."""

from datetime import datetime, timezone

from moodboard.models import AIImageUsage


async def test_profile_round_trip(client, auth_headers, user_id):
    response = await client.get("/account/profile", headers=auth_headers)
    profile = response.json()["profile"]
    assert profile["id"] == str(user_id)
    assert profile["has_billing_account"] is False

    response = await client.patch("/account/profile", json={"company": "Acme"}, headers=auth_headers)
    assert response.json()["profile"]["company"] == "Acme"
    assert response.json()["profile"]["full_name"] == "Test User"


async def test_stats(client, auth_headers):
    await client.post(
        "/dashboards",
        json={"name": "Board", "canvas_items": [{"type": "barChart"}, {"type": "lineChart"}, {"type": "text"}]},
        headers=auth_headers,
    )
    await client.post("/data-tables", json={"name": "t", "source": "upload", "data": []}, headers=auth_headers)

    response = await client.get("/account/stats", headers=auth_headers)
    assert response.json() == {"dashboards_count": 1, "data_tables_count": 1, "charts_count": 2}


async def test_usage(client, auth_headers, user_id, session_factory):
    async with session_factory() as session:
        session.add(AIImageUsage(user_id=user_id, usage_date=datetime.now(timezone.utc).date(), used=2))
        await session.commit()

    usage = (await client.get("/account/usage", headers=auth_headers)).json()
    assert usage["tier"] == "free"
    assert usage["images"]["used"] == 2
    assert usage["images"]["limit"] == 3
    assert usage["tables"] == {"used": 0, "limit": 3}


async def test_pro_usage_has_no_table_limit(client, auth_headers, pro_user):
    usage = (await client.get("/account/usage", headers=auth_headers)).json()
    assert usage["tier"] == "pro"
    assert usage["images"]["limit"] == 50
    assert usage["tables"]["limit"] is None


async def test_activity(client, auth_headers):
    await client.post("/dashboards", json={"name": "Board"}, headers=auth_headers)
    [entry] = (await client.get("/account/activity", headers=auth_headers)).json()["activity"]
    assert entry["action"] == "dashboard_create"
    assert entry["metadata"] == {"name": "Board"}
