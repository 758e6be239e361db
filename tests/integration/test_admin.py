"""Admin metrics tests."""

from conftest import create_profile
from moodboard.models import ProfileRole


async def test_requires_admin(client, auth_headers):
    response = await client.get("/admin/metrics", headers=auth_headers)
    assert response.status_code == 403


async def test_requires_authentication(client):
    response = await client.get("/admin/metrics")
    assert response.status_code in (401, 403)


async def test_metrics_for_admin_email(client, admin_headers, auth_headers):
    await client.post("/dashboards", json={"name": "Board"}, headers=auth_headers)
    await client.post(
        "/data-tables",
        json={"name": "Sales", "source": "upload", "data": [{"a": 1}, {"a": 2}]},
        headers=auth_headers,
    )

    response = await client.get("/admin/metrics", headers=admin_headers)
    assert response.status_code == 200
    metrics = response.json()
    assert metrics["dashboards"] == 1
    assert metrics["dataTables"] == 1
    assert metrics["totalRows"] == 2
    assert len(metrics["dashboardsByDay"]) == 30
    assert metrics["dashboardsByDay"][-1]["count"] == 1
    assert metrics["tablesByDay"][-1] == {"date": metrics["dashboardsByDay"][-1]["date"], "tables": 1, "rows": 2}
    assert metrics["activityPerUser"][0]["email"] == "user@example.com"
    assert metrics["activityPerUser"][0]["count"] == 2


async def test_metrics_for_admin_role(client, auth_headers, user_id, session_factory):
    await create_profile(session_factory, user_id, role=ProfileRole.ADMIN)
    response = await client.get("/admin/metrics", headers=auth_headers)
    assert response.status_code == 200
