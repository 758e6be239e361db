"""Dashboard route tests."""

from uuid import uuid4

from conftest import make_token


CANVAS = [
    {"id": "item-1", "type": "barChart", "title": "Revenue"},
    {"id": "item-2", "type": "kpiCard", "title": "Orders"},
]


async def create(client, headers, **fields):
    response = await client.post("/dashboards", json={"name": "Q1 Report", "canvas_items": CANVAS, **fields}, headers=headers)
    assert response.status_code == 201
    return response.json()["dashboard"]


async def test_create_and_get(client, auth_headers):
    dashboard = await create(client, auth_headers)
    assert dashboard["slug"].startswith("q1-report-")
    assert dashboard["visibility"] == "private"
    assert dashboard["view_count"] == 0

    fetched = (await client.get(f"/dashboards/{dashboard['id']}", headers=auth_headers)).json()["dashboard"]
    assert fetched["canvas_items"] == CANVAS


async def test_list_omits_canvas(client, auth_headers):
    await create(client, auth_headers)
    [listed] = (await client.get("/dashboards", headers=auth_headers)).json()["dashboards"]
    assert listed["name"] == "Q1 Report"
    assert "canvas_items" not in listed


async def test_update_and_autosave(client, auth_headers):
    dashboard = await create(client, auth_headers, state_json={"zoom": 1})

    response = await client.patch(f"/dashboards/{dashboard['id']}", json={"name": "Renamed"}, headers=auth_headers)
    assert response.json()["dashboard"]["name"] == "Renamed"
    assert response.json()["dashboard"]["description"] is None

    response = await client.put(
        f"/dashboards/{dashboard['id']}/state",
        json={"canvas_items": CANVAS[:1], "connections": [{"source": "a", "target": "b"}]},
        headers=auth_headers,
    )
    assert response.status_code == 200

    fetched = (await client.get(f"/dashboards/{dashboard['id']}", headers=auth_headers)).json()["dashboard"]
    assert fetched["canvas_items"] == CANVAS[:1]
    assert fetched["connections"] == [{"source": "a", "target": "b"}]
    assert fetched["state_json"] == {"zoom": 1}


async def test_update_cannot_clear_required_fields(client, auth_headers):
    dashboard = await create(client, auth_headers)

    for body in ({"name": None}, {"canvas_mode": None, "theme": "dark"}):
        response = await client.patch(f"/dashboards/{dashboard['id']}", json=body, headers=auth_headers)
        assert response.status_code == 400

    response = await client.patch(f"/dashboards/{dashboard['id']}", json={"description": None}, headers=auth_headers)
    assert response.status_code == 200

    fetched = (await client.get(f"/dashboards/{dashboard['id']}", headers=auth_headers)).json()["dashboard"]
    assert fetched["name"] == "Q1 Report"
    assert fetched["theme"] is None


async def test_other_users_cannot_see_dashboard(client, auth_headers):
    dashboard = await create(client, auth_headers)
    stranger = {"Authorization": f"Bearer {make_token(uuid4(), email='other@example.com')}"}
    assert (await client.get(f"/dashboards/{dashboard['id']}", headers=stranger)).status_code == 404
    assert (await client.delete(f"/dashboards/{dashboard['id']}", headers=stranger)).status_code == 404


async def test_delete(client, auth_headers):
    dashboard = await create(client, auth_headers)
    assert (await client.delete(f"/dashboards/{dashboard['id']}", headers=auth_headers)).status_code == 200
    assert (await client.get(f"/dashboards/{dashboard['id']}", headers=auth_headers)).status_code == 404


async def test_duplicate(client, auth_headers):
    dashboard = await create(client, auth_headers)
    await client.post(f"/dashboards/{dashboard['id']}/publish", json={"visibility": "public"}, headers=auth_headers)

    response = await client.post(f"/dashboards/{dashboard['id']}/duplicate", headers=auth_headers)
    assert response.status_code == 201
    copy = response.json()["dashboard"]
    assert copy["id"] != dashboard["id"]
    assert copy["name"] == "Q1 Report (Copy)"
    assert copy["canvas_items"] == CANVAS
    assert copy["visibility"] == "private"
    assert copy["share_slug"] is None

    named = await client.post(f"/dashboards/{dashboard['id']}/duplicate", json={"name": "Q2"}, headers=auth_headers)
    assert named.json()["dashboard"]["name"] == "Q2"


async def test_publish_and_shared_view(client, auth_headers):
    dashboard = await create(client, auth_headers)

    published = (await client.post(
        f"/dashboards/{dashboard['id']}/publish",
        json={"visibility": "unlisted", "allowDownloads": True},
        headers=auth_headers,
    )).json()["dashboard"]
    slug = published["share_slug"]
    assert slug.startswith("proj_")
    assert published["visibility"] == "unlisted"
    assert published["allow_downloads"] is True

    first = await client.get(f"/dashboards/shared/{slug}")
    second = await client.get(f"/dashboards/shared/{slug}")
    assert first.status_code == 200
    assert first.json()["dashboard"]["view_count"] == 1
    assert second.json()["dashboard"]["view_count"] == 2
    assert second.json()["dashboard"]["canvas_items"] == CANVAS

    republished = (await client.post(
        f"/dashboards/{dashboard['id']}/publish",
        json={"visibility": "public"},
        headers=auth_headers,
    )).json()["dashboard"]
    assert republished["share_slug"] == slug


async def test_private_dashboard_is_not_shared(client, auth_headers):
    dashboard = await create(client, auth_headers)
    published = (await client.post(
        f"/dashboards/{dashboard['id']}/publish", json={"visibility": "public"}, headers=auth_headers,
    )).json()["dashboard"]
    await client.post(f"/dashboards/{dashboard['id']}/publish", json={"visibility": "private"}, headers=auth_headers)

    assert (await client.get(f"/dashboards/shared/{published['share_slug']}")).status_code == 404
    assert (await client.get("/dashboards/shared/proj_missing")).status_code == 404


async def test_publish_rejects_unknown_visibility(client, auth_headers):
    dashboard = await create(client, auth_headers)
    response = await client.post(f"/dashboards/{dashboard['id']}/publish", json={"visibility": "secret"}, headers=auth_headers)
    assert response.status_code == 422
