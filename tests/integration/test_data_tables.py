"""Data table route tests."""

from uuid import uuid4

from sqlalchemy import select

from conftest import make_token
from moodboard.models import ActivityLog


def table(name, rows=None, source="upload"):
    rows = rows if rows is not None else [{"region": "EU", "amount": 10}, {"region": "US", "amount": 5}]
    return {"name": name, "source": source, "data": rows, "schema": [{"name": "region"}, {"name": "amount"}]}


async def test_save_and_fetch(client, auth_headers):
    response = await client.post("/data-tables", json=table("Sales"), headers=auth_headers)
    assert response.status_code == 200
    saved = response.json()["table"]
    assert saved["row_count"] == 2
    assert saved["schema"][0]["name"] == "region"

    response = await client.get(f"/data-tables/{saved['id']}", headers=auth_headers)
    assert response.json()["table"]["data"][1] == {"region": "US", "amount": 5}

    listed = (await client.get("/data-tables", headers=auth_headers)).json()["tables"]
    assert [t["name"] for t in listed] == ["Sales"]
    assert "data" not in listed[0]


async def test_name_and_source_required(client, auth_headers):
    response = await client.post("/data-tables", json={"name": "Sales"}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Name and source are required"


async def test_same_name_replaces_contents(client, auth_headers):
    first = (await client.post("/data-tables", json=table("Sales"), headers=auth_headers)).json()["table"]
    second = (await client.post("/data-tables", json=table("Sales", [{"region": "APAC", "amount": 1}]), headers=auth_headers)).json()["table"]
    assert first["id"] == second["id"]
    assert second["row_count"] == 1
    assert len((await client.get("/data-tables", headers=auth_headers)).json()["tables"]) == 1


async def test_free_plan_table_limit(client, auth_headers):
    for name in ("one", "two", "three"):
        assert (await client.post("/data-tables", json=table(name), headers=auth_headers)).status_code == 200

    response = await client.post("/data-tables", json=table("four"), headers=auth_headers)
    assert response.status_code == 402
    assert response.json()["detail"]["requiresUpgrade"] is True

    # Replacing an existing table is still allowed
    assert (await client.post("/data-tables", json=table("two"), headers=auth_headers)).status_code == 200


async def test_pro_plan_has_no_table_limit(client, auth_headers, pro_user):
    for index in range(5):
        response = await client.post("/data-tables", json=table(f"t{index}"), headers=auth_headers)
        assert response.status_code == 200


async def test_tables_are_private(client, auth_headers):
    saved = (await client.post("/data-tables", json=table("Sales"), headers=auth_headers)).json()["table"]
    stranger = {"Authorization": f"Bearer {make_token(uuid4(), email='other@example.com')}"}

    assert (await client.get(f"/data-tables/{saved['id']}", headers=stranger)).status_code == 404
    assert (await client.delete(f"/data-tables/{saved['id']}", headers=stranger)).status_code == 404
    assert (await client.get("/data-tables/not-a-uuid", headers=auth_headers)).status_code == 404


async def test_delete(client, auth_headers, user_id, session_factory):
    saved = (await client.post("/data-tables", json=table("Sales"), headers=auth_headers)).json()["table"]
    assert (await client.delete(f"/data-tables/{saved['id']}", headers=auth_headers)).json() == {"success": True}
    assert (await client.get(f"/data-tables/{saved['id']}", headers=auth_headers)).status_code == 404

    async with session_factory() as session:
        actions = (await session.execute(select(ActivityLog.action).where(ActivityLog.user_id == user_id))).scalars().all()
    assert sorted(actions) == ["table_create", "table_delete"]


async def test_transform_inline_rows(client, auth_headers):
    response = await client.post(
        "/data-tables/transform",
        headers=auth_headers,
        json={
            "nodeType": "filter",
            "config": {"column": "amount", "operator": ">", "value": 6},
            "data": [{"amount": 10}, {"amount": 5}],
        },
    )
    assert response.status_code == 200
    assert response.json()["data"] == [{"amount": 10}]


async def test_transform_stored_tables_and_save(client, auth_headers):
    orders = (await client.post("/data-tables", json=table("orders"), headers=auth_headers)).json()["table"]
    regions = (await client.post(
        "/data-tables",
        json=table("regions", [{"code": "EU", "label": "Europe"}]),
        headers=auth_headers,
    )).json()["table"]

    response = await client.post(
        "/data-tables/transform",
        headers=auth_headers,
        json={
            "nodeType": "join",
            "config": {"leftKey": "region", "rightKey": "code", "joinType": "INNER"},
            "tableId": orders["id"],
            "secondaryTableId": regions["id"],
            "saveAs": "orders_eu",
        },
    )
    body = response.json()
    assert body["row_count"] == 1
    assert body["data"][0]["label"] == "Europe"
    assert body["table"]["source"] == "transform"
    assert body["table"]["source_config"]["nodeType"] == "join"


async def test_transform_needs_input(client, auth_headers):
    response = await client.post("/data-tables/transform", headers=auth_headers, json={"nodeType": "filter"})
    assert response.status_code == 400
