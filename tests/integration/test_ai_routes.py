"""AI route tests: execute, parse, chat, orchestrate and image generation."""

import json

import openai
import pytest
from sqlalchemy import select

from moodboard.models import AIImageUsage


EMPTY_CANVAS = {"currentState": {"canvasItems": [], "dataTables": []}}


class BillingLimitError(openai.OpenAIError):
    code = "billing_hard_limit_reached"


# Execute


async def test_execute_requires_commands(client):
    response = await client.post("/ai/execute", json={"context": EMPTY_CANVAS})
    assert response.status_code == 400
    assert response.json()["detail"] == "commands[] required"


async def test_execute_requires_current_state(client):
    response = await client.post("/ai/execute", json={"commands": [], "context": {}})
    assert response.status_code == 400
    assert response.json()["detail"] == "context.currentState required"


async def test_execute_rejects_non_object_state(client):
    response = await client.post("/ai/execute", json={"commands": [], "context": {"currentState": []}})
    assert response.status_code == 400


async def test_execute_accepts_blank_state(client):
    response = await client.post(
        "/ai/execute",
        json={"commands": [{"action": "setTheme", "params": {"theme": "dark"}}], "context": {"currentState": {}}},
    )
    assert response.status_code == 200
    assert response.json()["state"]["theme"] == "dark"


async def test_execute_rejects_unknown_action(client):
    response = await client.post(
        "/ai/execute",
        json={"commands": [{"action": "explode"}], "context": EMPTY_CANVAS},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Unsupported action: explode"


async def test_execute_applies_commands(client):
    response = await client.post(
        "/ai/execute",
        json={
            "commands": [
                {"action": "addVisualization", "params": {"type": "barChart", "title": "Revenue", "x": 10, "y": 20}},
                {"action": "addElement", "params": {"type": "text", "text": "Q1"}},
            ],
            "context": EMPTY_CANVAS,
        },
    )
    assert response.status_code == 200
    state = response.json()["state"]
    assert [item["type"] for item in state["canvasItems"]] == ["barChart"]
    assert state["canvasItems"][0]["title"] == "Revenue"
    assert state["canvasElements"][0]["text"] == "Q1"


async def test_execute_binds_stored_table(client, auth_headers):
    created = await client.post(
        "/data-tables",
        headers=auth_headers,
        json={
            "name": "Orders",
            "source": "upload",
            "data": [{"month": "Jan", "amount": 10}, {"month": "Feb", "amount": 30}],
            "schema": [{"name": "month"}, {"name": "amount"}],
        },
    )
    assert created.status_code == 200

    response = await client.post(
        "/ai/execute",
        headers=auth_headers,
        json={
            "commands": [
                {"action": "addVisualization", "params": {"type": "lineChart", "x": 0, "y": 0}},
                {"action": "bindData", "target": {"selector": "#last"}, "params": {"table": "orders"}},
            ],
            "context": EMPTY_CANVAS,
        },
    )
    assert response.status_code == 200
    [chart] = response.json()["state"]["canvasItems"]
    assert chart["data"] == [{"name": "Jan", "value": 10}, {"name": "Feb", "value": 30}]
    assert chart["bindings"]["yField"] == "amount"


async def test_execute_rate_limited(client):
    payload = {"commands": [{"action": "listDatasets"}], "context": EMPTY_CANVAS}
    for _ in range(60):
        assert (await client.post("/ai/execute", json=payload)).status_code == 200

    response = await client.post("/ai/execute", json=payload)
    assert response.status_code == 429
    assert response.json() == {"error": "Too Many Requests"}
    assert int(response.headers["Retry-After"]) >= 1


async def test_rate_limit_is_per_client(client):
    payload = {"commands": [{"action": "listDatasets"}], "context": EMPTY_CANVAS}
    for _ in range(60):
        await client.post("/ai/execute", json=payload, headers={"X-Forwarded-For": "203.0.113.7"})

    blocked = await client.post("/ai/execute", json=payload, headers={"X-Forwarded-For": "203.0.113.7"})
    other = await client.post("/ai/execute", json=payload, headers={"X-Forwarded-For": "198.51.100.2, 10.0.0.1"})
    assert blocked.status_code == 429
    assert other.status_code == 200


# Parse


async def test_parse_local(client):
    response = await client.post("/ai/parse", json={"text": "add a rocket emoji"})
    assert response.status_code == 200
    body = response.json()
    assert body["source"] == "local"
    assert body["commands"][0]["params"]["emoji"] == "🚀"


async def test_parse_without_openai(client):
    response = await client.post("/ai/parse", json={"text": "Build me a revenue overview"})
    assert response.status_code == 503


async def test_parse_with_model(client, fake_openai):
    commands = [{"action": "addVisualization", "params": {"type": "barChart"}}]
    fake_openai.chat.completions.content = "```json\n" + json.dumps({"commands": commands}) + "\n```"

    response = await client.post("/ai/parse", json={"text": "Build me a revenue overview"})
    assert response.status_code == 200
    assert response.json() == {"commands": commands, "source": "model"}

    [call] = fake_openai.chat.completions.calls
    assert call["messages"][0]["role"] == "system"
    assert call["messages"][1] == {"role": "user", "content": "Build me a revenue overview"}


async def test_parse_strict_refuses_off_topic(client, fake_openai):
    fake_openai.chat.completions.content = json.dumps({"error": "Cannot perform non-canvas operation"})

    response = await client.post("/ai/parse", json={"text": "what time is it in Tokyo?", "strict": True})
    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot perform non-canvas operation"

    messages = fake_openai.chat.completions.calls[0]["messages"]
    assert messages[0]["content"].startswith("You are a canvas command engine")
    assert messages[1]["content"] == "Canvas state: empty, no elements."


@pytest.mark.parametrize("content,expected", [
    ("I cannot do that", 502),
    (json.dumps({"commands": "nope"}), 502),
    (json.dumps({"commands": [{"action": "launchMissiles"}]}), 400),
    (json.dumps({"error": "Please describe the chart"}), 400),
])
async def test_parse_rejects_bad_model_output(client, fake_openai, content, expected):
    fake_openai.chat.completions.content = content
    response = await client.post("/ai/parse", json={"text": "Build me a revenue overview"})
    assert response.status_code == expected


# Chat and orchestration


async def test_chat(client, fake_openai):
    fake_openai.chat.completions.content = "Hi there"
    response = await client.post(
        "/ai/chat",
        json={"messages": [{"role": "user", "content": "hello"}], "mode": "dashboard"},
    )
    assert response.status_code == 200
    assert response.json() == {"message": "Hi there"}
    messages = fake_openai.chat.completions.calls[0]["messages"]
    assert messages[0]["role"] == "system"
    assert messages[1] == {"role": "user", "content": "hello"}


async def test_chat_without_openai(client):
    response = await client.post("/ai/chat", json={"messages": []})
    assert response.status_code == 503


async def test_chat_upstream_error(client, fake_openai):
    fake_openai.chat.completions.error = openai.OpenAIError("upstream down")
    response = await client.post("/ai/chat", json={"messages": [{"role": "user", "content": "hi"}]})
    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to process chat request"


async def test_orchestrate(client):
    response = await client.post("/ai/orchestrate", json={"command": "sales dashboard with revenue trend"})
    assert response.status_code == 200
    assert response.json()["state"]["canvasItems"]


async def test_orchestrate_requires_command(client):
    response = await client.post("/ai/orchestrate", json={})
    assert response.status_code == 400


# Images


async def used_today(session_factory, user_id) -> int:
    async with session_factory() as session:
        result = await session.execute(select(AIImageUsage.used).where(AIImageUsage.user_id == user_id))
        return result.scalar_one_or_none() or 0


async def test_generate_image_requires_auth(client, fake_openai):
    response = await client.post("/ai/generate-image", json={"prompt": "a cat"})
    assert response.status_code in (401, 403)


@pytest.mark.parametrize("body", [{}, {"prompt": "   "}, {"prompt": "a cat", "size": "256x256"}])
async def test_generate_image_validation(client, fake_openai, auth_headers, body):
    response = await client.post("/ai/generate-image", json=body, headers=auth_headers)
    assert response.status_code == 400
    assert fake_openai.images.calls == []


async def test_free_quota(client, fake_openai, auth_headers, user_id, session_factory):
    for expected in (1, 2, 3):
        response = await client.post("/ai/generate-image", json={"prompt": "a cat"}, headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["imageUrl"] == "https://images.example.com/generated.png"
        assert body["usage"] == {"used": expected, "limit": 3}

    response = await client.post("/ai/generate-image", json={"prompt": "a cat"}, headers=auth_headers)
    assert response.status_code == 429
    assert response.json()["detail"]["limit"] == 3
    assert len(fake_openai.images.calls) == 3
    assert await used_today(session_factory, user_id) == 3


async def test_pro_limit(client, fake_openai, auth_headers, pro_user):
    response = await client.post("/ai/generate-image", json={"prompt": "a dog"}, headers=auth_headers)
    assert response.json()["usage"] == {"used": 1, "limit": 50}


async def test_failed_generation_releases_slot(client, fake_openai, auth_headers, user_id, session_factory):
    fake_openai.images.error = openai.OpenAIError("content policy")
    response = await client.post("/ai/generate-image", json={"prompt": "a cat"}, headers=auth_headers)
    assert response.status_code == 500
    assert await used_today(session_factory, user_id) == 0


async def test_openai_billing_limit(client, fake_openai, auth_headers, user_id, session_factory):
    fake_openai.images.error = BillingLimitError("Billing hard limit has been reached")
    response = await client.post("/ai/generate-image", json={"prompt": "a cat"}, headers=auth_headers)
    assert response.status_code == 402
    assert await used_today(session_factory, user_id) == 0
