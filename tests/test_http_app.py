"""Tests for the HTTP transport (FastAPI)."""

import dataclasses
import json

import anyio
import httpx
import pytest
from fastapi.testclient import TestClient

from bizdata_mcp.errors import UpstreamError
from bizdata_mcp.server.http_app import create_app
from bizdata_mcp.server.sessions import Session
from tests.conftest import EventStreamReader, FakeCompletionClient, build_context


def decision(tool, parameters=None, requested_format="markdown-table") -> str:
    return json.dumps({"tool": tool, "parameters": parameters or {}, "requested_format": requested_format})


@pytest.fixture
def make_client(settings, sample_db):
    """Start the app around a scripted model; yields a factory returning (TestClient, app)."""
    clients = []

    def start(responses=None, stream_chunks=None, stream_error=None):
        model = FakeCompletionClient(responses=responses, stream_chunks=stream_chunks, stream_error=stream_error)
        app = create_app(context=build_context(settings, model))
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client, app

    yield start
    for client in clients:
        client.__exit__(None, None, None)


def register_session(app, session_id: str = "s1") -> None:
    """Register a session without a stream, enough for chat messages."""
    app.state.sessions._sessions[session_id] = Session(id=session_id)


async def post_jsonrpc(app, session_id: str, payload: dict) -> httpx.Response:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        return await client.post(f"/messages?sessionId={session_id}", json=payload)


class TestInfoEndpoints:

    def test_health(self, make_client):
        client, _ = make_client()

        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["service"] == "bizdata-mcp"
        assert body["environment"] == "development"
        assert body["uptime"] >= 0
        assert body["memory"]["rss"] > 0
        assert body["memory"]["vms"] >= body["memory"]["rss"]

    def test_sse_info(self, make_client):
        client, _ = make_client()

        body = client.get("/sse").json()

        assert body["success"] is True
        assert body["streamEndpoint"] == "/sse/stream"
        assert body["sessionId"]


class TestSessionStream:

    @pytest.fixture
    def app(self, settings, sample_db):
        return create_app(context=build_context(settings, FakeCompletionClient()))

    @pytest.mark.asyncio
    async def test_stream_announces_session(self, app):
        reader = EventStreamReader(app, "/sse/stream")

        with anyio.fail_after(10):
            async with anyio.create_task_group() as tg:
                tg.start_soon(reader.run)
                endpoint = await reader.next_event()
                greeting = await reader.next_event()
                session_id = endpoint["data"].split("session_id=", 1)[1]
                assert session_id in app.state.sessions

                reader.disconnect()

        assert reader.status == 200
        assert endpoint["event"] == "endpoint"
        assert endpoint["data"].startswith("/messages?session_id=")

        notification = json.loads(greeting["data"])
        assert notification["method"] == "message"
        assert notification["params"]["type"] == "connection_response"
        assert notification["params"]["status"] == "connected"
        assert notification["params"]["sessionId"] == session_id
        assert len(app.state.sessions) == 0

    @pytest.mark.asyncio
    async def test_jsonrpc_reply_arrives_on_stream(self, app):
        reader = EventStreamReader(app, "/sse/stream")

        with anyio.fail_after(10):
            async with anyio.create_task_group() as tg:
                tg.start_soon(reader.run)
                await reader.next_event()
                session_id = json.loads((await reader.next_event())["data"])["params"]["sessionId"]

                response = await post_jsonrpc(app, session_id, {"jsonrpc": "2.0", "id": 1, "method": "ping"})
                reply = json.loads((await reader.next_event())["data"])

                reader.disconnect()

        assert response.status_code == 202
        assert response.text == "Accepted"
        assert reply == {"jsonrpc": "2.0", "id": 1, "result": {}}

    @pytest.mark.asyncio
    async def test_tools_use_the_app_context(self, app, settings, tmp_path, use_context):
        # A process-wide context on a missing database must not be the one serving the session
        elsewhere = dataclasses.replace(settings, database_path=str(tmp_path / "missing" / "none.db"))
        use_context(build_context(elsewhere, FakeCompletionClient()))
        reader = EventStreamReader(app, "/sse/stream")

        with anyio.fail_after(10):
            async with anyio.create_task_group() as tg:
                tg.start_soon(reader.run)
                await reader.next_event()
                session_id = json.loads((await reader.next_event())["data"])["params"]["sessionId"]

                await post_jsonrpc(app, session_id, {
                    "jsonrpc": "2.0",
                    "id": 1,
                    "method": "initialize",
                    "params": {
                        "protocolVersion": "2025-03-26",
                        "capabilities": {},
                        "clientInfo": {"name": "tests", "version": "1.0"},
                    },
                })
                initialized = json.loads((await reader.next_event())["data"])
                await post_jsonrpc(app, session_id, {"jsonrpc": "2.0", "method": "notifications/initialized"})
                await post_jsonrpc(app, session_id, {
                    "jsonrpc": "2.0",
                    "id": 2,
                    "method": "tools/call",
                    "params": {"name": "get-vendor-by-id", "arguments": {"id": 42}},
                })
                called = json.loads((await reader.next_event())["data"])

                reader.disconnect()

        assert initialized["id"] == 1
        assert initialized["result"]["serverInfo"]["name"] == "bizdata-mcp"
        assert called["id"] == 2
        assert called["result"].get("isError") is not True
        assert "Vendor Forty Two Pvt Ltd" in json.dumps(called["result"])


class TestMessages:

    def test_no_session(self, make_client):
        client, _ = make_client()

        response = client.post("/messages?sessionId=abc", json={"message": "hi"})

        assert response.status_code == 400
        assert response.json() == {"error": "No transport found for sessionId"}

    def test_chat_message_is_streamed(self, make_client):
        client, app = make_client(
            responses=[decision("get-vendor-by-id", {"id": 42})],
            stream_chunks=["| Id |", " 42 |"],
        )
        register_session(app)

        response = client.post("/messages?sessionId=s1", json={"message": "show vendor 42"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["x-accel-buffering"] == "no"
        assert response.headers["cache-control"] == "no-cache"
        assert response.text == "| Id | 42 |"

    def test_chart_message_is_json(self, make_client):
        chart = {"chart_type": "bar", "chart_data": [{"name": "Finance", "value": 2}]}
        client, app = make_client(responses=[decision("get-users", requested_format="bar"), json.dumps(chart)])
        register_session(app)

        response = client.post("/messages?sessionId=s1", json={"message": "users per department as bars"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        assert response.json() == chart

    def test_model_failure_is_500(self, make_client):
        client, app = make_client(responses=[UpstreamError("down")], stream_error=UpstreamError("down"))
        register_session(app)

        response = client.post("/messages?sessionId=s1", json={"message": "list vendors"})

        assert response.status_code == 500
        assert response.json()["type"] == "error"

    def test_unknown_session_uses_latest(self, make_client):
        client, app = make_client(responses=[decision(None)])
        register_session(app)

        response = client.post("/messages?sessionId=gone", json={"message": "hello"})

        assert response.status_code == 200
        assert "could not process" in response.text

    def test_invalid_json(self, make_client):
        client, app = make_client()
        register_session(app)

        response = client.post(
            "/messages?sessionId=s1", content="{oops", headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Request body must be JSON"}

    def test_invalid_utf8_body(self, make_client):
        client, app = make_client()
        register_session(app)

        response = client.post(
            "/messages?sessionId=s1",
            content=b'{"message": "\xff"}',
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Request body must be JSON"}

    def test_invalid_jsonrpc_message(self, make_client):
        client, app = make_client()
        register_session(app)

        response = client.post("/messages?sessionId=s1", json={"hello": "world"})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid JSON-RPC message"
