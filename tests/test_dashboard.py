"""Operator JSON API."""

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from dashboard import Dashboard
from storage.database import Database


@pytest_asyncio.fixture
async def client(fleet):
    db = Database(":memory:")
    db.connect()
    fleet.manager.db = db
    dashboard = Dashboard(fleet.manager)
    async with TestClient(TestServer(dashboard.app)) as test_client:
        yield test_client
    db.close()


@pytest.mark.asyncio
class TestReadRoutes:
    """GET endpoints."""

    async def test_stats(self, client, fleet):
        fleet.supervisor.request_connect(1).spawn()
        resp = await client.get("/api/stats")
        assert resp.status == 200
        data = await resp.json()
        assert data["totalBots"] == 1
        assert data["onlineBots"] == 1

    async def test_bots(self, client, fleet):
        fleet.supervisor.request_connect(2).spawn()
        data = await (await client.get("/api/bots")).json()
        assert data[0]["id"] == 2
        assert data[0]["status"] == "online"

    async def test_console(self, client, fleet):
        fleet.event_log.add("hello operator")
        data = await (await client.get("/api/console")).json()
        assert data[0].endswith("hello operator")

    async def test_bot_state(self, client, fleet):
        fleet.supervisor.request_connect(1)
        data = await (await client.get("/api/bot/1/state")).json()
        assert data == {"state": "RUNNING"}

    async def test_bot_state_unknown(self, client):
        resp = await client.get("/api/bot/42/state")
        assert resp.status == 404
        data = await resp.json()
        assert data["success"] is False
        assert data["code"] == "NOT_FOUND"


@pytest.mark.asyncio
class TestWriteRoutes:
    """POST endpoints and error mapping."""

    async def test_add_random(self, client, fleet):
        resp = await client.post("/api/bots/add", json={"count": 2})
        data = await resp.json()
        assert data["success"] is True
        assert data["botIds"] == [1, 2]

    async def test_add_custom_validation(self, client, fleet):
        resp = await client.post("/api/bots/add-custom", json={"name": "ab"})
        assert resp.status == 400
        assert (await resp.json())["success"] is False
        assert len(fleet.registry) == 0

    async def test_add_custom(self, client, fleet):
        resp = await client.post("/api/bots/add-custom", json={"name": "Steve", "uuid": ""})
        assert (await resp.json()) == {"success": True, "botId": 1}
        assert fleet.sessions.last.identity.display_name == "Steve"

    async def test_capacity_conflict(self, client, fleet):
        fleet.registry.max_slots = 1
        await client.post("/api/bots/add", json={"count": 1})
        resp = await client.post("/api/bots/add", json={"count": 1})
        assert resp.status == 409

    async def test_toggle_and_stop(self, client, fleet):
        fleet.supervisor.request_connect(1).spawn()
        data = await (await client.post("/api/bot/1/toggle")).json()
        assert data["state"] == "STOPPED"
        data = await (await client.post("/api/bot/1/start")).json()
        assert data == {"success": True, "state": "RUNNING"}

    async def test_command(self, client, fleet):
        session = fleet.supervisor.request_connect(1)
        session.spawn()
        data = await (await client.post("/api/command", json={"command": "/spawn", "target": "all"})).json()
        assert data == {"success": True, "sentTo": [1]}
        assert session.chats == ["/spawn"]

    async def test_blank_command(self, client):
        resp = await client.post("/api/command", json={"command": " "})
        assert resp.status == 400

    async def test_remove_permanent(self, client, fleet):
        fleet.supervisor.request_connect(1).spawn()
        resp = await client.post("/api/bots/remove", json={"botId": 1, "permanent": True})
        assert resp.status == 200
        assert fleet.registry.is_removed(1)

    async def test_update_server(self, client, fleet):
        resp = await client.post("/api/update-server", json={"ip": "play.example.net", "port": 25570})
        data = await resp.json()
        assert data["success"] is True
        assert data["history"][0]["name"] == "play.example.net:25570"

    async def test_update_server_invalid(self, client):
        resp = await client.post("/api/update-server", json={"ip": "play.example.net"})
        assert resp.status == 400

    async def test_settings(self, client, fleet):
        data = await (await client.post("/api/settings", json={"autoReconnect": False})).json()
        assert data["autoReconnect"] is False
        assert fleet.settings.auto_reconnect is False

    async def test_malformed_body(self, client):
        resp = await client.post("/api/bots/add", data="not json")
        assert resp.status == 200
        assert (await resp.json())["botIds"] == [1]

    async def test_console_clear(self, client, fleet):
        fleet.event_log.add("noise")
        await client.post("/api/console/clear")
        assert len(fleet.event_log) == 1
