"""Bridge session: frame translation and a round trip against a local server."""

import asyncio
import json
from uuid import uuid4

import pytest
import websockets

from fleet.errors import SessionError
from game.bridge_ws import BridgeSession, bridge_factory
from game.models import EntityKind, Identity, Item
from game.session import (
    CHAT_RECEIVED, DIED, ERRORED, FOOD_CHANGED, HEALTH_CHANGED, KICKED,
    SELF_DAMAGED, SESSION_ENDED, SPAWNED,
)


def frame(event, **data):
    return json.dumps({"event": event, "data": data})


def make_session(url="ws://127.0.0.1:1"):
    return BridgeSession("mc.example.org", 25565, Identity("Walker", uuid4()), "1.20.1", url, connect_timeout=2)


def record(session, *events):
    seen = []
    for event in events:
        session.on(event, lambda *args, _e=event: seen.append((_e, args)))
    return seen


@pytest.mark.asyncio
class TestFrames:
    """Incoming frames update state and raise session events."""

    async def test_spawn_once(self):
        session = make_session()
        seen = record(session, SPAWNED)
        session._handle_message(frame("spawn", entityId=5, position=[1, 2, 3]))
        session._handle_message(frame("spawn", entityId=5, position=[1, 2, 3]))

        assert seen == [(SPAWNED, ())]
        assert session.has_entity
        assert session.position == (1, 2, 3)

    async def test_health_and_food_changes(self):
        session = make_session()
        seen = record(session, HEALTH_CHANGED, FOOD_CHANGED)
        session._handle_message(frame("health", health=15, food=20))
        session._handle_message(frame("health", health=15, food=18))

        assert seen == [(HEALTH_CHANGED, (15,)), (FOOD_CHANGED, (18,))]

    async def test_hurt_by_known_player(self):
        session = make_session()
        seen = record(session, SELF_DAMAGED)
        session._handle_message(frame("spawn", entityId=5))
        session._handle_message(frame("entity", entityId=9, type="player", username="Griefer", position=[2, 0, 0]))
        session._handle_message(frame("hurt", entityId=5, attackerId=9))

        attacker = seen[0][1][0]
        assert attacker.name == "Griefer"
        assert attacker.kind == EntityKind.PLAYER
        assert session.distance_to(attacker) == pytest.approx(2.0)

    async def test_hurt_by_unknown_source(self):
        session = make_session()
        seen = record(session, SELF_DAMAGED)
        session._handle_message(frame("spawn", entityId=5))
        session._handle_message(frame("hurt", entityId=5))
        assert seen == [(SELF_DAMAGED, (None,))]

    async def test_entity_gone_invalidates(self):
        session = make_session()
        session._handle_message(frame("entity", entityId=9, type="player", username="Griefer"))
        entity = session._entities[9]
        session._handle_message(frame("entity_gone", entityId=9))
        assert not entity.valid

    async def test_other_entity_hurt_updates_health(self):
        session = make_session()
        session._handle_message(frame("spawn", entityId=5))
        session._handle_message(frame("entity", entityId=9, type="mob", name="zombie"))
        session._handle_message(frame("hurt", entityId=9, health=3))
        assert session._entities[9].health == 3

    async def test_chat_death_kick_error(self):
        session = make_session()
        seen = record(session, CHAT_RECEIVED, DIED, KICKED, ERRORED)
        session._handle_message(frame("chat", username="Alex", message="hi"))
        session._handle_message(frame("death"))
        session._handle_message(frame("kicked", reason="bye"))
        session._handle_message(frame("error", message="socket reset"))

        assert seen[0] == (CHAT_RECEIVED, ("Alex", "hi"))
        assert seen[1] == (DIED, ())
        assert seen[2] == (KICKED, ("bye",))
        assert isinstance(seen[3][1][0], SessionError)

    async def test_inventory(self):
        session = make_session()
        session._handle_message(frame("inventory", items=[{"name": "iron_sword", "count": 1, "slot": 36}]))
        assert session.inventory_items() == [Item("iron_sword", 1, 36)]

    async def test_invalid_json_is_ignored(self):
        session = make_session()
        session._handle_message("{not json")
        assert not session.ended

    @pytest.mark.parametrize("raw", [
        json.dumps({"event": "move", "data": {"position": None}}),
        json.dumps({"event": "chat", "data": ["not", "a", "dict"]}),
        json.dumps(["not", "a", "frame"]),
    ])
    async def test_malformed_frame_is_dropped(self, raw):
        session = make_session()
        seen = record(session, CHAT_RECEIVED)
        session._handle_message(raw)
        session._handle_message(frame("chat", username="Alex", message="still here"))

        assert seen == [(CHAT_RECEIVED, ("Alex", "still here"))]
        assert not session.ended


@pytest.mark.asyncio
class TestActions:
    """Actions become outbound op frames."""

    async def test_actions_are_queued(self):
        session = make_session()
        session._handle_message(frame("entity", entityId=9, type="player", username="Griefer"))
        target = session._entities[9]

        session.chat("hello")
        session.attack(target)
        session.pursue(target, 3)
        session.set_movement_intent("left", True)
        session.equip(Item("iron_sword", slot=36))

        ops = [session._outbox.get_nowait() for _ in range(5)]
        assert ops == [
            {"op": "chat", "text": "hello"},
            {"op": "attack", "entityId": 9},
            {"op": "follow", "entityId": 9, "distance": 3},
            {"op": "control", "control": "left", "state": True},
            {"op": "equip", "item": "iron_sword", "slot": 36, "destination": "hand"},
        ]

    async def test_end_before_connect(self):
        session = make_session()
        seen = record(session, SESSION_ENDED)
        session.end_session("nope")
        assert session.ended
        assert seen == [(SESSION_ENDED, ())]

    async def test_factory(self):
        factory = bridge_factory("ws://bridge:3000", 5)
        session = factory("host", 1, Identity("Walker", uuid4()), "1.20.1")
        assert isinstance(session, BridgeSession)
        assert session.bridge_url == "ws://bridge:3000"


@pytest.mark.asyncio
class TestRoundTrip:
    """Against a local websocket server standing in for the bridge."""

    async def test_connect_spawn_chat_end(self):
        received = []

        async def bridge(ws, *args):
            hello = json.loads(await ws.recv())
            received.append(hello)
            await ws.send(frame("spawn", entityId=1))
            received.append(json.loads(await ws.recv()))
            await ws.send(frame("end"))

        server = await websockets.serve(bridge, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            session = make_session(f"ws://127.0.0.1:{port}")
            ended = asyncio.Event()
            session.on(SPAWNED, lambda: session.chat("hello bridge"))
            session.on(SESSION_ENDED, ended.set)

            session.connect()
            await asyncio.wait_for(ended.wait(), timeout=5)
        finally:
            server.close()
            await server.wait_closed()

        assert received[0]["op"] == "connect"
        assert received[0]["username"] == "Walker"
        assert received[0]["host"] == "mc.example.org"
        assert received[0]["auth"] == "offline"
        assert received[1] == {"op": "chat", "text": "hello bridge"}

    async def test_bad_frame_does_not_end_session(self):
        async def bridge(ws, *args):
            await ws.recv()
            await ws.send(json.dumps({"event": "move", "data": {"position": None}}))
            await ws.send(frame("chat", username="Alex", message="after the bad one"))
            await ws.send(frame("end"))

        server = await websockets.serve(bridge, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            session = make_session(f"ws://127.0.0.1:{port}")
            seen = record(session, CHAT_RECEIVED, ERRORED, SESSION_ENDED)
            ended = asyncio.Event()
            session.on(SESSION_ENDED, ended.set)

            session.connect()
            await asyncio.wait_for(ended.wait(), timeout=5)
            await asyncio.wait_for(session._task, timeout=5)
        finally:
            server.close()
            await server.wait_closed()

        assert seen == [
            (CHAT_RECEIVED, ("Alex", "after the bad one")),
            (SESSION_ENDED, ()),
        ]

    async def test_unreachable_bridge_errors_then_ends(self):
        session = make_session("ws://127.0.0.1:9")
        seen = record(session, ERRORED, SESSION_ENDED)
        ended = asyncio.Event()
        session.on(SESSION_ENDED, ended.set)

        session.connect()
        await asyncio.wait_for(ended.wait(), timeout=5)

        assert seen[0][0] == ERRORED
        assert isinstance(seen[0][1][0], SessionError)
        assert seen[-1] == (SESSION_ENDED, ())
