"""
Bridge session — GameSession over a websocket bridge.

The bridge process owns the actual game protocol; this side sends one
`connect` op, then exchanges small JSON frames:
  in:  {"event": "spawn" | "health" | "move" | "entity" | "entity_gone" |
                 "hurt" | "death" | "chat" | "player_joined" | "player_left" |
                 "inventory" | "kicked" | "error" | "end", "data": {...}}
  out: {"op": "chat" | "quit" | "equip" | "attack" | "stop_attack" |
              "control" | "follow", ...}
One websocket per session, no internal reconnect: the supervisor decides
when to open a new session.
"""

from __future__ import annotations
import asyncio
import json
from typing import Any, Dict, List, Optional
import websockets
from game.models import Entity, EntityKind, Identity, Item
from game.session import (
    CHAT_RECEIVED, DIED, ERRORED, FOOD_CHANGED, HEALTH_CHANGED, KICKED,
    PLAYER_JOINED, PLAYER_LEFT, SELF_DAMAGED, SESSION_ENDED, SPAWNED,
    GameSession, SessionFactory,
)
from fleet.errors import SessionError
import logging

logger = logging.getLogger(__name__)


class BridgeSession(GameSession):
    """One bot's connection through the bridge."""

    def __init__(
        self,
        host: str,
        port: int,
        identity: Identity,
        version: str,
        bridge_url: str,
        connect_timeout: float = 30,
    ):
        super().__init__(host, port, identity, version)
        self.bridge_url = bridge_url
        self.connect_timeout = connect_timeout

        self._ws: Optional[Any] = None
        self._task: Optional[asyncio.Task] = None
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._entities: Dict[int, Entity] = {}
        self._inventory: List[Item] = []
        self._self_id: Optional[int] = None
        self._spawned = False
        self._remote_ended = False

    # ==================== Transport ====================

    def connect(self):
        self._task = asyncio.get_running_loop().create_task(self._run())

    def end_session(self, reason: str = ""):
        if self.ended:
            return
        if self._ws is not None:
            self._outbox.put_nowait({"op": "quit", "reason": reason})
        elif self._task is not None:
            self._task.cancel()
        else:
            self.emit(SESSION_ENDED)

    async def _run(self):
        try:
            async with websockets.connect(
                self.bridge_url,
                open_timeout=self.connect_timeout,
                ping_interval=20,
                ping_timeout=10,
                close_timeout=5,
            ) as ws:
                self._ws = ws
                await ws.send(json.dumps({
                    "op": "connect",
                    "host": self.host,
                    "port": self.port,
                    "username": self.identity.display_name,
                    "uuid": str(self.identity.unique_id),
                    "version": self.version,
                    "auth": "offline",
                }))
                logger.info(f"[BRIDGE] {self.username}: connecting to {self.host}:{self.port}")

                writer = asyncio.create_task(self._write_loop(ws))
                try:
                    async for raw in ws:
                        self._handle_message(raw)
                        if self._remote_ended:
                            break
                finally:
                    writer.cancel()

        except websockets.ConnectionClosedError as e:
            logger.warning(f"[BRIDGE] {self.username}: connection closed: {e}")
            self.emit(ERRORED, SessionError(f"Connection closed: {e}"))
        except (websockets.WebSocketException, OSError, asyncio.TimeoutError) as e:
            logger.error(f"[BRIDGE] {self.username}: {e}")
            self.emit(ERRORED, SessionError(str(e) or e.__class__.__name__))
        finally:
            self._ws = None
            self.emit(SESSION_ENDED)

    async def _write_loop(self, ws):
        while True:
            msg = await self._outbox.get()
            await ws.send(json.dumps(msg))
            if msg["op"] == "quit":
                await ws.close()
                return

    def _send(self, msg: Dict[str, Any]):
        if not self.ended:
            self._outbox.put_nowait(msg)

    # ==================== Incoming ====================

    def _handle_message(self, raw: str):
        """Translate one bridge frame into session state and events."""
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"[BRIDGE] Invalid JSON: {raw[:100]}")
            return

        # A malformed frame is dropped; the session keeps reading
        try:
            self._dispatch_frame(frame)
        except Exception as e:
            logger.error(f"[BRIDGE] {self.username}: handler error for {raw[:100]}: {e}", exc_info=True)

    def _dispatch_frame(self, frame: Dict[str, Any]):
        event = frame.get("event", "")
        data = frame.get("data") or {}

        if event == "spawn":
            self._self_id = data.get("entityId")
            self.position = tuple(data.get("position", self.position))
            self.has_entity = True
            if not self._spawned:
                self._spawned = True
                self.emit(SPAWNED)
        elif event == "health":
            if "health" in data and data["health"] != self.health:
                self.health = data["health"]
                self.emit(HEALTH_CHANGED, self.health)
            if "food" in data and data["food"] != self.food:
                self.food = data["food"]
                self.emit(FOOD_CHANGED, self.food)
        elif event == "move":
            self.position = tuple(data.get("position", self.position))
        elif event == "entity":
            self._upsert_entity(data)
        elif event == "entity_gone":
            entity = self._entities.pop(data.get("entityId"), None)
            if entity is not None:
                entity.valid = False
        elif event == "hurt":
            if data.get("entityId") == self._self_id:
                self.emit(SELF_DAMAGED, self._entities.get(data.get("attackerId")))
            elif data.get("entityId") in self._entities:
                self._entities[data["entityId"]].health = data.get("health", 0)
        elif event == "death":
            self.has_entity = False
            self.emit(DIED)
        elif event == "chat":
            self.emit(CHAT_RECEIVED, data.get("username", ""), data.get("message", ""))
        elif event == "player_joined":
            self.emit(PLAYER_JOINED, data.get("username", ""))
        elif event == "player_left":
            self.emit(PLAYER_LEFT, data.get("username", ""))
        elif event == "inventory":
            self._inventory = [
                Item(name=i.get("name", ""), count=i.get("count", 1), slot=i.get("slot"))
                for i in data.get("items", [])
            ]
        elif event == "kicked":
            self.emit(KICKED, data.get("reason", ""))
        elif event == "error":
            self.emit(ERRORED, SessionError(data.get("message", "bridge error")))
        elif event == "end":
            self._remote_ended = True
        else:
            logger.debug(f"[BRIDGE] {self.username}: unhandled event {event!r}")

    def _upsert_entity(self, data: Dict[str, Any]):
        entity_id = data.get("entityId")
        if entity_id is None:
            return
        try:
            kind = EntityKind(data.get("type", "other"))
        except ValueError:
            kind = EntityKind.OTHER

        entity = self._entities.get(entity_id)
        if entity is None:
            entity = Entity(entity_id=entity_id, name=data.get("username") or data.get("name", ""), kind=kind)
            self._entities[entity_id] = entity
        entity.health = data.get("health", entity.health)
        entity.position = tuple(data.get("position", entity.position))

    # ==================== Actions ====================

    def chat(self, text: str):
        self._send({"op": "chat", "text": text})

    def equip(self, item: Item, destination: str = "hand"):
        self._send({"op": "equip", "item": item.name, "slot": item.slot, "destination": destination})

    def attack(self, target: Entity):
        self._send({"op": "attack", "entityId": target.entity_id})

    def stop_attack(self):
        self._send({"op": "stop_attack"})

    def set_movement_intent(self, direction: str, active: bool):
        self._send({"op": "control", "control": direction, "state": active})

    def pursue(self, target: Entity, distance: int):
        self._send({"op": "follow", "entityId": target.entity_id, "distance": distance})

    def inventory_items(self) -> List[Item]:
        return list(self._inventory)


def bridge_factory(bridge_url: str, connect_timeout: float = 30) -> SessionFactory:
    """SessionFactory producing BridgeSessions against one bridge endpoint."""
    def factory(host: str, port: int, identity: Identity, version: str) -> GameSession:
        return BridgeSession(host, port, identity, version, bridge_url, connect_timeout)
    return factory
