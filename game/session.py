"""
Game session collaborator.
One live connection of one bot to the game server. Concrete transports
subclass GameSession; the fleet only talks to this interface.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Tuple
from game.models import Entity, Identity, Item
import logging

logger = logging.getLogger(__name__)

# Event names. Callbacks are plain functions run on the event loop.
SPAWNED = "spawned"
HEALTH_CHANGED = "health_changed"
FOOD_CHANGED = "food_changed"
SELF_DAMAGED = "self_damaged"        # (attacker: Entity | None)
DIED = "died"
CHAT_RECEIVED = "chat_received"      # (sender: str, text: str)
PLAYER_JOINED = "player_joined"      # (name: str)
PLAYER_LEFT = "player_left"          # (name: str)
KICKED = "kicked"                    # (reason: str)
ERRORED = "errored"                  # (err: Exception)
SESSION_ENDED = "session_ended"

EVENTS = (
    SPAWNED, HEALTH_CHANGED, FOOD_CHANGED, SELF_DAMAGED, DIED, CHAT_RECEIVED,
    PLAYER_JOINED, PLAYER_LEFT, KICKED, ERRORED, SESSION_ENDED,
)

MOVEMENT_CONTROLS = ("forward", "back", "left", "right", "jump", "sprint")

SessionCallback = Callable[..., None]


class GameSession(ABC):
    """Base class: event registry plus the action/query surface."""

    def __init__(self, host: str, port: int, identity: Identity, version: str):
        self.host = host
        self.port = port
        self.identity = identity
        self.version = version

        self.health: float = 20.0
        self.food: float = 20.0
        self.position: Tuple[float, float, float] = (0.0, 0.0, 0.0)
        self.has_entity = False
        self.ended = False

        self._callbacks: Dict[str, List[SessionCallback]] = {}

    @property
    def username(self) -> str:
        return self.identity.display_name

    def on(self, event: str, callback: SessionCallback):
        """Register a callback for one of EVENTS."""
        if event not in EVENTS:
            raise ValueError(f"Unknown session event: {event}")
        self._callbacks.setdefault(event, []).append(callback)

    def emit(self, event: str, *args: Any):
        """Deliver an event to its callbacks, in registration order."""
        if event == SESSION_ENDED:
            if self.ended:
                return
            self.ended = True
            self.has_entity = False

        for cb in list(self._callbacks.get(event, [])):
            try:
                cb(*args)
            except Exception as e:
                logger.error(
                    f"[SESSION] {self.username}: callback error for {event}: {e}",
                    exc_info=True,
                )

    def distance_to(self, entity: Entity) -> float:
        return entity.distance_to(self.position)

    # ==================== Transport ====================

    @abstractmethod
    def connect(self):
        """Start connecting. Must not block; progress arrives as events."""

    @abstractmethod
    def end_session(self, reason: str = ""):
        """Close the session. SESSION_ENDED follows."""

    # ==================== Actions ====================

    @abstractmethod
    def chat(self, text: str): ...

    @abstractmethod
    def equip(self, item: Item, destination: str = "hand"): ...

    @abstractmethod
    def attack(self, target: Entity): ...

    @abstractmethod
    def stop_attack(self): ...

    @abstractmethod
    def set_movement_intent(self, direction: str, active: bool): ...

    @abstractmethod
    def pursue(self, target: Entity, distance: int): ...

    # ==================== Queries ====================

    @abstractmethod
    def inventory_items(self) -> List[Item]: ...


SessionFactory = Callable[[str, int, Identity, str], GameSession]
