"""
Data models for the bot fleet.
Slots, identities, combat engagements and the shared global-leave state.
"""

from __future__ import annotations
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from game.session import GameSession


class SlotStatus(Enum):
    CONNECTING = "connecting"
    ONLINE = "online"
    KICKED = "kicked"
    ERROR = "error"
    DISCONNECTED = "disconnected"
    STOPPED = "stopped"
    REMOVED = "removed"
    STARTING = "starting"


class ControlState(Enum):
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"


class EntityKind(Enum):
    PLAYER = "player"
    MOB = "mob"
    OBJECT = "object"
    OTHER = "other"


@dataclass(frozen=True)
class Identity:
    """Name and unique id a slot presents when connecting. Never mutated."""
    display_name: str
    unique_id: uuid.UUID

    def to_dict(self) -> dict:
        return {"name": self.display_name, "uuid": str(self.unique_id)}


@dataclass
class Entity:
    """Live view of a game entity, kept current by the owning session."""
    entity_id: int
    name: str
    kind: EntityKind = EntityKind.OTHER
    health: float = 20.0
    position: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    valid: bool = True

    @property
    def is_player(self) -> bool:
        return self.kind == EntityKind.PLAYER

    def distance_to(self, position: Tuple[float, float, float]) -> float:
        return math.dist(self.position, position)


@dataclass
class Item:
    """Inventory item."""
    name: str
    count: int = 1
    slot: Optional[int] = None


@dataclass
class BotSlot:
    """Operator-managed bot, kept across reconnects."""
    id: int
    identity: Optional[Identity] = None
    session: Optional["GameSession"] = None
    online: bool = False
    status: SlotStatus = SlotStatus.CONNECTING
    control_state: ControlState = ControlState.RUNNING
    last_seen: datetime = field(default_factory=datetime.utcnow)
    health: float = 20.0
    food: float = 20.0
    reconnect_attempts: int = 0
    last_reconnect_attempt: float = 0.0     # Scheduler clock, seconds
    banned: bool = False
    manually_removed: bool = False
    last_kick_reason: str = ""
    epoch: int = 0                          # Bumped on every new session

    @property
    def is_stopped(self) -> bool:
        return self.control_state == ControlState.STOPPED

    @property
    def is_eligible(self) -> bool:
        """Online, running and holding a live session."""
        return self.online and not self.is_stopped and self.session is not None


@dataclass
class CombatEngagement:
    """Locked combat target for one slot."""
    slot_id: int
    target_name: str
    target: Entity
    last_mock_time: float


@dataclass
class GlobalLeaveState:
    active: bool = False
    activated_at: float = 0.0


@dataclass
class ServerAddress:
    """Server history entry."""
    host: str
    port: int
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @property
    def name(self) -> str:
        return f"{self.host}:{self.port}"

    def to_dict(self) -> dict:
        return {
            "ip": self.host,
            "port": self.port,
            "name": self.name,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class RuntimeSettings:
    """Operator-toggled settings persisted between runs."""
    auto_reconnect: bool = True
    anti_afk: bool = True
    chat_log: bool = True
