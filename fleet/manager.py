"""
Fleet Manager — operator-facing facade over the fleet.
Adds and removes slots, forwards control requests, changes the server and
persists settings. Raises FleetError subclasses for bad requests.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Union, TYPE_CHECKING
from game.models import ControlState, RuntimeSettings, SlotStatus
from fleet.errors import CapacityError, NotFoundError, ValidationError
from fleet.identity import parse_unique_id, validate_name
import logging

if TYPE_CHECKING:
    from config import FleetConfig
    from core.scheduler import Scheduler
    from fleet.commands import CommandDispatcher
    from fleet.event_log import EventLog
    from fleet.registry import FleetRegistry
    from fleet.supervisor import ConnectionSupervisor
    from storage.database import Database

logger = logging.getLogger(__name__)

SERVER_CHANGE_DELAY = 2.0


class FleetManager:

    def __init__(
        self,
        config: "FleetConfig",
        registry: "FleetRegistry",
        supervisor: "ConnectionSupervisor",
        commands: "CommandDispatcher",
        scheduler: "Scheduler",
        event_log: "EventLog",
        settings: RuntimeSettings,
        db: Optional["Database"] = None,
    ):
        self.config = config
        self.registry = registry
        self.supervisor = supervisor
        self.commands = commands
        self.scheduler = scheduler
        self.event_log = event_log
        self.settings = settings
        self.db = db

    # ==================== Read side ====================

    def list_slots(self) -> List[dict]:
        return self.registry.snapshot()

    def stats(self) -> Dict[str, Any]:
        slots = self.registry.all()
        first = slots[0].identity if slots else None
        return {
            "totalBots": len(slots),
            "onlineBots": self.registry.count_online(),
            "stoppedBots": self.registry.count_stopped(),
            "currentIdentity": first.display_name if first else "Player_XXXXXX",
        }

    def slot_state(self, slot_id: Union[int, str]) -> ControlState:
        return self._require(slot_id).control_state

    def history(self) -> List[dict]:
        if self.db is None:
            return []
        return [s.to_dict() for s in self.db.get_server_history()]

    def console(self, limit: int = 30) -> List[str]:
        return self.event_log.recent(limit)

    def clear_console(self):
        self.event_log.clear()

    # ==================== Adding slots ====================

    def start_initial_slots(self, count: Optional[int] = None) -> List[int]:
        """Startup: slots 1..count, one second apart."""
        count = self.config.limits.initial_count if count is None else count
        count = min(count, self.registry.free_capacity())
        if count <= 0:
            return []
        self.event_log.add(f"[SYSTEM] Starting {count} initial bots...")
        return self._stagger_new(self.registry.free_ids(count), first_delay=self.config.limits.add_stagger)

    def add_random_slots(self, count: Union[int, str, None] = 1) -> List[int]:
        try:
            count = int(count or 1)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid bot count: {count}", field_name="count")
        if count < 1:
            raise ValidationError("Bot count must be at least 1", field_name="count")

        ids = self.registry.free_ids(min(count, self.registry.free_capacity()))
        if not ids:
            raise CapacityError(self.registry.max_slots)

        self.event_log.add(f"[WEB] Adding {len(ids)} random bot(s)")
        return self._stagger_new(ids)

    def add_custom_slot(self, name: Optional[str], unique_id: Optional[str] = None) -> int:
        name = validate_name(name)
        parsed_id = parse_unique_id(unique_id)
        if self.registry.is_full:
            raise CapacityError(self.registry.max_slots)
        ids = self.registry.free_ids(1)
        if not ids:
            raise CapacityError(self.registry.max_slots)

        slot_id = ids[0]
        slot = self.registry.ensure(slot_id)
        slot.control_state = ControlState.RUNNING
        # Stored first so a deferred attempt still connects as this identity
        self.supervisor.identities.rotate_identity(slot_id, name, parsed_id)
        self.supervisor.request_connect(slot_id)
        self.event_log.add(f"[WEB] Adding custom bot: {name}")
        return slot_id

    def _stagger_new(self, ids: List[int], first_delay: float = 0.0) -> List[int]:
        stagger = self.config.limits.add_stagger
        for index, slot_id in enumerate(ids):
            slot = self.registry.ensure(slot_id)
            slot.control_state = ControlState.RUNNING
            slot.status = SlotStatus.STARTING
            self.scheduler.call_later(
                first_delay + index * stagger,
                self.supervisor.request_connect, slot_id,
                key=slot_id,
            )
        return ids

    # ==================== Control ====================

    def stop_slot(self, slot_id: Union[int, str]) -> bool:
        return self.supervisor.stop(self._require(slot_id).id)

    def start_slot(self, slot_id: Union[int, str]) -> bool:
        return self.supervisor.start(self._require(slot_id).id)

    def toggle_slot(self, slot_id: Union[int, str]) -> ControlState:
        slot = self._require(slot_id)
        if slot.is_stopped:
            self.supervisor.start(slot.id)
        else:
            self.supervisor.stop(slot.id)
        return slot.control_state

    def remove_slot(self, slot_id: Union[int, str], permanent: bool = False) -> bool:
        slot = self._require(slot_id)
        name = slot.identity.display_name if slot.identity else f"Bot_{slot.id}"
        self.event_log.add(f"[WEB] Removing bot {slot.id} ({name})")
        return self.supervisor.remove(slot.id, permanent=permanent)

    def remove_all_slots(self) -> int:
        slots = self.registry.all()
        self.event_log.add(f"[WEB] Removing all {len(slots)} bots permanently")
        for slot in slots:
            self.supervisor.remove_permanently(slot.id)
        return len(slots)

    def send_command(self, text: str, target: Union[str, int] = "all") -> List[int]:
        return self.commands.send_command(text, target)

    # ==================== Server & settings ====================

    def change_server(self, host: Optional[str], port: Union[int, str, None]):
        """Move every bot to a new server. Identities and control states stay."""
        try:
            port = int(port)
        except (TypeError, ValueError):
            raise ValidationError("Missing IP or port", field_name="port")
        if not host or not host.strip() or not 0 < port < 65536:
            raise ValidationError("Missing IP or port")
        host = host.strip()

        self.config.server.host = host
        self.config.server.port = port
        if self.db is not None:
            self.db.add_server(host, port)
            self.db.save_current_server(host, port)

        self.event_log.add(f"[WEB] Changing server to {host}:{port}")
        self.supervisor.disconnect_all("Server change")
        self.scheduler.call_later(SERVER_CHANGE_DELAY, self._reconnect_all, key="server-change")

    def _reconnect_all(self):
        ids = [
            s.id for s in self.registry.all()
            if not s.is_stopped and not s.manually_removed and not self.registry.is_removed(s.id)
        ]
        stagger = self.config.limits.add_stagger
        for index, slot_id in enumerate(ids):
            self.scheduler.call_later(index * stagger, self.supervisor.request_connect, slot_id, key=slot_id)

    def update_settings(
        self,
        auto_reconnect: Optional[bool] = None,
        anti_afk: Optional[bool] = None,
        chat_log: Optional[bool] = None,
    ) -> RuntimeSettings:
        if auto_reconnect is not None:
            self.settings.auto_reconnect = bool(auto_reconnect)
        if anti_afk is not None:
            self.settings.anti_afk = bool(anti_afk)
        if chat_log is not None:
            self.settings.chat_log = bool(chat_log)
        if self.db is not None:
            self.db.save_settings(self.settings)
        logger.info(f"[MANAGER] Settings updated: {self.settings}")
        return self.settings

    # ==================== Helpers ====================

    def _require(self, slot_id: Union[int, str]):
        try:
            slot = self.registry.get(int(slot_id))
        except (TypeError, ValueError):
            slot = None
        if slot is None:
            raise NotFoundError(slot_id)
        return slot
