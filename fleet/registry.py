"""
Fleet Registry — process-wide table of bot slots.
Single source of truth read by every component. Connection and status
fields are written by the supervisor only.
"""

from __future__ import annotations
from typing import Dict, Iterator, List, Optional, Set
from game.models import BotSlot, ControlState, SlotStatus
import logging

logger = logging.getLogger(__name__)

MAX_SLOTS = 20


class FleetRegistry:
    """Holds up to MAX_SLOTS slots plus the set of permanently removed ids."""

    def __init__(self, max_slots: int = MAX_SLOTS):
        self.max_slots = max_slots
        self._slots: Dict[int, BotSlot] = {}
        self._removed: Set[int] = set()

    def get(self, slot_id: int) -> Optional[BotSlot]:
        return self._slots.get(slot_id)

    def ensure(self, slot_id: int) -> BotSlot:
        """Existing slot, or a new record for it."""
        slot = self._slots.get(slot_id)
        if slot is None:
            slot = BotSlot(id=slot_id)
            self._slots[slot_id] = slot
        return slot

    def all(self) -> List[BotSlot]:
        return sorted(self._slots.values(), key=lambda s: s.id)

    def remove(self, slot_id: int) -> Optional[BotSlot]:
        return self._slots.pop(slot_id, None)

    def clear(self):
        self._slots.clear()

    def __contains__(self, slot_id: object) -> bool:
        return slot_id in self._slots

    def __len__(self) -> int:
        return len(self._slots)

    def __iter__(self) -> Iterator[BotSlot]:
        return iter(self.all())

    # ==================== Permanent removal ====================

    def mark_removed(self, slot_id: int):
        self._removed.add(slot_id)

    def is_removed(self, slot_id: int) -> bool:
        return slot_id in self._removed

    # ==================== Capacity ====================

    @property
    def is_full(self) -> bool:
        return len(self._slots) >= self.max_slots

    def free_capacity(self) -> int:
        return max(0, self.max_slots - len(self._slots))

    def free_ids(self, count: int) -> List[int]:
        """Lowest ids neither in use nor permanently removed."""
        ids = []
        for slot_id in range(1, self.max_slots + 1):
            if len(ids) >= count:
                break
            if slot_id not in self._slots and slot_id not in self._removed:
                ids.append(slot_id)
        return ids

    # ==================== Counters ====================

    def count_online(self) -> int:
        return sum(1 for s in self._slots.values() if s.online)

    def count_stopped(self) -> int:
        return sum(1 for s in self._slots.values() if s.control_state == ControlState.STOPPED)

    def eligible(self) -> List[BotSlot]:
        """Slots that may receive chat: online, running, with a session."""
        return [s for s in self.all() if s.is_eligible]

    # ==================== Operator view ====================

    def snapshot(self) -> List[dict]:
        rows = []
        for s in self.all():
            rows.append({
                "id": s.id,
                "name": s.identity.display_name if s.identity else f"Bot_{s.id}",
                "online": s.online,
                "status": s.status.value,
                "controlState": s.control_state.value,
                "health": s.health,
                "food": s.food,
                "lastSeen": s.last_seen.strftime("%H:%M:%S") if s.last_seen else None,
                "reconnectAttempts": s.reconnect_attempts,
                "banned": s.banned,
            })
        return rows

    def get_status_summary(self) -> str:
        """Formatted one-line-per-slot summary for the shutdown log."""
        lines = ["═══ FLEET STATUS ═══"]
        for s in self.all():
            emoji = {
                SlotStatus.ONLINE: "🟢",
                SlotStatus.CONNECTING: "🟡",
                SlotStatus.STARTING: "🟡",
                SlotStatus.STOPPED: "⏸️",
                SlotStatus.KICKED: "🚫",
                SlotStatus.ERROR: "❌",
            }.get(s.status, "🔴")
            name = s.identity.display_name if s.identity else "?"
            lines.append(f"{emoji} Bot {s.id}: {name} [{s.status.value}]")
        lines.append(f"═══ ONLINE: {self.count_online()}/{len(self)} ═══")
        return "\n".join(lines)
