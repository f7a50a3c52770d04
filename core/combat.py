"""
Combat Engine — per-slot reaction to being attacked.

IDLE → LOCKED → IDLE
  - Locks only on a player attacker, and only when no target is locked.
  - While LOCKED a tick runs every 0.5s: taunt now and then, hit the target
    when in range (with a sidestep), otherwise follow it.
  - Unlocks when the target dies or disappears, when our own entity is gone,
    or when the bot dies.
"""

from __future__ import annotations
import random
from typing import Dict, Optional, TYPE_CHECKING
from game.models import CombatEngagement, Entity
from core.weapons import best_weapon, elimination_message, mocking_message
import logging

if TYPE_CHECKING:
    from config import CombatConfig
    from core.scheduler import Scheduler
    from fleet.event_log import EventLog
    from game.session import GameSession

logger = logging.getLogger(__name__)

DODGE_DIRECTIONS = ("left", "right")


class CombatEngine:
    """Owns every CombatEngagement. At most one per slot."""

    def __init__(
        self,
        config: "CombatConfig",
        scheduler: "Scheduler",
        event_log: "EventLog",
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.scheduler = scheduler
        self.event_log = event_log
        self.rng = rng or random.Random()
        self._engagements: Dict[int, CombatEngagement] = {}

    def engagement(self, slot_id: int) -> Optional[CombatEngagement]:
        return self._engagements.get(slot_id)

    def is_locked(self, slot_id: int) -> bool:
        return slot_id in self._engagements

    # ==================== Session events ====================

    def on_self_damaged(self, slot_id: int, session: "GameSession", attacker: Optional[Entity]) -> bool:
        """Our own entity took damage. Returns True if a new target was locked."""
        if attacker is None or not attacker.is_player:
            return False
        if slot_id in self._engagements:
            return False

        name = attacker.name or "Unknown"
        self._engagements[slot_id] = CombatEngagement(
            slot_id=slot_id,
            target_name=name,
            target=attacker,
            last_mock_time=self.scheduler.now(),
        )

        message = mocking_message(name, self.rng)
        self.scheduler.call_later(
            self.config.first_mock_delay,
            self._send_opening_taunt, slot_id, session, message,
            key=("taunt", slot_id),
        )
        self.event_log.add(f"🔒 Locked on {name}! Combat mode activated.", slot_id)

        weapon = best_weapon(session.inventory_items())
        if weapon is not None:
            session.equip(weapon, "hand")
            logger.info(f"[COMBAT] Bot {slot_id}: equipped {weapon.name}")

        self.scheduler.call_every(
            self.config.tick_interval, self._tick, slot_id, session,
            key=("combat", slot_id),
        )
        return True

    def on_died(self, slot_id: int, session: "GameSession"):
        """Bot died: drop the target unconditionally."""
        self._release(slot_id, session)

    def clear(self, slot_id: int):
        """Forget the slot entirely (permanent removal)."""
        self._engagements.pop(slot_id, None)
        self.scheduler.cancel(("combat", slot_id))
        self.scheduler.cancel(("taunt", slot_id))
        self.scheduler.cancel(("dodge", slot_id))

    def clear_all(self):
        for slot_id in list(self._engagements):
            self.clear(slot_id)

    # ==================== Tick loop ====================

    def _tick(self, slot_id: int, session: "GameSession") -> bool:
        """One combat decision. Returning False ends the loop."""
        engagement = self._engagements.get(slot_id)
        if engagement is None:
            return False
        if not session.has_entity:
            self._release(slot_id, session)
            return False

        target = engagement.target
        if not target.valid or target.health <= 0:
            session.chat(elimination_message(engagement.target_name))
            self.event_log.add(f"🎯 Target eliminated: {engagement.target_name}", slot_id)
            self._release(slot_id, session)
            return False

        now = self.scheduler.now()
        interval = self.config.mock_interval_min + self.rng.random() * self.config.mock_interval_jitter
        if now - engagement.last_mock_time > interval:
            message = mocking_message(engagement.target_name, self.rng)
            session.chat(message)
            self.event_log.add(f'🗣️ "{message}"', slot_id)
            engagement.last_mock_time = now

        if session.distance_to(target) < self.config.attack_range:
            session.attack(target)
            self._dodge(slot_id, session)
        else:
            session.pursue(target, self.config.follow_distance)
        return True

    def _dodge(self, slot_id: int, session: "GameSession"):
        direction = self.rng.choice(DODGE_DIRECTIONS)
        session.set_movement_intent(direction, True)
        self.scheduler.call_later(
            self.config.dodge_duration,
            session.set_movement_intent, direction, False,
            key=("dodge", slot_id),
        )

    def _send_opening_taunt(self, slot_id: int, session: "GameSession", message: str):
        if session.has_entity:
            session.chat(message)
            self.event_log.add(f'🗣️ "{message}"', slot_id)

    def _release(self, slot_id: int, session: "GameSession"):
        engagement = self._engagements.pop(slot_id, None)
        self.scheduler.cancel(("combat", slot_id))
        session.stop_attack()
        if engagement is not None:
            logger.info(f"[COMBAT] Bot {slot_id}: released {engagement.target_name}")
