"""
Anti-idle movement: press a random control for a second every 5–10s so
servers don't kick the bot for being AFK.
"""

from __future__ import annotations
import random
from typing import Optional, TYPE_CHECKING
from game.session import MOVEMENT_CONTROLS

if TYPE_CHECKING:
    from core.scheduler import Scheduler
    from game.session import GameSession

HOLD_SECONDS = 1.0
NO_ENTITY_RETRY = 5.0
PAUSE_MIN = 5.0
PAUSE_MAX = 10.0


class AntiIdle:

    def __init__(self, scheduler: "Scheduler", rng: Optional[random.Random] = None):
        self.scheduler = scheduler
        self.rng = rng or random.Random()

    def start(self, slot_id: int, session: "GameSession"):
        self.stop(slot_id)
        self._step(slot_id, session)

    def stop(self, slot_id: int):
        self.scheduler.cancel(("anti-idle", slot_id))

    def _step(self, slot_id: int, session: "GameSession"):
        if session.ended:
            return
        if not session.has_entity:
            self.scheduler.call_later(NO_ENTITY_RETRY, self._step, slot_id, session, key=("anti-idle", slot_id))
            return

        control = self.rng.choice(MOVEMENT_CONTROLS)
        session.set_movement_intent(control, True)
        self.scheduler.call_later(HOLD_SECONDS, self._release, slot_id, session, control, key=("anti-idle", slot_id))

    def _release(self, slot_id: int, session: "GameSession", control: str):
        if session.ended:
            return
        session.set_movement_intent(control, False)
        pause = self.rng.uniform(PAUSE_MIN, PAUSE_MAX)
        self.scheduler.call_later(pause, self._step, slot_id, session, key=("anti-idle", slot_id))
