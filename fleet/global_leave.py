"""
Global Leave — fleet-wide, time-boxed withdrawal.
Any chat line containing "bot leave" makes every online bot announce it is
leaving and disconnect within a few seconds. Reconnects are held back until
the window closes.
"""

from __future__ import annotations
import random
from typing import Optional, TYPE_CHECKING
from game.models import GlobalLeaveState
import logging

if TYPE_CHECKING:
    from config import GlobalLeaveConfig
    from core.scheduler import Scheduler
    from fleet.event_log import EventLog
    from fleet.registry import FleetRegistry

logger = logging.getLogger(__name__)


class GlobalLeaveCoordinator:
    """
    Owns the process-wide GlobalLeaveState. Reads the registry but never
    writes slot fields; sessions end through their normal disconnect path.
    """

    def __init__(
        self,
        config: "GlobalLeaveConfig",
        registry: "FleetRegistry",
        scheduler: "Scheduler",
        event_log: "EventLog",
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.registry = registry
        self.scheduler = scheduler
        self.event_log = event_log
        self.rng = rng or random.Random()
        self.state = GlobalLeaveState()

    @property
    def is_active(self) -> bool:
        return self.state.active

    def is_triggered(self, text: str) -> bool:
        return self.config.trigger_phrase in text.lower()

    def retry_delay(self) -> float:
        """Seconds until deferred connects may fire: just after the window ends."""
        resume_at = self.state.activated_at + self.config.duration + self.config.retry_margin
        return max(0.0, resume_at - self.scheduler.now())

    def activate(self) -> bool:
        """Start a withdrawal. No-op (returns False) while one is running."""
        if self.state.active:
            return False

        self.state.active = True
        self.state.activated_at = self.scheduler.now()
        self.event_log.add(
            f"🌍 GLOBAL LEAVE MODE ACTIVATED - All bots leaving for {self.config.duration:.0f}s"
        )

        leaving = 0
        for slot in self.registry.all():
            if not slot.online or slot.session is None or slot.is_stopped:
                continue
            session = slot.session
            session.chat(self.config.warning_message)
            # Stagger so the server doesn't see a synchronized burst
            self.scheduler.call_later(
                self.rng.uniform(0, self.config.max_stagger),
                session.end_session, "Global leave command",
                key=("global-leave", slot.id),
            )
            leaving += 1

        self.scheduler.call_later(self.config.duration, self._deactivate, key="global-leave")
        logger.warning(f"[GLOBAL-LEAVE] Activated. {leaving} bot(s) leaving.")
        return True

    def _deactivate(self):
        self.state.active = False
        self.event_log.add("🌍 GLOBAL LEAVE MODE ENDED - Bots can reconnect now")
