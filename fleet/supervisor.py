"""
Connection Supervisor — per-slot connection lifecycle.

STOPPED → CONNECTING → ONLINE → {KICKED | ERROR | DISCONNECTED}
        → CONNECTING (retry) | STOPPED (operator) | REMOVED (permanent)

A connect request is refused or deferred, in this order, when:
  1. the slot was permanently removed
  2. the operator stopped the slot
  3. global leave is active (retry right after the window)
  4. the slot is throttled (more than 3 attempts within 30s)
Every session's callbacks carry the epoch they were bound with; events from
a replaced or purged session are dropped.
"""

from __future__ import annotations
import json
import math
from datetime import datetime
from typing import Any, Callable, Optional, TYPE_CHECKING
from game.models import BotSlot, ControlState, Entity, RuntimeSettings, SlotStatus
from game.session import (
    CHAT_RECEIVED, DIED, ERRORED, FOOD_CHANGED, HEALTH_CHANGED, KICKED,
    PLAYER_JOINED, PLAYER_LEFT, SELF_DAMAGED, SESSION_ENDED, SPAWNED,
    GameSession, SessionFactory,
)
from fleet.errors import SessionError, ThrottleError
from fleet.identity import validate_name
import logging

if TYPE_CHECKING:
    from config import FleetConfig
    from core.anti_idle import AntiIdle
    from core.combat import CombatEngine
    from core.scheduler import Scheduler
    from fleet.event_log import EventLog
    from fleet.global_leave import GlobalLeaveCoordinator
    from fleet.identity import IdentityRegistry
    from fleet.registry import FleetRegistry

logger = logging.getLogger(__name__)

# Best-effort: a plain substring match, so an unrelated kick message that
# happens to mention "hacking" also counts as a ban.
BAN_KEYWORDS = ("ban", "banned", "permanent", "blacklist", "hacking", "cheat")
DEATH_WORDS = ("was killed", "slain", "died")
ANNOUNCE_WORDS = ("joined", "left", "achievement", "advancement")


def is_ban_reason(reason: str) -> bool:
    text = reason.lower()
    return any(word in text for word in BAN_KEYWORDS)


class ConnectionSupervisor:
    """Owns every slot's session and the connection/status fields."""

    def __init__(
        self,
        config: "FleetConfig",
        registry: "FleetRegistry",
        identities: "IdentityRegistry",
        scheduler: "Scheduler",
        event_log: "EventLog",
        global_leave: "GlobalLeaveCoordinator",
        combat: "CombatEngine",
        session_factory: SessionFactory,
        settings: Optional[RuntimeSettings] = None,
        anti_idle: Optional["AntiIdle"] = None,
    ):
        self.config = config
        self.registry = registry
        self.identities = identities
        self.scheduler = scheduler
        self.event_log = event_log
        self.global_leave = global_leave
        self.combat = combat
        self.session_factory = session_factory
        self.settings = settings or RuntimeSettings()
        self.anti_idle = anti_idle

    # ==================== Connect ====================

    def request_connect(
        self,
        slot_id: int,
        new_identity: bool = False,
        custom_name: Optional[str] = None,
        custom_unique_id: Optional[str] = None,
    ) -> Optional[GameSession]:
        """
        Open a new session for the slot unless a short-circuit applies.
        Returns the session, or None when refused/deferred.
        Raises ValidationError for a bad custom identity (nothing mutated).
        """
        if self.registry.is_removed(slot_id):
            logger.debug(f"[SUPERVISOR] Bot {slot_id} was permanently removed. Not recreating.")
            return None

        slot = self.registry.get(slot_id)
        if slot is not None and slot.is_stopped:
            self.event_log.add(f"⏸️ Bot {slot_id} is manually stopped. Not connecting.", slot_id)
            return None

        if self.global_leave.is_active:
            self.event_log.add("🌍 Skipping connection due to global leave mode", slot_id)
            self._schedule_connect(slot_id, self.global_leave.retry_delay())
            return None

        try:
            self._check_throttle(slot)
        except ThrottleError as e:
            self.event_log.add(
                f"⏳ Connection throttled for bot {slot_id}. "
                f"Please wait {math.ceil(e.retry_after)}s before reconnect.",
                slot_id,
            )
            self._schedule_connect(slot_id, e.retry_after)
            return None

        if custom_name is not None:
            validate_name(custom_name)
        if new_identity or not self.identities.has(slot_id):
            identity = self.identities.rotate_identity(slot_id, custom_name, custom_unique_id)
        else:
            identity = self.identities.identity_for(slot_id)

        slot = self.registry.ensure(slot_id)
        if slot.session is not None and not slot.session.ended:
            # One live session per slot: retire the old one silently
            old = slot.session
            slot.epoch += 1
            old.end_session("Replaced by new connection")

        server = self.config.server
        session = self.session_factory(server.host, server.port, identity, server.version)

        slot.epoch += 1
        slot.identity = identity
        slot.session = session
        slot.online = False
        slot.status = SlotStatus.CONNECTING
        slot.reconnect_attempts += 1
        slot.last_reconnect_attempt = self.scheduler.now()
        slot.last_seen = datetime.utcnow()
        slot.health = 20.0
        slot.food = 20.0

        self._bind(slot_id, slot.epoch, session)
        self.event_log.add(f"🔗 Connecting as {identity.display_name}", slot_id)

        try:
            session.connect()
        except Exception as e:
            logger.error(f"[SUPERVISOR] Bot {slot_id}: connect failed: {e}", exc_info=True)
            session.emit(ERRORED, SessionError(str(e)))
            session.emit(SESSION_ENDED)
        return session

    def _check_throttle(self, slot: Optional[BotSlot]):
        cfg = self.config.reconnect
        if slot is None or slot.reconnect_attempts <= cfg.throttle_after_attempts:
            return
        elapsed = self.scheduler.now() - slot.last_reconnect_attempt
        if elapsed < cfg.throttle_window:
            raise ThrottleError(slot.id, cfg.throttle_window - elapsed)

    def _schedule_connect(self, slot_id: int, delay: float):
        self.scheduler.call_later(delay, self._reconnect, slot_id, key=slot_id)

    def _reconnect(self, slot_id: int):
        # Checked again at fire time; stop/remove also cancel the timer.
        if self.registry.is_removed(slot_id):
            return
        self.request_connect(slot_id)

    # ==================== Operator controls ====================

    def stop(self, slot_id: int) -> bool:
        slot = self.registry.get(slot_id)
        if slot is None:
            return False

        slot.control_state = ControlState.STOPPED
        slot.status = SlotStatus.STOPPED
        self._cancel_timers(slot_id)
        if slot.online and slot.session is not None:
            slot.session.end_session("Stopped by user")
            slot.online = False

        self.event_log.add(f"⏸️ Bot {slot_id} stopped (manual control)", slot_id)
        return True

    def start(self, slot_id: int) -> bool:
        slot = self.registry.get(slot_id)
        if slot is None:
            return False

        slot.control_state = ControlState.RUNNING
        slot.status = SlotStatus.STARTING
        slot.manually_removed = False
        self._cancel_timers(slot_id)
        self._schedule_connect(slot_id, self.config.reconnect.start_delay)

        self.event_log.add(f"▶️ Bot {slot_id} started (manual control)", slot_id)
        return True

    def remove(self, slot_id: int, permanent: bool = False) -> bool:
        """End the session. Permanent removal purges the slot for good."""
        slot = self.registry.get(slot_id)
        if slot is None:
            return False

        slot.manually_removed = True
        self._cancel_timers(slot_id)
        if slot.session is not None and not slot.session.ended:
            slot.session.end_session("Removed by user")

        if permanent:
            self.registry.mark_removed(slot_id)
            self.registry.remove(slot_id)
            self.identities.forget(slot_id)
            self.combat.clear(slot_id)
            self.event_log.add(f"🗑️ Bot {slot_id} removed permanently", slot_id)
        else:
            slot.online = False
            slot.status = SlotStatus.REMOVED
            self.event_log.add(f"🗑️ Bot {slot_id} removed", slot_id)
        return True

    def remove_permanently(self, slot_id: int) -> bool:
        return self.remove(slot_id, permanent=True)

    def disconnect_all(self, reason: str):
        """
        End every session without triggering reconnects. Slots, identities
        and control states are kept; connection counters start over.
        """
        self.combat.clear_all()
        for slot in self.registry.all():
            self._cancel_timers(slot.id)
            slot.epoch += 1
            if slot.session is not None and not slot.session.ended:
                slot.session.end_session(reason)
            slot.session = None
            slot.online = False
            slot.reconnect_attempts = 0
            if not slot.is_stopped and slot.status != SlotStatus.REMOVED:
                slot.status = SlotStatus.DISCONNECTED

    def _cancel_timers(self, slot_id: int):
        self.scheduler.cancel(slot_id)
        self.scheduler.cancel(("join", slot_id))
        if self.anti_idle is not None:
            self.anti_idle.stop(slot_id)

    # ==================== Session events ====================

    def _bind(self, slot_id: int, epoch: int, session: GameSession):
        def guard(handler: Callable[..., None]) -> Callable[..., None]:
            def wrapped(*args: Any):
                slot = self.registry.get(slot_id)
                if slot is None or slot.epoch != epoch or slot.session is not session:
                    logger.debug(f"[SUPERVISOR] Bot {slot_id}: dropped event from stale session")
                    return
                handler(slot, session, *args)
            return wrapped

        session.on(SPAWNED, guard(self._on_spawned))
        session.on(HEALTH_CHANGED, guard(self._on_health))
        session.on(FOOD_CHANGED, guard(self._on_food))
        session.on(SELF_DAMAGED, guard(self._on_self_damaged))
        session.on(DIED, guard(self._on_died))
        session.on(CHAT_RECEIVED, guard(self._on_chat))
        session.on(PLAYER_JOINED, guard(self._on_player_joined))
        session.on(PLAYER_LEFT, guard(self._on_player_left))
        session.on(KICKED, guard(self._on_kicked))
        session.on(ERRORED, guard(self._on_errored))
        session.on(SESSION_ENDED, guard(self._on_session_ended))

    def _on_spawned(self, slot: BotSlot, session: GameSession):
        slot.online = True
        slot.status = SlotStatus.ONLINE
        slot.reconnect_attempts = 0
        slot.banned = False
        slot.last_seen = datetime.utcnow()
        self.event_log.add("✅ Spawned in world.", slot.id)

        self._start_join_sequence(slot.id, session)
        if self.settings.anti_afk and self.anti_idle is not None:
            self.anti_idle.start(slot.id, session)

    def _on_health(self, slot: BotSlot, session: GameSession, health: float):
        slot.health = health

    def _on_food(self, slot: BotSlot, session: GameSession, food: float):
        slot.food = food

    def _on_self_damaged(self, slot: BotSlot, session: GameSession, attacker: Optional[Entity]):
        self.combat.on_self_damaged(slot.id, session, attacker)

    def _on_died(self, slot: BotSlot, session: GameSession):
        self.event_log.add("☠️ Bot died.", slot.id)
        self.combat.on_died(slot.id, session)

    def _on_chat(self, slot: BotSlot, session: GameSession, sender: str, text: str):
        if sender != session.username and self.settings.chat_log:
            self.event_log.add(f"💬 <{sender}> {text}", slot.id)

        if self.global_leave.is_triggered(text):
            self.global_leave.activate()

        lowered = text.lower()
        if any(word in lowered for word in DEATH_WORDS):
            self.event_log.add(f"💀 {text}", slot.id)
        if any(word in lowered for word in ANNOUNCE_WORDS):
            self.event_log.add(f"📢 {text}", slot.id)

    def _on_player_joined(self, slot: BotSlot, session: GameSession, name: str):
        if name != session.username:
            self.event_log.add(f"➡️ {name} joined the game", slot.id)

    def _on_player_left(self, slot: BotSlot, session: GameSession, name: str):
        if name != session.username:
            self.event_log.add(f"⬅️ {name} left the game", slot.id)

    def _on_kicked(self, slot: BotSlot, session: GameSession, reason: Any):
        reason = reason if isinstance(reason, str) else json.dumps(reason)
        slot.last_kick_reason = reason
        self.event_log.add(f"🚫 Kicked: {reason[:100]}", slot.id)

        slot.online = False
        slot.status = SlotStatus.KICKED
        slot.last_seen = datetime.utcnow()
        slot.last_reconnect_attempt = self.scheduler.now()

        if is_ban_reason(reason):
            self.event_log.add("🔨 BAN detected! Generating new identity...", slot.id)
            slot.banned = True
            self.identities.rotate_identity(slot.id)
        else:
            self.event_log.add("Regular kick. Will reconnect with same identity.", slot.id)
            slot.banned = False

    def _on_errored(self, slot: BotSlot, session: GameSession, err: Exception):
        self.event_log.add(f"❌ Error: {err}", slot.id)
        slot.online = False
        slot.status = SlotStatus.ERROR
        slot.last_seen = datetime.utcnow()
        slot.last_reconnect_attempt = self.scheduler.now()

    def _on_session_ended(self, slot: BotSlot, session: GameSession):
        """
        Session gone: mark the slot offline and schedule a reconnect unless
        something forbids it. Status becomes disconnected, except that a slot
        the operator stopped or removed keeps stopped/removed so the listing
        still shows why it is offline.
        """
        slot.online = False
        slot.last_seen = datetime.utcnow()
        if slot.status not in (SlotStatus.STOPPED, SlotStatus.REMOVED):
            slot.status = SlotStatus.DISCONNECTED
        if self.anti_idle is not None:
            self.anti_idle.stop(slot.id)
        self.scheduler.cancel(("join", slot.id))

        if slot.is_stopped:
            self.event_log.add(f"⏸️ Bot {slot.id} is manually stopped. No auto-reconnect.", slot.id)
            return
        if slot.manually_removed:
            self.event_log.add(f"Bot {slot.id} was manually removed. No auto-reconnect.", slot.id)
            return
        if not self.settings.auto_reconnect:
            self.event_log.add(f"Auto-reconnect disabled for bot {slot.id}", slot.id)
            return
        if self.registry.is_removed(slot.id):
            return

        delay = self.config.reconnect.delay
        self.event_log.add(f"Reconnecting bot {slot.id} in {delay:.0f}s...", slot.id)
        self._schedule_connect(slot.id, delay)

    # ==================== Join sequence ====================

    def _start_join_sequence(self, slot_id: int, session: GameSession):
        """Optional /register, /login and join command after spawning."""
        auth = self.config.auth
        step = auth.step_delay
        steps = []
        if auth.auto_auth:
            steps.append((step, f"/register {auth.password} {auth.password}"))
            steps.append((2 * step, f"/login {auth.password}"))
            if auth.join_command_enabled:
                steps.append((3 * step, auth.join_command))
        elif auth.join_command_enabled:
            steps.append((2 * step, auth.join_command))

        for delay, text in steps:
            self.scheduler.call_later(delay, self._join_step, slot_id, session, text, key=("join", slot_id))

    def _join_step(self, slot_id: int, session: GameSession, text: str):
        slot = self.registry.get(slot_id)
        if slot is None or slot.session is not session or session.ended:
            return
        session.chat(text)
