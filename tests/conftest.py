"""Shared fixtures: a manually advanced scheduler, a recording game session
and a fully wired fleet built on both."""

import heapq
import itertools
import random
from types import SimpleNamespace
from typing import List

import pytest

from config import FleetConfig
from core.anti_idle import AntiIdle
from core.combat import CombatEngine
from core.scheduler import Scheduler
from fleet.commands import CommandDispatcher
from fleet.event_log import EventLog
from fleet.global_leave import GlobalLeaveCoordinator
from fleet.identity import IdentityRegistry
from fleet.manager import FleetManager
from fleet.registry import FleetRegistry
from fleet.supervisor import ConnectionSupervisor
from game.models import Entity, EntityKind, Item, RuntimeSettings
from game.session import GameSession, SESSION_ENDED, SPAWNED


# =============================================================================
# Time
# =============================================================================


class ManualScheduler(Scheduler):
    """Scheduler whose clock only moves when the test calls advance()."""

    def __init__(self, start: float = 1000.0):
        self._now = start
        self._queue = []
        self._seq = itertools.count()
        super().__init__(clock=lambda: self._now)

    def _arm(self, timer, delay, callback, args):
        heapq.heappush(self._queue, (self._now + delay, next(self._seq), timer, callback, args))

    def advance(self, seconds: float):
        """Fire every timer due within the next `seconds`, in due order."""
        end = self._now + seconds
        while self._queue and self._queue[0][0] <= end:
            due, _, timer, callback, args = heapq.heappop(self._queue)
            self._now = due
            self._fire(timer, callback, args)
        self._now = end

    def due_in(self, key) -> List[float]:
        """Seconds from now until each live timer under key fires."""
        return sorted(
            due - self._now
            for due, _, timer, _, _ in self._queue
            if timer.key == key and not timer.cancelled
        )


# =============================================================================
# Game session
# =============================================================================


class FakeSession(GameSession):
    """Records every action; the test drives events with emit()/spawn()."""

    def __init__(self, host, port, identity, version):
        super().__init__(host, port, identity, version)
        self.connected = False
        self.chats: List[str] = []
        self.end_reasons: List[str] = []
        self.equipped: List[tuple] = []
        self.attacks: List[Entity] = []
        self.pursuits: List[tuple] = []
        self.movements: List[tuple] = []
        self.stop_attack_calls = 0
        self.inventory: List[Item] = []

    def connect(self):
        self.connected = True

    def spawn(self):
        self.has_entity = True
        self.emit(SPAWNED)

    def end_session(self, reason: str = ""):
        if self.ended:
            return
        self.end_reasons.append(reason)
        self.emit(SESSION_ENDED)

    def chat(self, text):
        self.chats.append(text)

    def equip(self, item, destination="hand"):
        self.equipped.append((item.name, destination))

    def attack(self, target):
        self.attacks.append(target)

    def stop_attack(self):
        self.stop_attack_calls += 1

    def set_movement_intent(self, direction, active):
        self.movements.append((direction, active))

    def pursue(self, target, distance):
        self.pursuits.append((target.name, distance))

    def inventory_items(self):
        return list(self.inventory)


class SessionRecorder:
    """SessionFactory that keeps every session it built."""

    def __init__(self):
        self.sessions: List[FakeSession] = []

    def __call__(self, host, port, identity, version):
        session = FakeSession(host, port, identity, version)
        self.sessions.append(session)
        return session

    @property
    def last(self) -> FakeSession:
        return self.sessions[-1]


def player(name="Griefer", entity_id=42, position=(1.0, 0.0, 0.0), health=20.0):
    return Entity(entity_id=entity_id, name=name, kind=EntityKind.PLAYER, health=health, position=position)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def event_log():
    return EventLog()


@pytest.fixture
def config():
    return FleetConfig()


@pytest.fixture
def sessions():
    return SessionRecorder()


@pytest.fixture
def fleet(config, scheduler, event_log, sessions):
    """Every fleet component wired together over fakes."""
    rng = random.Random(7)
    settings = RuntimeSettings(anti_afk=False)
    registry = FleetRegistry(config.limits.max_slots)
    identities = IdentityRegistry()
    combat = CombatEngine(config.combat, scheduler, event_log, rng=rng)
    anti_idle = AntiIdle(scheduler, rng=rng)
    global_leave = GlobalLeaveCoordinator(config.global_leave, registry, scheduler, event_log, rng=rng)
    supervisor = ConnectionSupervisor(
        config=config,
        registry=registry,
        identities=identities,
        scheduler=scheduler,
        event_log=event_log,
        global_leave=global_leave,
        combat=combat,
        session_factory=sessions,
        settings=settings,
        anti_idle=anti_idle,
    )
    commands = CommandDispatcher(registry, event_log)
    manager = FleetManager(
        config=config,
        registry=registry,
        supervisor=supervisor,
        commands=commands,
        scheduler=scheduler,
        event_log=event_log,
        settings=settings,
    )
    return SimpleNamespace(
        config=config,
        scheduler=scheduler,
        event_log=event_log,
        sessions=sessions,
        settings=settings,
        registry=registry,
        identities=identities,
        combat=combat,
        anti_idle=anti_idle,
        global_leave=global_leave,
        supervisor=supervisor,
        commands=commands,
        manager=manager,
    )


@pytest.fixture
def online_slot(fleet):
    """Connect slot 1 and spawn it. Returns (slot, session)."""
    session = fleet.supervisor.request_connect(1)
    session.spawn()
    return fleet.registry.get(1), session
