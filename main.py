"""
Bot Fleet Orchestrator — Main entry point.
Wires the registries, supervisor, combat and dashboard together, restores
persisted settings, starts the initial slots and handles shutdown.
"""

from __future__ import annotations
import asyncio
import os
import sys
import signal
import logging
from dotenv import load_dotenv

# Load .env file before anything else
load_dotenv()

# Create data dir before FileHandler
os.makedirs("data", exist_ok=True)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-7s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler("data/fleet.log"),
    ],
)
logger = logging.getLogger(__name__)

from config import FleetConfig
from core.anti_idle import AntiIdle
from core.combat import CombatEngine
from core.scheduler import Scheduler
from dashboard import Dashboard
from fleet.commands import CommandDispatcher
from fleet.event_log import EventLog
from fleet.global_leave import GlobalLeaveCoordinator
from fleet.identity import IdentityRegistry
from fleet.manager import FleetManager
from fleet.registry import FleetRegistry
from fleet.supervisor import ConnectionSupervisor
from game.bridge_ws import bridge_factory
from game.models import RuntimeSettings
from storage.database import Database


class FleetBot:
    """Main fleet orchestrator."""

    def __init__(self, config: FleetConfig):
        self.config = config
        self._stop_event = asyncio.Event()

        self.db = Database(config.storage.db_path, config.storage.max_history)
        self.settings = RuntimeSettings(
            auto_reconnect=config.reconnect.auto_reconnect,
            anti_afk=config.utils.anti_afk,
            chat_log=config.utils.chat_log,
        )

        # Shared state
        self.scheduler = Scheduler()
        self.event_log = EventLog()
        self.registry = FleetRegistry(config.limits.max_slots)
        self.identities = IdentityRegistry()

        # Behaviours
        self.combat = CombatEngine(config.combat, self.scheduler, self.event_log)
        self.anti_idle = AntiIdle(self.scheduler)
        self.global_leave = GlobalLeaveCoordinator(
            config.global_leave, self.registry, self.scheduler, self.event_log
        )

        self.supervisor = ConnectionSupervisor(
            config=config,
            registry=self.registry,
            identities=self.identities,
            scheduler=self.scheduler,
            event_log=self.event_log,
            global_leave=self.global_leave,
            combat=self.combat,
            session_factory=bridge_factory(config.bridge.url, config.bridge.connect_timeout),
            settings=self.settings,
            anti_idle=self.anti_idle,
        )
        self.commands = CommandDispatcher(self.registry, self.event_log)
        self.manager = FleetManager(
            config=config,
            registry=self.registry,
            supervisor=self.supervisor,
            commands=self.commands,
            scheduler=self.scheduler,
            event_log=self.event_log,
            settings=self.settings,
            db=self.db,
        )
        self.dashboard = Dashboard(self.manager, config.dashboard.host, config.dashboard.port)

    async def start(self):
        """Full startup sequence."""
        logger.info("=" * 60)
        logger.info("   BOT FLEET ORCHESTRATOR — STARTING")
        logger.info("=" * 60)

        # 1. Connect database and restore what the operator changed last time
        os.makedirs(os.path.dirname(self.config.storage.db_path) or "data", exist_ok=True)
        self.db.connect()
        self._restore_state()

        # 2. Operator API
        await self.dashboard.start()

        # 3. Initial slots
        server = self.config.server
        logger.info(f"[BOOT] Target server {server.host}:{server.port} ({server.version})")
        self.manager.start_initial_slots()

        logger.info("[BOOT] ✅ All systems go. Running...")
        await self._stop_event.wait()

    def _restore_state(self):
        stored = self.db.load_settings(self.settings)
        self.settings.auto_reconnect = stored.auto_reconnect
        self.settings.anti_afk = stored.anti_afk
        self.settings.chat_log = stored.chat_log

        current = self.db.load_current_server()
        if current is not None:
            self.config.server.host, self.config.server.port = current
            logger.info(f"[BOOT] Restored server {current[0]}:{current[1]}")

    async def stop(self):
        """Graceful shutdown."""
        logger.info("[SHUTDOWN] Stopping fleet...")
        logger.info(self.registry.get_status_summary())
        self.supervisor.disconnect_all("Shutting down")
        self.scheduler.cancel_all()
        await self.dashboard.stop()
        self.db.close()
        self._stop_event.set()
        logger.info("[SHUTDOWN] Complete.")


async def main():
    """Entry point."""
    config = FleetConfig.from_env()
    logging.getLogger().setLevel(config.log_level.upper())
    bot = FleetBot(config)

    # Graceful shutdown handler
    if sys.platform != "win32":
        loop = asyncio.get_running_loop()

        def handle_signal(sig):
            logger.info(f"Received signal {sig}. Initiating shutdown...")
            asyncio.create_task(bot.stop())

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))

    try:
        await bot.start()
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt received in main loop.")
        await bot.stop()
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        await bot.stop()
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
