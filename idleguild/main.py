"""
Idle Guild - Application Entry Point
====================================

Bootstrap
---------
- Config validation
- Database initialization and schema creation
- ConfigManager initialization
- Catalog seeding
- Service wiring (GameEngine)
- Background sweepers for grind sessions and consent challenges
- Graceful shutdown
"""

from __future__ import annotations

import asyncio
import signal
import sys
from typing import List, Optional

import discord

from idleguild.core.config.config import Config
from idleguild.core.config.manager import ConfigManager
from idleguild.core.database.service import DatabaseInitializationError, DatabaseService
from idleguild.core.event import event_bus
from idleguild.core.event.bus import EventBus
from idleguild.core.logging.logger import get_logger, log_context, setup_logging, shutdown_logging
from idleguild.modules.battle.service import BattleService
from idleguild.modules.economy.catalog import seed_upgrades
from idleguild.modules.economy.service import EconomyService
from idleguild.modules.grind.service import GrindService
from idleguild.modules.guild.service import GuildService
from idleguild.modules.notification.notifier import DirectMessageNotifier
from idleguild.modules.notification.service import NotificationService
from idleguild.modules.prestige.catalog import seed_prestige_upgrades
from idleguild.modules.prestige.service import PrestigeService

logger = get_logger(__name__)


# ============================================================================
# Service container
# ============================================================================

class GameEngine:
    """
    Owns every game service and the background sweepers.

    Services share one ConfigManager, one EventBus and one DatabaseService.
    """

    def __init__(
        self,
        bus: Optional[EventBus] = None,
        notifier: Optional[DirectMessageNotifier] = None,
    ) -> None:
        self.config_manager = ConfigManager
        self.event_bus = bus or event_bus

        def _service_logger(name: str):
            return get_logger(f"idleguild.modules.{name}")

        self.guilds = GuildService(self.config_manager, self.event_bus, _service_logger("guild"))
        self.prestige = PrestigeService(self.config_manager, self.event_bus, _service_logger("prestige"))
        self.economy = EconomyService(
            self.config_manager, self.event_bus, _service_logger("economy"), prestige_service=self.prestige
        )
        self.battles = BattleService(
            self.config_manager, self.event_bus, _service_logger("battle"), prestige_service=self.prestige
        )
        self.grind = GrindService(
            self.config_manager, self.event_bus, _service_logger("grind"), prestige_service=self.prestige
        )
        self.notifications = NotificationService(
            self.config_manager, self.event_bus, _service_logger("notification"), notifier=notifier
        )
        self._sweepers: List[asyncio.Task] = []
        self._started = False

    async def startup(self, create_schema: bool = True) -> None:
        logger.info("========== IDLE GUILD INITIALIZATION START ==========")

        try:
            Config.validate()
            logger.info("✓ Configuration validated")
        except Exception as exc:
            logger.critical(f"Configuration validation failed: {exc}")
            raise

        try:
            await DatabaseService.initialize()
            if not await DatabaseService.health_check():
                raise DatabaseInitializationError("Database is not reachable")
            if create_schema:
                await DatabaseService.create_all()
            logger.info("✓ Database service initialized")
        except Exception as exc:
            logger.critical(f"Database initialization failed: {exc}", exc_info=True)
            raise

        try:
            await ConfigManager.initialize(Config.GAME_CONFIG_PATH)
            logger.info("✓ Config manager initialized")
        except Exception as exc:
            logger.critical(f"Config manager initialization failed: {exc}", exc_info=True)
            raise

        async with DatabaseService.get_transaction() as session:
            upgrades = await seed_upgrades(session)
            prestige = await seed_prestige_upgrades(session)
        logger.info("✓ Catalogs seeded", extra={"upgrades": upgrades, "prestige_upgrades": prestige})

        self.notifications.register_listeners()
        self._started = True
        logger.info("========== INFRASTRUCTURE INITIALIZED SUCCESSFULLY ==========")

    # ------------------------------------------------------------------ #
    # Sweepers
    # ------------------------------------------------------------------ #

    def start_sweepers(self) -> None:
        self._sweepers = [
            asyncio.create_task(
                self._sweep_loop(
                    "challenges",
                    self.battles.sweep_challenges,
                    float(ConfigManager.get("battle.challenge_sweep_seconds", 10)),
                )
            ),
            asyncio.create_task(
                self._sweep_loop(
                    "grind",
                    self.grind.sweep_expired,
                    float(ConfigManager.get("grind.sweep_interval_seconds", 60)),
                )
            ),
            asyncio.create_task(
                self._sweep_loop(
                    "reminders",
                    self.notifications.send_due_reminders,
                    float(ConfigManager.get("notifications.reminder_sweep_seconds", 1800)),
                )
            ),
        ]

    async def _sweep_loop(self, name: str, sweep, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            with log_context(component="sweeper", action=name):
                try:
                    await sweep()
                except Exception as exc:
                    logger.error(f"Sweeper '{name}' failed: {exc}", exc_info=True)

    async def stop_sweepers(self) -> None:
        for task in self._sweepers:
            task.cancel()
        if self._sweepers:
            await asyncio.gather(*self._sweepers, return_exceptions=True)
        self._sweepers = []

    # ------------------------------------------------------------------ #
    # Shutdown
    # ------------------------------------------------------------------ #

    async def shutdown(self) -> None:
        logger.info("========== IDLE GUILD SHUTDOWN START ==========")
        await self.stop_sweepers()

        if self._started:
            try:
                flushed = await self.grind.shutdown()
                logger.info(f"✓ Grind sessions flushed ({flushed})")
            except Exception as exc:
                logger.error(f"Grind shutdown error: {exc}", exc_info=True)

            try:
                refunded = await self.battles.shutdown()
                logger.info(f"✓ Pending challenges refunded ({refunded})")
            except Exception as exc:
                logger.error(f"Challenge shutdown error: {exc}", exc_info=True)

            await self.event_bus.drain()

        try:
            await DatabaseService.shutdown()
            logger.info("✓ Database service shut down")
        except Exception as exc:
            logger.error(f"Database service shutdown error: {exc}", exc_info=True)

        self._started = False
        logger.info("========== SHUTDOWN COMPLETE ==========")


# ============================================================================
# Application Entrypoint
# ============================================================================

async def main() -> None:
    """
    Lifecycle:
        1. Initialize infrastructure and services
        2. Run sweepers; connect the DM client when a token is configured
        3. Shut down gracefully
    """
    setup_logging()
    client: Optional[discord.Client] = None
    engine: Optional[GameEngine] = None

    try:
        notifier = None
        if Config.DISCORD_TOKEN:
            client = discord.Client(intents=discord.Intents.default())
            notifier = DirectMessageNotifier(client, get_logger("idleguild.modules.notification.notifier"))

        engine = GameEngine(notifier=notifier)
        await engine.startup()
        engine.start_sweepers()

        if client is not None:
            logger.info("Connecting DM client...")
            await client.start(Config.DISCORD_TOKEN)
        else:
            logger.info("No DISCORD_TOKEN configured; running without DM delivery")
            await asyncio.Event().wait()

    except asyncio.CancelledError:
        logger.warning("Asyncio task cancellation received; shutting down gracefully.")
        raise

    except Exception as exc:
        logger.critical(f"Fatal startup error: {exc}", exc_info=True)
        sys.exit(1)

    finally:
        if client is not None and not client.is_closed():
            await client.close()
        if engine is not None:
            await engine.shutdown()
        shutdown_logging()


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, task: asyncio.Task) -> None:
    try:
        loop.add_signal_handler(signal.SIGTERM, task.cancel)
        logger.debug("SIGTERM handler installed")
    except NotImplementedError:
        logger.debug("SIGTERM not supported on this platform (likely Windows)")


def run() -> None:
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    task = loop.create_task(main())
    _install_signal_handlers(loop, task)

    try:
        loop.run_until_complete(task)
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Stopped.")
    finally:
        loop.close()


if __name__ == "__main__":
    run()
