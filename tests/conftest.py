"""
Pytest Configuration and Fixtures for Idle Guild Tests
======================================================

Purpose
-------
Centralized fixtures for the test suite: a throwaway database, a fresh event
bus, wired services, deterministic random sources and guild factories.

Architecture Notes
------------------
- Unit tests exercise pure engines and need none of the database fixtures
- Integration tests get a brand-new SQLite file per test (aiosqlite driver,
  NullPool) with both catalogs seeded
- Game config is reset to the packaged YAML defaults around every test
- Random sources are injected callables so outcomes can be pinned
"""

from __future__ import annotations

import itertools
import os

os.environ["ENVIRONMENT"] = "testing"
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from typing import Any, AsyncGenerator, Dict, List

import pytest
import pytest_asyncio
from sqlalchemy import select

from idleguild.core.config.config import Config
from idleguild.core.config.manager import ConfigManager
from idleguild.core.database.service import DatabaseService
from idleguild.core.event.bus import EventBus
from idleguild.core.logging.logger import get_logger
from idleguild.database.models import Guild, GuildUpgrade, Upgrade
from idleguild.modules.battle.service import BattleService
from idleguild.modules.economy.catalog import seed_upgrades
from idleguild.modules.economy.service import EconomyService
from idleguild.modules.grind.service import GrindService
from idleguild.modules.guild.service import GuildService
from idleguild.modules.notification.service import NotificationService
from idleguild.modules.prestige.catalog import seed_prestige_upgrades
from idleguild.modules.prestige.service import PrestigeService

logger = get_logger(__name__)


# ============================================================================
# RANDOM SOURCES
# ============================================================================


class FixedRandom:
    """Zero-argument random source returning `value` until changed."""

    def __init__(self, value: float = 0.0) -> None:
        self.value = value
        self.calls = 0

    def __call__(self) -> float:
        self.calls += 1
        return self.value


class EventRecorder:
    """Reads back what a spied EventBus.publish was called with."""

    def __init__(self, spy) -> None:
        self._spy = spy

    def names(self) -> List[str]:
        return [call.args[0] for call in self._spy.call_args_list]

    def payloads(self, name: str) -> List[Dict[str, Any]]:
        return [call.args[1] for call in self._spy.call_args_list if call.args[0] == name]


# ============================================================================
# CONFIG
# ============================================================================


@pytest.fixture(autouse=True)
def game_config():
    """Packaged YAML defaults, with runtime overrides dropped after each test."""
    ConfigManager.reset()
    yield ConfigManager
    ConfigManager.reset()


# ============================================================================
# DATABASE
# ============================================================================


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[None, None]:
    """
    Fresh SQLite database with schema and catalogs.

    Scope: function (one file per test, clean slate)
    """
    Config.DATABASE_URL = f"sqlite+aiosqlite:///{tmp_path / 'idleguild.db'}"
    await DatabaseService.shutdown()
    await DatabaseService.initialize()
    await DatabaseService.create_all()

    async with DatabaseService.get_transaction() as session:
        await seed_upgrades(session)
        await seed_prestige_upgrades(session)

    yield

    await DatabaseService.shutdown()


# ============================================================================
# EVENTS
# ============================================================================


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def events(bus, mocker) -> EventRecorder:
    return EventRecorder(mocker.spy(bus, "publish"))


# ============================================================================
# SERVICES
# ============================================================================


@pytest.fixture
def rng() -> FixedRandom:
    return FixedRandom(0.0)


@pytest.fixture
def guild_service(database, bus) -> GuildService:
    return GuildService(ConfigManager, bus, get_logger("tests.guild"))


@pytest.fixture
def prestige_service(database, bus) -> PrestigeService:
    return PrestigeService(ConfigManager, bus, get_logger("tests.prestige"))


@pytest.fixture
def economy_service(database, bus, prestige_service) -> EconomyService:
    return EconomyService(
        ConfigManager, bus, get_logger("tests.economy"), prestige_service=prestige_service, rng=lambda: 0.99
    )


@pytest_asyncio.fixture
async def battle_service(database, bus, prestige_service, rng) -> AsyncGenerator[BattleService, None]:
    service = BattleService(
        ConfigManager, bus, get_logger("tests.battle"), prestige_service=prestige_service, rng=rng
    )
    yield service
    for challenge in service.challenges.pending():
        if challenge.timer is not None:
            challenge.timer.cancel()


@pytest_asyncio.fixture
async def grind_service(database, bus, prestige_service) -> AsyncGenerator[GrindService, None]:
    service = GrindService(ConfigManager, bus, get_logger("tests.grind"), prestige_service=prestige_service)
    yield service
    for owner_id in list(service._sessions):
        service._sessions[owner_id].cancel_flush()


@pytest.fixture
def notifier(mocker):
    mock_notifier = mocker.MagicMock()
    mock_notifier.send = mocker.AsyncMock(return_value=True)
    return mock_notifier


@pytest.fixture
def notification_service(database, bus, notifier) -> NotificationService:
    return NotificationService(ConfigManager, bus, get_logger("tests.notification"), notifier=notifier)


# ============================================================================
# FACTORIES
# ============================================================================


@pytest.fixture
def make_guild(guild_service):
    """
    Found a guild and optionally overwrite columns.

    Usage:
        guild = await make_guild(gold=1000, adventurer_count=20)
    """
    owners = itertools.count(100001)

    async def _make(owner_id: str = None, name: str = None, **fields: Any) -> Guild:
        owner_id = owner_id or str(next(owners))
        guild = await guild_service.found_guild(owner_id, name or f"Guild {owner_id}")
        if fields:
            guild = await update_guild(guild.id, **fields)
        return guild

    return _make


async def update_guild(guild_id: int, **fields: Any) -> Guild:
    async with DatabaseService.get_transaction() as session:
        row = await session.get(Guild, guild_id)
        for key, value in fields.items():
            setattr(row, key, value)
    return row


async def load_guild(guild_id: int) -> Guild:
    async with DatabaseService.get_session() as session:
        return await session.get(Guild, guild_id)


async def give_upgrade(guild_id: int, upgrade_name: str, level: int) -> Upgrade:
    async with DatabaseService.get_transaction() as session:
        upgrade = (await session.execute(select(Upgrade).where(Upgrade.name == upgrade_name))).scalar_one()
        session.add(GuildUpgrade(guild_id=guild_id, upgrade_id=upgrade.id, level=level))
    return upgrade


async def catalog_id(model: Any, name: str) -> int:
    async with DatabaseService.get_session() as session:
        return (await session.execute(select(model.id).where(model.name == name))).scalar_one()


async def count_rows(model: Any, *conditions: Any) -> int:
    async with DatabaseService.get_session() as session:
        return len((await session.execute(select(model).where(*conditions))).scalars().all())


@pytest.fixture
def guild_helpers():
    """Coroutines for arranging and inspecting database state."""

    class _Helpers:
        update = staticmethod(update_guild)
        load = staticmethod(load_guild)
        give_upgrade = staticmethod(give_upgrade)
        catalog_id = staticmethod(catalog_id)
        count = staticmethod(count_rows)

    return _Helpers
