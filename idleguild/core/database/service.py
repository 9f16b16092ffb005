"""
Database Service - Core Infrastructure Layer

Purpose
-------
Owns the single AsyncEngine and hands out sessions. Every balance mutation in
the game (collect, purchase, prestige, battle, escrow, grind flush) happens
inside `get_transaction()`.

Transaction Model
-----------------
- `get_transaction()`: commit on clean exit, rollback on any exception.
  Service code never calls `session.commit()` itself.
- `get_session()`: read-only prechecks; nothing is committed.
- Row locks come from repositories (`for_update=True`); guild pairs are
  locked in primary-key order.

Engines
-------
- PostgreSQL (asyncpg): queue pool, pre-ping, `SET LOCAL statement_timeout`
  at the start of each transaction.
- SQLite (aiosqlite) and the testing environment: NullPool, no timeout.

Usage
-----
>>> async with DatabaseService.get_transaction() as session:
>>>     guild = await session.get(Guild, guild_id, with_for_update=True)
>>>     guild.gold += 1000
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from idleguild.core.config.config import Config
from idleguild.core.database.base import Base
from idleguild.core.logging.logger import get_logger

logger = get_logger(__name__)


class DatabaseInitializationError(RuntimeError):
    """The engine could not be created or the database is unreachable."""


class DatabaseNotInitializedError(RuntimeError):
    """A session was requested before `DatabaseService.initialize()`."""


@dataclass(frozen=True)
class EngineSettings:
    url: str
    echo: bool
    pooled: bool
    pool_size: int
    max_overflow: int
    pool_recycle: int
    statement_timeout_ms: int = 30_000

    @classmethod
    def from_config(cls) -> "EngineSettings":
        url = Config.DATABASE_URL
        if not isinstance(url, str) or not url:
            raise DatabaseInitializationError("DATABASE_URL must be configured as a non-empty string")
        return cls(
            url=url,
            echo=bool(Config.DATABASE_ECHO),
            pooled=not (url.startswith("sqlite") or Config.is_testing()),
            pool_size=int(Config.DATABASE_POOL_SIZE),
            max_overflow=int(Config.DATABASE_MAX_OVERFLOW),
            pool_recycle=int(Config.DATABASE_POOL_RECYCLE),
        )

    @property
    def scheme(self) -> str:
        return self.url.split(":", 1)[0]

    @property
    def is_postgres(self) -> bool:
        return self.scheme.startswith("postgresql")

    def engine_kwargs(self) -> Dict[str, Any]:
        if not self.pooled:
            return {"echo": self.echo, "poolclass": NullPool}
        return {
            "echo": self.echo,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_recycle": self.pool_recycle,
            "pool_pre_ping": True,
        }


class DatabaseService:
    """
    Class-level engine holder.

    Public API
    ----------
    - initialize() / shutdown() / create_all()
    - get_session() / get_transaction()
    - health_check()
    """

    _engine: Optional[AsyncEngine] = None
    _sessions: Optional[async_sessionmaker[AsyncSession]] = None
    _settings: Optional[EngineSettings] = None
    _lock = asyncio.Lock()

    # ========================================================================
    # Lifecycle
    # ========================================================================

    @classmethod
    async def initialize(cls) -> None:
        """
        Create the engine and session factory; a second call is a no-op.

        Raises
        ------
        DatabaseInitializationError
            If configuration is invalid or engine creation fails.
        """
        async with cls._lock:
            if cls._engine is not None:
                return

            settings = EngineSettings.from_config()
            try:
                cls._engine = create_async_engine(settings.url, **settings.engine_kwargs())
            except Exception as exc:
                logger.error(
                    "Database engine creation failed",
                    extra={"scheme": settings.scheme, "error_type": type(exc).__name__, "error": str(exc)},
                    exc_info=True,
                )
                raise DatabaseInitializationError(f"Database initialization failed: {exc}") from exc

            cls._sessions = async_sessionmaker(cls._engine, class_=AsyncSession, expire_on_commit=False)
            cls._settings = settings
            logger.info("DatabaseService initialized", extra={"scheme": settings.scheme, "pooled": settings.pooled})

    @classmethod
    async def shutdown(cls) -> None:
        """Dispose the engine; no-op if it was never created."""
        async with cls._lock:
            engine = cls._engine
            cls._engine = None
            cls._sessions = None
            cls._settings = None
            if engine is not None:
                await engine.dispose()
                logger.info("DatabaseService shut down")

    @classmethod
    async def create_all(cls) -> None:
        """Create tables for every model on `Base.metadata` (dev and tests; production uses migrations)."""
        engine = cls._require_engine()
        # Registers every model on Base.metadata
        import idleguild.database.models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured", extra={"tables": sorted(Base.metadata.tables)})

    @classmethod
    async def health_check(cls) -> bool:
        """`SELECT 1`; False instead of raising when the database is unreachable."""
        if cls._engine is None:
            return False
        start = time.perf_counter()
        try:
            async with cls._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (DBAPIError, OSError) as exc:
            logger.warning(
                "Database health check failed",
                extra={"error_type": type(exc).__name__, "error": str(exc)},
            )
            return False
        logger.debug("Database health check passed", extra={"duration_ms": (time.perf_counter() - start) * 1000})
        return True

    # ========================================================================
    # Sessions
    # ========================================================================

    @classmethod
    def _require_engine(cls) -> AsyncEngine:
        if cls._engine is None or cls._sessions is None:
            raise DatabaseNotInitializedError(
                "DatabaseService must be initialized before use. Call DatabaseService.initialize() during startup."
            )
        return cls._engine

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        """Session for reads and prechecks; nothing is committed."""
        cls._require_engine()
        async with cls._sessions() as session:
            yield session

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Atomic unit of work: commit on success, rollback and re-raise otherwise.

        Raises
        ------
        DatabaseNotInitializedError
            If DatabaseService has not been initialized.
        """
        cls._require_engine()
        start = time.perf_counter()
        async with cls._sessions() as session:
            try:
                if cls._settings is not None and cls._settings.is_postgres:
                    await session.execute(
                        text(f"SET LOCAL statement_timeout = {cls._settings.statement_timeout_ms}")
                    )
                yield session
                await session.commit()
            except Exception as exc:
                await session.rollback()
                level = logger.error if isinstance(exc, DBAPIError) else logger.debug
                level(
                    "Transaction rolled back",
                    extra={
                        "error_type": type(exc).__name__,
                        "duration_ms": (time.perf_counter() - start) * 1000,
                    },
                    exc_info=isinstance(exc, DBAPIError),
                )
                raise
