"""
Generic async repository for the game tables.

Every game table has an integer `id` primary key, so one generic class covers
the catalog tables, battle rows and notification settings; guild-scoped
lookups live in `idleguild.modules.guild.repository`.

Repositories never commit. They run inside the session the service opened
with `DatabaseService.get_session()` (prechecks) or `get_transaction()`
(mutations). Locking is opt-in: `get_for_update`, `get_many_for_update` and
`for_update=True` issue `SELECT ... FOR UPDATE`; on SQLite the clause is a
no-op.

    class GuildRepository(BaseRepository[Guild]):
        async def find_by_owner(self, session, owner_id):
            return await self.find_one_where(session, Guild.owner_id == owner_id)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import delete, func, select

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement, Select
    from sqlalchemy.ext.asyncio import AsyncSession

ModelT = TypeVar("ModelT")


class BaseRepository(Generic[ModelT]):
    def __init__(self, model_class: Type[ModelT], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger

    @property
    def _name(self) -> str:
        return self.model_class.__name__

    def _trace(self, op: str, **fields: Any) -> None:
        self.log.debug(f"{self._name}.{op}", extra={"model": self._name, **fields})

    def _select(
        self,
        conditions: Sequence[ColumnElement[bool]],
        *,
        for_update: bool = False,
        order_by: Optional[Any] = None,
        limit: Optional[int] = None,
    ) -> Select:
        stmt = select(self.model_class).where(*conditions)
        if isinstance(order_by, tuple):
            stmt = stmt.order_by(*order_by)
        elif order_by is not None:
            stmt = stmt.order_by(order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        if for_update:
            stmt = stmt.with_for_update()
        return stmt

    # ------------------------------------------------------------------ #
    # Primary-key access
    # ------------------------------------------------------------------ #

    async def get(self, session: AsyncSession, id_value: Any) -> Optional[ModelT]:
        return await self.find_one_where(session, self.model_class.id == id_value)  # type: ignore[attr-defined]

    async def get_for_update(self, session: AsyncSession, id_value: Any) -> Optional[ModelT]:
        return await self.find_one_where(
            session, self.model_class.id == id_value, for_update=True  # type: ignore[attr-defined]
        )

    async def get_many_for_update(self, session: AsyncSession, id_values: List[Any]) -> List[ModelT]:
        """
        Lock several rows in primary-key order.

        Both sides of a battle go through here, so two battles between the
        same pair of guilds always take their locks in the same order.
        """
        pk = self.model_class.id  # type: ignore[attr-defined]
        rows = await self.find_many_where(session, pk.in_(id_values), for_update=True, order_by=pk)
        if len(rows) != len(set(id_values)):
            self._trace("get_many_for_update", requested=sorted(set(id_values)), found=len(rows))
        return rows

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
    ) -> Optional[ModelT]:
        result = await session.execute(self._select(conditions, for_update=for_update))
        row = result.scalar_one_or_none()
        self._trace("find_one", found=row is not None, locked=for_update)
        return row

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
        order_by: Optional[Any] = None,
        limit: Optional[int] = None,
    ) -> List[ModelT]:
        stmt = self._select(conditions, for_update=for_update, order_by=order_by, limit=limit)
        rows = list((await session.execute(stmt)).scalars())
        self._trace("find_many", count=len(rows), locked=for_update)
        return rows

    async def count(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(self.model_class).where(*conditions)
        return int((await session.execute(stmt)).scalar_one())

    async def exists(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> bool:
        stmt = select(self._select(conditions).exists())
        return bool((await session.execute(stmt)).scalar())

    # ------------------------------------------------------------------ #
    # Writes (flushed by the caller's transaction)
    # ------------------------------------------------------------------ #

    def add(self, session: AsyncSession, instance: ModelT) -> ModelT:
        session.add(instance)
        self._trace("add")
        return instance

    async def delete_where(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        """Bulk delete; returns the number of rows removed."""
        result = await session.execute(delete(self.model_class).where(*conditions))
        deleted = result.rowcount or 0
        self._trace("delete_where", deleted=deleted)
        return deleted
