"""
Base Repository Pattern

Purpose
-------
Provides a type-safe, generic repository abstraction for database operations
following SQLAlchemy 2.0 async patterns. Repositories encapsulate data access
logic and provide a consistent interface for CRUD operations.

Design Notes
------------
This base repository provides:
- Type-safe reads with optional pessimistic locking (SELECT FOR UPDATE)
- Compare-and-set updates for one-way status transitions
- Guarded counter increments for caps and derived counters
- Existence/counting utilities
- Structured debug logging for every operation

What this class does NOT do:
- Manage transactions (services/DatabaseService handle that)
- Contain business logic

Usage
-----
    class InvitationRepository(BaseRepository[GuildInvitation]):
        async def find_pending_for(self, session, guild_id, invitee_id):
            return await self.find_one_where(
                session,
                GuildInvitation.group_id == guild_id,
                GuildInvitation.invitee_id == invitee_id,
                GuildInvitation.status == InvitationStatus.PENDING,
            )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm.attributes import set_committed_value

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Generic base repository for type-safe database operations.

    Type Parameters:
        T: The SQLAlchemy model class this repository manages
    """

    def __init__(self, model_class: Type[T], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger

    @property
    def _model_name(self) -> str:
        return self.model_class.__name__

    async def get(self, session: AsyncSession, id_value: Any) -> Optional[T]:
        """Get a single record by primary key (no lock)."""
        stmt = select(self.model_class).where(self.model_class.id == id_value)  # type: ignore[attr-defined]
        instance = (await session.execute(stmt)).scalar_one_or_none()

        self.log.debug(
            f"Repository.get: {self._model_name}",
            extra={"model": self._model_name, "id": id_value, "found": instance is not None},
        )
        return instance

    async def get_for_update(self, session: AsyncSession, id_value: Any) -> Optional[T]:
        """Get a single record by primary key with SELECT FOR UPDATE lock."""
        stmt = (
            select(self.model_class)
            .where(self.model_class.id == id_value)  # type: ignore[attr-defined]
            .with_for_update()
        )
        instance = (await session.execute(stmt)).scalar_one_or_none()

        self.log.debug(
            f"Repository.get_for_update: {self._model_name}",
            extra={"model": self._model_name, "id": id_value, "found": instance is not None, "locked": True},
        )
        return instance

    async def get_many(self, session: AsyncSession, id_values: Sequence[Any]) -> List[T]:
        """
        Get multiple records by primary keys (no lock).

        Returns:
            List of model instances (may be fewer than requested if some not found)
        """
        if not id_values:
            return []

        stmt = select(self.model_class).where(self.model_class.id.in_(list(id_values)))  # type: ignore[attr-defined]
        instances = list((await session.execute(stmt)).scalars().all())

        self.log.debug(
            f"Repository.get_many: {self._model_name}",
            extra={"model": self._model_name, "requested_count": len(id_values), "found_count": len(instances)},
        )
        return instances

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
        order_by: Optional[Sequence[Any]] = None,
    ) -> Optional[T]:
        """
        Find the first record matching conditions.

        Args:
            session: Database session
            *conditions: SQLAlchemy filter conditions
            for_update: If True, use SELECT FOR UPDATE
            order_by: Optional ordering; the first row wins

        Returns:
            Model instance or None if not found
        """
        stmt = select(self.model_class).where(*conditions)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if for_update:
            stmt = stmt.with_for_update()
        stmt = stmt.limit(1)

        instance = (await session.execute(stmt)).scalars().first()

        self.log.debug(
            f"Repository.find_one_where: {self._model_name}",
            extra={"model": self._model_name, "found": instance is not None, "locked": for_update},
        )
        return instance

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
        order_by: Optional[Sequence[Any]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[T]:
        """Find multiple records matching conditions."""
        stmt = select(self.model_class).where(*conditions)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if for_update:
            stmt = stmt.with_for_update()
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)

        instances = list((await session.execute(stmt)).scalars().all())

        self.log.debug(
            f"Repository.find_many_where: {self._model_name}",
            extra={"model": self._model_name, "found_count": len(instances), "locked": for_update, "limit": limit},
        )
        return instances

    async def exists(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> bool:
        return await self.count(session, *conditions) > 0

    async def count(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(self.model_class).where(*conditions)
        count = (await session.execute(stmt)).scalar_one()

        self.log.debug(
            f"Repository.count: {self._model_name}",
            extra={"model": self._model_name, "count": count},
        )
        return count

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, session: AsyncSession, instance: T) -> T:
        session.add(instance)
        self.log.debug(f"Repository.add: {self._model_name}", extra={"model": self._model_name})
        return instance

    async def delete(self, session: AsyncSession, instance: T) -> None:
        await session.delete(instance)
        self.log.debug(f"Repository.delete: {self._model_name}", extra={"model": self._model_name})

    async def delete_where(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        """Bulk delete. Returns the number of rows removed."""
        stmt = delete(self.model_class).where(*conditions).execution_options(synchronize_session=False)
        deleted = (await session.execute(stmt)).rowcount

        self.log.debug(
            f"Repository.delete_where: {self._model_name}",
            extra={"model": self._model_name, "deleted": deleted},
        )
        return deleted

    async def update_where(
        self,
        session: AsyncSession,
        values: Dict[str, Any],
        *conditions: ColumnElement[bool],
    ) -> int:
        """Bulk update in one statement. Returns the number of rows changed."""
        stmt = (
            update(self.model_class)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        updated = (await session.execute(stmt)).rowcount

        self.log.debug(
            f"Repository.update_where: {self._model_name}",
            extra={"model": self._model_name, "updated": updated, "fields": sorted(values)},
        )
        return updated

    async def compare_and_set(
        self,
        session: AsyncSession,
        instance: T,
        expected: Dict[str, Any],
        values: Dict[str, Any],
    ) -> bool:
        """
        Atomically apply ``values`` only if the row still matches ``expected``.

        Issues ``UPDATE ... WHERE id = :id AND <expected>`` and checks the
        rowcount, so two racing writers cannot both win. On success the
        in-session instance reflects the new values without a reload.

        Returns:
            True if this caller won the transition
        """
        conditions = [self.model_class.id == instance.id]  # type: ignore[attr-defined]
        conditions.extend(getattr(self.model_class, column) == value for column, value in expected.items())

        stmt = (
            update(self.model_class)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        swapped = (await session.execute(stmt)).rowcount == 1

        if swapped:
            for column, value in values.items():
                set_committed_value(instance, column, value)

        self.log.debug(
            f"Repository.compare_and_set: {self._model_name}",
            extra={
                "model": self._model_name,
                "id": instance.id,  # type: ignore[attr-defined]
                "expected": {k: str(v) for k, v in expected.items()},
                "swapped": swapped,
            },
        )
        return swapped

    async def increment(
        self,
        session: AsyncSession,
        instance: T,
        column: str,
        delta: int,
        *,
        ceiling_column: Optional[str] = None,
        floor: Optional[int] = None,
    ) -> bool:
        """
        Atomically add ``delta`` to a counter column.

        ``ceiling_column`` guards the increment with ``column < ceiling``
        (e.g. ``member_count < max_members``); ``floor`` guards a decrement
        with ``column + delta >= floor``. The new value is read back into the
        instance.

        Returns:
            False if a guard rejected the change
        """
        counter = getattr(self.model_class, column)
        conditions = [self.model_class.id == instance.id]  # type: ignore[attr-defined]
        if ceiling_column is not None:
            conditions.append(counter + delta <= getattr(self.model_class, ceiling_column))
        if floor is not None:
            conditions.append(counter + delta >= floor)

        stmt = (
            update(self.model_class)
            .where(*conditions)
            .values({column: counter + delta})
            .execution_options(synchronize_session=False)
        )
        applied = (await session.execute(stmt)).rowcount == 1

        if applied:
            await session.refresh(instance, attribute_names=[column])

        self.log.debug(
            f"Repository.increment: {self._model_name}.{column}",
            extra={
                "model": self._model_name,
                "id": instance.id,  # type: ignore[attr-defined]
                "delta": delta,
                "applied": applied,
            },
        )
        return applied

    async def flush(self, session: AsyncSession) -> None:
        await session.flush()
        self.log.debug(f"Repository.flush: {self._model_name}", extra={"model": self._model_name})

    async def refresh(
        self,
        session: AsyncSession,
        instance: T,
        attribute_names: Optional[List[str]] = None,
    ) -> T:
        await session.refresh(instance, attribute_names=attribute_names)
        return instance
