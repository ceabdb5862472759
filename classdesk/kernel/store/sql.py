"""
SQLAlchemy implementation of the store capabilities.

Conditional writes are single statements (INSERT ... ON CONFLICT) so the
database's unique constraints decide every race. Change events are collected
inside the transaction and published to the feed only after commit.
"""

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from classdesk.kernel.errors import ConflictError, NotFoundError, TransientIOError
from classdesk.kernel.models import (
    Base,
    Call,
    Course,
    EventLog,
    Message,
    SaProfile,
    StudentAlias,
    ThreadLock,
    ThreadPin,
    ThreadRead,
    utcnow,
)
from classdesk.kernel.store.change_feed import ChangeEvent, ChangeFeed, ChangeKind, Subscription
from classdesk.kernel.store.tables import children_of, get_table_spec
from classdesk.logging_config import get_logger

logger = get_logger(__name__)

Row = Dict[str, Any]

MODELS: Dict[str, type[Base]] = {
    "courses": Course,
    "sa_profiles": SaProfile,
    "messages": Message,
    "calls": Call,
    "thread_locks": ThreadLock,
    "thread_reads": ThreadRead,
    "thread_pins": ThreadPin,
    "student_aliases": StudentAlias,
    "event_log": EventLog,
}


def _normalize(row: Mapping[str, Any]) -> Row:
    """SQLite hands back naive datetimes; the store always speaks UTC-aware."""
    out = {}
    for key, value in row.items():
        if isinstance(value, datetime) and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        out[key] = value
    return out


class SqlStore:
    """Store backed by PostgreSQL (or SQLite for tests and local runs)."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        feed: Optional[ChangeFeed] = None,
    ):
        self.session_maker = session_maker
        self.feed = feed or ChangeFeed()

    def _table(self, table: str) -> sa.Table:
        get_table_spec(table)
        return MODELS[table].__table__

    def _where(self, t: sa.Table, where: Optional[Mapping[str, Any]]) -> List[Any]:
        conds = []
        for col, value in (where or {}).items():
            conds.append(t.c[col].is_(None) if value is None else t.c[col] == value)
        return conds

    def _dialect_insert(self, session: AsyncSession, t: sa.Table):
        name = session.bind.dialect.name
        if name == "postgresql":
            return postgresql.insert(t)
        if name == "sqlite":
            return sqlite.insert(t)
        raise NotImplementedError(f"Conditional writes are not supported on {name}")

    async def _run(
        self,
        operation: str,
        table: str,
        work: Callable[[AsyncSession, List[ChangeEvent]], Awaitable[Any]],
    ) -> Any:
        events: List[ChangeEvent] = []
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    result = await work(session, events)
        except IntegrityError as exc:
            detail = str(exc.orig).lower()
            if "foreign key" in detail:
                raise NotFoundError(f"{table}: referenced row does not exist") from exc
            raise ConflictError(f"Duplicate key in {table}") from exc
        except (DBAPIError, OSError) as exc:
            logger.warning(
                "Store operation failed",
                extra={"operation": operation, "table": table, "error": str(exc)},
            )
            raise TransientIOError(f"{operation} on {table} failed") from exc
        except SQLAlchemyError as exc:
            logger.warning(
                "Store operation failed",
                extra={"operation": operation, "table": table, "error": str(exc)},
            )
            raise TransientIOError(f"{operation} on {table} failed") from exc

        self.feed.publish_all(events)
        return result

    async def select(
        self,
        table: str,
        where: Optional[Mapping[str, Any]] = None,
        order_by: Sequence[str] = (),
    ) -> List[Row]:
        t = self._table(table)

        async def work(session: AsyncSession, events: List[ChangeEvent]) -> List[Row]:
            stmt = sa.select(t).where(*self._where(t, where))
            for key in order_by:
                col = t.c[key.lstrip("-")]
                stmt = stmt.order_by(col.desc() if key.startswith("-") else col.asc())
            result = await session.execute(stmt)
            return [_normalize(r) for r in result.mappings().all()]

        return await self._run("select", table, work)

    async def insert(self, table: str, values: Mapping[str, Any]) -> Row:
        t = self._table(table)

        async def work(session: AsyncSession, events: List[ChangeEvent]) -> Row:
            result = await session.execute(sa.insert(t).values(**values).returning(*t.c))
            row = _normalize(result.mappings().one())
            events.append(ChangeEvent(ChangeKind.INSERT, table, new=row))
            return row

        return await self._run("insert", table, work)

    async def insert_if_absent(self, table: str, values: Mapping[str, Any]) -> Optional[Row]:
        t = self._table(table)

        async def work(session: AsyncSession, events: List[ChangeEvent]) -> Optional[Row]:
            stmt = self._dialect_insert(session, t).values(**values).on_conflict_do_nothing()
            result = await session.execute(stmt.returning(*t.c))
            found = result.mappings().one_or_none()
            if found is None:
                return None
            row = _normalize(found)
            events.append(ChangeEvent(ChangeKind.INSERT, table, new=row))
            return row

        return await self._run("insert_if_absent", table, work)

    async def upsert(
        self,
        table: str,
        values: Mapping[str, Any],
        keys: Sequence[str],
        monotonic: Optional[str] = None,
    ) -> Row:
        t = self._table(table)
        spec = get_table_spec(table)

        async def work(session: AsyncSession, events: List[ChangeEvent]) -> Row:
            key_where = {k: values[k] for k in keys}
            before = (
                await session.execute(sa.select(t).where(*self._where(t, key_where)))
            ).mappings().one_or_none()

            stmt = self._dialect_insert(session, t).values(**values)
            set_ = {c: stmt.excluded[c] for c in values if c not in keys}
            for col in spec.touch:
                if col not in values:
                    set_[col] = utcnow()
            guard = None
            if monotonic is not None:
                guard = sa.or_(t.c[monotonic].is_(None), t.c[monotonic] < stmt.excluded[monotonic])
            if set_:
                stmt = stmt.on_conflict_do_update(index_elements=list(keys), set_=set_, where=guard)
            else:
                stmt = stmt.on_conflict_do_nothing(index_elements=list(keys))
            written = (await session.execute(stmt.returning(*t.c))).mappings().one_or_none()

            if written is None:
                # Monotonic guard (or no-op) left the stored row in place
                current = (
                    await session.execute(sa.select(t).where(*self._where(t, key_where)))
                ).mappings().one()
                return _normalize(current)

            row = _normalize(written)
            if before is None:
                events.append(ChangeEvent(ChangeKind.INSERT, table, new=row))
            else:
                events.append(ChangeEvent(ChangeKind.UPDATE, table, new=row, old=_normalize(before)))
            return row

        return await self._run("upsert", table, work)

    async def update(self, table: str, values: Mapping[str, Any], where: Mapping[str, Any]) -> List[Row]:
        t = self._table(table)
        spec = get_table_spec(table)

        async def work(session: AsyncSession, events: List[ChangeEvent]) -> List[Row]:
            conds = self._where(t, where)
            before = {
                r[spec.id_column]: _normalize(r)
                for r in (await session.execute(sa.select(t).where(*conds))).mappings().all()
            }
            if not before:
                return []
            assigned = dict(values)
            for col in spec.touch:
                assigned.setdefault(col, utcnow())
            id_col = t.c[spec.id_column]
            # Re-apply the caller's filter: a row may have stopped matching since the read
            stmt = sa.update(t).where(id_col.in_(list(before)), *conds).values(**assigned).returning(*t.c)
            rows = [_normalize(r) for r in (await session.execute(stmt)).mappings().all()]
            for row in rows:
                events.append(ChangeEvent(ChangeKind.UPDATE, table, new=row, old=before.get(row[spec.id_column])))
            return rows

        return await self._run("update", table, work)

    async def delete(self, table: str, where: Mapping[str, Any]) -> List[Row]:
        t = self._table(table)

        async def work(session: AsyncSession, events: List[ChangeEvent]) -> List[Row]:
            conds = self._where(t, where)
            parents = [
                _normalize(r)
                for r in (await session.execute(sa.select(t).where(*conds))).mappings().all()
            ]
            # Rows the database will remove by ON DELETE CASCADE
            for child in children_of(table):
                _, parent_col, child_col = child.parent
                keys = [p[parent_col] for p in parents]
                if not keys:
                    continue
                ct = self._table(child.name)
                cascaded = (
                    await session.execute(sa.select(ct).where(ct.c[child_col].in_(keys)))
                ).mappings().all()
                events.extend(
                    ChangeEvent(ChangeKind.DELETE, child.name, old=_normalize(r)) for r in cascaded
                )
            result = await session.execute(sa.delete(t).where(*conds).returning(*t.c))
            rows = [_normalize(r) for r in result.mappings().all()]
            events.extend(ChangeEvent(ChangeKind.DELETE, table, old=r) for r in rows)
            return rows

        return await self._run("delete", table, work)

    def subscribe(self, table: str, column: str, value: Any) -> Subscription:
        get_table_spec(table)
        return self.feed.subscribe(table, column, value)
