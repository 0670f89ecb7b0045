"""
Generic repository for any registered entity type.

The descriptor supplies the table, the record type, the natural key and the
conflict policy, so one implementation serves every entity.

Batch writes use dialect-specific INSERT ... ON CONFLICT (PostgreSQL in
production, SQLite in tests):
- insert or update: conflicting rows get every non-key column from the new
  record, and ``updated_at`` is refreshed
- insert or ignore: conflicting rows are left untouched
"""
import dataclasses
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import and_, delete, func, select
from sqlalchemy.dialects import postgresql, sqlite

from fpl_sync.core.errors import PersistenceError, PersistenceErrorCode
from fpl_sync.models.enums import ConflictPolicy
from fpl_sync.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class EntityRepository(BaseRepository[Any]):
    """
    Repository returning domain records for one entity type.

    Usage:
        async with session_factory() as session:
            repo = EntityRepository(get_descriptor(EntityType.TEAM), session)
            teams = await repo.save_batch(records)
    """

    CHUNK_SIZE = 500

    def __init__(self, descriptor: Any, session):
        super().__init__(descriptor.model, session)
        self.descriptor = descriptor
        self.table = descriptor.model.__table__
        self._fields = [f.name for f in dataclasses.fields(descriptor.record_type)]
        self._key_columns = [self.table.c[name] for name in descriptor.key_fields]

    # ========================================================================
    # Conversion
    # ========================================================================

    def _to_record(self, row: Any) -> Any:
        values = {}
        for name in self._fields:
            value = getattr(row, name)
            # SQLite hands back naive datetimes; everything is stored as UTC
            if isinstance(value, datetime) and value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            values[name] = value
        return self.descriptor.record_type(**values)

    def _to_values(self, record: Any) -> Dict[str, Any]:
        values = {}
        for name in self._fields:
            value = getattr(record, name)
            # Nested items go to JSON columns as plain dicts
            if isinstance(value, tuple):
                value = [dataclasses.asdict(item) if dataclasses.is_dataclass(item) else item for item in value]
            values[name] = value
        return values

    def _dedupe(self, records: Sequence[Any]) -> List[Any]:
        """Collapse duplicate natural keys within one batch."""
        by_key: Dict[tuple, Any] = {}
        keep_last = self.descriptor.conflict_policy == ConflictPolicy.INSERT_OR_UPDATE
        for record in records:
            key = self.descriptor.natural_key(record)
            if keep_last or key not in by_key:
                by_key[key] = record
        if len(by_key) != len(records):
            logger.debug(f"{self.table_name}: collapsed {len(records) - len(by_key)} duplicate keys in batch")
        return list(by_key.values())

    def _select(self):
        return select(self.table).order_by(*self._key_columns)

    def _scope_column(self):
        if self.descriptor.scope_field is None:
            raise ValueError(f"{self.descriptor.name} is not scoped")
        return self.table.c[self.descriptor.scope_field]

    async def _fetch_records(self, statement) -> List[Any]:
        result = await self.session.execute(statement)
        return [self._to_record(row) for row in result.all()]

    # ========================================================================
    # Reads
    # ========================================================================

    async def find_by_id(self, key: Any) -> Optional[Any]:
        """Find a record by natural key (scalar, or tuple for composite keys)."""
        key = self.descriptor.normalize_key(key)
        statement = self._select().where(
            *[column == value for column, value in zip(self._key_columns, key)]
        )
        async with self.operation("find_by_id"):
            records = await self._fetch_records(statement)
        return records[0] if records else None

    async def find_all(self) -> List[Any]:
        """All records ordered by natural key ascending."""
        async with self.operation("find_all"):
            return await self._fetch_records(self._select())

    async def find_by_scope(self, scope_id: int) -> List[Any]:
        """Records belonging to one event or entry, ordered by natural key."""
        statement = self._select().where(self._scope_column() == scope_id)
        async with self.operation("find_by_scope"):
            return await self._fetch_records(statement)

    async def find_by(self, field_name: str, value: Any) -> List[Any]:
        """Records whose column equals value, e.g. players by team_id."""
        if field_name not in self.table.c:
            raise ValueError(f"{self.table_name} has no column {field_name!r}")
        statement = self._select().where(self.table.c[field_name] == value)
        async with self.operation("find_by"):
            return await self._fetch_records(statement)

    async def find_latest(self, group_field: str, order_field: str) -> Dict[Any, Any]:
        """
        The record with the greatest order_field per group_field value.

        Used for change detection, e.g. the latest stored price per player:
        ``await repo.find_latest("element_id", "change_date")``.
        """
        group, order = self.table.c[group_field], self.table.c[order_field]
        latest = (
            select(group.label("group_value"), func.max(order).label("latest_value"))
            .group_by(group)
            .subquery()
        )
        statement = select(self.table).join(
            latest, and_(group == latest.c.group_value, order == latest.c.latest_value)
        )
        async with self.operation("find_latest"):
            records = await self._fetch_records(statement)
        return {getattr(record, group_field): record for record in records}

    # ========================================================================
    # Writes
    # ========================================================================

    def _insert_statement(self):
        insert = _INSERT_BY_DIALECT.get(self.dialect_name)
        if insert is None:
            raise PersistenceError(
                f"Batch upsert is not supported on dialect {self.dialect_name!r}",
                operation=f"{self.table_name}.save_batch",
                code=PersistenceErrorCode.OPERATION_ERROR,
            )

        statement = insert(self.table)
        if self.descriptor.conflict_policy == ConflictPolicy.INSERT_OR_IGNORE:
            return statement.on_conflict_do_nothing()

        key_fields = set(self.descriptor.key_fields)
        updates = {
            name: statement.excluded[name]
            for name in self._fields
            if name not in key_fields
        }
        if "updated_at" in self.table.c:
            updates["updated_at"] = func.now()
        return statement.on_conflict_do_update(
            index_elements=list(self.descriptor.key_fields),
            set_=updates,
        )

    async def save_batch(
        self,
        records: Sequence[Any],
        commit: bool = True,
        scope_id: Optional[int] = None,
    ) -> List[Any]:
        """
        Write a batch in one transaction, resolving conflicts per policy.

        Safe to repeat with the same input: the row set does not change.

        Args:
            records: Domain records to write
            commit: Commit after the write (False to join a larger transaction)
            scope_id: Scope the batch was fetched for; inferred from the
                records when omitted

        Returns:
            The up-to-date rows of the affected scope (or of the whole table
            when the batch spans several scopes). This is not necessarily the
            input list.
        """
        records = self._dedupe(records)
        async with self.operation("save_batch"):
            if records:
                statement = self._insert_statement()
                rows = [self._to_values(record) for record in records]
                for start in range(0, len(rows), self.CHUNK_SIZE):
                    await self.session.execute(statement, rows[start:start + self.CHUNK_SIZE])
            if commit:
                await self.commit()

        logger.debug(f"{self.table_name}: saved batch of {len(records)} ({self.descriptor.conflict_policy.value})")

        if self.descriptor.scope_field is None:
            return await self.find_all()
        if scope_id is not None:
            return await self.find_by_scope(scope_id)
        scopes = {self.descriptor.scope_of(record) for record in records}
        if len(scopes) == 1:
            return await self.find_by_scope(scopes.pop())
        return await self.find_all()

    async def delete_all(self, commit: bool = True) -> int:
        """Delete every row. Pass commit=False to rebuild in one transaction."""
        async with self.operation("delete_all"):
            result = await self.session.execute(delete(self.table))
            if commit:
                await self.commit()
        return result.rowcount or 0

    async def delete_by_scope(self, scope_id: int, commit: bool = True) -> int:
        statement = delete(self.table).where(self._scope_column() == scope_id)
        async with self.operation("delete_by_scope"):
            result = await self.session.execute(statement)
            if commit:
                await self.commit()
        return result.rowcount or 0
