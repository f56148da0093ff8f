"""
Record repositories for clients, projects and tasks.

The orchestrator needs get/update by ID with optimistic concurrency, plus a
filtered select for picking targets. Every successful update bumps the record
version, and an update carrying an ``expected_version`` that no longer
matches raises RecordConflictError.
"""

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from ..connection import get_database
from ..models import RecordDB
from ..exceptions import (
    DatabaseConnectionError,
    DatabaseOperationError,
    EntityNotFoundError,
    RecordConflictError,
)
from ...models.bulk import RecordSnapshot, SelectionFilter, TargetType
from ...utils.retry import with_retry

logger = logging.getLogger(__name__)

DEFAULT_SELECT_LIMIT = 1000


class RecordRepository(ABC):
    """Record store contract consumed by the bulk orchestrator."""

    @abstractmethod
    async def get(self, record_type: TargetType, record_id: str) -> RecordSnapshot:
        """Return the record or raise EntityNotFoundError."""

    @abstractmethod
    async def get_many(self, record_type: TargetType, record_ids: Iterable[str]) -> Dict[str, RecordSnapshot]:
        """Return the records that exist, keyed by ID. Missing IDs are simply absent."""

    @abstractmethod
    async def update(
        self,
        record_type: TargetType,
        record_id: str,
        values: Dict[str, Any],
        expected_version: Optional[int] = None,
        unset: Iterable[str] = (),
    ) -> RecordSnapshot:
        """Merge ``values`` into the record and remove the ``unset`` fields. Returns the new snapshot."""

    @abstractmethod
    async def select(
        self,
        record_type: TargetType,
        filters: Optional[SelectionFilter] = None,
        limit: int = DEFAULT_SELECT_LIMIT,
    ) -> List[RecordSnapshot]:
        """Records of one type matching ``filters``, in store order, at most ``limit``."""


class InMemoryRecordRepository(RecordRepository):
    """Dict-backed record store. Default store and test double."""

    def __init__(self):
        self._records: Dict[TargetType, Dict[str, Dict[str, Any]]] = {t: {} for t in TargetType}
        self._lock = asyncio.Lock()
        self._unavailable = False
        self.write_count = 0

    def seed(self, record_type: TargetType, record_id: str, values: Dict[str, Any], version: int = 1) -> RecordSnapshot:
        """Insert or replace a record (test and bootstrap helper)."""
        record_type = TargetType(record_type)
        record_id = str(record_id)
        self._records[record_type][record_id] = {
            "version": version,
            "values": copy.deepcopy(values),
        }
        return self._snapshot(record_type, record_id)

    def set_unavailable(self, unavailable: bool = True):
        """Simulate the store going down."""
        self._unavailable = unavailable

    def _check_available(self):
        if self._unavailable:
            raise DatabaseConnectionError("Record store unavailable")

    def _snapshot(self, record_type: TargetType, record_id: str) -> RecordSnapshot:
        row = self._records[record_type][record_id]
        return RecordSnapshot(
            record_type=record_type,
            id=record_id,
            version=row["version"],
            values=copy.deepcopy(row["values"]),
        )

    async def get(self, record_type: TargetType, record_id: str) -> RecordSnapshot:
        self._check_available()
        record_type = TargetType(record_type)
        if record_id not in self._records[record_type]:
            raise EntityNotFoundError(record_type.singular, record_id)
        return self._snapshot(record_type, record_id)

    async def get_many(self, record_type: TargetType, record_ids: Iterable[str]) -> Dict[str, RecordSnapshot]:
        self._check_available()
        record_type = TargetType(record_type)
        return {
            rid: self._snapshot(record_type, rid)
            for rid in record_ids
            if rid in self._records[record_type]
        }

    async def select(
        self,
        record_type: TargetType,
        filters: Optional[SelectionFilter] = None,
        limit: int = DEFAULT_SELECT_LIMIT,
    ) -> List[RecordSnapshot]:
        self._check_available()
        record_type = TargetType(record_type)
        filters = filters if filters is not None else SelectionFilter()
        selected: List[RecordSnapshot] = []
        for record_id in self._records[record_type]:
            if len(selected) >= limit:
                break
            snapshot = self._snapshot(record_type, record_id)
            if filters.matches(snapshot):
                selected.append(snapshot)
        return selected

    async def update(
        self,
        record_type: TargetType,
        record_id: str,
        values: Dict[str, Any],
        expected_version: Optional[int] = None,
        unset: Iterable[str] = (),
    ) -> RecordSnapshot:
        self._check_available()
        record_type = TargetType(record_type)
        async with self._lock:
            row = self._records[record_type].get(record_id)
            if row is None:
                raise EntityNotFoundError(record_type.singular, record_id)
            if expected_version is not None and row["version"] != expected_version:
                raise RecordConflictError(record_type.singular, record_id, expected_version, row["version"])

            row["values"].update(copy.deepcopy(values))
            for field_name in unset:
                row["values"].pop(field_name, None)
            row["version"] += 1
            self.write_count += 1
            return self._snapshot(record_type, record_id)


class SqlRecordRepository(RecordRepository):
    """Record store backed by the ``bulk_records`` table."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory
        self.db = get_database() if session_factory is None else None

    def _session(self):
        if self._session_factory is not None:
            return self._session_factory.begin()
        return self.db.session()

    @staticmethod
    def _to_snapshot(row: RecordDB) -> RecordSnapshot:
        return RecordSnapshot(
            record_type=TargetType(row.record_type),
            id=row.record_id,
            version=row.version,
            values=dict(row.data or {}),
        )

    async def create(self, record_type: TargetType, record_id: str, values: Dict[str, Any]) -> RecordSnapshot:
        """Insert a new record at version 1."""
        record_type = TargetType(record_type)
        try:
            async with self._session() as session:
                row = RecordDB(
                    record_type=record_type.value,
                    record_id=str(record_id),
                    version=1,
                    data=dict(values),
                )
                session.add(row)
                await session.flush()
                logger.info(f"Created {record_type.singular} {record_id}")
                return self._to_snapshot(row)
        except IntegrityError as e:
            raise DatabaseOperationError(f"{record_type.singular} {record_id} already exists") from e
        except (OperationalError, OSError) as e:
            raise DatabaseConnectionError(f"Record store unavailable: {e}") from e

    async def get(self, record_type: TargetType, record_id: str) -> RecordSnapshot:
        record_type = TargetType(record_type)
        records = await self.get_many(record_type, [record_id])
        if record_id not in records:
            raise EntityNotFoundError(record_type.singular, record_id)
        return records[record_id]

    @with_retry(max_retries=2, base_delay=0.2, max_delay=2.0, retry_on=(DatabaseConnectionError,))
    async def get_many(self, record_type: TargetType, record_ids: Iterable[str]) -> Dict[str, RecordSnapshot]:
        record_type = TargetType(record_type)
        ids: List[str] = [str(rid) for rid in record_ids]
        if not ids:
            return {}
        try:
            async with self._session() as session:
                result = await session.execute(
                    select(RecordDB)
                    .where(RecordDB.record_type == record_type.value)
                    .where(RecordDB.record_id.in_(ids))
                )
                return {row.record_id: self._to_snapshot(row) for row in result.scalars().all()}
        except (OperationalError, OSError) as e:
            raise DatabaseConnectionError(f"Record store unavailable: {e}") from e

    @with_retry(max_retries=2, base_delay=0.2, max_delay=2.0, retry_on=(DatabaseConnectionError,))
    async def select(
        self,
        record_type: TargetType,
        filters: Optional[SelectionFilter] = None,
        limit: int = DEFAULT_SELECT_LIMIT,
    ) -> List[RecordSnapshot]:
        # Criteria are matched on the decoded field map, not in SQL.
        record_type = TargetType(record_type)
        filters = filters if filters is not None else SelectionFilter()
        selected: List[RecordSnapshot] = []
        try:
            async with self._session() as session:
                result = await session.execute(
                    select(RecordDB)
                    .where(RecordDB.record_type == record_type.value)
                    .order_by(RecordDB.id)
                )
                for row in result.scalars():
                    snapshot = self._to_snapshot(row)
                    if filters.matches(snapshot):
                        selected.append(snapshot)
                        if len(selected) >= limit:
                            break
        except (OperationalError, OSError) as e:
            raise DatabaseConnectionError(f"Record store unavailable: {e}") from e

        logger.debug(f"Selected {len(selected)} {record_type.value} (limit {limit})")
        return selected

    async def update(
        self,
        record_type: TargetType,
        record_id: str,
        values: Dict[str, Any],
        expected_version: Optional[int] = None,
        unset: Iterable[str] = (),
    ) -> RecordSnapshot:
        record_type = TargetType(record_type)
        try:
            async with self._session() as session:
                result = await session.execute(
                    select(RecordDB)
                    .where(RecordDB.record_type == record_type.value)
                    .where(RecordDB.record_id == record_id)
                )
                row = result.scalar_one_or_none()
                if row is None:
                    raise EntityNotFoundError(record_type.singular, record_id)

                current_version = row.version
                if expected_version is not None and current_version != expected_version:
                    raise RecordConflictError(record_type.singular, record_id, expected_version, current_version)

                merged = dict(row.data or {})
                merged.update(values)
                for field_name in unset:
                    merged.pop(field_name, None)

                # Compare-and-swap on version guards against a concurrent writer
                # between the SELECT and this UPDATE.
                outcome = await session.execute(
                    update(RecordDB)
                    .where(RecordDB.id == row.id)
                    .where(RecordDB.version == current_version)
                    .values(data=merged, version=current_version + 1)
                )
                if outcome.rowcount != 1:
                    raise RecordConflictError(
                        record_type.singular, record_id, current_version, current_version + 1
                    )

                return RecordSnapshot(
                    record_type=record_type,
                    id=record_id,
                    version=current_version + 1,
                    values=merged,
                )
        except (OperationalError, OSError) as e:
            raise DatabaseConnectionError(f"Record store unavailable: {e}") from e
        except DBAPIError as e:
            logger.error(f"Update failed for {record_type.singular} {record_id}: {e}")
            raise DatabaseOperationError(f"Failed to update {record_type.singular} {record_id}: {e}") from e


# Singleton
_record_repository: Optional[RecordRepository] = None


def get_record_repository() -> RecordRepository:
    """Get the configured record repository."""
    global _record_repository
    if _record_repository is None:
        if settings.bulk_record_store == "sql":
            _record_repository = SqlRecordRepository()
        else:
            _record_repository = InMemoryRecordRepository()
    return _record_repository


def set_record_repository(repository: Optional[RecordRepository]):
    """Swap the record repository (tests, alternative stores)."""
    global _record_repository
    _record_repository = repository
