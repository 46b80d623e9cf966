"""Record repository implementations."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from medilocker.models import Record, RecordVersion

logger = logging.getLogger("medilocker.records")


class VersionContentionError(Exception):
    """The record stayed locked by other committers past the contention timeout."""


class RecordRepository(Protocol):
    async def create_record(self, record: Record, first_version: RecordVersion) -> Record:
        ...

    async def get_record(self, record_id: str, include_deleted: bool = False) -> Optional[Record]:
        ...

    async def append_version(
        self,
        record_id: str,
        version: RecordVersion,
        title: str,
        tags: Optional[str],
    ) -> Optional[RecordVersion]:
        ...

    async def list_versions(self, record_id: str) -> list[RecordVersion]:
        ...

    async def get_version(self, record_id: str, version_id: str) -> Optional[RecordVersion]:
        ...

    async def tombstone(self, record_id: str, deleted_at: datetime) -> bool:
        ...

    async def list_records(
        self, owner_id: str, record_types: Optional[Iterable[str]] = None
    ) -> list[Record]:
        ...

    async def list_recent_versions(
        self, owner_id: str, limit: int
    ) -> list[tuple[RecordVersion, Record]]:
        ...

    async def list_versions_by_committer(
        self, committer_id: str, since: Optional[datetime] = None
    ) -> list[RecordVersion]:
        ...

    async def list_versions_for_records(self, record_ids: Iterable[str]) -> list[RecordVersion]:
        ...


class SQLRecordRepository:
    """Record repository backed by SQLAlchemy.

    Version numbers come from an atomic increment of
    ``records.current_version_number``. The UPDATE holds the record's write
    lock until commit, so concurrent committers on one record queue behind it.
    The unique (record_id, version_number) constraint rejects anything that
    slips past it.
    """

    def __init__(self, db: AsyncSession, contention_timeout: float = 10.0):
        self.db = db
        self.contention_timeout = contention_timeout

    async def create_record(self, record: Record, first_version: RecordVersion) -> Record:
        first_version.record_id = record.id
        first_version.version_number = 1
        record.current_version_number = 1
        record.current_version_id = first_version.id
        self.db.add(record)
        await self.db.flush()
        self.db.add(first_version)
        await self.db.commit()
        return record

    async def get_record(self, record_id: str, include_deleted: bool = False) -> Optional[Record]:
        query = (
            select(Record)
            .where(Record.id == record_id)
            .execution_options(populate_existing=True)
        )
        if not include_deleted:
            query = query.where(Record.deleted_at.is_(None))
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def append_version(
        self,
        record_id: str,
        version: RecordVersion,
        title: str,
        tags: Optional[str],
    ) -> Optional[RecordVersion]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.contention_timeout
        attempt = 0
        while True:
            attempt += 1
            try:
                result = await self.db.execute(
                    update(Record)
                    .where(Record.id == record_id, Record.deleted_at.is_(None))
                    .values(
                        current_version_number=Record.current_version_number + 1,
                        current_version_id=version.id,
                        title=title,
                        tags=tags,
                        updated_at=version.created_at,
                    )
                    .returning(Record.current_version_number)
                    .execution_options(synchronize_session=False)
                )
                claimed = result.scalar_one_or_none()
                if claimed is None:
                    await self.db.rollback()
                    return None

                version.record_id = record_id
                version.version_number = claimed
                self.db.add(version)
                await self.db.commit()
                return version
            except (IntegrityError, OperationalError) as exc:
                await self.db.rollback()
                if loop.time() >= deadline:
                    raise VersionContentionError(record_id) from exc
                logger.debug("Version commit on record %s lost attempt %d: %s", record_id, attempt, exc)
                await asyncio.sleep(min(0.01 * attempt, 0.25))

    async def list_versions(self, record_id: str) -> list[RecordVersion]:
        result = await self.db.execute(
            select(RecordVersion)
            .where(
                RecordVersion.record_id == record_id,
                RecordVersion.deleted_at.is_(None),
            )
            .order_by(RecordVersion.version_number.asc())
        )
        return list(result.scalars().all())

    async def get_version(self, record_id: str, version_id: str) -> Optional[RecordVersion]:
        result = await self.db.execute(
            select(RecordVersion).where(
                RecordVersion.id == version_id,
                RecordVersion.record_id == record_id,
                RecordVersion.deleted_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def tombstone(self, record_id: str, deleted_at: datetime) -> bool:
        result = await self.db.execute(
            update(Record)
            .where(Record.id == record_id, Record.deleted_at.is_(None))
            .values(deleted_at=deleted_at, updated_at=deleted_at)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            return False
        await self.db.execute(
            update(RecordVersion)
            .where(RecordVersion.record_id == record_id)
            .values(deleted_at=deleted_at)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return True

    async def list_records(
        self, owner_id: str, record_types: Optional[Iterable[str]] = None
    ) -> list[Record]:
        query = select(Record).where(
            Record.owner_id == owner_id,
            Record.deleted_at.is_(None),
        )
        if record_types is not None:
            query = query.where(Record.record_type.in_(list(record_types)))
        query = query.order_by(Record.updated_at.desc()).execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_recent_versions(
        self, owner_id: str, limit: int
    ) -> list[tuple[RecordVersion, Record]]:
        result = await self.db.execute(
            select(RecordVersion, Record)
            .join(Record, Record.id == RecordVersion.record_id)
            .where(Record.owner_id == owner_id, Record.deleted_at.is_(None))
            .order_by(RecordVersion.created_at.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [(version, record) for version, record in result.all()]

    async def list_versions_by_committer(
        self, committer_id: str, since: Optional[datetime] = None
    ) -> list[RecordVersion]:
        # Tombstoned versions still count: activity is history, not current state.
        query = select(RecordVersion).where(
            RecordVersion.committed_by_user_id == committer_id
        )
        if since is not None:
            query = query.where(RecordVersion.created_at >= since)
        result = await self.db.execute(query.order_by(RecordVersion.created_at.asc()))
        return list(result.scalars().all())

    async def list_versions_for_records(self, record_ids: Iterable[str]) -> list[RecordVersion]:
        ids = list(record_ids)
        if not ids:
            return []
        result = await self.db.execute(
            select(RecordVersion)
            .where(RecordVersion.record_id.in_(ids))
            .order_by(RecordVersion.record_id, RecordVersion.version_number)
        )
        return list(result.scalars().all())


class InMemoryRecordRepository:
    """In-memory repository for tests and local demos.

    A per-record ``asyncio.Lock`` is the serialization point for version
    numbers; the yield inside it lets concurrent commits interleave.
    """

    def __init__(self):
        self._records: dict[str, Record] = {}
        self._versions: dict[str, list[RecordVersion]] = defaultdict(list)
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def create_record(self, record: Record, first_version: RecordVersion) -> Record:
        first_version.record_id = record.id
        first_version.version_number = 1
        record.current_version_number = 1
        record.current_version_id = first_version.id
        self._records[record.id] = record
        self._versions[record.id].append(first_version)
        return record

    async def get_record(self, record_id: str, include_deleted: bool = False) -> Optional[Record]:
        record = self._records.get(record_id)
        if record is None or (record.deleted_at is not None and not include_deleted):
            return None
        return record

    async def append_version(
        self,
        record_id: str,
        version: RecordVersion,
        title: str,
        tags: Optional[str],
    ) -> Optional[RecordVersion]:
        async with self._locks[record_id]:
            record = await self.get_record(record_id)
            if record is None:
                return None
            observed = record.current_version_number
            await asyncio.sleep(0)
            version.record_id = record_id
            version.version_number = observed + 1
            self._versions[record_id].append(version)
            record.current_version_number = observed + 1
            record.current_version_id = version.id
            record.title = title
            record.tags = tags
            record.updated_at = version.created_at
            return version

    async def list_versions(self, record_id: str) -> list[RecordVersion]:
        return sorted(
            (v for v in self._versions.get(record_id, []) if v.deleted_at is None),
            key=lambda v: v.version_number,
        )

    async def get_version(self, record_id: str, version_id: str) -> Optional[RecordVersion]:
        for version in await self.list_versions(record_id):
            if version.id == version_id:
                return version
        return None

    async def tombstone(self, record_id: str, deleted_at: datetime) -> bool:
        async with self._locks[record_id]:
            record = await self.get_record(record_id)
            if record is None:
                return False
            record.deleted_at = deleted_at
            record.updated_at = deleted_at
            for version in self._versions.get(record_id, []):
                version.deleted_at = deleted_at
            return True

    async def list_records(
        self, owner_id: str, record_types: Optional[Iterable[str]] = None
    ) -> list[Record]:
        allowed = set(record_types) if record_types is not None else None
        records = [
            r
            for r in self._records.values()
            if r.owner_id == owner_id
            and r.deleted_at is None
            and (allowed is None or r.record_type in allowed)
        ]
        return sorted(records, key=lambda r: r.updated_at, reverse=True)

    async def list_recent_versions(
        self, owner_id: str, limit: int
    ) -> list[tuple[RecordVersion, Record]]:
        pairs = [
            (version, record)
            for record in await self.list_records(owner_id)
            for version in self._versions.get(record.id, [])
        ]
        pairs.sort(key=lambda pair: pair[0].created_at, reverse=True)
        return pairs[:limit]

    async def list_versions_by_committer(
        self, committer_id: str, since: Optional[datetime] = None
    ) -> list[RecordVersion]:
        versions = [
            v
            for versions in self._versions.values()
            for v in versions
            if v.committed_by_user_id == committer_id
            and (since is None or v.created_at >= since)
        ]
        return sorted(versions, key=lambda v: v.created_at)

    async def list_versions_for_records(self, record_ids: Iterable[str]) -> list[RecordVersion]:
        return [
            v
            for record_id in record_ids
            for v in sorted(self._versions.get(record_id, []), key=lambda v: v.version_number)
        ]

    def clear(self) -> None:
        self._records.clear()
        self._versions.clear()
        self._locks.clear()
