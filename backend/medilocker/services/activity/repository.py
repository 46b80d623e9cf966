"""Endorsement repository implementations."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from medilocker.models import Endorsement


class EndorsementRepository(Protocol):
    async def add(self, endorsement: Endorsement) -> Endorsement:
        ...

    async def count_for_doctor(self, doctor_id: str) -> int:
        ...

    async def list_for_doctor(self, doctor_id: str) -> list[Endorsement]:
        ...

    async def list_given_by(
        self, endorser_id: str, since: Optional[datetime] = None
    ) -> list[Endorsement]:
        ...


class SQLEndorsementRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(self, endorsement: Endorsement) -> Endorsement:
        self.db.add(endorsement)
        await self.db.commit()
        return endorsement

    async def count_for_doctor(self, doctor_id: str) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(Endorsement)
            .where(Endorsement.doctor_id == doctor_id)
        )
        return int(result.scalar_one())

    async def list_for_doctor(self, doctor_id: str) -> list[Endorsement]:
        result = await self.db.execute(
            select(Endorsement)
            .where(Endorsement.doctor_id == doctor_id)
            .order_by(Endorsement.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_given_by(
        self, endorser_id: str, since: Optional[datetime] = None
    ) -> list[Endorsement]:
        query = select(Endorsement).where(Endorsement.endorsed_by_id == endorser_id)
        if since is not None:
            query = query.where(Endorsement.created_at >= since)
        result = await self.db.execute(query.order_by(Endorsement.created_at.asc()))
        return list(result.scalars().all())


class InMemoryEndorsementRepository:
    """In-memory repository for tests and local demos."""

    def __init__(self):
        self._endorsements: list[Endorsement] = []

    async def add(self, endorsement: Endorsement) -> Endorsement:
        self._endorsements.append(endorsement)
        return endorsement

    async def count_for_doctor(self, doctor_id: str) -> int:
        return sum(1 for e in self._endorsements if e.doctor_id == doctor_id)

    async def list_for_doctor(self, doctor_id: str) -> list[Endorsement]:
        return sorted(
            (e for e in self._endorsements if e.doctor_id == doctor_id),
            key=lambda e: e.created_at,
            reverse=True,
        )

    async def list_given_by(
        self, endorser_id: str, since: Optional[datetime] = None
    ) -> list[Endorsement]:
        return sorted(
            (
                e
                for e in self._endorsements
                if e.endorsed_by_id == endorser_id and (since is None or e.created_at >= since)
            ),
            key=lambda e: e.created_at,
        )

    def clear(self) -> None:
        self._endorsements.clear()
