"""Access request repository implementations."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from medilocker.models import AccessRequest, AccessStatus


class AccessRequestRepository(Protocol):
    async def add(self, request: AccessRequest) -> AccessRequest:
        ...

    async def get(self, request_id: str) -> Optional[AccessRequest]:
        ...

    async def transition(
        self,
        request_id: str,
        expected: AccessStatus,
        changes: dict[str, Any],
    ) -> Optional[AccessRequest]:
        """Apply ``changes`` only if the status is still ``expected``.

        Returns the updated request, or None when the status had moved on.
        """
        ...

    async def expire_lapsed(self, now: datetime) -> int:
        ...

    async def list_for_patient(
        self, patient_id: str, status: Optional[AccessStatus] = None
    ) -> list[AccessRequest]:
        ...

    async def list_for_doctor(
        self, doctor_id: str, status: Optional[AccessStatus] = None
    ) -> list[AccessRequest]:
        ...

    async def list_current_grants(
        self,
        patient_id: str,
        now: datetime,
        doctor_id: Optional[str] = None,
    ) -> list[AccessRequest]:
        ...


class SQLAccessRequestRepository:
    """Access requests backed by SQLAlchemy.

    Status changes are single UPDATE statements guarded by the expected
    status, so two racing transitions cannot both win.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(self, request: AccessRequest) -> AccessRequest:
        self.db.add(request)
        await self.db.commit()
        return request

    async def get(self, request_id: str) -> Optional[AccessRequest]:
        result = await self.db.execute(
            select(AccessRequest)
            .where(AccessRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def transition(
        self,
        request_id: str,
        expected: AccessStatus,
        changes: dict[str, Any],
    ) -> Optional[AccessRequest]:
        result = await self.db.execute(
            update(AccessRequest)
            .where(
                AccessRequest.id == request_id,
                AccessRequest.status == expected.value,
            )
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            return None
        await self.db.commit()
        return await self.get(request_id)

    async def expire_lapsed(self, now: datetime) -> int:
        result = await self.db.execute(
            update(AccessRequest)
            .where(
                AccessRequest.status == AccessStatus.approved.value,
                AccessRequest.expires_at < now,
            )
            .values(status=AccessStatus.expired.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def list_for_patient(
        self, patient_id: str, status: Optional[AccessStatus] = None
    ) -> list[AccessRequest]:
        query = select(AccessRequest).where(AccessRequest.patient_id == patient_id)
        if status is not None:
            query = query.where(AccessRequest.status == status.value)
        return await self._all(query)

    async def list_for_doctor(
        self, doctor_id: str, status: Optional[AccessStatus] = None
    ) -> list[AccessRequest]:
        query = select(AccessRequest).where(AccessRequest.doctor_id == doctor_id)
        if status is not None:
            query = query.where(AccessRequest.status == status.value)
        return await self._all(query)

    async def list_current_grants(
        self,
        patient_id: str,
        now: datetime,
        doctor_id: Optional[str] = None,
    ) -> list[AccessRequest]:
        query = select(AccessRequest).where(
            AccessRequest.patient_id == patient_id,
            AccessRequest.status == AccessStatus.approved.value,
            AccessRequest.expires_at > now,
        )
        if doctor_id is not None:
            query = query.where(AccessRequest.doctor_id == doctor_id)
        return await self._all(query)

    async def _all(self, query) -> list[AccessRequest]:
        result = await self.db.execute(
            query.order_by(AccessRequest.requested_at.desc()).execution_options(
                populate_existing=True
            )
        )
        return list(result.scalars().all())


class InMemoryAccessRequestRepository:
    """In-memory repository for tests and local demos."""

    def __init__(self):
        self._requests: dict[str, AccessRequest] = {}

    async def add(self, request: AccessRequest) -> AccessRequest:
        self._requests[request.id] = request
        return request

    async def get(self, request_id: str) -> Optional[AccessRequest]:
        await asyncio.sleep(0)
        return self._requests.get(request_id)

    async def transition(
        self,
        request_id: str,
        expected: AccessStatus,
        changes: dict[str, Any],
    ) -> Optional[AccessRequest]:
        await asyncio.sleep(0)
        # No await between the check and the write: this is the compare-and-swap.
        request = self._requests.get(request_id)
        if request is None or request.status != expected.value:
            return None
        for key, value in changes.items():
            setattr(request, key, value)
        return request

    async def expire_lapsed(self, now: datetime) -> int:
        expired = 0
        for request in self._requests.values():
            if (
                request.status == AccessStatus.approved.value
                and request.expires_at is not None
                and request.expires_at < now
            ):
                request.status = AccessStatus.expired.value
                request.updated_at = now
                expired += 1
        return expired

    async def list_for_patient(
        self, patient_id: str, status: Optional[AccessStatus] = None
    ) -> list[AccessRequest]:
        return self._sorted(
            r
            for r in self._requests.values()
            if r.patient_id == patient_id and (status is None or r.status == status.value)
        )

    async def list_for_doctor(
        self, doctor_id: str, status: Optional[AccessStatus] = None
    ) -> list[AccessRequest]:
        return self._sorted(
            r
            for r in self._requests.values()
            if r.doctor_id == doctor_id and (status is None or r.status == status.value)
        )

    async def list_current_grants(
        self,
        patient_id: str,
        now: datetime,
        doctor_id: Optional[str] = None,
    ) -> list[AccessRequest]:
        return self._sorted(
            r
            for r in self._requests.values()
            if r.patient_id == patient_id
            and r.status == AccessStatus.approved.value
            and r.expires_at is not None
            and r.expires_at > now
            and (doctor_id is None or r.doctor_id == doctor_id)
        )

    @staticmethod
    def _sorted(requests) -> list[AccessRequest]:
        return sorted(requests, key=lambda r: r.requested_at, reverse=True)

    def clear(self) -> None:
        self._requests.clear()
