"""Access grant engine: the lifecycle of doctors' access requests.

States::

    pending --approve--> approved --revoke--> revoked
       |                    |
       +----deny--> denied  +--(expires_at passes)--> expired

``denied``, ``revoked`` and ``expired`` are terminal. Every transition is a
compare-and-swap on ``status``; losing the race is a ``ConflictError``.
Expiry is silent: it emits no event and therefore no notification.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol

from medilocker.config import settings
from medilocker.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from medilocker.models import (
    AccessLevel,
    AccessRequest,
    AccessStatus,
    AllTypes,
    RecordTypeSelection,
    SpecificTypes,
    User,
    UserRole,
    select_record_types,
)
from medilocker.models.base import new_id
from medilocker.services.access.repository import AccessRequestRepository
from medilocker.services.events import (
    AccessRequested,
    AccessResponded,
    AccessRevoked,
    EventPublisher,
    NullPublisher,
)
from medilocker.utils.time import days_left, utcnow
from medilocker.utils.timeouts import bounded

logger = logging.getLogger("medilocker.access")

MIN_REASON_LENGTH = 10
MIN_EXPIRY_DAYS = 1
MAX_EXPIRY_DAYS = 365


class UserLookup(Protocol):
    async def get(self, user_id: str) -> Optional[User]:
        ...


@dataclass(frozen=True)
class Collaborator:
    request: AccessRequest
    days_left: int


def state_changed_message(current: str | None) -> str:
    if current is None:
        return "This access request has changed since you loaded it. Refresh and try again."
    return (
        f"This access request has changed since you loaded it (now '{current}'). "
        "Refresh and try again."
    )


class AccessGrantEngine:
    def __init__(
        self,
        repo: AccessRequestRepository,
        publisher: EventPublisher | None = None,
        users: UserLookup | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repo = repo
        self.publisher = publisher or NullPublisher()
        self.users = users
        self.clock = clock

    # ----- transitions -----

    async def create(
        self,
        *,
        doctor_id: str,
        doctor_role: str,
        patient_id: str,
        reason: str,
        access_level: str,
        requested_record_types: list[str],
        expiry_days: int,
    ) -> AccessRequest:
        if doctor_role != UserRole.doctor:
            raise ForbiddenError("Only doctors can request access")
        if doctor_id == patient_id:
            raise ValidationError("You cannot request access to your own records")
        reason = (reason or "").strip()
        if len(reason) < MIN_REASON_LENGTH:
            raise ValidationError(f"Reason must be at least {MIN_REASON_LENGTH} characters")
        if not MIN_EXPIRY_DAYS <= expiry_days <= MAX_EXPIRY_DAYS:
            raise ValidationError(
                f"Expiry must be between {MIN_EXPIRY_DAYS} and {MAX_EXPIRY_DAYS} days"
            )
        try:
            level = AccessLevel(access_level)
        except ValueError:
            raise ValidationError(f"Unknown access level: {access_level}") from None
        try:
            selection = select_record_types(requested_record_types)
        except ValueError as exc:
            raise ValidationError(str(exc)) from None

        if self.users is not None:
            patient = await self.users.get(patient_id)
            if patient is None or patient.role != UserRole.patient:
                raise NotFoundError("Patient not found")

        now = self.clock()
        request = await self.repo.add(
            AccessRequest(
                id=new_id(),
                doctor_id=doctor_id,
                patient_id=patient_id,
                reason=reason,
                access_level=level.value,
                requested_record_types=selection.serialize(),
                expiry_days=expiry_days,
                status=AccessStatus.pending.value,
                requested_at=now,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info(
            "Access request %s created: doctor=%s patient=%s level=%s types=%s days=%d",
            request.id,
            doctor_id,
            patient_id,
            level.value,
            selection.serialize(),
            expiry_days,
        )
        await self.publisher.publish(
            AccessRequested(
                request_id=request.id,
                doctor_id=doctor_id,
                patient_id=patient_id,
                access_level=level.value,
                record_types=tuple(selection.to_list()),
                expiry_days=expiry_days,
            )
        )
        return request

    async def respond(self, request_id: str, patient_id: str, approved: bool) -> AccessRequest:
        """Approve or deny a pending request. Only the addressed patient may call."""
        request = await self._owned_by_patient(request_id, patient_id)
        if request.status != AccessStatus.pending.value:
            raise ConflictError(state_changed_message(request.status), request.status)

        now = self.clock()
        if approved:
            changes = {
                "status": AccessStatus.approved.value,
                "responded_at": now,
                "expires_at": now + timedelta(days=request.expiry_days),
                "updated_at": now,
            }
        else:
            changes = {
                "status": AccessStatus.denied.value,
                "responded_at": now,
                "updated_at": now,
            }
        updated = await self.repo.transition(request_id, AccessStatus.pending, changes)
        if updated is None:
            raise await self._conflict(request_id)

        logger.info("Access request %s %s by patient", request_id, updated.status)
        await self.publisher.publish(
            AccessResponded(
                request_id=updated.id,
                doctor_id=updated.doctor_id,
                patient_id=updated.patient_id,
                approved=approved,
                expiry_days=updated.expiry_days,
            )
        )
        return updated

    async def revoke(self, request_id: str, patient_id: str) -> AccessRequest:
        """Withdraw an approved grant before it lapses."""
        await self.sweep_expired()
        request = await self._owned_by_patient(request_id, patient_id)
        if request.status != AccessStatus.approved.value:
            raise ConflictError(state_changed_message(request.status), request.status)

        now = self.clock()
        updated = await self.repo.transition(
            request_id,
            AccessStatus.approved,
            {"status": AccessStatus.revoked.value, "updated_at": now},
        )
        if updated is None:
            raise await self._conflict(request_id)

        logger.info("Access request %s revoked by patient", request_id)
        await self.publisher.publish(
            AccessRevoked(
                request_id=updated.id,
                doctor_id=updated.doctor_id,
                patient_id=updated.patient_id,
            )
        )
        return updated

    async def sweep_expired(self, now: datetime | None = None) -> int:
        """Move every lapsed approval to ``expired``. Idempotent, no notification."""
        expired = await self.repo.expire_lapsed(now or self.clock())
        if expired:
            logger.info("Expired %d lapsed access grants", expired)
        return expired

    # ----- authorization queries -----

    async def can_read(self, requester_id: str, owner_id: str, record_type: str) -> bool:
        return await bounded(
            self._is_granted(requester_id, owner_id, record_type, write=False),
            settings.authorization_timeout_seconds,
            "Authorization check",
        )

    async def can_write(self, requester_id: str, owner_id: str, record_type: str) -> bool:
        return await bounded(
            self._is_granted(requester_id, owner_id, record_type, write=True),
            settings.authorization_timeout_seconds,
            "Authorization check",
        )

    async def granted_types(self, doctor_id: str, patient_id: str) -> Optional[RecordTypeSelection]:
        """Union of the record types every current grant covers, or None."""
        grants = await bounded(
            self.repo.list_current_grants(patient_id, self.clock(), doctor_id=doctor_id),
            settings.authorization_timeout_seconds,
            "Authorization check",
        )
        if not grants:
            return None
        selections = [g.record_types for g in grants]
        if any(isinstance(s, AllTypes) for s in selections):
            return AllTypes()
        return SpecificTypes(frozenset().union(*(s.types for s in selections)))

    async def active_grantees(self, patient_id: str, record_type: str) -> list[str]:
        """Doctors currently holding a grant that covers ``record_type``."""
        grants = await self.repo.list_current_grants(patient_id, self.clock())
        return sorted({g.doctor_id for g in grants if g.record_types.covers(record_type)})

    async def _is_granted(self, requester_id: str, owner_id: str, record_type: str, write: bool) -> bool:
        if requester_id == owner_id:
            return True
        grants = await self.repo.list_current_grants(owner_id, self.clock(), doctor_id=requester_id)
        # Union semantics: any one covering grant is enough.
        return any(
            g.record_types.covers(record_type) and (g.allows_write or not write)
            for g in grants
        )

    # ----- reads -----

    async def get(self, request_id: str, requester_id: str) -> AccessRequest:
        request = await self.repo.get(request_id)
        if request is None:
            raise NotFoundError("Access request not found")
        if requester_id not in (request.doctor_id, request.patient_id):
            raise ForbiddenError("This access request is not addressed to you")
        return request

    async def list_incoming(
        self, patient_id: str, status: Optional[AccessStatus] = None
    ) -> list[AccessRequest]:
        await self.sweep_expired()
        return await self.repo.list_for_patient(patient_id, status)

    async def list_outgoing(
        self, doctor_id: str, status: Optional[AccessStatus] = None
    ) -> list[AccessRequest]:
        await self.sweep_expired()
        return await self.repo.list_for_doctor(doctor_id, status)

    async def collaborators(self, patient_id: str) -> list[Collaborator]:
        """The patient's current grants, soonest expiry first."""
        now = self.clock()
        grants = await self.repo.list_current_grants(patient_id, now)
        collaborators = [Collaborator(request=g, days_left=days_left(g.expires_at, now)) for g in grants]
        return sorted(collaborators, key=lambda c: c.request.expires_at)

    async def _owned_by_patient(self, request_id: str, patient_id: str) -> AccessRequest:
        request = await self.repo.get(request_id)
        if request is None:
            raise NotFoundError("Access request not found")
        if request.patient_id != patient_id:
            raise ForbiddenError("Only the patient this request is addressed to can change it")
        return request

    async def _conflict(self, request_id: str) -> ConflictError:
        current = await self.repo.get(request_id)
        status = current.status if current is not None else None
        logger.info("Lost status race on access request %s (now %s)", request_id, status)
        return ConflictError(state_changed_message(status), status)
