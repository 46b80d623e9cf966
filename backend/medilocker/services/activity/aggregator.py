"""Activity aggregator: read-only views derived from commit and grant history.

Nothing here is stored as a counter. Every figure is recomputed from
record versions, access requests and endorsements on read.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time
from statistics import mean
from typing import Optional

from medilocker.config import settings
from medilocker.errors import ForbiddenError, NotFoundError, ValidationError
from medilocker.models import AccessRequest, AccessStatus, Endorsement, RecordVersion, User, UserRole
from medilocker.models.base import new_id
from medilocker.services.access.repository import AccessRequestRepository
from medilocker.services.activity.graph import (
    MAX_WEEKS,
    MIN_WEEKS,
    ContributionGraph,
    ContributionSummary,
)
from medilocker.services.activity.repository import EndorsementRepository
from medilocker.services.events import DoctorEndorsed, EventPublisher, NullPublisher
from medilocker.services.records.repository import RecordRepository
from medilocker.services.users import UserDirectory
from medilocker.utils.time import ensure_utc, utc_day, utcnow

logger = logging.getLogger("medilocker.activity")

MAX_SKILL_LENGTH = 80
MAX_NOTE_LENGTH = 500

SORT_DESCENDING = ("total_cases_handled", "active_cases", "record_accuracy_score", "endorsement_count")
SORT_ASCENDING = ("average_response_time_hours",)
SORT_FIELDS = SORT_DESCENDING + SORT_ASCENDING


@dataclass(frozen=True)
class DoctorStats:
    total_cases_handled: int
    active_cases: int
    average_response_time_hours: Optional[float]
    record_accuracy_score: Optional[float]
    endorsement_count: int
    last_active_at: Optional[datetime]


@dataclass(frozen=True)
class DoctorProfile:
    user: User
    stats: DoctorStats
    endorsement_counts: dict[str, int] = field(default_factory=dict)


def _ever_approved(request: AccessRequest) -> bool:
    return request.responded_at is not None and request.expires_at is not None


class ActivityAggregator:
    def __init__(
        self,
        records: RecordRepository,
        access: AccessRequestRepository,
        endorsements: EndorsementRepository,
        users: UserDirectory | None = None,
        publisher: EventPublisher | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.records = records
        self.access = access
        self.endorsements = endorsements
        self.users = users
        self.publisher = publisher or NullPublisher()
        self.clock = clock

    async def contribution_graph(
        self,
        doctor_id: str,
        weeks: int | None = None,
        today: date | None = None,
    ) -> ContributionGraph:
        """Daily counts of doctor commits and endorsements given, UTC days."""
        if weeks is None:
            weeks = settings.contribution_graph_weeks
        if not MIN_WEEKS <= weeks <= MAX_WEEKS:
            raise ValidationError(f"weeks must be between {MIN_WEEKS} and {MAX_WEEKS}")
        today = today or utc_day(self.clock())
        start = today.toordinal() - weeks * 7 + 1
        since = datetime.combine(date.fromordinal(start), time.min, tzinfo=UTC)

        counts: Counter[date] = Counter()
        for version in await self.records.list_versions_by_committer(doctor_id, since=since):
            if version.committed_by_role == UserRole.doctor:
                counts[utc_day(version.created_at)] += 1
        for endorsement in await self.endorsements.list_given_by(doctor_id, since=since):
            counts[utc_day(endorsement.created_at)] += 1
        return ContributionGraph(counts, today=today, weeks=weeks)

    async def summary(
        self,
        doctor_id: str,
        weeks: int | None = None,
        today: date | None = None,
    ) -> ContributionSummary:
        graph = await self.contribution_graph(doctor_id, weeks=weeks, today=today)
        return graph.summary()

    async def doctor_stats(self, doctor_id: str) -> DoctorStats:
        now = self.clock()
        requests = await self.access.list_for_doctor(doctor_id)
        approvals = [r for r in requests if _ever_approved(r)]
        active_patients = {
            r.patient_id
            for r in approvals
            if r.status == AccessStatus.approved.value and ensure_utc(r.expires_at) > now
        }

        commits = await self.records.list_versions_by_committer(doctor_id)
        owners = await self._record_owners({v.record_id for v in commits})
        given = await self.endorsements.list_given_by(doctor_id)

        last_active = [c.created_at for c in commits[-1:]] + [e.created_at for e in given[-1:]]
        return DoctorStats(
            total_cases_handled=len({r.patient_id for r in approvals}),
            active_cases=len(active_patients),
            average_response_time_hours=self._average_response_hours(approvals, commits, owners),
            record_accuracy_score=await self._accuracy_score(doctor_id, commits),
            endorsement_count=await self.endorsements.count_for_doctor(doctor_id),
            last_active_at=max((ensure_utc(t) for t in last_active), default=None),
        )

    async def endorse(
        self,
        *,
        doctor_id: str,
        endorser_id: str,
        endorser_role: str,
        skill: str,
        note: str | None = None,
    ) -> Endorsement:
        if endorser_role != UserRole.doctor:
            raise ForbiddenError("Only doctors can endorse doctors")
        if doctor_id == endorser_id:
            raise ValidationError("You cannot endorse yourself")
        skill = (skill or "").strip()
        if not skill or len(skill) > MAX_SKILL_LENGTH:
            raise ValidationError(f"Skill must be 1 to {MAX_SKILL_LENGTH} characters")
        note = (note or "").strip() or None
        if note and len(note) > MAX_NOTE_LENGTH:
            raise ValidationError(f"Note must be at most {MAX_NOTE_LENGTH} characters")
        if self.users is not None:
            doctor = await self.users.get(doctor_id)
            if doctor is None or doctor.role != UserRole.doctor:
                raise NotFoundError("Doctor not found")

        endorsement = await self.endorsements.add(
            Endorsement(
                id=new_id(),
                doctor_id=doctor_id,
                endorsed_by_id=endorser_id,
                skill=skill,
                note=note,
                created_at=self.clock(),
            )
        )
        logger.info("Doctor %s endorsed %s for %s", endorser_id, doctor_id, skill)
        await self.publisher.publish(
            DoctorEndorsed(doctor_id=doctor_id, endorsed_by_id=endorser_id, skill=skill)
        )
        return endorsement

    async def profile(self, doctor_id: str) -> DoctorProfile:
        if self.users is None:
            raise NotFoundError("Doctor not found")
        user = await self.users.get(doctor_id)
        if user is None or user.role != UserRole.doctor:
            raise NotFoundError("Doctor not found")
        return await self._profile(user)

    async def discover_doctors(
        self,
        specialization: str | None = None,
        min_cases: int | None = None,
        condition_tag: str | None = None,
        sort_by: str = "total_cases_handled",
    ) -> list[DoctorProfile]:
        """Doctor registry joined with derived stats, best first."""
        if sort_by not in SORT_FIELDS:
            raise ValidationError(f"sort_by must be one of: {', '.join(SORT_FIELDS)}")
        doctors = await self.users.doctors() if self.users is not None else []
        if specialization:
            needle = specialization.strip().lower()
            doctors = [d for d in doctors if needle in (d.specialization or "").lower()]
        if condition_tag:
            tag = condition_tag.strip().lower()
            doctors = [d for d in doctors if tag in d.condition_tag_list]

        profiles = [await self._profile(d) for d in doctors]
        if min_cases:
            profiles = [p for p in profiles if p.stats.total_cases_handled >= min_cases]

        # Doctors without a sample sort last either way.
        if sort_by in SORT_ASCENDING:
            return sorted(
                profiles,
                key=lambda p: (getattr(p.stats, sort_by) is None, getattr(p.stats, sort_by) or 0.0),
            )
        return sorted(
            profiles,
            key=lambda p: (getattr(p.stats, sort_by) is None, -(getattr(p.stats, sort_by) or 0)),
        )

    async def _profile(self, doctor: User) -> DoctorProfile:
        skills = Counter(e.skill for e in await self.endorsements.list_for_doctor(doctor.id))
        return DoctorProfile(
            user=doctor,
            stats=await self.doctor_stats(doctor.id),
            endorsement_counts=dict(skills.most_common()),
        )

    async def _record_owners(self, record_ids: set[str]) -> dict[str, str]:
        owners: dict[str, str] = {}
        for record_id in record_ids:
            record = await self.records.get_record(record_id, include_deleted=True)
            if record is not None:
                owners[record_id] = record.owner_id
        return owners

    @staticmethod
    def _average_response_hours(
        approvals: list[AccessRequest],
        commits: list[RecordVersion],
        owners: dict[str, str],
    ) -> Optional[float]:
        """Mean hours from each approval to the doctor's first commit for that patient."""
        samples: list[float] = []
        for request in approvals:
            approved_at = ensure_utc(request.responded_at)
            first = next(
                (
                    c
                    for c in commits
                    if owners.get(c.record_id) == request.patient_id
                    and ensure_utc(c.created_at) >= approved_at
                ),
                None,
            )
            if first is not None:
                samples.append((ensure_utc(first.created_at) - approved_at).total_seconds() / 3600)
        return round(mean(samples), 1) if samples else None

    async def _accuracy_score(self, doctor_id: str, commits: list[RecordVersion]) -> Optional[float]:
        """Share of the doctor's commits nobody else had to follow up on."""
        if not commits:
            return None
        history: dict[str, list[RecordVersion]] = defaultdict(list)
        for version in await self.records.list_versions_for_records({c.record_id for c in commits}):
            history[version.record_id].append(version)
        untouched = sum(
            1
            for commit in commits
            if not any(
                later.version_number > commit.version_number
                and later.committed_by_user_id != doctor_id
                for later in history[commit.record_id]
            )
        )
        return round(100 * untouched / len(commits), 1)
