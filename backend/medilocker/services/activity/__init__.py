from medilocker.services.activity.aggregator import ActivityAggregator, DoctorProfile, DoctorStats
from medilocker.services.activity.graph import (
    ContributionDay,
    ContributionGraph,
    ContributionSummary,
)
from medilocker.services.activity.repository import (
    EndorsementRepository,
    InMemoryEndorsementRepository,
    SQLEndorsementRepository,
)

__all__ = [
    "ActivityAggregator",
    "ContributionDay",
    "ContributionGraph",
    "ContributionSummary",
    "DoctorProfile",
    "DoctorStats",
    "EndorsementRepository",
    "InMemoryEndorsementRepository",
    "SQLEndorsementRepository",
]
