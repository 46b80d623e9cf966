from medilocker.services.access.engine import AccessGrantEngine, Collaborator
from medilocker.services.access.repository import (
    AccessRequestRepository,
    InMemoryAccessRequestRepository,
    SQLAccessRequestRepository,
)

__all__ = [
    "AccessGrantEngine",
    "AccessRequestRepository",
    "Collaborator",
    "InMemoryAccessRequestRepository",
    "SQLAccessRequestRepository",
]
