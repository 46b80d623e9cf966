"""API Routes for Medilocker."""

from medilocker.api import (
    access_requests,
    auth,
    blobs,
    doctors,
    health,
    notifications,
    patients,
    records,
)

__all__ = [
    "access_requests",
    "auth",
    "blobs",
    "doctors",
    "health",
    "notifications",
    "patients",
    "records",
]
