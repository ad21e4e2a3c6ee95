"""Interfaces to the collaborators the tracker does not own."""

import datetime
from abc import ABC, abstractmethod

from bustrack.core.models import ActiveRoute, VisitRecord


class RouteRepository(ABC):
    """Read-only lookup of a vehicle's active route assignment."""

    @abstractmethod
    async def get_active_route(self, vehicle_id: str) -> ActiveRoute | None:
        """Return the active route with its stops, or None if unassigned."""


class VisitStore(ABC):
    """Persistence for VisitRecords, unique per (vehicle_id, stop_id, trip_date)."""

    @abstractmethod
    async def find_visits(self, vehicle_id: str, trip_date: datetime.date) -> list[VisitRecord]:
        ...

    @abstractmethod
    async def upsert_visit(self, record: VisitRecord) -> VisitRecord:
        """Insert ``record`` unless one exists for its key; return the stored record."""

    @abstractmethod
    async def delete_visits(self, vehicle_id: str, trip_date: datetime.date) -> int:
        """Delete all visits for a vehicle/day, returning how many were removed."""


class ProgressPublisher(ABC):
    """Delivers payloads to subscribers of a single vehicle."""

    @abstractmethod
    async def publish(self, vehicle_id: str, payload: dict) -> None:
        ...
