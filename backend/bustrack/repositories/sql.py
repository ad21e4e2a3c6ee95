"""SQLAlchemy-backed route lookup and visit store."""

import datetime
import logging

from sqlalchemy import delete, select, text
from sqlalchemy.orm import selectinload

from bustrack.core.clock import as_utc
from bustrack.core.models import ActiveRoute, Coordinate, Stop, VisitRecord
from bustrack.core.ports import RouteRepository, VisitStore
from bustrack.models.tables import Route, StopVisit
from bustrack.models.tables import Stop as StopRow

logger = logging.getLogger(__name__)


class SqlRouteRepository(RouteRepository):
    """Reads the vehicle's active route and its ordered stops."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    async def get_active_route(self, vehicle_id: str) -> ActiveRoute | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Route)
                .where(Route.vehicle_id == vehicle_id, Route.is_active.is_(True))
                .options(selectinload(Route.stops))
                .order_by(Route.id)
                .limit(1)
            )
            route = result.scalar_one_or_none()
            if route is None:
                return None
            return ActiveRoute(
                route_id=route.id,
                name=route.name,
                stops=tuple(
                    Stop(
                        id=s.id,
                        name=s.name,
                        coordinate=Coordinate(latitude=s.lat, longitude=s.lon),
                        sequence_order=s.stop_order,
                    )
                    for s in route.stops
                ),
            )


class SqlVisitStore(VisitStore):
    """Visit records in ``stop_visits``; uniqueness comes from uq_stop_visit_day.

    Database errors propagate so the tracker can retry and surface them.
    """

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    @staticmethod
    def _visit_query():
        return select(
            StopVisit.vehicle_id,
            StopVisit.stop_id,
            StopVisit.route_id,
            StopVisit.trip_date,
            StopVisit.visited_at,
            StopRow.stop_order,
        ).join(StopRow, StopRow.id == StopVisit.stop_id)

    @staticmethod
    def _to_record(row) -> VisitRecord:
        return VisitRecord(
            vehicle_id=row.vehicle_id,
            stop_id=row.stop_id,
            route_id=row.route_id,
            trip_date=row.trip_date,
            visited_at=as_utc(row.visited_at),
            sequence_order=row.stop_order,
        )

    async def find_visits(self, vehicle_id: str, trip_date: datetime.date) -> list[VisitRecord]:
        async with self.session_factory() as session:
            rows = await session.execute(
                self._visit_query()
                .where(StopVisit.vehicle_id == vehicle_id, StopVisit.trip_date == trip_date)
                .order_by(StopVisit.visited_at)
            )
            return [self._to_record(r) for r in rows]

    async def upsert_visit(self, record: VisitRecord) -> VisitRecord:
        async with self.session_factory() as session:
            await session.execute(
                text("""
                    INSERT INTO stop_visits (vehicle_id, stop_id, route_id, trip_date, visited_at)
                    VALUES (:vid, :sid, :rid, :trip_date, :visited_at)
                    ON CONFLICT (vehicle_id, stop_id, trip_date) DO NOTHING
                """),
                {
                    "vid": record.vehicle_id,
                    "sid": record.stop_id,
                    "rid": record.route_id,
                    "trip_date": record.trip_date,
                    "visited_at": record.visited_at,
                },
            )
            await session.commit()

            # Read back: the existing row wins if another writer got there first
            rows = await session.execute(
                self._visit_query()
                .where(
                    StopVisit.vehicle_id == record.vehicle_id,
                    StopVisit.stop_id == record.stop_id,
                    StopVisit.trip_date == record.trip_date,
                )
            )
            stored = rows.one()
            return self._to_record(stored)

    async def delete_visits(self, vehicle_id: str, trip_date: datetime.date) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                delete(StopVisit).where(
                    StopVisit.vehicle_id == vehicle_id,
                    StopVisit.trip_date == trip_date,
                )
            )
            await session.commit()
            logger.debug("Deleted %d visits for %s on %s", result.rowcount, vehicle_id, trip_date)
            return result.rowcount or 0
