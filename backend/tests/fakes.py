"""Test doubles for the tracker's collaborators."""

import datetime
from typing import Sequence

from bustrack.core.models import ActiveRoute, Coordinate, Stop, VisitRecord
from bustrack.core.ports import ProgressPublisher, RouteRepository, VisitStore
from bustrack.core.routing_client import RouteLeg, RouteResult, RoutingProvider

UTC = datetime.timezone.utc


class FakeRoutingProvider(RoutingProvider):
    """Returns a canned result (or None when ``fail``) and counts calls."""

    def __init__(
        self,
        result: RouteResult | None = None,
        fail: bool = False,
        seconds_per_leg: float = 300.0,
        meters_per_leg: float = 2000.0,
    ) -> None:
        self.result = result
        self.fail = fail
        self.seconds_per_leg = seconds_per_leg
        self.meters_per_leg = meters_per_leg
        self.calls: list[list[Coordinate]] = []

    async def route(self, waypoints: Sequence[Coordinate]) -> RouteResult | None:
        self.calls.append(list(waypoints))
        if self.fail:
            return None
        if self.result is not None:
            return self.result
        n = len(waypoints) - 1
        legs = tuple(RouteLeg(self.seconds_per_leg, self.meters_per_leg) for _ in range(n))
        return RouteResult(
            duration_s=self.seconds_per_leg * n,
            distance_m=self.meters_per_leg * n,
            geometry="_p~iF~ps|U_ulLnnqC",
            legs=legs,
        )


class InMemoryVisitStore(VisitStore):
    """Dict-backed store; ``fail_next`` makes the next N calls raise."""

    def __init__(self) -> None:
        self.records: dict[tuple[str, int, datetime.date], VisitRecord] = {}
        self.fail_next = 0
        self.upsert_calls = 0

    def _maybe_fail(self) -> None:
        if self.fail_next > 0:
            self.fail_next -= 1
            raise ConnectionError("visit store unreachable")

    async def find_visits(self, vehicle_id: str, trip_date: datetime.date) -> list[VisitRecord]:
        self._maybe_fail()
        return [
            r for (vid, _, day), r in self.records.items()
            if vid == vehicle_id and day == trip_date
        ]

    async def upsert_visit(self, record: VisitRecord) -> VisitRecord:
        self.upsert_calls += 1
        self._maybe_fail()
        key = (record.vehicle_id, record.stop_id, record.trip_date)
        return self.records.setdefault(key, record)

    async def delete_visits(self, vehicle_id: str, trip_date: datetime.date) -> int:
        self._maybe_fail()
        keys = [k for k in self.records if k[0] == vehicle_id and k[2] == trip_date]
        for k in keys:
            del self.records[k]
        return len(keys)


class FakeRouteRepository(RouteRepository):
    def __init__(self, routes: dict[str, ActiveRoute] | None = None) -> None:
        self.routes = routes or {}

    async def get_active_route(self, vehicle_id: str) -> ActiveRoute | None:
        return self.routes.get(vehicle_id)


class RecordingPublisher(ProgressPublisher):
    def __init__(self) -> None:
        self.published: list[tuple[str, dict]] = []

    async def publish(self, vehicle_id: str, payload: dict) -> None:
        self.published.append((vehicle_id, payload))

    def of_type(self, kind: str) -> list[dict]:
        return [p for _, p in self.published if p.get("type") == kind]


class FakeClock:
    def __init__(self, now: datetime.datetime) -> None:
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += datetime.timedelta(**kwargs)


async def no_sleep(_seconds: float) -> None:
    return None


def make_route_stops() -> tuple[Stop, ...]:
    """Four stops heading north from (28.5672, 77.2100), ~1.1 km apart."""
    return (
        Stop(id=11, name="Gate A", coordinate=Coordinate(28.5672, 77.2100), sequence_order=1),
        Stop(id=12, name="Market", coordinate=Coordinate(28.5772, 77.2100), sequence_order=2),
        Stop(id=13, name="Library", coordinate=Coordinate(28.5872, 77.2100), sequence_order=3),
        Stop(id=14, name="Depot", coordinate=Coordinate(28.5972, 77.2100), sequence_order=4),
    )
