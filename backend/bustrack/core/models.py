"""Value types shared by the ETA estimator and the stop progress tracker."""

import datetime
import math
from dataclasses import dataclass, field
from enum import Enum

from bustrack.core.errors import InvalidInput


@dataclass(frozen=True)
class Coordinate:
    """WGS-84 point in degrees."""

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        lat, lon = self.latitude, self.longitude
        # bool is an int subclass but never a coordinate
        numeric = all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in (lat, lon))
        if not numeric:
            raise InvalidInput(f"Coordinate values must be numeric: {lat!r}, {lon!r}")
        if not (math.isfinite(lat) and math.isfinite(lon)):
            raise InvalidInput(f"Coordinate values must be finite: {lat}, {lon}")
        if not -90.0 <= lat <= 90.0:
            raise InvalidInput(f"Invalid latitude: {lat}")
        if not -180.0 <= lon <= 180.0:
            raise InvalidInput(f"Invalid longitude: {lon}")


@dataclass(frozen=True)
class PositionReport:
    vehicle_id: str
    coordinate: Coordinate
    speed: float = 0.0  # km/h
    heading: float | None = None
    timestamp: datetime.datetime | None = None


@dataclass(frozen=True)
class Stop:
    id: int
    name: str
    coordinate: Coordinate
    sequence_order: int


@dataclass(frozen=True)
class ActiveRoute:
    """A vehicle's current route assignment with its stops."""

    route_id: int
    name: str
    stops: tuple[Stop, ...]

    def ordered_stops(self) -> list[Stop]:
        return sorted(self.stops, key=lambda s: s.sequence_order)

    def validate(self) -> None:
        """Reject stop lists the tracker cannot reason about."""
        if not self.stops:
            raise InvalidInput(f"Route {self.route_id} has no stops")
        ids = [s.id for s in self.stops]
        if len(set(ids)) != len(ids):
            raise InvalidInput(f"Route {self.route_id} has duplicate stop ids")
        orders = [s.sequence_order for s in self.stops]
        if len(set(orders)) != len(orders):
            raise InvalidInput(f"Route {self.route_id} has duplicate sequence orders")


@dataclass(frozen=True)
class VisitRecord:
    """At most one per (vehicle_id, stop_id, trip_date)."""

    vehicle_id: str
    stop_id: int
    route_id: int
    trip_date: datetime.date
    visited_at: datetime.datetime
    sequence_order: int | None = None


class EtaSource(str, Enum):
    ROUTED = "routed"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ConfidenceRange:
    min: int
    max: int


@dataclass
class ETAResult:
    minutes: int
    distance_meters: int
    estimated_arrival_time: datetime.datetime
    confidence_range: ConfidenceRange
    source: EtaSource
    route_geometry: str | None = None


class StopEtaStatus(str, Enum):
    NEXT = "next"
    UPCOMING = "upcoming"


@dataclass
class StopETA:
    stop_id: int
    name: str
    eta_minutes: int
    distance_meters: int
    estimated_arrival_time: datetime.datetime
    confidence_range: ConfidenceRange
    status: StopEtaStatus


@dataclass
class MultiStopETAResult:
    total_minutes: int = 0
    total_distance_meters: int = 0
    stops: list[StopETA] = field(default_factory=list)
    stops_away: int = 0
    target_stop_eta: StopETA | None = None
    route_geometry: str | None = None
    source: EtaSource = EtaSource.FALLBACK


class StopState(str, Enum):
    PASSED = "passed"
    CURRENT = "current"
    UPCOMING = "upcoming"


@dataclass
class StopStatus:
    stop_id: int
    name: str
    sequence_order: int
    state: StopState
    visited_at: datetime.datetime | None = None
    eta_minutes: int | None = None


@dataclass
class TripProgress:
    """Consolidated progress + ETA view for one vehicle and trip-day."""

    vehicle_id: str
    route_id: int
    trip_date: datetime.date
    stops: list[StopStatus]
    generated_at: datetime.datetime
    current_stop_id: int | None = None
    position: Coordinate | None = None
    recorded_stop_id: int | None = None
