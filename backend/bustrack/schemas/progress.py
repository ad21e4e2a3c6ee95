import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

from bustrack.core.geo import knots_to_kmh
from bustrack.core.models import PositionReport, StopState, TripProgress
from bustrack.schemas.eta import CoordinateSchema


class PositionReportIn(BaseModel):
    coordinate: CoordinateSchema
    speed: float = 0.0
    # GPS trackers such as Traccar report knots
    speed_unit: Literal["kmh", "knots"] = "kmh"
    heading: float | None = None
    timestamp: datetime.datetime | None = None

    def to_domain(self, vehicle_id: str) -> PositionReport:
        """Domain report with speed in km/h."""
        speed = knots_to_kmh(self.speed) if self.speed_unit == "knots" else self.speed
        return PositionReport(
            vehicle_id=vehicle_id,
            coordinate=self.coordinate.to_domain(),
            speed=speed,
            heading=self.heading,
            timestamp=self.timestamp,
        )


class StopStatusOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stop_id: int
    name: str
    sequence_order: int
    state: StopState
    visited_at: datetime.datetime | None = None
    eta_minutes: int | None = None


class TripProgressOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: str = "progress"
    vehicle_id: str
    route_id: int
    trip_date: datetime.date
    current_stop_id: int | None = None
    recorded_stop_id: int | None = None
    position: CoordinateSchema | None = None
    stops: list[StopStatusOut] = []
    generated_at: datetime.datetime

    @classmethod
    def from_progress(cls, progress: TripProgress) -> "TripProgressOut":
        return cls.model_validate(progress)


class ArrivingEvent(BaseModel):
    type: str = "arriving"
    vehicle_id: str
    stop_id: int
    stop_name: str
    minutes_away: int
    message: str
    timestamp: datetime.datetime


class ResetResult(BaseModel):
    vehicle_id: str
    trip_date: datetime.date
    deleted: int
