import datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field

from bustrack.core.geo import decode_polyline
from bustrack.core.models import Coordinate, EtaSource, Stop, StopEtaStatus


class CoordinateSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)

    def to_domain(self) -> Coordinate:
        return Coordinate(latitude=self.latitude, longitude=self.longitude)


class StopSchema(BaseModel):
    id: int
    name: str = ""
    coordinate: CoordinateSchema
    sequence_order: int

    def to_domain(self) -> Stop:
        return Stop(
            id=self.id,
            name=self.name,
            coordinate=self.coordinate.to_domain(),
            sequence_order=self.sequence_order,
        )


class ConfidenceRangeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    min: int
    max: int


class RouteGeometryOut(BaseModel):
    """Encoded route polyline plus its decoded points for map clients."""

    route_geometry: str | None = None

    @computed_field
    @property
    def route_coordinates(self) -> list[CoordinateSchema] | None:
        if not self.route_geometry:
            return None
        return [
            CoordinateSchema(latitude=c.latitude, longitude=c.longitude)
            for c in decode_polyline(self.route_geometry)
        ]


class EtaResultOut(RouteGeometryOut):
    model_config = ConfigDict(from_attributes=True)

    minutes: int
    distance_meters: int
    estimated_arrival_time: datetime.datetime
    confidence_range: ConfidenceRangeOut
    source: EtaSource


class StopEtaOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stop_id: int
    name: str
    eta_minutes: int
    distance_meters: int
    estimated_arrival_time: datetime.datetime
    confidence_range: ConfidenceRangeOut
    status: StopEtaStatus


class MultiStopEtaOut(RouteGeometryOut):
    model_config = ConfigDict(from_attributes=True)

    total_minutes: int
    total_distance_meters: int
    stops: list[StopEtaOut] = []
    stops_away: int
    target_stop_eta: StopEtaOut | None = None
    source: EtaSource


class SingleEtaRequest(BaseModel):
    origin: CoordinateSchema
    destination: CoordinateSchema
    include_geometry: bool = False


class MultiEtaRequest(BaseModel):
    origin: CoordinateSchema
    stops: list[StopSchema] = []
    target_stop_id: int | None = None
