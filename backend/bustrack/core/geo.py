"""Great-circle geometry helpers on a spherical Earth."""

import math

from bustrack.core.models import Coordinate

EARTH_RADIUS_M = 6_371_000.0

KNOTS_TO_KMH = 1.852


def distance(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance in meters between two coordinates."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(b.longitude - a.longitude)
    s = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2)
    # Clamp guards against tiny float overshoot for antipodal points
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(min(1.0, s)))


def bearing(a: Coordinate, b: Coordinate) -> float:
    """Initial compass bearing in degrees [0, 360) from a to b."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlon = math.radians(b.longitude - a.longitude)
    x = math.sin(dlon) * math.cos(lat2)
    y = (math.cos(lat1) * math.sin(lat2) -
         math.sin(lat1) * math.cos(lat2) * math.cos(dlon))
    return math.degrees(math.atan2(x, y)) % 360


def round_coordinate(c: Coordinate, precision: int = 4) -> tuple[float, float]:
    """Round lat/lon independently; 4 decimals is roughly 11 m."""
    return (round(c.latitude, precision), round(c.longitude, precision))


def knots_to_kmh(knots: float) -> float:
    return knots * KNOTS_TO_KMH


def decode_polyline(encoded: str, precision: int = 5) -> list[Coordinate]:
    """Decode a Google encoded polyline (the OSRM default geometry format)."""
    factor = 10 ** precision
    points: list[Coordinate] = []
    index = lat = lon = 0

    while index < len(encoded):
        deltas = []
        for _ in range(2):
            result = shift = 0
            while True:
                if index >= len(encoded):
                    raise ValueError("Truncated polyline")
                b = ord(encoded[index]) - 63
                index += 1
                result |= (b & 0x1F) << shift
                shift += 5
                if b < 0x20:
                    break
            deltas.append(~(result >> 1) if result & 1 else result >> 1)
        lat += deltas[0]
        lon += deltas[1]
        points.append(Coordinate(latitude=lat / factor, longitude=lon / factor))

    return points
