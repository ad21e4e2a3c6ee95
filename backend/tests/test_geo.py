"""Tests for great-circle geometry helpers."""

import pytest

from bustrack.core.errors import InvalidInput
from bustrack.core.geo import bearing, decode_polyline, distance, knots_to_kmh, round_coordinate
from bustrack.core.models import Coordinate


def test_distance_is_symmetric():
    pairs = [
        (Coordinate(28.5672, 77.2100), Coordinate(28.6139, 77.2090)),
        (Coordinate(56.8389, 60.5900), Coordinate(-33.8688, 151.2093)),
        (Coordinate(0.0, 179.9), Coordinate(0.0, -179.9)),
    ]
    for a, b in pairs:
        assert distance(a, b) == pytest.approx(distance(b, a))


def test_distance_to_self_is_zero():
    c = Coordinate(28.5672, 77.2100)
    assert distance(c, c) == 0.0


def test_one_degree_latitude():
    # pi * 6371 km / 180 ~= 111.19 km
    d = distance(Coordinate(0.0, 0.0), Coordinate(1.0, 0.0))
    assert d == pytest.approx(111_195, rel=1e-3)


def test_bearing_cardinal_directions():
    origin = Coordinate(10.0, 10.0)
    assert bearing(origin, Coordinate(11.0, 10.0)) == pytest.approx(0.0, abs=1e-6)
    assert bearing(origin, Coordinate(10.0, 11.0)) == pytest.approx(90.0, abs=0.2)
    assert bearing(origin, Coordinate(9.0, 10.0)) == pytest.approx(180.0, abs=1e-6)
    assert bearing(origin, Coordinate(10.0, 9.0)) == pytest.approx(270.0, abs=0.2)


def test_bearing_range():
    b = bearing(Coordinate(28.6, 77.2), Coordinate(28.5, 77.1))
    assert 0.0 <= b < 360.0


def test_round_coordinate_collapses_near_duplicates():
    a = round_coordinate(Coordinate(28.567212, 77.210049))
    b = round_coordinate(Coordinate(28.567238, 77.209981))
    assert a == b == (28.5672, 77.21)


def test_decode_polyline_documented_points():
    # Sample from Google's encoded polyline documentation
    points = decode_polyline("_p~iF~ps|U_ulLnnqC_mqNvxq`@")
    assert [(p.latitude, p.longitude) for p in points] == [
        pytest.approx((38.5, -120.2)),
        pytest.approx((40.7, -120.95)),
        pytest.approx((43.252, -126.453)),
    ]


def test_decode_polyline_empty():
    assert decode_polyline("") == []


def test_knots_to_kmh():
    assert knots_to_kmh(10) == pytest.approx(18.52)


@pytest.mark.parametrize(
    "lat,lon",
    [(91.0, 0.0), (0.0, -181.0), (float("nan"), 0.0), (True, False), (28.5, True), ("28.5", 77.2)],
)
def test_invalid_coordinates_rejected(lat, lon):
    with pytest.raises(InvalidInput):
        Coordinate(lat, lon)
