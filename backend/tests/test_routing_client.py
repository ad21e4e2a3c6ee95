"""Tests for OsrmClient against a mocked HTTP transport."""

import asyncio

import httpx
import pytest

from bustrack.core.errors import InvalidInput
from bustrack.core.models import Coordinate
from bustrack.core.routing_client import OsrmClient, _normalize_base_url

A = Coordinate(28.5672, 77.2100)
B = Coordinate(28.5772, 77.2100)
C = Coordinate(28.5872, 77.2100)

ROUTE_OK = {
    "code": "Ok",
    "routes": [
        {
            "duration": 540.5,
            "distance": 2310.0,
            "geometry": "_p~iF~ps|U_ulLnnqC",
            "legs": [
                {"duration": 240.0, "distance": 1100.0},
                {"duration": 300.5, "distance": 1210.0},
            ],
        }
    ],
}


def make_client(handler) -> OsrmClient:
    transport = httpx.MockTransport(handler)
    http = httpx.AsyncClient(transport=transport, base_url="http://osrm.test")
    return OsrmClient("http://osrm.test", client=http)


def test_route_parses_legs_and_geometry():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=ROUTE_OK)

    client = make_client(handler)
    result = asyncio.run(client.route([A, B, C]))

    assert result.duration_s == 540.5
    assert result.distance_m == 2310.0
    assert result.geometry == "_p~iF~ps|U_ulLnnqC"
    assert [leg.duration_s for leg in result.legs] == [240.0, 300.5]

    url = seen[0].url
    # lon,lat order
    assert url.path.startswith("/route/v1/driving/77.210000,28.567200;")
    assert url.params["overview"] == "full"
    assert url.params["geometries"] == "polyline"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(200, json={"code": "NoRoute", "routes": []}),
        httpx.Response(200, json={"code": "Ok", "routes": []}),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"code": "Ok", "routes": [{"distance": 10}]}),
    ],
)
def test_route_unavailable_returns_none(response):
    client = make_client(lambda request: response)
    assert asyncio.run(client.route([A, B])) is None


def test_route_connection_error_returns_none():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = make_client(handler)
    assert asyncio.run(client.route_pair(A, B)) is None


def test_route_requires_two_waypoints():
    client = make_client(lambda request: httpx.Response(200, json=ROUTE_OK))
    with pytest.raises(InvalidInput):
        asyncio.run(client.route([A]))


def test_is_healthy():
    healthy = make_client(lambda request: httpx.Response(200, json={"code": "Ok", "routes": []}))
    down = make_client(lambda request: httpx.Response(503))
    assert asyncio.run(healthy.is_healthy()) is True
    assert asyncio.run(down.is_healthy()) is False


def test_base_url_gets_scheme():
    assert _normalize_base_url("osrm:5000/") == "http://osrm:5000"
    assert _normalize_base_url("https://router.project-osrm.org") == "https://router.project-osrm.org"
