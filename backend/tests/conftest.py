import datetime

import pytest

from bustrack.core.models import ActiveRoute, Stop
from fakes import UTC, FakeClock, make_route_stops


@pytest.fixture
def route_stops() -> tuple[Stop, ...]:
    return make_route_stops()


@pytest.fixture
def active_route(route_stops) -> ActiveRoute:
    return ActiveRoute(route_id=7, name="Campus Loop", stops=route_stops)


@pytest.fixture
def clock() -> FakeClock:
    # 05:30 UTC is 11:00 at UTC+05:30, the "normal" traffic band
    return FakeClock(datetime.datetime(2026, 3, 2, 5, 30, tzinfo=UTC))


@pytest.fixture
def anyio_backend() -> str:
    # the service runs on asyncio (FastAPI/uvicorn); trio is not a supported backend
    return "asyncio"
