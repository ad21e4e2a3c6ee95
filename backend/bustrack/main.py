"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bustrack.api import diagnostics, eta, vehicles, ws
from bustrack.config import settings
from bustrack.core.broadcaster import Broadcaster
from bustrack.core.errors import InvalidInput, NoActiveRoute, PersistenceFailure
from bustrack.core.eta_estimator import EtaEstimator
from bustrack.core.route_cache import RouteCache
from bustrack.core.routing_client import OsrmClient
from bustrack.core.stop_tracker import StopProgressTracker
from bustrack.core.traffic import TrafficModel
from bustrack.db.session import async_session, engine
from bustrack.models.base import Base
from bustrack.models import tables  # noqa: F401
from bustrack.repositories.sql import SqlRouteRepository, SqlVisitStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    # Create tables if they don't exist
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Initialize services
    osrm = OsrmClient(settings.osrm_base_url, timeout=settings.osrm_timeout_seconds)
    route_cache = RouteCache(
        osrm,
        ttl_seconds=settings.route_cache_ttl_seconds,
        precision=settings.route_cache_precision,
    )
    estimator = EtaEstimator(
        osrm,
        route_cache,
        TrafficModel(),
        fallback_speed_kmh=settings.fallback_speed_kmh,
        road_distance_factor=settings.road_distance_factor,
        fallback_spread=settings.fallback_confidence_spread,
        utc_offset_minutes=settings.utc_offset_minutes,
    )
    broadcaster = Broadcaster(settings.redis_url)
    await broadcaster.connect()

    tracker = StopProgressTracker(
        SqlRouteRepository(async_session),
        SqlVisitStore(async_session),
        estimator,
        broadcaster,
        geofence_radius_m=settings.geofence_radius_m,
        current_window_s=settings.current_stop_window_seconds,
        max_retries=settings.persistence_max_retries,
        retry_backoff=settings.persistence_retry_backoff,
        utc_offset_minutes=settings.utc_offset_minutes,
        arriving_threshold_minutes=settings.arriving_threshold_minutes,
    )

    # Wire up API modules
    ws.broadcaster = broadcaster
    vehicles.tracker = tracker
    eta.estimator = estimator
    diagnostics.route_cache = route_cache
    diagnostics.routing = osrm

    logger.info("Bus tracker started - routing via %s", osrm.base_url)

    yield

    # Shutdown
    await osrm.close()
    await broadcaster.close()
    await engine.dispose()
    logger.info("Bus tracker shut down")


app = FastAPI(
    title="Bus Tracker Core",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InvalidInput)
async def invalid_input_handler(request: Request, exc: InvalidInput):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(NoActiveRoute)
async def no_active_route_handler(request: Request, exc: NoActiveRoute):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PersistenceFailure)
async def persistence_failure_handler(request: Request, exc: PersistenceFailure):
    logger.error("Request %s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Visit store unavailable"})


app.include_router(vehicles.router)
app.include_router(eta.router)
app.include_router(diagnostics.router)
app.include_router(ws.router)


@app.get("/api/health")
async def health():
    return {"status": "ok"}
