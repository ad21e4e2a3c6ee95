"""Vehicle position ingestion and stop progress endpoints."""

import datetime

from fastapi import APIRouter, HTTPException

from bustrack.core.errors import NoActiveRoute
from bustrack.schemas.progress import PositionReportIn, ResetResult, TripProgressOut

router = APIRouter(prefix="/api/vehicles", tags=["vehicles"])

# Will be set by main.py
tracker = None


def _require_tracker():
    if tracker is None:
        raise HTTPException(status_code=503, detail="Tracker not initialized")
    return tracker


@router.post("/{vehicle_id}/positions", response_model=TripProgressOut | None)
async def post_position(vehicle_id: str, body: PositionReportIn):
    """Process one position report; null when the vehicle has no active route."""
    progress = await _require_tracker().process_position_update(
        vehicle_id, body.to_domain(vehicle_id),
    )
    if progress is None:
        return None
    return TripProgressOut.from_progress(progress)


@router.get("/{vehicle_id}/progress", response_model=TripProgressOut)
async def get_progress(vehicle_id: str, trip_date: datetime.date | None = None):
    """Passed/current/upcoming state of every stop on the vehicle's route."""
    progress = await _require_tracker().get_stop_progress(vehicle_id, trip_date)
    if progress is None:
        raise NoActiveRoute(vehicle_id)
    return TripProgressOut.from_progress(progress)


@router.delete("/{vehicle_id}/progress/{trip_date}", response_model=ResetResult)
async def reset_progress(vehicle_id: str, trip_date: datetime.date):
    """Delete the vehicle's visit records for a trip-day."""
    deleted = await _require_tracker().reset_trip_progress(vehicle_id, trip_date)
    return ResetResult(vehicle_id=vehicle_id, trip_date=trip_date, deleted=deleted)
