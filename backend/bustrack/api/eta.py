"""On-demand ETA endpoints, outside the tracking loop."""

from fastapi import APIRouter, HTTPException

from bustrack.schemas.eta import EtaResultOut, MultiEtaRequest, MultiStopEtaOut, SingleEtaRequest

router = APIRouter(prefix="/api/eta", tags=["eta"])

# Will be set by main.py
estimator = None


def _require_estimator():
    if estimator is None:
        raise HTTPException(status_code=503, detail="Estimator not initialized")
    return estimator


@router.post("/single", response_model=EtaResultOut)
async def single_stop_eta(body: SingleEtaRequest):
    result = await _require_estimator().single_stop_eta(
        body.origin.to_domain(),
        body.destination.to_domain(),
        include_geometry=body.include_geometry,
    )
    return EtaResultOut.model_validate(result)


@router.post("/multi", response_model=MultiStopEtaOut)
async def multi_stop_eta(body: MultiEtaRequest):
    """ETA to each stop in order, optionally up to a target stop."""
    result = await _require_estimator().multi_stop_eta(
        body.origin.to_domain(),
        [s.to_domain() for s in body.stops],
        target_stop_id=body.target_stop_id,
    )
    return MultiStopEtaOut.model_validate(result)
