"""Diagnostics for the route cache and routing provider."""

from fastapi import APIRouter

router = APIRouter(prefix="/api/diagnostics", tags=["diagnostics"])

# Will be set by main.py
route_cache = None
routing = None


@router.get("/cache")
async def get_cache_stats():
    if route_cache is None:
        return {"error": "Route cache not initialized"}
    return route_cache.stats()


@router.delete("/cache")
async def clear_cache():
    if route_cache is None:
        return {"error": "Route cache not initialized"}
    route_cache.clear()
    return route_cache.stats()


@router.get("/routing")
async def get_routing_health():
    """Probe the routing provider with a short route request."""
    if routing is None:
        return {"error": "Routing client not initialized"}
    healthy = await routing.is_healthy()
    return {"provider": routing.base_url, "healthy": healthy}
