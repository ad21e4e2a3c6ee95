"""Async client for an OSRM-compatible road routing provider."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Sequence

import httpx

from bustrack.core.errors import InvalidInput, ProviderUnavailable
from bustrack.core.models import Coordinate

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 10.0
HEALTH_TIMEOUT_S = 3.0

# Short hop used by the health probe
_HEALTH_PROBE = "77.209,28.614;77.21,28.615"


@dataclass(frozen=True)
class RouteLeg:
    duration_s: float
    distance_m: float


@dataclass(frozen=True)
class RouteResult:
    duration_s: float
    distance_m: float
    geometry: str | None = None  # encoded polyline
    legs: tuple[RouteLeg, ...] = field(default_factory=tuple)


class RoutingProvider(ABC):
    """Anything that can route an ordered list of waypoints.

    Implementations return ``None`` when the provider is unavailable and never
    raise for provider-side conditions.
    """

    @abstractmethod
    async def route(self, waypoints: Sequence[Coordinate]) -> RouteResult | None:
        ...

    async def route_pair(self, origin: Coordinate, destination: Coordinate) -> RouteResult | None:
        return await self.route([origin, destination])


def _format_coords(coords: Sequence[Coordinate]) -> str:
    # OSRM expects lon,lat pairs
    return ";".join(f"{c.longitude:.6f},{c.latitude:.6f}" for c in coords)


def _normalize_base_url(url: str) -> str:
    url = url.strip().rstrip("/")
    if not url.startswith(("http://", "https://")):
        url = f"http://{url}"
    return url


class OsrmClient(RoutingProvider):
    """Routes waypoints through OSRM's /route service."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_S,
        profile: str = "driving",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = _normalize_base_url(base_url)
        self.profile = profile
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _get_ok(self, path: str, params: dict, label: str, timeout: float | None = None) -> dict:
        """GET a provider endpoint and return the JSON body if ``code == "Ok"``."""
        kwargs = {"params": params}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            resp = await self._client.get(path, **kwargs)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise ProviderUnavailable(f"{label}: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"{label}: {type(e).__name__}: {e}") from e
        except ValueError as e:
            raise ProviderUnavailable(f"{label}: malformed JSON") from e

        if not isinstance(data, dict) or data.get("code") != "Ok":
            code = data.get("code") if isinstance(data, dict) else None
            raise ProviderUnavailable(f"{label}: provider code {code!r}")
        return data

    async def route(self, waypoints: Sequence[Coordinate]) -> RouteResult | None:
        if len(waypoints) < 2:
            raise InvalidInput("At least two waypoints are required to compute a route")

        path = f"/route/v1/{self.profile}/{_format_coords(waypoints)}"
        params = {"overview": "full", "geometries": "polyline"}

        try:
            data = await self._get_ok(path, params, "route")
            routes = data.get("routes") or []
            if not routes:
                raise ProviderUnavailable("route: no routes returned")
            route = routes[0]
            legs = tuple(
                RouteLeg(duration_s=float(leg["duration"]), distance_m=float(leg["distance"]))
                for leg in route.get("legs", [])
            )
            result = RouteResult(
                duration_s=float(route["duration"]),
                distance_m=float(route["distance"]),
                geometry=route.get("geometry"),
                legs=legs,
            )
        except ProviderUnavailable as e:
            logger.warning("OSRM route for %d waypoints unavailable: %s", len(waypoints), e)
            return None
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("OSRM route response malformed: %s", e)
            return None

        logger.debug(
            "OSRM route %d waypoints: %.0fs %.0fm, %d legs",
            len(waypoints), result.duration_s, result.distance_m, len(result.legs),
        )
        return result

    async def is_healthy(self) -> bool:
        try:
            await self._get_ok(
                f"/route/v1/{self.profile}/{_HEALTH_PROBE}", {}, "health", timeout=HEALTH_TIMEOUT_S,
            )
        except ProviderUnavailable as e:
            logger.debug("OSRM health probe failed: %s", e)
            return False
        return True
