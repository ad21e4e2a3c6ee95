"""ETA estimation: routed durations with a straight-line fallback and traffic correction."""

import datetime
import logging
from typing import Callable, Sequence

from bustrack.core import geo
from bustrack.core.clock import to_local, utc_now
from bustrack.core.errors import ProviderUnavailable
from bustrack.core.models import (
    Coordinate,
    ETAResult,
    EtaSource,
    MultiStopETAResult,
    Stop,
    StopETA,
    StopEtaStatus,
)
from bustrack.core.route_cache import RouteCache
from bustrack.core.routing_client import RouteResult, RoutingProvider
from bustrack.core.traffic import TrafficModel, round_half_up

logger = logging.getLogger(__name__)

# Assumed mixed urban travel speed when no road routing is available (km/h)
FALLBACK_SPEED_KMH = 25.0
# Straight-line -> approximate road distance
ROAD_DISTANCE_FACTOR = 1.4
# Extra confidence spread for straight-line estimates
FALLBACK_CONFIDENCE_SPREAD = 0.3


class EtaEstimator:
    """Produces single-destination and multi-stop ETAs.

    Single-pair lookups go through the RouteCache; whole-route lookups hit the
    provider directly. Whenever routing is unavailable the estimate falls back
    to haversine distance at ``fallback_speed_kmh``.
    """

    def __init__(
        self,
        provider: RoutingProvider,
        cache: RouteCache | None = None,
        traffic: TrafficModel | None = None,
        *,
        fallback_speed_kmh: float = FALLBACK_SPEED_KMH,
        road_distance_factor: float = ROAD_DISTANCE_FACTOR,
        fallback_spread: float = FALLBACK_CONFIDENCE_SPREAD,
        utc_offset_minutes: int = 0,
        clock: Callable[[], datetime.datetime] = utc_now,
    ) -> None:
        if fallback_speed_kmh <= 0:
            raise ValueError("fallback_speed_kmh must be positive")
        self.provider = provider
        self.cache = cache
        self.traffic = traffic or TrafficModel()
        self.fallback_speed_ms = fallback_speed_kmh / 3.6
        self.road_distance_factor = road_distance_factor
        self.fallback_spread = fallback_spread
        self.utc_offset_minutes = utc_offset_minutes
        self._clock = clock

    # ------------------------------------------------------------------

    async def _route_pair(self, origin: Coordinate, destination: Coordinate) -> RouteResult | None:
        try:
            if self.cache is not None:
                return await self.cache.get_route(origin, destination)
            return await self.provider.route_pair(origin, destination)
        except ProviderUnavailable as e:
            logger.warning("Routing unavailable for single-stop ETA: %s", e)
            return None

    async def _route_many(self, waypoints: list[Coordinate]) -> RouteResult | None:
        try:
            return await self.provider.route(waypoints)
        except ProviderUnavailable as e:
            logger.warning("Routing unavailable for multi-stop ETA: %s", e)
            return None

    def _local_hour(self, now: datetime.datetime) -> int:
        return to_local(now, self.utc_offset_minutes).hour

    def _fallback_seconds(self, straight_m: float) -> float:
        return straight_m / self.fallback_speed_ms

    # ------------------------------------------------------------------

    async def single_stop_eta(
        self,
        origin: Coordinate,
        destination: Coordinate,
        include_geometry: bool = False,
    ) -> ETAResult:
        route = await self._route_pair(origin, destination)
        if route is not None:
            base_s = route.duration_s
            distance_m = route.distance_m
            source = EtaSource.ROUTED
            spread = 0.0
        else:
            straight_m = geo.distance(origin, destination)
            base_s = self._fallback_seconds(straight_m)
            distance_m = straight_m * self.road_distance_factor
            source = EtaSource.FALLBACK
            spread = self.fallback_spread

        now = self._clock()
        adj = self.traffic.adjust(base_s / 60.0, self._local_hour(now), spread)
        return ETAResult(
            minutes=adj.minutes,
            distance_meters=round_half_up(distance_m),
            estimated_arrival_time=now + datetime.timedelta(minutes=adj.minutes),
            confidence_range=adj.confidence_range,
            source=source,
            route_geometry=route.geometry if (route is not None and include_geometry) else None,
        )

    async def multi_stop_eta(
        self,
        origin: Coordinate,
        stops: Sequence[Stop],
        target_stop_id: int | None = None,
    ) -> MultiStopETAResult:
        """ETA to every stop in ``stops`` (in the given order) from ``origin``.

        With ``target_stop_id`` the list is truncated after the target. Traffic
        correction is applied to the cumulative duration at each stop.
        """
        stops = list(stops)
        target_idx = None
        if target_stop_id is not None:
            for i, s in enumerate(stops):
                if s.id == target_stop_id:
                    target_idx = i
                    break
            if target_idx is None:
                logger.debug("Target stop %s not in stop list, evaluating all %d stops", target_stop_id, len(stops))
            else:
                stops = stops[:target_idx + 1]

        if not stops:
            return MultiStopETAResult()

        route = await self._route_many([origin, *(s.coordinate for s in stops)])
        if route is not None and len(route.legs) != len(stops):
            logger.warning(
                "Routing returned %d legs for %d stops, using straight-line fallback",
                len(route.legs), len(stops),
            )
            route = None

        # Cumulative (duration_s, reported distance_m) at each stop
        cumulative: list[tuple[float, float]] = []
        if route is not None:
            source = EtaSource.ROUTED
            spread = 0.0
            cum_s = cum_m = 0.0
            for leg in route.legs:
                cum_s += leg.duration_s
                cum_m += leg.distance_m
                cumulative.append((cum_s, cum_m))
        else:
            source = EtaSource.FALLBACK
            spread = self.fallback_spread
            cum_straight = 0.0
            prev = origin
            for s in stops:
                cum_straight += geo.distance(prev, s.coordinate)
                prev = s.coordinate
                cumulative.append((
                    self._fallback_seconds(cum_straight),
                    cum_straight * self.road_distance_factor,
                ))

        now = self._clock()
        hour = self._local_hour(now)
        stop_etas = []
        for i, (s, (cum_s, cum_m)) in enumerate(zip(stops, cumulative)):
            adj = self.traffic.adjust(cum_s / 60.0, hour, spread)
            stop_etas.append(StopETA(
                stop_id=s.id,
                name=s.name,
                eta_minutes=adj.minutes,
                distance_meters=round_half_up(cum_m),
                estimated_arrival_time=now + datetime.timedelta(minutes=adj.minutes),
                confidence_range=adj.confidence_range,
                status=StopEtaStatus.NEXT if i == 0 else StopEtaStatus.UPCOMING,
            ))

        result = MultiStopETAResult(
            total_minutes=stop_etas[-1].eta_minutes,
            total_distance_meters=stop_etas[-1].distance_meters,
            stops=stop_etas,
            route_geometry=route.geometry if route is not None else None,
            source=source,
        )
        if target_idx is not None:
            result.stops_away = target_idx + 1
            result.target_stop_eta = stop_etas[target_idx]
        return result
