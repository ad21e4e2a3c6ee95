"""Geofence-based stop visit tracking with forward-only progress.

Each position report is tested against the geofence of every stop the vehicle
has not yet visited today. The nearest qualifying stop ahead of the highest
visited sequence order is recorded once per (vehicle, stop, trip-day); entries
behind that order are ignored so GPS jitter and backward drift can never
rewrite progress. Stop states are derived on every evaluation from the stored
visits, the route's stop order and the latest known position.
"""

import asyncio
import datetime
import logging
from typing import Awaitable, Callable, Sequence, TypeVar

from bustrack.core import geo
from bustrack.core.clock import as_utc, to_local, utc_now
from bustrack.core.errors import InvalidInput, PersistenceFailure
from bustrack.core.eta_estimator import EtaEstimator
from bustrack.core.keyed_lock import KeyedLock
from bustrack.core.models import (
    ActiveRoute,
    Coordinate,
    PositionReport,
    Stop,
    StopState,
    StopStatus,
    TripProgress,
    VisitRecord,
)
from bustrack.core.ports import ProgressPublisher, RouteRepository, VisitStore
from bustrack.schemas.progress import ArrivingEvent, TripProgressOut

logger = logging.getLogger(__name__)

GEOFENCE_RADIUS_M = 100.0
CURRENT_STOP_WINDOW_S = 120
MAX_RETRIES = 3
RETRY_BACKOFF = (0.2, 0.5, 1.0)  # seconds between store retries
ARRIVING_THRESHOLD_MINUTES = 2

T = TypeVar("T")


def highest_visited_order(stops: Sequence[Stop], visits: Sequence[VisitRecord]) -> int | None:
    order_of = {s.id: s.sequence_order for s in stops}
    return max((order_of[v.stop_id] for v in visits if v.stop_id in order_of), default=None)


def stops_ahead(stops: Sequence[Stop], visits: Sequence[VisitRecord]) -> list[Stop]:
    """Unvisited stops past the highest visited order, in sequence order.

    Stops skipped over stay unvisited but are behind the vehicle, so they are
    left out.
    """
    highest = highest_visited_order(stops, visits)
    visited = {v.stop_id for v in visits}
    return [
        s for s in stops
        if s.id not in visited and (highest is None or s.sequence_order > highest)
    ]


def select_visit_candidate(
    stops: Sequence[Stop],
    visits: Sequence[VisitRecord],
    position: Coordinate,
    radius_m: float = GEOFENCE_RADIUS_M,
) -> Stop | None:
    """Pick the stop a report at ``position`` should record, if any.

    ``stops`` must be in sequence order. Already-visited stops and stops
    behind the highest visited order are skipped; among the rest inside the
    geofence the nearest wins (lower order on ties).
    """
    visited = {v.stop_id for v in visits}
    highest = highest_visited_order(stops, visits)

    best: Stop | None = None
    best_dist = float("inf")
    for s in stops:
        if s.id in visited:
            continue
        d = geo.distance(position, s.coordinate)
        if d > radius_m:
            continue
        if highest is not None and s.sequence_order < highest:
            logger.debug(
                "Ignoring geofence entry for stop %s (order %d) behind visited order %d",
                s.id, s.sequence_order, highest,
            )
            continue
        if d < best_dist:
            best, best_dist = s, d
    return best


def build_statuses(
    stops: Sequence[Stop],
    visits: Sequence[VisitRecord],
    now: datetime.datetime,
    current_window_s: float = CURRENT_STOP_WINDOW_S,
) -> tuple[list[StopStatus], int | None]:
    """Classify each stop as passed/current/upcoming.

    The most recent visit is "current" while it is younger than the window
    and is not the route's last stop. Returns the statuses (in stop order)
    and the current stop id.
    """
    order_of = {s.id: s.sequence_order for s in stops}
    by_stop = {v.stop_id: v for v in visits if v.stop_id in order_of}

    current_id = None
    if by_stop:
        latest = max(
            by_stop.values(),
            key=lambda v: (as_utc(v.visited_at), order_of[v.stop_id]),
        )
        age_s = (as_utc(now) - as_utc(latest.visited_at)).total_seconds()
        if latest.stop_id != stops[-1].id and age_s < current_window_s:
            current_id = latest.stop_id

    statuses = []
    for s in stops:
        visit = by_stop.get(s.id)
        if visit is None:
            state = StopState.UPCOMING
        elif s.id == current_id:
            state = StopState.CURRENT
        else:
            state = StopState.PASSED
        statuses.append(StopStatus(
            stop_id=s.id,
            name=s.name,
            sequence_order=s.sequence_order,
            state=state,
            visited_at=visit.visited_at if visit else None,
        ))
    return statuses, current_id


class StopProgressTracker:
    """Maintains per-vehicle, per-day stop progress and publishes updates."""

    def __init__(
        self,
        routes: RouteRepository,
        visits: VisitStore,
        estimator: EtaEstimator,
        publisher: ProgressPublisher | None = None,
        *,
        lock: KeyedLock | None = None,
        geofence_radius_m: float = GEOFENCE_RADIUS_M,
        current_window_s: float = CURRENT_STOP_WINDOW_S,
        max_retries: int = MAX_RETRIES,
        retry_backoff: Sequence[float] = RETRY_BACKOFF,
        utc_offset_minutes: int = 0,
        arriving_threshold_minutes: int = ARRIVING_THRESHOLD_MINUTES,
        clock: Callable[[], datetime.datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.routes = routes
        self.visits = visits
        self.estimator = estimator
        self.publisher = publisher
        self._lock = lock or KeyedLock()
        self.geofence_radius_m = geofence_radius_m
        self.current_window_s = current_window_s
        self.max_retries = max(0, max_retries)
        self.retry_backoff = tuple(retry_backoff) or (0.0,)
        self.utc_offset_minutes = utc_offset_minutes
        self.arriving_threshold_minutes = arriving_threshold_minutes
        self._clock = clock
        self._sleep = sleep

        # vehicle_id -> latest PositionReport (by report time)
        self._positions: dict[str, PositionReport] = {}
        # (vehicle_id, trip_date) -> stop_id already announced as arriving
        self._arriving_sent: dict[tuple[str, datetime.date], int] = {}

    def trip_date_for(self, ts: datetime.datetime) -> datetime.date:
        return to_local(ts, self.utc_offset_minutes).date()

    def last_position(self, vehicle_id: str) -> PositionReport | None:
        return self._positions.get(vehicle_id)

    # ------------------------------------------------------------------

    async def process_position_update(
        self, vehicle_id: str, report: PositionReport,
    ) -> TripProgress | None:
        """Record any confirmed stop visit and return the refreshed progress.

        Returns None when the vehicle has no active route. Raises
        PersistenceFailure if the visit store stays unreachable, in which case
        nothing about this report is remembered.
        """
        if report.vehicle_id != vehicle_id:
            raise InvalidInput(
                f"Report for vehicle {report.vehicle_id} submitted as {vehicle_id}"
            )

        async with self._lock.hold(vehicle_id):
            route = await self.routes.get_active_route(vehicle_id)
            if route is None:
                logger.debug("Vehicle %s has no active route, ignoring position", vehicle_id)
                return None
            route.validate()
            stops = route.ordered_stops()

            now = self._clock()
            visited_at = as_utc(report.timestamp) if report.timestamp else now
            trip_date = self.trip_date_for(visited_at)

            visits = await self._with_retry(
                "find visits", lambda: self.visits.find_visits(vehicle_id, trip_date),
            )

            recorded_stop_id = None
            candidate = select_visit_candidate(stops, visits, report.coordinate, self.geofence_radius_m)
            if candidate is not None:
                record = VisitRecord(
                    vehicle_id=vehicle_id,
                    stop_id=candidate.id,
                    route_id=route.route_id,
                    trip_date=trip_date,
                    visited_at=visited_at,
                    sequence_order=candidate.sequence_order,
                )
                stored = await self._with_retry(
                    "record visit", lambda: self.visits.upsert_visit(record),
                )
                visits = [v for v in visits if v.stop_id != stored.stop_id] + [stored]
                recorded_stop_id = stored.stop_id
                logger.info(
                    "Vehicle %s visited stop %s (order %d) on %s",
                    vehicle_id, candidate.id, candidate.sequence_order, trip_date,
                )

            self._remember_position(vehicle_id, report)
            position = self._positions[vehicle_id].coordinate

            progress = await self._build_progress(vehicle_id, route, stops, trip_date, visits, position, now)
            progress.recorded_stop_id = recorded_stop_id
            await self._publish_progress(progress)
            return progress

    async def get_stop_progress(
        self, vehicle_id: str, trip_date: datetime.date | None = None,
    ) -> TripProgress | None:
        async with self._lock.hold(vehicle_id):
            route = await self.routes.get_active_route(vehicle_id)
            if route is None:
                return None
            route.validate()
            now = self._clock()
            trip_date = trip_date or self.trip_date_for(now)
            visits = await self._with_retry(
                "find visits", lambda: self.visits.find_visits(vehicle_id, trip_date),
            )
            last = self._positions.get(vehicle_id)
            return await self._build_progress(
                vehicle_id, route, route.ordered_stops(), trip_date, visits,
                last.coordinate if last else None, now,
            )

    async def reset_trip_progress(self, vehicle_id: str, trip_date: datetime.date) -> int:
        """Delete the vehicle's visits for ``trip_date``; every stop becomes upcoming."""
        async with self._lock.hold(vehicle_id):
            deleted = await self._with_retry(
                "delete visits", lambda: self.visits.delete_visits(vehicle_id, trip_date),
            )
            self._arriving_sent.pop((vehicle_id, trip_date), None)
            logger.info("Reset trip progress for vehicle %s on %s (%d visits)", vehicle_id, trip_date, deleted)

            route = await self.routes.get_active_route(vehicle_id)
            if route is not None and route.stops:
                last = self._positions.get(vehicle_id)
                progress = await self._build_progress(
                    vehicle_id, route, route.ordered_stops(), trip_date, [],
                    last.coordinate if last else None, self._clock(),
                )
                await self._publish_progress(progress)
            return deleted

    # ------------------------------------------------------------------

    def _remember_position(self, vehicle_id: str, report: PositionReport) -> None:
        prev = self._positions.get(vehicle_id)
        if prev is not None and prev.timestamp and report.timestamp:
            if as_utc(report.timestamp) < as_utc(prev.timestamp):
                logger.debug("Vehicle %s: out-of-order report kept out of position cache", vehicle_id)
                return
        self._positions[vehicle_id] = report

    async def _build_progress(
        self,
        vehicle_id: str,
        route: ActiveRoute,
        stops: list[Stop],
        trip_date: datetime.date,
        visits: Sequence[VisitRecord],
        position: Coordinate | None,
        now: datetime.datetime,
    ) -> TripProgress:
        statuses, current_id = build_statuses(stops, visits, now, self.current_window_s)

        # Skipped stops keep no ETA; routing goes forward from the position
        ahead = stops_ahead(stops, visits)
        if position is not None and ahead:
            etas = await self.estimator.multi_stop_eta(position, ahead)
            eta_by_stop = {e.stop_id: e.eta_minutes for e in etas.stops}
            for st in statuses:
                if st.stop_id in eta_by_stop:
                    st.eta_minutes = eta_by_stop[st.stop_id]

        return TripProgress(
            vehicle_id=vehicle_id,
            route_id=route.route_id,
            trip_date=trip_date,
            stops=statuses,
            generated_at=now,
            current_stop_id=current_id,
            position=position,
        )

    async def _publish_progress(self, progress: TripProgress) -> None:
        if self.publisher is None:
            return
        try:
            payload = TripProgressOut.from_progress(progress).model_dump(mode="json")
            await self.publisher.publish(progress.vehicle_id, payload)
            event = self._arriving_event(progress)
            if event is not None:
                await self.publisher.publish(progress.vehicle_id, event.model_dump(mode="json"))
        except Exception:
            logger.exception("Failed to publish progress for vehicle %s", progress.vehicle_id)

    def _arriving_event(self, progress: TripProgress) -> ArrivingEvent | None:
        """Announce the next stop ahead once when its ETA drops under the threshold."""
        nxt = next(
            (s for s in progress.stops if s.state == StopState.UPCOMING and s.eta_minutes is not None),
            None,
        )
        if nxt is None:
            return None
        if nxt.eta_minutes > self.arriving_threshold_minutes:
            return None
        key = (progress.vehicle_id, progress.trip_date)
        if self._arriving_sent.get(key) == nxt.stop_id:
            return None
        self._arriving_sent[key] = nxt.stop_id
        return ArrivingEvent(
            vehicle_id=progress.vehicle_id,
            stop_id=nxt.stop_id,
            stop_name=nxt.name,
            minutes_away=nxt.eta_minutes,
            message=f"Bus arriving in {nxt.eta_minutes} minutes",
            timestamp=progress.generated_at,
        )

    async def _with_retry(self, label: str, op: Callable[[], Awaitable[T]]) -> T:
        """Run a store operation, retrying with backoff before giving up."""
        attempts = self.max_retries + 1
        attempt = 0
        while True:
            try:
                return await op()
            except InvalidInput:
                raise
            except Exception as e:
                attempt += 1
                if attempt >= attempts:
                    logger.error("%s failed after %d attempts: %s", label, attempts, e)
                    raise PersistenceFailure(f"{label} failed after {attempts} attempts") from e
                wait = self.retry_backoff[min(attempt - 1, len(self.retry_backoff) - 1)]
                logger.warning(
                    "%s attempt %d/%d failed (%s), retrying in %.1fs",
                    label, attempt, attempts, type(e).__name__, wait,
                )
                await self._sleep(wait)
