"""Error taxonomy for the tracking core."""


class TrackerError(Exception):
    """Base class for tracking core failures."""


class ProviderUnavailable(TrackerError):
    """Routing provider unreachable or returned an error.

    Never leaves the routing client: it is converted to a ``None`` result so
    the ETA estimator can fall back to straight-line estimation.
    """


class NoActiveRoute(TrackerError):
    """A vehicle has no route assigned."""

    def __init__(self, vehicle_id: str) -> None:
        super().__init__(f"Vehicle {vehicle_id} has no active route")
        self.vehicle_id = vehicle_id


class PersistenceFailure(TrackerError):
    """The visit store could not be read or written after all retries."""


class InvalidInput(TrackerError, ValueError):
    """Malformed coordinates or an empty/inconsistent stop list."""
