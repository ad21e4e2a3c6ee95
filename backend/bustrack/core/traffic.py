"""Time-of-day traffic correction with confidence bands."""

import math
from dataclasses import dataclass

from bustrack.core.models import ConfidenceRange

# Confidence bounds never collapse below one minute
MIN_CONFIDENCE_MINUTES = 1


@dataclass(frozen=True)
class TrafficBand:
    name: str
    hours: frozenset[int]
    multiplier: float
    min_factor: float
    max_factor: float


MORNING_PEAK = TrafficBand("morning_peak", frozenset(range(7, 11)), 1.3, 0.9, 1.6)
EVENING_PEAK = TrafficBand("evening_peak", frozenset(range(16, 21)), 1.4, 0.95, 1.8)
NIGHT = TrafficBand("night", frozenset([22, 23, *range(0, 7)]), 0.9, 0.8, 1.0)
NORMAL = TrafficBand("normal", frozenset(), 1.0, 0.85, 1.2)


@dataclass(frozen=True)
class TrafficAdjustment:
    minutes: int
    confidence_range: ConfidenceRange
    band: TrafficBand


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (not banker's rounding)."""
    return int(math.floor(value + 0.5))


class TrafficModel:
    """Maps a local hour-of-day to a multiplier and confidence factors."""

    def __init__(self, bands: tuple[TrafficBand, ...] = (MORNING_PEAK, EVENING_PEAK, NIGHT)) -> None:
        self._by_hour: dict[int, TrafficBand] = {}
        for band in bands:
            for hour in band.hours:
                self._by_hour.setdefault(hour, band)

    def band_for_hour(self, hour: int) -> TrafficBand:
        if not 0 <= hour <= 23:
            raise ValueError(f"Hour out of range: {hour}")
        return self._by_hour.get(hour, NORMAL)

    def adjust(self, base_minutes: float, hour: int, extra_spread: float = 0.0) -> TrafficAdjustment:
        """Apply the band for ``hour`` to a base duration in minutes.

        ``extra_spread`` widens the confidence factors symmetrically (0.3 means
        the lower factor shrinks by 30% and the upper grows by 30%); it is used
        for straight-line fallback estimates.
        """
        band = self.band_for_hour(hour)
        base = max(0.0, base_minutes)
        min_factor = band.min_factor * (1 - extra_spread)
        max_factor = band.max_factor * (1 + extra_spread)

        minutes = round_half_up(base * band.multiplier)
        low = max(MIN_CONFIDENCE_MINUTES, round_half_up(base * min_factor))
        high = max(MIN_CONFIDENCE_MINUTES, round_half_up(base * max_factor))
        return TrafficAdjustment(
            minutes=minutes,
            confidence_range=ConfidenceRange(min=low, max=high),
            band=band,
        )
