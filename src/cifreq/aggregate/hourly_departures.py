"""Per-stop hourly departure counters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

HOURS_PER_DAY = 24


def _zeros() -> List[int]:
    return [0] * HOURS_PER_DAY


def _buckets() -> List[List[str]]:
    return [[] for _ in range(HOURS_PER_DAY)]


def hour_of(seconds_past_midnight: int) -> int:
    """Hour bucket of a time, clamped to 0..23."""
    return min(max(int(seconds_past_midnight) // 3600, 0), HOURS_PER_DAY - 1)


@dataclass
class HourlyDepartures:
    """Departures from one stop, bucketed by hour of day.

    ``next_stop[h]`` keeps the canonical code of the following stop for every
    departure in hour ``h`` that has one, duplicates included, in arrival order.
    """

    hour_counts: List[int] = field(default_factory=_zeros)
    hour_counts_journey_starts: List[int] = field(default_factory=_zeros)
    next_stop: List[List[str]] = field(default_factory=_buckets)

    def add_departure(
        self,
        hour: int,
        *,
        is_journey_start: bool = False,
        next_stop: Optional[str] = None,
    ) -> None:
        if hour < 0 or hour >= HOURS_PER_DAY:
            raise ValueError(f"hour must be within 0..23, got {hour}")
        self.hour_counts[hour] += 1
        if is_journey_start:
            self.hour_counts_journey_starts[hour] += 1
        if next_stop is not None:
            self.next_stop[hour].append(next_stop)

