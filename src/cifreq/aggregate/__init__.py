"""Journey aggregation exports."""

from .hourly_departures import HOURS_PER_DAY, HourlyDepartures, hour_of
from .journey_aggregator import (
    AggregationStats,
    JourneyAggregator,
    JourneyIntegrityError,
    TripStop,
    aggregate_departures,
)

__all__ = [
    "AggregationStats",
    "HOURS_PER_DAY",
    "HourlyDepartures",
    "JourneyAggregator",
    "JourneyIntegrityError",
    "TripStop",
    "aggregate_departures",
    "hour_of",
]
