"""Journey reconstruction and hourly departure aggregation.

The record stream is scanned once, in source order. A header opens a journey,
the stop records after it are buffered, and the next header (or the end of
the stream) flushes the buffer into per-stop statistics when the journey
qualifies for the analysis day.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from cifreq.records.domain_types import (
    ActivityFlag,
    Day,
    JourneyBreak,
    JourneyHeader,
    JourneyStop,
    LocationDefinition,
    Record,
    TrainCategory,
)
from cifreq.resolve.identifier_resolver import IdentifierMap

from .hourly_departures import HourlyDepartures, hour_of

logger = logging.getLogger(__name__)

MAX_FAILURE_DETAILS = 100


class JourneyIntegrityError(ValueError):
    """A stop that should contribute a departure has no departure time."""

    def __init__(self, journey_id: str, location: str, stop_code: str):
        super().__init__(
            f"Journey {journey_id!r} has no departure time at stop {location!r} "
            f"(resolved to {stop_code!r})"
        )
        self.journey_id = journey_id
        self.location = location
        self.stop_code = stop_code


@dataclass(frozen=True)
class TripStop:
    """A journey stop after identifier resolution."""

    stop_code: str
    location: str
    activity_flag: ActivityFlag
    departure_time: Optional[int]
    is_first_stop: bool


@dataclass
class AggregationStats:
    journeys_seen: int = 0
    journeys_promoted: int = 0
    journeys_filtered: Counter = field(default_factory=Counter)
    journeys_failed: int = 0
    journey_breaks: int = 0
    failed_journeys: List[str] = field(default_factory=list)
    stops_unresolved: int = 0
    stops_without_journey: int = 0
    departures_counted: int = 0

    def as_dict(self) -> Dict[str, object]:
        return {
            "journeys_seen": self.journeys_seen,
            "journeys_promoted": self.journeys_promoted,
            "journeys_filtered": dict(self.journeys_filtered),
            "journeys_failed": self.journeys_failed,
            "journey_breaks": self.journey_breaks,
            "stops_unresolved": self.stops_unresolved,
            "stops_without_journey": self.stops_without_journey,
            "departures_counted": self.departures_counted,
        }


class JourneyAggregator:
    """Explicit state machine: no journey -> accumulating stops -> flush."""

    def __init__(
        self,
        identifier_map: IdentifierMap,
        day: Day,
        *,
        analysis_date: Optional[date] = None,
        strict: bool = False,
    ) -> None:
        self.identifier_map = identifier_map
        self.day = day
        self.analysis_date = analysis_date
        self.strict = strict
        self.departures: Dict[str, HourlyDepartures] = {}
        self.stats = AggregationStats()
        self._header: Optional[JourneyHeader] = None
        self._stops: List[TripStop] = []

    # ------------------------------------------------------------------ state
    @property
    def current_header(self) -> Optional[JourneyHeader]:
        return self._header

    @property
    def current_stops(self) -> Tuple[TripStop, ...]:
        return tuple(self._stops)

    # -------------------------------------------------------------- ingestion
    def consume(self, record: Record) -> None:
        if isinstance(record, JourneyHeader):
            self.flush()
            self._header = record
            self.stats.journeys_seen += 1
        elif isinstance(record, JourneyStop):
            self._add_stop(record)
        elif isinstance(record, JourneyBreak):
            # Stops up to the next header belong to no known journey.
            self.flush()
            self.stats.journey_breaks += 1
        elif isinstance(record, LocationDefinition):
            return
        else:
            raise TypeError(f"Unsupported record type: {type(record).__name__}")

    def _add_stop(self, stop: JourneyStop) -> None:
        if stop.activity_flag is ActivityFlag.NEITHER:
            return
        if self._header is None:
            self.stats.stops_without_journey += 1
            return
        stop_code = self.identifier_map.get(stop.location)
        if stop_code is None:
            self.stats.stops_unresolved += 1
            return
        self._stops.append(
            TripStop(
                stop_code=stop_code,
                location=stop.location,
                activity_flag=stop.activity_flag,
                departure_time=stop.departure_time,
                is_first_stop=stop.is_first_stop,
            )
        )

    def flush(self) -> None:
        """Promote the buffered journey if it qualifies, then clear the buffer."""
        header, stops = self._header, self._stops
        self._header = None
        self._stops = []
        if header is None:
            return
        reason = self._rejection_reason(header, stops)
        if reason is not None:
            self.stats.journeys_filtered[reason] += 1
            return
        try:
            departures = self._journey_departures(header, stops)
        except JourneyIntegrityError as exc:
            if self.strict:
                raise
            self.stats.journeys_failed += 1
            if len(self.stats.failed_journeys) < MAX_FAILURE_DETAILS:
                self.stats.failed_journeys.append(str(exc))
            logger.error("Discarding journey: %s", exc)
            return
        for stop_code, hour, is_start, next_code in departures:
            accumulator = self.departures.get(stop_code)
            if accumulator is None:
                accumulator = self.departures[stop_code] = HourlyDepartures()
            accumulator.add_departure(hour, is_journey_start=is_start, next_stop=next_code)
        self.stats.journeys_promoted += 1
        self.stats.departures_counted += len(departures)

    def finish(self) -> Dict[str, HourlyDepartures]:
        self.flush()
        logger.info(
            "Promoted %d of %d journeys into %d stops (filtered=%s, failed=%d, unresolved stops=%d)",
            self.stats.journeys_promoted,
            self.stats.journeys_seen,
            len(self.departures),
            dict(self.stats.journeys_filtered),
            self.stats.journeys_failed,
            self.stats.stops_unresolved,
        )
        return self.departures

    def aggregate(self, records: Iterable[Record]) -> Dict[str, HourlyDepartures]:
        for record in records:
            self.consume(record)
        return self.finish()

    # -------------------------------------------------------------- internals
    def _rejection_reason(self, header: JourneyHeader, stops: List[TripStop]) -> Optional[str]:
        if len(stops) <= 1:
            return "single_stop"
        if not header.operating_days.contains(self.day):
            return "not_operating_day"
        if not header.status.is_operating:
            return "deleted"
        if header.category is not TrainCategory.PASSENGER:
            return "non_passenger"
        if self.analysis_date is not None and not header.runs_on_date(self.analysis_date):
            return "outside_date_range"
        return None

    @staticmethod
    def _journey_departures(
        header: JourneyHeader, stops: List[TripStop]
    ) -> List[Tuple[str, int, bool, Optional[str]]]:
        # Validated in full before anything is counted so a bad journey leaves no trace.
        departures: List[Tuple[str, int, bool, Optional[str]]] = []
        last_index = len(stops) - 1
        for index, stop in enumerate(stops):
            if not stop.activity_flag.allows_departure:
                continue
            if stop.departure_time is None:
                raise JourneyIntegrityError(header.journey_id, stop.location, stop.stop_code)
            next_code = stops[index + 1].stop_code if index < last_index else None
            departures.append((stop.stop_code, hour_of(stop.departure_time), stop.is_first_stop, next_code))
        return departures


def aggregate_departures(
    records: Iterable[Record],
    identifier_map: IdentifierMap,
    day: Day,
    *,
    analysis_date: Optional[date] = None,
    strict: bool = False,
) -> Dict[str, HourlyDepartures]:
    """Convenience wrapper running a fresh :class:`JourneyAggregator` over ``records``."""
    aggregator = JourneyAggregator(identifier_map, day, analysis_date=analysis_date, strict=strict)
    return aggregator.aggregate(records)
