"""One end-to-end run: decode -> resolve -> aggregate -> evaluate."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from cifreq.aggregate import AggregationStats, HourlyDepartures, JourneyAggregator
from cifreq.criteria import CriteriaConfig, CriteriaResult, evaluate_criteria
from cifreq.records import (
    Day,
    DecodeStats,
    IdentifierRemapping,
    JourneyBreak,
    Record,
    RecordDecoder,
    TimetableFormat,
    decode_lines,
    split_lines,
)
from cifreq.resolve import (
    AllowList,
    IdentifierMap,
    IdentifierResolver,
    ResolutionStats,
    ResolutionStrategy,
    build_stop_name_lookup,
)

logger = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    timetable_format: TimetableFormat
    day: Day
    analysis_date: Optional[date] = None
    remapping: Optional[IdentifierRemapping] = None
    allow_list: Optional[AllowList] = None
    criteria: CriteriaConfig = field(default_factory=CriteriaConfig)
    decode_workers: int = 1
    evaluate_workers: int = 1
    decode_chunksize: int = 5000
    strict_journeys: bool = False

    def __post_init__(self) -> None:
        self.timetable_format = TimetableFormat(self.timetable_format)
        if self.analysis_date is not None and Day.from_date(self.analysis_date) is not self.day:
            logger.warning(
                "Analysis date %s is a %s but the analysis weekday is %s",
                self.analysis_date.isoformat(),
                Day.from_date(self.analysis_date).name.title(),
                self.day.name.title(),
            )


@dataclass
class PipelineResult:
    results: Dict[str, CriteriaResult]
    hourly_departures: Dict[str, HourlyDepartures]
    identifier_map: IdentifierMap
    stop_names: Dict[str, str]
    decode_stats: DecodeStats
    resolution_stats: ResolutionStats
    aggregation_stats: AggregationStats

    def diagnostics(self) -> Dict[str, object]:
        return {
            "decode": self.decode_stats.as_dict(),
            "resolution": self.resolution_stats.as_dict(),
            "aggregation": self.aggregation_stats.as_dict(),
            "stops_evaluated": len(self.results),
            "stops_flagged": sum(1 for result in self.results.values() if result.flagged_for_review),
        }


def decode_sources(
    raw_texts: Iterable[str],
    config: PipelineConfig,
    *,
    source_names: Sequence[str] | None = None,
    on_progress: Callable[[int], None] | None = None,
) -> tuple[List[Record], DecodeStats]:
    """Decode every source text, concatenating records in the order given.

    A :class:`JourneyBreak` separates consecutive sources so a journey never
    runs on from one file into the next.
    """
    decoder = RecordDecoder(config.timetable_format, config.remapping)
    records: List[Record] = []
    stats = DecodeStats()
    for index, raw_text in enumerate(raw_texts):
        if source_names is not None:
            source = source_names[index]
        else:
            source = f"source {index + 1}"
        if index:
            records.append(JourneyBreak(reason="start of source", source=source))
        decoded = decode_lines(
            split_lines(raw_text),
            decoder,
            workers=config.decode_workers,
            chunksize=config.decode_chunksize,
            on_progress=on_progress,
            source=source,
            stats=stats,
        )
        records.extend(decoded.records)
    return records, stats


def run_pipeline(
    raw_texts: Iterable[str],
    config: PipelineConfig,
    *,
    source_names: Sequence[str] | None = None,
    on_progress: Callable[[int], None] | None = None,
) -> PipelineResult:
    records, decode_stats = decode_sources(
        raw_texts, config, source_names=source_names, on_progress=on_progress
    )

    resolver = IdentifierResolver(
        ResolutionStrategy.for_format(config.timetable_format),
        allow_list=config.allow_list,
    )
    identifier_map = resolver.resolve(records)
    stop_names = build_stop_name_lookup(records, identifier_map)

    aggregator = JourneyAggregator(
        identifier_map,
        config.day,
        analysis_date=config.analysis_date,
        strict=config.strict_journeys,
    )
    hourly_departures = aggregator.aggregate(records)

    results = evaluate_criteria(hourly_departures, config.criteria, workers=config.evaluate_workers)
    return PipelineResult(
        results=results,
        hourly_departures=hourly_departures,
        identifier_map=identifier_map,
        stop_names=stop_names,
        decode_stats=decode_stats,
        resolution_stats=resolver.stats,
        aggregation_stats=aggregator.stats,
    )
