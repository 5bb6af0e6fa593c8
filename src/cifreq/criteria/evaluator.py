"""Classifies stops against the all-hours and average frequency rules."""

from __future__ import annotations

import logging
import multiprocessing as mp
import os
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np

from cifreq.aggregate.hourly_departures import HourlyDepartures

from .criteria_config import CriteriaConfig, HourWindow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleOutcome:
    passed: bool
    via_fallback: bool = False
    flagged: bool = False


@dataclass(frozen=True)
class CriteriaResult:
    stop_code: str
    hour_counts: Tuple[int, ...]
    hour_counts_journey_starts: Tuple[int, ...]
    all_7_7: bool
    all_6_10: bool
    avg_7_7: bool
    avg_6_10: bool
    flagged_for_review: bool
    next_stop: Optional[Tuple[Tuple[str, ...], ...]] = None

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "stop_code": self.stop_code,
            "hour_counts": list(self.hour_counts),
            "hour_counts_journey_starts": list(self.hour_counts_journey_starts),
            "all_7_7": self.all_7_7,
            "all_6_10": self.all_6_10,
            "avg_7_7": self.avg_7_7,
            "avg_6_10": self.avg_6_10,
            "flagged_for_review": self.flagged_for_review,
        }
        if self.next_stop is not None:
            payload["next_stop"] = [list(bucket) for bucket in self.next_stop]
        return payload


def _window_counts(departures: HourlyDepartures, window: HourWindow) -> Tuple[np.ndarray, np.ndarray]:
    hours = list(window.hours)
    counts = np.asarray(departures.hour_counts, dtype=np.int64)[hours]
    starts = np.asarray(departures.hour_counts_journey_starts, dtype=np.int64)[hours]
    return counts, starts


def _next_stop_buckets(departures: HourlyDepartures, window: HourWindow) -> List[Counter]:
    return [Counter(departures.next_stop[hour]) for hour in window.hours]


def evaluate_all_hours(
    departures: HourlyDepartures, window: HourWindow, config: CriteriaConfig
) -> RuleOutcome:
    """Every hour of ``window`` must be frequent enough on its own."""
    counts, starts = _window_counts(departures, window)
    hourly_ok = (counts >= config.min_departures_per_hour) | (
        starts >= config.min_journey_starts_per_hour
    )
    if bool(np.all(hourly_ok)):
        return RuleOutcome(passed=True)

    # Fallback: one next stop served often enough in every single hour.
    buckets = _next_stop_buckets(departures, window)
    codes = set().union(*buckets)
    for code in sorted(codes):
        if all(bucket[code] >= config.min_same_next_stop_per_hour for bucket in buckets):
            return RuleOutcome(passed=True, via_fallback=True)

    flagged = all(len(bucket) >= config.review_min_distinct_next_stops for bucket in buckets)
    return RuleOutcome(passed=False, flagged=flagged)


def evaluate_average(
    departures: HourlyDepartures, window: HourWindow, config: CriteriaConfig
) -> RuleOutcome:
    """The window as a whole must average enough departures per hour."""
    counts, starts = _window_counts(departures, window)
    total = int(np.maximum(counts, config.journey_start_weight * starts).sum())
    if total >= config.average_departures_per_hour * len(window):
        return RuleOutcome(passed=True)

    totals: Counter = Counter()
    for bucket in _next_stop_buckets(departures, window):
        totals.update(bucket)
    if any(count >= config.average_same_next_stop_per_hour * len(window) for count in totals.values()):
        return RuleOutcome(passed=True, via_fallback=True)

    flagged = (
        len(totals) >= config.review_min_distinct_next_stops
        and sum(totals.values()) >= config.review_average_per_hour * len(window)
    )
    return RuleOutcome(passed=False, flagged=flagged)


def evaluate_stop(
    stop_code: str,
    departures: HourlyDepartures,
    config: CriteriaConfig | None = None,
) -> CriteriaResult:
    config = config or CriteriaConfig()
    all_7_7 = evaluate_all_hours(departures, config.window_7_7, config)
    all_6_10 = evaluate_all_hours(departures, config.window_6_10, config)
    avg_7_7 = evaluate_average(departures, config.window_7_7, config)
    avg_6_10 = evaluate_average(departures, config.window_6_10, config)
    flagged = any(outcome.flagged for outcome in (all_7_7, all_6_10, avg_7_7, avg_6_10))
    next_stop = None
    if flagged:
        next_stop = tuple(tuple(bucket) for bucket in departures.next_stop)
    return CriteriaResult(
        stop_code=stop_code,
        hour_counts=tuple(departures.hour_counts),
        hour_counts_journey_starts=tuple(departures.hour_counts_journey_starts),
        all_7_7=all_7_7.passed,
        all_6_10=all_6_10.passed,
        avg_7_7=avg_7_7.passed,
        avg_6_10=avg_6_10.passed,
        flagged_for_review=flagged,
        next_stop=next_stop,
    )


WORKER_CONFIG: CriteriaConfig | None = None


def _init_worker(config: CriteriaConfig) -> None:
    global WORKER_CONFIG
    WORKER_CONFIG = config


def _evaluate_item(item: Tuple[str, HourlyDepartures]) -> CriteriaResult:
    if WORKER_CONFIG is None:
        raise RuntimeError("Worker criteria config not initialised.")
    stop_code, departures = item
    return evaluate_stop(stop_code, departures, WORKER_CONFIG)


def evaluate_criteria(
    departures_by_stop: Mapping[str, HourlyDepartures],
    config: CriteriaConfig | None = None,
    *,
    workers: int = 1,
) -> Dict[str, CriteriaResult]:
    """Evaluate every stop independently; keyed by canonical stop code."""
    config = config or CriteriaConfig()
    items = sorted(departures_by_stop.items())
    results: Dict[str, CriteriaResult] = {}
    if workers <= 1 or len(items) < 2:
        for stop_code, departures in items:
            results[stop_code] = evaluate_stop(stop_code, departures, config)
    else:
        chunksize = max(1, len(items) // (workers * 4))
        ctx = mp.get_context("spawn" if os.name == "nt" else "fork")
        with ctx.Pool(processes=workers, initializer=_init_worker, initargs=(config,)) as pool:
            for result in pool.imap_unordered(_evaluate_item, items, chunksize=chunksize):
                results[result.stop_code] = result
        results = dict(sorted(results.items()))

    flagged = sum(1 for result in results.values() if result.flagged_for_review)
    logger.info(
        "Evaluated %d stops: all_7_7=%d all_6_10=%d avg_7_7=%d avg_6_10=%d flagged=%d",
        len(results),
        sum(result.all_7_7 for result in results.values()),
        sum(result.all_6_10 for result in results.values()),
        sum(result.avg_7_7 for result in results.values()),
        sum(result.avg_6_10 for result in results.values()),
        flagged,
    )
    return results
