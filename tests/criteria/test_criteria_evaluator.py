from __future__ import annotations

import textwrap

import pytest

from cifreq.aggregate import HourlyDepartures
from cifreq.criteria import (
    CriteriaConfig,
    HourWindow,
    evaluate_all_hours,
    evaluate_average,
    evaluate_criteria,
    evaluate_stop,
)


def _departures(
    counts: dict[int, int] | None = None,
    starts: dict[int, int] | None = None,
    next_stops: dict[int, list[str]] | None = None,
) -> HourlyDepartures:
    departures = HourlyDepartures()
    for hour, value in (counts or {}).items():
        departures.hour_counts[hour] = value
    for hour, value in (starts or {}).items():
        departures.hour_counts_journey_starts[hour] = value
    for hour, codes in (next_stops or {}).items():
        departures.next_stop[hour] = list(codes)
    return departures


def _fill(hours: range, value) -> dict:
    return {hour: value for hour in hours}


DAYTIME = range(7, 19)
EXTENDED = range(6, 22)


def test_four_per_hour_passes_daytime_rules():
    result = evaluate_stop("S", _departures(counts=_fill(DAYTIME, 4)))
    assert result.all_7_7
    assert result.avg_7_7
    assert not result.all_6_10
    assert not result.flagged_for_review
    assert result.next_stop is None
    assert "next_stop" not in result.to_dict()


def test_three_per_hour_fails_without_next_stop_data():
    result = evaluate_stop("S", _departures(counts=_fill(DAYTIME, 3)))
    assert not result.all_7_7
    assert not result.avg_7_7
    assert not result.flagged_for_review


def test_journey_starts_satisfy_all_hours_rule():
    departures = _departures(counts=_fill(DAYTIME, 2), starts=_fill(DAYTIME, 2))
    outcome = evaluate_all_hours(departures, CriteriaConfig().window_7_7, CriteriaConfig())
    assert outcome.passed and not outcome.via_fallback
    # Journey starts count double in the average rule: 12 * max(2, 4) = 48.
    assert evaluate_average(departures, CriteriaConfig().window_7_7, CriteriaConfig()).passed


def test_same_next_stop_fallback_passes_extended_window():
    departures = _departures(counts=_fill(EXTENDED, 2), next_stops=_fill(EXTENDED, ["X", "X"]))
    config = CriteriaConfig()
    outcome = evaluate_all_hours(departures, config.window_6_10, config)
    assert outcome.passed and outcome.via_fallback
    result = evaluate_stop("S", departures)
    assert result.all_6_10
    assert result.avg_6_10


def test_fallback_needs_the_same_code_in_every_hour():
    next_stops = _fill(DAYTIME, ["X", "X"])
    next_stops[12] = ["X", "Y"]
    departures = _departures(counts=_fill(DAYTIME, 2), next_stops=next_stops)
    config = CriteriaConfig()
    assert not evaluate_all_hours(departures, config.window_7_7, config).passed


def test_average_can_pass_while_an_hour_fails():
    counts = _fill(DAYTIME, 5)
    counts[12] = 0
    result = evaluate_stop("S", _departures(counts=counts))
    assert result.avg_7_7
    assert not result.all_7_7


def test_all_hours_can_pass_via_fallback_while_average_fails():
    departures = _departures(counts=_fill(DAYTIME, 2), next_stops=_fill(DAYTIME, ["X", "X"]))
    config = CriteriaConfig(average_same_next_stop_per_hour=3)
    result = evaluate_stop("S", departures, config)
    assert result.all_7_7
    assert not result.avg_7_7


def test_three_distinct_next_stops_every_hour_flags_for_review():
    departures = _departures(counts=_fill(DAYTIME, 3), next_stops=_fill(DAYTIME, ["X", "Y", "Z"]))
    config = CriteriaConfig()
    outcome = evaluate_all_hours(departures, config.window_7_7, config)
    assert not outcome.passed
    assert outcome.flagged

    result = evaluate_stop("S", departures)
    assert result.flagged_for_review
    assert result.next_stop[7] == ("X", "Y", "Z")
    assert len(result.to_dict()["next_stop"]) == 24


def test_average_review_flag_needs_volume_and_variety():
    config = CriteriaConfig()
    window = config.window_7_7
    varied = _departures(counts=_fill(DAYTIME, 3), next_stops=_fill(DAYTIME, ["X", "Y", "Z"]))
    outcome = evaluate_average(varied, window, config)
    assert not outcome.passed and outcome.flagged

    two_codes = _departures(counts=_fill(DAYTIME, 3), next_stops=_fill(DAYTIME, ["X", "Y", "Y"]))
    outcome = evaluate_average(two_codes, window, config)
    assert outcome.passed and outcome.via_fallback  # Y totals 24 = 2 * 12

    sparse = _departures(counts=_fill(DAYTIME, 1), next_stops={7: ["X"], 8: ["Y"], 9: ["Z"]})
    assert not evaluate_average(sparse, window, config).flagged


def test_thresholds_come_from_config():
    departures = _departures(counts=_fill(DAYTIME, 3))
    relaxed = CriteriaConfig(min_departures_per_hour=3, average_departures_per_hour=3)
    result = evaluate_stop("S", departures, relaxed)
    assert result.all_7_7 and result.avg_7_7


def test_criteria_config_from_yaml(tmp_path):
    path = tmp_path / "criteria.yaml"
    path.write_text(
        textwrap.dedent(
            """
            min_departures_per_hour: 6
            review_min_distinct_next_stops: 4
            window_7_7: [8, 17]
            """
        ).strip(),
        encoding="utf-8",
    )
    config = CriteriaConfig.from_yaml(path)
    assert config.min_departures_per_hour == 6
    assert config.review_min_distinct_next_stops == 4
    assert list(config.window_7_7.hours) == list(range(8, 18))
    assert len(config.window_6_10) == 16

    with pytest.raises(ValueError):
        CriteriaConfig.from_mapping({"min_departures": 3})
    with pytest.raises(ValueError):
        CriteriaConfig.from_mapping({"window_6_10": [22, 6]})
    with pytest.raises(TypeError):
        CriteriaConfig.from_mapping({"window_6_10": "6-21"})


@pytest.mark.parametrize(
    "settings",
    [
        {"min_departures_per_hour": 4.5},
        {"min_journey_starts_per_hour": True},
        {"average_departures_per_hour": "4"},
        {"window_7_7": [7.5, 18]},
    ],
)
def test_criteria_config_rejects_non_integer_thresholds(settings):
    with pytest.raises(TypeError):
        CriteriaConfig.from_mapping(settings)


def test_hour_window_validates_bounds():
    with pytest.raises(ValueError):
        HourWindow("bad", 5, 24)


def test_evaluate_criteria_matches_across_workers():
    stops = {
        f"S{idx}": _departures(counts=_fill(DAYTIME, idx % 6), next_stops=_fill(DAYTIME, ["X"] * (idx % 3)))
        for idx in range(12)
    }
    sequential = evaluate_criteria(stops)
    parallel = evaluate_criteria(stops, workers=3)
    assert sequential == parallel
    assert list(parallel) == sorted(stops)
    assert sequential["S4"].all_7_7
    assert not sequential["S3"].all_7_7
