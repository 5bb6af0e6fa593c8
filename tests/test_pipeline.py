from __future__ import annotations

from datetime import date

import pytest

from cif_fixtures import fixed, frequent_atco_timetable, ql, qo, qs, qt
from cifreq.aggregate import JourneyIntegrityError
from cifreq.pipeline import PipelineConfig, run_pipeline
from cifreq.records import Day, IdentifierRemapping, TimetableFormat
from cifreq.resolve import AllowList


def test_atco_pipeline_classifies_frequent_stops():
    raw = "\r\n".join(frequent_atco_timetable()) + "\r\n"
    config = PipelineConfig(timetable_format=TimetableFormat.ATCO_CIF, day=Day.TUESDAY)
    result = run_pipeline([raw], config)

    assert set(result.results) == {"1800AAA", "1800BBB"}
    alpha = result.results["1800AAA"]
    assert alpha.all_7_7 and alpha.avg_7_7
    assert not alpha.all_6_10
    assert alpha.hour_counts[7] == 4
    assert alpha.hour_counts_journey_starts[7] == 4
    assert result.hourly_departures["1800AAA"].next_stop[7] == ["1800BBB"] * 4
    assert result.hourly_departures["1800BBB"].next_stop[18] == ["1800CCC"] * 4

    assert result.stop_names["1800AAA"] == "Alpha Stop"
    assert "9990000001" not in result.identifier_map
    assert result.decode_stats.lines_failed == 1
    assert result.aggregation_stats.journeys_filtered["deleted"] == 1
    assert result.aggregation_stats.journeys_filtered["not_operating_day"] == 1
    diagnostics = result.diagnostics()
    assert diagnostics["stops_evaluated"] == 2
    assert diagnostics["decode"]["failures_by_type"] == {"QO": 1}


def test_pipeline_applies_remapping_across_sources():
    lines = frequent_atco_timetable()
    remapping = IdentifierRemapping.from_mapping({"1800BBB": "1800CCC"})
    config = PipelineConfig(
        timetable_format="atco-cif",
        day=Day.TUESDAY,
        remapping=remapping,
    )
    half = len(lines) // 2
    # Split on a journey boundary so both halves stay self-contained.
    while not lines[half].startswith("QS"):
        half += 1
    result = run_pipeline(["\n".join(lines[:half]), "\n".join(lines[half:])], config)
    assert set(result.results) == {"1800AAA", "1800CCC"}
    assert result.hourly_departures["1800AAA"].next_stop[7] == ["1800CCC"] * 4


def _rail_timetable() -> str:
    lines = [
        fixed("HD", (2, "TPS.UDFROC1.PD241006")),
        fixed("TI", (2, "KNGX   "), (44, "72410"), (53, "KGX"), (56, "KINGS CROSS")),
        fixed("TI", (2, "KNGXSB "), (44, "72410")),
        fixed("TI", (2, "STEVNGE"), (44, "70200"), (53, "SVG"), (56, "STEVENAGE")),
        fixed("TI", (2, "CAMBDGE"), (44, "51000"), (53, "CBG"), (56, "CAMBRIDGE")),
    ]
    for idx, (origin, minute) in enumerate([("KNGX   ", "00"), ("KNGXSB ", "30")]):
        lines += [
            fixed("BS", (2, "N"), (3, f"C1000{idx}"), (9, "241001"), (15, "241231"), (21, "1111100"), (30, "XX")),
            fixed("LO", (2, origin), (10, f"08{minute} "), (29, "TB")),
            fixed("LI", (2, "STEVNGE"), (10, f"09{minute} "), (15, f"09{minute} "), (42, "T ")),
            fixed("LT", (2, "CAMBDGE"), (10, f"10{minute} "), (25, "TF")),
        ]
    lines += [
        fixed("BS", (2, "N"), (3, "F00001"), (9, "241001"), (15, "241231"), (21, "1111100"), (30, "6B")),
        fixed("LO", (2, "KNGX   "), (10, "0800 "), (29, "TB")),
        fixed("LT", (2, "STEVNGE"), (10, "1000 "), (25, "TF")),
        fixed("BS", (2, "N"), (3, "C10009"), (9, "250101"), (15, "250131"), (21, "1111100"), (30, "XX")),
        fixed("LO", (2, "KNGX   "), (10, "0800 "), (29, "TB")),
        fixed("LT", (2, "STEVNGE"), (10, "1000 "), (25, "TF")),
        "ZZ",
    ]
    return "\n".join(lines)


def test_rail_pipeline_resolves_through_stanox_and_allow_list():
    config = PipelineConfig(
        timetable_format=TimetableFormat.RAIL_CIF,
        day=Day.TUESDAY,
        analysis_date=date(2024, 10, 8),
        allow_list=AllowList.from_codes(["KGX", "SVG"]),
    )
    result = run_pipeline([_rail_timetable()], config)

    assert dict(result.identifier_map) == {"KNGX": "KGX", "KNGXSB": "KGX", "STEVNGE": "SVG"}
    kings_cross = result.hourly_departures["KGX"]
    assert kings_cross.hour_counts[8] == 2
    assert kings_cross.hour_counts_journey_starts[8] == 2
    assert kings_cross.next_stop[8] == ["SVG", "SVG"]
    # Cambridge is outside the allow-list so Stevenage has no next stop.
    assert result.hourly_departures["SVG"].hour_counts[9] == 2
    assert result.hourly_departures["SVG"].next_stop[9] == []
    assert result.aggregation_stats.journeys_filtered["non_passenger"] == 1
    assert result.aggregation_stats.journeys_filtered["outside_date_range"] == 1
    assert result.stop_names == {"KGX": "KINGS CROSS", "SVG": "STEVENAGE"}


def test_strict_pipeline_surfaces_integrity_errors():
    lines = [
        fixed("TI", (2, "KNGX   "), (44, "72410"), (53, "KGX")),
        fixed("TI", (2, "STEVNGE"), (44, "70200"), (53, "SVG")),
        fixed("BS", (2, "N"), (3, "C20000"), (9, "241001"), (15, "241231"), (21, "1111111"), (30, "XX")),
        fixed("LO", (2, "KNGX   "), (10, "0800 "), (29, "TB")),
        fixed("LI", (2, "STEVNGE"), (10, "0900 "), (42, "U ")),
        fixed("LT", (2, "KNGX   "), (10, "1000 "), (25, "TF")),
    ]
    lenient = PipelineConfig(timetable_format="rail-cif", day=Day.MONDAY)
    result = run_pipeline(["\n".join(lines)], lenient)
    assert result.results == {}
    assert result.aggregation_stats.journeys_failed == 1

    strict = PipelineConfig(timetable_format="rail-cif", day=Day.MONDAY, strict_journeys=True)
    with pytest.raises(JourneyIntegrityError):
        run_pipeline(["\n".join(lines)], strict)


def _two_journey_lines(second_status: str = "N") -> list:
    return [
        ql("1800AAA", "Alpha"),
        ql("1800BBB", "Bravo"),
        ql("1800CCC", "Charlie"),
        ql("1800DDD", "Delta"),
        qs("J1"),
        qo("1800AAA", "0700"),
        qt("1800BBB", "0710"),
        qs("J2", status=second_status),
        qo("1800CCC", "0800"),
        qt("1800DDD", "0810"),
    ]


def test_malformed_header_does_not_merge_stops_into_previous_journey():
    config = PipelineConfig(timetable_format="atco-cif", day=Day.TUESDAY)
    result = run_pipeline(["\n".join(_two_journey_lines(second_status="X"))], config, source_names=["metro.cif"])

    assert "1800CCC" not in result.hourly_departures
    assert result.hourly_departures["1800AAA"].next_stop[7] == ["1800BBB"]
    assert result.aggregation_stats.journeys_promoted == 1
    assert result.aggregation_stats.stops_without_journey == 2
    assert result.decode_stats.failure_samples == ["metro.cif line 8 (QS): unknown status 'X'"]


def test_sources_never_share_a_journey():
    lines = _two_journey_lines()
    first, second = lines[:7], lines[8:]
    config = PipelineConfig(timetable_format="atco-cif", day=Day.TUESDAY)
    result = run_pipeline(["\n".join(first), "\n".join(second)], config)

    assert set(result.hourly_departures) == {"1800AAA"}
    assert result.aggregation_stats.journey_breaks == 1
    assert result.aggregation_stats.stops_without_journey == 2
