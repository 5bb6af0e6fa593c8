"""Fixed-width line builders shared by the pipeline and CLI tests."""

from __future__ import annotations

from typing import List


def qs(journey_id: str, *, status: str = "N", days: str = "1111100",
       first: str = "20240101", last: str = "20241231") -> str:
    return f"QS{status}OPER{journey_id:<6}{first}{last}{days}  {'1':<4}{'':6}{'Bus':<8}{'':8}O"


def qo(location: str, departure: str) -> str:
    return f"QO{location:<12}{departure}   T1  "


def qi(location: str, arrival: str, departure: str, activity: str = "B") -> str:
    return f"QI{location:<12}{arrival}{departure}{activity}   T1  "


def qt(location: str, arrival: str) -> str:
    return f"QT{location:<12}{arrival}   T1"


def ql(location: str, name: str) -> str:
    return f"QLN{location:<12}{name:<48}B"


def fixed(record_type: str, *fields: tuple[int, str], width: int = 80) -> str:
    chars = list(record_type.ljust(width))
    for start, text in fields:
        chars[start:start + len(text)] = text
    return "".join(chars)


def frequent_atco_timetable() -> List[str]:
    """Four journeys an hour 07:00-18:59 over A -> B -> C, plus noise."""
    lines = [
        "QHNTESTFILE",
        ql("1800AAA", "Alpha, Stop"),
        ql("1800BBB", "Bravo"),
        ql("1800CCC", "Charlie"),
        ql("9990000001", "No passenger access"),
    ]
    journey = 0
    for hour in range(7, 19):
        for minute in ("00", "15", "30", "45"):
            journey += 1
            lines += [
                qs(f"J{journey}"),
                qo("1800AAA", f"{hour:02d}{minute}"),
                qi("9990000001", f"{hour:02d}{minute}", f"{hour:02d}{minute}"),
                qi("1800BBB", f"{hour:02d}{minute}", f"{hour:02d}{minute}"),
                qt("1800CCC", f"{hour:02d}{minute}"),
            ]
    lines += [
        qs("DEL1", status="D"),
        qo("1800AAA", "0700"),
        qt("1800CCC", "0710"),
        qs("WKND", days="0000011"),
        qo("1800AAA", "0700"),
        qt("1800CCC", "0710"),
        qs("BAD1"),
        qo("1800AAA", "07X0"),
        qt("1800CCC", "0710"),
    ]
    return lines
