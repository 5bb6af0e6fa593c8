"""Fixed-width column tables for every consumed CIF record type.

Offsets are 0-based and end-exclusive. Format drift is handled by editing
these tables, the decoder only ever refers to fields by name.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Mapping, Tuple

from .domain_types import TimetableFormat


@dataclass(frozen=True)
class FieldSpec:
    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.end <= self.start:
            raise ValueError(f"Invalid field span [{self.start}, {self.end})")

    @property
    def width(self) -> int:
        return self.end - self.start

    def read(self, line: str) -> str:
        return line[self.start:self.end]


RECORD_TYPE = FieldSpec(0, 2)


@dataclass(frozen=True)
class RecordLayout:
    """Named fields of one record type."""

    record_type: str
    fields: Mapping[str, FieldSpec]

    def read(self, line: str, name: str) -> str:
        return self.fields[name].read(line)

    def read_trimmed(self, line: str, name: str) -> str:
        return self.read(line, name).strip()

    def render(self, values: Mapping[str, str]) -> str:
        """Lay ``values`` out at their columns, the inverse of :meth:`read`."""
        width = max([RECORD_TYPE.end] + [spec.end for spec in self.fields.values()])
        chars = list(" " * width)
        chars[RECORD_TYPE.start:RECORD_TYPE.end] = self.record_type
        for name, value in values.items():
            spec = self.fields[name]
            text = str(value)
            if len(text) > spec.width:
                raise ValueError(f"{self.record_type}.{name} wider than {spec.width}: {text!r}")
            chars[spec.start:spec.end] = text.ljust(spec.width)
        return "".join(chars).rstrip()


def _layout(record_type: str, **fields: Tuple[int, int]) -> RecordLayout:
    return RecordLayout(
        record_type=record_type,
        fields={name: FieldSpec(*span) for name, span in fields.items()},
    )


ATCO_CIF_LAYOUTS: Dict[str, RecordLayout] = {
    "QS": _layout(
        "QS",
        status=(2, 3),
        operator=(3, 7),
        journey_id=(7, 13),
        first_date=(13, 21),
        last_date=(21, 29),
        operating_days=(29, 36),
        route_number=(38, 42),
        vehicle_type=(48, 56),
        direction=(64, 65),
    ),
    "QO": _layout("QO", location=(2, 14), departure=(14, 18)),
    "QI": _layout("QI", location=(2, 14), arrival=(14, 18), departure=(18, 22), activity=(22, 23)),
    "QT": _layout("QT", location=(2, 14), arrival=(14, 18)),
    "QL": _layout("QL", status=(2, 3), location=(3, 15), name=(15, 63)),
}

_TIPLOC_FIELDS = dict(
    tiploc=(2, 9),
    tps_description=(18, 44),
    stanox=(44, 49),
    crs_code=(53, 56),
    description=(56, 72),
)

RAIL_CIF_LAYOUTS: Dict[str, RecordLayout] = {
    "BS": _layout(
        "BS",
        transaction_type=(2, 3),
        train_uid=(3, 9),
        date_runs_from=(9, 15),
        date_runs_to=(15, 21),
        days_run=(21, 28),
        category=(30, 32),
        train_identity=(32, 36),
        stp_indicator=(79, 80),
    ),
    "LO": _layout("LO", tiploc=(2, 9), departure=(10, 14), activity=(29, 41)),
    "LI": _layout("LI", tiploc=(2, 9), arrival=(10, 14), departure=(15, 19), activity=(42, 54)),
    "LT": _layout("LT", tiploc=(2, 9), arrival=(10, 14), activity=(25, 37)),
    "TI": _layout("TI", **_TIPLOC_FIELDS),
    "TA": _layout("TA", **_TIPLOC_FIELDS),
}

RAIL_PASSENGER_CATEGORIES: FrozenSet[str] = frozenset(
    {"OL", "OU", "OO", "OS", "OW", "XC", "XD", "XI", "XR", "XU", "XX", "XZ"}
)


@dataclass(frozen=True)
class FormatProfile:
    """Everything format-specific the decoder needs."""

    timetable_format: TimetableFormat
    layouts: Mapping[str, RecordLayout]
    header_record_types: Tuple[str, ...] = ()
    excluded_prefixes: Tuple[str, ...] = ()
    passenger_categories: FrozenSet[str] = field(default_factory=frozenset)

    def layout(self, record_type: str) -> RecordLayout:
        return self.layouts[record_type]


PROFILES: Dict[TimetableFormat, FormatProfile] = {
    TimetableFormat.ATCO_CIF: FormatProfile(
        timetable_format=TimetableFormat.ATCO_CIF,
        layouts=ATCO_CIF_LAYOUTS,
        header_record_types=("QS",),
        # 999-prefixed stops have no passenger access.
        excluded_prefixes=("999",),
    ),
    TimetableFormat.RAIL_CIF: FormatProfile(
        timetable_format=TimetableFormat.RAIL_CIF,
        layouts=RAIL_CIF_LAYOUTS,
        header_record_types=("BS",),
        passenger_categories=RAIL_PASSENGER_CATEGORIES,
    ),
}
