"""Typed records decoded from CIF timetable lines."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional, Tuple, Union


class TimetableFormat(str, Enum):
    """The two generations of the CIF interchange format."""

    ATCO_CIF = "atco-cif"
    RAIL_CIF = "rail-cif"


class Status(Enum):
    NEW = "N"
    DELETE = "D"
    REVISE = "R"

    @property
    def is_operating(self) -> bool:
        return self is not Status.DELETE


class ActivityFlag(Enum):
    """Whether passengers may board and/or alight at a stop."""

    BOTH = "B"
    PICK_UP_ONLY = "P"
    SET_DOWN_ONLY = "S"
    NEITHER = "N"

    @property
    def allows_departure(self) -> bool:
        return self in (ActivityFlag.BOTH, ActivityFlag.PICK_UP_ONLY)


class TrainCategory(Enum):
    PASSENGER = "passenger"
    OTHER = "other"


class Day(Enum):
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def from_name(cls, name: str) -> "Day":
        try:
            return cls[str(name).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown weekday: {name!r}") from None

    @classmethod
    def from_date(cls, value: date) -> "Day":
        return cls(value.weekday())


class PublicTransportMode(Enum):
    BUS = "bus"
    COACH = "coach"
    FERRY = "ferry"
    LIGHT_RAIL = "light rail"
    METRO = "metro"
    NATIONAL_RAIL = "national rail"
    TRAM = "tram"
    TUBE = "tube"

    @classmethod
    def from_cif_str(cls, text: str) -> Optional["PublicTransportMode"]:
        """Map a vehicle-type column to a mode, or ``None`` when unrecognised."""
        token = (text or "").strip().lower()
        return _MODE_ALIASES.get(token)


# Vehicle-type columns are eight characters wide, hence the truncated forms.
_MODE_ALIASES = {mode.value: mode for mode in PublicTransportMode}
_MODE_ALIASES.update(
    {
        "lightrai": PublicTransportMode.LIGHT_RAIL,
        "national": PublicTransportMode.NATIONAL_RAIL,
        "subway": PublicTransportMode.TUBE,
        "rail": PublicTransportMode.NATIONAL_RAIL,
    }
)


@dataclass(frozen=True)
class OperatingDays:
    """Seven-element weekday bitset, Monday first."""

    days: Tuple[bool, bool, bool, bool, bool, bool, bool]

    @classmethod
    def from_cif_str(cls, text: str) -> "OperatingDays":
        padded = (text or "").ljust(7)[:7]
        return cls(days=tuple(char == "1" for char in padded))  # type: ignore[arg-type]

    def contains(self, day: Day) -> bool:
        return self.days[day.value]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return "".join("1" if flag else "0" for flag in self.days)


@dataclass(frozen=True)
class JourneyHeader:
    """Header opening one journey; followed by that journey's stop records."""

    status: Status
    journey_id: str
    operating_days: OperatingDays
    category: TrainCategory
    date_runs_from: Optional[date] = None
    date_runs_to: Optional[date] = None
    operator: str = ""
    route_number: str = ""
    mode: Optional[PublicTransportMode] = None
    direction: str = ""
    stp_indicator: str = ""

    def __post_init__(self) -> None:
        if (
            self.date_runs_from is not None
            and self.date_runs_to is not None
            and self.date_runs_from > self.date_runs_to
        ):
            raise ValueError(
                f"Journey {self.journey_id} runs from {self.date_runs_from} "
                f"after it runs to {self.date_runs_to}"
            )

    def runs_on_date(self, on_date: date) -> bool:
        if self.date_runs_from is not None and on_date < self.date_runs_from:
            return False
        if self.date_runs_to is not None and on_date > self.date_runs_to:
            return False
        return True


@dataclass(frozen=True)
class JourneyStop:
    """One call of a journey at a location; times are seconds past midnight."""

    location: str
    activity_flag: ActivityFlag
    arrival_time: Optional[int] = None
    departure_time: Optional[int] = None
    is_first_stop: bool = False


@dataclass(frozen=True)
class LocationDefinition:
    """Location record; only the identifiers are used downstream."""

    location: str
    numeric_reference: Optional[int] = None
    canonical_code: Optional[str] = None
    description: str = ""


@dataclass(frozen=True)
class JourneyBreak:
    """Marks a point where the journey sequence is interrupted.

    Emitted in place of a header line that failed to decode, and between
    source files, so stops that follow are never attached to the journey
    before the break.
    """

    reason: str
    source: str = ""
    line_number: Optional[int] = None


Record = Union[JourneyHeader, JourneyStop, LocationDefinition, JourneyBreak]
