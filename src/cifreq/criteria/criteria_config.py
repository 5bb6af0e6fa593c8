"""Thresholds for the frequency criteria, loadable from YAML."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, Mapping, Sequence

import yaml

from cifreq.aggregate.hourly_departures import HOURS_PER_DAY

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HourWindow:
    """Closed range of hours, e.g. 7..18 for 7am-7pm."""

    name: str
    first_hour: int
    last_hour: int

    def __post_init__(self) -> None:
        if not 0 <= self.first_hour <= self.last_hour < HOURS_PER_DAY:
            raise ValueError(
                f"Hour window {self.name!r} must satisfy 0 <= first <= last <= 23, "
                f"got {self.first_hour}..{self.last_hour}"
            )

    @property
    def hours(self) -> range:
        return range(self.first_hour, self.last_hour + 1)

    def __len__(self) -> int:
        return self.last_hour - self.first_hour + 1


def _integer(name: str, raw: object) -> int:
    # bool is an int subclass.
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise TypeError(f"{name} must be an integer, got {raw!r}")
    return raw


def _window(name: str, raw: object) -> HourWindow:
    if not isinstance(raw, Sequence) or isinstance(raw, str) or len(raw) != 2:
        raise TypeError(f"window_{name} must be a [first_hour, last_hour] pair")
    return HourWindow(
        name=name,
        first_hour=_integer(f"window_{name}", raw[0]),
        last_hour=_integer(f"window_{name}", raw[1]),
    )


@dataclass(frozen=True)
class CriteriaConfig:
    """Every tunable number used by the criteria evaluator.

    The review thresholds were tuned empirically on historical timetables;
    the defaults reproduce them.
    """

    min_departures_per_hour: int = 4
    min_journey_starts_per_hour: int = 2
    min_same_next_stop_per_hour: int = 2
    review_min_distinct_next_stops: int = 3
    average_departures_per_hour: int = 4
    journey_start_weight: int = 2
    average_same_next_stop_per_hour: int = 2
    review_average_per_hour: int = 3
    window_7_7: HourWindow = field(default_factory=lambda: HourWindow("7_7", 7, 18))
    window_6_10: HourWindow = field(default_factory=lambda: HourWindow("6_10", 6, 21))

    def __post_init__(self) -> None:
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, int) and value < 0:
                raise ValueError(f"{item.name} cannot be negative")

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "CriteriaConfig":
        if not isinstance(data, Mapping):
            raise TypeError("Criteria config must be a mapping")
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown criteria settings: {', '.join(map(str, unknown))}")
        kwargs: Dict[str, object] = {}
        for key, value in data.items():
            if key.startswith("window_"):
                kwargs[key] = _window(key[len("window_"):], value)
            else:
                kwargs[key] = _integer(key, value)
        return cls(**kwargs)  # type: ignore[arg-type]

    @classmethod
    def from_yaml(cls, path: str | Path) -> "CriteriaConfig":
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Criteria YAML not found at {config_path}")
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        config = cls.from_mapping(data)
        logger.debug("Loaded criteria config from %s: %s", config_path, config)
        return config


__all__ = ["CriteriaConfig", "HourWindow"]
