"""Raw location identifier -> canonical stop/station code resolution."""

from __future__ import annotations

import logging
import string
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import AbstractSet, Dict, Iterable, List, Mapping, Optional

from cifreq.records.domain_types import LocationDefinition, Record, TimetableFormat

logger = logging.getLogger(__name__)

IdentifierMap = Mapping[str, str]

_PUNCTUATION = str.maketrans("", "", string.punctuation)


class ResolutionStrategy(str, Enum):
    DIRECT = "direct"
    INDIRECT = "indirect"

    @classmethod
    def for_format(cls, timetable_format: TimetableFormat | str) -> "ResolutionStrategy":
        return _STRATEGY_BY_FORMAT[TimetableFormat(timetable_format)]


_STRATEGY_BY_FORMAT = {
    TimetableFormat.ATCO_CIF: ResolutionStrategy.DIRECT,
    TimetableFormat.RAIL_CIF: ResolutionStrategy.INDIRECT,
}


def canonicalise(identifier: str) -> str:
    """Trim whitespace and strip punctuation from an identifier."""
    return identifier.strip().translate(_PUNCTUATION)


def location_definitions(records: Iterable[Record]) -> List[LocationDefinition]:
    return [record for record in records if isinstance(record, LocationDefinition)]


def build_direct_map(
    locations: Iterable[LocationDefinition],
    allow_list: Optional[AbstractSet[str]] = None,
) -> Dict[str, str]:
    """Each location is its own canonical code; the first definition wins."""
    mapping: Dict[str, str] = {}
    for location in locations:
        raw = location.location.strip()
        code = canonicalise(raw)
        if not raw or not code:
            continue
        if allow_list is not None and code not in allow_list:
            continue
        mapping.setdefault(raw, code)
    return mapping


def build_intermediate_map(
    locations: Iterable[LocationDefinition],
    allow_list: Optional[AbstractSet[str]] = None,
) -> Dict[int, str]:
    """Numeric reference -> canonical code, for codes the allow-list admits."""
    mapping: Dict[int, str] = {}
    for location in locations:
        code = (location.canonical_code or "").strip()
        if not code or location.numeric_reference is None:
            continue
        if allow_list is not None and code not in allow_list:
            continue
        mapping.setdefault(location.numeric_reference, code)
    return mapping


def rewrite_identifiers(
    locations: Iterable[LocationDefinition],
    intermediate: Mapping[int, str],
) -> Dict[str, str]:
    """Raw identifier -> canonical code through each location's numeric reference."""
    mapping: Dict[str, str] = {}
    for location in locations:
        if location.numeric_reference is None:
            continue
        code = intermediate.get(location.numeric_reference)
        if code is None:
            continue
        mapping.setdefault(location.location.strip(), code)
    return mapping


@dataclass
class ResolutionStats:
    locations_seen: int = 0
    intermediate_codes: int = 0
    identifiers_resolved: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "locations_seen": self.locations_seen,
            "intermediate_codes": self.intermediate_codes,
            "identifiers_resolved": self.identifiers_resolved,
        }


class IdentifierResolver:
    """Builds the read-only :data:`IdentifierMap` for one pipeline run."""

    def __init__(
        self,
        strategy: ResolutionStrategy | str,
        allow_list: Optional[Iterable[str]] = None,
    ) -> None:
        self.strategy = ResolutionStrategy(strategy)
        self.allow_list = frozenset(allow_list) if allow_list is not None else None
        self.stats = ResolutionStats()

    def resolve(self, records: Iterable[Record]) -> IdentifierMap:
        locations = location_definitions(records)
        self.stats.locations_seen = len(locations)
        if self.strategy is ResolutionStrategy.DIRECT:
            mapping = build_direct_map(locations, self.allow_list)
        else:
            intermediate = build_intermediate_map(locations, self.allow_list)
            self.stats.intermediate_codes = len(intermediate)
            mapping = rewrite_identifiers(locations, intermediate)
        self.stats.identifiers_resolved = len(mapping)
        logger.info(
            "Resolved %d of %d location identifiers (%s strategy)",
            len(mapping),
            len(locations),
            self.strategy.value,
        )
        return MappingProxyType(mapping)


def build_stop_name_lookup(
    records: Iterable[Record],
    identifier_map: IdentifierMap,
) -> Dict[str, str]:
    """Canonical code -> first description seen among its location records."""
    lookup: Dict[str, str] = {}
    for location in location_definitions(records):
        code = identifier_map.get(location.location)
        if code is None or not location.description:
            continue
        lookup.setdefault(code, location.description.replace(",", ""))
    return lookup
