"""Record decoding for fixed-width CIF timetables."""

from .decoder import (
    DecodeResult,
    DecodeStats,
    RecordDecodeError,
    RecordDecoder,
    decode_lines,
    decode_text,
    parse_hhmm,
    split_lines,
)
from .domain_types import (
    ActivityFlag,
    Day,
    JourneyBreak,
    JourneyHeader,
    JourneyStop,
    LocationDefinition,
    OperatingDays,
    PublicTransportMode,
    Record,
    Status,
    TimetableFormat,
    TrainCategory,
)
from .layouts import PROFILES, FieldSpec, FormatProfile, RecordLayout
from .remapping import IdentifierRemapping

__all__ = [
    "ActivityFlag",
    "Day",
    "DecodeResult",
    "DecodeStats",
    "FieldSpec",
    "FormatProfile",
    "IdentifierRemapping",
    "JourneyBreak",
    "JourneyHeader",
    "JourneyStop",
    "LocationDefinition",
    "OperatingDays",
    "PROFILES",
    "PublicTransportMode",
    "Record",
    "RecordDecodeError",
    "RecordDecoder",
    "RecordLayout",
    "Status",
    "TimetableFormat",
    "TrainCategory",
    "decode_lines",
    "decode_text",
    "parse_hhmm",
    "split_lines",
]
