"""Fixed-width line decoder for ATCO-CIF and rail CIF timetables.

Every line is decoded independently so the work can be spread over a process
pool. Records are always handed back in source-line order, journey
reconstruction depends on a header being followed by its own stops.
"""

from __future__ import annotations

import logging
import multiprocessing as mp
import os
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .domain_types import (
    ActivityFlag,
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
from .layouts import PROFILES, RECORD_TYPE, RecordLayout
from .remapping import IdentifierRemapping

logger = logging.getLogger(__name__)

MAX_LOGGED_FAILURES = 20
MAX_FAILURE_SAMPLES = 50


class RecordDecodeError(ValueError):
    """A recognised record type carried a malformed field."""

    def __init__(self, record_type: str, message: str):
        super().__init__(f"{record_type}: {message}")
        self.record_type = record_type
        self.reason = message


def split_lines(raw_text: str) -> List[str]:
    """Split raw file contents into lines, dropping CRs and one trailing blank line."""
    lines = raw_text.replace("\r", "").split("\n")
    if lines and not lines[-1]:
        lines.pop()
    return lines


def parse_hhmm(text: str, *, optional: bool = False) -> Optional[int]:
    """Decode an ``HHMM`` column into seconds past midnight."""
    if optional and not text.strip():
        return None
    if len(text) != 4 or not text.isdigit():
        raise ValueError(f"malformed time {text!r}")
    hours = int(text[:2])
    minutes = int(text[2:])
    if hours > 23 or minutes > 59:
        raise ValueError(f"time out of range {text!r}")
    return hours * 3600 + minutes * 60


def _parse_date(text: str, pattern: str, *, open_ended: Tuple[str, ...] = ()) -> Optional[date]:
    token = text.strip()
    if not token or token in open_ended:
        return None
    try:
        return datetime.strptime(token, pattern).date()
    except ValueError:
        raise ValueError(f"malformed date {text!r}") from None


def _parse_status(text: str) -> Status:
    try:
        return Status(text)
    except ValueError:
        raise ValueError(f"unknown status {text!r}") from None


def _rail_activity(text: str) -> ActivityFlag:
    codes = {text[idx:idx + 2].strip() for idx in range(0, len(text), 2)}
    if "T" in codes or "R" in codes:
        return ActivityFlag.BOTH
    take_up = "U" in codes
    set_down = "D" in codes
    if take_up and set_down:
        return ActivityFlag.BOTH
    if take_up:
        return ActivityFlag.PICK_UP_ONLY
    if set_down:
        return ActivityFlag.SET_DOWN_ONLY
    return ActivityFlag.NEITHER


class RecordDecoder:
    """Turns one CIF line into a :data:`Record`, or ``None`` for unused lines."""

    _HANDLERS: Dict[TimetableFormat, Dict[str, str]] = {
        TimetableFormat.ATCO_CIF: {
            "QS": "_decode_qs",
            "QO": "_decode_qo",
            "QI": "_decode_qi",
            "QT": "_decode_qt",
            "QL": "_decode_ql",
        },
        TimetableFormat.RAIL_CIF: {
            "BS": "_decode_bs",
            "LO": "_decode_lo",
            "LI": "_decode_li",
            "LT": "_decode_lt",
            "TI": "_decode_tiploc",
            "TA": "_decode_tiploc",
        },
    }

    def __init__(
        self,
        timetable_format: TimetableFormat | str,
        remapping: IdentifierRemapping | None = None,
    ) -> None:
        self.timetable_format = TimetableFormat(timetable_format)
        self.profile = PROFILES[self.timetable_format]
        self.remapping = remapping or IdentifierRemapping()
        self._handlers = self._HANDLERS[self.timetable_format]

    def decode_line(self, line: str) -> Optional[Record]:
        """Decode ``line``; raises :class:`RecordDecodeError` on malformed fields."""
        record_type = RECORD_TYPE.read(line)
        handler_name = self._handlers.get(record_type)
        if handler_name is None:
            return None
        handler = getattr(self, handler_name)
        try:
            return handler(line, self.profile.layout(record_type))
        except RecordDecodeError:
            raise
        except ValueError as exc:
            raise RecordDecodeError(record_type, str(exc)) from exc

    # ---------------------------------------------------------------- identifiers
    def _is_excluded(self, identifier: str) -> bool:
        return any(identifier.startswith(prefix) for prefix in self.profile.excluded_prefixes)

    def _stop_identifier(self, layout: RecordLayout, line: str, name: str) -> Optional[str]:
        identifier = layout.read_trimmed(line, name)
        if not identifier:
            raise ValueError("blank location identifier")
        if self._is_excluded(identifier):
            return None
        return self.remapping.apply(identifier)

    def _location_identifier(self, layout: RecordLayout, line: str, name: str) -> Optional[str]:
        identifier = layout.read_trimmed(line, name)
        if not identifier:
            raise ValueError("blank location identifier")
        # Remapped identifiers are represented by their target's own record.
        if identifier in self.remapping or self._is_excluded(identifier):
            return None
        return identifier

    # ------------------------------------------------------------------ ATCO-CIF
    def _decode_qs(self, line: str, layout: RecordLayout) -> JourneyHeader:
        first_date = _parse_date(layout.read(line, "first_date"), "%Y%m%d")
        if first_date is None:
            raise ValueError("missing first date")
        return JourneyHeader(
            status=_parse_status(layout.read(line, "status")),
            journey_id=layout.read_trimmed(line, "journey_id"),
            operating_days=OperatingDays.from_cif_str(layout.read(line, "operating_days")),
            category=TrainCategory.PASSENGER,
            date_runs_from=first_date,
            date_runs_to=_parse_date(layout.read(line, "last_date"), "%Y%m%d", open_ended=("99999999",)),
            operator=layout.read_trimmed(line, "operator"),
            route_number=layout.read_trimmed(line, "route_number"),
            mode=PublicTransportMode.from_cif_str(layout.read(line, "vehicle_type")),
            direction=layout.read_trimmed(line, "direction"),
        )

    def _decode_qo(self, line: str, layout: RecordLayout) -> Optional[JourneyStop]:
        location = self._stop_identifier(layout, line, "location")
        departure = parse_hhmm(layout.read(line, "departure"))
        if location is None:
            return None
        return JourneyStop(
            location=location,
            activity_flag=ActivityFlag.PICK_UP_ONLY,
            departure_time=departure,
            is_first_stop=True,
        )

    def _decode_qi(self, line: str, layout: RecordLayout) -> Optional[JourneyStop]:
        location = self._stop_identifier(layout, line, "location")
        arrival = parse_hhmm(layout.read(line, "arrival"))
        departure = parse_hhmm(layout.read(line, "departure"))
        activity_code = layout.read(line, "activity")
        try:
            activity = ActivityFlag(activity_code)
        except ValueError:
            raise ValueError(f"unknown activity flag {activity_code!r}") from None
        if location is None:
            return None
        return JourneyStop(
            location=location,
            activity_flag=activity,
            arrival_time=arrival,
            departure_time=departure,
        )

    def _decode_qt(self, line: str, layout: RecordLayout) -> Optional[JourneyStop]:
        location = self._stop_identifier(layout, line, "location")
        arrival = parse_hhmm(layout.read(line, "arrival"))
        if location is None:
            return None
        return JourneyStop(
            location=location,
            activity_flag=ActivityFlag.SET_DOWN_ONLY,
            arrival_time=arrival,
        )

    def _decode_ql(self, line: str, layout: RecordLayout) -> Optional[LocationDefinition]:
        _parse_status(layout.read(line, "status"))
        location = self._location_identifier(layout, line, "location")
        if location is None:
            return None
        return LocationDefinition(
            location=location,
            description=layout.read_trimmed(line, "name").replace(",", ""),
        )

    # ------------------------------------------------------------------ rail CIF
    def _decode_bs(self, line: str, layout: RecordLayout) -> JourneyHeader:
        category_code = layout.read_trimmed(line, "category")
        if category_code in self.profile.passenger_categories:
            category = TrainCategory.PASSENGER
        else:
            category = TrainCategory.OTHER
        return JourneyHeader(
            status=_parse_status(layout.read(line, "transaction_type")),
            journey_id=layout.read_trimmed(line, "train_uid"),
            operating_days=OperatingDays.from_cif_str(layout.read(line, "days_run")),
            category=category,
            date_runs_from=_parse_date(layout.read(line, "date_runs_from"), "%y%m%d"),
            date_runs_to=_parse_date(layout.read(line, "date_runs_to"), "%y%m%d", open_ended=("999999",)),
            route_number=layout.read_trimmed(line, "train_identity"),
            mode=PublicTransportMode.NATIONAL_RAIL,
            stp_indicator=layout.read_trimmed(line, "stp_indicator"),
        )

    def _decode_lo(self, line: str, layout: RecordLayout) -> Optional[JourneyStop]:
        location = self._stop_identifier(layout, line, "tiploc")
        departure = parse_hhmm(layout.read(line, "departure"))
        if location is None:
            return None
        return JourneyStop(
            location=location,
            activity_flag=ActivityFlag.PICK_UP_ONLY,
            departure_time=departure,
            is_first_stop=True,
        )

    def _decode_li(self, line: str, layout: RecordLayout) -> Optional[JourneyStop]:
        location = self._stop_identifier(layout, line, "tiploc")
        # Passing points carry no arrival or departure.
        arrival = parse_hhmm(layout.read(line, "arrival"), optional=True)
        departure = parse_hhmm(layout.read(line, "departure"), optional=True)
        if location is None:
            return None
        return JourneyStop(
            location=location,
            activity_flag=_rail_activity(layout.read(line, "activity")),
            arrival_time=arrival,
            departure_time=departure,
        )

    def _decode_lt(self, line: str, layout: RecordLayout) -> Optional[JourneyStop]:
        location = self._stop_identifier(layout, line, "tiploc")
        arrival = parse_hhmm(layout.read(line, "arrival"))
        if location is None:
            return None
        return JourneyStop(
            location=location,
            activity_flag=ActivityFlag.SET_DOWN_ONLY,
            arrival_time=arrival,
        )

    def _decode_tiploc(self, line: str, layout: RecordLayout) -> Optional[LocationDefinition]:
        location = self._location_identifier(layout, line, "tiploc")
        stanox_text = layout.read_trimmed(line, "stanox")
        if stanox_text and not stanox_text.isdigit():
            raise ValueError(f"malformed STANOX {stanox_text!r}")
        if location is None:
            return None
        description = layout.read_trimmed(line, "description") or layout.read_trimmed(
            line, "tps_description"
        )
        return LocationDefinition(
            location=location,
            numeric_reference=int(stanox_text) if stanox_text else None,
            canonical_code=layout.read_trimmed(line, "crs_code") or None,
            description=description,
        )


# ---------------------------------------------------------------------- batches
@dataclass
class DecodeStats:
    """Per-run bookkeeping for the decode stage."""

    lines_total: int = 0
    records_decoded: int = 0
    lines_ignored: int = 0
    lines_failed: int = 0
    failures_by_type: Counter = field(default_factory=Counter)
    failure_samples: List[str] = field(default_factory=list)

    def record_failure(self, line_number: int, record_type: str, message: str, source: str = "") -> None:
        self.lines_failed += 1
        self.failures_by_type[record_type] += 1
        text = f"line {line_number} ({record_type}): {message}"
        if source:
            text = f"{source} {text}"
        if len(self.failure_samples) < MAX_FAILURE_SAMPLES:
            self.failure_samples.append(text)
        if self.lines_failed <= MAX_LOGGED_FAILURES:
            logger.warning("Skipping malformed record at %s", text)

    def as_dict(self) -> Dict[str, object]:
        return {
            "lines_total": self.lines_total,
            "records_decoded": self.records_decoded,
            "lines_ignored": self.lines_ignored,
            "lines_failed": self.lines_failed,
            "failures_by_type": dict(self.failures_by_type),
            "failure_samples": list(self.failure_samples),
        }


@dataclass
class DecodeResult:
    records: List[Record]
    stats: DecodeStats


# (record, record_type, error message)
_Outcome = Tuple[Optional[Record], str, Optional[str]]

WORKER_DECODER: RecordDecoder | None = None


def _init_worker(decoder: RecordDecoder) -> None:
    """Install the shared decoder inside each worker process."""

    global WORKER_DECODER
    WORKER_DECODER = decoder


def _decode_outcome(decoder: RecordDecoder, line: str) -> _Outcome:
    try:
        return decoder.decode_line(line), RECORD_TYPE.read(line), None
    except RecordDecodeError as exc:
        return None, exc.record_type, exc.reason


def _decode_chunk(lines: Sequence[str]) -> List[_Outcome]:
    if WORKER_DECODER is None:
        raise RuntimeError("Worker decoder not initialised.")
    return [_decode_outcome(WORKER_DECODER, line) for line in lines]


def _chunks(lines: Sequence[str], size: int) -> Iterable[Sequence[str]]:
    for start in range(0, len(lines), size):
        yield lines[start:start + size]


def decode_lines(
    lines: Sequence[str],
    decoder: RecordDecoder,
    *,
    workers: int = 1,
    chunksize: int = 5000,
    on_progress: Callable[[int], None] | None = None,
    source: str = "",
    stats: DecodeStats | None = None,
) -> DecodeResult:
    """Decode ``lines`` in order, skipping and counting malformed records.

    A header line that fails to decode is replaced by a :class:`JourneyBreak`
    so the stops after it cannot be attached to the previous journey. Pass a
    shared ``stats`` to accumulate several sources into one run's totals;
    ``source`` labels this batch in failure samples and logs.
    """
    if chunksize <= 0:
        raise ValueError("chunksize must be positive.")
    if stats is None:
        stats = DecodeStats()
    stats.lines_total += len(lines)
    failed_before = stats.lines_failed
    records: List[Record] = []
    decoded = ignored = 0
    line_number = 0

    def consume(outcomes: List[_Outcome]) -> None:
        nonlocal line_number, decoded, ignored
        for record, record_type, error in outcomes:
            line_number += 1
            if error is not None:
                stats.record_failure(line_number, record_type, error, source)
                if record_type in decoder.profile.header_record_types:
                    records.append(JourneyBreak(reason=error, source=source, line_number=line_number))
            elif record is None:
                ignored += 1
            else:
                records.append(record)
                decoded += 1
        if on_progress is not None:
            on_progress(len(outcomes))

    if workers <= 1 or len(lines) <= chunksize:
        for chunk in _chunks(lines, chunksize):
            consume([_decode_outcome(decoder, line) for line in chunk])
    else:
        ctx = mp.get_context("spawn" if os.name == "nt" else "fork")
        with ctx.Pool(processes=workers, initializer=_init_worker, initargs=(decoder,)) as pool:
            # imap keeps chunk order, unlike imap_unordered.
            for outcomes in pool.imap(_decode_chunk, _chunks(lines, chunksize)):
                consume(outcomes)

    stats.records_decoded += decoded
    stats.lines_ignored += ignored
    failed = stats.lines_failed - failed_before
    suppressed = stats.lines_failed - max(failed_before, MAX_LOGGED_FAILURES)
    if suppressed > 0:
        logger.warning(
            "%d further malformed records skipped (%d in total)",
            suppressed,
            stats.lines_failed,
        )
    logger.info(
        "Decoded %d records from %d lines%s (%d ignored, %d malformed)",
        decoded,
        len(lines),
        f" of {source}" if source else "",
        ignored,
        failed,
    )
    return DecodeResult(records=records, stats=stats)


def decode_text(raw_text: str, decoder: RecordDecoder, **kwargs) -> DecodeResult:
    """Split one file's contents into lines and decode them."""
    return decode_lines(split_lines(raw_text), decoder, **kwargs)
