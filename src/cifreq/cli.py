"""Compute per-stop hourly departure criteria from CIF timetable files."""

from __future__ import annotations

import argparse
import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Sequence

import pandas as pd
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from cifreq.aggregate import JourneyIntegrityError
from cifreq.criteria import CriteriaConfig, CriteriaResult
from cifreq.pipeline import PipelineConfig, PipelineResult, run_pipeline
from cifreq.records import Day, IdentifierRemapping, TimetableFormat, split_lines
from cifreq.resolve import AllowList

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_NAME = "hourly_departures_criteria"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--input-files",
        nargs="+",
        default=[],
        help="CIF files to process, in order.",
    )
    parser.add_argument(
        "--input-file-dir",
        default=None,
        help="Directory whose *.cif files (any case) are processed in name order.",
    )
    parser.add_argument(
        "--format",
        default=TimetableFormat.ATCO_CIF.value,
        choices=[item.value for item in TimetableFormat],
        help="CIF generation: atco-cif (bus/coach/light rail) or rail-cif (heavy rail).",
    )
    parser.add_argument(
        "--operating-day",
        default="tuesday",
        choices=[day.name.lower() for day in Day],
        help="Weekday to analyse.",
    )
    parser.add_argument(
        "--analysis-date",
        default=None,
        help="Optional YYYY-MM-DD date; journeys whose date range excludes it are skipped.",
    )
    parser.add_argument(
        "--remapping",
        default=None,
        help="Optional YAML mapping raw location identifiers to replacements (null drops).",
    )
    parser.add_argument(
        "--allow-list",
        default=None,
        help="Optional YAML/CSV list of canonical stop codes to keep.",
    )
    parser.add_argument(
        "--criteria-config",
        default=None,
        help="Optional YAML overriding the frequency thresholds.",
    )
    parser.add_argument("--output-directory", required=True, help="Directory for output files.")
    parser.add_argument(
        "--output-name",
        default=DEFAULT_OUTPUT_NAME,
        help="Base name of the criteria JSON / summary CSV.",
    )
    parser.add_argument(
        "--encoding",
        default="utf-8",
        help="Text encoding of the CIF files.",
    )
    parser.add_argument(
        "--num-workers",
        type=int,
        default=None,
        help="Worker processes for decoding and evaluation (defaults to n_cpu - 1).",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Abort the run on a journey with a missing departure time instead of skipping it.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Verbosity for the CLI logger.",
    )
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(message)s",
    )


def collect_input_files(input_files: Sequence[str], input_dir: str | None) -> List[Path]:
    paths = [Path(item) for item in input_files]
    if input_dir:
        directory = Path(input_dir)
        if not directory.is_dir():
            raise SystemExit(f"Input directory not found: {directory}")
        paths.extend(sorted(path for path in directory.iterdir() if path.suffix.lower() == ".cif"))
    if not paths:
        raise SystemExit("No CIF input files given; use --input-files or --input-file-dir.")
    missing = [str(path) for path in paths if not path.is_file()]
    if missing:
        raise SystemExit(f"Input files not found: {', '.join(missing)}")
    return paths


def write_json_file(path: str | Path, data: object) -> None:
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Writing to %s", output_path)
    with output_path.open("w", encoding="utf-8") as handle:
        json.dump(data, handle)


def results_to_dataframe(results: Dict[str, CriteriaResult], stop_names: Dict[str, str]) -> pd.DataFrame:
    rows = [
        {
            "stop_code": code,
            "stop_name": stop_names.get(code, ""),
            "departures": sum(result.hour_counts),
            "journey_starts": sum(result.hour_counts_journey_starts),
            "all_7_7": result.all_7_7,
            "all_6_10": result.all_6_10,
            "avg_7_7": result.avg_7_7,
            "avg_6_10": result.avg_6_10,
            "flagged_for_review": result.flagged_for_review,
        }
        for code, result in results.items()
    ]
    return pd.DataFrame(
        rows,
        columns=[
            "stop_code",
            "stop_name",
            "departures",
            "journey_starts",
            "all_7_7",
            "all_6_10",
            "avg_7_7",
            "avg_6_10",
            "flagged_for_review",
        ],
    )


def _run_with_progress(
    raw_texts: List[str], source_names: List[str], config: PipelineConfig
) -> PipelineResult:
    total_lines = sum(len(split_lines(text)) for text in raw_texts)
    console = Console(stderr=True)
    progress = Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(bar_width=None),
        TaskProgressColumn(),
        TextColumn("{task.completed:,} lines", justify="right"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
        disable=not console.is_terminal,
    )
    with progress:
        task_id = progress.add_task(f"Decoding CIF ({total_lines:,} lines)", total=total_lines or None)
        return run_pipeline(
            raw_texts,
            config,
            source_names=source_names,
            on_progress=lambda count: progress.advance(task_id, count),
        )


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    configure_logging(args.log_level)

    paths = collect_input_files(args.input_files, args.input_file_dir)
    analysis_date = None
    if args.analysis_date:
        try:
            analysis_date = datetime.strptime(args.analysis_date, "%Y-%m-%d").date()
        except ValueError as exc:
            raise SystemExit(f"Invalid --analysis-date {args.analysis_date!r}: expected YYYY-MM-DD") from exc

    try:
        remapping = IdentifierRemapping.from_yaml(args.remapping) if args.remapping else None
        allow_list = AllowList.from_path(args.allow_list) if args.allow_list else None
        criteria = CriteriaConfig.from_yaml(args.criteria_config) if args.criteria_config else CriteriaConfig()
    except (OSError, TypeError, ValueError) as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc

    cpu_total = os.cpu_count() or 1
    workers = max(1, args.num_workers or max(1, cpu_total - 1))
    config = PipelineConfig(
        timetable_format=TimetableFormat(args.format),
        day=Day.from_name(args.operating_day),
        analysis_date=analysis_date,
        remapping=remapping,
        allow_list=allow_list,
        criteria=criteria,
        decode_workers=workers,
        evaluate_workers=workers,
        strict_journeys=args.strict,
    )
    logger.info(
        "Analysing %s for %s using %d worker(s)",
        ", ".join(str(path) for path in paths),
        args.operating_day,
        workers,
    )

    raw_texts = []
    for path in paths:
        logger.info("Reading %s", path)
        raw_texts.append(path.read_text(encoding=args.encoding, errors="replace"))

    try:
        result = _run_with_progress(raw_texts, [path.name for path in paths], config)
    except JourneyIntegrityError as exc:
        raise SystemExit(f"Aborting run: {exc}") from exc

    output_dir = Path(args.output_directory)
    write_json_file(
        output_dir / f"{args.output_name}.json",
        {code: item.to_dict() for code, item in result.results.items()},
    )
    write_json_file(output_dir / "stop_name_lookup.json", result.stop_names)
    write_json_file(output_dir / f"{args.output_name}_diagnostics.json", result.diagnostics())
    summary_path = output_dir / f"{args.output_name}_summary.csv"
    results_to_dataframe(result.results, result.stop_names).to_csv(summary_path, index=False)
    logger.info("Wrote %d stop results to %s", len(result.results), output_dir)


if __name__ == "__main__":
    main()
