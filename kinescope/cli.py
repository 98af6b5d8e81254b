from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from core.logging_setup import setup_logging
from core.paths import get_outputs_root
from core.settings import load_settings
from engine.detector import DetectorSettings
from engine.export import write_result_json, write_table_csv
from engine.extract import PoseExtractionConfig, extract_pose
from engine.ingest import IngestionError, load_csv_file
from engine.media import MediaError
from engine.sampler import SAMPLING_MODES, InitializationError, ProcessingCancelled, SamplerConfig


def _progress_printer():
    last_decile = -1

    def report(progress: float) -> None:
        nonlocal last_decile
        decile = int(progress * 10)
        if decile != last_decile:
            last_decile = decile
            print(f"Progress: {progress * 100:.0f}%")

    return report


def _summarize(result) -> None:
    populated = sum(1 for series in result.joints.values() if len(series))
    print(f"- joints: {len(result.joints)} ({populated} with samples)")
    print(f"- complete: {result.complete}")


def _output_path(requested: Path | None, source: Path) -> Path:
    if requested is not None:
        return requested
    return get_outputs_root() / f"{source.stem}.pose.json"


def run_ingest(args: argparse.Namespace) -> int:
    try:
        ingestion = load_csv_file(
            args.table,
            expected_duration=args.duration,
            derive=not args.no_composites,
        )
    except IngestionError as exc:
        logging.error("Ingestion failed: %s", exc)
        print(f"Ingestion failed: {exc}", file=sys.stderr)
        return 1
    out_path = write_result_json(_output_path(args.out, args.table), ingestion.result)
    print(f"Ingestion complete: {out_path}")
    _summarize(ingestion.result)
    if ingestion.dropped_rows:
        print(f"- dropped rows: {ingestion.dropped_rows}")
    if ingestion.validation is not None:
        print(f"- valid against media duration: {ingestion.validation.is_valid}")
        for warning in ingestion.validation.warnings:
            print(f"  warning: {warning}")
    return 0


def run_extract(args: argparse.Namespace) -> int:
    settings = load_settings()
    if args.sample_rate is not None:
        settings["sample_rate"] = args.sample_rate
    if args.mode is not None:
        settings["sampling_mode"] = args.mode
    if args.model_complexity is not None:
        settings["model_complexity"] = args.model_complexity
    if args.model_path is not None:
        settings["model_path"] = str(args.model_path)
    config = PoseExtractionConfig(
        sampler=SamplerConfig.from_settings(settings),
        detector=DetectorSettings.from_settings(settings),
    )
    try:
        result = extract_pose(args.video, config=config, progress_callback=_progress_printer())
    except ProcessingCancelled:
        print("Extraction cancelled.", file=sys.stderr)
        return 130
    except (FileNotFoundError, InitializationError, MediaError) as exc:
        print(f"Extraction failed: {exc}", file=sys.stderr)
        return 1
    out_path = write_result_json(_output_path(args.out, args.video), result)
    print(f"Extraction complete: {out_path}")
    _summarize(result)
    if args.csv:
        write_table_csv(args.csv, result)
        print(f"- table: {args.csv}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Kinescope pose time-series tools")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest_parser = sub.add_parser("ingest", help="Load a detection table (CSV) into a pose result")
    ingest_parser.add_argument("--table", type=Path, required=True, help="Path to the detection CSV")
    ingest_parser.add_argument("--duration", type=float, help="Media duration in seconds to validate against")
    ingest_parser.add_argument("--out", type=Path, help="Output pose result JSON (default: outputs folder)")
    ingest_parser.add_argument("--no-composites", action="store_true", help="Skip derived hand/center-hip joints")

    extract_parser = sub.add_parser("extract", help="Run the pose detector over a video")
    extract_parser.add_argument("--video", type=Path, required=True, help="Path to input video")
    extract_parser.add_argument("--out", type=Path, help="Output pose result JSON (default: outputs folder)")
    extract_parser.add_argument("--csv", type=Path, help="Also write a detection table CSV")
    extract_parser.add_argument("--sample-rate", type=float, help="Frames sampled per second of media")
    extract_parser.add_argument("--mode", choices=SAMPLING_MODES, help="Seek every frame or play through")
    extract_parser.add_argument("--model-complexity", type=int, choices=(0, 1, 2), help="Pose model size")
    extract_parser.add_argument("--model-path", type=Path, help="Local pose landmarker .task file")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose)
    if args.command == "ingest":
        return run_ingest(args)
    return run_extract(args)


if __name__ == "__main__":
    sys.exit(main())
