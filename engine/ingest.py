from __future__ import annotations

import csv
import io
import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterable, Sequence

from core.constants import (
    DURATION_TOLERANCE_FRACTION,
    EDGE_TOLERANCE_S,
    LANDMARK_AXES,
    LANDMARK_COLUMN_FORMAT,
    TIME_COLUMN,
    VISIBILITY_THRESHOLD,
)
from core.landmarks import LANDMARK_NAMES
from engine.derive import derive_composite_joints
from engine.series import FrameSample, ProcessingResult, TimeSeriesStore, accept_sample, flip_vertical


class IngestionError(ValueError):
    pass


class EmptyInput(IngestionError):
    pass


@dataclass
class ValidationReport:
    is_valid: bool
    warnings: list[str] = field(default_factory=list)
    table_duration: float | None = None
    media_duration: float | None = None
    duration_mismatch: bool = False


@dataclass(frozen=True)
class IngestionResult:
    result: ProcessingResult
    validation: ValidationReport | None = None
    dropped_rows: int = 0


def landmark_column(index: int, axis: str) -> str:
    return LANDMARK_COLUMN_FORMAT.format(index=index, axis=axis)


def _locate_columns(header: Sequence[str]) -> tuple[int | None, dict[int, tuple[int, int, int, int]]]:
    positions: dict[str, int] = {}
    for position, column in enumerate(header):
        # Duplicate columns resolve to the first occurrence.
        positions.setdefault(column.strip(), position)
    time_position = positions.get(TIME_COLUMN)
    landmark_positions: dict[int, tuple[int, int, int, int]] = {}
    for index, name in enumerate(LANDMARK_NAMES):
        found = [positions.get(landmark_column(index, axis)) for axis in LANDMARK_AXES]
        if any(position is None for position in found):
            logging.debug("Table has no complete column set for %s; series stays empty.", name)
            continue
        landmark_positions[index] = tuple(found)  # type: ignore[assignment]
    return time_position, landmark_positions


def _parse_float(field_value: str) -> float:
    try:
        return float(field_value)
    except (TypeError, ValueError):
        return float("nan")


def _parse_time_ms(field_value: str) -> float:
    """Seconds from a millisecond field, with one rounding step so exported times read back exactly."""
    try:
        return float(Decimal(field_value) / 1000)
    except (TypeError, ValueError, InvalidOperation):
        return float("nan")


def validate_against_duration(store: TimeSeriesStore, expected_duration: float) -> ValidationReport:
    series = store.first_populated()
    if series is None:
        return ValidationReport(is_valid=False, warnings=["No valid pose data found in table"])
    min_t, max_t = series.time_span()  # type: ignore[misc]
    span = max_t - min_t
    difference = abs(span - expected_duration)
    mismatch = difference > expected_duration * DURATION_TOLERANCE_FRACTION
    report = ValidationReport(
        is_valid=not mismatch,
        table_duration=span,
        media_duration=expected_duration,
        duration_mismatch=mismatch,
    )
    if mismatch:
        report.warnings.append(
            f"Duration mismatch: table data spans {span:.2f}s but media is {expected_duration:.2f}s"
        )
    if min_t > EDGE_TOLERANCE_S:
        report.warnings.append(f"Table data starts at {min_t:.2f}s, not at media start (0s)")
    if max_t < expected_duration - EDGE_TOLERANCE_S:
        report.warnings.append(
            f"Table data ends at {max_t:.2f}s but media ends at {expected_duration:.2f}s"
        )
    return report


def ingest_table(
    header: Sequence[str] | None,
    rows: Iterable[Sequence[str]],
    *,
    expected_duration: float | None = None,
    visibility_threshold: float = VISIBILITY_THRESHOLD,
    derive: bool = True,
) -> IngestionResult:
    """Build a pose result from a detection table.

    Only a missing header is fatal. Short rows are dropped whole, landmarks
    without their four columns keep an empty series, and samples failing the
    finiteness/visibility rule are skipped.
    """
    if header is None or not any(column.strip() for column in header):
        raise EmptyInput("Detection table has no header row")

    store = TimeSeriesStore()
    time_position, landmark_positions = _locate_columns(header)
    if time_position is None:
        logging.warning("Detection table has no %s column; no samples can be placed in time.", TIME_COLUMN)
        landmark_positions = {}

    dropped_rows = 0
    for row_number, row in enumerate(rows, start=2):
        if len(row) < len(header):
            dropped_rows += 1
            logging.debug("Dropping malformed row %d: %d of %d fields.", row_number, len(row), len(header))
            continue
        if time_position is None:
            continue
        t = _parse_time_ms(row[time_position])
        if not math.isfinite(t):
            dropped_rows += 1
            logging.debug("Dropping row %d: unreadable time %r.", row_number, row[time_position])
            continue
        for index, (x_pos, y_pos, z_pos, vis_pos) in landmark_positions.items():
            x = _parse_float(row[x_pos])
            y = _parse_float(row[y_pos])
            z = _parse_float(row[z_pos])
            visibility = _parse_float(row[vis_pos])
            if not accept_sample(x, y, z, visibility, visibility_threshold):
                continue
            store.append(
                LANDMARK_NAMES[index],
                FrameSample(t=t, x=x, y=flip_vertical(y), z=z, visibility=visibility),
            )

    if derive:
        derive_composite_joints(store)

    validation = None
    if expected_duration is not None and expected_duration > 0:
        validation = validate_against_duration(store, expected_duration)
        if validation.warnings:
            logging.warning("Table validation warnings: %s", "; ".join(validation.warnings))

    if dropped_rows:
        logging.info("Dropped %d malformed table rows.", dropped_rows)
    result = store.to_result(complete=True, progress=1.0)
    return IngestionResult(result=result, validation=validation, dropped_rows=dropped_rows)


def parse_csv_text(text: str, **kwargs) -> IngestionResult:
    stripped = text.strip()
    if not stripped:
        raise EmptyInput("Detection table is empty")
    reader = csv.reader(io.StringIO(stripped))
    header = next(reader, None)
    rows = [row for row in reader if row]
    return ingest_table(header, rows, **kwargs)


def load_csv_file(path: Path | str, **kwargs) -> IngestionResult:
    table_path = Path(path)
    try:
        text = table_path.read_text(encoding="utf-8-sig")
    except OSError as exc:
        raise IngestionError(f"Failed to read detection table {table_path}: {exc}") from exc
    logging.info("Loading detection table %s", table_path)
    return parse_csv_text(text, **kwargs)
