from __future__ import annotations

import csv
from decimal import Decimal
from pathlib import Path

from core.constants import LANDMARK_AXES, TIME_COLUMN
from core.landmarks import LANDMARK_NAMES
from engine.ingest import landmark_column
from engine.series import FrameSample, ProcessingResult, flip_vertical


def write_result_json(output_path: Path, result: ProcessingResult) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(result.to_json(), encoding="utf-8")
    return output_path


def table_header() -> list[str]:
    header = [TIME_COLUMN]
    for index in range(len(LANDMARK_NAMES)):
        header.extend(landmark_column(index, axis) for axis in LANDMARK_AXES)
    return header


def time_field(t: float) -> str:
    # Exact decimal of the shortest repr, scaled to ms; the ingestor divides it back without loss.
    return format(Decimal(repr(t)).scaleb(3), "f")


def _table_rows(result: ProcessingResult) -> list[tuple[float, dict[int, FrameSample]]]:
    buckets: dict[float, list[dict[int, FrameSample]]] = {}
    for index, name in enumerate(LANDMARK_NAMES):
        series = result.joints.get(name)
        if series is None:
            continue
        for sample in series.samples:
            rows_at_t = buckets.setdefault(sample.t, [])
            # A repeated time for the same landmark opens another row at that time.
            for row in rows_at_t:
                if index not in row:
                    row[index] = sample
                    break
            else:
                rows_at_t.append({index: sample})
    return [(t, row) for t in sorted(buckets) for row in buckets[t]]


def write_table_csv(output_path: Path, result: ProcessingResult) -> Path:
    """Write canonical series in the detection-table layout the ingestor reads.

    One row per distinct sample time, plus extra rows when a landmark has
    several samples at the same time. Landmarks without a sample in a row get
    empty fields, which the ingestor skips. ``y`` is written back in image
    orientation and missing visibility is written as ``1.0``.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(table_header())
        for t, samples in _table_rows(result):
            row: list[object] = [time_field(t)]
            for index in range(len(LANDMARK_NAMES)):
                sample = samples.get(index)
                if sample is None:
                    row.extend(["", "", "", ""])
                    continue
                visibility = 1.0 if sample.visibility is None else sample.visibility
                row.extend([sample.x, flip_vertical(sample.y), sample.z, visibility])
            writer.writerow(row)
    return output_path
