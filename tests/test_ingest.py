import logging
import tempfile
import unittest
from pathlib import Path

from engine.ingest import (
    EmptyInput,
    IngestionError,
    ingest_table,
    landmark_column,
    load_csv_file,
    parse_csv_text,
    validate_against_duration,
)
from engine.series import FrameSample, TimeSeriesStore


def hip_header() -> list[str]:
    header = ["frame_time_ms"]
    for index in (23, 24):
        header.extend(landmark_column(index, axis) for axis in ("x", "y", "z", "visibility"))
    return header


def hip_row(time_ms, left=(0.4, 0.6, 0.1, 0.9), right=(0.6, 0.8, 0.3, 0.9)) -> list[str]:
    return [str(time_ms)] + [str(value) for value in left] + [str(value) for value in right]


class IngestTableTests(unittest.TestCase):
    def setUp(self) -> None:
        logging.disable(logging.CRITICAL)

    def tearDown(self) -> None:
        logging.disable(logging.NOTSET)

    def test_hips_and_center_hip(self) -> None:
        rows = [hip_row(0), hip_row(1000), hip_row(2000)]
        ingestion = ingest_table(hip_header(), rows)
        joints = ingestion.result.joints

        self.assertEqual([sample.t for sample in joints["left_hip"]], [0.0, 1.0, 2.0])
        self.assertEqual([sample.t for sample in joints["right_hip"]], [0.0, 1.0, 2.0])
        center = joints["center_hip"].samples
        self.assertEqual(len(center), 3)
        for sample in center:
            self.assertAlmostEqual(sample.x, 0.5)
            self.assertAlmostEqual(sample.y, (0.4 + 0.2) / 2)
            self.assertAlmostEqual(sample.z, 0.2)
        self.assertEqual(joints["center_hip"].color, (128, 128, 128))
        self.assertTrue(ingestion.result.complete)
        self.assertEqual(ingestion.result.progress, 1.0)

    def test_y_is_flipped_and_visibility_kept(self) -> None:
        ingestion = ingest_table(hip_header(), [hip_row(500)])
        sample = ingestion.result.joints["left_hip"].samples[0]
        self.assertEqual(sample.t, 0.5)
        self.assertAlmostEqual(sample.y, 0.4)
        self.assertEqual(sample.visibility, 0.9)

    def test_short_row_dropped_without_affecting_others(self) -> None:
        rows = [hip_row(0), hip_row(1000)[:5], hip_row(2000)]
        ingestion = ingest_table(hip_header(), rows)
        self.assertEqual(ingestion.dropped_rows, 1)
        self.assertEqual([sample.t for sample in ingestion.result.joints["left_hip"]], [0.0, 2.0])
        self.assertEqual([sample.t for sample in ingestion.result.joints["right_hip"]], [0.0, 2.0])

    def test_low_visibility_and_unparsable_values_skipped(self) -> None:
        rows = [
            hip_row(0, left=(0.4, 0.6, 0.1, 0.5)),
            hip_row(100, left=("abc", 0.6, 0.1, 0.9)),
            hip_row(200, left=(0.4, 0.6, 0.1, "")),
            hip_row(300),
        ]
        ingestion = ingest_table(hip_header(), rows)
        self.assertEqual([sample.t for sample in ingestion.result.joints["left_hip"]], [0.3])
        self.assertEqual(len(ingestion.result.joints["right_hip"]), 4)
        self.assertEqual(ingestion.dropped_rows, 0)

    def test_unreadable_time_drops_row(self) -> None:
        ingestion = ingest_table(hip_header(), [hip_row("later"), hip_row(100)])
        self.assertEqual(ingestion.dropped_rows, 1)
        self.assertEqual(len(ingestion.result.joints["left_hip"]), 1)

    def test_missing_landmark_columns_leave_empty_series(self) -> None:
        header = hip_header()[:5]
        rows = [row[:5] for row in (hip_row(0), hip_row(100))]
        ingestion = ingest_table(header, rows)
        joints = ingestion.result.joints
        self.assertEqual(len(joints["left_hip"]), 2)
        self.assertEqual(len(joints["right_hip"]), 0)
        self.assertEqual(len(joints["center_hip"]), 0)
        self.assertEqual(len(joints["nose"]), 0)

    def test_missing_time_column_yields_empty_series(self) -> None:
        header = hip_header()[1:]
        rows = [hip_row(0)[1:]]
        ingestion = ingest_table(header, rows)
        self.assertTrue(all(len(series) == 0 for series in ingestion.result.joints.values()))

    def test_missing_header_is_empty_input(self) -> None:
        with self.assertRaises(EmptyInput):
            ingest_table(None, [])
        with self.assertRaises(EmptyInput):
            parse_csv_text("   \n\n")

    def test_all_canonical_names_present(self) -> None:
        ingestion = ingest_table(hip_header(), [])
        for name in ("nose", "right_foot_index", "left_hand", "right_hand", "center_hip"):
            self.assertIn(name, ingestion.result.joints)
        self.assertIs(ingestion.result.joints["left_hand"], ingestion.result.joints["left_wrist"])

    def test_without_composites(self) -> None:
        ingestion = ingest_table(hip_header(), [hip_row(0)], derive=False)
        self.assertNotIn("center_hip", ingestion.result.joints)
        self.assertEqual(len(ingestion.result.joints), 33)

    def test_identical_input_gives_identical_result(self) -> None:
        rows = [hip_row(0), hip_row(40), hip_row(80)]
        first = ingest_table(hip_header(), rows)
        second = ingest_table(hip_header(), rows)
        self.assertEqual(first.result.to_payload(), second.result.to_payload())

    def test_duplicate_columns_use_first_occurrence(self) -> None:
        header = hip_header() + [landmark_column(23, "x")]
        rows = [hip_row(0) + ["0.99"]]
        ingestion = ingest_table(header, rows)
        self.assertEqual(ingestion.result.joints["left_hip"].samples[0].x, 0.4)


class DurationValidationTests(unittest.TestCase):
    def setUp(self) -> None:
        logging.disable(logging.CRITICAL)

    def tearDown(self) -> None:
        logging.disable(logging.NOTSET)

    def test_duration_mismatch_still_returns_data(self) -> None:
        rows = [hip_row(time_ms) for time_ms in range(0, 7001, 1000)]
        ingestion = ingest_table(hip_header(), rows, expected_duration=10.0)
        validation = ingestion.validation
        self.assertIsNotNone(validation)
        self.assertFalse(validation.is_valid)
        self.assertTrue(validation.duration_mismatch)
        self.assertEqual(validation.table_duration, 7.0)
        self.assertTrue(any(warning.startswith("Duration mismatch") for warning in validation.warnings))
        self.assertTrue(any("ends at 7.00s" in warning for warning in validation.warnings))
        self.assertEqual(len(ingestion.result.joints["left_hip"]), 8)

    def test_duration_within_tolerance(self) -> None:
        rows = [hip_row(time_ms) for time_ms in range(0, 9601, 400)]
        ingestion = ingest_table(hip_header(), rows, expected_duration=10.0)
        self.assertTrue(ingestion.validation.is_valid)
        self.assertEqual(ingestion.validation.warnings, [])

    def test_late_start_warning(self) -> None:
        store = TimeSeriesStore()
        for t in (0.8, 5.0, 10.0):
            store.append("nose", FrameSample(t=t, x=0.5, y=0.5, z=0.0))
        report = validate_against_duration(store, 10.0)
        self.assertTrue(report.is_valid)
        self.assertEqual(report.warnings, ["Table data starts at 0.80s, not at media start (0s)"])

    def test_no_data_is_invalid(self) -> None:
        report = validate_against_duration(TimeSeriesStore(), 10.0)
        self.assertFalse(report.is_valid)
        self.assertEqual(report.warnings, ["No valid pose data found in table"])

    def test_no_validation_without_duration(self) -> None:
        self.assertIsNone(ingest_table(hip_header(), [hip_row(0)]).validation)
        self.assertIsNone(ingest_table(hip_header(), [hip_row(0)], expected_duration=0.0).validation)


class CsvLoadingTests(unittest.TestCase):
    def setUp(self) -> None:
        logging.disable(logging.CRITICAL)

    def tearDown(self) -> None:
        logging.disable(logging.NOTSET)

    def test_parse_csv_text_skips_blank_lines(self) -> None:
        lines = [",".join(hip_header()), ",".join(hip_row(0)), "", ",".join(hip_row(1000))]
        ingestion = parse_csv_text("\n".join(lines) + "\n")
        self.assertEqual(len(ingestion.result.joints["right_hip"]), 2)
        self.assertEqual(ingestion.dropped_rows, 0)

    def test_load_csv_file_with_bom(self) -> None:
        lines = [",".join(hip_header()), ",".join(hip_row(0))]
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "poses.csv"
            path.write_text("\ufeff" + "\n".join(lines), encoding="utf-8")
            ingestion = load_csv_file(path)
        self.assertEqual(len(ingestion.result.joints["left_hip"]), 1)

    def test_load_missing_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            with self.assertRaises(IngestionError):
                load_csv_file(Path(tmp_dir) / "absent.csv")


if __name__ == "__main__":
    unittest.main()
