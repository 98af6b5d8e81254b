import unittest
from unittest import mock

import numpy as np

from engine.detector import DetectedLandmark, DetectorSettings, MediaPipePoseDetector


class DetectorSettingsTests(unittest.TestCase):
    def test_defaults(self) -> None:
        settings = DetectorSettings.from_settings({})
        self.assertEqual(settings.model_complexity, 1)
        self.assertIsNone(settings.model_path)
        self.assertFalse(settings.selfie_mode)

    def test_values_are_clamped(self) -> None:
        settings = DetectorSettings.from_settings(
            {"model_complexity": 5, "min_detection_confidence": 1.5, "model_path": "/tmp/pose.task"}
        )
        self.assertEqual(settings.model_complexity, 2)
        self.assertEqual(settings.min_detection_confidence, 1.0)
        self.assertEqual(str(settings.model_path), "/tmp/pose.task")


class MediaPipePoseDetectorTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.detector = MediaPipePoseDetector(DetectorSettings(selfie_mode=True))
        self.addCleanup(self.detector.close)

    def test_timestamps_strictly_increase(self) -> None:
        stamps = [self.detector._next_timestamp_ms(t) for t in (0.0, 0.0, 0.5, 0.2, 1.0)]
        self.assertEqual(stamps, [0, 1, 500, 501, 1000])

    async def test_submit_requires_initialize(self) -> None:
        with self.assertRaises(RuntimeError):
            await self.detector.submit(np.zeros((2, 2, 3), dtype=np.uint8), 0.0)

    async def test_submit_converts_and_mirrors_frame(self) -> None:
        seen = []

        def fake_detect(rgb, timestamp_ms):
            seen.append((rgb.copy(), timestamp_ms))
            return [DetectedLandmark(0, 0.5, 0.5, 0.0, 0.9)]

        frame = np.zeros((1, 2, 3), dtype=np.uint8)
        frame[0, 0] = (255, 0, 0)
        with mock.patch.object(MediaPipePoseDetector, "_create_landmarker", return_value=mock.Mock()):
            await self.detector.initialize()
        with mock.patch.object(self.detector, "_detect", side_effect=fake_detect):
            landmarks = await self.detector.submit(frame, 0.25)
            frame.fill(7)

        self.assertEqual(landmarks[0].index, 0)
        rgb, timestamp_ms = seen[0]
        self.assertEqual(timestamp_ms, 250)
        self.assertEqual(tuple(rgb[0, 1]), (0, 0, 255))
        self.assertEqual(tuple(rgb[0, 0]), (0, 0, 0))

    async def test_initialize_creates_landmarker_once(self) -> None:
        with mock.patch.object(MediaPipePoseDetector, "_create_landmarker", return_value=mock.Mock()) as create:
            await self.detector.initialize()
            await self.detector.initialize()
        create.assert_called_once()


if __name__ == "__main__":
    unittest.main()
