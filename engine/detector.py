from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, NamedTuple

import cv2
import numpy as np

from core.constants import DEFAULT_SETTINGS
from core.landmarks import LANDMARK_COUNT
from core.settings import safe_bool, safe_float, safe_int
from engine.models import POSE_MODELS, ensure_pose_model


class DetectedLandmark(NamedTuple):
    index: int
    x: float
    y: float
    z: float
    visibility: float | None = None


class PoseDetector(ABC):
    """Turns one frame into landmark coordinates.

    Callers keep at most one submission outstanding. ``submit`` must be done
    reading ``frame`` before it first yields to the event loop, so the caller
    may redraw the buffer as soon as the call settles or times out.
    """

    name: str = "base"

    async def initialize(self) -> None:
        return None

    @abstractmethod
    async def submit(self, frame: np.ndarray, timestamp_s: float) -> list[DetectedLandmark]:
        """Detect landmarks in a BGR frame captured at ``timestamp_s``."""

    def close(self) -> None:
        return None


@dataclass(frozen=True)
class DetectorSettings:
    model_complexity: int = 1
    min_detection_confidence: float = 0.5
    min_tracking_confidence: float = 0.5
    min_presence_confidence: float = 0.5
    selfie_mode: bool = False
    model_path: Path | None = None

    @classmethod
    def from_settings(cls, settings: dict[str, Any]) -> "DetectorSettings":
        merged = {**DEFAULT_SETTINGS, **settings}
        model_path = merged.get("model_path")
        return cls(
            model_complexity=safe_int(
                ("model_complexity", merged["model_complexity"]),
                1,
                min_value=min(POSE_MODELS),
                max_value=max(POSE_MODELS),
            ),
            min_detection_confidence=safe_float(
                ("min_detection_confidence", merged["min_detection_confidence"]), 0.5, min_value=0.0, max_value=1.0
            ),
            min_tracking_confidence=safe_float(
                ("min_tracking_confidence", merged["min_tracking_confidence"]), 0.5, min_value=0.0, max_value=1.0
            ),
            min_presence_confidence=safe_float(
                ("min_presence_confidence", merged["min_presence_confidence"]), 0.5, min_value=0.0, max_value=1.0
            ),
            selfie_mode=safe_bool(("selfie_mode", merged["selfie_mode"]), False),
            model_path=Path(model_path) if model_path else None,
        )


class MediaPipePoseDetector(PoseDetector):
    """MediaPipe Tasks ``PoseLandmarker`` running on a private worker thread."""

    name = "mediapipe"

    def __init__(self, settings: DetectorSettings | None = None) -> None:
        self.settings = settings or DetectorSettings()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pose-detector")
        self._landmarker: Any | None = None
        self._last_timestamp_ms = -1

    def _create_landmarker(self) -> Any:
        from mediapipe.tasks import python as mp_python
        from mediapipe.tasks.python import vision as mp_vision

        model_path = self.settings.model_path or ensure_pose_model(self.settings.model_complexity)
        options = mp_vision.PoseLandmarkerOptions(
            base_options=mp_python.BaseOptions(model_asset_path=str(model_path)),
            running_mode=mp_vision.RunningMode.VIDEO,
            num_poses=1,
            min_pose_detection_confidence=self.settings.min_detection_confidence,
            min_pose_presence_confidence=self.settings.min_presence_confidence,
            min_tracking_confidence=self.settings.min_tracking_confidence,
            output_segmentation_masks=False,
        )
        landmarker = mp_vision.PoseLandmarker.create_from_options(options)
        logging.info("MediaPipe pose landmarker ready (%s).", Path(model_path).name)
        return landmarker

    async def initialize(self) -> None:
        if self._landmarker is not None:
            return
        loop = asyncio.get_running_loop()
        self._landmarker = await loop.run_in_executor(self._executor, self._create_landmarker)

    def _next_timestamp_ms(self, timestamp_s: float) -> int:
        # VIDEO mode rejects timestamps that do not strictly increase, including across runs.
        timestamp_ms = max(int(timestamp_s * 1000), self._last_timestamp_ms + 1)
        self._last_timestamp_ms = timestamp_ms
        return timestamp_ms

    def _detect(self, rgb: np.ndarray, timestamp_ms: int) -> list[DetectedLandmark]:
        import mediapipe as mp

        image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)
        result = self._landmarker.detect_for_video(image, timestamp_ms)
        poses = getattr(result, "pose_landmarks", None) or []
        if not poses:
            return []
        detected = []
        for index, landmark in enumerate(poses[0][:LANDMARK_COUNT]):
            visibility = getattr(landmark, "visibility", None)
            detected.append(
                DetectedLandmark(
                    index=index,
                    x=float(landmark.x),
                    y=float(landmark.y),
                    z=float(landmark.z),
                    visibility=None if visibility is None else float(visibility),
                )
            )
        return detected

    async def submit(self, frame: np.ndarray, timestamp_s: float) -> list[DetectedLandmark]:
        if self._landmarker is None:
            raise RuntimeError("MediaPipePoseDetector.submit called before initialize()")
        # The colour conversion copies the frame, releasing the caller's buffer.
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        if self.settings.selfie_mode:
            rgb = cv2.flip(rgb, 1)
        timestamp_ms = self._next_timestamp_ms(timestamp_s)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self._detect, rgb, timestamp_ms)

    def close(self) -> None:
        landmarker = self._landmarker
        self._landmarker = None
        if landmarker is not None:
            try:
                landmarker.close()
            except Exception as exc:
                logging.warning("Pose landmarker close failed: %s", exc)
        self._executor.shutdown(wait=False)
