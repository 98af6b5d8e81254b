from __future__ import annotations

APP_NAME = "Kinescope"
HOME_ENV_VAR = "KINESCOPE_HOME"

TIME_COLUMN = "frame_time_ms"
LANDMARK_COLUMN_FORMAT = "pose_{index}_{axis}"
LANDMARK_AXES = ("x", "y", "z", "visibility")

VISIBILITY_THRESHOLD = 0.5
MIDPOINT_TOLERANCE_S = 0.1

DURATION_TOLERANCE_FRACTION = 0.1
EDGE_TOLERANCE_S = 0.5

DEFAULT_SETTINGS: dict[str, object] = {
    "sample_rate": 30.0,
    "seek_timeout_s": 0.5,
    "detection_timeout_s": 1.0,
    "ready_timeout_s": 5.0,
    "frame_yield_s": 0.0,
    "sampling_mode": "sequential",
    "playback_rate": 0.25,
    "visibility_threshold": VISIBILITY_THRESHOLD,
    "model_complexity": 1,
    "min_detection_confidence": 0.5,
    "min_tracking_confidence": 0.5,
    "min_presence_confidence": 0.5,
    "selfie_mode": False,
}
