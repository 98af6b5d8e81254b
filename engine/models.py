from __future__ import annotations

import logging
from pathlib import Path

import requests

from core.paths import get_models_root

_MODEL_BASE_URL = "https://storage.googleapis.com/mediapipe-models/pose_landmarker"

POSE_MODELS: dict[int, str] = {
    0: "pose_landmarker_lite",
    1: "pose_landmarker_full",
    2: "pose_landmarker_heavy",
}


def pose_model_url(model_complexity: int) -> str:
    variant = POSE_MODELS[model_complexity]
    return f"{_MODEL_BASE_URL}/{variant}/float16/latest/{variant}.task"


def download_asset(url: str, destination: Path) -> None:
    with requests.get(url, stream=True, timeout=120) as response:
        response.raise_for_status()
        with destination.open("wb") as handle:
            for chunk in response.iter_content(chunk_size=1024 * 1024):
                if chunk:
                    handle.write(chunk)


def ensure_pose_model(model_complexity: int = 1, models_root: Path | None = None) -> Path:
    """Return the local path of the pose landmarker asset, downloading it once."""
    if model_complexity not in POSE_MODELS:
        raise ValueError(f"model_complexity must be one of {sorted(POSE_MODELS)}, got {model_complexity!r}")
    root = models_root or get_models_root()
    root.mkdir(parents=True, exist_ok=True)
    destination = root / f"{POSE_MODELS[model_complexity]}.task"
    if destination.exists() and destination.stat().st_size > 0:
        return destination
    url = pose_model_url(model_complexity)
    logging.info("Downloading pose model %s to %s", url, destination)
    partial = destination.with_suffix(".part")
    try:
        download_asset(url, partial)
        partial.replace(destination)
    finally:
        if partial.exists():
            partial.unlink()
    return destination
