from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path

from engine.detector import DetectorSettings, MediaPipePoseDetector, PoseDetector
from engine.media import VideoFileSource
from engine.sampler import FrameSampler, ProgressCallback, SamplerConfig
from engine.series import ProcessingResult


@dataclass(frozen=True)
class PoseExtractionConfig:
    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    detector: DetectorSettings = field(default_factory=DetectorSettings)


async def extract_pose_async(
    video_path: Path | str,
    *,
    config: PoseExtractionConfig,
    detector: PoseDetector | None = None,
    progress_callback: ProgressCallback | None = None,
    cancel_event: object | None = None,
) -> ProcessingResult:
    path = Path(video_path)
    if not path.exists():
        raise FileNotFoundError(f"Video not found: {video_path}")
    owns_detector = detector is None
    detector = detector or MediaPipePoseDetector(config.detector)
    source = VideoFileSource(path)
    sampler = FrameSampler(detector, config.sampler, progress_callback=progress_callback)
    try:
        return await sampler.run(source, cancel_event=cancel_event)
    finally:
        source.close()
        if owns_detector:
            detector.close()


def extract_pose(
    video_path: Path | str,
    *,
    config: PoseExtractionConfig | None = None,
    progress_callback: ProgressCallback | None = None,
    cancel_event: object | None = None,
) -> ProcessingResult:
    return asyncio.run(
        extract_pose_async(
            video_path,
            config=config or PoseExtractionConfig(),
            progress_callback=progress_callback,
            cancel_event=cancel_event,
        )
    )
