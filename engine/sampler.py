from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

import numpy as np

from core.constants import DEFAULT_SETTINGS, VISIBILITY_THRESHOLD
from core.landmarks import LANDMARK_COUNT, LANDMARK_NAMES
from core.settings import safe_bool, safe_choice, safe_float
from engine.derive import derive_composite_joints
from engine.detector import DetectedLandmark, PoseDetector
from engine.media import MediaError, MediaSource
from engine.series import FrameSample, ProcessingResult, TimeSeriesStore, accept_sample, flip_vertical

ProgressCallback = Callable[[float], None]
CompleteCallback = Callable[[ProcessingResult], None]
ErrorCallback = Callable[[str], None]

SAMPLING_MODES = ("sequential", "play_through")


class SamplerState(Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    SEEKING = "seeking"
    AWAITING_CAPTURE = "awaiting_capture"
    SUBMITTING = "submitting"
    AWAITING_DETECTION = "awaiting_detection"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


_ACTIVE_STATES = {
    SamplerState.INITIALIZING,
    SamplerState.SEEKING,
    SamplerState.AWAITING_CAPTURE,
    SamplerState.SUBMITTING,
    SamplerState.AWAITING_DETECTION,
}


class SamplerBusy(RuntimeError):
    pass


class InitializationError(RuntimeError):
    pass


class ProcessingCancelled(RuntimeError):
    def __init__(self, message: str, result: ProcessingResult | None = None) -> None:
        super().__init__(message)
        self.result = result


@dataclass(frozen=True)
class SamplerConfig:
    sample_rate: float = 30.0
    seek_timeout_s: float = 0.5
    detection_timeout_s: float = 1.0
    ready_timeout_s: float = 5.0
    frame_yield_s: float = 0.0
    mode: str = "sequential"
    playback_rate: float = 0.25
    visibility_threshold: float = VISIBILITY_THRESHOLD
    derive_composites: bool = True

    def __post_init__(self) -> None:
        if not self.sample_rate > 0:
            raise ValueError("sample_rate must be positive.")
        if self.mode not in SAMPLING_MODES:
            raise ValueError(f"mode must be one of {SAMPLING_MODES}, got {self.mode!r}.")
        if not self.playback_rate > 0:
            raise ValueError("playback_rate must be positive.")
        for name in ("seek_timeout_s", "detection_timeout_s", "ready_timeout_s"):
            if not getattr(self, name) > 0:
                raise ValueError(f"{name} must be positive.")
        if self.frame_yield_s < 0:
            raise ValueError("frame_yield_s must not be negative.")

    @classmethod
    def from_settings(cls, settings: dict[str, Any]) -> "SamplerConfig":
        merged = {**DEFAULT_SETTINGS, **settings}
        return cls(
            sample_rate=safe_float(("sample_rate", merged["sample_rate"]), 30.0, min_value=1.0, max_value=240.0),
            seek_timeout_s=safe_float(("seek_timeout_s", merged["seek_timeout_s"]), 0.5, min_value=0.01),
            detection_timeout_s=safe_float(
                ("detection_timeout_s", merged["detection_timeout_s"]), 1.0, min_value=0.01
            ),
            ready_timeout_s=safe_float(("ready_timeout_s", merged["ready_timeout_s"]), 5.0, min_value=0.01),
            frame_yield_s=safe_float(("frame_yield_s", merged["frame_yield_s"]), 0.0, min_value=0.0),
            mode=safe_choice(("sampling_mode", merged["sampling_mode"]), "sequential", SAMPLING_MODES),
            playback_rate=safe_float(
                ("playback_rate", merged["playback_rate"]), 0.25, min_value=0.05, max_value=4.0
            ),
            visibility_threshold=safe_float(
                ("visibility_threshold", merged["visibility_threshold"]), VISIBILITY_THRESHOLD,
                min_value=0.0, max_value=1.0,
            ),
            derive_composites=safe_bool(("derive_composites", merged.get("derive_composites", True)), True),
        )


def frame_count_for(duration: float, sample_rate: float) -> int:
    if not math.isfinite(duration) or duration <= 0:
        return 0
    return int(math.floor(duration * sample_rate))


def _consume_result(task: "asyncio.Future[Any]") -> None:
    if not task.cancelled() and task.exception() is not None:
        logging.debug("Abandoned seek finished with error: %s", task.exception())


class FrameSampler:
    """Drives a pose detector over a media source one sampled frame at a time.

    One run per instance at a time. The detector is initialised lazily, once,
    and a failed initialisation fails every later run as well. Per-frame
    detection timeouts leave a gap in the series; they never fail the run.
    """

    def __init__(
        self,
        detector: PoseDetector,
        config: SamplerConfig | None = None,
        *,
        progress_callback: ProgressCallback | None = None,
        complete_callback: CompleteCallback | None = None,
        error_callback: ErrorCallback | None = None,
    ) -> None:
        self.detector = detector
        self.config = config or SamplerConfig()
        self.progress_callback = progress_callback
        self.complete_callback = complete_callback
        self.error_callback = error_callback
        self._state = SamplerState.IDLE
        self._init_task: asyncio.Future[None] | None = None
        self._cancel_requested = False
        self._progress = 0.0
        self.missed_frames = 0

    @property
    def state(self) -> SamplerState:
        return self._state

    @property
    def progress(self) -> float:
        return self._progress

    @property
    def is_running(self) -> bool:
        return self._state in _ACTIVE_STATES

    def cancel(self) -> None:
        if self.is_running:
            logging.info("Pose sampling cancellation requested.")
            self._cancel_requested = True

    def _cancelled(self, cancel_event: object | None) -> bool:
        if self._cancel_requested:
            return True
        return cancel_event is not None and bool(getattr(cancel_event, "is_set")())

    async def initialize(self) -> None:
        """Initialise the detector ahead of a run; a run started meanwhile shares it."""
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self.detector.initialize())
        try:
            await asyncio.shield(self._init_task)
        except Exception as exc:
            raise InitializationError(f"Pose detector initialization failed: {exc}") from exc

    async def _wait_ready(self, source: MediaSource) -> None:
        if source.ready:
            return
        logging.info("Media source not ready, waiting up to %.1fs.", self.config.ready_timeout_s)
        waiter = asyncio.ensure_future(source.wait_ready())
        try:
            await asyncio.wait_for(asyncio.shield(waiter), self.config.ready_timeout_s)
        except asyncio.TimeoutError:
            waiter.add_done_callback(_consume_result)
            logging.warning("Media source load timeout, proceeding anyway.")

    async def _seek(self, source: MediaSource, target_t: float) -> None:
        self._state = SamplerState.SEEKING
        seek = asyncio.ensure_future(source.seek(target_t))
        try:
            await asyncio.wait_for(asyncio.shield(seek), self.config.seek_timeout_s)
        except asyncio.TimeoutError:
            seek.add_done_callback(_consume_result)
            logging.debug("Seek to %.3fs still pending; capturing anyway.", target_t)

    async def _detect(self, buffer: np.ndarray, timestamp: float, index: int) -> list[DetectedLandmark] | None:
        self._state = SamplerState.SUBMITTING
        submission = asyncio.ensure_future(self.detector.submit(buffer, timestamp))
        self._state = SamplerState.AWAITING_DETECTION
        try:
            return await asyncio.wait_for(submission, self.config.detection_timeout_s)
        except asyncio.TimeoutError:
            logging.warning("Frame %d: pose detection timed out after %.2fs.", index, self.config.detection_timeout_s)
        except Exception as exc:
            logging.warning("Frame %d: pose detection failed: %s", index, exc)
        self.missed_frames += 1
        return None

    def _append(self, store: TimeSeriesStore, landmarks: list[DetectedLandmark], t: float) -> None:
        for landmark in landmarks:
            if not 0 <= landmark.index < LANDMARK_COUNT:
                continue
            if not accept_sample(
                landmark.x, landmark.y, landmark.z, landmark.visibility, self.config.visibility_threshold
            ):
                continue
            store.append(
                LANDMARK_NAMES[landmark.index],
                FrameSample(
                    t=t,
                    x=landmark.x,
                    y=flip_vertical(landmark.y),
                    z=landmark.z,
                    visibility=landmark.visibility,
                ),
            )

    def _report_progress(self, index: int, frame_count: int) -> None:
        self._progress = (index + 1) / frame_count
        if self.progress_callback:
            self.progress_callback(self._progress)
        if frame_count >= 10 and (index + 1) % max(1, frame_count // 10) == 0:
            logging.info("Processed frame %d/%d (%.0f%%).", index + 1, frame_count, self._progress * 100)

    async def _run_sequential(
        self,
        source: MediaSource,
        buffer: np.ndarray,
        store: TimeSeriesStore,
        frame_count: int,
        cancel_event: object | None,
    ) -> bool:
        for index in range(frame_count):
            if self._cancelled(cancel_event):
                return False
            target_t = index / self.config.sample_rate
            await self._seek(source, target_t)
            self._state = SamplerState.AWAITING_CAPTURE
            await source.capture_into(buffer)
            landmarks = await self._detect(buffer, target_t, index)
            if self._cancelled(cancel_event):
                return False
            if landmarks:
                self._append(store, landmarks, target_t)
            self._report_progress(index, frame_count)
            await asyncio.sleep(self.config.frame_yield_s)
        return True

    async def _wait_for_clock(self, source: MediaSource, target_t: float, cancel_event: object | None) -> bool:
        loop = asyncio.get_running_loop()
        remaining = max(0.0, target_t - source.current_time)
        deadline = loop.time() + remaining / self.config.playback_rate + self.config.ready_timeout_s
        poll = max(self.config.frame_yield_s, 0.005)
        while source.current_time < target_t:
            if self._cancelled(cancel_event):
                return False
            if source.paused or loop.time() > deadline:
                logging.warning("Playback stalled before %.3fs; capturing current frame.", target_t)
                break
            await asyncio.sleep(poll)
        return True

    async def _run_play_through(
        self,
        source: MediaSource,
        buffer: np.ndarray,
        store: TimeSeriesStore,
        frame_count: int,
        cancel_event: object | None,
    ) -> bool:
        await self._seek(source, 0.0)
        source.play(self.config.playback_rate)
        try:
            for index in range(frame_count):
                if self._cancelled(cancel_event):
                    return False
                target_t = index / self.config.sample_rate
                self._state = SamplerState.AWAITING_CAPTURE
                if not await self._wait_for_clock(source, target_t, cancel_event):
                    return False
                captured_t = await source.capture_into(buffer)
                landmarks = await self._detect(buffer, captured_t, index)
                if self._cancelled(cancel_event):
                    return False
                if landmarks:
                    self._append(store, landmarks, captured_t)
                self._report_progress(index, frame_count)
                await asyncio.sleep(self.config.frame_yield_s)
        finally:
            source.pause()
        return True

    def _assemble(self, store: TimeSeriesStore, complete: bool) -> ProcessingResult:
        if self.config.derive_composites:
            derive_composite_joints(store)
        return store.to_result(complete=complete, progress=1.0 if complete else self._progress)

    def _fail(self, message: str) -> None:
        self._state = SamplerState.FAILED
        logging.error("Pose sampling failed: %s", message)
        if self.error_callback:
            self.error_callback(message)

    async def run(self, source: MediaSource, cancel_event: object | None = None) -> ProcessingResult:
        if self.is_running:
            raise SamplerBusy("Pose sampling already in progress")
        self._state = SamplerState.INITIALIZING
        self._cancel_requested = False
        self._progress = 0.0
        self.missed_frames = 0
        store = TimeSeriesStore()
        was_playing = False
        try:
            await self.initialize()
            await self._wait_ready(source)
            was_playing = not source.paused
            source.pause()
            frame_count = frame_count_for(source.duration, self.config.sample_rate)
            width, height = source.frame_size
            buffer = np.zeros((height, width, 3), dtype=np.uint8)
            logging.info(
                "Starting pose sampling: %d frames at %.1f fps (%s, %dx%d).",
                frame_count,
                self.config.sample_rate,
                self.config.mode,
                width,
                height,
            )
            if self.config.mode == "play_through":
                finished = await self._run_play_through(source, buffer, store, frame_count, cancel_event)
            else:
                finished = await self._run_sequential(source, buffer, store, frame_count, cancel_event)
        except asyncio.CancelledError:
            self._state = SamplerState.CANCELLED
            raise
        except (InitializationError, MediaError) as exc:
            self._fail(str(exc))
            raise
        except Exception as exc:
            self._fail(f"Unexpected error: {exc}")
            raise
        finally:
            if was_playing:
                source.play()

        if not finished:
            self._state = SamplerState.CANCELLED
            result = self._assemble(store, complete=False)
            logging.info("Pose sampling cancelled at %.0f%%.", self._progress * 100)
            raise ProcessingCancelled("Pose sampling cancelled", result)

        result = self._assemble(store, complete=True)
        self._progress = 1.0
        self._state = SamplerState.COMPLETED
        if self.missed_frames:
            logging.info("Pose sampling complete with %d missed frames.", self.missed_frames)
        else:
            logging.info("Pose sampling complete.")
        if self.complete_callback:
            self.complete_callback(result)
        return result
