from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import cv2
import numpy as np


class MediaError(RuntimeError):
    pass


class MediaSource(ABC):
    """A seekable video the sampler can read frames from."""

    @property
    @abstractmethod
    def duration(self) -> float:
        """Length in seconds."""

    @property
    @abstractmethod
    def frame_size(self) -> tuple[int, int]:
        """(width, height) of captured frames."""

    @property
    @abstractmethod
    def ready(self) -> bool: ...

    @property
    @abstractmethod
    def paused(self) -> bool: ...

    @property
    @abstractmethod
    def current_time(self) -> float: ...

    @abstractmethod
    async def wait_ready(self) -> None: ...

    @abstractmethod
    async def seek(self, t: float) -> None:
        """Move the playback position; returns once the frame at ``t`` is available."""

    @abstractmethod
    async def capture_into(self, buffer: np.ndarray) -> float:
        """Draw the frame at the playback position into ``buffer``; return its media time."""

    @abstractmethod
    def play(self, rate: float = 1.0) -> None: ...

    @abstractmethod
    def pause(self) -> None: ...

    def close(self) -> None:
        return None


def load_video_metadata(capture: "cv2.VideoCapture") -> dict[str, float | int]:
    fps = float(capture.get(cv2.CAP_PROP_FPS) or 0.0)
    if fps <= 0:
        fps = 30.0
    return {
        "fps": fps,
        "width": int(capture.get(cv2.CAP_PROP_FRAME_WIDTH) or 640),
        "height": int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT) or 480),
        "frame_count": max(0, int(capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0)),
    }


class VideoFileSource(MediaSource):
    """OpenCV-backed video file.

    Decoding runs on one worker thread, so seeks and captures are applied in
    the order they were requested even when a caller stops waiting for one.
    Playback is a media clock advanced by wall time at the playback rate.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="video-source")
        self._capture: cv2.VideoCapture | None = None
        self._meta: dict[str, float | int] = {}
        self._frame: np.ndarray | None = None
        self._position = 0.0
        self._rate = 1.0
        self._play_started: float | None = None

    def open(self) -> None:
        if self._capture is not None:
            return
        if not self.path.exists():
            raise MediaError(f"Video not found: {self.path}")
        capture = cv2.VideoCapture(str(self.path))
        if not capture.isOpened():
            capture.release()
            raise MediaError(f"Unable to open video: {self.path}")
        self._meta = load_video_metadata(capture)
        self._capture = capture
        logging.info(
            "Opened %s: %sx%s @ %.2f fps, %s frames",
            self.path.name,
            self._meta["width"],
            self._meta["height"],
            self._meta["fps"],
            self._meta["frame_count"],
        )

    @property
    def ready(self) -> bool:
        return self._capture is not None

    async def wait_ready(self) -> None:
        if self.ready:
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(self._executor, self.open)

    @property
    def duration(self) -> float:
        if not self._meta:
            return 0.0
        return float(self._meta["frame_count"]) / float(self._meta["fps"])

    @property
    def frame_size(self) -> tuple[int, int]:
        return int(self._meta.get("width", 640)), int(self._meta.get("height", 480))

    @property
    def paused(self) -> bool:
        return self._play_started is None

    @property
    def current_time(self) -> float:
        if self._play_started is None:
            return self._position
        elapsed = (time.monotonic() - self._play_started) * self._rate
        return min(self.duration, self._position + elapsed)

    def play(self, rate: float = 1.0) -> None:
        if self._play_started is not None:
            self._position = self.current_time
        self._rate = rate
        self._play_started = time.monotonic()

    def pause(self) -> None:
        if self._play_started is None:
            return
        self._position = self.current_time
        self._play_started = None

    def _decode_at(self, t: float) -> np.ndarray | None:
        if self._capture is None:
            raise MediaError("Video source is not open")
        self._capture.set(cv2.CAP_PROP_POS_MSEC, max(0.0, t) * 1000.0)
        ok, frame = self._capture.read()
        if not ok:
            logging.debug("No frame decoded at %.3fs; keeping previous frame.", t)
            return self._frame
        self._frame = frame
        return frame

    async def seek(self, t: float) -> None:
        self._position = min(max(0.0, t), self.duration)
        if self._play_started is not None:
            self._play_started = time.monotonic()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(self._executor, self._decode_at, self._position)

    def _frame_at(self, t: float, decode: bool) -> np.ndarray | None:
        if decode or self._frame is None:
            return self._decode_at(t)
        return self._frame

    async def capture_into(self, buffer: np.ndarray) -> float:
        t = self.current_time
        loop = asyncio.get_running_loop()
        # Queued behind any seek that is still decoding.
        frame = await loop.run_in_executor(self._executor, self._frame_at, t, not self.paused)
        if frame is None:
            raise MediaError(f"No frame could be decoded from {self.path}")
        height, width = buffer.shape[:2]
        if frame.shape[:2] == (height, width):
            np.copyto(buffer, frame)
        else:
            cv2.resize(frame, (width, height), dst=buffer, interpolation=cv2.INTER_AREA)
        return t

    def close(self) -> None:
        capture = self._capture
        self._capture = None
        if capture is not None:
            capture.release()
        self._executor.shutdown(wait=False)
