from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any, Iterator

from core.constants import VISIBILITY_THRESHOLD
from core.landmarks import LANDMARK_NAMES, NORMALIZED_UNIT, UnknownLandmark, color_for
from core.schema import SCHEMA_VERSION, validate_pose_result_schema


@dataclass(frozen=True)
class FrameSample:
    t: float
    x: float
    y: float
    z: float
    visibility: float | None = None

    def to_payload(self) -> dict[str, float]:
        payload = {"t": self.t, "x": self.x, "y": self.y, "z": self.z}
        if self.visibility is not None:
            payload["visibility"] = self.visibility
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "FrameSample":
        visibility = payload.get("visibility")
        return cls(
            t=float(payload["t"]),
            x=float(payload["x"]),
            y=float(payload["y"]),
            z=float(payload["z"]),
            visibility=None if visibility is None else float(visibility),
        )


def flip_vertical(y: float) -> float:
    """Detector and table y grow downwards; stored y grows upwards."""
    return 1.0 - y


def accept_sample(
    x: float,
    y: float,
    z: float,
    visibility: float | None = None,
    threshold: float = VISIBILITY_THRESHOLD,
) -> bool:
    if not (math.isfinite(x) and math.isfinite(y) and math.isfinite(z)):
        return False
    if visibility is None:
        return True
    return math.isfinite(visibility) and visibility > threshold


@dataclass
class JointSeries:
    name: str
    color: tuple[int, int, int]
    unit: str = NORMALIZED_UNIT
    samples: list[FrameSample] = field(default_factory=list)

    def append(self, sample: FrameSample) -> None:
        self.samples.append(sample)

    def __len__(self) -> int:
        return len(self.samples)

    def __iter__(self) -> Iterator[FrameSample]:
        return iter(self.samples)

    def time_span(self) -> tuple[float, float] | None:
        if not self.samples:
            return None
        times = [sample.t for sample in self.samples]
        return min(times), max(times)

    def to_payload(self) -> dict[str, object]:
        return {
            "frames": [sample.to_payload() for sample in self.samples],
            "color": list(self.color),
            "units": self.unit,
        }


@dataclass(frozen=True)
class ProcessingResult:
    joints: dict[str, JointSeries]
    complete: bool
    progress: float

    def joint(self, name: str) -> JointSeries:
        try:
            return self.joints[name]
        except KeyError:
            raise UnknownLandmark(f"No series named {name!r}") from None

    def aliases(self) -> dict[str, str]:
        # An alias is stored under a key that differs from its series' own name.
        return {key: series.name for key, series in self.joints.items() if series.name != key}

    def to_payload(self) -> dict[str, object]:
        aliases = self.aliases()
        joints: dict[str, object] = {}
        for key, series in self.joints.items():
            if key in aliases:
                joints[key] = {"alias_of": aliases[key]}
            else:
                joints[key] = series.to_payload()
        return {
            "schema_version": SCHEMA_VERSION,
            "complete": self.complete,
            "progress": self.progress,
            "joints": joints,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ProcessingResult":
        ok, message = validate_pose_result_schema(payload)
        if not ok:
            raise ValueError(f"Pose result payload invalid: {message}")
        joints: dict[str, JointSeries] = {}
        raw_joints = payload["joints"]
        for key, joint in raw_joints.items():
            if joint.get("alias_of") is not None:
                continue
            joints[key] = JointSeries(
                name=key,
                color=tuple(int(channel) for channel in joint["color"]),
                unit=str(joint["units"]),
                samples=[FrameSample.from_payload(frame) for frame in joint["frames"]],
            )
        ordered: dict[str, JointSeries] = {}
        for key, joint in raw_joints.items():
            alias_of = joint.get("alias_of")
            ordered[key] = joints[alias_of] if alias_of is not None else joints[key]
        return cls(
            joints=ordered,
            complete=bool(payload["complete"]),
            progress=float(payload["progress"]),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_payload(), indent=2)

    @classmethod
    def from_json(cls, data: str) -> "ProcessingResult":
        return cls.from_payload(json.loads(data))


class TimeSeriesStore:
    """Per-landmark sample sequences for one acquisition run.

    Created with an empty series for each of the canonical landmarks, filled
    by one of the acquisition paths, extended with composite joints, then
    frozen when the result is handed off.
    """

    def __init__(self) -> None:
        self._joints: dict[str, JointSeries] = {
            name: JointSeries(name=name, color=color_for(index))
            for index, name in enumerate(LANDMARK_NAMES)
        }
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("TimeSeriesStore is frozen")

    def series(self, name: str) -> JointSeries:
        try:
            return self._joints[name]
        except KeyError:
            raise UnknownLandmark(f"No series named {name!r}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._joints

    def names(self) -> list[str]:
        return list(self._joints)

    def append(self, name: str, sample: FrameSample) -> None:
        self._check_mutable()
        self.series(name).append(sample)

    def add_alias(self, alias: str, source: str) -> JointSeries:
        self._check_mutable()
        if alias in self._joints:
            raise ValueError(f"Series {alias!r} already exists")
        series = self.series(source)
        self._joints[alias] = series
        return series

    def add_series(self, series: JointSeries) -> None:
        self._check_mutable()
        if series.name in self._joints:
            raise ValueError(f"Series {series.name!r} already exists")
        self._joints[series.name] = series

    def first_populated(self) -> JointSeries | None:
        for name in LANDMARK_NAMES:
            series = self._joints[name]
            if series.samples:
                return series
        return None

    def freeze(self) -> None:
        self._frozen = True

    def to_result(self, complete: bool, progress: float) -> ProcessingResult:
        self.freeze()
        return ProcessingResult(
            joints=dict(self._joints),
            complete=complete,
            progress=min(1.0, max(0.0, progress)),
        )
