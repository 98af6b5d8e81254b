from __future__ import annotations

from typing import Any

from core.landmarks import LANDMARK_NAMES

SCHEMA_VERSION = "1.0"


def validate_pose_result_schema(payload: dict[str, Any]) -> tuple[bool, str]:
    if not isinstance(payload, dict):
        return False, "Payload must be an object."
    if payload.get("schema_version") != SCHEMA_VERSION:
        return False, "schema_version missing or unsupported."
    for key in ("complete", "progress"):
        if key not in payload:
            return False, f"payload missing '{key}'."
    progress = payload.get("progress")
    if not isinstance(progress, (int, float)) or not 0.0 <= float(progress) <= 1.0:
        return False, "progress must be a number in [0, 1]."
    joints = payload.get("joints")
    if not isinstance(joints, dict):
        return False, "joints must be an object."
    missing = [name for name in LANDMARK_NAMES if name not in joints]
    if missing:
        return False, f"joints missing canonical landmark '{missing[0]}'."
    for name, joint in joints.items():
        if not isinstance(joint, dict):
            return False, f"joint '{name}' must be an object."
        alias_of = joint.get("alias_of")
        if alias_of is not None:
            if alias_of not in joints or joints[alias_of].get("alias_of") is not None:
                return False, f"joint '{name}' aliases unknown series '{alias_of}'."
            continue
        for key in ("frames", "color", "units"):
            if key not in joint:
                return False, f"joint '{name}' missing '{key}'."
        frames = joint.get("frames")
        if not isinstance(frames, list):
            return False, f"joint '{name}' frames must be a list."
        for frame in frames[:3]:
            if not isinstance(frame, dict):
                return False, "frame entries must be objects."
            for key in ("t", "x", "y", "z"):
                if key not in frame:
                    return False, f"frame missing '{key}'."
    return True, "pose result schema is valid."
