from __future__ import annotations

LANDMARK_NAMES = (
    "nose",
    "left_eye_inner",
    "left_eye",
    "left_eye_outer",
    "right_eye_inner",
    "right_eye",
    "right_eye_outer",
    "left_ear",
    "right_ear",
    "mouth_left",
    "mouth_right",
    "left_shoulder",
    "right_shoulder",
    "left_elbow",
    "right_elbow",
    "left_wrist",
    "right_wrist",
    "left_pinky",
    "right_pinky",
    "left_index",
    "right_index",
    "left_thumb",
    "right_thumb",
    "left_hip",
    "right_hip",
    "left_knee",
    "right_knee",
    "left_ankle",
    "right_ankle",
    "left_heel",
    "right_heel",
    "left_foot_index",
    "right_foot_index",
)

LANDMARK_COUNT = len(LANDMARK_NAMES)

NORMALIZED_UNIT = "normalized"
DERIVED_COLOR = (128, 128, 128)

GOLDEN_ANGLE_DEG = 137.508

_NAME_TO_INDEX = {name: index for index, name in enumerate(LANDMARK_NAMES)}


class UnknownLandmark(KeyError):
    pass


def index_to_name(index: int) -> str:
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < LANDMARK_COUNT:
        raise UnknownLandmark(f"No landmark with index {index!r}")
    return LANDMARK_NAMES[index]


def name_to_index(name: str) -> int:
    try:
        return _NAME_TO_INDEX[name]
    except KeyError:
        raise UnknownLandmark(f"No landmark named {name!r}") from None


def _hsv_to_rgb(h: float, s: float, v: float) -> tuple[int, int, int]:
    c = v * s
    x = c * (1 - abs((h * 6) % 2 - 1))
    m = v - c
    if h < 1 / 6:
        r, g, b = c, x, 0.0
    elif h < 2 / 6:
        r, g, b = x, c, 0.0
    elif h < 3 / 6:
        r, g, b = 0.0, c, x
    elif h < 4 / 6:
        r, g, b = 0.0, x, c
    elif h < 5 / 6:
        r, g, b = x, 0.0, c
    else:
        r, g, b = c, 0.0, x
    return (
        _channel(r + m),
        _channel(g + m),
        _channel(b + m),
    )


def _channel(value: float) -> int:
    # Half-up rounding so every process agrees on .5 boundaries.
    return min(255, max(0, int(value * 255 + 0.5)))


def color_for(index: int) -> tuple[int, int, int]:
    """Display colour of a canonical landmark.

    Hues rotate by the golden angle so neighbouring indices stay distinct;
    saturation and value alternate slightly with ``index % 3`` and
    ``index % 2``. Both acquisition paths colour series through this function.
    """
    index_to_name(index)
    hue = (index * GOLDEN_ANGLE_DEG) % 360
    saturation = 70 + (index % 3) * 10
    value = 80 + (index % 2) * 20
    return _hsv_to_rgb(hue / 360, saturation / 100, value / 100)
