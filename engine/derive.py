from __future__ import annotations

import logging
from typing import Mapping

from core.constants import MIDPOINT_TOLERANCE_S
from core.landmarks import DERIVED_COLOR, NORMALIZED_UNIT, UnknownLandmark
from engine.series import FrameSample, JointSeries, TimeSeriesStore

DEFAULT_ALIASES: dict[str, str] = {
    "left_hand": "left_wrist",
    "right_hand": "right_wrist",
}

DEFAULT_MIDPOINTS: dict[str, tuple[str, str]] = {
    "center_hip": ("left_hip", "right_hip"),
}


def _pair_index(sample: FrameSample, others: list[FrameSample], used: set[int], tolerance: float) -> int | None:
    # First unused match in sequence order, not the nearest one.
    for index, other in enumerate(others):
        if index not in used and abs(other.t - sample.t) < tolerance:
            return index
    return None


def midpoint_series(
    name: str,
    first: JointSeries,
    second: JointSeries,
    tolerance: float = MIDPOINT_TOLERANCE_S,
) -> JointSeries:
    derived = JointSeries(name=name, color=DERIVED_COLOR, unit=NORMALIZED_UNIT)
    used: set[int] = set()
    for sample in first.samples:
        index = _pair_index(sample, second.samples, used, tolerance)
        if index is None:
            continue
        used.add(index)
        partner = second.samples[index]
        derived.append(
            FrameSample(
                t=sample.t,
                x=(sample.x + partner.x) / 2.0,
                y=(sample.y + partner.y) / 2.0,
                z=(sample.z + partner.z) / 2.0,
            )
        )
    return derived


def derive_composite_joints(
    store: TimeSeriesStore,
    aliases: Mapping[str, str] | None = None,
    midpoints: Mapping[str, tuple[str, str]] | None = None,
    tolerance: float = MIDPOINT_TOLERANCE_S,
) -> list[str]:
    """Add alias and midpoint joints to ``store`` and return the new names.

    Aliases bind a second name to an existing series object, so both names
    see the same samples. Midpoints get a freshly allocated series whose
    length never exceeds the shorter source.
    """
    aliases = DEFAULT_ALIASES if aliases is None else aliases
    midpoints = DEFAULT_MIDPOINTS if midpoints is None else midpoints

    for name, (first, second) in midpoints.items():
        if first not in store or second not in store:
            raise UnknownLandmark(f"Midpoint {name!r} needs unknown series {first!r}/{second!r}")
    for alias, source in aliases.items():
        if source not in store:
            raise UnknownLandmark(f"Alias {alias!r} points at unknown series {source!r}")

    added: list[str] = []
    for alias, source in aliases.items():
        store.add_alias(alias, source)
        added.append(alias)
    for name, (first, second) in midpoints.items():
        series = midpoint_series(name, store.series(first), store.series(second), tolerance)
        store.add_series(series)
        added.append(name)
        logging.debug("Derived %s from %s/%s: %d samples.", name, first, second, len(series))
    return added
