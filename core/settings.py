from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Any, Callable

from core.constants import DEFAULT_SETTINGS
from core.paths import get_settings_path

_TRUE_WORDS = frozenset({"1", "true", "yes", "on"})
_FALSE_WORDS = frozenset({"0", "false", "no", "off"})


def _as_float(raw: object) -> float | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, str):
        try:
            raw = float(raw)
        except ValueError:
            return None
    if isinstance(raw, (int, float)) and math.isfinite(raw):
        return float(raw)
    return None


def _as_int(raw: object) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        try:
            return int(raw)
        except ValueError:
            return None
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    return None


def _as_bool(raw: object) -> bool | None:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, int) and raw in (0, 1):
        return bool(raw)
    if isinstance(raw, str):
        word = raw.lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    return None


def _coerce(
    value: object,
    default: Any,
    parse: Callable[[object], Any],
    low: Any = None,
    high: Any = None,
) -> Any:
    """Parse one setting, given bare or as ``(key, raw)`` so the warning can name it.

    Strings are stripped before parsing. Anything ``parse`` rejects falls back
    to ``default`` with a warning; accepted numbers are clamped to ``[low, high]``.
    """
    key = None
    raw = value
    if isinstance(value, tuple) and len(value) == 2 and isinstance(value[0], str):
        key, raw = value
    parsed = parse(raw.strip() if isinstance(raw, str) else raw)
    if parsed is None:
        logging.warning("Setting %s has unusable value %r; falling back to %r.", key or "<unnamed>", raw, default)
        return default
    if low is not None:
        parsed = max(low, parsed)
    if high is not None:
        parsed = min(high, parsed)
    return parsed


def safe_float(
    value: object,
    default: float,
    *,
    min_value: float | None = None,
    max_value: float | None = None,
) -> float:
    return float(_coerce(value, default, _as_float, min_value, max_value))


def safe_int(
    value: object,
    default: int,
    *,
    min_value: int | None = None,
    max_value: int | None = None,
) -> int:
    return int(_coerce(value, default, _as_int, min_value, max_value))


def safe_bool(value: object, default: bool) -> bool:
    return _coerce(value, default, _as_bool)


def safe_choice(value: object, default: str, choices: tuple[str, ...]) -> str:
    return _coerce(value, default, lambda raw: raw if raw in choices else None)


def load_settings(defaults: dict[str, Any] | None = None, path: Path | None = None) -> dict[str, Any]:
    """Return ``defaults`` overlaid with the known keys found in the settings file."""
    defaults = DEFAULT_SETTINGS if defaults is None else defaults
    path = path or get_settings_path()
    if not path.exists():
        return dict(defaults)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        logging.warning("Settings file %s unreadable; using defaults.", path)
        return dict(defaults)
    if not isinstance(payload, dict):
        logging.warning("Settings file %s invalid; using defaults.", path)
        return dict(defaults)
    merged = dict(defaults)
    for key, value in payload.items():
        if key in defaults:
            merged[key] = value
        else:
            logging.debug("Ignoring unknown setting %s.", key)
    return merged

