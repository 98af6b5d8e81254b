from __future__ import annotations

import os
from pathlib import Path

from core.constants import HOME_ENV_VAR


def get_home_root() -> Path:
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override)
    return Path.home() / ".kinescope"


def get_data_root() -> Path:
    return get_home_root() / "data"


def get_log_root() -> Path:
    return get_home_root() / "logs"


def get_outputs_root() -> Path:
    return get_data_root() / "outputs"


def get_models_root() -> Path:
    return get_data_root() / "models"


def get_settings_path() -> Path:
    return get_home_root() / "settings.json"
