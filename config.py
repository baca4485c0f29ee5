"""
Settings for harp-quality.

Values come from JSON config files, merged in order (later wins):

    <project root>/config.json
    ~/.harp-quality/config.json

A ``.env`` file is read first so HARP_QUALITY_DIR can be set there.
Nested keys are addressed with dots, e.g. ``get("binning.lifespan_bins")``.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

CONFIG_PATH = Path.home() / ".harp-quality" / "config.json"
_PROJECT_CONFIG_PATH = Path(__file__).resolve().parent / "config.json"


def _read_config_files() -> dict:
    settings: dict = {}
    for path in (_PROJECT_CONFIG_PATH, CONFIG_PATH):
        if not path.is_file():
            continue
        try:
            settings.update(json.loads(path.read_text(encoding="utf-8")))
        except (json.JSONDecodeError, OSError) as e:
            logging.getLogger("harp-quality").warning(f"Ignoring unreadable config {path}: {e}")
    return settings


_user_config: dict = _read_config_files()


def get(key: str, default=None):
    """Look up a dotted key such as 'columns.time'; *default* if any level is missing."""
    node = _user_config
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return default if node is None else node


# Logs and saved reports live under the data directory:
# HARP_QUALITY_DIR, else the "data_dir" key, else ~/.harp-quality
_data_dir: Optional[Path] = None


def get_data_dir() -> Path:
    """Resolve (once) the base directory for logs and reports."""
    global _data_dir
    if _data_dir is None:
        chosen = os.environ.get("HARP_QUALITY_DIR") or get("data_dir")
        _data_dir = Path(chosen).expanduser().resolve() if chosen else Path.home() / ".harp-quality"
    return _data_dir


def _reset_data_dir() -> None:
    global _data_dir
    _data_dir = None


# Column names of the input table
TIME_COLUMN = get("columns.time", "T_REC")
ENTITY_COLUMN = get("columns.entity", "HARPNUM")
QUALITY_COLUMN = get("columns.quality", "QUALITY")
LON_MIN_COLUMN = get("columns.lon_min", "LON_MIN")
LON_MAX_COLUMN = get("columns.lon_max", "LON_MAX")

# SHARP space-weather keywords; a record missing any of them is incomplete
SHARP_PARAMETERS: list[str] = get("sharp_parameters", [
    "USFLUX", "MEANGAM", "MEANGBT", "MEANGBZ", "MEANGBH", "MEANJZD",
    "TOTUSJZ", "MEANALP", "MEANJZH", "TOTUSJH", "ABSNJZH", "SAVNCPP",
    "MEANPOT", "TOTPOT", "MEANSHR", "SHRGT45", "R_VALUE",
])

CADENCE_SECONDS = get("cadence_seconds", 720)  # 12 min
LIMB_LONGITUDE_DEG = get("limb_longitude_deg", 68.0)
REINDEX_TO_CADENCE = get("reindex_to_cadence", True)
IMPUTATION_ABSCISSA = get("imputation_abscissa", "position")  # or "time"
MIN_USABLE_RUN = get("min_usable_run", 1)
LIFESPAN_BINS = get("binning.lifespan_bins", 10)
LONGITUDE_BIN_WIDTH = get("binning.longitude_bin_width", 10.0)
