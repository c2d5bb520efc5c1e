from __future__ import annotations
import os, pathlib


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


ANALYSIS_VERSION: str = "bridge@2.1.0"

TSCORE_MIN: float = 20.0
TSCORE_MAX: float = 80.0
PERCENTILE_MIN: float = 1.0
PERCENTILE_MAX: float = 99.0
GENERIC_RAW_MIN: float = 1.0
GENERIC_RAW_MAX: float = 5.0
CLAMP_REVERSED: bool = True

PRIMARY_MIN: float = 60.0
SECONDARY_MIN: float = 50.0
TERTIARY_MIN: float = 50.0
MAX_SECONDARY_DELTA: float = 12.0
MAX_TERTIARY_DELTA: float = 15.0

TSCORE_TIE_WINDOW: float = 0.5
RELIABILITY_FULL_ITEMS: int = 3
EXPLORATORY_RELIABILITY: float = 0.6

ACTIVE_MIN: float = 60.0
SUBTHRESHOLD_MIN: float = 50.0

MODE_TAU: float = 1.5
COPING_TAU: float = 1.25
MIN_TAU: float = 0.1
CLIP_NEG_FOR_COPING: bool = True
TOP_CONTRIBUTIONS: int = 5
CONTRIB_EPS: float = 1e-6

DATA_DIR = pathlib.Path(__file__).with_name("data")
MODE_SCORING_DIR = DATA_DIR / "mode_scoring"
NORMALIZATION_CONFIG_PATH: str | None = None

DEBUG_TRACE: bool = False

# // env overrides for staging/ops; defaults match the published scoring rules.
MODE_TAU = _env_float("MODE_TAU", MODE_TAU)
COPING_TAU = _env_float("COPING_TAU", COPING_TAU)
CLIP_NEG_FOR_COPING = _env_bool("CLIP_NEG_FOR_COPING", CLIP_NEG_FOR_COPING)
TOP_CONTRIBUTIONS = _env_int("TOP_CONTRIBUTIONS", TOP_CONTRIBUTIONS)
CLAMP_REVERSED = _env_bool("CLAMP_REVERSED", CLAMP_REVERSED)
MODE_SCORING_DIR = pathlib.Path(os.getenv("MODE_SCORING_DIR") or MODE_SCORING_DIR)
NORMALIZATION_CONFIG_PATH = os.getenv("NORMALIZATION_CONFIG") or None
DEBUG_TRACE = _env_bool("DEBUG_TRACE", False)
