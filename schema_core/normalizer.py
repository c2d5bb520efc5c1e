"""Raw item responses to standardized T-scores.

Each item is converted independently through the first available path
(supplied T-score, raw score via an instrument table, percentile via the
fixed lookup table).  Items that cannot be converted are reported back as
``ItemFailure`` records; the batch only fails when nothing converts.
"""
from __future__ import annotations

import hashlib
import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from . import config
from .errors import (
    InvalidPercentile,
    InvalidSchemaId,
    InvalidWeight,
    MalformedTableRow,
    MissingWeightTable,
    NoConversionPath,
    NoItemsNormalized,
    OutOfRangeTScore,
    ValidationError,
)
from .registry import is_canonical
from .types import Instrument, ItemFailure, NormalizedItem, RawItemResponse

log = logging.getLogger(__name__)

__all__ = [
    "NormalizationConfig",
    "DEFAULT_NORMALIZATION_CONFIG",
    "load_normalization_config",
    "normalize",
    "normalize_item",
    "conversion_summary",
    "interpolate",
]


def _lasbi_table() -> Dict[float, float]:
    # 1..5 anchors plus the extended 0 and 6 edges; decimals interpolate.
    return {0: 25, 1: 30, 2: 40, 3: 50, 4: 60, 5: 70, 6: 75}


def _freeze_table(table: Mapping[Any, Any]) -> Mapping[float, float]:
    return MappingProxyType({float(k): float(v) for k, v in table.items()})


@dataclass(frozen=True)
class NormalizationConfig:
    """Instrument tables used by the normalizer and the selector tie-break.

    Built once at startup and shared read-only between calls.
    """

    conversion_tables: Mapping[str, Mapping[float, float]]
    percentile_lut: Mapping[float, float]
    instrument_priority: Mapping[str, int] = field(default_factory=dict)
    clamp_reversed: bool = config.CLAMP_REVERSED

    def __post_init__(self) -> None:
        tables = {str(name): _freeze_table(tbl) for name, tbl in self.conversion_tables.items()}
        object.__setattr__(self, "conversion_tables", MappingProxyType(tables))
        object.__setattr__(self, "percentile_lut", _freeze_table(self.percentile_lut))
        prio = {str(k): int(v) for k, v in self.instrument_priority.items()}
        object.__setattr__(self, "instrument_priority", MappingProxyType(prio))

    def table_for(self, instrument_name: str) -> Optional[Mapping[float, float]]:
        return self.conversion_tables.get(instrument_name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "instrumentConversionTables": {
                name: {str(k): v for k, v in sorted(tbl.items())}
                for name, tbl in sorted(self.conversion_tables.items())
            },
            "percentileToTscoreLUT": {str(k): v for k, v in sorted(self.percentile_lut.items())},
            "instrumentPriority": dict(sorted(self.instrument_priority.items())),
            "clampReversed": self.clamp_reversed,
        }

    def fingerprint(self) -> str:
        blob = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(blob.encode("utf-8")).hexdigest()


DEFAULT_NORMALIZATION_CONFIG = NormalizationConfig(
    conversion_tables={
        "LASBI": _lasbi_table(),
        "LASBI-Short": _lasbi_table(),
        "Leadership Assessment Schema-Based Inventory (LASBI)": _lasbi_table(),
        # Young Schema Questionnaire, 1-6 scale
        "YSQ-S3": {1: 35, 2: 42, 3: 49, 4: 56, 5: 63, 6: 70},
    },
    percentile_lut={
        1: 20, 5: 30, 10: 37, 16: 40, 25: 43, 50: 50,
        75: 57, 84: 60, 90: 63, 95: 70, 99: 80,
    },
    instrument_priority={
        "LASBI": 100,
        "LASBI-Short": 100,
        "Leadership Assessment Schema-Based Inventory (LASBI)": 100,
        "YSQ-S3": 90,
        "SQ": 80,
    },
)


def _numeric_table(name: str, raw: Any) -> Dict[float, float]:
    if not isinstance(raw, dict) or not raw:
        raise MalformedTableRow(name, 0, "expected a non-empty object of number -> number")
    out: Dict[float, float] = {}
    for k, v in raw.items():
        try:
            key, val = float(k), float(v)
        except (TypeError, ValueError):
            raise MalformedTableRow(name, 0, f"non-numeric entry {k!r}: {v!r}") from None
        if not (math.isfinite(key) and math.isfinite(val)):
            raise MalformedTableRow(name, 0, f"non-finite entry {k!r}: {v!r}")
        out[key] = val
    return out


def load_normalization_config(path: Union[str, Path]) -> NormalizationConfig:
    """Read conversion tables from a JSON document.

    Layout::

        {"instrumentConversionTables": {"<instrument>": {"<raw>": <T>, ...}},
         "percentileToTscoreLUT": {"<pct>": <T>, ...},
         "instrumentPriority": {"<instrument>": <int>}}
    """

    p = Path(path)
    if not p.exists():
        raise MissingWeightTable(p.name, str(p.parent))
    with p.open("r", encoding="utf-8") as f:
        try:
            doc = json.load(f)
        except json.JSONDecodeError as exc:
            raise MalformedTableRow(p.name, exc.lineno, exc.msg) from exc
    if not isinstance(doc, dict):
        raise MalformedTableRow(p.name, 1, "top-level value must be an object")

    tables_raw = doc.get("instrumentConversionTables") or {}
    if not isinstance(tables_raw, dict):
        raise MalformedTableRow(p.name, 0, "instrumentConversionTables must be an object")
    tables = {str(name): _numeric_table(f"{p.name}:{name}", tbl) for name, tbl in tables_raw.items()}

    if "percentileToTscoreLUT" not in doc:
        raise MissingWeightTable("percentileToTscoreLUT", str(p))
    lut = _numeric_table(f"{p.name}:percentileToTscoreLUT", doc["percentileToTscoreLUT"])

    prio_raw = doc.get("instrumentPriority") or {}
    try:
        prio = {str(k): int(v) for k, v in prio_raw.items()}
    except (AttributeError, TypeError, ValueError):
        raise MalformedTableRow(p.name, 0, "instrumentPriority must map names to integers") from None

    cfg = NormalizationConfig(
        conversion_tables=tables,
        percentile_lut=lut,
        instrument_priority=prio,
        clamp_reversed=bool(doc.get("clampReversed", config.CLAMP_REVERSED)),
    )
    log.info("loaded normalization config from %s (%d instrument tables)", p, len(tables))
    return cfg


def interpolate(x: float, table: Mapping[float, float]) -> float:
    """Piecewise-linear lookup; clamps to the boundary values outside the domain."""

    if x in table:
        return float(table[x])
    keys = sorted(table)
    if x <= keys[0]:
        return float(table[keys[0]])
    if x >= keys[-1]:
        return float(table[keys[-1]])
    for lo, hi in zip(keys, keys[1:]):
        if lo < x < hi:
            ratio = (x - lo) / (hi - lo)
            return float(table[lo] + ratio * (table[hi] - table[lo]))
    # unreachable for a sorted, non-empty table
    return float(table[keys[-1]])


def _finite(value: Any, what: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{what} must be a number, got {value!r}")
    try:
        out = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{what} must be a number, got {value!r}") from None
    if not math.isfinite(out):
        raise ValidationError(f"{what} must be finite, got {value!r}")
    return out


def _raw_to_tscore(raw: float, instrument: Instrument, cfg: NormalizationConfig) -> float:
    table = cfg.table_for(instrument.name)
    if not table:
        log.warning("no conversion table for instrument %r, using linear 1-5 fallback", instrument.name)
        clamped = max(config.GENERIC_RAW_MIN, min(config.GENERIC_RAW_MAX, raw))
        return config.TSCORE_MIN + (clamped - 1.0) / 4.0 * (config.TSCORE_MAX - config.TSCORE_MIN)
    if raw not in table:
        log.warning("no exact conversion for raw %s in %s, interpolating", raw, instrument.name)
    return interpolate(raw, table)


def _percentile_to_tscore(pct: float, cfg: NormalizationConfig) -> float:
    if pct < config.PERCENTILE_MIN or pct > config.PERCENTILE_MAX:
        raise InvalidPercentile(pct)
    return interpolate(pct, cfg.percentile_lut)


def normalize_item(
    item: RawItemResponse,
    instrument: Instrument,
    cfg: NormalizationConfig = DEFAULT_NORMALIZATION_CONFIG,
) -> NormalizedItem:
    """Convert one response; raises a ``ValidationError`` subclass on failure."""

    if not is_canonical(item.schema_id):
        raise InvalidSchemaId(item.schema_id)

    if item.tscore is not None:
        try:
            tscore = _finite(item.tscore, "tscore")
        except ValidationError:
            raise OutOfRangeTScore(item.tscore) from None  # type: ignore[arg-type]
        if tscore < config.TSCORE_MIN or tscore > config.TSCORE_MAX:
            raise OutOfRangeTScore(tscore)
        method = "tscore_provided"
    elif item.raw is not None:
        tscore = _raw_to_tscore(_finite(item.raw, "raw"), instrument, cfg)
        method = "raw_to_tscore"
    elif item.percentile is not None:
        try:
            pct = _finite(item.percentile, "percentile")
        except ValidationError:
            raise InvalidPercentile(item.percentile) from None  # type: ignore[arg-type]
        tscore = _percentile_to_tscore(pct, cfg)
        method = "percentile_to_tscore"
    else:
        raise NoConversionPath()

    if item.reverse:
        reversed_t = 100.0 - tscore
        if cfg.clamp_reversed and not (config.TSCORE_MIN <= reversed_t <= config.TSCORE_MAX):
            clamped = max(config.TSCORE_MIN, min(config.TSCORE_MAX, reversed_t))
            log.warning("item %s: reversed T%.2f outside [20,80], clamped to T%.2f", item.id, reversed_t, clamped)
            reversed_t = clamped
        tscore = reversed_t

    weight = 1.0 if item.weight is None else item.weight
    if isinstance(weight, bool) or not isinstance(weight, (int, float)) or not math.isfinite(weight) or weight <= 0:
        raise InvalidWeight(item.weight)

    return NormalizedItem(
        item_id=item.id,
        schema_id=item.schema_id,
        tscore=tscore,
        conversion_method=method,  # type: ignore[arg-type]
        instrument=instrument.name,
        weight=float(weight),
        reverse=bool(item.reverse),
        raw=item.raw,
        percentile=item.percentile,
    )


def normalize(
    items: Iterable[RawItemResponse],
    instrument: Instrument,
    cfg: NormalizationConfig = DEFAULT_NORMALIZATION_CONFIG,
) -> Tuple[List[NormalizedItem], List[ItemFailure]]:
    """Normalize a batch, collecting per-item failures.

    Raises ``NoItemsNormalized`` when no item converts (including an empty
    batch).
    """

    normalized: List[NormalizedItem] = []
    failures: List[ItemFailure] = []
    seen = 0
    for item in items:
        seen += 1
        try:
            normalized.append(normalize_item(item, instrument, cfg))
        except ValidationError as exc:
            log.debug("item %s failed normalization: %s", item.id, exc)
            failures.append(
                ItemFailure(
                    item_id=item.id,
                    schema_id=item.schema_id if isinstance(item.schema_id, str) else None,
                    code=exc.code,
                    reason=exc.message,
                )
            )

    log.info(
        "normalized %d/%d items for instrument %s (%d failed)",
        len(normalized), seen, instrument.name, len(failures),
    )
    if not normalized:
        raise NoItemsNormalized(failures)
    return normalized, failures


def conversion_summary(
    normalized: Sequence[NormalizedItem], failures: Sequence[ItemFailure] = ()
) -> Dict[str, int]:
    summary = {"tscore_provided": 0, "raw_converted": 0, "percentile_converted": 0, "failed": len(failures)}
    key = {
        "tscore_provided": "tscore_provided",
        "raw_to_tscore": "raw_converted",
        "percentile_to_tscore": "percentile_converted",
    }
    for it in normalized:
        summary[key[it.conversion_method]] += 1
    return summary
