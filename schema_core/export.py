"""Helpers to export schema rankings in JSON/CSV formats."""
from __future__ import annotations

from typing import Iterable, List, Dict, Any
import csv
import io

from .types import SchemaRanking

_FIELDS: tuple[str, ...] = (
    "rank",
    "schema_id",
    "tscore",
    "percentile",
    "item_count",
    "reliability",
    "tier",
    "is_primary",
    "is_secondary",
    "is_tertiary",
)


def _normalize_row(r: SchemaRanking) -> Dict[str, Any]:
    return {
        "rank": int(r.rank),
        "schema_id": str(r.schema_id),
        "tscore": round(float(r.tscore), 2),
        "percentile": int(r.percentile),
        "item_count": int(r.item_count),
        "reliability": float(r.reliability),
        "tier": str(r.tier),
        "is_primary": bool(r.is_primary),
        "is_secondary": bool(r.is_secondary),
        "is_tertiary": bool(r.is_tertiary),
    }


def rankings_to_json(rankings: Iterable[SchemaRanking]) -> Dict[str, Any]:
    """Return a JSON-safe payload of the ranked schemas."""

    rows: List[Dict[str, Any]] = [_normalize_row(r) for r in rankings]
    return {"rankings": rows}


def rankings_to_csv(rankings: Iterable[SchemaRanking]) -> str:
    """Render rankings as CSV with a fixed header."""

    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=_FIELDS)
    writer.writeheader()
    for r in rankings:
        writer.writerow(_normalize_row(r))
    return buf.getvalue()


__all__ = ["rankings_to_json", "rankings_to_csv"]
