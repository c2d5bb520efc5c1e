# schema_core/rankings.py
from __future__ import annotations
from typing import List, Sequence

from . import config
from .types import ActivationTier, SchemaCandidate, SchemaRanking, SelectionResult

def activation_tier(tscore: float) -> ActivationTier:
    t = float(tscore)
    if t >= config.ACTIVE_MIN: return "active"
    if t >= config.SUBTHRESHOLD_MIN: return "emerging"
    return "suppressed"

def clinical_significance(tscore: float) -> str:
    t = float(tscore)
    if t >= 75: return "very_high"
    if t >= 65: return "high"
    if t >= 55: return "moderate"
    if t >= 40: return "low"
    return "very_low"

def tier_range(tscore: float) -> str:
    t = float(tscore)
    if t >= 70: return "Clinical Range"
    if t >= 60: return "At-Risk Range"
    if t >= 50: return "Moderate Range"
    return "Low Range"

def tscore_percentile(tscore: float) -> int:
    # T30..T70 spans the reported 0..100 band
    pct = round((float(tscore) - 30.0) / 40.0 * 100.0)
    return int(max(0, min(100, pct)))

def rank_schemas(candidates: Sequence[SchemaCandidate], result: SelectionResult) -> List[SchemaRanking]:
    """Full ranked list of every scored schema, flagged with the selection."""
    primary = result.primary.clinical_id if result.primary else None
    secondary = result.secondary.clinical_id if result.secondary else None
    tertiary = result.tertiary.clinical_id if result.tertiary else None
    ordered = sorted(candidates, key=lambda c: (-c.tscore, c.clinical_id))
    out: List[SchemaRanking] = []
    for rank, c in enumerate(ordered, start=1):
        out.append(SchemaRanking(
            schema_id=c.clinical_id,
            tscore=c.tscore,
            percentile=tscore_percentile(c.tscore),
            item_count=c.item_count,
            reliability=round(c.reliability, 2),
            rank=rank,
            tier=activation_tier(c.tscore),
            is_primary=c.clinical_id == primary,
            is_secondary=c.clinical_id == secondary,
            is_tertiary=c.clinical_id == tertiary,
        ))
    return out

def ranking_to_dict(r: SchemaRanking) -> dict:
    out = dict(r.__dict__)
    out["significance"] = clinical_significance(r.tscore)
    out["range"] = tier_range(r.tscore)
    return out
