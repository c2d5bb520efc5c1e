from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from . import config
from .tiebreak import resolve_winner
from .types import NormalizedItem, SchemaCandidate, SelectionResult

log = logging.getLogger(__name__)

__all__ = ["SelectionThresholds", "DEFAULT_THRESHOLDS", "aggregate_by_schema", "select", "confidence_for"]


@dataclass(frozen=True)
class SelectionThresholds:
    primary_min: float = config.PRIMARY_MIN
    secondary_min: float = config.SECONDARY_MIN
    tertiary_min: float = config.TERTIARY_MIN
    max_secondary_delta: float = config.MAX_SECONDARY_DELTA
    max_tertiary_delta: float = config.MAX_TERTIARY_DELTA

    def to_dict(self) -> Dict[str, float]:
        return {
            "PRIMARY_MIN": self.primary_min,
            "SECONDARY_MIN": self.secondary_min,
            "TERTIARY_MIN": self.tertiary_min,
            "MAX_SECONDARY_DELTA": self.max_secondary_delta,
            "MAX_TERTIARY_DELTA": self.max_tertiary_delta,
        }


DEFAULT_THRESHOLDS = SelectionThresholds()


def _fmt(t: float) -> str:
    return f"T{t:g}" if float(t).is_integer() else f"T{t:.2f}"


def aggregate_by_schema(items: Sequence[NormalizedItem]) -> List[SchemaCandidate]:
    """Group items per schema into candidates, sorted by T-score descending."""

    groups: Dict[str, List[NormalizedItem]] = {}
    for it in items:
        groups.setdefault(it.schema_id, []).append(it)

    candidates: List[SchemaCandidate] = []
    for schema_id, group in groups.items():
        total_w = sum(it.weight for it in group)
        if total_w <= 0:
            continue
        tscore = sum(it.tscore * it.weight for it in group) / total_w
        reliability = min(len(group) / config.RELIABILITY_FULL_ITEMS, 1.0)
        # most_common keeps first-seen order on equal counts
        instrument = Counter(it.instrument for it in group).most_common(1)[0][0]
        candidates.append(
            SchemaCandidate(
                clinical_id=schema_id,
                tscore=tscore,
                reliability=reliability,
                item_count=len(group),
                instrument=instrument,
                items=list(group),
            )
        )
        log.debug("%s: %s (%d items, reliability %.2f)", schema_id, _fmt(tscore), len(group), reliability)

    candidates.sort(key=lambda c: c.tscore, reverse=True)
    return candidates


def confidence_for(primary: SchemaCandidate, secondary: Optional[SchemaCandidate]) -> float:
    conf = 0.0
    if primary.tscore >= 70: conf += 0.5
    elif primary.tscore >= 65: conf += 0.4
    elif primary.tscore >= 60: conf += 0.3

    if secondary is not None:
        gap = primary.tscore - secondary.tscore
        if gap >= 5: conf += 0.2
        elif gap >= 3: conf += 0.1
    else:
        conf += 0.2

    if primary.reliability >= 0.8: conf += 0.2
    elif primary.reliability >= 0.6: conf += 0.1

    if primary.item_count >= 5: conf += 0.1
    return max(0.0, min(1.0, conf))


def _empty_slot_note(
    slot: str,
    others: Sequence[SchemaCandidate],
    primary: SchemaCandidate,
    floor: float,
    delta: float,
) -> Optional[str]:
    below = [c for c in others if c.tscore < floor]
    beyond = [c for c in others if c.tscore >= floor and (primary.tscore - c.tscore) > delta]
    reasons = []
    if below:
        reasons.append(f"{len(below)} schemas below {_fmt(floor)} threshold")
    if beyond:
        reasons.append(f"{len(beyond)} schemas beyond delta {delta:g} from primary")
    if not reasons:
        return None
    return f"No {slot} schema: {', '.join(reasons)}"


def select(
    normalized_items: Sequence[NormalizedItem],
    instrument_priority: Optional[Mapping[str, int]] = None,
    thresholds: Optional[SelectionThresholds] = None,
    candidates: Optional[Sequence[SchemaCandidate]] = None,
) -> SelectionResult:
    """Pick primary/secondary/tertiary schemas in one deterministic pass.

    A result without a primary is returned (confidence 0, with the highest
    observed T-score) when nothing clears ``primary_min``; callers decide any
    fallback presentation.  ``candidates`` may be passed when the caller has
    already aggregated the items.
    """

    th = thresholds or DEFAULT_THRESHOLDS
    ranked = list(candidates) if candidates is not None else aggregate_by_schema(normalized_items)
    ranked.sort(key=lambda c: c.tscore, reverse=True)
    log.debug("selecting from %d schema candidates", len(ranked))

    if not ranked:
        return SelectionResult(confidence=0.0, selection_notes=["No valid schema candidates found"])

    max_t = ranked[0].tscore
    primary_pool = [c for c in ranked if c.tscore >= th.primary_min]
    if not primary_pool:
        log.info("no primary schema: highest %s below %s", _fmt(max_t), _fmt(th.primary_min))
        return SelectionResult(
            confidence=0.0,
            selection_notes=[
                f"No primary schema found: highest score was {_fmt(max_t)} (< {_fmt(th.primary_min)} threshold)"
            ],
            max_observed_tscore=max_t,
        )

    res = resolve_winner(primary_pool, instrument_priority, "primary")
    primary = res.winner
    notes = [
        f"Thresholds: primary>={_fmt(th.primary_min)}, secondary>={_fmt(th.secondary_min)} "
        f"(delta<={th.max_secondary_delta:g}), tertiary>={_fmt(th.tertiary_min)} (delta<={th.max_tertiary_delta:g})",
        f"Primary schema: {primary.clinical_id} ({_fmt(primary.tscore)}) selected from {len(primary_pool)} candidates",
    ]
    notes.extend(res.notes)
    applied = list(res.applied)

    others = [c for c in ranked if c.clinical_id != primary.clinical_id]
    secondary_pool = [
        c for c in others
        if c.tscore >= th.secondary_min and (primary.tscore - c.tscore) <= th.max_secondary_delta
    ]
    secondary: Optional[SchemaCandidate] = None
    if secondary_pool:
        res2 = resolve_winner(secondary_pool, instrument_priority, "secondary")
        secondary = res2.winner
        notes.append(
            f"Secondary schema: {secondary.clinical_id} ({_fmt(secondary.tscore)}) "
            f"selected from {len(secondary_pool)} candidates"
        )
        notes.extend(res2.notes)
        applied.extend(res2.applied)
    else:
        msg = _empty_slot_note("secondary", others, primary, th.secondary_min, th.max_secondary_delta)
        notes.append(msg or "No secondary schema: no other schemas scored")

    remaining = [c for c in others if secondary is None or c.clinical_id != secondary.clinical_id]
    tertiary_pool = [
        c for c in remaining
        if c.tscore >= th.tertiary_min and (primary.tscore - c.tscore) <= th.max_tertiary_delta
    ]
    tertiary: Optional[SchemaCandidate] = None
    if tertiary_pool:
        res3 = resolve_winner(tertiary_pool, instrument_priority, "tertiary")
        tertiary = res3.winner
        notes.append(
            f"Tertiary schema: {tertiary.clinical_id} ({_fmt(tertiary.tscore)}) "
            f"selected from {len(tertiary_pool)} candidates"
        )
        notes.extend(res3.notes)
        applied.extend(res3.applied)
    else:
        msg = _empty_slot_note("tertiary", remaining, primary, th.tertiary_min, th.max_tertiary_delta)
        if msg:
            notes.append(msg)

    confidence = confidence_for(primary, secondary)
    log.info(
        "selected primary=%s secondary=%s tertiary=%s confidence=%.2f",
        primary.clinical_id,
        secondary.clinical_id if secondary else None,
        tertiary.clinical_id if tertiary else None,
        confidence,
    )
    return SelectionResult(
        primary=primary,
        secondary=secondary,
        tertiary=tertiary,
        confidence=confidence,
        selection_notes=notes,
        tie_breakers_applied=applied,
        max_observed_tscore=max_t,
    )
