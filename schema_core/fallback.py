"""Presentation-side policies for assessments with empty selection slots.

``select`` never applies these; the engine accepts one as an optional
callable so the caller decides whether sub-threshold profiles get an
exploratory primary, or a lone primary an exploratory secondary, for
descriptive coaching content. Each policy returns results it does not
apply to unchanged.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Sequence

from . import config
from .types import SchemaCandidate, SelectionResult

log = logging.getLogger(__name__)

FallbackPolicy = Callable[[SelectionResult, Sequence[SchemaCandidate]], SelectionResult]


def _exploratory(c: SchemaCandidate) -> SchemaCandidate:
    return replace(c, reliability=config.EXPLORATORY_RELIABILITY, items=list(c.items))


def exploratory_fallback(result: SelectionResult, candidates: Sequence[SchemaCandidate]) -> SelectionResult:
    """Promote the top-ranked schema (and the runner-up) when no primary cleared the floor."""

    if result.primary is not None or not candidates:
        return result
    ranked = sorted(candidates, key=lambda c: (-c.tscore, c.clinical_id))
    primary = _exploratory(ranked[0])
    secondary = _exploratory(ranked[1]) if len(ranked) > 1 else None

    note = f"Descriptive fallback: exploratory primary {primary.clinical_id} (T{primary.tscore:g})"
    if secondary is not None:
        note += f", exploratory secondary {secondary.clinical_id} (T{secondary.tscore:g})"
    log.info(note)

    return replace(
        result,
        primary=primary,
        secondary=secondary,
        tertiary=None,
        selection_notes=list(result.selection_notes) + [note],
        tie_breakers_applied=list(result.tie_breakers_applied),
        exploratory=True,
    )


def exploratory_secondary(result: SelectionResult, candidates: Sequence[SchemaCandidate]) -> SelectionResult:
    """Fill an empty secondary slot for coaching when a primary exists.

    Takes the highest remaining schema, so one at or above ``SUBTHRESHOLD_MIN``
    wins whenever it exists.  A tertiary picked this way moves up a slot.
    """

    if result.primary is None or result.secondary is not None:
        return result
    pool = sorted(
        (c for c in candidates if c.clinical_id != result.primary.clinical_id),
        key=lambda c: (-c.tscore, c.clinical_id),
    )
    if not pool:
        return result
    pick = pool[0]
    secondary = _exploratory(pick)
    tertiary = result.tertiary
    if tertiary is not None and tertiary.clinical_id == pick.clinical_id:
        tertiary = None

    note = f"Coaching fallback: exploratory secondary {secondary.clinical_id} (T{secondary.tscore:g})"
    log.info(note)
    return replace(
        result,
        secondary=secondary,
        tertiary=tertiary,
        selection_notes=list(result.selection_notes) + [note],
        tie_breakers_applied=list(result.tie_breakers_applied),
    )


def strict(result: SelectionResult, _candidates: Sequence[SchemaCandidate]) -> SelectionResult:
    return result


POLICIES: dict[str, FallbackPolicy] = {
    "strict": strict,
    "exploratory": exploratory_fallback,
    "exploratory_secondary": exploratory_secondary,
}
