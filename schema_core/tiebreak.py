"""Ordered tie-break chain for picking one schema out of a candidate pool.

Every rule keeps the arg-max (or arg-min) subset of the pool under its
tolerance.  Rules are applied left to right and a rule only counts as
applied when it actually shrinks the pool.  The last rule compares canonical
ids, so the chain always ends with exactly one candidate.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Literal, Mapping, Optional, Sequence, Tuple

from . import config
from .types import SchemaCandidate, TieBreakerRule

__all__ = [
    "Rule",
    "Resolution",
    "TIE_BREAK_CHAIN",
    "TIE_BREAKER_ORDER",
    "resolve_winner",
]

KeyFn = Callable[[SchemaCandidate, Mapping[str, int]], object]


@dataclass(frozen=True)
class Rule:
    name: TieBreakerRule
    key: KeyFn
    prefer: Literal["max", "min"] = "max"
    tolerance: float = 0.0

    def narrow(
        self, pool: Sequence[SchemaCandidate], priority: Mapping[str, int]
    ) -> List[SchemaCandidate]:
        keys = [self.key(c, priority) for c in pool]
        best = max(keys) if self.prefer == "max" else min(keys)  # type: ignore[type-var]
        if self.tolerance > 0:
            return [c for c, k in zip(pool, keys) if abs(k - best) < self.tolerance]  # type: ignore[operator]
        return [c for c, k in zip(pool, keys) if k == best]


@dataclass
class Resolution:
    winner: SchemaCandidate
    applied: List[TieBreakerRule] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)


TIE_BREAK_CHAIN: Tuple[Rule, ...] = (
    Rule("higher_tscore", lambda c, _p: c.tscore, tolerance=config.TSCORE_TIE_WINDOW),
    Rule("higher_reliability", lambda c, _p: c.reliability),
    Rule("higher_item_count", lambda c, _p: c.item_count),
    Rule("instrument_priority", lambda c, p: p.get(c.instrument, 0)),
    Rule("lexicographic_canonical_id", lambda c, _p: c.clinical_id, prefer="min"),
)
TIE_BREAKER_ORDER: Tuple[TieBreakerRule, ...] = tuple(r.name for r in TIE_BREAK_CHAIN)


def resolve_winner(
    pool: Sequence[SchemaCandidate],
    instrument_priority: Optional[Mapping[str, int]] = None,
    label: str = "primary",
    chain: Sequence[Rule] = TIE_BREAK_CHAIN,
) -> Resolution:
    if not pool:
        raise ValueError("cannot resolve a winner from an empty pool")
    if len(pool) == 1:
        return Resolution(pool[0], [], [f"Single {label} candidate, no tie-breakers needed"])

    priority = instrument_priority or {}
    remaining = list(pool)
    res = Resolution(remaining[0])
    for rule in chain:
        if len(remaining) == 1:
            break
        before = len(remaining)
        remaining = rule.narrow(remaining, priority)
        if len(remaining) < before:
            res.applied.append(rule.name)
            res.notes.append(f"Applied {rule.name} ({label}): {before} -> {len(remaining)} candidates")
    res.winner = remaining[0]
    return res
