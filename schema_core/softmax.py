"""Probability helpers used by the mode scorer.

Temperature-scaled softmax, Shannon entropy and the top-2 gap.  Kept free of
any scoring-table knowledge so the coping estimator and the mode model share
the same numerics.
"""
from __future__ import annotations

import math
from typing import List, Sequence

from . import config

__all__ = [
    "stable_softmax",
    "entropy",
    "top2_gap",
]

_EPS = 1e-12


def stable_softmax(values: Sequence[float], tau: float = 1.0) -> List[float]:
    """Return ``softmax(values / tau)``.

    Parameters
    ----------
    values: Sequence[float]
        Finite logits.
    tau: float
        Temperature; floored at 0.1.  Higher flattens the distribution,
        lower sharpens it.

    Notes
    -----
    The maximum scaled logit is subtracted before exponentiating, so the
    largest term is always ``exp(0) == 1`` and the normalizer is never below
    one.  ``_EPS`` only guards the degenerate empty case.
    """

    if not values:
        return []
    t = max(config.MIN_TAU, float(tau))
    scaled = [v / t for v in values]
    top = max(scaled)
    exps = [math.exp(v - top) for v in scaled]
    total = max(math.fsum(exps), _EPS)
    return [e / total for e in exps]


def entropy(ps: Sequence[float]) -> float:
    """Shannon entropy in nats; zero-probability terms contribute nothing."""

    return -math.fsum(p * math.log(p) for p in ps if p > 0)


def top2_gap(ps: Sequence[float]) -> float:
    """``p(rank1) - p(rank2)``, or ``p(rank1)`` when there is a single value."""

    if not ps:
        return 0.0
    ordered = sorted(ps, reverse=True)
    if len(ordered) == 1:
        return ordered[0]
    return ordered[0] - ordered[1]
