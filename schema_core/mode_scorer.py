"""Probabilistic mode scorer.

Schema z-scores feed a coping-style estimate (Surrender / Avoidance /
Overcompensation), then a per-mode linear model::

    logit[m] = bias[m] + sum_i w[m,i] * z[i]
             + liftS[m]*cS + liftA[m]*cA + liftO[m]*cO
             + sum_g delta[m,g] * gate[g]

passed through a temperature softmax.  Every mode carries its explanation
(top schema contributions, coping lifts, gate lift).
"""
from __future__ import annotations

import logging
import math
from typing import Dict, List, Mapping, Optional, Sequence

from . import config
from .errors import InvalidGateValue, UnknownIdentifier, ValidationError
from .mode_config import CopingMapRow, ModeScoringConfig
from .registry import COPING_FAMILIES, GATES, norm_id
from .softmax import entropy, stable_softmax, top2_gap
from .types import Contribution, CopingEstimate, ModeResult, ScoringOutput

log = logging.getLogger(__name__)

__all__ = ["estimate_coping", "validate_inputs", "score", "z_from_tscore"]


def z_from_tscore(tscore: float) -> float:
    return (float(tscore) - 50.0) / 10.0


def estimate_coping(
    z: Mapping[str, float],
    coping_map: Sequence[CopingMapRow],
    clip_negative: bool = config.CLIP_NEG_FOR_COPING,
    tau: float = config.COPING_TAU,
) -> CopingEstimate:
    totals = {fam: 0.0 for fam in COPING_FAMILIES}
    for row in coping_map:
        v = float(z.get(row.clinical_id, 0.0))
        if clip_negative:
            v = max(0.0, v)
        totals[row.family] += row.weight * v
    cS, cA, cO = stable_softmax([totals["S"], totals["A"], totals["O"]], tau)
    return CopingEstimate(raw=totals, cS=cS, cA=cA, cO=cO)


def validate_inputs(
    z: Mapping[str, object],
    gates: Optional[Mapping[str, object]],
    cfg: ModeScoringConfig,
) -> tuple[Dict[str, float], Dict[str, float]]:
    """Canonicalize and check a request; raises on the first bad key or value."""

    clean_z: Dict[str, float] = {}
    for key, value in z.items():
        cid = cfg.resolve_id(key)
        if cfg.known_clinical_ids is not None and cid not in cfg.known_clinical_ids:
            raise UnknownIdentifier("clinical_id", str(key), "add to schema_index or normalize keys")
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise ValidationError(f"z-score for {key!r} must be a finite number, got {value!r}")
        if cid in clean_z:
            raise ValidationError(f"duplicate z-score for {cid!r} via {key!r}")
        clean_z[cid] = float(value)

    clean_gates: Dict[str, float] = {}
    for key, value in (gates or {}).items():
        gate = norm_id(key)
        if gate not in GATES:
            raise UnknownIdentifier("gate", str(key), f"valid gates are: {', '.join(GATES)}")
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not (0.0 <= value <= 1.0):
            raise InvalidGateValue(gate, value)
        clean_gates[gate] = float(value)
    return clean_z, clean_gates


def score(
    z: Mapping[str, object],
    gates: Optional[Mapping[str, object]],
    cfg: ModeScoringConfig,
) -> ScoringOutput:
    """Full mode distribution for one request.

    Validation happens before any arithmetic, so a bad key yields no partial
    output.
    """

    zs, gs = validate_inputs(z, gates, cfg)
    coping = estimate_coping(zs, cfg.coping_map, clip_negative=cfg.clip_negative, tau=cfg.coping_tau)
    c_probs = {"S": coping.cS, "A": coping.cA, "O": coping.cO}

    logits: List[float] = []
    details = []
    for mode in cfg.mode_ids:
        mw = cfg.base[mode]
        eta = mw.bias
        contrib: List[Contribution] = []
        for cid, w in mw.weights.items():
            s = w * zs.get(cid, 0.0)
            eta += s
            if abs(s) > config.CONTRIB_EPS:
                contrib.append(Contribution(cid, s))

        lift = cfg.coping.get(mode)
        coping_lift = {fam: (lift.get(fam) if lift else 0.0) * c_probs[fam] for fam in COPING_FAMILIES}
        eta += sum(coping_lift.values())

        gate_lift = 0.0
        for gate, delta in cfg.context.get(mode, {}).items():
            gate_lift += delta * gs.get(gate, 0.0)
        eta += gate_lift

        logits.append(eta)
        contrib.sort(key=lambda c: abs(c.score), reverse=True)
        details.append((contrib[: config.TOP_CONTRIBUTIONS], coping_lift, gate_lift))

    ps = stable_softmax(logits, cfg.tau)
    order = sorted(range(len(ps)), key=lambda i: ps[i], reverse=True)
    modes = [
        ModeResult(
            mode=cfg.mode_ids[i],
            p=ps[i],
            contrib=details[i][0],
            coping_lift=details[i][1],
            gate_lift=details[i][2],
        )
        for i in order
    ]
    out = ScoringOutput(coping=coping, modes=modes, tau=cfg.tau, entropy=entropy(ps), top2_gap=top2_gap(ps))
    log.debug(
        "scored %d modes: top=%s p=%.3f entropy=%.3f",
        len(modes), modes[0].mode if modes else None, modes[0].p if modes else 0.0, out.entropy,
    )
    return out
