from __future__ import annotations
from typing import Iterable, Optional

CANONICAL_SCHEMA_IDS: tuple[str, ...] = (
    "abandonment_instability",
    "mistrust_abuse",
    "emotional_deprivation",
    "social_isolation_alienation",
    "defectiveness_shame",
    "failure",
    "dependence_incompetence",
    "vulnerability_to_harm_illness",
    "enmeshment_undeveloped_self",
    "subjugation",
    "self_sacrifice",
    "emotional_inhibition",
    "unrelenting_standards_hypercriticalness",
    "entitlement_grandiosity",
    "insufficient_self_control_discipline",
    "approval_seeking_recognition_seeking",
    "negativity_pessimism",
    "punitiveness",
)
_CANONICAL_SET = frozenset(CANONICAL_SCHEMA_IDS)

GATES: tuple[str, ...] = ("intimacy", "evaluation", "limits", "competition", "rule")
COPING_FAMILIES: tuple[str, ...] = ("S", "A", "O")

def norm_id(value: Optional[str]) -> str:
    if not value: return ""
    return str(value).strip().lower()

def is_canonical(schema_id: object) -> bool:
    return isinstance(schema_id, str) and schema_id in _CANONICAL_SET

def unknown_ids(ids: Iterable[str], known: Iterable[str]) -> list[str]:
    known_set = set(known)
    return sorted({i for i in ids if i not in known_set})
