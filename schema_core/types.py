from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Optional
ConversionMethod = Literal["tscore_provided","raw_to_tscore","percentile_to_tscore"]
TieBreakerRule = Literal["higher_tscore","higher_reliability","higher_item_count","instrument_priority","lexicographic_canonical_id"]
ActivationTier = Literal["active","emerging","suppressed"]
@dataclass(frozen=True)
class Instrument:
    name: str; version: str = ""
@dataclass
class RawItemResponse:
    id: str; schema_id: str
    raw: Optional[float] = None
    tscore: Optional[float] = None
    percentile: Optional[float] = None
    reverse: bool = False
    weight: Optional[float] = None
    @classmethod
    def from_dict(cls, d: Mapping[str, Any], idx: int = 0) -> "RawItemResponse":
        return cls(
            id=str(d.get("id") or f"item_{idx}"),
            schema_id=d.get("schema_id"),  # type: ignore[arg-type]
            raw=d.get("raw"),
            tscore=d.get("tscore"),
            percentile=d.get("percentile"),
            reverse=bool(d.get("reverse") or False),
            weight=d.get("weight"),
        )
@dataclass
class NormalizedItem:
    item_id: str; schema_id: str; tscore: float
    conversion_method: ConversionMethod
    instrument: str
    weight: float = 1.0
    reverse: bool = False
    raw: Optional[float] = None
    percentile: Optional[float] = None
@dataclass
class ItemFailure:
    item_id: str; schema_id: Optional[str]; code: str; reason: str
    def to_dict(self) -> Dict[str, Any]:
        return {"item_id": self.item_id, "schema_id": self.schema_id, "code": self.code, "reason": self.reason}
@dataclass
class SchemaCandidate:
    clinical_id: str
    tscore: float
    reliability: float
    item_count: int
    instrument: str
    items: List[NormalizedItem] = field(default_factory=list, repr=False)
    def to_dict(self) -> Dict[str, Any]:
        return {
            "clinical_id": self.clinical_id,
            "tscore": self.tscore,
            "reliability": self.reliability,
            "item_count": self.item_count,
            "instrument": self.instrument,
        }
@dataclass
class SelectionResult:
    primary: Optional[SchemaCandidate] = None
    secondary: Optional[SchemaCandidate] = None
    tertiary: Optional[SchemaCandidate] = None
    confidence: float = 0.0
    selection_notes: List[str] = field(default_factory=list)
    tie_breakers_applied: List[TieBreakerRule] = field(default_factory=list)
    max_observed_tscore: Optional[float] = None
    exploratory: bool = False
    @property
    def selected_ids(self) -> List[str]:
        return [c.clinical_id for c in (self.primary, self.secondary, self.tertiary) if c is not None]
    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary": self.primary.to_dict() if self.primary else None,
            "secondary": self.secondary.to_dict() if self.secondary else None,
            "tertiary": self.tertiary.to_dict() if self.tertiary else None,
            "confidence": self.confidence,
            "selection_notes": list(self.selection_notes),
            "tie_breakers_applied": list(self.tie_breakers_applied),
            "max_observed_tscore": self.max_observed_tscore,
            "exploratory": self.exploratory,
        }
@dataclass
class SchemaRanking:
    schema_id: str
    tscore: float
    percentile: int
    item_count: int
    reliability: float
    rank: int
    tier: ActivationTier
    is_primary: bool = False
    is_secondary: bool = False
    is_tertiary: bool = False
@dataclass
class CopingEstimate:
    raw: Dict[str, float]
    cS: float; cA: float; cO: float
    def to_dict(self) -> Dict[str, Any]:
        return {"cS": self.cS, "cA": self.cA, "cO": self.cO, "raw": dict(self.raw)}
@dataclass
class Contribution:
    clinical_id: str; score: float
@dataclass
class ModeResult:
    mode: str
    p: float
    contrib: List[Contribution]
    coping_lift: Dict[str, float]
    gate_lift: float
    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "p": self.p,
            "contrib": [{"clinical_id": c.clinical_id, "score": c.score} for c in self.contrib],
            "copingLift": dict(self.coping_lift),
            "gateLift": self.gate_lift,
        }
@dataclass
class ScoringOutput:
    coping: CopingEstimate
    modes: List[ModeResult]
    tau: float
    entropy: float
    top2_gap: float
    def to_dict(self) -> Dict[str, Any]:
        return {
            "coping": self.coping.to_dict(),
            "modes": [m.to_dict() for m in self.modes],
            "tau": self.tau,
            "entropy": self.entropy,
            "top2Gap": self.top2_gap,
        }
