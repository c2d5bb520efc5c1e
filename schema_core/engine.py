# schema_core/engine.py
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union
import logging, time

from . import config
from .fallback import FallbackPolicy
from .mode_config import ModeScoringConfig, load_mode_config
from .mode_scorer import z_from_tscore
from .normalizer import (
    DEFAULT_NORMALIZATION_CONFIG,
    NormalizationConfig,
    conversion_summary,
    load_normalization_config,
    normalize,
)
from .rankings import rank_schemas, ranking_to_dict
from .selector import DEFAULT_THRESHOLDS, SelectionThresholds, aggregate_by_schema, select
from .tiebreak import TIE_BREAKER_ORDER
from .types import Instrument, ItemFailure, RawItemResponse, SchemaCandidate, SchemaRanking, SelectionResult


log = logging.getLogger(__name__)
if config.DEBUG_TRACE:
    log.setLevel(logging.DEBUG)


@dataclass(frozen=True)
class ScoringContext:
    """Everything loaded once at startup; passed by reference into each call."""
    normalization: NormalizationConfig
    modes: ModeScoringConfig
    thresholds: SelectionThresholds = DEFAULT_THRESHOLDS


def load_context(
    mode_dir: Union[str, Path, None] = None,
    normalization_path: Union[str, Path, None] = None,
    thresholds: Optional[SelectionThresholds] = None,
) -> ScoringContext:
    """Load every table; any ``ConfigurationError`` propagates to the caller."""
    norm_path = normalization_path or config.NORMALIZATION_CONFIG_PATH
    norm = load_normalization_config(norm_path) if norm_path else DEFAULT_NORMALIZATION_CONFIG
    modes = load_mode_config(mode_dir)
    return ScoringContext(normalization=norm, modes=modes, thresholds=thresholds or DEFAULT_THRESHOLDS)


@dataclass
class AnalysisLineage:
    analysis_version: str
    instrument: Instrument
    thresholds: Dict[str, float]
    tie_rules: List[str]
    normalization_config: str
    processed_at: str
    processing_duration_ms: float
    primary_id: Optional[str] = None
    secondary_id: Optional[str] = None
    tertiary_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "analysis_version": self.analysis_version,
            "instrument": {"name": self.instrument.name, "version": self.instrument.version},
            "scoring_params": {
                "thresholds": dict(self.thresholds),
                "tie_rules": list(self.tie_rules),
                "normalization_config": self.normalization_config,
            },
            "processed_at": self.processed_at,
            "processing_duration_ms": self.processing_duration_ms,
            "primary_id": self.primary_id,
            "secondary_id": self.secondary_id,
            "tertiary_id": self.tertiary_id,
        }


@dataclass
class AssessmentReport:
    selection: SelectionResult
    candidates: List[SchemaCandidate]
    rankings: List[SchemaRanking]
    conversion_summary: Dict[str, int]
    failures: List[ItemFailure] = field(default_factory=list)
    lineage: Optional[AnalysisLineage] = None

    def schema_z_scores(self) -> Dict[str, float]:
        """Aggregated T-scores as z-scores, ready for the mode scorer."""
        return {c.clinical_id: z_from_tscore(c.tscore) for c in self.candidates}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "selection": self.selection.to_dict(),
            "rankings": [ranking_to_dict(r) for r in self.rankings],
            "conversion_summary": dict(self.conversion_summary),
            "failed_items": [f.to_dict() for f in self.failures],
            "lineage": self.lineage.to_dict() if self.lineage else None,
        }


def assess(
    items: Iterable[RawItemResponse],
    instrument: Instrument,
    norm_cfg: NormalizationConfig = DEFAULT_NORMALIZATION_CONFIG,
    *,
    thresholds: Optional[SelectionThresholds] = None,
    fallback: Optional[FallbackPolicy] = None,
) -> AssessmentReport:
    """Normalize, select and rank one submitted assessment.

    ``NoItemsNormalized`` propagates when nothing converts.  ``fallback`` sees
    every strict selection and decides for itself whether to change it; only
    the caller chooses it.
    """
    thresholds = thresholds or DEFAULT_THRESHOLDS
    started = time.perf_counter()
    normalized, failures = normalize(items, instrument, norm_cfg)
    candidates = aggregate_by_schema(normalized)
    selection = select(normalized, norm_cfg.instrument_priority, thresholds, candidates=candidates)
    if fallback is not None:
        selection = fallback(selection, candidates)
    rankings = rank_schemas(candidates, selection)
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 3)

    lineage = AnalysisLineage(
        analysis_version=config.ANALYSIS_VERSION,
        instrument=instrument,
        thresholds=thresholds.to_dict(),
        tie_rules=list(TIE_BREAKER_ORDER),
        normalization_config=norm_cfg.fingerprint(),
        processed_at=datetime.now(timezone.utc).isoformat(),
        processing_duration_ms=elapsed_ms,
        primary_id=selection.primary.clinical_id if selection.primary else None,
        secondary_id=selection.secondary.clinical_id if selection.secondary else None,
        tertiary_id=selection.tertiary.clinical_id if selection.tertiary else None,
    )
    log.info(
        "assessment %s: %d schemas ranked, primary=%s (%.1f ms)",
        instrument.name, len(rankings), lineage.primary_id, elapsed_ms,
    )
    return AssessmentReport(
        selection=selection,
        candidates=candidates,
        rankings=rankings,
        conversion_summary=conversion_summary(normalized, failures),
        failures=failures,
        lineage=lineage,
    )
