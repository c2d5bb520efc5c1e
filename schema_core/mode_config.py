"""Mode-scoring tables: typed records and the startup loader.

The tables live as flat CSV files (one directory, lowercase ids)::

    schema_index.csv      clinical_id,display_name,alias      (optional)
    weights_base.csv      mode_id,clinical_id,weight           (required)
    weights_coping.csv    mode_id,family,lift                  (required)
    weights_context.csv   mode_id,gate_id,delta                (optional)
    coping_map.csv        family,clinical_id,weight            (required)

``weights_base.csv`` reserves ``_bias_`` in the clinical_id column for the
per-mode intercept; it becomes ``ModeWeights.bias`` and never reaches the
scoring loop as a schema key.  Every referenced id is checked while loading,
so a typo in a table stops the process at startup instead of silently
contributing zero.
"""
from __future__ import annotations

import csv
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple, Union

from . import config
from .errors import MalformedTableRow, MissingWeightTable, UnknownIdentifier
from .registry import CANONICAL_SCHEMA_IDS, COPING_FAMILIES, GATES, is_canonical, norm_id

log = logging.getLogger(__name__)

__all__ = [
    "BIAS_KEY",
    "ModeWeights",
    "CopingLift",
    "CopingMapRow",
    "ModeScoringConfig",
    "load_mode_config",
]

BIAS_KEY = "_bias_"

SCHEMA_INDEX = "schema_index.csv"
WEIGHTS_BASE = "weights_base.csv"
WEIGHTS_COPING = "weights_coping.csv"
WEIGHTS_CONTEXT = "weights_context.csv"
COPING_MAP = "coping_map.csv"


@dataclass(frozen=True)
class ModeWeights:
    bias: float = 0.0
    weights: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))


@dataclass(frozen=True)
class CopingLift:
    S: float = 0.0
    A: float = 0.0
    O: float = 0.0

    def get(self, family: str) -> float:
        return float(getattr(self, family))


@dataclass(frozen=True)
class CopingMapRow:
    family: str
    clinical_id: str
    weight: float


@dataclass(frozen=True)
class ModeScoringConfig:
    """Immutable scoring model shared by every ``score`` call.

    ``known_clinical_ids`` / ``known_mode_ids`` switch on closed-world
    validation; leave them ``None`` for ad-hoc fixture configs.
    """

    base: Mapping[str, ModeWeights]
    coping: Mapping[str, CopingLift]
    coping_map: Tuple[CopingMapRow, ...]
    context: Mapping[str, Mapping[str, float]] = field(default_factory=dict)
    tau: float = config.MODE_TAU
    coping_tau: float = config.COPING_TAU
    clip_negative: bool = config.CLIP_NEG_FOR_COPING
    known_clinical_ids: Optional[FrozenSet[str]] = None
    known_mode_ids: Optional[FrozenSet[str]] = None
    aliases: Mapping[str, str] = field(default_factory=dict)
    display_names: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "base", MappingProxyType(dict(self.base)))
        object.__setattr__(self, "coping", MappingProxyType(dict(self.coping)))
        object.__setattr__(self, "coping_map", tuple(self.coping_map))
        object.__setattr__(
            self, "context", MappingProxyType({m: MappingProxyType(dict(g)) for m, g in self.context.items()})
        )
        object.__setattr__(self, "aliases", MappingProxyType(dict(self.aliases)))
        object.__setattr__(self, "display_names", MappingProxyType(dict(self.display_names)))
        if self.known_clinical_ids is not None:
            object.__setattr__(self, "known_clinical_ids", frozenset(self.known_clinical_ids))
        if self.known_mode_ids is not None:
            object.__setattr__(self, "known_mode_ids", frozenset(self.known_mode_ids))
        self._validate()

    def _validate(self) -> None:
        if not self.base:
            raise MissingWeightTable(WEIGHTS_BASE)
        if self.known_mode_ids is not None:
            for mode in list(self.base) + list(self.coping) + list(self.context):
                if mode not in self.known_mode_ids:
                    raise UnknownIdentifier("mode_id", mode, "must exist in the modes catalog")
        if self.known_clinical_ids is not None:
            for mode, mw in self.base.items():
                for cid in mw.weights:
                    if cid not in self.known_clinical_ids:
                        raise UnknownIdentifier("clinical_id", cid, f"weights for mode {mode}")
            for row in self.coping_map:
                if row.clinical_id not in self.known_clinical_ids:
                    raise UnknownIdentifier("clinical_id", row.clinical_id, "coping map")
        for row in self.coping_map:
            if row.family not in COPING_FAMILIES:
                raise UnknownIdentifier("coping family", row.family)
        for mode, gates in self.context.items():
            for gate in gates:
                if gate not in GATES:
                    raise UnknownIdentifier("gate", gate, f"context deltas for mode {mode}")

    @property
    def mode_ids(self) -> Tuple[str, ...]:
        return tuple(self.base)

    def resolve_id(self, key: str) -> str:
        k = norm_id(key)
        return self.aliases.get(k, k)


# ---- CSV loading ----

def _rows(path: Path, required: Sequence[str]) -> List[Tuple[int, Dict[str, str]]]:
    out: List[Tuple[int, Dict[str, str]]] = []
    with path.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        header = [norm_id(h) for h in (reader.fieldnames or [])]
        missing = [c for c in required if c not in header]
        if missing:
            raise MalformedTableRow(path.name, 1, f"missing column(s): {', '.join(missing)}")
        reader.fieldnames = header
        for row in reader:
            if not any((v or "").strip() for v in row.values() if isinstance(v, str)):
                continue
            out.append((reader.line_num, {k: (v or "").strip() for k, v in row.items() if isinstance(k, str)}))
    return out


def _num(path: Path, line: int, raw: str, column: str) -> float:
    try:
        val = float(raw)
    except ValueError:
        raise MalformedTableRow(path.name, line, f"{column} is not a number: {raw!r}") from None
    if not math.isfinite(val):
        raise MalformedTableRow(path.name, line, f"{column} must be finite: {raw!r}")
    return val


def _family(path: Path, line: int, raw: str) -> str:
    fam = raw.strip().upper()
    if fam not in COPING_FAMILIES:
        raise MalformedTableRow(path.name, line, f"invalid family: {raw!r}")
    return fam


def _require(directory: Path, name: str) -> Path:
    p = directory / name
    if not p.is_file():
        raise MissingWeightTable(name, str(directory))
    return p


def _load_schema_index(path: Path) -> Tuple[FrozenSet[str], Dict[str, str], Dict[str, str]]:
    known: set[str] = set()
    aliases: Dict[str, str] = {}
    names: Dict[str, str] = {}
    for line, row in _rows(path, ("clinical_id",)):
        cid = norm_id(row.get("clinical_id"))
        if not is_canonical(cid):
            raise MalformedTableRow(path.name, line, f"clinical_id not in canonical registry: {cid!r}")
        known.add(cid)
        if row.get("display_name"):
            names[cid] = row["display_name"]
        for alias in (row.get("alias") or "").split("|"):
            a = norm_id(alias)
            if not a or a == cid:
                continue
            if a in aliases and aliases[a] != cid:
                raise MalformedTableRow(path.name, line, f"alias {a!r} already maps to {aliases[a]!r}")
            aliases[a] = cid
    return frozenset(known), aliases, names


def load_mode_config(
    directory: Union[str, Path, None] = None,
    *,
    tau: Optional[float] = None,
    coping_tau: Optional[float] = None,
    clip_negative: Optional[bool] = None,
) -> ModeScoringConfig:
    """Load and validate every mode-scoring table in ``directory``.

    Raises ``MissingWeightTable`` / ``MalformedTableRow``; there is no retry
    and no partial config.
    """

    d = Path(directory) if directory is not None else config.MODE_SCORING_DIR
    if not d.is_dir():
        raise MissingWeightTable("mode scoring directory", str(d))

    base_path = _require(d, WEIGHTS_BASE)
    coping_path = _require(d, WEIGHTS_COPING)
    map_path = _require(d, COPING_MAP)

    index_path = d / SCHEMA_INDEX
    if index_path.is_file():
        known_ids, aliases, names = _load_schema_index(index_path)
    else:
        known_ids, aliases, names = frozenset(CANONICAL_SCHEMA_IDS), {}, {}

    biases: Dict[str, float] = {}
    weights: Dict[str, Dict[str, float]] = {}
    for line, row in _rows(base_path, ("mode_id", "clinical_id", "weight")):
        mode = norm_id(row["mode_id"])
        cid = norm_id(row["clinical_id"])
        if not mode:
            raise MalformedTableRow(base_path.name, line, "empty mode_id")
        w = _num(base_path, line, row["weight"], "weight")
        mode_weights = weights.setdefault(mode, {})
        if cid == BIAS_KEY:
            if mode in biases:
                raise MalformedTableRow(base_path.name, line, f"duplicate bias for mode {mode}")
            biases[mode] = w
            continue
        if cid not in known_ids:
            raise MalformedTableRow(base_path.name, line, f"references unknown clinical_id: {cid!r}")
        if cid in mode_weights:
            raise MalformedTableRow(base_path.name, line, f"duplicate weight for {mode}/{cid}")
        mode_weights[cid] = w
    if not weights:
        raise MalformedTableRow(base_path.name, 1, "no mode rows")
    known_modes = frozenset(weights)

    lifts: Dict[str, Dict[str, float]] = {}
    for line, row in _rows(coping_path, ("mode_id", "family", "lift")):
        mode = norm_id(row["mode_id"])
        if mode not in known_modes:
            raise MalformedTableRow(coping_path.name, line, f"unknown mode_id {mode!r} (not in {WEIGHTS_BASE})")
        fam = _family(coping_path, line, row["family"])
        lifts.setdefault(mode, {})[fam] = _num(coping_path, line, row["lift"], "lift")

    context: Dict[str, Dict[str, float]] = {}
    context_path = d / WEIGHTS_CONTEXT
    if context_path.is_file():
        for line, row in _rows(context_path, ("mode_id", "gate_id", "delta")):
            mode = norm_id(row["mode_id"])
            gate = norm_id(row["gate_id"])
            if mode not in known_modes:
                raise MalformedTableRow(context_path.name, line, f"unknown mode_id {mode!r} (not in {WEIGHTS_BASE})")
            if gate not in GATES:
                raise MalformedTableRow(context_path.name, line, f"unknown gate_id {gate!r}")
            context.setdefault(mode, {})[gate] = _num(context_path, line, row["delta"], "delta")

    coping_map: List[CopingMapRow] = []
    for line, row in _rows(map_path, ("family", "clinical_id", "weight")):
        fam = _family(map_path, line, row["family"])
        cid = norm_id(row["clinical_id"])
        if cid not in known_ids:
            raise MalformedTableRow(map_path.name, line, f"references unknown clinical_id: {cid!r}")
        coping_map.append(CopingMapRow(fam, cid, _num(map_path, line, row["weight"], "weight")))
    if not coping_map:
        raise MalformedTableRow(map_path.name, 1, "no coping rows")

    cfg = ModeScoringConfig(
        base={m: ModeWeights(bias=biases.get(m, 0.0), weights=w) for m, w in weights.items()},
        coping={m: CopingLift(**l) for m, l in lifts.items()},
        coping_map=tuple(coping_map),
        context=context,
        tau=config.MODE_TAU if tau is None else tau,
        coping_tau=config.COPING_TAU if coping_tau is None else coping_tau,
        clip_negative=config.CLIP_NEG_FOR_COPING if clip_negative is None else clip_negative,
        known_clinical_ids=known_ids,
        known_mode_ids=known_modes,
        aliases=aliases,
        display_names=names,
    )
    log.info(
        "loaded mode scoring tables from %s: %d modes, %d schemas, %d coping rows",
        d, len(cfg.base), len(known_ids), len(coping_map),
    )
    return cfg
