from __future__ import annotations

from pathlib import Path

import pytest

from schema_core.mode_config import CopingLift, CopingMapRow, ModeScoringConfig, ModeWeights, load_mode_config
from schema_core.types import NormalizedItem, RawItemResponse, SchemaCandidate


def raw_item(
    schema_id: str,
    *,
    tscore: float | None = None,
    raw: float | None = None,
    percentile: float | None = None,
    reverse: bool = False,
    weight: float | None = None,
    id: str | None = None,
) -> RawItemResponse:
    return RawItemResponse(
        id=id or f"{schema_id}_item",
        schema_id=schema_id,
        raw=raw,
        tscore=tscore,
        percentile=percentile,
        reverse=reverse,
        weight=weight,
    )


def norm_item(
    schema_id: str,
    tscore: float,
    *,
    instrument: str = "LASBI",
    weight: float = 1.0,
    id: str | None = None,
) -> NormalizedItem:
    return NormalizedItem(
        item_id=id or f"{schema_id}_{tscore}",
        schema_id=schema_id,
        tscore=tscore,
        conversion_method="tscore_provided",
        instrument=instrument,
        weight=weight,
    )


def build_profile(scores: dict[str, float], *, per_schema: int = 3, instrument: str = "LASBI") -> list[NormalizedItem]:
    """``per_schema`` identical items per schema, so reliability is 1.0 at the default of 3."""

    items: list[NormalizedItem] = []
    for schema_id, t in scores.items():
        for idx in range(per_schema):
            items.append(norm_item(schema_id, t, instrument=instrument, id=f"{schema_id}_{idx}"))
    return items


def candidate(
    clinical_id: str,
    tscore: float,
    *,
    reliability: float = 1.0,
    item_count: int = 3,
    instrument: str = "LASBI",
) -> SchemaCandidate:
    return SchemaCandidate(
        clinical_id=clinical_id,
        tscore=tscore,
        reliability=reliability,
        item_count=item_count,
        instrument=instrument,
    )


def build_mode_config(**overrides) -> ModeScoringConfig:
    """Two-mode config over three schemas; open world unless known ids are passed."""

    params = dict(
        base={
            "vulnerable_child": ModeWeights(bias=0.0, weights={"abandonment_instability": 1.0, "failure": 0.5}),
            "healthy_adult": ModeWeights(bias=0.5, weights={"abandonment_instability": -0.5}),
        },
        coping={"vulnerable_child": CopingLift(S=0.4), "healthy_adult": CopingLift()},
        coping_map=(
            CopingMapRow("S", "subjugation", 1.0),
            CopingMapRow("A", "abandonment_instability", 0.5),
            CopingMapRow("O", "failure", 0.5),
        ),
        context={"vulnerable_child": {"intimacy": 0.6}},
        tau=1.5,
        coping_tau=1.25,
        clip_negative=True,
    )
    params.update(overrides)
    return ModeScoringConfig(**params)


TABLE_FILES = {
    "weights_base.csv": (
        "mode_id,clinical_id,weight\n"
        "vulnerable_child,_bias_,0.1\n"
        "vulnerable_child,abandonment_instability,0.8\n"
        "healthy_adult,_bias_,0.2\n"
        "healthy_adult,failure,-0.3\n"
    ),
    "weights_coping.csv": (
        "mode_id,family,lift\n"
        "vulnerable_child,S,0.4\n"
        "healthy_adult,O,0.1\n"
    ),
    "weights_context.csv": (
        "mode_id,gate_id,delta\n"
        "vulnerable_child,intimacy,0.6\n"
    ),
    "coping_map.csv": (
        "family,clinical_id,weight\n"
        "S,subjugation,0.8\n"
        "A,emotional_inhibition,0.8\n"
        "O,entitlement_grandiosity,0.8\n"
    ),
    "schema_index.csv": (
        "clinical_id,display_name,alias\n"
        "abandonment_instability,Abandonment / Instability,abandonment|fear_of_abandonment\n"
        "failure,Failure,\n"
        "subjugation,Subjugation,\n"
        "emotional_inhibition,Emotional Inhibition,\n"
        "entitlement_grandiosity,Entitlement / Grandiosity,\n"
    ),
}


def write_tables(directory: Path, **replace: str | None) -> Path:
    """Write the small table set; pass ``name_csv=None`` to omit a file or a string to replace it."""

    directory.mkdir(parents=True, exist_ok=True)
    files = dict(TABLE_FILES)
    for key, content in replace.items():
        name = key.replace("_csv", ".csv")
        if content is None:
            files.pop(name, None)
        else:
            files[name] = content
    for name, content in files.items():
        (directory / name).write_text(content, encoding="utf-8")
    return directory


@pytest.fixture
def tables_dir(tmp_path) -> Path:
    return write_tables(tmp_path / "tables")


@pytest.fixture(scope="session")
def bundled_mode_config() -> ModeScoringConfig:
    return load_mode_config()


@pytest.fixture
def small_mode_config() -> ModeScoringConfig:
    return build_mode_config()
