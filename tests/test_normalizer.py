from __future__ import annotations

import json
import logging

import pytest

from schema_core.errors import (
    InvalidPercentile,
    InvalidSchemaId,
    InvalidWeight,
    MalformedTableRow,
    MissingWeightTable,
    NoConversionPath,
    NoItemsNormalized,
    OutOfRangeTScore,
)
from schema_core.normalizer import (
    DEFAULT_NORMALIZATION_CONFIG,
    NormalizationConfig,
    conversion_summary,
    interpolate,
    load_normalization_config,
    normalize,
    normalize_item,
)
from schema_core.types import Instrument, RawItemResponse

from tests.conftest import raw_item

LASBI = Instrument("LASBI", "2.0")


def test_supplied_tscore_passes_through():
    out = normalize_item(raw_item("failure", tscore=65), LASBI)
    assert out.tscore == 65
    assert out.conversion_method == "tscore_provided"
    assert out.weight == 1.0
    assert out.instrument == "LASBI"


@pytest.mark.parametrize("t", [20, 80])
def test_tscore_bounds_are_inclusive(t):
    assert normalize_item(raw_item("failure", tscore=t), LASBI).tscore == t


@pytest.mark.parametrize("t", [19.99, 80.01, float("nan")])
def test_tscore_out_of_range(t):
    with pytest.raises(OutOfRangeTScore):
        normalize_item(raw_item("failure", tscore=t), LASBI)


def test_tscore_wins_over_raw_and_percentile():
    out = normalize_item(raw_item("failure", tscore=44, raw=5, percentile=99), LASBI)
    assert out.tscore == 44
    assert out.conversion_method == "tscore_provided"


def test_raw_exact_lookup_and_interpolation():
    assert normalize_item(raw_item("failure", raw=3), LASBI).tscore == 50
    half = normalize_item(raw_item("failure", raw=3.5), LASBI)
    assert half.tscore == pytest.approx(55.0)
    assert half.conversion_method == "raw_to_tscore"


@pytest.mark.parametrize("raw,expected", [(-2, 25), (0, 25), (6, 75), (9, 75)])
def test_raw_outside_table_clamps_to_boundary(raw, expected):
    assert normalize_item(raw_item("failure", raw=raw), LASBI).tscore == expected


def test_fixture_table_interpolates_between_anchors():
    cfg = NormalizationConfig(
        conversion_tables={"Fixture": {1: 30, 2: 40, 3: 50, 4: 60, 5: 70}},
        percentile_lut=DEFAULT_NORMALIZATION_CONFIG.percentile_lut,
    )
    out = normalize_item(raw_item("failure", raw=2.5), Instrument("Fixture"), cfg)
    assert out.tscore == pytest.approx(45.0)
    assert out.conversion_method == "raw_to_tscore"


def test_interpolation_logs_a_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="schema_core.normalizer"):
        normalize_item(raw_item("failure", raw=3), LASBI)
    assert not caplog.records
    with caplog.at_level(logging.WARNING, logger="schema_core.normalizer"):
        normalize_item(raw_item("failure", raw=3.5), LASBI)
    assert "interpolating" in caplog.records[-1].getMessage()
    assert caplog.records[-1].levelno == logging.WARNING


def test_ysq_table():
    ysq = Instrument("YSQ-S3")
    assert normalize_item(raw_item("failure", raw=4), ysq).tscore == 56
    assert normalize_item(raw_item("failure", raw=4.5), ysq).tscore == pytest.approx(59.5)


@pytest.mark.parametrize("raw,expected", [(1, 20), (3, 50), (5, 80), (0, 20), (12, 80), (2, 35)])
def test_generic_linear_fallback_without_table(raw, expected):
    out = normalize_item(raw_item("failure", raw=raw), Instrument("Homegrown"))
    assert out.tscore == pytest.approx(expected)
    assert out.conversion_method == "raw_to_tscore"


def test_percentile_conversion():
    assert normalize_item(raw_item("failure", percentile=50), LASBI).tscore == 50
    assert normalize_item(raw_item("failure", percentile=84), LASBI).tscore == 60
    mid = normalize_item(raw_item("failure", percentile=20), LASBI)
    assert mid.tscore == pytest.approx(40 + 4 / 9 * 3)
    assert mid.conversion_method == "percentile_to_tscore"
    assert normalize_item(raw_item("failure", percentile=1), LASBI).tscore == 20
    assert normalize_item(raw_item("failure", percentile=99), LASBI).tscore == 80


@pytest.mark.parametrize("pct", [0.5, 0, 99.5, 100])
def test_percentile_out_of_range(pct):
    with pytest.raises(InvalidPercentile):
        normalize_item(raw_item("failure", percentile=pct), LASBI)


def test_no_conversion_path():
    with pytest.raises(NoConversionPath):
        normalize_item(raw_item("failure"), LASBI)


@pytest.mark.parametrize("sid", ["Failure", "not_a_schema", "", None])
def test_invalid_schema_id(sid):
    with pytest.raises(InvalidSchemaId):
        normalize_item(RawItemResponse(id="x", schema_id=sid, tscore=50), LASBI)


def test_reverse_scoring():
    out = normalize_item(raw_item("failure", tscore=30, reverse=True), LASBI)
    assert out.tscore == 70
    assert out.reverse is True
    assert normalize_item(raw_item("failure", raw=0, reverse=True), LASBI).tscore == 75


def test_reverse_clamps_when_table_leaves_band():
    wide = NormalizationConfig(
        conversion_tables={"Wide": {1: 10, 5: 90}},
        percentile_lut=DEFAULT_NORMALIZATION_CONFIG.percentile_lut,
    )
    out = normalize_item(raw_item("failure", raw=1, reverse=True), Instrument("Wide"), wide)
    assert out.tscore == 80

    unclamped = NormalizationConfig(
        conversion_tables={"Wide": {1: 10, 5: 90}},
        percentile_lut=DEFAULT_NORMALIZATION_CONFIG.percentile_lut,
        clamp_reversed=False,
    )
    assert normalize_item(raw_item("failure", raw=1, reverse=True), Instrument("Wide"), unclamped).tscore == 90


def test_weight_attached():
    assert normalize_item(raw_item("failure", tscore=50, weight=2.5), LASBI).weight == 2.5


@pytest.mark.parametrize("w", [0, -1, float("inf")])
def test_non_positive_weight_rejected(w):
    with pytest.raises(InvalidWeight):
        normalize_item(raw_item("failure", tscore=50, weight=w), LASBI)


def test_batch_collects_failures_and_continues():
    items = [
        raw_item("failure", tscore=62, id="a"),
        raw_item("failure", raw=4, id="b"),
        raw_item("bogus", tscore=62, id="c"),
        raw_item("subjugation", percentile=50, id="d"),
        raw_item("subjugation", id="e"),
    ]
    normalized, failures = normalize(items, LASBI)
    assert [n.item_id for n in normalized] == ["a", "b", "d"]
    assert [(f.item_id, f.code) for f in failures] == [("c", "InvalidSchemaId"), ("e", "NoConversionPath")]
    assert conversion_summary(normalized, failures) == {
        "tscore_provided": 1,
        "raw_converted": 1,
        "percentile_converted": 1,
        "failed": 2,
    }


def test_batch_does_not_mutate_inputs():
    items = [raw_item("failure", tscore=30, reverse=True)]
    normalize(items, LASBI)
    assert items[0].tscore == 30


def test_all_failed_raises_with_report():
    with pytest.raises(NoItemsNormalized) as exc_info:
        normalize([raw_item("nope", tscore=50, id="x"), raw_item("failure", tscore=90, id="y")], LASBI)
    err = exc_info.value
    assert [f.code for f in err.failures] == ["InvalidSchemaId", "OutOfRangeTScore"]
    body = err.to_dict()
    assert body["code"] == "NoItemsNormalized"
    assert body["failures"][0]["item_id"] == "x"


def test_empty_batch_raises():
    with pytest.raises(NoItemsNormalized):
        normalize([], LASBI)


def test_interpolate_exact_and_between():
    table = {1.0: 10.0, 3.0: 30.0}
    assert interpolate(1, table) == 10
    assert interpolate(2, table) == 20
    assert interpolate(0, table) == 10
    assert interpolate(4, table) == 30


def test_load_normalization_config(tmp_path):
    path = tmp_path / "norm.json"
    path.write_text(
        json.dumps(
            {
                "instrumentConversionTables": {"Custom": {"1": 30, "2": 50, "3": 70}},
                "percentileToTscoreLUT": {"1": 20, "50": 50, "99": 80},
                "instrumentPriority": {"Custom": 70},
            }
        ),
        encoding="utf-8",
    )
    cfg = load_normalization_config(path)
    assert cfg.instrument_priority["Custom"] == 70
    assert normalize_item(raw_item("failure", raw=1.5), Instrument("Custom"), cfg).tscore == pytest.approx(40)
    assert cfg.fingerprint() != DEFAULT_NORMALIZATION_CONFIG.fingerprint()


def test_load_normalization_config_errors(tmp_path):
    with pytest.raises(MissingWeightTable):
        load_normalization_config(tmp_path / "missing.json")

    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(MalformedTableRow):
        load_normalization_config(bad)

    no_lut = tmp_path / "no_lut.json"
    no_lut.write_text(json.dumps({"instrumentConversionTables": {}}), encoding="utf-8")
    with pytest.raises(MissingWeightTable):
        load_normalization_config(no_lut)

    bad_entry = tmp_path / "bad_entry.json"
    bad_entry.write_text(json.dumps({"percentileToTscoreLUT": {"50": "high"}}), encoding="utf-8")
    with pytest.raises(MalformedTableRow):
        load_normalization_config(bad_entry)


def test_fingerprint_is_stable():
    rebuilt = NormalizationConfig(
        conversion_tables=dict(DEFAULT_NORMALIZATION_CONFIG.conversion_tables),
        percentile_lut=dict(DEFAULT_NORMALIZATION_CONFIG.percentile_lut),
        instrument_priority=dict(DEFAULT_NORMALIZATION_CONFIG.instrument_priority),
    )
    assert rebuilt.fingerprint() == DEFAULT_NORMALIZATION_CONFIG.fingerprint()
