from __future__ import annotations

import pytest

from schema_core.fallback import POLICIES, exploratory_fallback, exploratory_secondary, strict
from schema_core.rankings import activation_tier, clinical_significance, rank_schemas, tier_range, tscore_percentile
from schema_core.selector import aggregate_by_schema, select

from tests.conftest import build_profile, candidate


@pytest.mark.parametrize("t,expected", [(30, 0), (20, 0), (40, 25), (50, 50), (60, 75), (70, 100), (80, 100)])
def test_tscore_percentile_band(t, expected):
    assert tscore_percentile(t) == expected


@pytest.mark.parametrize("t,tier", [(75, "active"), (60, "active"), (59.9, "emerging"), (50, "emerging"), (49.9, "suppressed")])
def test_activation_tier(t, tier):
    assert activation_tier(t) == tier


def test_significance_and_range_labels():
    assert [clinical_significance(t) for t in (80, 66, 56, 41, 30)] == ["very_high", "high", "moderate", "low", "very_low"]
    assert [tier_range(t) for t in (70, 65, 50, 49)] == ["Clinical Range", "At-Risk Range", "Moderate Range", "Low Range"]


def test_rank_schemas_orders_and_flags():
    items = build_profile({"subjugation": 64, "failure": 70, "punitiveness": 64, "self_sacrifice": 40})
    cands = aggregate_by_schema(items)
    result = select(items)
    rows = rank_schemas(cands, result)

    assert [r.schema_id for r in rows] == ["failure", "punitiveness", "subjugation", "self_sacrifice"]
    assert [r.rank for r in rows] == [1, 2, 3, 4]
    assert rows[0].is_primary and not rows[0].is_secondary
    assert rows[1].is_secondary
    assert rows[2].is_tertiary
    assert not any((rows[3].is_primary, rows[3].is_secondary, rows[3].is_tertiary))
    assert rows[3].tier == "suppressed"
    assert rows[0].reliability == 1.0


def test_rank_schemas_rounds_reliability():
    rows = rank_schemas([candidate("failure", 55, reliability=1 / 3, item_count=1)], select([]))
    assert rows[0].reliability == 0.33
    assert not rows[0].is_primary


def test_exploratory_fallback_promotes_top_two():
    cands = [candidate("failure", 58), candidate("subjugation", 55), candidate("punitiveness", 52)]
    strict_result = select([], candidates=cands)
    assert strict_result.primary is None

    res = exploratory_fallback(strict_result, cands)
    assert res.exploratory is True
    assert res.primary.clinical_id == "failure"
    assert res.primary.reliability == pytest.approx(0.6)
    assert res.secondary.clinical_id == "subjugation"
    assert res.tertiary is None
    assert res.selection_notes[-1].startswith("Descriptive fallback: exploratory primary failure")
    # caller's candidates are untouched
    assert cands[0].reliability == 1.0
    assert strict_result.primary is None and strict_result.exploratory is False


def test_exploratory_fallback_single_candidate():
    cands = [candidate("failure", 45)]
    res = exploratory_fallback(select([], candidates=cands), cands)
    assert res.primary.clinical_id == "failure"
    assert res.secondary is None


def test_fallback_leaves_real_selection_alone():
    cands = [candidate("failure", 66)]
    res = select([], candidates=cands)
    assert exploratory_fallback(res, cands) is res
    assert strict(res, cands) is res
    assert exploratory_secondary(select([], candidates=[]), []).primary is None
    assert set(POLICIES) == {"strict", "exploratory", "exploratory_secondary"}


def test_exploratory_fallback_without_candidates():
    empty = select([])
    assert exploratory_fallback(empty, []) is empty


def test_exploratory_secondary_fills_empty_slot():
    cands = [candidate("failure", 72), candidate("subjugation", 55), candidate("punitiveness", 41)]
    strict_result = select([], candidates=cands)
    assert strict_result.secondary is None

    res = exploratory_secondary(strict_result, cands)
    assert res.primary is strict_result.primary
    assert res.secondary.clinical_id == "subjugation"
    assert res.secondary.reliability == pytest.approx(0.6)
    assert res.selection_notes[-1] == "Coaching fallback: exploratory secondary subjugation (T55)"
    assert cands[1].reliability == 1.0
    assert strict_result.secondary is None


def test_exploratory_secondary_takes_highest_below_floor():
    cands = [candidate("failure", 66), candidate("subjugation", 42), candidate("punitiveness", 47)]
    res = exploratory_secondary(select([], candidates=cands), cands)
    assert res.secondary.clinical_id == "punitiveness"


def test_exploratory_secondary_moves_tertiary_up():
    cands = [candidate("failure", 70), candidate("subjugation", 57)]
    strict_result = select([], candidates=cands)
    assert strict_result.secondary is None
    assert strict_result.tertiary.clinical_id == "subjugation"

    res = exploratory_secondary(strict_result, cands)
    assert res.secondary.clinical_id == "subjugation"
    assert res.tertiary is None
    assert res.selected_ids == ["failure", "subjugation"]


def test_exploratory_secondary_leaves_other_results_alone():
    full = [candidate("failure", 70), candidate("subjugation", 66)]
    res = select([], candidates=full)
    assert exploratory_secondary(res, full) is res

    lone = [candidate("failure", 64)]
    res = select([], candidates=lone)
    assert exploratory_secondary(res, lone) is res

    below = [candidate("failure", 55), candidate("subjugation", 52)]
    res = select([], candidates=below)
    assert exploratory_secondary(res, below) is res
