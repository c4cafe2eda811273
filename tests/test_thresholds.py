"""
tests/test_thresholds.py

Threshold presets, rule tables and rules-file loading.
"""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path

import pytest

from churn_risk.errors import RuleConfigError
from churn_risk.thresholds import (
    CANONICAL,
    THRESHOLD_PRESETS,
    ScoringThresholds,
    get_preset,
    load_thresholds,
    thresholds_from_mapping,
)
from churn_risk.types import CustomerSegment


class TestCanonical:
    def test_documented_defaults(self) -> None:
        assert CANONICAL.low_total_balance == 500.0
        assert CANONICAL.low_primary_balance == 100.0
        assert CANONICAL.reduced_activity_ratio == 0.7
        assert CANONICAL.dormancy_days == 45
        assert CANONICAL.long_tenure_months == 60
        assert CANONICAL.highly_engaged_score == 60
        assert (CANONICAL.low_tier_max, CANONICAL.medium_tier_max, CANONICAL.high_tier_max) == (
            25,
            50,
            75,
        )

    def test_segment_adjustments(self) -> None:
        assert CANONICAL.segment_adjustment(CustomerSegment.MASS_MARKET) == 5
        assert CANONICAL.segment_adjustment(CustomerSegment.HIGH_NET_WORTH) == -5
        assert CANONICAL.segment_adjustment(CustomerSegment.AFFLUENT) == 0

    def test_is_frozen(self) -> None:
        with pytest.raises((AttributeError, TypeError)):
            CANONICAL.dormancy_days = 10  # type: ignore[misc]

    def test_point_table_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            CANONICAL.points["base"] = 0  # type: ignore[index]

    def test_caller_dict_mutation_does_not_leak(self) -> None:
        points = dict(CANONICAL.points)
        thresholds = replace(CANONICAL, points=points)
        points["base"] = 99
        assert thresholds.points["base"] == 20

    def test_recent_window_is_half_the_lookback(self) -> None:
        assert CANONICAL.recent_window_months == 3


class TestConstructionChecks:
    def test_unordered_tier_bounds_rejected(self) -> None:
        with pytest.raises(RuleConfigError):
            replace(CANONICAL, low_tier_max=60)

    def test_odd_lookback_rejected(self) -> None:
        with pytest.raises(RuleConfigError):
            ScoringThresholds(transaction_lookback_months=5)

    def test_incomplete_point_table_rejected(self) -> None:
        with pytest.raises(RuleConfigError):
            ScoringThresholds(points={"base": 20})


class TestPresets:
    def test_known_presets(self) -> None:
        assert set(THRESHOLD_PRESETS) == {"canonical", "dbt_v1", "evolved"}
        assert get_preset("canonical") is CANONICAL
        assert get_preset("dbt_v1").highly_engaged_score == 70
        assert get_preset("evolved").long_tenure_months == 36
        assert get_preset("evolved").highly_engaged_score == 70

    def test_lookup_ignores_case_and_whitespace(self) -> None:
        assert get_preset("  DBT_V1 ") is THRESHOLD_PRESETS["dbt_v1"]

    def test_unknown_preset_raises(self) -> None:
        with pytest.raises(RuleConfigError, match="Unknown threshold preset"):
            get_preset("v9")


class TestRuleTables:
    def test_empty_mapping_is_canonical(self) -> None:
        assert thresholds_from_mapping({}) == CANONICAL

    def test_preset_plus_overrides(self) -> None:
        thresholds = thresholds_from_mapping(
            {"preset": "dbt_v1", "long_tenure_months": 48, "reduced_activity_ratio": 0.5}
        )
        assert thresholds.highly_engaged_score == 70
        assert thresholds.long_tenure_months == 48
        assert thresholds.reduced_activity_ratio == 0.5

    def test_tables_merge_into_preset(self) -> None:
        thresholds = thresholds_from_mapping(
            {"points": {"dormancy": 30}, "segment_adjustments": {"AFFLUENT": -2}}
        )
        assert thresholds.points["dormancy"] == 30
        assert thresholds.points["base"] == 20
        assert thresholds.segment_adjustment(CustomerSegment.AFFLUENT) == -2
        assert thresholds.segment_adjustment(CustomerSegment.MASS_MARKET) == 5

    def test_whole_float_accepted_for_int_field(self) -> None:
        assert thresholds_from_mapping({"dormancy_days": 30.0}).dormancy_days == 30

    @pytest.mark.parametrize(
        "document",
        [
            {"unknown_rule": 1},
            {"dormancy_days": 30.5},
            {"dormancy_days": "30"},
            {"dormancy_days": True},
            {"points": {"loyalty": 5}},
            {"points": [1, 2]},
            {"segment_adjustments": {"PLATINUM": 1}},
            {"preset": "nope"},
            {"low_tier_max": 90},
        ],
    )
    def test_invalid_documents_raise(self, document: dict) -> None:
        with pytest.raises(RuleConfigError):
            thresholds_from_mapping(document)

    def test_non_mapping_raises(self) -> None:
        with pytest.raises(RuleConfigError):
            thresholds_from_mapping([("dormancy_days", 30)])  # type: ignore[arg-type]


class TestLoadThresholds:
    def test_loads_json_file(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({"preset": "evolved", "dormancy_days": 30}), encoding="utf-8")
        thresholds = load_thresholds(path)
        assert thresholds.long_tenure_months == 36
        assert thresholds.dormancy_days == 30

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(RuleConfigError, match="Cannot read"):
            load_thresholds(tmp_path / "absent.json")

    def test_invalid_json_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(RuleConfigError, match="not valid JSON"):
            load_thresholds(path)
