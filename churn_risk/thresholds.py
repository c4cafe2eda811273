"""
churn_risk/thresholds.py

Immutable rule configuration for the churn risk model.

Every threshold, point weight and window length used by aggregation and
scoring lives in ``ScoringThresholds``. An instance is passed explicitly to
the components that need it; nothing reads thresholds from module state.

Rule tables
-----------
A deployment can swap rule sets without code changes through a JSON rules
file::

    {
        "preset": "dbt_v1",
        "long_tenure_months": 48,
        "points": {"dormancy": 30},
        "segment_adjustments": {"AFFLUENT": -2}
    }

``preset`` selects the starting point (default ``canonical``); every other
key overrides one field. ``points`` and ``segment_adjustments`` are merged
into the preset's tables rather than replacing them.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from churn_risk.errors import RuleConfigError
from churn_risk.types import CustomerSegment


POINT_KEYS: tuple[str, ...] = (
    "base",
    "declining_balance",
    "reduced_activity",
    "low_engagement",
    "complaint",
    "dormancy",
    "multi_product",
    "long_tenure",
    "highly_engaged_digital",
)

# Risk drivers add points, protective signals subtract them.
_DEFAULT_POINTS: dict[str, int] = {
    "base": 20,
    "declining_balance": 20,
    "reduced_activity": 20,
    "low_engagement": 15,
    "complaint": 15,
    "dormancy": 25,
    "multi_product": 10,
    "long_tenure": 10,
    "highly_engaged_digital": 10,
}

_DEFAULT_SEGMENT_ADJUSTMENTS: dict[str, int] = {
    CustomerSegment.MASS_MARKET.value: 5,
    CustomerSegment.MASS_AFFLUENT.value: 0,
    CustomerSegment.AFFLUENT.value: 0,
    CustomerSegment.HIGH_NET_WORTH.value: -5,
}


def _frozen(mapping: Mapping[str, int]) -> Mapping[str, int]:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class ScoringThresholds:
    """
    Thresholds and weights for one version of the churn risk rule set.
    """

    # Risk driver flags
    low_total_balance: float = 500.0
    low_primary_balance: float = 100.0
    reduced_activity_ratio: float = 0.7
    low_login_count: int = 3
    repeat_complaint_count: int = 2
    dormancy_days: int = 45

    # Protective signals
    multi_product_count: int = 3
    long_tenure_months: int = 60
    highly_engaged_score: int = 60

    # Primary driver attribution
    dormancy_driver_days: int = 60
    multi_factor_score: int = 50

    # Tier upper bounds (inclusive)
    low_tier_max: int = 25
    medium_tier_max: int = 50
    high_tier_max: int = 75

    # Score bounds
    min_score: int = 0
    max_score: int = 100

    # Transaction trend ratios
    trend_increasing_ratio: float = 1.1
    trend_stable_ratio: float = 0.9
    trend_declining_ratio: float = 0.5

    # Digital engagement score weights
    engagement_login_weight: int = 2
    engagement_mobile_points: int = 20
    engagement_online_points: int = 10
    engagement_feature_weight: int = 2
    engagement_score_cap: int = 100

    # Aggregation windows
    transaction_lookback_months: int = 6
    complaint_lookback_months: int = 12
    balance_trend_floor: float = 1000.0

    points: Mapping[str, int] = field(default_factory=lambda: _frozen(_DEFAULT_POINTS))
    segment_adjustments: Mapping[str, int] = field(
        default_factory=lambda: _frozen(_DEFAULT_SEGMENT_ADJUSTMENTS)
    )

    def __post_init__(self) -> None:
        missing = [key for key in POINT_KEYS if key not in self.points]
        if missing:
            raise RuleConfigError(f"Point table is missing keys: {missing}")
        if not (self.min_score <= self.low_tier_max <= self.medium_tier_max
                <= self.high_tier_max <= self.max_score):
            raise RuleConfigError(
                "Tier bounds must satisfy min_score <= low <= medium <= high <= max_score."
            )
        if self.transaction_lookback_months < 2 or self.transaction_lookback_months % 2:
            raise RuleConfigError(
                "transaction_lookback_months must be a positive even number."
            )
        # Re-wrap so callers holding the original dicts cannot mutate the tables.
        object.__setattr__(self, "points", _frozen(self.points))
        object.__setattr__(self, "segment_adjustments", _frozen(self.segment_adjustments))

    @property
    def recent_window_months(self) -> int:
        return self.transaction_lookback_months // 2

    def segment_adjustment(self, segment: CustomerSegment) -> int:
        return int(self.segment_adjustments.get(segment.value, 0))


CANONICAL = ScoringThresholds()

THRESHOLD_PRESETS: Mapping[str, ScoringThresholds] = MappingProxyType(
    {
        "canonical": CANONICAL,
        # Highly-engaged cut-off shipped with the first dbt model.
        "dbt_v1": replace(CANONICAL, highly_engaged_score=70),
        # Retail-split evolution scripts.
        "evolved": replace(CANONICAL, long_tenure_months=36, highly_engaged_score=70),
    }
)


def get_preset(name: str) -> ScoringThresholds:
    """Return a named threshold preset or raise ``RuleConfigError``."""
    key = (name or "").strip().lower()
    try:
        return THRESHOLD_PRESETS[key]
    except KeyError:
        raise RuleConfigError(
            f"Unknown threshold preset {name!r}. "
            f"Allowed values: {sorted(THRESHOLD_PRESETS)}."
        ) from None


_SCALAR_FIELDS: dict[str, type] = {
    f.name: (float if f.type in ("float", float) else int)
    for f in fields(ScoringThresholds)
    if f.name not in ("points", "segment_adjustments")
}


def _coerce_number(key: str, value: Any, expected: type) -> float | int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RuleConfigError(f"Rule {key!r} must be numeric, got {value!r}.")
    if expected is int:
        if isinstance(value, float) and not value.is_integer():
            raise RuleConfigError(f"Rule {key!r} must be a whole number, got {value!r}.")
        return int(value)
    return float(value)


def _merge_table(
    name: str,
    base: Mapping[str, int],
    overrides: Any,
    allowed: tuple[str, ...],
) -> dict[str, int]:
    if not isinstance(overrides, dict):
        raise RuleConfigError(f"Rule table {name!r} must be an object.")
    merged = dict(base)
    for key, value in overrides.items():
        if key not in allowed:
            raise RuleConfigError(
                f"Unknown key {key!r} in {name!r}. Allowed: {list(allowed)}."
            )
        merged[key] = int(_coerce_number(f"{name}.{key}", value, int))
    return merged


def thresholds_from_mapping(data: Mapping[str, Any]) -> ScoringThresholds:
    """
    Build thresholds from a parsed rule table.

    Raises:
        RuleConfigError: On unknown keys, unknown presets or non-numeric values.
    """
    if not isinstance(data, Mapping):
        raise RuleConfigError("Rules document must be a JSON object.")

    base = get_preset(str(data.get("preset", "canonical")))
    overrides: dict[str, Any] = {}

    for key, value in data.items():
        if key == "preset":
            continue
        if key == "points":
            overrides["points"] = _merge_table("points", base.points, value, POINT_KEYS)
        elif key == "segment_adjustments":
            overrides["segment_adjustments"] = _merge_table(
                "segment_adjustments",
                base.segment_adjustments,
                value,
                tuple(segment.value for segment in CustomerSegment),
            )
        elif key in _SCALAR_FIELDS:
            overrides[key] = _coerce_number(key, value, _SCALAR_FIELDS[key])
        else:
            raise RuleConfigError(f"Unknown rule {key!r}.")

    return replace(base, **overrides)


def load_thresholds(path: str | Path) -> ScoringThresholds:
    """Load a JSON rules file into a validated ``ScoringThresholds``."""
    rules_path = Path(path)
    try:
        raw = rules_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise RuleConfigError(f"Cannot read rules file {rules_path}: {exc}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise RuleConfigError(f"Rules file {rules_path} is not valid JSON: {exc}") from exc
    return thresholds_from_mapping(data)
