"""
churn_risk/quality.py

Batch-level data-quality checks over a frame of scored assessments.

Each check reduces the frame to one number and compares it with an
expectation. A failed expectation yields FAIL, except the high-risk share
which is a business threshold and the distinct-value counts which are
informational; those two only yield WARN.

Expected frame columns (as produced by ``ScoringRunResult.to_frame``):

    customer_id, churn_risk_score, risk_tier, calculated_at (optional)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

import pandas as pd

from churn_risk.thresholds import CANONICAL, ScoringThresholds
from churn_risk.types import RiskTier

logger = logging.getLogger(__name__)

HIGH_RISK_PERCENTAGE_MAX: float = 35.0
FRESHNESS_MAX_SECONDS: int = 86_400
DEFAULT_MIN_ROW_COUNT: int = 1
PRODUCTION_MIN_ROW_COUNT: int = 500

_VALID_TIERS: frozenset[str] = frozenset(tier.value for tier in RiskTier)
_HIGH_RISK_TIERS: frozenset[str] = frozenset({RiskTier.HIGH.value, RiskTier.CRITICAL.value})


class QualityStatus(str, Enum):
    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"


@dataclass(frozen=True)
class QualityCheckResult:
    name: str
    value: float
    expectation: str
    status: QualityStatus

    @property
    def passed(self) -> bool:
        return self.status is not QualityStatus.FAIL

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "value": self.value,
            "expectation": self.expectation,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class QualityReport:
    checks: tuple[QualityCheckResult, ...]

    @property
    def passed(self) -> bool:
        return all(check.passed for check in self.checks)

    @property
    def overall_health(self) -> str:
        return "HEALTHY" if self.passed else "DEGRADED"

    @property
    def failed(self) -> list[QualityCheckResult]:
        return [check for check in self.checks if check.status is QualityStatus.FAIL]

    @property
    def warnings(self) -> list[QualityCheckResult]:
        return [check for check in self.checks if check.status is QualityStatus.WARN]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame([check.to_dict() for check in self.checks])


# ---------------------------------------------------------------------------
# Metric functions
# ---------------------------------------------------------------------------


def null_count(frame: pd.DataFrame, column: str) -> int:
    if column not in frame.columns:
        return len(frame)
    return int(frame[column].isna().sum())


def duplicate_count(frame: pd.DataFrame, column: str) -> int:
    if column not in frame.columns:
        return 0
    values = frame[column].dropna()
    return int(values.duplicated().sum())


def unique_count(frame: pd.DataFrame, column: str) -> int:
    if column not in frame.columns:
        return 0
    return int(frame[column].nunique(dropna=True))


def score_out_of_range(frame: pd.DataFrame, thresholds: ScoringThresholds = CANONICAL) -> int:
    scores = pd.to_numeric(frame["churn_risk_score"], errors="coerce")
    out = (scores < thresholds.min_score) | (scores > thresholds.max_score)
    return int(out.sum())


def expected_tier(score: float, thresholds: ScoringThresholds = CANONICAL) -> str:
    if score <= thresholds.low_tier_max:
        return RiskTier.LOW.value
    if score <= thresholds.medium_tier_max:
        return RiskTier.MEDIUM.value
    if score <= thresholds.high_tier_max:
        return RiskTier.HIGH.value
    return RiskTier.CRITICAL.value


def risk_tier_misalignment(
    frame: pd.DataFrame,
    thresholds: ScoringThresholds = CANONICAL,
) -> int:
    """Rows whose tier does not match the band their score falls in."""
    if frame.empty:
        return 0
    expected = frame["churn_risk_score"].map(lambda score: expected_tier(score, thresholds))
    return int((expected != frame["risk_tier"]).sum())


def invalid_risk_tier(frame: pd.DataFrame) -> int:
    return int((~frame["risk_tier"].isin(_VALID_TIERS)).sum())


def high_risk_percentage(frame: pd.DataFrame) -> float:
    """Share of HIGH and CRITICAL rows, in percent rounded to 2 dp; 0 when empty."""
    if frame.empty:
        return 0.0
    high = frame["risk_tier"].isin(_HIGH_RISK_TIERS).sum()
    return round(float(high) * 100.0 / len(frame), 2)


def freshness_seconds(frame: pd.DataFrame, now: datetime) -> Optional[float]:
    """Age of the newest ``calculated_at`` relative to ``now``, or None."""
    if "calculated_at" not in frame.columns or frame.empty:
        return None
    stamps = pd.to_datetime(frame["calculated_at"], utc=True, errors="coerce").dropna()
    if stamps.empty:
        return None
    reference = pd.Timestamp(now)
    if reference.tzinfo is None:
        reference = reference.tz_localize("UTC")
    return float((reference - stamps.max()).total_seconds())


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


def _zero_expected(name: str, value: float) -> QualityCheckResult:
    status = QualityStatus.PASS if value == 0 else QualityStatus.FAIL
    return QualityCheckResult(name=name, value=value, expectation="= 0", status=status)


def _positive_expected(name: str, value: float) -> QualityCheckResult:
    status = QualityStatus.PASS if value > 0 else QualityStatus.WARN
    return QualityCheckResult(name=name, value=value, expectation="> 0", status=status)


def run_quality_checks(
    frame: pd.DataFrame,
    thresholds: ScoringThresholds = CANONICAL,
    min_row_count: int = DEFAULT_MIN_ROW_COUNT,
    high_risk_max: float = HIGH_RISK_PERCENTAGE_MAX,
    now: Optional[datetime] = None,
) -> QualityReport:
    """
    Evaluate every batch check against ``frame``.

    Args:
        frame: One row per assessment.
        thresholds: Tier bands and score bounds the batch was scored with.
        min_row_count: Smallest acceptable batch size. Scheduled production
            runs use ``PRODUCTION_MIN_ROW_COUNT``.
        high_risk_max: Warning threshold for the high-risk share, percent.
        now: Reference time for the freshness check; the check is skipped
             when omitted or when the frame has no timestamps.

    Returns:
        QualityReport with one result per check, in a fixed order.
    """
    checks: list[QualityCheckResult] = [
        _zero_expected("null_customer_id", null_count(frame, "customer_id")),
        _zero_expected("null_churn_risk_score", null_count(frame, "churn_risk_score")),
        _zero_expected("null_risk_tier", null_count(frame, "risk_tier")),
        _zero_expected("duplicate_customer_id", duplicate_count(frame, "customer_id")),
        _positive_expected("unique_customer_id", unique_count(frame, "customer_id")),
        _positive_expected("unique_risk_tier", unique_count(frame, "risk_tier")),
    ]

    rows = len(frame)
    checks.append(
        QualityCheckResult(
            name="row_count",
            value=rows,
            expectation=f">= {min_row_count}",
            status=QualityStatus.PASS if rows >= min_row_count else QualityStatus.FAIL,
        )
    )

    if now is not None:
        age = freshness_seconds(frame, now)
        if age is not None:
            checks.append(
                QualityCheckResult(
                    name="freshness",
                    value=age,
                    expectation=f"<= {FRESHNESS_MAX_SECONDS} sec",
                    status=(
                        QualityStatus.PASS
                        if age <= FRESHNESS_MAX_SECONDS
                        else QualityStatus.FAIL
                    ),
                )
            )

    if {"churn_risk_score", "risk_tier"}.issubset(frame.columns):
        checks.append(_zero_expected("score_out_of_range", score_out_of_range(frame, thresholds)))
        checks.append(
            _zero_expected("risk_tier_misalignment", risk_tier_misalignment(frame, thresholds))
        )
        checks.append(_zero_expected("invalid_risk_tier", invalid_risk_tier(frame)))

        share = high_risk_percentage(frame)
        checks.append(
            QualityCheckResult(
                name="high_risk_percentage",
                value=share,
                expectation=f"<= {high_risk_max:g}%",
                status=QualityStatus.PASS if share <= high_risk_max else QualityStatus.WARN,
            )
        )

    report = QualityReport(checks=tuple(checks))
    for check in report.failed:
        logger.warning(
            "Quality check %s failed: value=%s expected %s",
            check.name,
            check.value,
            check.expectation,
        )
    for check in report.warnings:
        logger.info(
            "Quality check %s warning: value=%s expected %s",
            check.name,
            check.value,
            check.expectation,
        )
    return report
