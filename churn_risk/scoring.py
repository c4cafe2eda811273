"""
churn_risk/scoring.py

Rule-based churn risk model implementing BaseChurnModel.
Turns per-customer aggregates into a point-based score, tier, primary
driver and recommended intervention.
"""

from datetime import date, datetime
from typing import Any, Optional

from churn_risk.base import BaseChurnModel
from churn_risk.thresholds import CANONICAL, ScoringThresholds
from churn_risk.types import (
    Intervention,
    PrimaryRiskDriver,
    ProtectiveSignals,
    RiskAssessment,
    RiskFlags,
    RiskTier,
    ScoringInput,
    TransactionAggregate,
)
from churn_risk.validation import validate_scoring_input


DEFAULT_MODEL_VERSION: str = "1.0.0"


class ChurnRiskModel(BaseChurnModel):
    """Additive point model for retail banking churn risk.

    The score starts from a base, gains points for each active risk
    driver, loses points for each protective signal, is shifted by a
    segment adjustment, and is finally clamped to the score bounds.
    Clamping happens once, after every term has been summed.

    Each step is exposed as its own method so callers (and tests) can
    inspect intermediate results. No method reads the clock or any
    shared state.
    """

    def __init__(
        self,
        thresholds: ScoringThresholds = CANONICAL,
        model_version: str = DEFAULT_MODEL_VERSION,
    ) -> None:
        """
        Args:
            thresholds: Rule configuration used for every assessment.
            model_version: Default version tag stamped on assessments.
        """
        self._thresholds = thresholds
        self.model_version = model_version

    @property
    def thresholds(self) -> ScoringThresholds:
        return self._thresholds

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def evaluate_flags(self, data: ScoringInput) -> RiskFlags:
        """Evaluate the five risk-driver flags independently of each other."""
        t = self._thresholds
        return RiskFlags(
            declining_balance=(
                data.total_relationship_balance < t.low_total_balance
                or data.primary_account_balance < t.low_primary_balance
            ),
            reduced_activity=(
                data.prior_txn_count > 0
                and data.recent_txn_count < data.prior_txn_count * t.reduced_activity_ratio
            ),
            low_engagement=(
                data.login_count_30d < t.low_login_count
                and not data.mobile_app_active
            ),
            complaint=(
                data.open_complaints_count > 0
                or data.complaints_last_12m >= t.repeat_complaint_count
            ),
            dormancy=data.days_since_last_txn > t.dormancy_days,
        )

    def evaluate_protective_signals(self, data: ScoringInput) -> ProtectiveSignals:
        """Evaluate the score-reducing signals."""
        t = self._thresholds
        return ProtectiveSignals(
            multi_product=data.total_products_held >= t.multi_product_count,
            long_tenure=data.tenure_months > t.long_tenure_months,
            highly_engaged_digital=data.digital_engagement_score > t.highly_engaged_score,
        )

    # ------------------------------------------------------------------
    # Score
    # ------------------------------------------------------------------

    def raw_score(
        self,
        flags: RiskFlags,
        signals: ProtectiveSignals,
        data: ScoringInput,
    ) -> int:
        """Sum base, driver points, protective deductions and segment shift.

        The result is not clamped and may fall outside the score bounds.
        """
        points = self._thresholds.points
        score = points["base"]

        for name, active in flags.as_dict().items():
            if active:
                score += points[name]

        for name, active in signals.as_dict().items():
            if active:
                score -= points[name]

        score += self._thresholds.segment_adjustment(data.customer_segment)
        return int(score)

    def clamp(self, raw: int) -> int:
        t = self._thresholds
        return max(t.min_score, min(raw, t.max_score))

    def compute_score(self, data: ScoringInput) -> int:
        """Return the clamped churn risk score for ``data``."""
        flags = self.evaluate_flags(data)
        signals = self.evaluate_protective_signals(data)
        return self.clamp(self.raw_score(flags, signals, data))

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def classify_tier(self, score: int) -> RiskTier:
        """Map a score to its tier. Upper bound of each band is inclusive."""
        t = self._thresholds
        if score <= t.low_tier_max:
            return RiskTier.LOW
        if score <= t.medium_tier_max:
            return RiskTier.MEDIUM
        if score <= t.high_tier_max:
            return RiskTier.HIGH
        return RiskTier.CRITICAL

    def attribute_primary_driver(
        self,
        data: ScoringInput,
        flags: RiskFlags,
        score: int,
    ) -> PrimaryRiskDriver:
        """Pick the single explanatory label. First matching rule wins."""
        t = self._thresholds
        if flags.dormancy and data.days_since_last_txn > t.dormancy_driver_days:
            return PrimaryRiskDriver.DORMANCY
        if flags.declining_balance and data.primary_account_balance < t.low_primary_balance:
            return PrimaryRiskDriver.BALANCE_DECLINE
        if flags.reduced_activity:
            return PrimaryRiskDriver.ACTIVITY_REDUCTION
        if flags.complaint and data.open_complaints_count > 0:
            return PrimaryRiskDriver.COMPLAINTS
        if flags.low_engagement:
            return PrimaryRiskDriver.LOW_ENGAGEMENT
        if score > t.multi_factor_score:
            return PrimaryRiskDriver.MULTI_FACTOR
        return PrimaryRiskDriver.NONE

    def recommend_intervention(
        self,
        score: int,
        flags: RiskFlags,
    ) -> tuple[Intervention, int]:
        """Return the intervention and its queue priority (1 = most urgent)."""
        t = self._thresholds
        if score > t.high_tier_max:
            return Intervention.URGENT_ESCALATION, 1
        if score > t.medium_tier_max:
            if flags.complaint:
                return Intervention.RELATIONSHIP_CALL, 2
            return Intervention.RETENTION_OFFER, 2
        if score > t.low_tier_max:
            if flags.low_engagement:
                return Intervention.DIGITAL_ENGAGEMENT, 3
            return Intervention.BRANCH_MEETING, 3
        return Intervention.NO_ACTION, 4

    # ------------------------------------------------------------------
    # Assessment
    # ------------------------------------------------------------------

    def assess(
        self,
        data: ScoringInput,
        *,
        customer_id: Optional[str] = None,
        as_of_date: Optional[date] = None,
        calculated_at: Optional[datetime] = None,
        model_version: Optional[str] = None,
    ) -> RiskAssessment:
        """Validate ``data`` and produce a complete RiskAssessment.

        Raises:
            ScoringInputError: If any input field is out of domain.
        """
        validate_scoring_input(data)

        flags = self.evaluate_flags(data)
        signals = self.evaluate_protective_signals(data)
        raw = self.raw_score(flags, signals, data)
        score = self.clamp(raw)
        intervention, priority = self.recommend_intervention(score, flags)

        return RiskAssessment(
            churn_risk_score=score,
            risk_tier=self.classify_tier(score),
            flags=flags,
            protective_signals=signals,
            primary_risk_driver=self.attribute_primary_driver(data, flags, score),
            recommended_intervention=intervention,
            intervention_priority=priority,
            customer_id=customer_id,
            customer_segment=data.customer_segment,
            as_of_date=as_of_date,
            calculated_at=calculated_at,
            model_version=model_version or self.model_version,
            raw_score=raw,
            risk_drivers=_explain(data, flags, self._thresholds),
        )


def _explain(
    data: ScoringInput, flags: RiskFlags, t: ScoringThresholds
) -> dict[str, dict[str, Any]]:
    """Per-driver flag plus the value that drove it, for downstream review."""
    trend = TransactionAggregate(
        recent_count=data.recent_txn_count, prior_count=data.prior_txn_count
    ).classify_trend(
        increasing_ratio=t.trend_increasing_ratio,
        stable_ratio=t.trend_stable_ratio,
        declining_ratio=t.trend_declining_ratio,
    )
    return {
        "declining_balance": {
            "flag": flags.declining_balance,
            "balance": float(data.primary_account_balance),
        },
        "reduced_activity": {
            "flag": flags.reduced_activity,
            "recent_count": data.recent_txn_count,
            "prior_count": data.prior_txn_count,
            "trend": trend.value,
        },
        "low_engagement": {
            "flag": flags.low_engagement,
            "score": data.digital_engagement_score,
        },
        "complaints": {
            "flag": flags.complaint,
            "open_count": data.open_complaints_count,
            "total_12m": data.complaints_last_12m,
        },
        "dormancy": {
            "flag": flags.dormancy,
            "days_inactive": data.days_since_last_txn,
        },
    }


def score_customer(
    data: ScoringInput,
    thresholds: ScoringThresholds = CANONICAL,
) -> RiskAssessment:
    """Score a single input record with the given rule set."""
    return ChurnRiskModel(thresholds=thresholds).assess(data)
