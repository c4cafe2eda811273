"""
app/schemas/churn_risk.py

Request and response schemas for churn risk endpoints.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from churn_risk.types import (
    CustomerSegment,
    Intervention,
    PrimaryRiskDriver,
    RiskAssessment,
    RiskTier,
    ScoringInput,
)


class ScoringInputRequest(BaseModel):
    """
    One customer's aggregated signals, as consumed by the scoring engine.
    """

    model_config = ConfigDict(extra="forbid")

    customer_segment: CustomerSegment
    tenure_months: int = Field(..., ge=0)
    total_products_held: int = Field(..., ge=0)
    primary_account_balance: float
    total_relationship_balance: float
    recent_txn_count: int = Field(..., ge=0)
    prior_txn_count: int = Field(..., ge=0)
    days_since_last_txn: int = Field(..., ge=0)
    login_count_30d: int = Field(..., ge=0)
    mobile_app_active: bool
    digital_engagement_score: int = Field(..., ge=0, le=100)
    open_complaints_count: int = Field(..., ge=0)
    complaints_last_12m: int = Field(..., ge=0)

    def to_scoring_input(self) -> ScoringInput:
        return ScoringInput(**self.model_dump())


class ScoreRequest(BaseModel):
    """
    Stateless scoring request. Nothing is persisted.
    """

    model_config = ConfigDict(extra="forbid")

    customer_id: str | None = Field(default=None, max_length=50)
    as_of_date: date | None = None
    data: ScoringInputRequest


class BatchScoreRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    as_of_date: date | None = None
    records: list[ScoreRequest] = Field(..., min_length=1, max_length=10_000)


class RiskAssessmentResponse(BaseModel):
    """
    API rendering of one assessment, computed or persisted.
    """

    model_config = ConfigDict(protected_namespaces=())

    customer_id: str | None = None
    customer_segment: str | None = None
    churn_risk_score: int = Field(..., ge=0, le=100)
    risk_tier: RiskTier
    declining_balance_flag: bool
    reduced_activity_flag: bool
    low_engagement_flag: bool
    complaint_flag: bool
    dormancy_flag: bool
    primary_risk_driver: PrimaryRiskDriver
    recommended_intervention: Intervention
    intervention_priority: int = Field(..., ge=1, le=4)
    risk_drivers: dict[str, Any] = Field(default_factory=dict)
    as_of_date: date | None = None
    calculated_at: datetime | None = None
    model_version: str | None = None

    @classmethod
    def from_assessment(cls, assessment: RiskAssessment) -> "RiskAssessmentResponse":
        return cls(
            customer_id=assessment.customer_id,
            customer_segment=(
                assessment.customer_segment.value if assessment.customer_segment else None
            ),
            churn_risk_score=assessment.churn_risk_score,
            risk_tier=assessment.risk_tier,
            declining_balance_flag=assessment.declining_balance_flag,
            reduced_activity_flag=assessment.reduced_activity_flag,
            low_engagement_flag=assessment.low_engagement_flag,
            complaint_flag=assessment.complaint_flag,
            dormancy_flag=assessment.dormancy_flag,
            primary_risk_driver=assessment.primary_risk_driver,
            recommended_intervention=assessment.recommended_intervention,
            intervention_priority=assessment.intervention_priority,
            risk_drivers=assessment.risk_drivers,
            as_of_date=assessment.as_of_date,
            calculated_at=assessment.calculated_at,
            model_version=assessment.model_version,
        )


class ScoringFailureResponse(BaseModel):
    index: int = Field(..., ge=0)
    customer_id: str | None = None
    message: str
    errors: list[dict[str, Any]] = Field(default_factory=list)


class BatchScoreResponse(BaseModel):
    scored: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    assessments: list[RiskAssessmentResponse] = Field(default_factory=list)
    failures: list[ScoringFailureResponse] = Field(default_factory=list)


class AssessmentHistoryResponse(BaseModel):
    customer_id: str
    assessments: list[RiskAssessmentResponse] = Field(default_factory=list)


class TierSummaryRow(BaseModel):
    risk_tier: RiskTier
    customer_count: int = Field(..., ge=0)
    percentage: float
    avg_risk_score: float
    total_balance_at_risk: float
    requiring_action: int = Field(..., ge=0)


class RiskSummaryResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_version: str | None = None
    total_customers: int = Field(..., ge=0)
    tiers: list[TierSummaryRow] = Field(default_factory=list)
