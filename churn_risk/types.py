"""
churn_risk/types.py

Typed records flowing through the churn risk pipeline.

Raw rows are reduced to per-customer aggregates by the aggregation step,
flattened into a ``ScoringInput`` and turned into an immutable
``RiskAssessment`` by the scoring engine. Every record here is a frozen
dataclass: once produced it is never mutated in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


NO_TRANSACTION_SENTINEL_DAYS: int = 999


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class CustomerSegment(str, Enum):
    MASS_MARKET = "MASS_MARKET"
    MASS_AFFLUENT = "MASS_AFFLUENT"
    AFFLUENT = "AFFLUENT"
    HIGH_NET_WORTH = "HIGH_NET_WORTH"


class TransactionTrend(str, Enum):
    INCREASING = "INCREASING"
    STABLE = "STABLE"
    DECLINING = "DECLINING"
    SEVERELY_DECLINING = "SEVERELY_DECLINING"


class BalanceTrend(str, Enum):
    STABLE = "STABLE"
    DECLINING = "DECLINING"


class RiskTier(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class PrimaryRiskDriver(str, Enum):
    DORMANCY = "DORMANCY"
    BALANCE_DECLINE = "BALANCE_DECLINE"
    ACTIVITY_REDUCTION = "ACTIVITY_REDUCTION"
    COMPLAINTS = "COMPLAINTS"
    LOW_ENGAGEMENT = "LOW_ENGAGEMENT"
    MULTI_FACTOR = "MULTI_FACTOR"
    NONE = "NONE"


class Intervention(str, Enum):
    URGENT_ESCALATION = "URGENT_ESCALATION"
    RELATIONSHIP_CALL = "RELATIONSHIP_CALL"
    RETENTION_OFFER = "RETENTION_OFFER"
    DIGITAL_ENGAGEMENT = "DIGITAL_ENGAGEMENT"
    BRANCH_MEETING = "BRANCH_MEETING"
    NO_ACTION = "NO_ACTION"


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CustomerProfile:
    """
    Identity and relationship attributes of one KYC-verified customer.
    """

    customer_id: str
    customer_name: str
    customer_segment: CustomerSegment
    region: str
    tenure_months: int


@dataclass(frozen=True)
class AccountAggregate:
    """
    Portfolio view over the customer's active accounts.

    A customer with no active accounts holds zero products and both
    balances are zero.
    """

    total_products_held: int = 0
    primary_account_balance: float = 0.0
    total_relationship_balance: float = 0.0

    @classmethod
    def empty(cls) -> "AccountAggregate":
        return cls()


@dataclass(frozen=True)
class TransactionAggregate:
    """
    Transaction counts over two equal trailing sub-windows.

    ``recent_count`` covers the most recent half of the lookback window,
    ``prior_count`` the half before it.
    """

    recent_count: int = 0
    prior_count: int = 0
    days_since_last_transaction: int = NO_TRANSACTION_SENTINEL_DAYS
    recent_volume: float = 0.0
    prior_volume: float = 0.0
    channels_used: int = 0

    @classmethod
    def empty(cls) -> "TransactionAggregate":
        return cls()

    @property
    def avg_monthly_transactions(self) -> float:
        """Recent-window count spread over its three months, 1 dp."""
        return round(self.recent_count / 3.0, 1)

    def classify_trend(
        self,
        increasing_ratio: float = 1.1,
        stable_ratio: float = 0.9,
        declining_ratio: float = 0.5,
    ) -> TransactionTrend:
        """
        Classify recent vs prior activity. First matching rule wins.
        """
        if self.prior_count == 0:
            return TransactionTrend.STABLE
        if self.recent_count > self.prior_count * increasing_ratio:
            return TransactionTrend.INCREASING
        if self.recent_count >= self.prior_count * stable_ratio:
            return TransactionTrend.STABLE
        if self.recent_count >= self.prior_count * declining_ratio:
            return TransactionTrend.DECLINING
        return TransactionTrend.SEVERELY_DECLINING


@dataclass(frozen=True)
class EngagementAggregate:
    """Latest digital-engagement snapshot for a customer."""

    login_count_30d: int = 0
    mobile_app_active: bool = False
    online_banking_active: bool = False
    features_used_count: int = 0
    digital_engagement_score: int = 0

    @classmethod
    def empty(cls) -> "EngagementAggregate":
        return cls()


@dataclass(frozen=True)
class ComplaintAggregate:
    """Complaint counts over the trailing twelve months."""

    open_complaints_count: int = 0
    complaints_last_12m: int = 0
    severe_complaints_count: int = 0
    escalated_complaints_count: int = 0

    @classmethod
    def empty(cls) -> "ComplaintAggregate":
        return cls()

    @property
    def has_unresolved_complaint(self) -> bool:
        return self.open_complaints_count > 0


# ---------------------------------------------------------------------------
# Engine input
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoringInput:
    """
    The per-customer record consumed by the scoring engine.

    All fields are required. Values are expected to be already aggregated;
    the engine validates their domain but never coerces them.
    """

    customer_segment: CustomerSegment
    tenure_months: int
    total_products_held: int
    primary_account_balance: float
    total_relationship_balance: float
    recent_txn_count: int
    prior_txn_count: int
    days_since_last_txn: int
    login_count_30d: int
    mobile_app_active: bool
    digital_engagement_score: int
    open_complaints_count: int
    complaints_last_12m: int


@dataclass(frozen=True)
class CustomerAggregates:
    """
    Everything the aggregation step knows about one customer as of a date.
    """

    profile: CustomerProfile
    accounts: AccountAggregate = field(default_factory=AccountAggregate)
    transactions: TransactionAggregate = field(default_factory=TransactionAggregate)
    engagement: EngagementAggregate = field(default_factory=EngagementAggregate)
    complaints: ComplaintAggregate = field(default_factory=ComplaintAggregate)
    balance_trend: BalanceTrend = BalanceTrend.DECLINING
    transaction_trend: TransactionTrend = TransactionTrend.STABLE

    @property
    def customer_id(self) -> str:
        return self.profile.customer_id

    def to_scoring_input(self) -> ScoringInput:
        return ScoringInput(
            customer_segment=self.profile.customer_segment,
            tenure_months=self.profile.tenure_months,
            total_products_held=self.accounts.total_products_held,
            primary_account_balance=self.accounts.primary_account_balance,
            total_relationship_balance=self.accounts.total_relationship_balance,
            recent_txn_count=self.transactions.recent_count,
            prior_txn_count=self.transactions.prior_count,
            days_since_last_txn=self.transactions.days_since_last_transaction,
            login_count_30d=self.engagement.login_count_30d,
            mobile_app_active=self.engagement.mobile_app_active,
            digital_engagement_score=self.engagement.digital_engagement_score,
            open_complaints_count=self.complaints.open_complaints_count,
            complaints_last_12m=self.complaints.complaints_last_12m,
        )


# ---------------------------------------------------------------------------
# Engine output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskFlags:
    """Five independent risk-driver signals."""

    declining_balance: bool
    reduced_activity: bool
    low_engagement: bool
    complaint: bool
    dormancy: bool

    def active(self) -> list[str]:
        return [name for name, value in self.as_dict().items() if value]

    def as_dict(self) -> dict[str, bool]:
        return {
            "declining_balance": self.declining_balance,
            "reduced_activity": self.reduced_activity,
            "low_engagement": self.low_engagement,
            "complaint": self.complaint,
            "dormancy": self.dormancy,
        }


@dataclass(frozen=True)
class ProtectiveSignals:
    """Signals that lower the score."""

    multi_product: bool
    long_tenure: bool
    highly_engaged_digital: bool

    def as_dict(self) -> dict[str, bool]:
        return {
            "multi_product": self.multi_product,
            "long_tenure": self.long_tenure,
            "highly_engaged_digital": self.highly_engaged_digital,
        }


@dataclass(frozen=True)
class RiskAssessment:
    """
    Result of scoring one customer in one run.

    Produced fresh on every run and never updated afterwards; history is
    kept by appending new assessments for later as-of dates.
    """

    churn_risk_score: int
    risk_tier: RiskTier
    flags: RiskFlags
    protective_signals: ProtectiveSignals
    primary_risk_driver: PrimaryRiskDriver
    recommended_intervention: Intervention
    intervention_priority: int
    customer_id: str | None = None
    customer_segment: CustomerSegment | None = None
    as_of_date: date | None = None
    calculated_at: datetime | None = None
    model_version: str | None = None
    raw_score: int | None = None
    risk_drivers: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def declining_balance_flag(self) -> bool:
        return self.flags.declining_balance

    @property
    def reduced_activity_flag(self) -> bool:
        return self.flags.reduced_activity

    @property
    def low_engagement_flag(self) -> bool:
        return self.flags.low_engagement

    @property
    def complaint_flag(self) -> bool:
        return self.flags.complaint

    @property
    def dormancy_flag(self) -> bool:
        return self.flags.dormancy

    def to_dict(self) -> dict[str, Any]:
        """
        Flat, JSON-friendly rendering. Enums become their names and dates
        ISO strings, so identical assessments render identically.
        """
        return {
            "customer_id": self.customer_id,
            "customer_segment": (
                self.customer_segment.value if self.customer_segment else None
            ),
            "churn_risk_score": self.churn_risk_score,
            "risk_tier": self.risk_tier.value,
            "declining_balance_flag": self.flags.declining_balance,
            "reduced_activity_flag": self.flags.reduced_activity,
            "low_engagement_flag": self.flags.low_engagement,
            "complaint_flag": self.flags.complaint,
            "dormancy_flag": self.flags.dormancy,
            "multi_product_customer": self.protective_signals.multi_product,
            "long_tenure_customer": self.protective_signals.long_tenure,
            "highly_engaged_digital": self.protective_signals.highly_engaged_digital,
            "primary_risk_driver": self.primary_risk_driver.value,
            "recommended_intervention": self.recommended_intervention.value,
            "intervention_priority": self.intervention_priority,
            "raw_score": self.raw_score,
            "risk_drivers": self.risk_drivers,
            "as_of_date": self.as_of_date.isoformat() if self.as_of_date else None,
            "calculated_at": (
                self.calculated_at.isoformat() if self.calculated_at else None
            ),
            "model_version": self.model_version,
        }
