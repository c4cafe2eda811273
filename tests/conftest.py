"""
Shared fixtures for the churn risk test suite.

Everything here is in-memory: raw frames are small hand-built DataFrames
anchored to a fixed as-of date, and no database is touched.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Any, Callable

import pandas as pd
import pytest

from churn_risk.aggregation import RawRecords
from churn_risk.scoring import ChurnRiskModel
from churn_risk.types import CustomerSegment, ScoringInput

AS_OF = date(2024, 6, 30)
FIXED_NOW = datetime(2024, 6, 30, 5, 0, tzinfo=timezone.utc)

# All flags false, no protective signal, zero segment shift: raw score 20.
NEUTRAL_INPUT = ScoringInput(
    customer_segment=CustomerSegment.MASS_AFFLUENT,
    tenure_months=12,
    total_products_held=1,
    primary_account_balance=5_000.0,
    total_relationship_balance=10_000.0,
    recent_txn_count=10,
    prior_txn_count=10,
    days_since_last_txn=5,
    login_count_30d=10,
    mobile_app_active=True,
    digital_engagement_score=30,
    open_complaints_count=0,
    complaints_last_12m=0,
)


@pytest.fixture()
def model() -> ChurnRiskModel:
    """Fresh canonical model for each test."""
    return ChurnRiskModel()


@pytest.fixture()
def make_input() -> Callable[..., ScoringInput]:
    """Factory returning the neutral input with selected fields overridden."""

    def _make(**overrides: Any) -> ScoringInput:
        return replace(NEUTRAL_INPUT, **overrides)

    return _make


@pytest.fixture()
def as_of() -> date:
    return AS_OF


@pytest.fixture()
def fixed_clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture()
def raw_records() -> RawRecords:
    """
    Raw frames for four customers as of 2024-06-30.

    C1  verified, full history across every source
    C2  pending KYC review, never scored
    C3  onboarded after the as-of date, never scored
    C4  verified with no accounts, transactions, engagement or complaints
    """
    customers = pd.DataFrame(
        [
            ("C1", "Ada Jones", "MASS_MARKET", "London", "2020-01-15", "VERIFIED"),
            ("C2", "Ben Smith", "AFFLUENT", "Wales", "2019-03-01", "PENDING_REVIEW"),
            ("C3", "Cat Evans", "AFFLUENT", "Scotland", "2024-07-10", "VERIFIED"),
            ("C4", "Dan Brown", "HIGH_NET_WORTH", "North East", "2010-05-20", "VERIFIED"),
        ],
        columns=[
            "customer_id",
            "customer_name",
            "customer_segment",
            "region",
            "onboarding_date",
            "kyc_status",
        ],
    )
    accounts = pd.DataFrame(
        [
            ("A1", "C1", "CURRENT_ACCOUNT", "ACTIVE", 1_500.0),
            ("A2", "C1", "CURRENT_ACCOUNT", "ACTIVE", 200.0),
            ("A3", "C1", "SAVINGS_ACCOUNT", "ACTIVE", 5_000.0),
            ("A4", "C1", "CREDIT_CARD", "CLOSED", 999.0),
            ("A5", "C2", "CURRENT_ACCOUNT", "ACTIVE", 80.0),
        ],
        columns=["account_id", "customer_id", "account_type", "account_status", "current_balance"],
    )
    transactions = pd.DataFrame(
        [
            ("T1", "A1", "2024-06-20", 120.0, "MOBILE_APP"),
            ("T2", "A1", "2024-03-30", -40.0, "ONLINE"),
            ("T3", "A1", "2024-03-29", 75.0, "ONLINE"),
            ("T4", "A1", "2023-12-30", 60.0, "BRANCH"),
            ("T5", "A1", "2023-12-29", 10.0, "BRANCH"),
            ("T6", "A1", "2024-07-01", 10.0, "ATM"),
            ("T7", "A4", "2024-06-25", 500.0, "MERCHANT"),
        ],
        columns=["txn_id", "account_id", "txn_date", "amount", "channel"],
    )
    engagement = pd.DataFrame(
        [
            ("E1", "C1", "2024-05-31", 5, True, True, 4),
            ("E2", "C1", "2024-06-30", 2, False, True, 1),
            ("E3", "C1", "2024-07-15", 50, True, True, 12),
        ],
        columns=[
            "engagement_id",
            "customer_id",
            "measurement_date",
            "login_count_30d",
            "mobile_app_active",
            "online_banking_active",
            "features_used_count",
        ],
    )
    complaints = pd.DataFrame(
        [
            ("K1", "C1", "2024-05-01", "OPEN", "HIGH", True),
            ("K2", "C1", "2023-07-01", "RESOLVED", "MEDIUM", False),
            ("K3", "C1", "2023-06-29", "RESOLVED", "CRITICAL", False),
            ("K4", "C1", "2024-07-02", "OPEN", "CRITICAL", True),
        ],
        columns=["complaint_id", "customer_id", "complaint_date", "status", "severity", "escalated"],
    )
    return RawRecords(
        customers=customers,
        accounts=accounts,
        transactions=transactions,
        digital_engagement=engagement,
        complaints=complaints,
    )
