"""
churn_risk/sample_data.py

Deterministic synthetic retail-banking raw data for demos and tests.

The distributions follow the bank's demo dataset: segment mix 50/30/15/5,
~98% KYC verified, up to three accounts per customer (~2.4 on average,
~5% closed), six months of sampled transactions on current and credit-card
accounts, one engagement snapshot per customer and ~20% of customers with
a complaint. The same ``seed`` always yields identical frames.
"""

from __future__ import annotations

from datetime import date, timedelta

import numpy as np
import pandas as pd

from churn_risk.aggregation import RawRecords
from churn_risk.types import CustomerSegment

SEGMENTS: tuple[str, ...] = tuple(segment.value for segment in CustomerSegment)
SEGMENT_WEIGHTS: tuple[float, ...] = (0.50, 0.30, 0.15, 0.05)

REGIONS: tuple[str, ...] = (
    "London", "South East", "South West", "East of England", "West Midlands",
    "East Midlands", "Yorkshire", "North West", "North East", "Scotland", "Wales",
)
FIRST_NAMES: tuple[str, ...] = (
    "James", "Emma", "Oliver", "Sophia", "William", "Ava", "Benjamin",
    "Isabella", "Lucas", "Mia", "Henry", "Charlotte",
)
LAST_NAMES: tuple[str, ...] = (
    "Smith", "Johnson", "Williams", "Brown", "Jones", "Taylor", "Wilson",
    "Davies", "Evans", "Thomas",
)
ACCOUNT_TYPES: tuple[str, ...] = (
    "CURRENT_ACCOUNT", "SAVINGS_ACCOUNT", "CREDIT_CARD", "LOAN", "ISA",
)
TRANSACTING_ACCOUNT_TYPES: frozenset[str] = frozenset({"CURRENT_ACCOUNT", "CREDIT_CARD"})
TXN_CHANNELS: tuple[str, ...] = ("MOBILE_APP", "ONLINE", "BRANCH", "ATM", "MERCHANT", "AUTO")
COMPLAINT_CATEGORIES: tuple[str, ...] = (
    "SERVICE_QUALITY", "FEES_AND_CHARGES", "PRODUCT_ISSUE", "DIGITAL_BANKING",
    "FRAUD_DISPUTE", "COMMUNICATION", "WAITING_TIME",
)

# (low, high) balance per segment, in the order of SEGMENTS.
BALANCE_RANGES: dict[str, tuple[int, int]] = {
    "MASS_MARKET": (100, 5_000),
    "MASS_AFFLUENT": (2_000, 30_000),
    "AFFLUENT": (10_000, 100_000),
    "HIGH_NET_WORTH": (50_000, 500_000),
}

TRANSACTION_HISTORY_DAYS = 180
TRANSACTION_SAMPLING_RATE = 0.25


def _days_before(as_of: date, offsets: np.ndarray) -> list[date]:
    return [as_of - timedelta(days=int(offset)) for offset in offsets]


def _customers(rng: np.random.Generator, n: int, as_of: date) -> pd.DataFrame:
    ids = [f"CUST-{index:06d}" for index in range(1, n + 1)]
    first = rng.choice(FIRST_NAMES, size=n)
    last = rng.choice(LAST_NAMES, size=n)
    return pd.DataFrame(
        {
            "customer_id": ids,
            "customer_name": [f"{a} {b}" for a, b in zip(first, last)],
            "customer_segment": rng.choice(SEGMENTS, size=n, p=SEGMENT_WEIGHTS),
            "region": rng.choice(REGIONS, size=n),
            "onboarding_date": pd.to_datetime(
                _days_before(as_of, rng.integers(30, 5_476, size=n))
            ),
            "kyc_status": np.where(rng.random(n) < 0.98, "VERIFIED", "PENDING_REVIEW"),
        }
    )


def _accounts(rng: np.random.Generator, customers: pd.DataFrame) -> pd.DataFrame:
    # Three candidate slots per customer, each kept with probability 0.8.
    owners = np.repeat(customers["customer_id"].to_numpy(), 3)
    segments = np.repeat(customers["customer_segment"].to_numpy(), 3)
    keep = rng.random(owners.size) < 0.8
    owners, segments = owners[keep], segments[keep]
    count = owners.size

    lows = np.array([BALANCE_RANGES[segment][0] for segment in segments], dtype=float)
    highs = np.array([BALANCE_RANGES[segment][1] for segment in segments], dtype=float)
    balances = np.round(lows + rng.random(count) * (highs - lows), 2)

    return pd.DataFrame(
        {
            "account_id": [f"ACC-{index:08d}" for index in range(1, count + 1)],
            "customer_id": owners,
            "account_type": rng.choice(ACCOUNT_TYPES, size=count),
            "account_status": np.where(rng.random(count) < 0.05, "CLOSED", "ACTIVE"),
            "current_balance": balances,
        }
    )


def _transactions(
    rng: np.random.Generator,
    accounts: pd.DataFrame,
    as_of: date,
) -> pd.DataFrame:
    eligible = accounts[
        (accounts["account_status"] == "ACTIVE")
        & accounts["account_type"].isin(TRANSACTING_ACCOUNT_TYPES)
    ]["account_id"].to_numpy()

    sampled = rng.random((eligible.size, TRANSACTION_HISTORY_DAYS)) < TRANSACTION_SAMPLING_RATE
    account_index, day_offset = np.nonzero(sampled)
    count = account_index.size

    return pd.DataFrame(
        {
            "txn_id": [f"TXN-{index:010d}" for index in range(1, count + 1)],
            "account_id": eligible[account_index],
            "txn_date": pd.to_datetime(_days_before(as_of, day_offset)),
            "amount": np.round(rng.uniform(-500, 2_000, size=count), 2),
            "channel": rng.choice(TXN_CHANNELS, size=count),
        }
    )


def _engagement(rng: np.random.Generator, customers: pd.DataFrame, as_of: date) -> pd.DataFrame:
    n = len(customers)
    # Login tiers: 10% none, 20% low, 30% medium, 40% high.
    tier = rng.choice(4, size=n, p=(0.1, 0.2, 0.3, 0.4))
    lows = np.array((0, 1, 4, 15))[tier]
    highs = np.array((0, 3, 10, 60))[tier]
    logins = rng.integers(lows, highs + 1)

    return pd.DataFrame(
        {
            "engagement_id": [f"ENG-{index:06d}" for index in range(1, n + 1)],
            "customer_id": customers["customer_id"].to_numpy(),
            "measurement_date": pd.to_datetime([as_of] * n),
            "login_count_30d": logins,
            "mobile_app_active": rng.random(n) < 0.70,
            "online_banking_active": rng.random(n) < 0.80,
            "features_used_count": rng.integers(0, 13, size=n),
        }
    )


def _complaints(rng: np.random.Generator, customers: pd.DataFrame, as_of: date) -> pd.DataFrame:
    complainers = customers["customer_id"].to_numpy()[rng.random(len(customers)) < 0.20]
    count = complainers.size
    return pd.DataFrame(
        {
            "complaint_id": [f"COMP-{index:06d}" for index in range(1, count + 1)],
            "customer_id": complainers,
            "complaint_date": pd.to_datetime(_days_before(as_of, rng.integers(0, 731, size=count))),
            "category": rng.choice(COMPLAINT_CATEGORIES, size=count),
            "severity": rng.choice(("CRITICAL", "HIGH", "MEDIUM"), size=count, p=(0.1, 0.2, 0.7)),
            "status": np.where(rng.random(count) < 0.80, "RESOLVED", "OPEN"),
            "escalated": rng.random(count) < 0.15,
        }
    )


def generate_raw_records(n_customers: int, as_of: date, seed: int = 42) -> RawRecords:
    """
    Generate a reproducible set of raw frames anchored to ``as_of``.

    Raises:
        ValueError: If ``n_customers`` is negative.
    """
    if n_customers < 0:
        raise ValueError("n_customers must be >= 0.")

    rng = np.random.default_rng(seed)
    customers = _customers(rng, n_customers, as_of)
    accounts = _accounts(rng, customers)
    return RawRecords(
        customers=customers,
        accounts=accounts,
        transactions=_transactions(rng, accounts, as_of),
        digital_engagement=_engagement(rng, customers, as_of),
        complaints=_complaints(rng, customers, as_of),
    )
