"""
churn_risk/aggregation.py

Aggregation step: reduces raw banking records to per-customer aggregates.

Raw inputs are five pandas DataFrames carrying the columns of the raw
source tables (customers, accounts, transactions, digital_engagement,
complaints). Every window is anchored to an explicit ``as_of`` date; the
wall clock is never consulted, so the step is idempotent and re-runnable.

Windows
-------
transactions  [as_of - 6 months, as_of]; the last 3 months are "recent",
              the 3 months before that are "prior".
complaints    [as_of - 12 months, as_of]
engagement    latest snapshot per customer with measurement_date <= as_of;
              ties on measurement_date go to the highest engagement_id,
              compared numerically when the ids are numeric.

Customers absent from a source receive that aggregate's defaults (zero
counts and balances, false flags, 999 days since last transaction).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Final, Iterable

import pandas as pd

from churn_risk.errors import RawDataError
from churn_risk.thresholds import CANONICAL, ScoringThresholds
from churn_risk.types import (
    NO_TRANSACTION_SENTINEL_DAYS,
    AccountAggregate,
    BalanceTrend,
    ComplaintAggregate,
    CustomerAggregates,
    CustomerProfile,
    CustomerSegment,
    EngagementAggregate,
    TransactionAggregate,
    TransactionTrend,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Source contracts
# ---------------------------------------------------------------------------

REQUIRED_COLUMNS: Final[dict[str, tuple[str, ...]]] = {
    "customers": (
        "customer_id",
        "customer_name",
        "customer_segment",
        "region",
        "onboarding_date",
        "kyc_status",
    ),
    "accounts": (
        "account_id",
        "customer_id",
        "account_type",
        "account_status",
        "current_balance",
    ),
    "transactions": ("txn_id", "account_id", "txn_date", "amount"),
    "digital_engagement": (
        "engagement_id",
        "customer_id",
        "measurement_date",
        "login_count_30d",
        "mobile_app_active",
        "online_banking_active",
        "features_used_count",
    ),
    "complaints": ("complaint_id", "customer_id", "complaint_date", "status"),
}

KYC_VERIFIED: Final[str] = "VERIFIED"
ACCOUNT_ACTIVE: Final[str] = "ACTIVE"
PRIMARY_ACCOUNT_TYPE: Final[str] = "CURRENT_ACCOUNT"
COMPLAINT_OPEN: Final[str] = "OPEN"
SEVERE_COMPLAINT_LEVELS: Final[frozenset[str]] = frozenset({"HIGH", "CRITICAL"})

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y"})


@dataclass(frozen=True)
class RawRecords:
    """
    The five raw record streams for one scoring run.
    """

    customers: pd.DataFrame
    accounts: pd.DataFrame
    transactions: pd.DataFrame
    digital_engagement: pd.DataFrame
    complaints: pd.DataFrame

    def validate(self) -> None:
        """Raise RawDataError listing every missing required column."""
        problems: list[str] = []
        for name, columns in REQUIRED_COLUMNS.items():
            frame = getattr(self, name)
            missing = [column for column in columns if column not in frame.columns]
            if missing:
                problems.append(f"{name}: {missing}")
        if problems:
            raise RawDataError("Raw records are missing columns: " + "; ".join(problems))


def empty_raw_records() -> RawRecords:
    """Return a RawRecords with every frame empty but correctly shaped."""
    return RawRecords(
        **{name: pd.DataFrame(columns=list(columns)) for name, columns in REQUIRED_COLUMNS.items()}
    )


# ---------------------------------------------------------------------------
# Column helpers
# ---------------------------------------------------------------------------


def _dates(series: pd.Series) -> pd.Series:
    return pd.to_datetime(series, errors="coerce").dt.normalize()


def _bools(series: pd.Series) -> pd.Series:
    if series.dtype == bool:
        return series
    return series.map(
        lambda value: False
        if value is None or (isinstance(value, float) and pd.isna(value))
        else (str(value).strip().lower() in _TRUTHY)
    ).astype(bool)


def _numbers(series: pd.Series) -> pd.Series:
    return pd.to_numeric(series, errors="coerce").fillna(0)


def _upper(series: pd.Series) -> pd.Series:
    return series.fillna("").astype(str).str.strip().str.upper()


def months_between(start: date, end: date) -> int:
    """Calendar-month boundaries crossed between two dates."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def _parse_segment(raw: object) -> CustomerSegment:
    try:
        return CustomerSegment(str(raw).strip().upper())
    except ValueError:
        # Left unparsed so the engine's input validation reports it per record.
        return raw  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------


class CustomerAggregator:
    """
    Builds one CustomerAggregates per KYC-verified customer.

    Stateless apart from its thresholds; calling ``aggregate`` twice with
    the same frames and as-of date yields equal results.
    """

    def __init__(self, thresholds: ScoringThresholds = CANONICAL) -> None:
        self._thresholds = thresholds

    def aggregate(self, raw: RawRecords, as_of: date) -> list[CustomerAggregates]:
        """
        Reduce raw records to aggregates anchored at ``as_of``.

        Args:
            raw: The five raw record frames.
            as_of: Reference date for every trailing window.

        Returns:
            Aggregates sorted by customer_id, one per scored customer.

        Raises:
            RawDataError: If a frame lacks a required column.
        """
        raw.validate()
        anchor = pd.Timestamp(as_of).normalize()

        profiles = self._profiles(raw.customers, anchor)
        accounts = self.account_metrics(raw.accounts)
        transactions = self.transaction_metrics(raw.accounts, raw.transactions, anchor)
        engagement = self.engagement_metrics(raw.digital_engagement, anchor)
        complaints = self.complaint_metrics(raw.complaints, anchor)

        results: list[CustomerAggregates] = []
        for profile in profiles:
            account = accounts.get(profile.customer_id, AccountAggregate.empty())
            activity = transactions.get(profile.customer_id, TransactionAggregate.empty())
            results.append(
                CustomerAggregates(
                    profile=profile,
                    accounts=account,
                    transactions=activity,
                    engagement=engagement.get(
                        profile.customer_id, EngagementAggregate.empty()
                    ),
                    complaints=complaints.get(
                        profile.customer_id, ComplaintAggregate.empty()
                    ),
                    balance_trend=self._balance_trend(account),
                    transaction_trend=self._transaction_trend(activity),
                )
            )

        logger.debug(
            "aggregate as_of=%s customers=%d with_accounts=%d with_transactions=%d",
            as_of,
            len(results),
            sum(1 for r in results if r.accounts.total_products_held > 0),
            sum(1 for r in results if r.customer_id in transactions),
        )
        return results

    # ------------------------------------------------------------------
    # Per-source metrics
    # ------------------------------------------------------------------

    def _profiles(self, customers: pd.DataFrame, anchor: pd.Timestamp) -> list[CustomerProfile]:
        frame = customers.copy()
        frame["onboarding_date"] = _dates(frame["onboarding_date"])
        verified = frame[_upper(frame["kyc_status"]) == KYC_VERIFIED]

        # Customers onboarded after the as-of date did not exist yet.
        onboarded = verified[verified["onboarding_date"].notna() & (verified["onboarding_date"] <= anchor)]
        skipped = len(verified) - len(onboarded)
        if skipped:
            logger.warning("Skipping %d customer(s) without a valid onboarding date", skipped)

        onboarded = onboarded.drop_duplicates(subset="customer_id", keep="last")
        onboarded = onboarded.sort_values("customer_id", kind="mergesort")

        return [
            CustomerProfile(
                customer_id=str(row.customer_id),
                customer_name=str(row.customer_name),
                customer_segment=_parse_segment(row.customer_segment),
                region=str(row.region),
                tenure_months=months_between(row.onboarding_date.date(), anchor.date()),
            )
            for row in onboarded.itertuples(index=False)
        ]

    def account_metrics(self, accounts: pd.DataFrame) -> dict[str, AccountAggregate]:
        """Products held and balances over active accounts."""
        active = accounts[_upper(accounts["account_status"]) == ACCOUNT_ACTIVE].copy()
        if active.empty:
            return {}
        active["customer_id"] = active["customer_id"].astype(str)
        active["current_balance"] = _numbers(active["current_balance"])

        grouped = active.groupby("customer_id")
        products = grouped["account_id"].nunique()
        totals = grouped["current_balance"].sum()

        current = active[_upper(active["account_type"]) == PRIMARY_ACCOUNT_TYPE]
        primary = current.groupby("customer_id")["current_balance"].max()

        return {
            customer_id: AccountAggregate(
                total_products_held=int(products[customer_id]),
                primary_account_balance=float(primary.get(customer_id, 0.0)),
                total_relationship_balance=float(totals[customer_id]),
            )
            for customer_id in products.index
        }

    def transaction_metrics(
        self,
        accounts: pd.DataFrame,
        transactions: pd.DataFrame,
        anchor: pd.Timestamp,
    ) -> dict[str, TransactionAggregate]:
        """Recent vs prior counts, volumes and recency over active accounts."""
        t = self._thresholds
        active = accounts[_upper(accounts["account_status"]) == ACCOUNT_ACTIVE][
            ["account_id", "customer_id"]
        ].astype(str)
        if active.empty or transactions.empty:
            return {}

        txns = transactions.copy()
        txns["account_id"] = txns["account_id"].astype(str)
        txns["txn_date"] = _dates(txns["txn_date"])
        txns["amount"] = _numbers(txns["amount"]).abs()

        window_start = anchor - pd.DateOffset(months=t.transaction_lookback_months)
        recent_start = anchor - pd.DateOffset(months=t.recent_window_months)
        txns = txns[(txns["txn_date"] >= window_start) & (txns["txn_date"] <= anchor)]

        joined = txns.merge(active, on="account_id", how="inner")
        if joined.empty:
            return {}

        joined["is_recent"] = joined["txn_date"] >= recent_start
        joined["recent_amount"] = joined["amount"].where(joined["is_recent"], 0.0)
        joined["prior_amount"] = joined["amount"].where(~joined["is_recent"], 0.0)
        if "channel" not in joined.columns:
            joined["channel"] = pd.NA

        grouped = joined.groupby("customer_id").agg(
            recent_count=("is_recent", "sum"),
            total_count=("txn_id", "count"),
            recent_volume=("recent_amount", "sum"),
            prior_volume=("prior_amount", "sum"),
            last_txn_date=("txn_date", "max"),
            channels_used=("channel", "nunique"),
        )

        metrics: dict[str, TransactionAggregate] = {}
        for customer_id, row in grouped.iterrows():
            recent = int(row["recent_count"])
            metrics[str(customer_id)] = TransactionAggregate(
                recent_count=recent,
                prior_count=int(row["total_count"]) - recent,
                days_since_last_transaction=(
                    int((anchor - row["last_txn_date"]).days)
                    if pd.notna(row["last_txn_date"])
                    else NO_TRANSACTION_SENTINEL_DAYS
                ),
                recent_volume=float(row["recent_volume"]),
                prior_volume=float(row["prior_volume"]),
                channels_used=int(row["channels_used"]),
            )
        return metrics

    def engagement_metrics(
        self,
        engagement: pd.DataFrame,
        anchor: pd.Timestamp,
    ) -> dict[str, EngagementAggregate]:
        """Latest snapshot per customer plus the composite engagement score."""
        if engagement.empty:
            return {}

        frame = engagement.copy()
        frame["customer_id"] = frame["customer_id"].astype(str)
        frame["measurement_date"] = _dates(frame["measurement_date"])
        frame = frame[frame["measurement_date"] <= anchor]
        if frame.empty:
            return {}

        # Numeric ids ("9" < "10") order by value; others fall back to text.
        frame["_id_order"] = pd.to_numeric(frame["engagement_id"], errors="coerce")
        latest = frame.sort_values(
            ["customer_id", "measurement_date", "_id_order", "engagement_id"],
            kind="mergesort",
            na_position="first",
        ).drop_duplicates(subset="customer_id", keep="last")

        logins = _numbers(latest["login_count_30d"]).astype(int)
        features = _numbers(latest["features_used_count"]).astype(int)
        mobile = _bools(latest["mobile_app_active"])
        online = _bools(latest["online_banking_active"])

        metrics: dict[str, EngagementAggregate] = {}
        for customer_id, login, feature, is_mobile, is_online in zip(
            latest["customer_id"], logins, features, mobile, online
        ):
            metrics[customer_id] = EngagementAggregate(
                login_count_30d=int(login),
                mobile_app_active=bool(is_mobile),
                online_banking_active=bool(is_online),
                features_used_count=int(feature),
                digital_engagement_score=self.engagement_score(
                    int(login), bool(is_mobile), bool(is_online), int(feature)
                ),
            )
        return metrics

    def engagement_score(
        self,
        login_count_30d: int,
        mobile_app_active: bool,
        online_banking_active: bool,
        features_used_count: int,
    ) -> int:
        """Weighted sum of engagement signals, capped at the score ceiling."""
        t = self._thresholds
        total = (
            login_count_30d * t.engagement_login_weight
            + (t.engagement_mobile_points if mobile_app_active else 0)
            + (t.engagement_online_points if online_banking_active else 0)
            + features_used_count * t.engagement_feature_weight
        )
        return min(t.engagement_score_cap, total)

    def complaint_metrics(
        self,
        complaints: pd.DataFrame,
        anchor: pd.Timestamp,
    ) -> dict[str, ComplaintAggregate]:
        """Complaint counts over the trailing complaint window."""
        if complaints.empty:
            return {}

        frame = complaints.copy()
        frame["customer_id"] = frame["customer_id"].astype(str)
        frame["complaint_date"] = _dates(frame["complaint_date"])
        window_start = anchor - pd.DateOffset(months=self._thresholds.complaint_lookback_months)
        frame = frame[(frame["complaint_date"] >= window_start) & (frame["complaint_date"] <= anchor)]
        if frame.empty:
            return {}

        frame["is_open"] = _upper(frame["status"]) == COMPLAINT_OPEN
        frame["is_severe"] = (
            _upper(frame["severity"]).isin(SEVERE_COMPLAINT_LEVELS)
            if "severity" in frame.columns
            else False
        )
        frame["is_escalated"] = (
            _bools(frame["escalated"]) if "escalated" in frame.columns else False
        )
        frame = frame.astype({"is_open": bool, "is_severe": bool, "is_escalated": bool})

        grouped = frame.groupby("customer_id").agg(
            complaints_last_12m=("complaint_id", "count"),
            open_complaints_count=("is_open", "sum"),
            severe_complaints_count=("is_severe", "sum"),
            escalated_complaints_count=("is_escalated", "sum"),
        )
        return {
            str(customer_id): ComplaintAggregate(
                open_complaints_count=int(row["open_complaints_count"]),
                complaints_last_12m=int(row["complaints_last_12m"]),
                severe_complaints_count=int(row["severe_complaints_count"]),
                escalated_complaints_count=int(row["escalated_complaints_count"]),
            )
            for customer_id, row in grouped.iterrows()
        }

    def _transaction_trend(self, transactions: TransactionAggregate) -> TransactionTrend:
        t = self._thresholds
        return transactions.classify_trend(
            increasing_ratio=t.trend_increasing_ratio,
            stable_ratio=t.trend_stable_ratio,
            declining_ratio=t.trend_declining_ratio,
        )

    def _balance_trend(self, account: AccountAggregate) -> BalanceTrend:
        if account.total_relationship_balance > self._thresholds.balance_trend_floor:
            return BalanceTrend.STABLE
        return BalanceTrend.DECLINING


def aggregate_customers(
    raw: RawRecords,
    as_of: date,
    thresholds: ScoringThresholds = CANONICAL,
) -> list[CustomerAggregates]:
    """Module-level shortcut for ``CustomerAggregator(thresholds).aggregate``."""
    return CustomerAggregator(thresholds).aggregate(raw, as_of)


def aggregates_to_frame(aggregates: Iterable[CustomerAggregates]) -> pd.DataFrame:
    """Flatten aggregates into one row per customer for display or export."""
    rows = []
    for item in aggregates:
        segment = item.profile.customer_segment
        rows.append(
            {
                "customer_id": item.customer_id,
                "customer_name": item.profile.customer_name,
                "customer_segment": getattr(segment, "value", segment),
                "region": item.profile.region,
                "relationship_tenure_months": item.profile.tenure_months,
                "total_products_held": item.accounts.total_products_held,
                "primary_account_balance": item.accounts.primary_account_balance,
                "total_relationship_balance": item.accounts.total_relationship_balance,
                "avg_monthly_transactions_3m": item.transactions.avg_monthly_transactions,
                "transaction_trend": item.transaction_trend.value,
                "balance_trend": item.balance_trend.value,
                "days_since_last_transaction": item.transactions.days_since_last_transaction,
                "mobile_app_active": item.engagement.mobile_app_active,
                "login_count_30d": item.engagement.login_count_30d,
                "digital_engagement_score": item.engagement.digital_engagement_score,
                "open_complaints_count": item.complaints.open_complaints_count,
                "complaints_last_12m": item.complaints.complaints_last_12m,
                "has_unresolved_complaint": item.complaints.has_unresolved_complaint,
            }
        )
    return pd.DataFrame(rows)
