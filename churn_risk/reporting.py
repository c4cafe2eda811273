"""
churn_risk/reporting.py

Read-only summaries over a frame of scored assessments, for dashboards,
the CLI and the API. No scoring happens here.
"""

from __future__ import annotations

import pandas as pd

from churn_risk.types import Intervention, PrimaryRiskDriver, RiskTier

TIER_ORDER: tuple[str, ...] = (
    RiskTier.CRITICAL.value,
    RiskTier.HIGH.value,
    RiskTier.MEDIUM.value,
    RiskTier.LOW.value,
)

_HIGH_RISK_TIERS = (RiskTier.HIGH.value, RiskTier.CRITICAL.value)

DISTRIBUTION_COLUMNS: tuple[str, ...] = (
    "risk_tier",
    "customer_count",
    "percentage",
    "avg_risk_score",
    "total_balance_at_risk",
    "requiring_action",
)


def _with_balance(frame: pd.DataFrame) -> pd.DataFrame:
    if "total_relationship_balance" in frame.columns:
        return frame
    return frame.assign(total_relationship_balance=0.0)


def risk_distribution_summary(frame: pd.DataFrame) -> pd.DataFrame:
    """
    One row per risk tier present in ``frame``, ordered CRITICAL to LOW.

    ``total_balance_at_risk`` sums ``total_relationship_balance`` when the
    frame carries it (see ``ScoringRunResult.to_frame(with_aggregates=True)``)
    and is 0 otherwise. ``requiring_action`` counts rows whose intervention
    is anything but NO_ACTION.
    """
    if frame.empty:
        return pd.DataFrame(columns=list(DISTRIBUTION_COLUMNS))

    data = _with_balance(frame).assign(
        _action=lambda df: df["recommended_intervention"] != Intervention.NO_ACTION.value
    )
    summary = (
        data.groupby("risk_tier", sort=False)
        .agg(
            customer_count=("customer_id", "size"),
            avg_risk_score=("churn_risk_score", "mean"),
            total_balance_at_risk=("total_relationship_balance", "sum"),
            requiring_action=("_action", "sum"),
        )
        .reset_index()
    )
    total = int(summary["customer_count"].sum())
    summary["percentage"] = (summary["customer_count"] * 100.0 / total).round(2)
    summary["avg_risk_score"] = summary["avg_risk_score"].round(1)
    summary["total_balance_at_risk"] = summary["total_balance_at_risk"].round(0)
    summary["requiring_action"] = summary["requiring_action"].astype(int)

    rank = {tier: position for position, tier in enumerate(TIER_ORDER)}
    summary = summary.sort_values(
        "risk_tier", key=lambda tiers: tiers.map(rank).fillna(len(rank))
    )
    return summary[list(DISTRIBUTION_COLUMNS)].reset_index(drop=True)


def segment_summary(frame: pd.DataFrame) -> pd.DataFrame:
    """Customer count, average score and HIGH/CRITICAL count per segment."""
    columns = ["customer_segment", "customer_count", "avg_risk_score", "high_risk_count"]
    if frame.empty:
        return pd.DataFrame(columns=columns)

    data = frame.assign(_high=frame["risk_tier"].isin(_HIGH_RISK_TIERS))
    summary = (
        data.groupby("customer_segment")
        .agg(
            customer_count=("customer_id", "size"),
            avg_risk_score=("churn_risk_score", "mean"),
            high_risk_count=("_high", "sum"),
        )
        .reset_index()
    )
    summary["avg_risk_score"] = summary["avg_risk_score"].round(1)
    summary["high_risk_count"] = summary["high_risk_count"].astype(int)
    return summary[columns]


def driver_summary(frame: pd.DataFrame) -> pd.DataFrame:
    """Customers per primary driver, NONE excluded, most common first."""
    columns = ["primary_risk_driver", "customer_count", "avg_risk_score", "high_risk_count"]
    if frame.empty:
        return pd.DataFrame(columns=columns)

    data = frame[frame["primary_risk_driver"] != PrimaryRiskDriver.NONE.value]
    if data.empty:
        return pd.DataFrame(columns=columns)
    data = data.assign(_high=data["risk_tier"].isin(_HIGH_RISK_TIERS))
    summary = (
        data.groupby("primary_risk_driver")
        .agg(
            customer_count=("customer_id", "size"),
            avg_risk_score=("churn_risk_score", "mean"),
            high_risk_count=("_high", "sum"),
        )
        .reset_index()
        .sort_values(["customer_count", "primary_risk_driver"], ascending=[False, True])
    )
    summary["avg_risk_score"] = summary["avg_risk_score"].round(1)
    summary["high_risk_count"] = summary["high_risk_count"].astype(int)
    return summary[columns].reset_index(drop=True)


def intervention_queue(frame: pd.DataFrame, limit: int | None = None) -> pd.DataFrame:
    """
    Customers needing an intervention, most urgent first.

    Ordered by intervention_priority ascending, then score descending,
    then customer_id for a stable order.
    """
    if frame.empty:
        return frame.copy()
    queue = frame[frame["recommended_intervention"] != Intervention.NO_ACTION.value]
    queue = queue.sort_values(
        ["intervention_priority", "churn_risk_score", "customer_id"],
        ascending=[True, False, True],
    ).reset_index(drop=True)
    if limit is not None:
        queue = queue.head(limit)
    return queue
