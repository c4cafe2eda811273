"""
app/api/dependencies.py

Shared FastAPI dependencies for the churn risk endpoints.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import HTTPException, status

from app.config import get_scoring_settings, get_scoring_thresholds
from churn_risk.errors import RuleConfigError
from churn_risk.scoring import ChurnRiskModel


def get_churn_model() -> ChurnRiskModel:
    """
    Build the scoring model from the configured rule set.

    A broken rules file is a server misconfiguration, reported as 500.
    """

    try:
        thresholds = get_scoring_thresholds()
    except RuleConfigError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Scoring rules are misconfigured: {exc}",
        ) from exc
    return ChurnRiskModel(
        thresholds=thresholds,
        model_version=get_scoring_settings().model_version,
    )


def get_clock() -> datetime:
    """Timestamp stamped on assessments produced by one request."""

    return datetime.now(tz=timezone.utc)
