"""
app/api/routers/churn_risk_router.py

Churn risk scoring and lookup endpoints.

Scoring endpoints are stateless: they run the engine on the submitted
aggregates and return the assessment without persisting it. Lookup
endpoints read the append-only assessment history written by scoring runs.
"""

from __future__ import annotations

import logging
from datetime import datetime

import pandas as pd
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_churn_model, get_clock
from app.schemas.churn_risk import (
    AssessmentHistoryResponse,
    BatchScoreRequest,
    BatchScoreResponse,
    RiskAssessmentResponse,
    RiskSummaryResponse,
    ScoreRequest,
    ScoringFailureResponse,
    TierSummaryRow,
)
from churn_risk.reporting import risk_distribution_summary
from churn_risk.repository import ChurnRiskRepository
from churn_risk.scoring import ChurnRiskModel
from churn_risk.validation import ScoringInputError
from db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/churn-risk", tags=["churn-risk"])

_repository = ChurnRiskRepository()


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


@router.post("/score", response_model=RiskAssessmentResponse)
def score_customer(
    body: ScoreRequest,
    model: ChurnRiskModel = Depends(get_churn_model),
    calculated_at: datetime = Depends(get_clock),
) -> RiskAssessmentResponse:
    """
    Score one customer.

    Raises HTTP 422 with structured details when a field is out of domain.
    """

    try:
        assessment = model.assess(
            body.data.to_scoring_input(),
            customer_id=body.customer_id,
            as_of_date=body.as_of_date,
            calculated_at=calculated_at,
        )
    except ScoringInputError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.to_dict(),
        ) from exc
    return RiskAssessmentResponse.from_assessment(assessment)


@router.post("/score/batch", response_model=BatchScoreResponse)
def score_batch(
    body: BatchScoreRequest,
    model: ChurnRiskModel = Depends(get_churn_model),
    calculated_at: datetime = Depends(get_clock),
) -> BatchScoreResponse:
    """
    Score many customers with one shared timestamp.

    Invalid records are reported in ``failures`` and do not fail the batch.
    """

    assessments: list[RiskAssessmentResponse] = []
    failures: list[ScoringFailureResponse] = []
    for index, record in enumerate(body.records):
        try:
            assessment = model.assess(
                record.data.to_scoring_input(),
                customer_id=record.customer_id,
                as_of_date=record.as_of_date or body.as_of_date,
                calculated_at=calculated_at,
            )
        except ScoringInputError as exc:
            failures.append(
                ScoringFailureResponse(
                    index=index,
                    customer_id=record.customer_id,
                    message=exc.message,
                    errors=exc.to_dict()["errors"],
                )
            )
            continue
        assessments.append(RiskAssessmentResponse.from_assessment(assessment))

    if failures:
        logger.warning("Batch scoring skipped %d of %d record(s)", len(failures), len(body.records))
    return BatchScoreResponse(
        scored=len(assessments),
        failed=len(failures),
        assessments=assessments,
        failures=failures,
    )


# ---------------------------------------------------------------------------
# Persisted assessments
# ---------------------------------------------------------------------------


@router.get("/customers/{customer_id}", response_model=RiskAssessmentResponse)
def get_customer_assessment(
    customer_id: str,
    model_version: str | None = Query(default=None),
    db: Session = Depends(get_db),
) -> RiskAssessmentResponse:
    """
    Return the current (latest) assessment for one customer.
    """

    record = _repository.get_latest_assessment(db, customer_id, model_version=model_version)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No churn risk assessment found for customer {customer_id!r}.",
        )
    return RiskAssessmentResponse(**record.to_dict())


@router.get("/customers/{customer_id}/history", response_model=AssessmentHistoryResponse)
def get_customer_history(
    customer_id: str,
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> AssessmentHistoryResponse:
    records = _repository.list_history(db, customer_id, limit=limit)
    if not records:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No churn risk assessment found for customer {customer_id!r}.",
        )
    return AssessmentHistoryResponse(
        customer_id=customer_id,
        assessments=[RiskAssessmentResponse(**record.to_dict()) for record in records],
    )


@router.get("/summary", response_model=RiskSummaryResponse)
def get_risk_summary(
    model_version: str | None = Query(default=None),
    db: Session = Depends(get_db),
) -> RiskSummaryResponse:
    """
    Tier distribution over each customer's current assessment.

    Balance at risk is not stored with assessments and reports as 0.
    """

    records = _repository.get_current_assessments(db, model_version=model_version)
    frame = pd.DataFrame([record.to_dict() for record in records])
    summary = risk_distribution_summary(frame)
    return RiskSummaryResponse(
        model_version=model_version,
        total_customers=len(records),
        tiers=[TierSummaryRow(**row) for row in summary.to_dict(orient="records")],
    )
