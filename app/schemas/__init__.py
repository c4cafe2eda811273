"""
app/schemas package marker.
"""

from app.schemas.churn_risk import (
    AssessmentHistoryResponse,
    BatchScoreRequest,
    BatchScoreResponse,
    RiskAssessmentResponse,
    RiskSummaryResponse,
    ScoreRequest,
)

__all__ = [
    "AssessmentHistoryResponse",
    "BatchScoreRequest",
    "BatchScoreResponse",
    "RiskAssessmentResponse",
    "RiskSummaryResponse",
    "ScoreRequest",
]
