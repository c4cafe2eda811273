"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.churn_risk_assessment import ChurnRiskAssessmentRecord

__all__ = [
    "ChurnRiskAssessmentRecord",
]
