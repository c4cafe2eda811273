"""
db/models/churn_risk_assessment.py

Persisted output of the churn risk scoring engine.
One row per customer per as-of date per model version.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class ChurnRiskAssessmentRecord(Base):
    """
    Append-only history of churn risk assessments.

    Rows are never updated: a new scoring run inserts new rows tied to its
    ``as_of_date``. The "current" assessment for a customer is the row with
    the latest ``as_of_date`` (then ``calculated_at``), resolved at query
    time by the repository.

    ``risk_drivers`` holds the per-driver explainability payload, e.g.::

        {
            "dormancy":  {"flag": true, "days_inactive": 72},
            "complaints": {"flag": false, "open_count": 0, "total_12m": 1}
        }
    """

    __tablename__ = "churn_risk_assessments"

    __table_args__ = (
        UniqueConstraint(
            "customer_id",
            "as_of_date",
            "model_version",
            name="uq_cra_customer_asof_version",
        ),
        CheckConstraint(
            "churn_risk_score >= 0 AND churn_risk_score <= 100",
            name="ck_cra_score_range",
        ),
        CheckConstraint(
            "intervention_priority >= 1 AND intervention_priority <= 4",
            name="ck_cra_priority_range",
        ),
        Index("ix_cra_customer_asof", "customer_id", "as_of_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    run_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        index=True,
        comment="Scoring run that produced the row",
    )
    customer_id: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
    )
    customer_segment: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    as_of_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
        comment="Reference date of the aggregates",
    )
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    model_version: Mapped[str] = mapped_column(String(32), nullable=False)
    churn_risk_score: Mapped[int] = mapped_column(Integer, nullable=False)
    risk_tier: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    declining_balance_flag: Mapped[bool] = mapped_column(Boolean, nullable=False)
    reduced_activity_flag: Mapped[bool] = mapped_column(Boolean, nullable=False)
    low_engagement_flag: Mapped[bool] = mapped_column(Boolean, nullable=False)
    complaint_flag: Mapped[bool] = mapped_column(Boolean, nullable=False)
    dormancy_flag: Mapped[bool] = mapped_column(Boolean, nullable=False)
    primary_risk_driver: Mapped[str] = mapped_column(String(32), nullable=False)
    recommended_intervention: Mapped[str] = mapped_column(String(32), nullable=False)
    intervention_priority: Mapped[int] = mapped_column(Integer, nullable=False)
    risk_drivers: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "customer_segment": self.customer_segment,
            "churn_risk_score": self.churn_risk_score,
            "risk_tier": self.risk_tier,
            "declining_balance_flag": self.declining_balance_flag,
            "reduced_activity_flag": self.reduced_activity_flag,
            "low_engagement_flag": self.low_engagement_flag,
            "complaint_flag": self.complaint_flag,
            "dormancy_flag": self.dormancy_flag,
            "primary_risk_driver": self.primary_risk_driver,
            "recommended_intervention": self.recommended_intervention,
            "intervention_priority": self.intervention_priority,
            "risk_drivers": self.risk_drivers or {},
            "as_of_date": self.as_of_date.isoformat() if self.as_of_date else None,
            "calculated_at": (
                self.calculated_at.isoformat() if self.calculated_at else None
            ),
            "model_version": self.model_version,
        }
