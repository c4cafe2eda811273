"""
churn_risk/repository.py

Repository for churn risk assessment persistence.
No scoring or business logic.
"""

import uuid
from typing import Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from churn_risk.types import RiskAssessment
from db.models.churn_risk_assessment import ChurnRiskAssessmentRecord


class ChurnRiskRepository:
    """Data access layer for ChurnRiskAssessmentRecord rows.

    All methods accept an active SQLAlchemy Session and operate within
    the caller's transaction boundary. No commits or rollbacks are
    issued internally; transaction control belongs to the caller.

    History is append-only: there is no update path. Superseding an
    assessment means inserting a newer one.
    """

    def build_record(
        self,
        assessment: RiskAssessment,
        run_id: uuid.UUID,
    ) -> ChurnRiskAssessmentRecord:
        """Map an engine assessment onto a new ORM row.

        Raises:
            ValueError: If the assessment lacks customer_id, as_of_date,
                        calculated_at or model_version.
        """
        missing = [
            name
            for name in ("customer_id", "as_of_date", "calculated_at", "model_version")
            if getattr(assessment, name) is None
        ]
        if missing:
            raise ValueError(f"Assessment cannot be persisted without: {missing}")

        return ChurnRiskAssessmentRecord(
            run_id=run_id,
            customer_id=assessment.customer_id,
            customer_segment=(
                assessment.customer_segment.value
                if assessment.customer_segment is not None
                else None
            ),
            as_of_date=assessment.as_of_date,
            calculated_at=assessment.calculated_at,
            model_version=assessment.model_version,
            churn_risk_score=assessment.churn_risk_score,
            risk_tier=assessment.risk_tier.value,
            declining_balance_flag=assessment.flags.declining_balance,
            reduced_activity_flag=assessment.flags.reduced_activity,
            low_engagement_flag=assessment.flags.low_engagement,
            complaint_flag=assessment.flags.complaint,
            dormancy_flag=assessment.flags.dormancy,
            primary_risk_driver=assessment.primary_risk_driver.value,
            recommended_intervention=assessment.recommended_intervention.value,
            intervention_priority=assessment.intervention_priority,
            risk_drivers=assessment.risk_drivers,
        )

    def save_assessments(
        self,
        session: Session,
        assessments: Iterable[RiskAssessment],
        run_id: uuid.UUID,
    ) -> List[ChurnRiskAssessmentRecord]:
        """Add one new row per assessment without flushing or committing.

        Args:
            session: Active SQLAlchemy session.
            assessments: Assessments produced by a single scoring run.
            run_id: Identifier of that run.

        Returns:
            The newly created, session-tracked records.
        """
        records = [self.build_record(assessment, run_id) for assessment in assessments]
        session.add_all(records)
        return records

    def get_latest_assessment(
        self,
        session: Session,
        customer_id: str,
        model_version: Optional[str] = None,
    ) -> Optional[ChurnRiskAssessmentRecord]:
        """Return the most recent assessment for one customer, or None.

        Orders by as_of_date descending, then calculated_at descending
        as a tiebreaker when several runs share an as-of date.
        """
        stmt = select(ChurnRiskAssessmentRecord).where(
            ChurnRiskAssessmentRecord.customer_id == customer_id
        )
        if model_version is not None:
            stmt = stmt.where(ChurnRiskAssessmentRecord.model_version == model_version)
        stmt = stmt.order_by(
            ChurnRiskAssessmentRecord.as_of_date.desc(),
            ChurnRiskAssessmentRecord.calculated_at.desc(),
        ).limit(1)
        return session.scalars(stmt).first()

    def list_history(
        self,
        session: Session,
        customer_id: str,
        limit: int = 100,
    ) -> List[ChurnRiskAssessmentRecord]:
        """Return a customer's assessments, newest first."""
        stmt = (
            select(ChurnRiskAssessmentRecord)
            .where(ChurnRiskAssessmentRecord.customer_id == customer_id)
            .order_by(
                ChurnRiskAssessmentRecord.as_of_date.desc(),
                ChurnRiskAssessmentRecord.calculated_at.desc(),
            )
            .limit(limit)
        )
        return list(session.scalars(stmt).all())

    def get_current_assessments(
        self,
        session: Session,
        model_version: Optional[str] = None,
    ) -> List[ChurnRiskAssessmentRecord]:
        """Return the latest assessment per customer.

        This is the "current" view over the append-only history.
        """
        ranked = select(
            ChurnRiskAssessmentRecord.id.label("id"),
            func.row_number()
            .over(
                partition_by=ChurnRiskAssessmentRecord.customer_id,
                order_by=(
                    ChurnRiskAssessmentRecord.as_of_date.desc(),
                    ChurnRiskAssessmentRecord.calculated_at.desc(),
                ),
            )
            .label("rank"),
        )
        if model_version is not None:
            ranked = ranked.where(ChurnRiskAssessmentRecord.model_version == model_version)
        ranked_subquery = ranked.subquery()

        stmt = (
            select(ChurnRiskAssessmentRecord)
            .join(ranked_subquery, ranked_subquery.c.id == ChurnRiskAssessmentRecord.id)
            .where(ranked_subquery.c.rank == 1)
            .order_by(ChurnRiskAssessmentRecord.customer_id)
        )
        return list(session.scalars(stmt).all())
