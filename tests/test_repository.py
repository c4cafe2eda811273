"""
tests/test_repository.py

Pytest unit tests for ChurnRiskRepository.

The SQLAlchemy session is a MagicMock; statements are inspected rather
than executed.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import date, datetime, timezone
from unittest.mock import MagicMock

import pytest

from churn_risk.repository import ChurnRiskRepository
from churn_risk.types import CustomerSegment, RiskAssessment
from db.models.churn_risk_assessment import ChurnRiskAssessmentRecord

CALCULATED_AT = datetime(2024, 6, 30, 5, 0, tzinfo=timezone.utc)
RUN_ID = uuid.UUID("00000000-0000-4000-8000-000000000001")


@pytest.fixture()
def repository() -> ChurnRiskRepository:
    return ChurnRiskRepository()


@pytest.fixture()
def assessment(model, make_input) -> RiskAssessment:
    return model.assess(
        make_input(customer_segment=CustomerSegment.MASS_MARKET, days_since_last_txn=75),
        customer_id="C1",
        as_of_date=date(2024, 6, 30),
        calculated_at=CALCULATED_AT,
        model_version="1.0.0",
    )


class TestBuildRecord:
    def test_maps_every_column(self, repository, assessment: RiskAssessment) -> None:
        record = repository.build_record(assessment, RUN_ID)

        assert isinstance(record, ChurnRiskAssessmentRecord)
        assert record.run_id == RUN_ID
        assert record.customer_id == "C1"
        assert record.customer_segment == "MASS_MARKET"
        assert record.as_of_date == date(2024, 6, 30)
        assert record.calculated_at == CALCULATED_AT
        assert record.model_version == "1.0.0"
        assert record.churn_risk_score == assessment.churn_risk_score
        assert record.risk_tier == assessment.risk_tier.value
        assert record.dormancy_flag is True
        assert record.complaint_flag is False
        assert record.primary_risk_driver == "DORMANCY"
        assert record.recommended_intervention == assessment.recommended_intervention.value
        assert record.intervention_priority == assessment.intervention_priority
        assert record.risk_drivers == assessment.risk_drivers

    def test_record_dict_matches_assessment(self, repository, assessment: RiskAssessment) -> None:
        payload = repository.build_record(assessment, RUN_ID).to_dict()
        assert payload["as_of_date"] == "2024-06-30"
        assert payload["calculated_at"] == CALCULATED_AT.isoformat()
        assert payload["dormancy_flag"] is True

    def test_missing_metadata_is_rejected(self, repository, assessment: RiskAssessment) -> None:
        with pytest.raises(ValueError, match="model_version"):
            repository.build_record(replace(assessment, model_version=None), RUN_ID)

    def test_bare_assessment_is_rejected(self, repository, model, make_input) -> None:
        with pytest.raises(ValueError, match="customer_id"):
            repository.build_record(model.assess(make_input()), RUN_ID)


class TestSave:
    def test_adds_without_committing(self, repository, assessment: RiskAssessment) -> None:
        session = MagicMock()
        second = replace(assessment, customer_id="C2")

        records = repository.save_assessments(session, [assessment, second], RUN_ID)

        session.add_all.assert_called_once_with(records)
        assert [r.customer_id for r in records] == ["C1", "C2"]
        session.commit.assert_not_called()
        session.flush.assert_not_called()

    def test_each_save_creates_new_rows(self, repository, assessment: RiskAssessment) -> None:
        session = MagicMock()
        first = repository.save_assessments(session, [assessment], RUN_ID)
        second = repository.save_assessments(session, [assessment], uuid.uuid4())
        assert first[0] is not second[0]
        assert session.add_all.call_count == 2


class TestQueries:
    def test_latest_assessment(self, repository) -> None:
        session = MagicMock()
        expected = session.scalars.return_value.first.return_value

        assert repository.get_latest_assessment(session, "C1") is expected

        sql = str(session.scalars.call_args.args[0])
        assert "churn_risk_assessments.customer_id =" in sql
        assert "ORDER BY churn_risk_assessments.as_of_date DESC" in sql
        assert "LIMIT" in sql
        assert "model_version =" not in sql

    def test_latest_assessment_by_model_version(self, repository) -> None:
        session = MagicMock()
        repository.get_latest_assessment(session, "C1", model_version="2.0.0")
        sql = str(session.scalars.call_args.args[0])
        assert "churn_risk_assessments.model_version =" in sql

    def test_history_is_newest_first(self, repository) -> None:
        session = MagicMock()
        rows = [MagicMock(), MagicMock()]
        session.scalars.return_value.all.return_value = rows

        assert repository.list_history(session, "C1", limit=5) == rows
        sql = str(session.scalars.call_args.args[0])
        assert "as_of_date DESC" in sql
        assert "calculated_at DESC" in sql

    def test_current_assessments_rank_per_customer(self, repository) -> None:
        session = MagicMock()
        session.scalars.return_value.all.return_value = []

        assert repository.get_current_assessments(session, model_version="1.0.0") == []
        sql = str(session.scalars.call_args.args[0])
        assert "row_number() OVER (PARTITION BY churn_risk_assessments.customer_id" in sql
        assert "model_version =" in sql
