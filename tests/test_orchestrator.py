"""
tests/test_orchestrator.py

Pytest unit tests for ChurnScoringOrchestrator.

The SQLAlchemy session is a MagicMock; no database is touched.

Coverage
--------
- Run metadata (run_id, shared timestamp, model version)
- Customer order with one and many workers
- Skip and abort policies for invalid records
- Persistence through the repository without committing
- Result frames and summary
- Constructor argument checks
"""

from __future__ import annotations

import uuid
from datetime import date
from unittest.mock import MagicMock

import pytest

from churn_risk.aggregation import RawRecords, empty_raw_records
from churn_risk.errors import ScoringRunAbortedError
from churn_risk.orchestrator import ChurnScoringOrchestrator, ScoringFailure
from churn_risk.sample_data import generate_raw_records
from churn_risk.thresholds import get_preset
from churn_risk.types import RiskTier
from db.models.churn_risk_assessment import ChurnRiskAssessmentRecord


def _with_bad_segment(raw: RawRecords, customer_id: str) -> RawRecords:
    customers = raw.customers.copy()
    customers.loc[customers["customer_id"] == customer_id, "customer_segment"] = "GOLD"
    return RawRecords(
        customers=customers,
        accounts=raw.accounts,
        transactions=raw.transactions,
        digital_engagement=raw.digital_engagement,
        complaints=raw.complaints,
    )


class TestRun:
    def test_scores_every_eligible_customer(
        self, raw_records: RawRecords, as_of: date, fixed_clock
    ) -> None:
        result = ChurnScoringOrchestrator(clock=fixed_clock).run(raw_records, as_of)
        assert [a.customer_id for a in result.assessments] == ["C1", "C4"]
        assert result.scored_count == 2
        assert result.failed_count == 0

    def test_run_metadata_is_shared(
        self, raw_records: RawRecords, as_of: date, fixed_clock
    ) -> None:
        result = ChurnScoringOrchestrator(model_version="2.1.0", clock=fixed_clock).run(
            raw_records, as_of
        )
        assert isinstance(result.run_id, uuid.UUID)
        assert result.calculated_at == fixed_clock()
        assert {a.calculated_at for a in result.assessments} == {fixed_clock()}
        assert {a.as_of_date for a in result.assessments} == {as_of}
        assert {a.model_version for a in result.assessments} == {"2.1.0"}

    def test_customer_without_history_is_high_risk(
        self, raw_records: RawRecords, as_of: date, fixed_clock
    ) -> None:
        result = ChurnScoringOrchestrator(clock=fixed_clock).run(raw_records, as_of)
        c4 = result.assessments[1]
        # base 20 + declining 20 + low engagement 15 + dormancy 25 - tenure 10 - 5 segment
        assert c4.churn_risk_score == 65
        assert c4.risk_tier is RiskTier.HIGH
        assert c4.flags.dormancy is True

    def test_each_run_gets_a_new_run_id(
        self, raw_records: RawRecords, as_of: date, fixed_clock
    ) -> None:
        orchestrator = ChurnScoringOrchestrator(clock=fixed_clock)
        assert orchestrator.run(raw_records, as_of).run_id != orchestrator.run(raw_records, as_of).run_id

    def test_reruns_produce_identical_assessments(
        self, raw_records: RawRecords, as_of: date, fixed_clock
    ) -> None:
        orchestrator = ChurnScoringOrchestrator(clock=fixed_clock)
        first = orchestrator.run(raw_records, as_of)
        second = orchestrator.run(raw_records, as_of)
        assert first.assessments == second.assessments

    def test_parallel_matches_inline(self, as_of: date, fixed_clock) -> None:
        raw = generate_raw_records(60, as_of, seed=7)
        inline = ChurnScoringOrchestrator(clock=fixed_clock).run(raw, as_of)
        parallel = ChurnScoringOrchestrator(max_workers=4, clock=fixed_clock).run(raw, as_of)
        assert [a.to_dict() for a in parallel.assessments] == [
            a.to_dict() for a in inline.assessments
        ]

    def test_thresholds_are_shared_with_scoring(self, as_of: date, fixed_clock) -> None:
        raw = generate_raw_records(40, as_of, seed=3)
        canonical = ChurnScoringOrchestrator(clock=fixed_clock).run(raw, as_of)
        stricter = ChurnScoringOrchestrator(
            thresholds=get_preset("dbt_v1"), clock=fixed_clock
        ).run(raw, as_of)
        # A higher engagement cut-off can only remove a deduction.
        for before, after in zip(canonical.assessments, stricter.assessments):
            assert after.churn_risk_score >= before.churn_risk_score


class TestErrorPolicy:
    def test_skip_records_failure_and_continues(
        self, raw_records: RawRecords, as_of: date, fixed_clock
    ) -> None:
        raw = _with_bad_segment(raw_records, "C1")
        result = ChurnScoringOrchestrator(on_error="skip", clock=fixed_clock).run(raw, as_of)

        assert [a.customer_id for a in result.assessments] == ["C4"]
        assert result.failed_count == 1
        failure = result.failures[0]
        assert isinstance(failure, ScoringFailure)
        assert failure.customer_id == "C1"
        assert failure.errors[0]["field"] == "customer_segment"

    def test_skip_works_with_workers(
        self, raw_records: RawRecords, as_of: date, fixed_clock
    ) -> None:
        raw = _with_bad_segment(raw_records, "C4")
        result = ChurnScoringOrchestrator(max_workers=2, clock=fixed_clock).run(raw, as_of)
        assert [a.customer_id for a in result.assessments] == ["C1"]
        assert [f.customer_id for f in result.failures] == ["C4"]

    def test_abort_raises(self, raw_records: RawRecords, as_of: date, fixed_clock) -> None:
        raw = _with_bad_segment(raw_records, "C4")
        with pytest.raises(ScoringRunAbortedError) as info:
            ChurnScoringOrchestrator(on_error="abort", clock=fixed_clock).run(raw, as_of)
        assert info.value.customer_id == "C4"

    def test_abort_does_not_persist(
        self, raw_records: RawRecords, as_of: date, fixed_clock
    ) -> None:
        session = MagicMock()
        raw = _with_bad_segment(raw_records, "C4")
        with pytest.raises(ScoringRunAbortedError):
            ChurnScoringOrchestrator(
                session=session, on_error="abort", clock=fixed_clock
            ).run(raw, as_of)
        session.add_all.assert_not_called()

    @pytest.mark.parametrize("kwargs", [{"on_error": "retry"}, {"max_workers": 0}])
    def test_invalid_arguments(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            ChurnScoringOrchestrator(**kwargs)


class TestPersistence:
    def test_records_are_added_not_committed(
        self, raw_records: RawRecords, as_of: date, fixed_clock
    ) -> None:
        session = MagicMock()
        result = ChurnScoringOrchestrator(session=session, clock=fixed_clock).run(
            raw_records, as_of
        )

        session.add_all.assert_called_once()
        records = session.add_all.call_args.args[0]
        assert all(isinstance(r, ChurnRiskAssessmentRecord) for r in records)
        assert [r.customer_id for r in records] == ["C1", "C4"]
        assert {r.run_id for r in records} == {result.run_id}
        session.commit.assert_not_called()
        session.rollback.assert_not_called()

    def test_nothing_to_persist(self, as_of: date, fixed_clock) -> None:
        session = MagicMock()
        result = ChurnScoringOrchestrator(session=session, clock=fixed_clock).run(
            empty_raw_records(), as_of
        )
        assert result.scored_count == 0
        session.add_all.assert_not_called()


class TestResult:
    def test_to_frame(self, raw_records: RawRecords, as_of: date, fixed_clock) -> None:
        frame = ChurnScoringOrchestrator(clock=fixed_clock).run(raw_records, as_of).to_frame()
        assert list(frame["customer_id"]) == ["C1", "C4"]
        assert {"churn_risk_score", "risk_tier", "calculated_at"}.issubset(frame.columns)
        assert "total_relationship_balance" not in frame.columns

    def test_to_frame_with_aggregates(
        self, raw_records: RawRecords, as_of: date, fixed_clock
    ) -> None:
        frame = (
            ChurnScoringOrchestrator(clock=fixed_clock)
            .run(raw_records, as_of)
            .to_frame(with_aggregates=True)
        )
        assert len(frame) == 2
        assert frame.loc[0, "total_relationship_balance"] == pytest.approx(6_700.0)
        assert frame.loc[0, "customer_segment"] == "MASS_MARKET"

    def test_summary(self, raw_records: RawRecords, as_of: date, fixed_clock) -> None:
        result = ChurnScoringOrchestrator(clock=fixed_clock).run(raw_records, as_of)
        assert result.summary() == {
            "run_id": str(result.run_id),
            "as_of_date": "2024-06-30",
            "model_version": "1.0.0",
            "scored": 2,
            "failed": 0,
        }
