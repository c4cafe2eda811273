"""
tests/test_scheduler.py

Daily scoring job and scheduler wiring, with the database patched out.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from unittest.mock import MagicMock

import pytest

from app.config import SchedulerSettings
from app.scheduler import jobs
from churn_risk.aggregation import RawRecords
from churn_risk.errors import RawDataError


@pytest.fixture()
def session(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    db = MagicMock()

    @contextmanager
    def _scope():
        yield db

    monkeypatch.setattr(jobs, "session_scope", _scope)
    monkeypatch.setattr(jobs, "get_engine", lambda: MagicMock())
    return db


def _source_returning(monkeypatch: pytest.MonkeyPatch, raw: RawRecords | Exception) -> MagicMock:
    source_cls = MagicMock()
    if isinstance(raw, Exception):
        source_cls.return_value.load.side_effect = raw
    else:
        source_cls.return_value.load.return_value = raw
    monkeypatch.setattr(jobs, "SQLRawDataSource", source_cls)
    return source_cls


class TestDailyJob:
    def test_scores_and_persists(
        self, monkeypatch: pytest.MonkeyPatch, session: MagicMock, raw_records: RawRecords
    ) -> None:
        source_cls = _source_returning(monkeypatch, raw_records)

        result = jobs.run_daily_churn_scoring(date(2024, 6, 30))

        assert result is not None
        assert [a.customer_id for a in result.assessments] == ["C1", "C4"]
        assert source_cls.call_args.kwargs["schema"] == "raw"
        session.add_all.assert_called_once()

    def test_quality_checks_use_production_row_minimum(
        self,
        monkeypatch: pytest.MonkeyPatch,
        session: MagicMock,
        raw_records: RawRecords,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        _source_returning(monkeypatch, raw_records)
        monkeypatch.setattr(jobs, "get_scheduler_settings", lambda: SchedulerSettings())
        checks = MagicMock(wraps=jobs.run_quality_checks)
        monkeypatch.setattr(jobs, "run_quality_checks", checks)

        jobs.run_daily_churn_scoring(date(2024, 6, 30))

        assert checks.call_args.kwargs["min_row_count"] == 500
        assert "Quality check row_count failed: value=2 expected >= 500" in caplog.text

    def test_failure_is_logged_not_raised(
        self,
        monkeypatch: pytest.MonkeyPatch,
        session: MagicMock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        _source_returning(monkeypatch, RawDataError("Missing raw tables"))

        assert jobs.run_daily_churn_scoring(date(2024, 6, 30)) is None
        assert "daily_churn_scoring failed" in caplog.text
        session.add_all.assert_not_called()


class TestBuildScheduler:
    def test_registers_daily_job(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            jobs,
            "get_scheduler_settings",
            lambda: SchedulerSettings(enabled=True, hour_utc=4, minute_utc=30),
        )
        scheduler = jobs.build_scheduler()

        [job] = scheduler.get_jobs()
        assert job.id == jobs.DAILY_CHURN_SCORING_JOB_ID
        fields = {field.name: str(field) for field in job.trigger.fields}
        assert fields["hour"] == "4"
        assert fields["minute"] == "30"

    def test_disabled_scheduler_has_no_jobs(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            jobs, "get_scheduler_settings", lambda: SchedulerSettings(enabled=False)
        )
        assert jobs.build_scheduler().get_jobs() == []
