"""
app/scheduler/jobs.py

APScheduler-based batch scheduler for the daily churn scoring run.

Schedule (UTC)
--------------
  daily_churn_scoring: CHURN_SCHEDULER_HOUR_UTC:CHURN_SCHEDULER_MINUTE_UTC
                        every day (default 05:00, ahead of the 06:00
                        refresh SLA)

Each run reads the raw tables from ``CHURN_RAW_SCHEMA``, scores every
customer as of the current UTC date, checks batch quality and commits the
new assessments in one transaction. Failures are logged and rolled back;
they never stop the scheduler.

Lifecycle
---------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; shut it down gracefully on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from app.config import get_scheduler_settings, get_scoring_settings, get_scoring_thresholds
from app.logging_utils import log_event
from churn_risk.orchestrator import ChurnScoringOrchestrator, ScoringRunResult
from churn_risk.quality import run_quality_checks
from churn_risk.sources import SQLRawDataSource
from db.session import get_engine, session_scope

logger = logging.getLogger(__name__)

DAILY_CHURN_SCORING_JOB_ID = "daily_churn_scoring"


# ---------------------------------------------------------------------------
# Job: Daily churn scoring
# ---------------------------------------------------------------------------


def run_daily_churn_scoring(as_of: Optional[date] = None) -> Optional[ScoringRunResult]:
    """
    Score every customer as of ``as_of`` (default: today, UTC) and persist.

    Returns the run result, or None when the run failed and was rolled back.
    """
    as_of = as_of or datetime.now(tz=timezone.utc).date()
    scoring = get_scoring_settings()
    scheduler_settings = get_scheduler_settings()
    logger.info("Scheduler: daily_churn_scoring starting as_of=%s", as_of)

    try:
        thresholds = get_scoring_thresholds()
        raw = SQLRawDataSource(get_engine(), schema=scheduler_settings.raw_schema).load()
        with session_scope() as db:
            result = ChurnScoringOrchestrator(
                session=db,
                thresholds=thresholds,
                model_version=scoring.model_version,
                max_workers=scoring.max_workers,
                on_error=scoring.on_error,
            ).run(raw, as_of)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Scheduler: daily_churn_scoring failed as_of=%s: %s", as_of, exc)
        return None

    report = run_quality_checks(
        result.to_frame(),
        thresholds=thresholds,
        min_row_count=scheduler_settings.quality_min_rows,
        now=datetime.now(tz=timezone.utc),
    )
    log_event(
        logger,
        logging.INFO if report.passed else logging.WARNING,
        "churn_quality_checked",
        run_id=result.run_id,
        overall_health=report.overall_health,
        failed=[check.name for check in report.failed] or None,
        warnings=[check.name for check in report.warnings] or None,
    )
    logger.info(
        "Scheduler: daily_churn_scoring complete scored=%d failed=%d",
        result.scored_count,
        result.failed_count,
    )
    return result


# ---------------------------------------------------------------------------
# Scheduler factory
# ---------------------------------------------------------------------------


def build_scheduler() -> BackgroundScheduler:
    """
    Build and register the periodic scoring job.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    The caller must call ``.start()`` and ``.shutdown(wait=True)`` at the
    appropriate lifecycle points. When CHURN_SCHEDULER_ENABLED is false the
    scheduler carries no jobs.
    """
    settings = get_scheduler_settings()
    scheduler = BackgroundScheduler(timezone="UTC")

    if not settings.enabled:
        logger.info("Scheduler: churn scoring disabled by configuration")
        return scheduler

    scheduler.add_job(
        run_daily_churn_scoring,
        trigger="cron",
        hour=settings.hour_utc,
        minute=settings.minute_utc,
        id=DAILY_CHURN_SCORING_JOB_ID,
        name="Daily churn risk scoring",
        replace_existing=True,
        misfire_grace_time=3600,
        max_instances=1,
        coalesce=True,
    )
    return scheduler
