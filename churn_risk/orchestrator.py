"""
churn_risk/orchestrator.py

Orchestrates a churn scoring run by coordinating CustomerAggregator,
ChurnRiskModel and ChurnRiskRepository. Contains no scoring or
aggregation logic of its own.
"""

from __future__ import annotations

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Literal, Optional, Sequence

import pandas as pd
from sqlalchemy.orm import Session

from app.logging_utils import log_event
from churn_risk.aggregation import CustomerAggregator, RawRecords, aggregates_to_frame
from churn_risk.errors import ScoringRunAbortedError
from churn_risk.repository import ChurnRiskRepository
from churn_risk.scoring import DEFAULT_MODEL_VERSION, ChurnRiskModel
from churn_risk.thresholds import CANONICAL, ScoringThresholds
from churn_risk.types import CustomerAggregates, RiskAssessment
from churn_risk.validation import ScoringInputError

logger = logging.getLogger(__name__)

OnError = Literal["skip", "abort"]
_ON_ERROR_POLICIES: frozenset[str] = frozenset({"skip", "abort"})


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoringFailure:
    """One customer that could not be scored under the skip policy."""

    customer_id: str | None
    message: str
    errors: tuple[dict, ...] = ()


@dataclass(frozen=True)
class ScoringRunResult:
    """
    Outcome of one scoring run.

    ``assessments`` follow customer_id order regardless of how many
    workers scored them.
    """

    run_id: uuid.UUID
    as_of_date: date
    model_version: str
    calculated_at: datetime
    assessments: tuple[RiskAssessment, ...]
    failures: tuple[ScoringFailure, ...] = field(default_factory=tuple)
    aggregates: tuple[CustomerAggregates, ...] = field(default_factory=tuple)

    @property
    def scored_count(self) -> int:
        return len(self.assessments)

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    def to_frame(self, with_aggregates: bool = False) -> pd.DataFrame:
        """
        One row per assessment, columns as in ``RiskAssessment.to_dict``.

        With ``with_aggregates`` the aggregate columns (balances, trends,
        engagement) are joined on customer_id.
        """
        frame = pd.DataFrame([assessment.to_dict() for assessment in self.assessments])
        if not with_aggregates or frame.empty or not self.aggregates:
            return frame
        extra = aggregates_to_frame(self.aggregates).drop(columns=["customer_segment"])
        return frame.merge(extra, on="customer_id", how="left")

    def summary(self) -> dict:
        return {
            "run_id": str(self.run_id),
            "as_of_date": self.as_of_date.isoformat(),
            "model_version": self.model_version,
            "scored": self.scored_count,
            "failed": self.failed_count,
        }


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class ChurnScoringOrchestrator:
    """Coordinates aggregation, scoring and optional persistence.

    Accepts an optional SQLAlchemy Session at construction time so the
    caller retains full control over transaction lifecycle (commit /
    rollback). When no session is given the run is fully in-memory.

    Scoring is a pure per-customer map, so it can be spread over a thread
    pool; results are always returned in customer_id order.
    """

    def __init__(
        self,
        session: Optional[Session] = None,
        thresholds: ScoringThresholds = CANONICAL,
        model_version: str = DEFAULT_MODEL_VERSION,
        max_workers: int = 1,
        on_error: OnError = "skip",
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """
        Args:
            session: Active SQLAlchemy session, or None for in-memory runs.
            thresholds: Rule set shared by aggregation and scoring.
            model_version: Version tag stamped on every assessment.
            max_workers: Thread count for the scoring map; 1 runs inline.
            on_error: "skip" logs and records invalid customers,
                      "abort" stops the run on the first one.
            clock: Source of the run timestamp.

        Raises:
            ValueError: If on_error or max_workers is invalid.
        """
        if on_error not in _ON_ERROR_POLICIES:
            raise ValueError(
                f"on_error must be one of {sorted(_ON_ERROR_POLICIES)}, got {on_error!r}."
            )
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1.")

        self._session = session
        self._aggregator = CustomerAggregator(thresholds)
        self._model = ChurnRiskModel(thresholds=thresholds, model_version=model_version)
        self._repository = ChurnRiskRepository()
        self._model_version = model_version
        self._max_workers = max_workers
        self._on_error = on_error
        self._clock = clock

    def run(self, raw: RawRecords, as_of: date) -> ScoringRunResult:
        """Aggregate raw records as of ``as_of`` and score every customer.

        Raises:
            RawDataError: If the raw frames lack required columns.
            ScoringRunAbortedError: Under the abort policy, on the first
                                    invalid customer.
        """
        aggregates = self._aggregator.aggregate(raw, as_of)
        return self.score_aggregates(aggregates, as_of)

    def score_aggregates(
        self,
        aggregates: Sequence[CustomerAggregates],
        as_of: date,
    ) -> ScoringRunResult:
        """Score pre-built aggregates and persist them if a session exists."""
        run_id = uuid.uuid4()
        calculated_at = self._clock()
        ordered = sorted(aggregates, key=lambda item: item.customer_id)

        log_event(
            logger,
            logging.INFO,
            "churn_scoring_started",
            run_id=run_id,
            as_of_date=as_of,
            customers=len(ordered),
            model_version=self._model_version,
            workers=self._max_workers,
        )

        def _score(item: CustomerAggregates) -> RiskAssessment | ScoringFailure:
            try:
                return self._model.assess(
                    item.to_scoring_input(),
                    customer_id=item.customer_id,
                    as_of_date=as_of,
                    calculated_at=calculated_at,
                    model_version=self._model_version,
                )
            except ScoringInputError as exc:
                if self._on_error == "abort":
                    raise ScoringRunAbortedError(item.customer_id, exc) from exc
                log_event(
                    logger,
                    logging.WARNING,
                    "churn_scoring_record_skipped",
                    run_id=run_id,
                    customer_id=item.customer_id,
                    fields=exc.fields,
                )
                return ScoringFailure(
                    customer_id=item.customer_id,
                    message=exc.message,
                    errors=tuple(exc.to_dict()["errors"]),
                )

        if self._max_workers == 1:
            outcomes = [_score(item) for item in ordered]
        else:
            # Executor.map preserves input order; the first raised error propagates.
            with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
                outcomes = list(executor.map(_score, ordered))

        assessments = tuple(o for o in outcomes if isinstance(o, RiskAssessment))
        failures = tuple(o for o in outcomes if isinstance(o, ScoringFailure))

        self._persist(assessments, run_id)

        result = ScoringRunResult(
            run_id=run_id,
            as_of_date=as_of,
            model_version=self._model_version,
            calculated_at=calculated_at,
            assessments=assessments,
            failures=failures,
            aggregates=tuple(ordered),
        )
        log_event(logger, logging.INFO, "churn_scoring_completed", **result.summary())
        return result

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _persist(self, assessments: Sequence[RiskAssessment], run_id: uuid.UUID) -> None:
        """Hand assessments to the repository when a session exists.

        The caller is responsible for committing or rolling back.
        """
        if self._session is None or not assessments:
            return
        self._repository.save_assessments(
            session=self._session,
            assessments=assessments,
            run_id=run_id,
        )
        logger.debug("Queued %d assessment(s) for run_id=%s", len(assessments), run_id)
