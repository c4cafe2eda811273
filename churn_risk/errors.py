"""
Exceptions raised by the churn risk pipeline.
"""

from __future__ import annotations


class ChurnRiskError(Exception):
    """Base exception for churn risk pipeline failures."""


class RawDataError(ChurnRiskError):
    """Raised when raw source records are missing or malformed."""


class RuleConfigError(ChurnRiskError):
    """Raised when a scoring rules file or preset cannot be resolved."""


class ScoringRunAbortedError(ChurnRiskError):
    """
    Raised when a batch run configured to abort hits an invalid record.
    """

    def __init__(self, customer_id: str | None, cause: Exception) -> None:
        self.customer_id = customer_id
        self.cause = cause
        super().__init__(
            f"Scoring run aborted at customer_id={customer_id!r}: {cause}"
        )
