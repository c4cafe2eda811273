"""
churn_risk/base.py

Abstract base interface for churn risk models.
All churn model implementations must inherit from BaseChurnModel.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Optional

from churn_risk.types import RiskAssessment, ScoringInput


class BaseChurnModel(ABC):
    """Abstract base class for churn risk models.

    Defines the interface that all churn model implementations
    must follow. Implementations must be pure: the same input always
    produces an equal assessment.
    """

    model_version: str = "unversioned"

    @abstractmethod
    def assess(
        self,
        data: ScoringInput,
        *,
        customer_id: Optional[str] = None,
        as_of_date: Optional[date] = None,
        calculated_at: Optional[datetime] = None,
        model_version: Optional[str] = None,
    ) -> RiskAssessment:
        """Assess one customer's churn risk.

        Args:
            data: Aggregated behavioural signals for the customer.
            customer_id: Identifier carried into the assessment.
            as_of_date: Reference date of the aggregates.
            calculated_at: Run timestamp supplied by the caller.
            model_version: Opaque version tag carried through.

        Returns:
            An immutable RiskAssessment.

        Raises:
            NotImplementedError: If the subclass does not implement
                                 this method.
            ScoringInputError: If the input is outside its declared domain
                               (implementation-specific).
        """
        raise NotImplementedError("Subclasses must implement assess()")
