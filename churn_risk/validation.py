"""
churn_risk/validation.py

Input-domain validation for the scoring engine.

Out-of-domain values are rejected rather than coerced, so upstream data
defects surface as errors instead of quietly skewing scores.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Sequence

from churn_risk.errors import ChurnRiskError
from churn_risk.types import CustomerSegment, ScoringInput


_NON_NEGATIVE_INT_FIELDS: tuple[str, ...] = (
    "tenure_months",
    "total_products_held",
    "recent_txn_count",
    "prior_txn_count",
    "days_since_last_txn",
    "login_count_30d",
    "open_complaints_count",
    "complaints_last_12m",
)

_NUMERIC_FIELDS: tuple[str, ...] = (
    "primary_account_balance",
    "total_relationship_balance",
)


@dataclass(frozen=True)
class ScoringErrorDetail:
    """
    Structured description of one invalid input field.
    """

    code: str
    message: str
    field: str
    value: Any = None


class ScoringInputError(ChurnRiskError, ValueError):
    """
    Raised when a scoring input falls outside its declared domain.
    """

    def __init__(self, *, message: str, errors: Sequence[ScoringErrorDetail]) -> None:
        super().__init__(message)
        self.message = message
        self.errors = tuple(errors)

    @property
    def fields(self) -> list[str]:
        return [error.field for error in self.errors]

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "errors": [
                {
                    "code": error.code,
                    "message": error.message,
                    "field": error.field,
                    "value": repr(error.value),
                }
                for error in self.errors
            ],
        }


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_scoring_input(data: ScoringInput) -> None:
    """
    Check every field of ``data`` and raise once with all violations.

    Raises:
        ScoringInputError: If any field is outside its declared domain.
    """

    errors: list[ScoringErrorDetail] = []

    if not isinstance(data.customer_segment, CustomerSegment):
        errors.append(
            ScoringErrorDetail(
                code="invalid_segment",
                message=(
                    "customer_segment must be one of "
                    f"{[segment.value for segment in CustomerSegment]}."
                ),
                field="customer_segment",
                value=data.customer_segment,
            )
        )

    for name in _NON_NEGATIVE_INT_FIELDS:
        value = getattr(data, name)
        if not _is_int(value):
            errors.append(
                ScoringErrorDetail(
                    code="not_an_integer",
                    message=f"{name} must be an integer.",
                    field=name,
                    value=value,
                )
            )
        elif value < 0:
            errors.append(
                ScoringErrorDetail(
                    code="negative_value",
                    message=f"{name} must be >= 0.",
                    field=name,
                    value=value,
                )
            )

    for name in _NUMERIC_FIELDS:
        value = getattr(data, name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            errors.append(
                ScoringErrorDetail(
                    code="not_a_number",
                    message=f"{name} must be a number.",
                    field=name,
                    value=value,
                )
            )
        elif not math.isfinite(value):
            errors.append(
                ScoringErrorDetail(
                    code="not_finite",
                    message=f"{name} must be finite.",
                    field=name,
                    value=value,
                )
            )

    if not isinstance(data.mobile_app_active, bool):
        errors.append(
            ScoringErrorDetail(
                code="not_a_boolean",
                message="mobile_app_active must be a boolean.",
                field="mobile_app_active",
                value=data.mobile_app_active,
            )
        )

    score = data.digital_engagement_score
    if not _is_int(score):
        errors.append(
            ScoringErrorDetail(
                code="not_an_integer",
                message="digital_engagement_score must be an integer.",
                field="digital_engagement_score",
                value=score,
            )
        )
    elif not 0 <= score <= 100:
        errors.append(
            ScoringErrorDetail(
                code="out_of_range",
                message="digital_engagement_score must be within [0, 100].",
                field="digital_engagement_score",
                value=score,
            )
        )

    if errors:
        raise ScoringInputError(
            message=f"Invalid scoring input: {len(errors)} field(s) out of domain.",
            errors=errors,
        )
