"""create churn_risk_assessments table

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "churn_risk_assessments",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("run_id", postgresql.UUID(as_uuid=True), nullable=False, comment="Scoring run that produced the row"),
        sa.Column("customer_id", sa.String(length=50), nullable=False),
        sa.Column("customer_segment", sa.String(length=50), nullable=True),
        sa.Column("as_of_date", sa.Date(), nullable=False, comment="Reference date of the aggregates"),
        sa.Column("calculated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("model_version", sa.String(length=32), nullable=False),
        sa.Column("churn_risk_score", sa.Integer(), nullable=False),
        sa.Column("risk_tier", sa.String(length=16), nullable=False),
        sa.Column("declining_balance_flag", sa.Boolean(), nullable=False),
        sa.Column("reduced_activity_flag", sa.Boolean(), nullable=False),
        sa.Column("low_engagement_flag", sa.Boolean(), nullable=False),
        sa.Column("complaint_flag", sa.Boolean(), nullable=False),
        sa.Column("dormancy_flag", sa.Boolean(), nullable=False),
        sa.Column("primary_risk_driver", sa.String(length=32), nullable=False),
        sa.Column("recommended_intervention", sa.String(length=32), nullable=False),
        sa.Column("intervention_priority", sa.Integer(), nullable=False),
        sa.Column("risk_drivers", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "customer_id",
            "as_of_date",
            "model_version",
            name="uq_cra_customer_asof_version",
        ),
        sa.CheckConstraint(
            "churn_risk_score >= 0 AND churn_risk_score <= 100",
            name="ck_cra_score_range",
        ),
        sa.CheckConstraint(
            "intervention_priority >= 1 AND intervention_priority <= 4",
            name="ck_cra_priority_range",
        ),
    )
    op.create_index("ix_churn_risk_assessments_run_id", "churn_risk_assessments", ["run_id"], unique=False)
    op.create_index("ix_churn_risk_assessments_customer_id", "churn_risk_assessments", ["customer_id"], unique=False)
    op.create_index("ix_churn_risk_assessments_as_of_date", "churn_risk_assessments", ["as_of_date"], unique=False)
    op.create_index("ix_churn_risk_assessments_risk_tier", "churn_risk_assessments", ["risk_tier"], unique=False)
    op.create_index("ix_cra_customer_asof", "churn_risk_assessments", ["customer_id", "as_of_date"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_cra_customer_asof", table_name="churn_risk_assessments")
    op.drop_index("ix_churn_risk_assessments_risk_tier", table_name="churn_risk_assessments")
    op.drop_index("ix_churn_risk_assessments_as_of_date", table_name="churn_risk_assessments")
    op.drop_index("ix_churn_risk_assessments_customer_id", table_name="churn_risk_assessments")
    op.drop_index("ix_churn_risk_assessments_run_id", table_name="churn_risk_assessments")
    op.drop_table("churn_risk_assessments")
