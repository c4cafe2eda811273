"""
Run churn risk scoring from CLI.
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import date, datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from app.config import get_scoring_settings
from app.logging_utils import configure_logging
from churn_risk.errors import ChurnRiskError
from churn_risk.orchestrator import ChurnScoringOrchestrator
from churn_risk.quality import (
    DEFAULT_MIN_ROW_COUNT,
    PRODUCTION_MIN_ROW_COUNT,
    run_quality_checks,
)
from churn_risk.reporting import risk_distribution_summary
from churn_risk.sample_data import generate_raw_records
from churn_risk.sources import CSVRawDataSource
from churn_risk.thresholds import THRESHOLD_PRESETS, get_preset, load_thresholds


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid date {value!r}; expected YYYY-MM-DD.") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Score retail customers for churn risk.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--input-dir",
        dest="input_dir",
        default=None,
        help="Directory holding customers.csv, accounts.csv, transactions.csv, "
        "digital_engagement.csv and complaints.csv.",
    )
    source.add_argument(
        "--sample-customers",
        dest="sample_customers",
        type=int,
        default=None,
        help="Generate synthetic raw data for N customers instead of reading files.",
    )
    parser.add_argument("--seed", type=int, default=42, help="Seed for generated sample data.")
    parser.add_argument(
        "--as-of",
        dest="as_of",
        type=_parse_date,
        default=None,
        help="Reference date (YYYY-MM-DD). Defaults to today, UTC.",
    )
    parser.add_argument("--output", default=None, help="Write assessments to this CSV path.")
    parser.add_argument(
        "--persist",
        action="store_true",
        help="Append assessments to the churn_risk_assessments table.",
    )
    rules = parser.add_mutually_exclusive_group()
    rules.add_argument(
        "--preset",
        choices=sorted(THRESHOLD_PRESETS),
        default=None,
        help="Named threshold preset. Defaults to CHURN_THRESHOLD_PRESET.",
    )
    rules.add_argument("--rules", default=None, help="JSON rules file overriding thresholds.")
    parser.add_argument("--workers", type=int, default=None, help="Parallel scoring workers.")
    parser.add_argument(
        "--on-error",
        dest="on_error",
        choices=("skip", "abort"),
        default=None,
        help="Skip or abort on invalid customer records.",
    )
    parser.add_argument(
        "--min-rows",
        dest="min_rows",
        type=int,
        default=DEFAULT_MIN_ROW_COUNT,
        help="Smallest batch the row_count quality check accepts. "
        f"Scheduled production runs use {PRODUCTION_MIN_ROW_COUNT}.",
    )
    parser.add_argument("--log-level", dest="log_level", default=None)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    settings = get_scoring_settings()

    as_of = args.as_of or datetime.now(tz=timezone.utc).date()
    try:
        if args.rules:
            thresholds = load_thresholds(args.rules)
        else:
            thresholds = get_preset(args.preset or settings.threshold_preset)

        if args.input_dir:
            raw = CSVRawDataSource(args.input_dir).load()
        else:
            raw = generate_raw_records(args.sample_customers, as_of, seed=args.seed)

        options = {
            "thresholds": thresholds,
            "model_version": settings.model_version,
            "max_workers": args.workers or settings.max_workers,
            "on_error": args.on_error or settings.on_error,
        }
        if args.persist:
            from db.session import session_scope  # noqa: PLC0415

            with session_scope() as db:
                result = ChurnScoringOrchestrator(session=db, **options).run(raw, as_of)
        else:
            result = ChurnScoringOrchestrator(**options).run(raw, as_of)
    except (ChurnRiskError, ValueError, SQLAlchemyError, RuntimeError) as exc:
        print(f"Scoring failed: {exc}", file=sys.stderr)
        return 2

    frame = result.to_frame(with_aggregates=True)
    if args.output:
        frame.to_csv(args.output, index=False)

    report = run_quality_checks(
        frame,
        thresholds=thresholds,
        min_row_count=args.min_rows,
        now=datetime.now(tz=timezone.utc),
    )

    print(json.dumps(result.summary(), indent=2))
    print()
    print(risk_distribution_summary(frame).to_string(index=False))
    print()
    print(report.to_frame().to_string(index=False))
    print(f"\nOverall health: {report.overall_health}")
    return 0 if report.passed else 1


if __name__ == "__main__":
    raise SystemExit(main())
