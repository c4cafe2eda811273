"""Streamlit front end for churn risk scoring."""

from __future__ import annotations

import hashlib
import io
import time
from datetime import date, datetime, timezone
from typing import Any, Optional

import pandas as pd
import streamlit as st

from churn_risk.errors import ChurnRiskError
from churn_risk.orchestrator import ChurnScoringOrchestrator, ScoringRunResult
from churn_risk.quality import QualityReport, run_quality_checks
from churn_risk.reporting import (
    TIER_ORDER,
    driver_summary,
    intervention_queue,
    risk_distribution_summary,
    segment_summary,
)
from churn_risk.sample_data import generate_raw_records
from churn_risk.sources import SOURCE_NAMES, raw_records_from_buffers
from churn_risk.thresholds import THRESHOLD_PRESETS, get_preset

st.set_page_config(page_title="Churn Risk", page_icon="CR", layout="wide")


@st.cache_data(show_spinner=False)
def _load_csv_preview(data: bytes, preview_rows: int) -> pd.DataFrame:
    """Load bounded CSV preview for memory-friendly display."""
    return pd.read_csv(io.BytesIO(data), nrows=preview_rows)


def run_scoring(
    *,
    source: str,
    uploads: dict[str, bytes],
    sample_customers: int,
    seed: int,
    as_of: date,
    preset: str,
    max_workers: int,
) -> dict[str, Any]:
    """Thin adapter that delegates all processing to the scoring engine."""
    thresholds = get_preset(preset)
    if source == "Upload CSVs":
        raw = raw_records_from_buffers(uploads)
    else:
        raw = generate_raw_records(sample_customers, as_of, seed=seed)

    result: ScoringRunResult = ChurnScoringOrchestrator(
        thresholds=thresholds,
        max_workers=max_workers,
    ).run(raw, as_of)
    frame = result.to_frame(with_aggregates=True)
    report: QualityReport = run_quality_checks(
        frame,
        thresholds=thresholds,
        now=datetime.now(timezone.utc),
    )
    return {"result": result, "frame": frame, "report": report}


def _build_run_signature(**inputs: Any) -> str:
    """Build deterministic signature used to skip unnecessary reruns."""
    serialized = repr(sorted(inputs.items()))
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


if "scoring_result" not in st.session_state:
    st.session_state.scoring_result = None
if "scoring_error" not in st.session_state:
    st.session_state.scoring_error = None
if "execution_time_s" not in st.session_state:
    st.session_state.execution_time_s = None
if "last_run_signature" not in st.session_state:
    st.session_state.last_run_signature = None


with st.sidebar:
    st.header("Controls")
    source = st.radio("Data source", options=["Sample data", "Upload CSVs"], horizontal=True)
    as_of = st.date_input("As-of date", value=datetime.now(timezone.utc).date())
    preset = st.selectbox("Threshold preset", options=sorted(THRESHOLD_PRESETS), index=0)
    max_workers = st.number_input("Workers", min_value=1, max_value=16, value=1, step=1)

    sample_customers = 1000
    seed = 42
    if source == "Sample data":
        sample_customers = st.number_input(
            "Customers", min_value=1, max_value=100_000, value=1000, step=100
        )
        seed = st.number_input("Seed", min_value=0, value=42, step=1)

    run_clicked = st.button("Run Scoring", type="primary", use_container_width=True)
    if st.button("Clear", use_container_width=True):
        st.session_state.scoring_result = None
        st.session_state.scoring_error = None
        st.session_state.execution_time_s = None
        st.session_state.last_run_signature = None
        st.rerun()


st.title("Customer Churn Risk")

uploads: dict[str, bytes] = {}
if source == "Upload CSVs":
    st.subheader("Raw data upload")
    columns = st.columns(len(SOURCE_NAMES))
    for column, name in zip(columns, SOURCE_NAMES):
        with column:
            uploaded = st.file_uploader(f"{name}.csv", type=["csv"], key=f"upload_{name}")
            if uploaded is not None:
                uploads[name] = uploaded.getvalue()

    if uploads:
        with st.expander("Preview uploads"):
            for name, data in uploads.items():
                st.markdown(f"**{name}**")
                try:
                    st.dataframe(_load_csv_preview(data, 10), use_container_width=True)
                except (ValueError, pd.errors.ParserError) as exc:
                    st.error(f"Could not load CSV preview: {exc}")

if run_clicked:
    missing = [name for name in SOURCE_NAMES if name not in uploads]
    if source == "Upload CSVs" and missing:
        st.session_state.scoring_result = None
        st.session_state.scoring_error = f"Upload every raw table before scoring; missing {missing}."
    else:
        upload_hash: Optional[str] = None
        if uploads:
            upload_hash = hashlib.sha256(b"".join(uploads[n] for n in SOURCE_NAMES)).hexdigest()
        run_signature = _build_run_signature(
            source=source,
            as_of=as_of.isoformat(),
            preset=preset,
            max_workers=int(max_workers),
            sample_customers=int(sample_customers),
            seed=int(seed),
            upload_hash=upload_hash or "",
        )
        if (
            st.session_state.scoring_result is None
            or st.session_state.last_run_signature != run_signature
        ):
            with st.spinner("Scoring customers..."):
                started = time.perf_counter()
                try:
                    st.session_state.scoring_result = run_scoring(
                        source=source,
                        uploads=uploads,
                        sample_customers=int(sample_customers),
                        seed=int(seed),
                        as_of=as_of,
                        preset=preset,
                        max_workers=int(max_workers),
                    )
                    st.session_state.scoring_error = None
                    st.session_state.execution_time_s = time.perf_counter() - started
                    st.session_state.last_run_signature = run_signature
                except (ChurnRiskError, ValueError) as exc:
                    st.session_state.scoring_result = None
                    st.session_state.scoring_error = f"Scoring error: {exc}"
                    st.session_state.execution_time_s = None


if st.session_state.scoring_error:
    st.error(st.session_state.scoring_error)
elif st.session_state.scoring_result is None:
    st.info("Run scoring to view results.")
else:
    payload = st.session_state.scoring_result
    result: ScoringRunResult = payload["result"]
    frame: pd.DataFrame = payload["frame"]
    report: QualityReport = payload["report"]

    st.caption(
        f"Run {result.run_id} | as of {result.as_of_date.isoformat()} | "
        f"model {result.model_version}"
    )
    if st.session_state.execution_time_s is not None:
        st.caption(f"Execution time: {st.session_state.execution_time_s:.2f}s")

    mcol1, mcol2, mcol3 = st.columns(3)
    mcol1.metric("Customers scored", result.scored_count)
    mcol2.metric("Records skipped", result.failed_count)
    mcol3.metric("Batch health", report.overall_health)

    st.subheader("Risk tier distribution")
    distribution = risk_distribution_summary(frame)
    st.dataframe(distribution, use_container_width=True, hide_index=True)
    if not distribution.empty:
        st.bar_chart(distribution.set_index("risk_tier")["customer_count"])

    scol1, scol2 = st.columns(2)
    with scol1:
        st.subheader("By segment")
        st.dataframe(segment_summary(frame), use_container_width=True, hide_index=True)
    with scol2:
        st.subheader("Primary risk drivers")
        st.dataframe(driver_summary(frame), use_container_width=True, hide_index=True)

    st.subheader("Quality checks")
    if report.failed:
        st.error(f"Failed checks: {', '.join(check.name for check in report.failed)}")
    elif report.warnings:
        st.warning(f"Warnings: {', '.join(check.name for check in report.warnings)}")
    st.dataframe(report.to_frame(), use_container_width=True, hide_index=True)

    st.subheader("Assessments")
    selected_tiers = st.multiselect("Risk tier", options=list(TIER_ORDER), default=list(TIER_ORDER))
    actionable_only = st.checkbox("Only customers needing action", value=False)
    view = intervention_queue(frame) if actionable_only else frame
    view = view[view["risk_tier"].isin(selected_tiers)] if not view.empty else view
    st.dataframe(view, use_container_width=True, hide_index=True)
    st.caption(f"Showing {len(view)} of {len(frame)} assessment(s).")

    if result.failures:
        with st.expander(f"Skipped records ({result.failed_count})"):
            st.dataframe(
                pd.DataFrame(
                    [
                        {"customer_id": failure.customer_id, "message": failure.message}
                        for failure in result.failures
                    ]
                ),
                use_container_width=True,
                hide_index=True,
            )

    csv_buffer = io.StringIO()
    frame.to_csv(csv_buffer, index=False)
    st.download_button(
        label="Download CSV",
        data=csv_buffer.getvalue().encode("utf-8"),
        file_name=f"churn_risk_{result.as_of_date.isoformat()}.csv",
        mime="text/csv",
        use_container_width=True,
    )
