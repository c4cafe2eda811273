"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from churn_risk.quality import PRODUCTION_MIN_ROW_COUNT
from churn_risk.scoring import DEFAULT_MODEL_VERSION
from churn_risk.thresholds import ScoringThresholds, get_preset, load_thresholds
from db.config import load_env_files

_ALLOWED_ON_ERROR = {"skip", "abort"}


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class ScoringSettings:
    """
    Runtime settings for churn scoring runs.

    ``rules_path`` wins over ``threshold_preset`` when both are set.
    """

    model_version: str = DEFAULT_MODEL_VERSION
    threshold_preset: str = "canonical"
    rules_path: str | None = None
    max_workers: int = 1
    on_error: str = "skip"


@dataclass(frozen=True)
class SchedulerSettings:
    """
    Settings for the daily scoring job.

    The default 05:00 UTC run leaves an hour before the 06:00 refresh SLA.
    """

    enabled: bool = True
    hour_utc: int = 5
    minute_utc: int = 0
    raw_schema: str | None = "raw"
    quality_min_rows: int = PRODUCTION_MIN_ROW_COUNT


@lru_cache(maxsize=1)
def get_scoring_settings() -> ScoringSettings:
    """
    Return cached scoring settings from environment variables.

    An unrecognised CHURN_SCORING_ON_ERROR falls back to "skip".
    """

    on_error = _get_str_env("CHURN_SCORING_ON_ERROR", "skip").lower()
    return ScoringSettings(
        model_version=_get_str_env("CHURN_MODEL_VERSION", DEFAULT_MODEL_VERSION),
        threshold_preset=_get_str_env("CHURN_THRESHOLD_PRESET", "canonical").lower(),
        rules_path=_get_optional_str_env("CHURN_RULES_PATH"),
        max_workers=max(1, _get_int_env("CHURN_SCORING_MAX_WORKERS", 1)),
        on_error=on_error if on_error in _ALLOWED_ON_ERROR else "skip",
    )


@lru_cache(maxsize=1)
def get_scheduler_settings() -> SchedulerSettings:
    """
    Return cached scheduler settings from environment variables.
    """

    return SchedulerSettings(
        enabled=_get_bool_env("CHURN_SCHEDULER_ENABLED", True),
        hour_utc=min(23, max(0, _get_int_env("CHURN_SCHEDULER_HOUR_UTC", 5))),
        minute_utc=min(59, max(0, _get_int_env("CHURN_SCHEDULER_MINUTE_UTC", 0))),
        raw_schema=_get_optional_str_env("CHURN_RAW_SCHEMA") or "raw",
        quality_min_rows=max(
            0, _get_int_env("CHURN_QUALITY_MIN_ROWS", PRODUCTION_MIN_ROW_COUNT)
        ),
    )


@lru_cache(maxsize=1)
def get_scoring_thresholds() -> ScoringThresholds:
    """
    Resolve the active rule set: the rules file when configured,
    otherwise the named preset.

    Raises:
        RuleConfigError: If the rules file or preset is invalid.
    """

    settings = get_scoring_settings()
    if settings.rules_path:
        return load_thresholds(settings.rules_path)
    return get_preset(settings.threshold_preset)
