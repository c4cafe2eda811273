"""
tests/test_config.py

Environment-driven settings for scoring, the scheduler and the database.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from app import config
from churn_risk.errors import RuleConfigError
from churn_risk.thresholds import CANONICAL, get_preset
from db import config as db_config
from db.config import load_env_files

_ENV_VARS = (
    "CHURN_MODEL_VERSION",
    "CHURN_THRESHOLD_PRESET",
    "CHURN_RULES_PATH",
    "CHURN_SCORING_MAX_WORKERS",
    "CHURN_SCORING_ON_ERROR",
    "CHURN_SCHEDULER_ENABLED",
    "CHURN_SCHEDULER_HOUR_UTC",
    "CHURN_SCHEDULER_MINUTE_UTC",
    "CHURN_RAW_SCHEMA",
    "CHURN_QUALITY_MIN_ROWS",
    "CHURN_DATABASE_URL",
    "DATABASE_URL",
    "CLOUD_DATABASE_URL",
    "LOCAL_DATABASE_URL",
    "ENVIRONMENT",
)


def _clear_caches() -> None:
    config.get_scoring_settings.cache_clear()
    config.get_scheduler_settings.cache_clear()
    config.get_scoring_thresholds.cache_clear()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(db_config, "load_env_files", lambda root=None: None)
    _clear_caches()
    yield
    _clear_caches()


class TestScoringSettings:
    def test_defaults(self) -> None:
        settings = config.get_scoring_settings()
        assert settings.model_version == "1.0.0"
        assert settings.threshold_preset == "canonical"
        assert settings.rules_path is None
        assert settings.max_workers == 1
        assert settings.on_error == "skip"

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHURN_MODEL_VERSION", "2.0.0")
        monkeypatch.setenv("CHURN_THRESHOLD_PRESET", " DBT_V1 ")
        monkeypatch.setenv("CHURN_SCORING_MAX_WORKERS", "8")
        monkeypatch.setenv("CHURN_SCORING_ON_ERROR", "ABORT")
        settings = config.get_scoring_settings()
        assert settings.model_version == "2.0.0"
        assert settings.threshold_preset == "dbt_v1"
        assert settings.max_workers == 8
        assert settings.on_error == "abort"

    @pytest.mark.parametrize(
        "name, value, attribute, expected",
        [
            ("CHURN_SCORING_ON_ERROR", "retry", "on_error", "skip"),
            ("CHURN_SCORING_MAX_WORKERS", "many", "max_workers", 1),
            ("CHURN_SCORING_MAX_WORKERS", "0", "max_workers", 1),
            ("CHURN_MODEL_VERSION", "   ", "model_version", "1.0.0"),
        ],
    )
    def test_bad_values_fall_back(
        self, monkeypatch: pytest.MonkeyPatch, name: str, value: str, attribute: str, expected
    ) -> None:
        monkeypatch.setenv(name, value)
        assert getattr(config.get_scoring_settings(), attribute) == expected

    def test_settings_are_cached(self, monkeypatch: pytest.MonkeyPatch) -> None:
        first = config.get_scoring_settings()
        monkeypatch.setenv("CHURN_MODEL_VERSION", "9.9.9")
        assert config.get_scoring_settings() is first


class TestThresholdResolution:
    def test_default_is_canonical(self) -> None:
        assert config.get_scoring_thresholds() == CANONICAL

    def test_named_preset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHURN_THRESHOLD_PRESET", "evolved")
        assert config.get_scoring_thresholds() == get_preset("evolved")

    def test_unknown_preset_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHURN_THRESHOLD_PRESET", "aggressive")
        with pytest.raises(RuleConfigError):
            config.get_scoring_thresholds()

    def test_rules_file_wins_over_preset(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        rules = tmp_path / "rules.json"
        rules.write_text(json.dumps({"long_tenure_months": 48}), encoding="utf-8")
        monkeypatch.setenv("CHURN_THRESHOLD_PRESET", "evolved")
        monkeypatch.setenv("CHURN_RULES_PATH", str(rules))
        thresholds = config.get_scoring_thresholds()
        assert thresholds.long_tenure_months == 48
        assert thresholds.highly_engaged_score == CANONICAL.highly_engaged_score


class TestSchedulerSettings:
    def test_defaults(self) -> None:
        settings = config.get_scheduler_settings()
        assert settings.enabled is True
        assert (settings.hour_utc, settings.minute_utc) == (5, 0)
        assert settings.raw_schema == "raw"
        assert settings.quality_min_rows == 500

    def test_values_are_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHURN_SCHEDULER_ENABLED", "off")
        monkeypatch.setenv("CHURN_SCHEDULER_HOUR_UTC", "30")
        monkeypatch.setenv("CHURN_SCHEDULER_MINUTE_UTC", "-5")
        monkeypatch.setenv("CHURN_RAW_SCHEMA", "staging")
        settings = config.get_scheduler_settings()
        assert settings.enabled is False
        assert (settings.hour_utc, settings.minute_utc) == (23, 0)
        assert settings.raw_schema == "staging"

    @pytest.mark.parametrize("value, expected", [("50", 50), ("-1", 0), ("lots", 500)])
    def test_quality_min_rows(
        self, monkeypatch: pytest.MonkeyPatch, value: str, expected: int
    ) -> None:
        monkeypatch.setenv("CHURN_QUALITY_MIN_ROWS", value)
        assert config.get_scheduler_settings().quality_min_rows == expected


class TestDatabaseUrl:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("postgres://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
            ("postgresql://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
            ("postgresql+psycopg://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
            ("sqlite:///churn.db", "sqlite:///churn.db"),
        ],
    )
    def test_normalize(self, url: str, expected: str) -> None:
        assert db_config.normalize_postgres_url(url) == expected

    def test_priority(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOCAL_DATABASE_URL", "postgresql://local/db")
        monkeypatch.setenv("DATABASE_URL", "postgresql://shared/db")
        assert db_config.resolve_database_url() == "postgresql+psycopg://shared/db"
        monkeypatch.setenv("CHURN_DATABASE_URL", "postgresql://churn/db")
        assert db_config.resolve_database_url() == "postgresql+psycopg://churn/db"

    def test_cloud_url_needs_cloud_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CLOUD_DATABASE_URL", "postgresql://cloud/db")
        monkeypatch.setenv("LOCAL_DATABASE_URL", "postgresql://local/db")
        assert db_config.resolve_database_url() == "postgresql+psycopg://local/db"
        monkeypatch.setenv("ENVIRONMENT", "Production")
        assert db_config.resolve_database_url() == "postgresql+psycopg://cloud/db"

    def test_non_postgres_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "sqlite:///churn.db")
        with pytest.raises(RuntimeError, match="PostgreSQL"):
            db_config.resolve_database_url()

    def test_nothing_configured(self) -> None:
        with pytest.raises(RuntimeError, match="No database URL configured"):
            db_config.resolve_database_url()


class TestEnvFiles:
    def test_local_file_does_not_override_process_env(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        monkeypatch.setenv("CHURN_MODEL_VERSION", "from-process")
        # Registered so the values the loader sets are removed afterwards.
        for name in ("CHURN_RAW_SCHEMA", "CHURN_THRESHOLD_PRESET"):
            monkeypatch.setenv(name, "placeholder")
            monkeypatch.delenv(name)
        (tmp_path / ".env").write_text(
            "# comment\n"
            "export CHURN_RAW_SCHEMA='raw_v2'\n"
            "CHURN_MODEL_VERSION=from-file\n"
            "not a pair\n",
            encoding="utf-8",
        )
        (tmp_path / ".env.local").write_text(
            'CHURN_THRESHOLD_PRESET="evolved"\nCHURN_RAW_SCHEMA=ignored\n',
            encoding="utf-8",
        )

        load_env_files(tmp_path)

        assert os.environ["CHURN_MODEL_VERSION"] == "from-process"
        assert os.environ["CHURN_RAW_SCHEMA"] == "raw_v2"
        assert os.environ["CHURN_THRESHOLD_PRESET"] == "evolved"
