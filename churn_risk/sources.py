"""
churn_risk/sources.py

Adapters that load the five raw record streams into ``RawRecords``.

Every source returns frames carrying the raw table columns; filtering
and windowing belong to the aggregation step.
"""

from __future__ import annotations

import io
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Mapping, Optional

import pandas as pd
from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from churn_risk.aggregation import REQUIRED_COLUMNS, RawRecords
from churn_risk.errors import RawDataError

logger = logging.getLogger(__name__)

SOURCE_NAMES: tuple[str, ...] = tuple(REQUIRED_COLUMNS)

DATE_COLUMNS: dict[str, tuple[str, ...]] = {
    "customers": ("onboarding_date",),
    "accounts": (),
    "transactions": ("txn_date",),
    "digital_engagement": ("measurement_date",),
    "complaints": ("complaint_date",),
}

# Identifiers stay strings even when they look numeric.
_ID_DTYPES: dict[str, dict[str, str]] = {
    "customers": {"customer_id": "string"},
    "accounts": {"account_id": "string", "customer_id": "string"},
    "transactions": {"txn_id": "string", "account_id": "string"},
    "digital_engagement": {"engagement_id": "string", "customer_id": "string"},
    "complaints": {"complaint_id": "string", "customer_id": "string"},
}


class RawDataSource(ABC):
    """Loads one consistent snapshot of the raw tables."""

    @abstractmethod
    def load(self) -> RawRecords:
        """
        Raises:
            RawDataError: If a table is missing or lacks required columns.
        """


def _read_csv(handle, name: str) -> pd.DataFrame:
    return pd.read_csv(
        handle,
        dtype=_ID_DTYPES[name],
        parse_dates=list(DATE_COLUMNS[name]),
    )


def _assemble(frames: Mapping[str, pd.DataFrame]) -> RawRecords:
    records = RawRecords(**{name: frames[name] for name in SOURCE_NAMES})
    records.validate()
    logger.info(
        "Loaded raw records: %s",
        ", ".join(f"{name}={len(frames[name])}" for name in SOURCE_NAMES),
    )
    return records


class CSVRawDataSource(RawDataSource):
    """
    Reads ``<name>.csv`` for each raw table from one directory.
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def load(self) -> RawRecords:
        frames: dict[str, pd.DataFrame] = {}
        for name in SOURCE_NAMES:
            path = self._directory / f"{name}.csv"
            if not path.is_file():
                raise RawDataError(f"Missing raw data file: {path}")
            try:
                frames[name] = _read_csv(path, name)
            except (ValueError, pd.errors.ParserError) as exc:
                raise RawDataError(f"Could not parse {path}: {exc}") from exc
        return _assemble(frames)

    def write(self, records: RawRecords) -> None:
        """Write ``records`` as CSV files this source can read back."""
        self._directory.mkdir(parents=True, exist_ok=True)
        for name in SOURCE_NAMES:
            getattr(records, name).to_csv(self._directory / f"{name}.csv", index=False)


def raw_records_from_buffers(buffers: Mapping[str, bytes]) -> RawRecords:
    """
    Build ``RawRecords`` from in-memory CSV payloads keyed by table name,
    e.g. files uploaded through the front end.
    """
    missing = [name for name in SOURCE_NAMES if name not in buffers]
    if missing:
        raise RawDataError(f"Missing raw data uploads: {missing}")
    frames: dict[str, pd.DataFrame] = {}
    for name in SOURCE_NAMES:
        try:
            frames[name] = _read_csv(io.BytesIO(buffers[name]), name)
        except (ValueError, pd.errors.ParserError) as exc:
            raise RawDataError(f"Could not parse upload {name!r}: {exc}") from exc
    return _assemble(frames)


class SQLRawDataSource(RawDataSource):
    """
    Reads the raw tables through a SQLAlchemy engine.

    Table names match the CSV file stems; ``schema`` selects the database
    schema holding them (e.g. ``raw``).
    """

    def __init__(self, engine: Engine, schema: Optional[str] = None) -> None:
        self._engine = engine
        self._schema = schema

    def load(self) -> RawRecords:
        try:
            available = set(inspect(self._engine).get_table_names(schema=self._schema))
        except SQLAlchemyError as exc:
            raise RawDataError(f"Could not inspect raw schema {self._schema!r}: {exc}") from exc

        missing = [name for name in SOURCE_NAMES if name not in available]
        if missing:
            raise RawDataError(
                f"Missing raw tables in schema {self._schema!r}: {missing}"
            )

        frames: dict[str, pd.DataFrame] = {}
        with self._engine.connect() as connection:
            for name in SOURCE_NAMES:
                try:
                    frames[name] = pd.read_sql_table(
                        name,
                        connection,
                        schema=self._schema,
                        parse_dates=list(DATE_COLUMNS[name]),
                    )
                except (SQLAlchemyError, ValueError) as exc:
                    raise RawDataError(f"Could not read raw table {name!r}: {exc}") from exc
        return _assemble(frames)
