"""Source freshness checks.

For each source with thresholds, the newest loaded-at value is compared to
the current time: older than ``error_after`` is an error, older than
``warn_after`` a warning. A source with no rows (no loaded-at value) is an
error. Freshness is advisory: it never blocks a build by itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

import dagster as dg
import duckdb

from tpch_duck.sources import LOADED_AT_COLUMN, SourceTable

logger = dg.get_dagster_logger(__name__)


class FreshnessStatus(str, Enum):
    PASS = "pass"
    WARN = "warn"
    ERROR = "error"


@dataclass
class FreshnessResult:
    source: str
    status: FreshnessStatus
    max_loaded_at: datetime | None
    age: timedelta | None
    warn_after: timedelta | None
    error_after: timedelta | None
    message: str = ""


def classify_age(
    age: timedelta | None,
    warn_after: timedelta | None,
    error_after: timedelta | None,
) -> FreshnessStatus:
    """Freshness state for the age of the newest row (None = no rows)."""
    if age is None:
        return FreshnessStatus.ERROR
    if error_after is not None and age > error_after:
        return FreshnessStatus.ERROR
    if warn_after is not None and age > warn_after:
        return FreshnessStatus.WARN
    return FreshnessStatus.PASS


def check_freshness(
    conn: duckdb.DuckDBPyConnection,
    source: SourceTable,
    now: datetime | None = None,
) -> FreshnessResult:
    """Check one source's loaded-at column against its thresholds."""
    name = f"{source.source_name}.{source.name}"
    try:
        row = conn.sql(f"SELECT max({LOADED_AT_COLUMN}) FROM {source.relation}").fetchone()
    except duckdb.Error as e:
        logger.error(f"[{name}] Freshness query failed: {e}")
        return FreshnessResult(
            name, FreshnessStatus.ERROR, None, None, source.warn_after, source.error_after,
            message=f"Freshness query failed: {e}",
        )

    max_loaded_at = row[0] if row else None
    if max_loaded_at is None:
        age = None
        message = "No rows with a loaded-at value"
    else:
        if now is None:
            now = datetime.now(tz=max_loaded_at.tzinfo)
        age = now - max_loaded_at
        message = f"Newest row loaded {age} ago"

    status = classify_age(age, source.warn_after, source.error_after)
    log = logger.info if status is FreshnessStatus.PASS else logger.warning
    log(f"[{name}] freshness {status.value}: {message}")
    return FreshnessResult(
        name, status, max_loaded_at, age, source.warn_after, source.error_after, message
    )


def check_source_freshness(
    conn: duckdb.DuckDBPyConnection,
    sources: list[SourceTable],
    now: datetime | None = None,
) -> list[FreshnessResult]:
    """Check every source that declares a warn or error threshold."""
    return [
        check_freshness(conn, source, now=now)
        for source in sources
        if source.warn_after is not None or source.error_after is not None
    ]


def overall_status(results: list[FreshnessResult]) -> FreshnessStatus:
    statuses = {result.status for result in results}
    if FreshnessStatus.ERROR in statuses:
        return FreshnessStatus.ERROR
    if FreshnessStatus.WARN in statuses:
        return FreshnessStatus.WARN
    return FreshnessStatus.PASS
