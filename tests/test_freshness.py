"""Tests for source freshness checks."""

from datetime import datetime, timedelta

import duckdb
import pytest

from tpch_duck.freshness import (
    FreshnessResult,
    FreshnessStatus,
    check_freshness,
    check_source_freshness,
    classify_age,
    overall_status,
)
from tpch_duck.runner import ProjectRunner
from tpch_duck.sources import SourceTable, register_sources

WARN = timedelta(hours=12)
ERROR = timedelta(hours=24)
NOW = datetime(2024, 1, 20, 12, 0, 0)


def _source(**kwargs) -> SourceTable:
    defaults = dict(loaded_at_field="updated_at", warn_after=WARN, error_after=ERROR)
    defaults.update(kwargs)
    return SourceTable("tpch", "events", "events", **defaults)


@pytest.fixture
def events_conn() -> duckdb.DuckDBPyConnection:
    conn = duckdb.connect(":memory:")
    conn.execute("CREATE SCHEMA raw")
    conn.execute("CREATE TABLE raw.events (id INTEGER, updated_at TIMESTAMP)")
    yield conn
    conn.close()


class TestClassifyAge:
    """Test threshold classification."""

    @pytest.mark.parametrize(
        "age,expected",
        [
            (timedelta(hours=1), FreshnessStatus.PASS),
            (timedelta(hours=12), FreshnessStatus.PASS),
            (timedelta(hours=13), FreshnessStatus.WARN),
            (timedelta(hours=24), FreshnessStatus.WARN),
            (timedelta(hours=25), FreshnessStatus.ERROR),
        ],
    )
    def test_thresholds(self, age: timedelta, expected: FreshnessStatus) -> None:
        assert classify_age(age, WARN, ERROR) is expected

    def test_no_rows_is_error(self) -> None:
        assert classify_age(None, WARN, ERROR) is FreshnessStatus.ERROR

    def test_warn_only(self) -> None:
        assert classify_age(timedelta(days=30), WARN, None) is FreshnessStatus.WARN


class TestCheckFreshness:
    """Test freshness against the warehouse."""

    def test_native_loaded_at_field(self, events_conn: duckdb.DuckDBPyConnection) -> None:
        source = _source()
        events_conn.execute(
            "INSERT INTO raw.events VALUES "
            "(1, TIMESTAMP '2024-01-19 00:00:00'), (2, TIMESTAMP '2024-01-20 06:00:00')"
        )
        register_sources(events_conn, [source])

        result = check_freshness(events_conn, source, now=NOW)

        assert result.status is FreshnessStatus.PASS
        assert result.max_loaded_at == datetime(2024, 1, 20, 6, 0, 0)
        assert result.age == timedelta(hours=6)

    def test_stale_source_errors(self, events_conn: duckdb.DuckDBPyConnection) -> None:
        source = _source()
        events_conn.execute("INSERT INTO raw.events VALUES (1, TIMESTAMP '2024-01-18 00:00:00')")
        register_sources(events_conn, [source])

        result = check_freshness(events_conn, source, now=NOW)

        assert result.status is FreshnessStatus.ERROR
        assert result.age == timedelta(hours=60)

    def test_empty_source_errors(self, events_conn: duckdb.DuckDBPyConnection) -> None:
        source = _source()
        register_sources(events_conn, [source])

        result = check_freshness(events_conn, source, now=NOW)

        assert result.status is FreshnessStatus.ERROR
        assert result.max_loaded_at is None
        assert "No rows" in result.message

    def test_unregistered_source_errors(self, events_conn: duckdb.DuckDBPyConnection) -> None:
        result = check_freshness(events_conn, _source(), now=NOW)

        assert result.status is FreshnessStatus.ERROR
        assert "Freshness query failed" in result.message

    def test_sources_without_thresholds_skipped(
        self, events_conn: duckdb.DuckDBPyConnection
    ) -> None:
        results = check_source_freshness(
            events_conn, [_source(warn_after=None, error_after=None)], now=NOW
        )
        assert results == []

    def test_injected_loaded_at_is_fresh(self, runner: ProjectRunner) -> None:
        """TPC-H tables have no updated-at column, so load time stands in."""
        results = runner.check_freshness()

        assert [result.source for result in results] == [
            "tpch.orders",
            "tpch.lineitem",
            "tpch.customer",
        ]
        assert overall_status(results) is FreshnessStatus.PASS


class TestOverallStatus:
    """Test rolling source results up to one status."""

    def _result(self, status: FreshnessStatus) -> FreshnessResult:
        return FreshnessResult("s", status, None, None, WARN, ERROR)

    def test_worst_status_wins(self) -> None:
        results = [self._result(FreshnessStatus.PASS), self._result(FreshnessStatus.WARN)]
        assert overall_status(results) is FreshnessStatus.WARN

        results.append(self._result(FreshnessStatus.ERROR))
        assert overall_status(results) is FreshnessStatus.ERROR

    def test_empty_is_pass(self) -> None:
        assert overall_status([]) is FreshnessStatus.PASS
