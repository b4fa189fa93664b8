"""Evaluate data quality rules and aggregate a test-run status.

Each rule is a single SQL statement, so it sees one consistent snapshot of
its relations. A rule either returns its full set of violating rows or fails
to execute; execution failures are reported as ``runtime_error`` and never
counted as violations.

Run status:
    error - an error-severity rule found at least one violation
    warn  - otherwise, a warn-severity rule found at least one violation
    pass  - otherwise
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import dagster as dg
import duckdb
import polars as pl

from tpch_duck.exceptions import RuleConfigurationError
from tpch_duck.quality.rules import Rule, Severity

logger = dg.get_dagster_logger(__name__)


class RuleStatus(str, Enum):
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"
    RUNTIME_ERROR = "runtime_error"


class RunStatus(str, Enum):
    PASS = "pass"
    WARN = "warn"
    ERROR = "error"


@dataclass(frozen=True)
class Violation:
    """One violating row, as surfaced to users. Never persisted."""

    rule_id: str
    severity: Severity
    keys: dict[str, Any]
    description: str


@dataclass
class RuleResult:
    """Outcome of evaluating one rule."""

    rule_id: str
    severity: Severity
    status: RuleStatus
    violations: pl.DataFrame = field(default_factory=pl.DataFrame)
    message: str | None = None
    elapsed_ms: float = 0.0
    rule: Rule | None = None

    @property
    def failures(self) -> int:
        return self.violations.height

    @property
    def executed(self) -> bool:
        return self.status is not RuleStatus.RUNTIME_ERROR

    def violation_records(self, limit: int | None = None) -> list[Violation]:
        """Violating rows as ``Violation`` records (keys + description)."""
        rows = self.violations.head(limit) if limit is not None else self.violations
        records = []
        for row in rows.iter_rows(named=True):
            if self.rule is not None and self.rule.key_columns:
                keys = {col: row.get(col) for col in self.rule.key_columns}
            else:
                keys = row
            description = self.rule.describe_violation(row) if self.rule else ""
            records.append(Violation(self.rule_id, self.severity, keys, description))
        return records


def evaluate_rule(conn: duckdb.DuckDBPyConnection, rule: Rule) -> RuleResult:
    """Run one rule and classify the result.

    Engine faults and bad rule parameters are captured as ``runtime_error``.
    """
    start_time = time.perf_counter()
    try:
        relation = conn.sql(rule.get_sql())
        # Statements other than queries (DDL, DML) produce no relation
        if relation is None:
            raise RuleConfigurationError("Rule SQL returned no rows to check; expected a SELECT")
        violations = relation.pl()
    except (duckdb.Error, RuleConfigurationError) as e:
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.error(f"[{rule.rule_id}] Rule failed to execute: {e}")
        return RuleResult(
            rule_id=rule.rule_id,
            severity=rule.severity,
            status=RuleStatus.RUNTIME_ERROR,
            message=str(e),
            elapsed_ms=elapsed_ms,
            rule=rule,
        )

    elapsed_ms = (time.perf_counter() - start_time) * 1000
    if violations.height == 0:
        status = RuleStatus.PASS
    elif rule.severity is Severity.ERROR:
        status = RuleStatus.FAIL
    else:
        status = RuleStatus.WARN

    if status is RuleStatus.PASS:
        logger.info(f"[{rule.rule_id}] PASS in {elapsed_ms:.1f}ms")
    else:
        logger.warning(
            f"[{rule.rule_id}] {status.value.upper()}: {violations.height} violating rows "
            f"(severity {rule.severity.value}) in {elapsed_ms:.1f}ms"
        )
    return RuleResult(
        rule_id=rule.rule_id,
        severity=rule.severity,
        status=status,
        violations=violations,
        elapsed_ms=elapsed_ms,
        rule=rule,
    )


@dataclass
class TestRunSummary:
    """Results of a test run with the aggregated run status."""

    __test__ = False  # not a pytest test class

    results: list[RuleResult]

    @property
    def status(self) -> RunStatus:
        if any(r.status is RuleStatus.FAIL for r in self.results):
            return RunStatus.ERROR
        if any(r.status is RuleStatus.WARN for r in self.results):
            return RunStatus.WARN
        return RunStatus.PASS

    @property
    def blocks_promotion(self) -> bool:
        return self.status is RunStatus.ERROR

    @property
    def runtime_errors(self) -> list[RuleResult]:
        return [r for r in self.results if r.status is RuleStatus.RUNTIME_ERROR]

    def counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in RuleStatus}
        for result in self.results:
            counts[result.status.value] += 1
        return counts

    def get(self, rule_id: str) -> RuleResult:
        for result in self.results:
            if result.rule_id == rule_id:
                return result
        raise KeyError(rule_id)

    def format(self) -> str:
        lines = []
        for result in self.results:
            detail = (
                result.message
                if result.status is RuleStatus.RUNTIME_ERROR
                else f"{result.failures} violations"
            )
            lines.append(
                f"  {result.status.value.upper():<13} [{result.severity.value}] "
                f"{result.rule_id}: {detail}"
            )
        counts = ", ".join(f"{k}={v}" for k, v in self.counts().items())
        lines.append(f"Test run status: {self.status.value.upper()} ({counts})")
        return "\n".join(lines)


def run_rules(conn: duckdb.DuckDBPyConnection, rules: list[Rule]) -> TestRunSummary:
    """Evaluate every rule independently; one failing rule never stops the others."""
    start_time = time.perf_counter()
    results = [evaluate_rule(conn, rule) for rule in rules]
    summary = TestRunSummary(results)
    elapsed_ms = (time.perf_counter() - start_time) * 1000
    logger.info(
        f"Evaluated {len(rules)} rules in {elapsed_ms:.1f}ms: status {summary.status.value}"
    )
    return summary
