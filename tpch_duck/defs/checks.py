"""Asset checks for the tpch-duck project.

Includes:
- One check per data quality rule, on the first model the rule reads
  (blocking when the rule's severity is error)
- Pandera schema validation (blocking) for the fact tables
- Freshness checks on the raw TPC-H sources

A rule that fails to execute raises ``dagster.Failure`` instead of reporting
a failed check, so execution faults are never mistaken for violations.
"""

import dagster as dg
from dagster_duckdb import DuckDBResource

from tpch_duck.exceptions import DataValidationError, raise_as_dagster_failure
from tpch_duck.freshness import FreshnessStatus, check_freshness
from tpch_duck.quality import Rule, RuleStatus, Severity, evaluate_rule
from tpch_duck.runner import Project
from tpch_duck.sources import SourceTable, register_sources

from .helpers import preview_markdown
from .project import PROJECT
from .schemas import FctLineitemSchema, FctOrdersSchema, validate_with_report
from .sources import TPCH_SOURCES, source_asset_key
from .utils import read_model

# -----------------------------------------------------------------------------
# Data Quality Rules - One check per rule
# -----------------------------------------------------------------------------


def rule_check(rule: Rule) -> dg.AssetChecksDefinition:
    """Create the asset check evaluating one rule."""
    blocking = rule.severity is Severity.ERROR
    check_severity = dg.AssetCheckSeverity.ERROR if blocking else dg.AssetCheckSeverity.WARN

    @dg.asset_check(
        asset=dg.AssetKey(rule.relations[0]),
        name=rule.rule_id,
        description=rule.description or f"{rule.rule_type} ({rule.severity.value})",
        blocking=blocking,
        additional_deps=[dg.AssetKey(relation) for relation in rule.relations[1:]],
    )
    def _check(context: dg.AssetCheckExecutionContext, duckdb: DuckDBResource) -> dg.AssetCheckResult:
        with duckdb.get_connection() as conn:
            result = evaluate_rule(conn, rule)

        if result.status is RuleStatus.RUNTIME_ERROR:
            raise dg.Failure(
                description=f"Rule {rule.rule_id} failed to execute: {result.message}",
                metadata={
                    "rule_id": dg.MetadataValue.text(rule.rule_id),
                    "sql": dg.MetadataValue.md(f"```sql\n{rule.get_sql().strip()}\n```"),
                },
            )

        metadata = {
            "rule_type": dg.MetadataValue.text(rule.rule_type),
            "severity": dg.MetadataValue.text(rule.severity.value),
            "status": dg.MetadataValue.text(result.status.value),
            "violation_count": dg.MetadataValue.int(result.failures),
            "processing_time_ms": dg.MetadataValue.float(round(result.elapsed_ms, 2)),
        }
        if result.failures:
            metadata["violations"] = preview_markdown(result.violations, rows=10)
            examples = [v.description for v in result.violation_records(limit=5)]
            metadata["examples"] = dg.MetadataValue.json(examples)
            context.log.warning(f"[{rule.rule_id}] {result.failures} violating rows")

        return dg.AssetCheckResult(
            passed=result.status is RuleStatus.PASS,
            severity=check_severity,
            metadata=metadata,
        )

    return _check


def build_rule_checks(project: Project) -> list[dg.AssetChecksDefinition]:
    return [rule_check(rule) for rule in project.rules]


# -----------------------------------------------------------------------------
# Blocking Pandera Checks - Fact table schemas
# -----------------------------------------------------------------------------


def schema_check(model_name: str, schema: type) -> dg.AssetChecksDefinition:
    @dg.asset_check(
        asset=dg.AssetKey(model_name),
        name=f"check_{model_name}_schema",
        description=f"Validate {model_name} against {schema.__name__}",
        blocking=True,
    )
    def _check(duckdb: DuckDBResource) -> dg.AssetCheckResult:
        with duckdb.get_connection() as conn:
            try:
                df = read_model(conn, model_name, asset_name=f"check_{model_name}_schema")
            except DataValidationError as e:
                raise_as_dagster_failure(e)

        passed, report = validate_with_report(df, schema, asset_name=model_name)
        metadata = {
            "schema": dg.MetadataValue.text(report["schema"]),
            "record_count": dg.MetadataValue.int(report["record_count"]),
            "error_count": dg.MetadataValue.int(report["error_count"]),
        }
        if not passed:
            metadata["error_summary"] = dg.MetadataValue.json(report["error_summary"])
        return dg.AssetCheckResult(passed=passed, metadata=metadata)

    return _check


check_fct_tpch__orders_schema = schema_check("fct_tpch__orders", FctOrdersSchema)
check_fct_tpch__lineitem_schema = schema_check("fct_tpch__lineitem", FctLineitemSchema)

# -----------------------------------------------------------------------------
# Source Freshness - Advisory, never blocking
# -----------------------------------------------------------------------------


def freshness_check(source: SourceTable) -> dg.AssetChecksDefinition:
    @dg.asset_check(
        asset=source_asset_key(source),
        name="freshness",
        description=f"Newest {source.name} row loaded within the freshness thresholds",
    )
    def _check(context: dg.AssetCheckExecutionContext, duckdb: DuckDBResource) -> dg.AssetCheckResult:
        with duckdb.get_connection() as conn:
            register_sources(conn, [source], strict=False)
            result = check_freshness(conn, source)

        if result.status is not FreshnessStatus.PASS:
            context.log.warning(f"[{result.source}] {result.message}")

        metadata = {
            "status": dg.MetadataValue.text(result.status.value),
            "message": dg.MetadataValue.text(result.message),
        }
        if result.max_loaded_at is not None:
            metadata["max_loaded_at"] = dg.MetadataValue.text(str(result.max_loaded_at))
        if result.age is not None:
            metadata["age_hours"] = dg.MetadataValue.float(
                round(result.age.total_seconds() / 3600, 2)
            )

        return dg.AssetCheckResult(
            passed=result.status is FreshnessStatus.PASS,
            severity=(
                dg.AssetCheckSeverity.ERROR
                if result.status is FreshnessStatus.ERROR
                else dg.AssetCheckSeverity.WARN
            ),
            metadata=metadata,
        )

    return _check


rule_checks = build_rule_checks(PROJECT)
freshness_checks = [freshness_check(source) for source in TPCH_SOURCES]
schema_checks = [check_fct_tpch__orders_schema, check_fct_tpch__lineitem_schema]
