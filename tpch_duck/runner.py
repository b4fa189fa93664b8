"""Build models in dependency order and run data quality rules.

A ``Project`` ties together models, sources and rules and derives the model
graph. A ``ProjectRunner`` executes it against a DuckDB connection:

- build failures are fatal to the failing model and every model downstream
  of it; unrelated models still build
- rule execution failures are reported separately from violations
- nothing is retried
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import dagster as dg
import duckdb
import jinja2

from tpch_duck.base import Materialization, Model
from tpch_duck.compiler import SqlCompiler
from tpch_duck.exceptions import ConfigurationError, ModelBuildError
from tpch_duck.freshness import FreshnessResult, check_source_freshness
from tpch_duck.graph import ModelGraph
from tpch_duck.incremental import IncrementalFactBuilder, IncrementalResult
from tpch_duck.quality import Rule, TestRunSummary, run_rules
from tpch_duck.sources import SourceTable, register_sources

logger = dg.get_dagster_logger(__name__)


class Project:
    """Models, sources and rules of one transformation project."""

    def __init__(
        self,
        models: Iterable[Model],
        sources: Iterable[SourceTable],
        rules: Iterable[Rule] = (),
        variables: dict[str, Any] | None = None,
    ):
        self.models: dict[str, Model] = {}
        for model in models:
            if model.name in self.models:
                raise ConfigurationError(f"Duplicate model name: {model.name!r}")
            self.models[model.name] = model
        self.sources = list(sources)
        self.rules = list(rules)
        self.variables = dict(variables or {})
        self.compiler = SqlCompiler(self.models, self.sources, self.variables)

        dependencies = {}
        for name, model in self.models.items():
            self.compiler.validate_sources(model)
            dependencies[name] = self.compiler.references(model)[0]
        self.graph = ModelGraph.from_dependencies(dependencies)
        # Fail fast on cycles
        self.build_order = self.graph.topological_order()

        rule_ids = [rule.rule_id for rule in self.rules]
        duplicates = sorted({rule_id for rule_id in rule_ids if rule_ids.count(rule_id) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate rule ids: {duplicates}")

    def compile(self, name: str, incremental: bool = False) -> str:
        return self.compiler.compile(self.models[name], incremental=incremental)

    def source_dependencies(self, name: str) -> list[tuple[str, str]]:
        """Sources a model reads, directly or through ephemeral parents."""
        sources = list(self.compiler.references(self.models[name])[1])
        for parent in sorted(self.graph.parents(name)):
            if not self.models[parent].is_persisted:
                sources += [s for s in self.source_dependencies(parent) if s not in sources]
        return sources

    def persisted_parents(self, name: str) -> set[str]:
        """Nearest persisted ancestors, looking through ephemeral models."""
        parents: set[str] = set()
        for parent in self.graph.parents(name):
            if self.models[parent].is_persisted:
                parents.add(parent)
            else:
                parents |= self.persisted_parents(parent)
        return parents

    def rules_for(self, model_name: str) -> list[Rule]:
        """Rules whose primary relation is ``model_name``."""
        return [rule for rule in self.rules if rule.relations and rule.relations[0] == model_name]


class BuildStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass
class ModelResult:
    name: str
    materialized: Materialization
    status: BuildStatus
    message: str = ""
    row_count: int | None = None
    elapsed_ms: float = 0.0
    incremental: IncrementalResult | None = None

    def as_metadata(self) -> dict[str, Any]:
        metadata: dict[str, Any] = {
            "materialized": self.materialized.value,
            "processing_time_ms": round(self.elapsed_ms, 2),
        }
        if self.row_count is not None:
            metadata["record_count"] = self.row_count
        if self.incremental is not None:
            metadata.update(self.incremental.as_metadata())
        return metadata


@dataclass
class BuildSummary:
    results: list[ModelResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(result.status is BuildStatus.SUCCESS for result in self.results)

    def by_status(self, status: BuildStatus) -> list[ModelResult]:
        return [result for result in self.results if result.status is status]

    def get(self, name: str) -> ModelResult:
        for result in self.results:
            if result.name == name:
                return result
        raise KeyError(name)

    def format(self) -> str:
        lines = []
        for result in self.results:
            detail = result.message or (
                f"{result.row_count:,} rows" if result.row_count is not None else ""
            )
            lines.append(
                f"  {result.status.value.upper():<8} {result.materialized.value:<12} "
                f"{result.name} {detail}".rstrip()
            )
        counts = ", ".join(
            f"{status.value}={len(self.by_status(status))}" for status in BuildStatus
        )
        lines.append(f"Build: {counts}")
        return "\n".join(lines)


class ProjectRunner:
    """Execute a project's models and rules against one DuckDB connection."""

    def __init__(self, project: Project, conn: duckdb.DuckDBPyConnection):
        self.project = project
        self.conn = conn
        self.builder = IncrementalFactBuilder(conn)

    def register_sources(self) -> list[SourceTable]:
        return register_sources(self.conn, self.project.sources, strict=False)

    def _object_type(self, name: str) -> str | None:
        row = self.conn.execute(
            "SELECT table_type FROM information_schema.tables "
            "WHERE table_schema = 'main' AND table_name = ?",
            [name],
        ).fetchone()
        return row[0] if row else None

    def _drop_if_type(self, name: str, unwanted: str) -> None:
        # Switching a model between view and table needs the old object gone
        if self._object_type(name) == unwanted:
            keyword = "VIEW" if unwanted == "VIEW" else "TABLE"
            self.conn.execute(f"DROP {keyword} {name}")

    def build_model(self, name: str, full_refresh: bool = False) -> ModelResult:
        """Build one model according to its materialization.

        Raises:
            ModelBuildError: If the template or the query engine rejects the model
        """
        model = self.project.models[name]
        config = model.config
        start_time = time.perf_counter()
        incremental_result = None
        row_count = None

        try:
            if config.materialized is Materialization.EPHEMERAL:
                # Validate the template; nothing is persisted
                self.project.compile(name)
            elif config.materialized is Materialization.VIEW:
                sql = self.project.compile(name)
                self._drop_if_type(name, "BASE TABLE")
                self.conn.execute(f"CREATE OR REPLACE VIEW {name} AS\n{sql}")
            elif config.materialized is Materialization.TABLE:
                sql = self.project.compile(name)
                order_clause = (
                    f"\nORDER BY {', '.join(config.cluster_by)}" if config.cluster_by else ""
                )
                self._drop_if_type(name, "VIEW")
                self.conn.execute(
                    f"CREATE OR REPLACE TABLE {name} AS\n"
                    f"SELECT * FROM (\n{sql}\n) AS model_source{order_clause}"
                )
                row = self.conn.sql(f"SELECT count(*) FROM {name}").fetchone()
                row_count = int(row[0]) if row else 0
            else:
                self._drop_if_type(name, "VIEW")
                incremental = self.builder.table_exists(name) and not full_refresh
                sql = self.project.compile(name, incremental=incremental)
                incremental_result = self.builder.build(
                    name, sql, config, full_refresh=full_refresh
                )
                row = self.conn.sql(f"SELECT count(*) FROM {name}").fetchone()
                row_count = int(row[0]) if row else 0
        except jinja2.TemplateError as e:
            raise ModelBuildError(name, f"Failed to render SQL: {e}") from e
        except duckdb.Error as e:
            raise ModelBuildError(name, str(e)) from e

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(f"[{name}] built as {config.materialized.value} in {elapsed_ms:.1f}ms")
        return ModelResult(
            name=name,
            materialized=config.materialized,
            status=BuildStatus.SUCCESS,
            row_count=row_count,
            elapsed_ms=elapsed_ms,
            incremental=incremental_result,
        )

    def build_all(
        self,
        select: Iterable[str] | None = None,
        full_refresh: bool = False,
    ) -> BuildSummary:
        """Build every (or every selected) persisted model in dependency order."""
        self.register_sources()
        selected = set(select) if select is not None else None
        blocked: dict[str, str] = {}
        summary = BuildSummary()

        for name in self.project.build_order:
            model = self.project.models[name]
            if selected is not None and name not in selected:
                continue
            if name in blocked:
                if model.is_persisted:
                    summary.results.append(
                        ModelResult(
                            name,
                            model.materialized,
                            BuildStatus.SKIPPED,
                            message=f"upstream model '{blocked[name]}' failed",
                        )
                    )
                continue

            try:
                result = self.build_model(name, full_refresh=full_refresh)
            except ModelBuildError as e:
                logger.error(str(e))
                for downstream in self.project.graph.downstream(name):
                    blocked.setdefault(downstream, name)
                summary.results.append(
                    ModelResult(name, model.materialized, BuildStatus.ERROR, message=str(e))
                )
                continue

            if model.is_persisted:
                summary.results.append(result)

        logger.info(f"Build finished: {len(summary.by_status(BuildStatus.SUCCESS))} models built")
        return summary

    def test_all(self, select: Iterable[str] | None = None) -> TestRunSummary:
        """Run every rule (or the rules whose ids are selected)."""
        rules = self.project.rules
        if select is not None:
            wanted = set(select)
            rules = [rule for rule in rules if rule.rule_id in wanted]
        return run_rules(self.conn, rules)

    def check_freshness(self, now: datetime | None = None) -> list[FreshnessResult]:
        self.register_sources()
        return check_source_freshness(self.conn, self.project.sources, now=now)
