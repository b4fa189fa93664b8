"""Dagster assets generated from the project models.

One asset per persisted model (views, tables, incremental tables). Ephemeral
models have no asset: they are inlined into the SQL of their dependants, so
an asset's deps look through them to the nearest persisted parents and the
sources they read.

Each asset builds its model with ``ProjectRunner.build_model`` against the
shared warehouse and reports row counts, incremental merge statistics,
timing and a preview as materialization metadata.
"""

from datetime import timedelta

import dagster as dg
from dagster_duckdb import DuckDBResource

from tpch_duck.base import Materialization, Model
from tpch_duck.exceptions import TpchDuckError, raise_as_dagster_failure
from tpch_duck.runner import Project, ProjectRunner

from .config import CONFIG
from .helpers import AssetGroups, preview_markdown, to_metadata
from .project import PROJECT


def model_deps(project: Project, model: Model) -> list[dg.AssetKey]:
    """Asset keys of the persisted models and sources a model depends on."""
    deps = [dg.AssetKey(parent) for parent in sorted(project.persisted_parents(model.name))]
    deps += [
        dg.AssetKey([source_name, table_name])
        for source_name, table_name in project.source_dependencies(model.name)
    ]
    return deps


def model_asset(project: Project, model: Model) -> dg.AssetsDefinition:
    """Create the asset that builds one persisted model."""
    freshness_policy = None
    if model.group == AssetGroups.MARTS:
        freshness_policy = dg.FreshnessPolicy.time_window(
            fail_window=timedelta(hours=CONFIG.freshness_error_hours)
        )

    @dg.asset(
        name=model.name,
        description=model.description or None,
        group_name=model.group,
        kinds={"duckdb", "sql"},
        deps=model_deps(project, model),
        metadata={"materialized": model.materialized.value},
        freshness_policy=freshness_policy,
    )
    def _asset(context: dg.AssetExecutionContext, duckdb: DuckDBResource) -> dg.MaterializeResult:
        with duckdb.get_connection() as conn:
            runner = ProjectRunner(project, conn)
            try:
                runner.register_sources()
                result = runner.build_model(model.name)
            except TpchDuckError as e:
                raise_as_dagster_failure(e)

            preview = conn.sql(f"SELECT * FROM {model.name} LIMIT 5").pl()

        if result.incremental is not None:
            context.log.info(
                f"[{model.name}] {result.incremental.mode} load: "
                f"{result.incremental.rows_inserted} inserted, "
                f"{result.incremental.rows_updated} updated"
            )
            if result.incremental.duplicate_keys_dropped:
                context.log.warning(
                    f"[{model.name}] dropped {result.incremental.duplicate_keys_dropped} "
                    f"duplicate keys from the batch"
                )
        context.log.info(f"[{model.name}] Completed in {result.elapsed_ms:.1f}ms")

        metadata = to_metadata(result.as_metadata())
        metadata["preview"] = preview_markdown(preview)
        return dg.MaterializeResult(metadata=metadata)

    return _asset


def build_model_assets(project: Project) -> list[dg.AssetsDefinition]:
    return [
        model_asset(project, project.models[name])
        for name in project.build_order
        if project.models[name].materialized is not Materialization.EPHEMERAL
    ]


model_assets = build_model_assets(PROJECT)
