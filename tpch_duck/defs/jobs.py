"""Job definitions for the tpch-duck project.

Jobs provide named entry points for running asset groups together.
"""

import dagster as dg

from .helpers import AssetGroups

# Every model in dependency order, with rule checks after each model
build_all_job = dg.define_asset_job(
    name="build_all",
    selection=dg.AssetSelection.groups(
        AssetGroups.STAGING, AssetGroups.MARTS, AssetGroups.DEMO
    ),
    description="""
    Build every persisted TPC-H model.

    1. Staging: rename source columns (views)
    2. Marts: merge order and line item facts incrementally
    3. Demo: table/view/incremental materialization examples

    Blocking checks (error-severity rules, Pandera schemas) stop
    downstream models when they fail.
    """,
)


# Staging and marts only, without the materialization demos
marts_job = dg.define_asset_job(
    name="marts",
    selection=dg.AssetSelection.groups(AssetGroups.STAGING, AssetGroups.MARTS),
    description="Build staging views and the order / line item fact tables.",
)


# Re-run checks against what is already built
quality_job = dg.define_asset_job(
    name="quality",
    selection=dg.AssetSelection.all_asset_checks(),
    description="Evaluate every data quality rule, schema check and source freshness check.",
)
