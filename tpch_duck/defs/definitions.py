"""Combined Dagster definitions for the tpch-duck project.

This module creates the single Definitions object that Dagster uses.
All assets, checks, jobs and resources are combined here.

Asset Graph
-----------
    tpch/orders ────┬──→ stg_tpch__orders ──[int_orders_*]──→ fct_tpch__orders
                    └──→ orders
    tpch/lineitem ──────→ stg_tpch__lineitem ───────────────→ fct_tpch__lineitem
    tpch/customer ──┬──→ stg_tpch__customer
                    └──→ customers_by_nation, customers_by_nation_view

Groups
------
- source: Raw TPC-H tables (external, freshness checks only)
- staging: Renamed source columns (views)
- marts: Incremental fact tables (Pandera schema checks, freshness policy)
- demo: Materialization examples

Checks
------
- One check per data quality rule; error-severity rules are blocking
- Blocking Pandera checks on the fact tables
- Freshness checks on the raw sources (warn / error thresholds)
"""

import dagster as dg

from .assets import model_assets
from .checks import freshness_checks, rule_checks, schema_checks
from .jobs import build_all_job, marts_job, quality_job
from .resources import warehouse_resource
from .sources import source_specs

defs = dg.Definitions(
    assets=[
        # External raw tables
        *source_specs,
        # One asset per persisted model
        *model_assets,
    ],
    asset_checks=[
        *rule_checks,
        *schema_checks,
        *freshness_checks,
    ],
    jobs=[build_all_job, marts_job, quality_job],
    resources={
        "duckdb": warehouse_resource(),
    },
)
