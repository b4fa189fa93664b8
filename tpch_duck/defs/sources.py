"""TPC-H source declarations.

Raw tables are loaded into the ``raw`` schema (``python -m tpch_duck generate``
or ``load``). TPC-H has no updated-at column, so every source gets the
current time injected as ``_loaded_at``.

The AssetSpecs represent the raw tables in the asset graph. Dagster doesn't
materialize them; they carry the freshness checks.
"""

import dagster as dg

from tpch_duck.sources import SourceTable

from .config import CONFIG
from .helpers import AssetGroups

TPCH_SOURCE = "tpch"

TPCH_SOURCES = [
    SourceTable(
        source_name=TPCH_SOURCE,
        name=table,
        table=table,
        warn_after=CONFIG.freshness_warn_after,
        error_after=CONFIG.freshness_error_after,
    )
    for table in ("orders", "lineitem", "customer")
]


def source_asset_key(source: SourceTable) -> dg.AssetKey:
    return dg.AssetKey([source.source_name, source.name])


source_specs = [
    dg.AssetSpec(
        key=source_asset_key(source),
        description=f"Raw TPC-H {source.name} table ({source.raw_relation})",
        metadata={"relation": source.raw_relation, "loaded_at_view": source.relation},
        kinds={"duckdb"},
        group_name=AssetGroups.SOURCE,
    )
    for source in TPCH_SOURCES
]
